"""
SQLAlchemy ORM models for per-tenant OAuth state.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Index, String, Text
from sqlalchemy.orm import DeclarativeBase


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


class TenantCredential(Base):
    """Authorized credentials for one tenant; replaced wholesale on every save."""

    __tablename__ = "tenant_credentials"

    tenant_id = Column(String(255), primary_key=True)
    access_token = Column(Text, nullable=False)
    encrypted_refresh_token = Column(Text, nullable=False)  # "<hex ciphertext>:<hex iv>"
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


class PendingChallenge(Base):
    """PKCE verifier awaiting its callback; at most one per tenant."""

    __tablename__ = "pending_challenges"

    tenant_id = Column(String(255), primary_key=True)
    code_verifier = Column(String(128), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    __table_args__ = (Index("ix_pending_challenges_created_at", "created_at"),)
