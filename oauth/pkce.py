"""
PKCE (Proof Key for Code Exchange, RFC 7636) — code generation and
per-tenant verifier storage.

A tenant has at most one flow in flight.  Starting a new flow overwrites the
previous verifier; the callback reads it once and the verifier is deleted
after a successful token exchange.  Verifiers live in the database only, so
a redirect round-trip survives restarts and deployments.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import NamedTuple

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from database.helpers import upsert
from database.models import PendingChallenge
from oauth.exceptions import NotFoundError

logger = logging.getLogger(__name__)

CHALLENGE_METHOD = "S256"


class PkceCodes(NamedTuple):
    code_verifier: str  # 43-128 chars from the unreserved set
    code_challenge: str  # base64url(SHA256(code_verifier)), unpadded


def generate_challenge() -> PkceCodes:
    """Generate a fresh verifier and its S256 challenge."""
    # 64 random bytes -> 86 url-safe characters
    code_verifier = secrets.token_urlsafe(64)
    digest = hashlib.sha256(code_verifier.encode("ascii")).digest()
    code_challenge = base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")
    return PkceCodes(code_verifier=code_verifier, code_challenge=code_challenge)


class PkceStorage:
    """Database-backed store of pending PKCE verifiers, keyed by tenant."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def save(self, tenant_id: str, code_verifier: str) -> None:
        """Store the verifier for *tenant_id*, replacing any unfinished flow."""
        async with self._session_factory() as session:
            await upsert(
                session,
                PendingChallenge,
                {
                    "tenant_id": tenant_id,
                    "code_verifier": code_verifier,
                    "created_at": datetime.now(timezone.utc),
                },
                index_elements=["tenant_id"],
            )
            await session.commit()
        logger.debug("Saved PKCE verifier for tenant %s", tenant_id)

    async def retrieve(self, tenant_id: str) -> str:
        """Return the pending verifier; raises ``NotFoundError`` if there is none."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(PendingChallenge.code_verifier).where(
                    PendingChallenge.tenant_id == tenant_id
                )
            )
            code_verifier = result.scalar_one_or_none()
        if code_verifier is None:
            raise NotFoundError(
                f"No pending authorization for tenant '{tenant_id}'",
                tenant_id=tenant_id,
            )
        return code_verifier

    async def exists(self, tenant_id: str) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                select(PendingChallenge.tenant_id).where(
                    PendingChallenge.tenant_id == tenant_id
                )
            )
            return result.scalar_one_or_none() is not None

    async def remove(self, tenant_id: str) -> bool:
        """Delete the pending verifier.  No-op (returns False) if it is already gone."""
        async with self._session_factory() as session:
            result = await session.execute(
                delete(PendingChallenge).where(PendingChallenge.tenant_id == tenant_id)
            )
            await session.commit()
        return bool(result.rowcount)

    async def purge_expired(self, ttl_seconds: int) -> int:
        """
        Delete challenges older than *ttl_seconds* (abandoned flows).

        Returns the number of rows removed.
        """
        cutoff = datetime.now(timezone.utc) - timedelta(seconds=ttl_seconds)
        async with self._session_factory() as session:
            result = await session.execute(
                delete(PendingChallenge).where(PendingChallenge.created_at < cutoff)
            )
            await session.commit()
        removed = result.rowcount or 0
        if removed:
            logger.info("Purged %d abandoned PKCE challenges older than %ds", removed, ttl_seconds)
        return removed
