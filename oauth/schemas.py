"""
Pydantic schemas shared by the OAuth flow, token store and API.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field


class FlowState(str, Enum):
    """Per-tenant authorization state, derived from what the stores hold."""

    NOT_STARTED = "not_started"
    PENDING_APPROVAL = "pending_approval"
    AUTHORIZED = "authorized"


class TokenSet(BaseModel):
    """Access / refresh token pair as issued by the provider."""

    access_token: str
    refresh_token: str = Field(repr=False)
    expires_at: datetime


class AuthorizedResponse(BaseModel):
    tenant_id: str
    status: FlowState = FlowState.AUTHORIZED
    expires_at: datetime


class TenantStatus(BaseModel):
    tenant_id: str
    state: FlowState
