"""
Shared fixtures — in-memory SQLite database, stores, and a fake provider client.
"""

import os
from datetime import datetime, timedelta, timezone
from typing import Dict
from unittest.mock import AsyncMock
from urllib.parse import urlencode

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from database.models import Base
from oauth.base import BaseOAuthClient
from oauth.encryption import TokenCipher
from oauth.flow import OAuthFlow
from oauth.pkce import PkceStorage
from oauth.schemas import TokenSet
from oauth.token_store import TokenStorage

REDIRECT_URI = "http://bridge.test/authorize"
SCOPES = "accounts:read profiles:read"


class FakeOAuthClient(BaseOAuthClient):
    """Provider stand-in; token calls are AsyncMocks the tests can program."""

    def __init__(self) -> None:
        self.create_tokens = AsyncMock(return_value=make_tokens())
        self.refresh_tokens = AsyncMock(return_value=make_tokens(access_token="AT-2"))

    @property
    def api_base(self) -> str:
        return "https://provider.test"

    def default_headers(self) -> Dict[str, str]:
        return {"revision": "2024-10-15"}

    def authorize_url(self, state, scope, code_challenge, redirect_uri):
        params = {
            "state": state,
            "scope": scope,
            "code_challenge": code_challenge,
            "redirect_uri": redirect_uri,
        }
        return f"https://provider.test/oauth/authorize?{urlencode(params)}"

    async def create_tokens(self, tenant_id, code_verifier, code, redirect_uri):
        raise NotImplementedError

    async def refresh_tokens(self, tenant_id, refresh_token):
        raise NotImplementedError


def make_tokens(
    access_token: str = "AT",
    refresh_token: str = "RT",
    expires_in: int = 3600,
) -> TokenSet:
    return TokenSet(
        access_token=access_token,
        refresh_token=refresh_token,
        expires_at=datetime.now(timezone.utc).replace(microsecond=0) + timedelta(seconds=expires_in),
    )


@pytest_asyncio.fixture
async def session_factory():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def cipher() -> TokenCipher:
    return TokenCipher(os.urandom(32))


@pytest.fixture
def pkce_storage(session_factory) -> PkceStorage:
    return PkceStorage(session_factory)


@pytest.fixture
def token_storage(session_factory, cipher) -> TokenStorage:
    return TokenStorage(session_factory, cipher)


@pytest.fixture
def fake_client() -> FakeOAuthClient:
    return FakeOAuthClient()


@pytest.fixture
def flow(fake_client, pkce_storage, token_storage) -> OAuthFlow:
    return OAuthFlow(
        client=fake_client,
        pkce_storage=pkce_storage,
        token_storage=token_storage,
        redirect_uri=REDIRECT_URI,
        scopes=SCOPES,
    )
