"""
OAuthSession — an authenticated handle on one tenant's provider account.

Tokens are read from the store on demand.  When the access token is expired
(or about to be) the session refreshes it through the provider client and
writes the new set back before making the call.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import httpx

from oauth.base import BaseOAuthClient
from oauth.schemas import TokenSet
from oauth.token_store import TokenStorage

logger = logging.getLogger(__name__)


class OAuthSession:
    def __init__(
        self,
        tenant_id: str,
        client: BaseOAuthClient,
        token_storage: TokenStorage,
        *,
        refresh_skew_seconds: int = 60,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.tenant_id = tenant_id
        self._client = client
        self._token_storage = token_storage
        self._refresh_skew = timedelta(seconds=refresh_skew_seconds)
        self._transport = transport

    def __repr__(self) -> str:
        return f"OAuthSession(tenant_id={self.tenant_id!r})"

    async def refresh(self, tokens: Optional[TokenSet] = None) -> TokenSet:
        """Refresh the tenant's tokens and persist the new set."""
        if tokens is None:
            tokens = await self._token_storage.retrieve(self.tenant_id)
        refreshed = await self._client.refresh_tokens(self.tenant_id, tokens.refresh_token)
        await self._token_storage.save(self.tenant_id, refreshed)
        logger.info("Refreshed tokens for tenant %s", self.tenant_id)
        return refreshed

    async def get_access_token(self) -> str:
        """Return a usable access token, refreshing first if it is expiring."""
        tokens = await self._token_storage.retrieve(self.tenant_id)
        if tokens.expires_at <= datetime.now(timezone.utc) + self._refresh_skew:
            tokens = await self.refresh(tokens)
        return tokens.access_token

    async def request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """
        Make an authenticated call against the provider API.

        *path* is joined to the client's ``api_base``.  A 401 triggers one
        forced refresh and a single retry.
        """
        url = f"{self._client.api_base}/{path.lstrip('/')}"
        extra_headers = kwargs.pop("headers", None) or {}

        async with httpx.AsyncClient(transport=self._transport) as http:
            access_token = await self.get_access_token()
            resp = await http.request(
                method, url, headers=self._headers(access_token, extra_headers), **kwargs
            )
            if resp.status_code == 401:
                logger.info("Provider returned 401 for tenant %s, refreshing", self.tenant_id)
                refreshed = await self.refresh()
                resp = await http.request(
                    method, url, headers=self._headers(refreshed.access_token, extra_headers), **kwargs
                )
        return resp

    def _headers(self, access_token: str, extra: dict) -> dict:
        headers = self._client.default_headers()
        headers.update(extra)
        headers["Authorization"] = f"Bearer {access_token}"
        return headers
