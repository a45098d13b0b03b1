"""
HttpOAuthClient — OAuth2 authorization-code + PKCE client over httpx.

Defaults target Klaviyo's endpoints (see ``config.settings``) but any
provider that accepts HTTP Basic client authentication on its token
endpoint works.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional
from urllib.parse import urlencode

import httpx

from config.settings import Settings
from oauth.base import BaseOAuthClient
from oauth.exceptions import ConfigurationError, ExchangeError
from oauth.pkce import CHALLENGE_METHOD
from oauth.schemas import TokenSet

logger = logging.getLogger(__name__)

_DEFAULT_EXPIRES_IN = 3600


class HttpOAuthClient(BaseOAuthClient):
    """Provider client that talks to real authorize / token endpoints."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        authorize_endpoint: str,
        token_endpoint: str,
        api_base: str,
        api_revision: Optional[str] = None,
        *,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        if not client_id or not client_secret:
            raise ConfigurationError("CLIENT_ID and CLIENT_SECRET must be set")
        self._client_id = client_id
        self._client_secret = client_secret
        self._authorize_endpoint = authorize_endpoint
        self._token_endpoint = token_endpoint
        self._api_base = api_base.rstrip("/")
        self._api_revision = api_revision
        self._timeout = timeout
        self._transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> "HttpOAuthClient":
        return cls(
            client_id=settings.client_id,
            client_secret=settings.client_secret,
            authorize_endpoint=settings.oauth_authorize_url,
            token_endpoint=settings.oauth_token_url,
            api_base=settings.provider_api_base,
            api_revision=settings.provider_api_revision,
        )

    @property
    def api_base(self) -> str:
        return self._api_base

    def default_headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._api_revision:
            headers["revision"] = self._api_revision
        return headers

    def authorize_url(
        self,
        state: str,
        scope: str,
        code_challenge: str,
        redirect_uri: str,
    ) -> str:
        params = {
            "response_type": "code",
            "client_id": self._client_id,
            "redirect_uri": redirect_uri,
            "scope": scope,
            "state": state,
            "code_challenge_method": CHALLENGE_METHOD,
            "code_challenge": code_challenge,
        }
        return f"{self._authorize_endpoint}?{urlencode(params)}"

    async def create_tokens(
        self,
        tenant_id: str,
        code_verifier: str,
        code: str,
        redirect_uri: str,
    ) -> TokenSet:
        """Exchange auth code + verifier for tokens."""
        data = await self._token_request(
            tenant_id,
            {
                "grant_type": "authorization_code",
                "code": code,
                "code_verifier": code_verifier,
                "redirect_uri": redirect_uri,
            },
        )
        if not data.get("refresh_token"):
            raise ExchangeError(
                "Token endpoint did not return a refresh token",
                tenant_id=tenant_id,
            )
        return self._to_token_set(tenant_id, data, data["refresh_token"])

    async def refresh_tokens(self, tenant_id: str, refresh_token: str) -> TokenSet:
        """Use refresh token to get a new access token."""
        data = await self._token_request(
            tenant_id,
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            },
        )
        # Some providers rotate refresh tokens, others keep the old one
        return self._to_token_set(tenant_id, data, data.get("refresh_token") or refresh_token)

    # ── Helpers ─────────────────────────────────────────────────────────

    async def _token_request(self, tenant_id: str, form: Dict[str, str]) -> Dict[str, Any]:
        grant = form["grant_type"]
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                resp = await client.post(
                    self._token_endpoint,
                    data=form,
                    auth=(self._client_id, self._client_secret),
                )
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Token endpoint rejected %s for tenant %s: HTTP %d",
                grant, tenant_id, exc.response.status_code,
            )
            raise ExchangeError(
                f"Provider rejected {grant} (HTTP {exc.response.status_code})",
                tenant_id=tenant_id,
            ) from exc
        except (httpx.HTTPError, ValueError) as exc:
            logger.warning("Token request (%s) failed for tenant %s: %s", grant, tenant_id, exc)
            raise ExchangeError(
                f"Token request failed: {exc}",
                tenant_id=tenant_id,
            ) from exc

        if not isinstance(data, dict) or "access_token" not in data:
            raise ExchangeError(
                "Token endpoint response has no access_token",
                tenant_id=tenant_id,
            )
        return data

    @staticmethod
    def _to_token_set(tenant_id: str, data: Dict[str, Any], refresh_token: str) -> TokenSet:
        try:
            expires_in = int(data.get("expires_in", _DEFAULT_EXPIRES_IN))
            return TokenSet(
                access_token=data["access_token"],
                refresh_token=refresh_token,
                expires_at=datetime.now(timezone.utc) + timedelta(seconds=expires_in),
            )
        except (TypeError, ValueError, OverflowError) as exc:
            # pydantic.ValidationError is a ValueError
            logger.warning("Malformed token response for tenant %s: %s", tenant_id, exc)
            raise ExchangeError(
                f"Malformed token response: {exc}",
                tenant_id=tenant_id,
            ) from exc
