"""
FastAPI dependencies (shared across routes).

Provides ``get_oauth_flow``, which wires the provider client, the PKCE store
and the encrypted token store together once per process.
"""

from __future__ import annotations

import logging
from typing import Optional

from config.settings import config
from database.session import async_session_factory
from oauth.client import HttpOAuthClient
from oauth.encryption import TokenCipher
from oauth.flow import OAuthFlow
from oauth.pkce import PkceStorage
from oauth.token_store import TokenStorage

logger = logging.getLogger(__name__)

_flow: Optional[OAuthFlow] = None


def build_oauth_flow() -> OAuthFlow:
    """Construct the flow from process configuration (raises ``ConfigurationError``)."""
    cipher = TokenCipher.from_hex(config.token_encryption_key)
    return OAuthFlow(
        client=HttpOAuthClient.from_settings(config),
        pkce_storage=PkceStorage(async_session_factory),
        token_storage=TokenStorage(async_session_factory, cipher),
        redirect_uri=config.redirect_uri,
        scopes=config.oauth_scopes,
        refresh_skew_seconds=config.token_refresh_skew_seconds,
    )


def get_oauth_flow() -> OAuthFlow:
    """Dependency — use in FastAPI `Depends(get_oauth_flow)`."""
    global _flow
    if _flow is None:
        _flow = build_oauth_flow()
        logger.info("OAuth flow initialised (redirect_uri=%s)", config.redirect_uri)
    return _flow
