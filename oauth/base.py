"""
BaseOAuthClient — abstract interface to the third-party OAuth provider.

The flow orchestrator only talks to the provider through this interface, so
tests (and other providers) can swap in their own implementation.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict

from oauth.schemas import TokenSet


class BaseOAuthClient(ABC):
    """Abstract base for provider OAuth clients."""

    # ── OAuth flow ──────────────────────────────────────────────────────

    @abstractmethod
    def authorize_url(
        self,
        state: str,
        scope: str,
        code_challenge: str,
        redirect_uri: str,
    ) -> str:
        """
        Build the provider's authorization URL.

        Parameters
        ----------
        state : str
            Tenant identifier, echoed back on the callback.
        scope : str
            Space-separated scopes to request.
        code_challenge : str
            PKCE S256 challenge.
        redirect_uri : str
            Fixed callback URL registered with the provider.
        """
        ...

    @abstractmethod
    async def create_tokens(
        self,
        tenant_id: str,
        code_verifier: str,
        code: str,
        redirect_uri: str,
    ) -> TokenSet:
        """
        Exchange an authorization code for tokens.

        Raises ``ExchangeError`` if the provider rejects the code/verifier pair.
        """
        ...

    @abstractmethod
    async def refresh_tokens(self, tenant_id: str, refresh_token: str) -> TokenSet:
        """Use a refresh token to obtain a new token set."""
        ...

    # ── API access ──────────────────────────────────────────────────────

    @property
    @abstractmethod
    def api_base(self) -> str:
        """Base URL for authenticated API calls."""
        ...

    def default_headers(self) -> Dict[str, str]:
        """Extra headers sent with every authenticated API call."""
        return {}
