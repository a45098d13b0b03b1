"""
Exception hierarchy for the OAuth bridge.

Every error carries the tenant it concerns (when known) and the HTTP status
the API layer should answer with.  Core code raises these and lets them
propagate; only ``main.py`` turns them into responses.
"""

from __future__ import annotations

from typing import Optional


class OAuthBridgeError(Exception):
    """Base class for all OAuth bridge errors."""

    status_code: int = 500

    def __init__(self, message: str, *, tenant_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.tenant_id = tenant_id


class NotFoundError(OAuthBridgeError):
    """No pending challenge or stored credential for the tenant."""

    status_code = 404


class DecryptionError(OAuthBridgeError):
    """A stored envelope cannot be decrypted under the current key."""

    status_code = 500


class InvalidCallbackError(OAuthBridgeError):
    """The provider redirect is missing code/state or matches no pending flow."""

    status_code = 400


class ExchangeError(OAuthBridgeError):
    """The provider rejected a code exchange or a refresh."""

    status_code = 502


class ConfigurationError(OAuthBridgeError):
    """Process configuration is unusable (bad key, missing client credentials)."""

    status_code = 500
