"""
OAuthFlow — drives the per-tenant authorization-code + PKCE flow.

    NOT_STARTED / AUTHORIZED --start_flow--> PENDING_APPROVAL
    PENDING_APPROVAL --complete_flow--> AUTHORIZED

State is not kept in memory; it is read back from the PKCE and token stores
(see :meth:`OAuthFlow.get_state`).  Concurrent calls for the same tenant are
not serialised here: the stores upsert, so the last write wins.
"""

from __future__ import annotations

import logging
from typing import Optional

from oauth.base import BaseOAuthClient
from oauth.exceptions import InvalidCallbackError, NotFoundError
from oauth.pkce import PkceStorage, generate_challenge
from oauth.schemas import FlowState, TokenSet
from oauth.session import OAuthSession
from oauth.token_store import TokenStorage

logger = logging.getLogger(__name__)


class OAuthFlow:
    def __init__(
        self,
        client: BaseOAuthClient,
        pkce_storage: PkceStorage,
        token_storage: TokenStorage,
        redirect_uri: str,
        scopes: str,
        *,
        refresh_skew_seconds: int = 60,
    ) -> None:
        self.client = client
        self.pkce_storage = pkce_storage
        self.token_storage = token_storage
        self.redirect_uri = redirect_uri
        self.scopes = scopes
        self._refresh_skew_seconds = refresh_skew_seconds

    async def get_state(self, tenant_id: str) -> FlowState:
        """
        Derive the tenant's state from the stores.

        A pending challenge wins over stored credentials: an authorized tenant
        that restarts the flow is awaiting approval again.
        """
        if await self.pkce_storage.exists(tenant_id):
            return FlowState.PENDING_APPROVAL
        if await self.token_storage.exists(tenant_id):
            return FlowState.AUTHORIZED
        return FlowState.NOT_STARTED

    async def start_flow(self, tenant_id: str) -> str:
        """
        Begin (or restart) authorization for *tenant_id*.

        Any unfinished challenge for the tenant is overwritten.  Returns the
        provider URL to redirect the user to.
        """
        codes = generate_challenge()
        await self.pkce_storage.save(tenant_id, codes.code_verifier)
        logger.info("Started OAuth flow for tenant %s", tenant_id)
        return self.client.authorize_url(
            state=tenant_id,
            scope=self.scopes,
            code_challenge=codes.code_challenge,
            redirect_uri=self.redirect_uri,
        )

    async def complete_flow(self, tenant_id: str, code: str) -> TokenSet:
        """
        Exchange *code* for tokens and store them.

        ``NotFoundError`` if no flow is pending (nothing is written).  If the
        exchange fails the ``ExchangeError`` propagates and the pending
        challenge is kept so the tenant can retry.
        """
        code_verifier = await self.pkce_storage.retrieve(tenant_id)
        tokens = await self.client.create_tokens(
            tenant_id, code_verifier, code, self.redirect_uri
        )
        await self.token_storage.save(tenant_id, tokens)
        await self.pkce_storage.remove(tenant_id)
        logger.info("Tenant %s authorized", tenant_id)
        return tokens

    async def handle_callback(
        self,
        code: Optional[str],
        state: Optional[str],
        error: Optional[str] = None,
    ) -> TokenSet:
        """Validate a provider redirect and complete the matching flow."""
        if error:
            logger.warning("Authorization denied for tenant %s: %s", state, error)
            raise InvalidCallbackError(f"Authorization failed: {error}", tenant_id=state)
        if not code or not state:
            logger.warning("Callback missing code or state")
            raise InvalidCallbackError("Callback requires both 'code' and 'state'")

        try:
            return await self.complete_flow(state, code)
        except NotFoundError as exc:
            logger.warning("Callback for tenant %s matches no pending flow", state)
            raise InvalidCallbackError(
                f"No pending authorization for state '{state}'",
                tenant_id=state,
            ) from exc

    async def open_session(self, tenant_id: str) -> OAuthSession:
        """
        Build a session for an authorized tenant.

        Expired credentials are accepted here; refreshing them is the
        session's job.
        """
        if not await self.token_storage.exists(tenant_id):
            raise NotFoundError(
                f"Tenant '{tenant_id}' has not authorized this integration",
                tenant_id=tenant_id,
            )
        return OAuthSession(
            tenant_id,
            self.client,
            self.token_storage,
            refresh_skew_seconds=self._refresh_skew_seconds,
        )

    async def revoke(self, tenant_id: str) -> bool:
        """
        Forget a tenant: delete its credentials and any pending challenge.

        Returns True if either was removed.
        """
        removed_challenge = await self.pkce_storage.remove(tenant_id)
        removed_tokens = await self.token_storage.delete(tenant_id)
        return removed_challenge or removed_tokens
