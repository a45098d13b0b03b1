"""
OAuth API routes — start, callback, tenant status, provider proxy.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from fastapi.responses import RedirectResponse

from api.dependencies import get_oauth_flow
from oauth.exceptions import NotFoundError
from oauth.flow import OAuthFlow
from oauth.schemas import AuthorizedResponse, TenantStatus

logger = logging.getLogger(__name__)

router = APIRouter(tags=["oauth"])


@router.get("/start/{tenant_id}")
async def start_authorization(
    tenant_id: str,
    flow: OAuthFlow = Depends(get_oauth_flow),
) -> RedirectResponse:
    """Redirect the tenant's user to the provider to approve the integration."""
    auth_url = await flow.start_flow(tenant_id)
    return RedirectResponse(auth_url, status_code=status.HTTP_307_TEMPORARY_REDIRECT)


@router.get("/authorize", response_model=AuthorizedResponse)
async def authorize_callback(
    code: Optional[str] = Query(None),
    state: Optional[str] = Query(None),
    error: Optional[str] = Query(None),
    flow: OAuthFlow = Depends(get_oauth_flow),
) -> AuthorizedResponse:
    """
    Provider redirect target — approved or denied.

    ``state`` carries the tenant id that started the flow.
    """
    tokens = await flow.handle_callback(code, state, error)
    return AuthorizedResponse(tenant_id=state, expires_at=tokens.expires_at)


@router.get("/tenants/{tenant_id}/status", response_model=TenantStatus)
async def tenant_status(
    tenant_id: str,
    flow: OAuthFlow = Depends(get_oauth_flow),
) -> TenantStatus:
    return TenantStatus(tenant_id=tenant_id, state=await flow.get_state(tenant_id))


@router.delete("/tenants/{tenant_id}/credentials", status_code=status.HTTP_204_NO_CONTENT)
async def revoke_credentials(
    tenant_id: str,
    flow: OAuthFlow = Depends(get_oauth_flow),
) -> Response:
    """Administrative removal of a tenant's credentials and any pending flow."""
    if not await flow.revoke(tenant_id):
        raise NotFoundError(f"Nothing stored for tenant '{tenant_id}'", tenant_id=tenant_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/profiles/{tenant_id}")
async def list_profiles(
    tenant_id: str,
    flow: OAuthFlow = Depends(get_oauth_flow),
) -> Any:
    """Fetch the first page of profiles from the tenant's provider account."""
    session = await flow.open_session(tenant_id)
    resp = await session.request("GET", "/api/profiles/")
    if resp.is_error:
        logger.warning(
            "Provider call failed for tenant %s: HTTP %d", tenant_id, resp.status_code
        )
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"Provider returned HTTP {resp.status_code}",
        )
    return resp.json()
