"""Square OAuth API router."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from ..clients import SquareOAuthClient
from ..dependencies import get_square_client
from ..integrations import SquareIntegration, SquareNotConnectedError
from ..security.auth import CurrentMember, get_db_session, require_admin
from ..security.encryption import EncryptionError

router = APIRouter(prefix="/api/square", tags=["square"])

logger = logging.getLogger(__name__)


def get_integration(
    session: Session = Depends(get_db_session),
    client: SquareOAuthClient = Depends(get_square_client),
) -> SquareIntegration:
    return SquareIntegration(session, client)


@router.get("/authorize")
def authorize(
    member: CurrentMember = Depends(require_admin),
    integration: SquareIntegration = Depends(get_integration),
) -> dict[str, str]:
    """Return the Square consent URL for the caller's organization."""

    try:
        url = integration.authorization_url(member.organization_id, member.user_id)
    except (EncryptionError, RuntimeError) as exc:
        logger.error("Cannot build Square authorization URL: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)
        ) from exc
    return {"authUrl": url}


@router.get("/callback", include_in_schema=False)
def callback(
    code: str | None = Query(default=None),
    state: str | None = Query(default=None),
    error: str | None = Query(default=None),
    error_description: str | None = Query(default=None),
    integration: SquareIntegration = Depends(get_integration),
) -> RedirectResponse:
    """OAuth redirect target; always sends the browser back to the dashboard."""

    return RedirectResponse(
        integration.handle_callback(
            code=code, state=state, error=error, error_description=error_description
        )
    )


@router.post("/disconnect")
def disconnect(
    member: CurrentMember = Depends(require_admin),
    integration: SquareIntegration = Depends(get_integration),
) -> dict[str, Any]:
    try:
        return integration.disconnect(member.organization_id)
    except SquareNotConnectedError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
