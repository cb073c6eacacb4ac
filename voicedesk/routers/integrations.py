"""Integration status API router."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..integrations import integration_status
from ..models import User
from ..security.auth import get_current_user, get_db_session

router = APIRouter(prefix="/api/integrations", tags=["integrations"])


@router.get("")
def list_integrations(
    user: User = Depends(get_current_user),
    session: Session = Depends(get_db_session),
) -> dict[str, Any]:
    return {"integrations": integration_status(session, user.clerk_organization_id)}
