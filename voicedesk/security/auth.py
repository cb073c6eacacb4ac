"""Session-backed authentication dependencies for FastAPI routers."""

from __future__ import annotations

import dataclasses
from collections.abc import Iterator

from fastapi import Depends, HTTPException, status
from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from voicedesk.clients import ClerkClient
from voicedesk.core.auth import SessionTokenPayload, get_session_context
from voicedesk.dependencies import get_clerk_client
from voicedesk.models import User
from voicedesk.models.session import get_sessionmaker

ADMIN = "admin"
MEMBER = "member"

_SESSION_FACTORY: sessionmaker[Session] | None = None


def _get_session_factory() -> sessionmaker[Session]:
    global _SESSION_FACTORY
    if _SESSION_FACTORY is None:
        _SESSION_FACTORY = get_sessionmaker()
    return _SESSION_FACTORY


def reset_session_factory() -> None:
    """Forget the cached session factory; useful in tests when DATABASE_URL changes."""

    global _SESSION_FACTORY
    _SESSION_FACTORY = None


def get_db_session() -> Iterator[Session]:
    """Yield a SQLAlchemy session for request-scoped dependencies."""

    session = _get_session_factory()()
    try:
        yield session
    finally:
        session.close()


@dataclasses.dataclass(frozen=True)
class CurrentMember:
    """The authenticated user together with their organization role."""

    user: User
    role: str

    @property
    def organization_id(self) -> str:
        return self.user.clerk_organization_id

    @property
    def user_id(self) -> str:
        return self.user.clerk_user_id

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN


def get_current_user(
    payload: SessionTokenPayload = Depends(get_session_context),
    session: Session = Depends(get_db_session),
) -> User:
    """Resolve the local :class:`~voicedesk.models.User` for the session subject."""

    user = session.scalars(
        select(User).where(User.clerk_user_id == payload["sub"])
    ).first()
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )
    return user


def get_current_member(
    user: User = Depends(get_current_user),
    clerk: ClerkClient = Depends(get_clerk_client),
) -> CurrentMember:
    """Look up the caller's role in their organization.

    Raises:
        HTTPException: ``403`` when the identity provider reports no
            membership in the user's organization.
    """

    role = clerk.get_organization_role(user.clerk_user_id, user.clerk_organization_id)
    if role is None:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Not a member of this organization",
        )
    return CurrentMember(user=user, role=role)


def require_admin(member: CurrentMember = Depends(get_current_member)) -> CurrentMember:
    """Dependency ensuring the caller is an organization admin."""

    if not member.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return member


__all__ = [
    "ADMIN",
    "MEMBER",
    "CurrentMember",
    "get_current_member",
    "get_current_user",
    "get_db_session",
    "require_admin",
    "reset_session_factory",
]
