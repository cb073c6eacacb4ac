"""SQLAlchemy declarative base and dashboard models.

These models map the tables the API reads and writes; ``seed.py`` creates
any that are missing.  Individual models live in dedicated
modules within this package.
"""

from __future__ import annotations

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy declarative models."""


# Re-export models so callers can import them via
# ``from voicedesk.models import Organization`` instead of touching submodules.
from .tenant import (
    AgentConfig,
    Location,
    Organization,
    PhoneNumberConfig,
    User,
    UserLocationAccess,
)
from .knowledge_base import KnowledgeBase
from .merchant import Merchant


__all__ = [
    "AgentConfig",
    "Base",
    "KnowledgeBase",
    "Location",
    "Merchant",
    "Organization",
    "PhoneNumberConfig",
    "User",
    "UserLocationAccess",
]
