"""Knowledge-base management: storage, agent sync and website import."""

from . import schemas
from .service import (
    AgentConflictError,
    KnowledgeBaseError,
    KnowledgeBaseNotFoundError,
    KnowledgeBaseService,
    KnowledgeBaseStorageError,
    KnowledgeBaseValidationError,
    slugify,
    storage_path,
)

__all__ = [
    "AgentConflictError",
    "KnowledgeBaseError",
    "KnowledgeBaseNotFoundError",
    "KnowledgeBaseService",
    "KnowledgeBaseStorageError",
    "KnowledgeBaseValidationError",
    "schemas",
    "slugify",
    "storage_path",
]
