"""Blob storage for knowledge-base markdown, backed by Supabase Storage."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from supabase import Client, create_client

from ..core.config import StorageSettings

MARKDOWN_CONTENT_TYPE = "text/markdown"


class StorageError(RuntimeError):
    """Raised when a storage operation fails."""


class KnowledgeBaseStorage:
    """Upload, download and remove markdown objects in a single bucket."""

    def __init__(
        self,
        settings: StorageSettings,
        *,
        client: Client | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.bucket = settings.bucket
        self.logger = logger or logging.getLogger(__name__)
        self._client = client or create_client(settings.url, settings.service_role_key)

    def _bucket(self):
        return self._client.storage.from_(self.bucket)

    def upload(self, path: str, content: str) -> None:
        """Write ``content`` at ``path``, replacing any existing object."""

        try:
            self._bucket().upload(
                path,
                content.encode("utf-8"),
                {"content-type": MARKDOWN_CONTENT_TYPE, "upsert": "true"},
            )
        except Exception as exc:
            raise StorageError(f"Upload of {path} failed: {exc}") from exc

    def download(self, path: str) -> str:
        try:
            data = self._bucket().download(path)
        except Exception as exc:
            raise StorageError(f"Download of {path} failed: {exc}") from exc
        if isinstance(data, (bytes, bytearray)):
            return bytes(data).decode("utf-8")
        return str(data)

    def remove(self, paths: Iterable[str]) -> None:
        targets = [p for p in paths if p]
        if not targets:
            return
        try:
            self._bucket().remove(targets)
        except Exception as exc:
            raise StorageError(f"Removal of {targets} failed: {exc}") from exc


__all__ = ["KnowledgeBaseStorage", "MARKDOWN_CONTENT_TYPE", "StorageError"]
