"""Generative-text service (Gemini) client."""

from __future__ import annotations

import logging

import requests

from ..core.config import TextGenerationSettings
from .base import JsonApiClient


class TextGenerationClient(JsonApiClient):
    service = "gemini"

    def __init__(
        self,
        settings: TextGenerationSettings,
        *,
        session: requests.Session | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(
            settings.api_url,
            headers={"x-goog-api-key": settings.api_key},
            session=session,
            logger=logger,
        )
        self.model = settings.model

    def generate_text(self, prompt: str) -> str:
        """Return the concatenated text parts of the first candidate."""

        payload = self.request_json(
            "POST",
            f"models/{self.model}:generateContent",
            json={"contents": [{"role": "user", "parts": [{"text": prompt}]}]},
        ) or {}
        candidates = payload.get("candidates") or []
        if not candidates:
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts if isinstance(part, dict))


__all__ = ["TextGenerationClient"]
