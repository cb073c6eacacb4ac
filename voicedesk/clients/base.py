"""Shared plumbing for JSON-over-HTTP vendor clients."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import urljoin

import requests

from ..core.config import http_timeout


class UpstreamError(RuntimeError):
    """A vendor API call failed.

    ``status_code`` is the vendor's HTTP status, or ``None`` when the request
    never produced a response (DNS, TLS, timeout, connection reset).
    """

    def __init__(
        self,
        service: str,
        message: str,
        *,
        status_code: int | None = None,
        payload: Any = None,
    ) -> None:
        super().__init__(f"{service}: {message}")
        self.service = service
        self.status_code = status_code
        self.payload = payload


class JsonApiClient:
    """Issue requests against a vendor base URL and decode JSON replies."""

    service = "upstream"

    def __init__(
        self,
        base_url: str,
        *,
        headers: dict[str, str] | None = None,
        session: requests.Session | None = None,
        timeout: float | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/") + "/"
        self._owns_session = session is None
        self.session = session or requests.Session()
        self.timeout = timeout if timeout is not None else http_timeout()
        self.logger = logger or logging.getLogger(type(self).__module__)
        self._headers = dict(headers or {})

    def close(self) -> None:
        """Release pooled connections held by a session this client created."""

        if self._owns_session:
            self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _url(self, path: str) -> str:
        if path.startswith("http"):
            return path
        return urljoin(self.base_url, path.lstrip("/"))

    @staticmethod
    def _error_payload(response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError:
            return response.text

    def request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        """Send a request and raise :class:`UpstreamError` unless it is 2xx."""

        headers = dict(self._headers)
        headers.update(kwargs.pop("headers", None) or {})
        kwargs.setdefault("timeout", self.timeout)
        url = self._url(path)
        try:
            response = self.session.request(method, url, headers=headers, **kwargs)
        except requests.RequestException as exc:
            raise UpstreamError(self.service, f"{method} {url} failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            raise UpstreamError(
                self.service,
                f"{method} {url} returned {response.status_code}",
                status_code=response.status_code,
                payload=self._error_payload(response),
            )
        return response

    def request_json(self, method: str, path: str, **kwargs: Any) -> Any:
        response = self.request(method, path, **kwargs)
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise UpstreamError(
                self.service,
                f"{method} {path} returned a non-JSON body",
                status_code=response.status_code,
            ) from exc


__all__ = ["JsonApiClient", "UpstreamError"]
