"""HTTP transports used by the API client."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Optional

import requests

from crawldash.errors import TransportError

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class HttpRequest:
    method: str
    path: str
    params: Optional[Dict[str, Any]] = None
    json: Any = None
    headers: Dict[str, str] = field(default_factory=dict)

    def with_token(self, access_token: str) -> HttpRequest:
        headers = dict(self.headers)
        headers["Authorization"] = f"Bearer {access_token}"
        return replace(self, headers=headers)


@dataclass(frozen=True)
class HttpResponse:
    status_code: int
    data: Any = None
    headers: Dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status_code < 400


class BaseHttpTransport(ABC):
    """Sends one request and returns the decoded response; never raises on HTTP status."""

    @abstractmethod
    async def send(self, request: HttpRequest) -> HttpResponse:
        ...

    async def close(self) -> None:
        return None


class RequestsHttpTransport(BaseHttpTransport):
    """Blocking ``requests`` session driven from a worker thread."""

    def __init__(self, base_url: str, *, timeout_seconds: float = 30.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds
        self._session = requests.Session()
        self._session.headers.update({"Content-Type": "application/json", "Accept": "application/json"})

    async def send(self, request: HttpRequest) -> HttpResponse:
        return await asyncio.to_thread(self._send_sync, request)

    def _send_sync(self, request: HttpRequest) -> HttpResponse:
        url = f"{self._base_url}/{request.path.lstrip('/')}"
        params = {key: value for key, value in (request.params or {}).items() if value is not None}
        try:
            response = self._session.request(
                request.method,
                url,
                params=params or None,
                json=request.json,
                headers=request.headers or None,
                timeout=self._timeout_seconds,
            )
        except requests.RequestException as exc:
            raise TransportError(f"{request.method} {request.path} failed: {exc}") from exc
        LOGGER.debug("%s %s -> %s", request.method, request.path, response.status_code)
        return HttpResponse(
            status_code=response.status_code,
            data=self._decode(response),
            headers=dict(response.headers),
        )

    @staticmethod
    def _decode(response: requests.Response) -> Any:
        if not response.content:
            return None
        content_type = response.headers.get("Content-Type", "")
        if "json" in content_type:
            try:
                return response.json()
            except ValueError:
                return response.text
        if content_type.startswith("text/"):
            return response.text
        return response.content

    async def close(self) -> None:
        self._session.close()
