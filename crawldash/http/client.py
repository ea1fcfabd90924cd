"""Authenticated API client.

Every call carries the current access secret. A 401 is never retried inline:
the call is handed to the token manager as a continuation and replayed once
with the renewed secret. A second 401 on the replay is surfaced.
"""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Any, Optional

from crawldash.auth import TokenLifecycleManager
from crawldash.errors import ApiError, NotAuthenticatedError, TransportError
from crawldash.http.transport import BaseHttpTransport, HttpRequest, HttpResponse
from crawldash.storage import CredentialStore

LOGGER = logging.getLogger(__name__)


class ApiClient:
    def __init__(
        self,
        transport: BaseHttpTransport,
        store: CredentialStore,
        tokens: TokenLifecycleManager,
        *,
        retry_attempts: int = 3,
        retry_delay_seconds: float = 1.0,
    ) -> None:
        self._transport = transport
        self._store = store
        self._tokens = tokens
        self._retry_attempts = max(1, int(retry_attempts))
        self._retry_delay_seconds = float(retry_delay_seconds)

    async def request(
        self,
        method: str,
        path: str,
        *,
        params: Optional[dict[str, Any]] = None,
        json: Any = None,
        authenticated: bool = True,
        renew: bool = True,
    ) -> Any:
        request = HttpRequest(method=method.upper(), path=path, params=params, json=json)
        if not authenticated:
            return self._unwrap(await self._transport.send(request))

        credential = self._store.credential
        if credential is None:
            raise NotAuthenticatedError(f"{request.method} {path} requires an active session")
        response = await self._transport.send(request.with_token(credential.access_token))
        if response.status_code != 401 or not renew:
            return self._unwrap(response)

        LOGGER.warning("%s %s rejected the access credential; waiting for renewal", request.method, path)
        return await self._tokens.on_unauthorized(
            partial(self._replay, request),
            failed_token=credential.access_token,
        )

    async def _replay(self, request: HttpRequest, access_token: str) -> Any:
        response = await self._transport.send(request.with_token(access_token))
        if response.status_code == 401:
            LOGGER.warning("%s %s rejected the renewed credential", request.method, request.path)
        return self._unwrap(response)

    @staticmethod
    def _unwrap(response: HttpResponse) -> Any:
        if response.ok:
            return response.data
        raise ApiError.from_response(response.status_code, response.data)

    async def get(self, path: str, *, params: Optional[dict[str, Any]] = None, **kwargs: Any) -> Any:
        return await self.request("GET", path, params=params, **kwargs)

    async def post(self, path: str, json: Any = None, **kwargs: Any) -> Any:
        return await self.request("POST", path, json=json, **kwargs)

    async def put(self, path: str, json: Any = None, **kwargs: Any) -> Any:
        return await self.request("PUT", path, json=json, **kwargs)

    async def patch(self, path: str, json: Any = None, **kwargs: Any) -> Any:
        return await self.request("PATCH", path, json=json, **kwargs)

    async def delete(self, path: str, **kwargs: Any) -> Any:
        return await self.request("DELETE", path, **kwargs)

    async def get_with_retry(self, path: str, *, params: Optional[dict[str, Any]] = None, **kwargs: Any) -> Any:
        return await self._with_retry(partial(self.get, path, params=params, **kwargs))

    async def post_with_retry(self, path: str, json: Any = None, **kwargs: Any) -> Any:
        return await self._with_retry(partial(self.post, path, json, **kwargs))

    async def _with_retry(self, call: partial[Any]) -> Any:
        attempt = 0
        while True:
            attempt += 1
            try:
                return await call()
            except (TransportError, ApiError) as exc:
                retryable = isinstance(exc, TransportError) or (exc.status is not None and exc.status >= 500)
                if not retryable or attempt >= self._retry_attempts:
                    raise
                LOGGER.warning("Request failed (attempt %s/%s): %s", attempt, self._retry_attempts, exc)
                await asyncio.sleep(self._retry_delay_seconds)

    async def close(self) -> None:
        await self._transport.close()
