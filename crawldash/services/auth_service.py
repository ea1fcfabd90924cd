"""Authentication operations on top of the API client and token manager."""

from __future__ import annotations

import logging
from typing import Any, Optional

from pydantic import ValidationError

from crawldash.auth import TokenLifecycleManager
from crawldash.errors import ApiError, CrawlDashError
from crawldash.http import ApiClient
from crawldash.http import endpoints
from crawldash.models.credential import Identity, TokenResponse
from crawldash.storage import CredentialStore

LOGGER = logging.getLogger(__name__)


def _token_response(payload: Any) -> TokenResponse:
    try:
        return TokenResponse.from_payload(payload)
    except ValidationError as exc:
        raise ApiError(f"Malformed token response: {exc.error_count()} error(s)", error="invalid_response") from exc


_IDENTITY_KEYS = ("id", "username", "email")


def _echoed_identity(payload: Any) -> Optional[Identity]:
    if isinstance(payload, dict) and isinstance(payload.get("user"), dict):
        payload = payload["user"]
    if not isinstance(payload, dict) or not any(key in payload for key in _IDENTITY_KEYS):
        return None
    try:
        return Identity.model_validate(payload)
    except ValidationError as exc:
        raise ApiError(f"Malformed profile response: {exc.error_count()} error(s)", error="invalid_response") from exc


class AuthService:
    def __init__(self, api: ApiClient, tokens: TokenLifecycleManager, store: CredentialStore) -> None:
        self._api = api
        self._tokens = tokens
        self._store = store

    async def login(self, username: str, password: str) -> Optional[Identity]:
        payload = await self._api.post(
            endpoints.LOGIN,
            {"username": username, "password": password},
            authenticated=False,
        )
        await self._tokens.begin_session(_token_response(payload))
        return self._store.identity

    async def register(self, username: str, email: str, password: str) -> Optional[Identity]:
        payload = await self._api.post(
            endpoints.REGISTER,
            {"username": username, "email": email, "password": password},
            authenticated=False,
        )
        await self._tokens.begin_session(_token_response(payload))
        return self._store.identity

    async def logout(self) -> None:
        """End the session locally; telling the server is best effort."""

        if self._store.credential is not None:
            try:
                await self._api.post(endpoints.LOGOUT, renew=False)
            except CrawlDashError as exc:
                LOGGER.warning("Server logout failed: %s", exc)
        await self._tokens.end_session(reason="logout")

    async def refresh(self, refresh_token: str) -> TokenResponse:
        """Exchange a refresh secret for a new access secret."""

        payload = await self._api.post(
            endpoints.REFRESH_TOKEN,
            {"refresh_token": refresh_token},
            authenticated=False,
        )
        return _token_response(payload)

    async def get_profile(self) -> Identity:
        """Fetch the server's profile without touching the stored identity."""

        payload = await self._api.get(endpoints.PROFILE)
        return Identity.model_validate(payload if isinstance(payload, dict) else {})

    async def update_profile(self, **changes: Any) -> Optional[Identity]:
        """Send ``changes``; the stored identity only follows what the server echoes back."""

        payload = await self._api.put(endpoints.PROFILE, changes)
        identity = _echoed_identity(payload)
        if identity is None:
            LOGGER.debug("Profile update returned no user record; stored identity unchanged")
            return self._store.identity
        self._store.set_identity(identity)
        return identity

    async def change_password(self, current_password: str, new_password: str) -> None:
        await self._api.put(
            endpoints.CHANGE_PASSWORD,
            {"current_password": current_password, "new_password": new_password},
        )

    async def validate_session(self) -> bool:
        """Confirm the stored credential against the server."""

        if self._store.credential is None:
            return False
        try:
            await self.get_profile()
        except CrawlDashError as exc:
            LOGGER.info("Session validation failed: %s", exc)
            return False
        return True

    def current_user(self) -> Optional[Identity]:
        return self._store.identity

    def is_authenticated(self) -> bool:
        credential = self._store.credential
        return credential is not None and not credential.is_expired()
