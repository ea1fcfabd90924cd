"""Persisted holder of the current credential pair and authenticated identity."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError

from crawldash.models.credential import Credential, Identity

LOGGER = logging.getLogger(__name__)

STORAGE_KEYS = {
    "token": "auth_token",
    "refresh": "refresh_token",
    "user": "auth_user",
}


class CredentialStore:
    """Pure data access for the credential and identity; no renewal policy.

    With a ``path`` the values survive restarts in a small JSON document under
    fixed keys; without one they live only in memory.
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = path
        self._credential: Optional[Credential] = None
        self._identity: Optional[Identity] = None

    @property
    def path(self) -> Optional[Path]:
        return self._path

    @property
    def credential(self) -> Optional[Credential]:
        return self._credential

    @property
    def identity(self) -> Optional[Identity]:
        return self._identity

    def load(self) -> Optional[Credential]:
        """Restore persisted state; the expiry is re-derived from the access secret."""

        data = self._read()
        token = data.get(STORAGE_KEYS["token"])
        if isinstance(token, str) and token:
            refresh = data.get(STORAGE_KEYS["refresh"])
            self._credential = Credential.issue(token, refresh if isinstance(refresh, str) and refresh else None)
        else:
            self._credential = None
        user = data.get(STORAGE_KEYS["user"])
        self._identity = None
        if isinstance(user, dict):
            try:
                self._identity = Identity.model_validate(user)
            except ValidationError:
                LOGGER.warning("Ignoring malformed persisted identity in %s", self._path)
        return self._credential

    def set_credential(self, credential: Credential) -> None:
        self._credential = credential
        self._persist()

    def set_identity(self, identity: Optional[Identity]) -> None:
        self._identity = identity
        self._persist()

    def clear(self) -> None:
        self._credential = None
        self._identity = None
        self._persist()

    def _read(self) -> Dict[str, Any]:
        path = self._path
        if path is None or not path.is_file():
            return {}
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            LOGGER.warning("Discarding unreadable session state at %s", path, exc_info=True)
            return {}
        return raw if isinstance(raw, dict) else {}

    def _persist(self) -> None:
        path = self._path
        if path is None:
            return
        data: Dict[str, Any] = {}
        if self._credential is not None:
            data[STORAGE_KEYS["token"]] = self._credential.access_token
            if self._credential.refresh_token:
                data[STORAGE_KEYS["refresh"]] = self._credential.refresh_token
        if self._identity is not None:
            data[STORAGE_KEYS["user"]] = self._identity.model_dump(mode="json")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp = path.with_suffix(path.suffix + ".tmp")
            tmp.write_text(json.dumps(data), encoding="utf-8")
            os.replace(tmp, path)
        except OSError:
            # in-memory state stays authoritative for this process
            LOGGER.warning("Failed to persist session state to %s", path, exc_info=True)
