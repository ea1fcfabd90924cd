"""Access/refresh credential pair and the identity attached to it."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional

import jwt
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

LOGGER = logging.getLogger(__name__)


def decode_expiry(access_token: str) -> Optional[float]:
    """Return the ``exp`` claim of a JWT access secret, or ``None`` when unreadable.

    The signature is not verified: the client only needs the expiry to plan
    renewal, the server remains the authority on validity.
    """

    try:
        claims = jwt.decode(access_token, options={"verify_signature": False})
    except jwt.PyJWTError:
        LOGGER.debug("Access credential has no decodable claims")
        return None
    exp = claims.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return None
    return float(exp)


@dataclass(frozen=True)
class Credential:
    """Access secret, optional refresh secret and the expiry derived at assignment."""

    access_token: str = field(repr=False)
    refresh_token: Optional[str] = field(default=None, repr=False)
    expires_at: Optional[float] = None

    @classmethod
    def issue(cls, access_token: str, refresh_token: Optional[str] = None) -> Credential:
        return cls(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_at=decode_expiry(access_token),
        )

    def remaining(self, now: Optional[float] = None) -> float:
        """Seconds until expiry; unknown expiry counts as already expired."""

        if self.expires_at is None:
            return 0.0
        current = time.time() if now is None else now
        return self.expires_at - current

    def is_expired(self, now: Optional[float] = None) -> bool:
        return self.remaining(now) <= 0


class Identity(BaseModel):
    """Authenticated user record as returned by the API."""

    model_config = ConfigDict(extra="allow")

    id: Optional[int] = None
    username: Optional[str] = None
    email: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.username or self.email or "unknown"


class TokenResponse(BaseModel):
    """Response body of login, registration and renewal calls."""

    model_config = ConfigDict(extra="ignore")

    access_token: str = Field(validation_alias=AliasChoices("access_token", "token"))
    refresh_token: Optional[str] = None
    token_type: Optional[str] = None
    expires_in: Optional[int] = None
    user: Optional[Identity] = None

    @classmethod
    def from_payload(cls, payload: Any) -> TokenResponse:
        return cls.model_validate(payload if isinstance(payload, dict) else {})
