"""Exception hierarchy shared by the session and channel core."""

from __future__ import annotations

from typing import Any, Optional


class CrawlDashError(RuntimeError):
    """Base error for client operations."""


class NotAuthenticatedError(CrawlDashError):
    """Raised when an authenticated call is attempted without a credential."""


class RenewalError(CrawlDashError):
    """Raised when the access credential could not be renewed; the session is over."""


class SessionEndedError(CrawlDashError):
    """Raised for queued requests that were abandoned because the session ended."""


class TransportError(CrawlDashError):
    """Raised when an HTTP request fails before a response is received."""


class ApiError(CrawlDashError):
    """Raised when the API answers with an error status."""

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        error: Optional[str] = None,
        code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.error = error
        self.code = code

    @classmethod
    def from_response(cls, status: int, data: Any) -> ApiError:
        body = data if isinstance(data, dict) else {}
        error = body.get("error") or f"HTTP {status}"
        message = body.get("message") or str(error)
        code = body.get("code")
        if status == 401:
            return UnauthorizedError(message, status=status, error=error, code=code)
        return ApiError(message, status=status, error=error, code=code)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(status={self.status!r}, error={self.error!r}, message={self.message!r})"


class UnauthorizedError(ApiError):
    """Raised when the API rejects the credential and no further retry is allowed."""


class MessageParseError(CrawlDashError):
    """Raised when an inbound channel frame is not a valid envelope."""


class ChannelClosed(CrawlDashError):
    """Raised by channel transports when the connection is closed."""

    def __init__(self, code: int, reason: str = "") -> None:
        super().__init__(f"Channel closed ({code}){': ' + reason if reason else ''}")
        self.code = code
        self.reason = reason
