"""Credential renewal policy: proactive polling, single-flight renewal and request replay.

The in-flight renewal task is the one serialization point for the credential:
every caller that needs a fresh access secret awaits the same task, and
requests that were rejected while it runs are parked as continuations and
replayed in enqueue order once it resolves.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections import deque
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Deque, Optional

from crawldash.config import ClientSettings
from crawldash.errors import NotAuthenticatedError, RenewalError, SessionEndedError
from crawldash.events import CredentialRenewed, EventBus, SessionEnded, SessionStarted
from crawldash.models.credential import Credential, TokenResponse
from crawldash.storage import CredentialStore

LOGGER = logging.getLogger(__name__)

Refresher = Callable[[str], Awaitable[TokenResponse]]
Replay = Callable[[str], Awaitable[Any]]


@dataclass
class PendingRequest:
    """A suspended call waiting for a fresh access secret."""

    replay: Replay
    future: asyncio.Future[Any]


class TokenLifecycleManager:
    """Owns renewal of the access credential held in the :class:`CredentialStore`."""

    def __init__(
        self,
        settings: ClientSettings,
        store: CredentialStore,
        bus: EventBus,
        refresher: Refresher,
    ) -> None:
        self._settings = settings
        self._store = store
        self._bus = bus
        self._refresher = refresher
        self._queue: Deque[PendingRequest] = deque()
        self._inflight: Optional[asyncio.Task[Credential]] = None
        self._poll_task: Optional[asyncio.Task[None]] = None
        self._replays: set[asyncio.Task[Any]] = set()
        self._epoch = 0
        self.renewal_count = 0

    @property
    def threshold(self) -> float:
        return float(self._settings.token_refresh_threshold_seconds)

    @property
    def renewal_in_flight(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    def pending_count(self) -> int:
        return len(self._queue)

    # Session boundaries

    async def begin_session(self, response: TokenResponse) -> Credential:
        """Adopt the credential from a login or registration response."""

        credential = Credential.issue(response.access_token, response.refresh_token)
        self._store.set_credential(credential)
        if response.user is not None:
            self._store.set_identity(response.user)
        LOGGER.info("Session started for %s", self._store.identity.display_name if self._store.identity else "unknown")
        self.schedule_proactive_renewal(credential)
        await self._bus.publish(SessionStarted(identity=self._store.identity))
        return credential

    async def resume_session(self) -> bool:
        """Continue a session restored from persisted state; returns whether one is active."""

        credential = self._store.credential
        if credential is None:
            return False
        if credential.is_expired():
            if not credential.refresh_token:
                LOGGER.info("Persisted credential expired and cannot be renewed; clearing")
                self._store.clear()
                return False
            try:
                credential = await self.renew()
            except (RenewalError, SessionEndedError):
                return False
        else:
            self.schedule_proactive_renewal(credential)
        LOGGER.info("Resumed persisted session")
        await self._bus.publish(SessionStarted(identity=self._store.identity))
        return True

    async def end_session(self, reason: str = "logout", error: Optional[str] = None) -> None:
        """Cancel timers, abandon queued requests and clear the credential."""

        self._epoch += 1
        await self._cancel_timers()
        self._inflight = None
        self._reject_queue(reason)
        self._store.clear()
        LOGGER.info("Session ended (%s)", reason)
        await self._bus.publish(SessionEnded(reason=reason, error=error))

    async def close(self) -> None:
        """Stop background work at process shutdown without ending the session."""

        self._epoch += 1
        await self._cancel_timers()
        self._inflight = None
        self._reject_queue("client closed")

    # Renewal

    async def renew(self) -> Credential:
        """Renew the access credential, joining a renewal that is already in flight."""

        if self._store.credential is None and not self.renewal_in_flight:
            raise NotAuthenticatedError("No active session to renew")
        return await asyncio.shield(self._ensure_renewal())

    def _ensure_renewal(self) -> asyncio.Task[Credential]:
        task = self._inflight
        if task is None or task.done():
            task = asyncio.create_task(self._renew_once(self._epoch), name="credential-renewal")
            task.add_done_callback(self._log_renewal_outcome)
            self._inflight = task
        return task

    async def _renew_once(self, epoch: int) -> Credential:
        try:
            current = self._store.credential
            if current is None:
                raise SessionEndedError("Session ended before renewal")
            if not current.refresh_token:
                raise RenewalError("No refresh token available")
            self.renewal_count += 1
            LOGGER.info("Renewing access credential")
            try:
                response = await self._refresher(current.refresh_token)
            except asyncio.CancelledError:
                raise
            except Exception as exc:  # noqa: BLE001
                if epoch != self._epoch:
                    raise SessionEndedError("Session ended during renewal") from exc
                raise RenewalError(f"Credential renewal failed: {exc}") from exc
            if epoch != self._epoch:
                raise SessionEndedError("Session ended during renewal")
            credential = Credential.issue(response.access_token, response.refresh_token or current.refresh_token)
        except RenewalError as exc:
            # a session that already ended must not be ended twice
            if epoch == self._epoch:
                await self._fail_session(exc)
            raise
        self._store.set_credential(credential)
        if response.user is not None:
            self._store.set_identity(response.user)
        if self._inflight is asyncio.current_task():
            self._inflight = None
        self._release_queue(credential.access_token)
        self.schedule_proactive_renewal(credential, renewed=True)
        await self._bus.publish(CredentialRenewed(credential=credential))
        return credential

    async def _fail_session(self, exc: Exception) -> None:
        LOGGER.error("Access credential renewal failed; ending session: %s", exc)
        if self._inflight is asyncio.current_task():
            self._inflight = None
        await self.end_session(reason="renewal_failed", error=str(exc))

    def _log_renewal_outcome(self, task: asyncio.Task[Credential]) -> None:
        if self._inflight is task:
            self._inflight = None
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            LOGGER.debug("Renewal task finished with %s", type(exc).__name__)

    # Requests rejected with an expired credential

    def on_unauthorized(self, replay: Replay, *, failed_token: Optional[str] = None) -> asyncio.Future[Any]:
        """Park ``replay`` until a fresh access secret is available.

        The returned future resolves with the replay's result, or fails with
        :class:`SessionEndedError` when the renewal fails or the session ends.
        """

        loop = asyncio.get_running_loop()
        future: asyncio.Future[Any] = loop.create_future()
        current = self._store.credential
        if current is None:
            future.set_exception(NotAuthenticatedError("No active session"))
            return future
        entry = PendingRequest(replay=replay, future=future)
        if failed_token is not None and current.access_token != failed_token and not self.renewal_in_flight:
            # already renewed since this call was issued
            self._dispatch(entry, current.access_token)
            return future
        self._queue.append(entry)
        self._ensure_renewal()
        return future

    def _release_queue(self, access_token: str) -> None:
        pending, self._queue = self._queue, deque()
        if pending:
            LOGGER.info("Replaying %s request(s) with renewed credential", len(pending))
        for entry in pending:
            self._dispatch(entry, access_token)

    def _dispatch(self, entry: PendingRequest, access_token: str) -> None:
        if entry.future.done():
            return
        task = asyncio.create_task(entry.replay(access_token), name="credential-replay")
        self._replays.add(task)

        def _settle(done: asyncio.Task[Any]) -> None:
            self._replays.discard(done)
            future = entry.future
            if done.cancelled():
                future.cancel()
                return
            exc = done.exception()
            if future.done():
                return
            if exc is not None:
                future.set_exception(exc)
            else:
                future.set_result(done.result())

        task.add_done_callback(_settle)

    def _reject_queue(self, reason: str) -> None:
        pending, self._queue = self._queue, deque()
        for entry in pending:
            if not entry.future.done():
                entry.future.set_exception(SessionEndedError(f"Session ended: {reason}"))

    # Proactive renewal

    def needs_renewal(self, credential: Credential, now: Optional[float] = None) -> bool:
        """Whether ``credential`` is inside the renewal window.

        An expired credential still qualifies while it carries a refresh
        secret. A secret without a readable expiry never does.
        """

        if credential.expires_at is None:
            return False
        remaining = credential.remaining(now)
        if remaining <= 0:
            return bool(credential.refresh_token)
        return remaining < self.threshold

    def schedule_proactive_renewal(self, credential: Optional[Credential] = None, *, renewed: bool = False) -> None:
        """Evaluate the assigned credential and keep the renewal poll running.

        A credential that was itself produced by a renewal is only re-checked
        on the next poll, so short-lived servers cannot cause a renewal loop.
        """

        credential = credential or self._store.credential
        if credential is None:
            return
        if not renewed and self.needs_renewal(credential) and not self.renewal_in_flight:
            LOGGER.info("Credential expires in %.0fs; renewing in background", credential.remaining())
            self._ensure_renewal()
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.create_task(self._poll_loop(), name="credential-renewal-poll")

    async def check_credential(self) -> Optional[Credential]:
        """Renew now when the current credential is inside the renewal window."""

        credential = self._store.credential
        if credential is None:
            return None
        if credential.expires_at is not None and credential.is_expired() and not credential.refresh_token:
            LOGGER.warning("Access credential expired and cannot be renewed; ending session")
            await self.end_session(reason="credential_expired", error="Access credential expired")
            return None
        if not self.needs_renewal(credential):
            return None
        LOGGER.info("Credential expires in %.0fs; renewing proactively", credential.remaining())
        return await self.renew()

    async def _poll_loop(self) -> None:
        interval = float(self._settings.token_poll_interval_seconds)
        while True:
            await asyncio.sleep(interval)
            if self._store.credential is None:
                return
            try:
                await self.check_credential()
            except asyncio.CancelledError:
                raise
            except (RenewalError, SessionEndedError):
                return
            except Exception:  # noqa: BLE001
                LOGGER.exception("Proactive renewal check failed")

    async def _cancel_timers(self) -> None:
        # an in-flight renewal is left to finish; the epoch bump discards its result
        task = self._poll_task
        self._poll_task = None
        if task is None or task is asyncio.current_task() or task.done():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
