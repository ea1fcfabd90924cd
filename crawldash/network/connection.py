"""Push channel lifecycle: connect, backoff reconnects, heartbeat, topics and dispatch."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from crawldash.config import ClientSettings
from crawldash.errors import ChannelClosed, MessageParseError
from crawldash.events import (
    KIND_EVENTS,
    ChannelConnected,
    ChannelDisconnected,
    ChannelError,
    ChannelOffline,
    ConnectionStateChanged,
    CredentialRenewed,
    EventBus,
    MessageReceived,
    SessionEnded,
    SessionStarted,
)
from crawldash.models.connection import ConnectionState, ConnectionStatus
from crawldash.models.credential import Credential
from crawldash.models.messages import (
    ALL_TASKS_TOPIC,
    build_heartbeat,
    build_subscription,
    parse_inbound,
    task_topic,
)
from crawldash.network.transport.base import NORMAL_CLOSURE, BaseTransport
from crawldash.storage import CredentialStore

LOGGER = logging.getLogger(__name__)

TransportFactory = Callable[[str], BaseTransport]


class HeartbeatTimeout(ConnectionError):
    """Raised internally when the peer has been silent for too long."""


def build_channel_url(base_url: str, access_token: str, *, param: str = "token") -> str:
    """Embed the access secret into the channel URL as a query parameter."""

    parts = urlsplit(base_url)
    query = [(key, value) for key, value in parse_qsl(parts.query, keep_blank_values=True) if key != param]
    query.append((param, access_token))
    return urlunsplit((parts.scheme, parts.netloc, parts.path, urlencode(query), parts.fragment))


class ConnectionManager:
    """Owns the single push channel and its subscription set.

    Session events arriving on the bus open and close the channel; inbound
    frames are re-published on the bus for consumers, who only ever touch
    the subscription set.
    """

    def __init__(
        self,
        settings: ClientSettings,
        bus: EventBus,
        store: CredentialStore,
        transport_factory: TransportFactory,
    ) -> None:
        self._settings = settings
        self._bus = bus
        self._store = store
        self._transport_factory = transport_factory
        self._state = ConnectionState()
        self._subscriptions: set[str] = set()
        self._transport: Optional[BaseTransport] = None
        self._recv_task: Optional[asyncio.Task[None]] = None
        self._heartbeat_task: Optional[asyncio.Task[None]] = None
        self._reconnect_task: Optional[asyncio.Task[None]] = None
        self._generation = 0
        self._closing = False
        self._auto_connect = False
        self._last_inbound_at = 0.0
        self._unsubscribers = [
            bus.subscribe(SessionStarted, self._on_session_started),
            bus.subscribe(SessionEnded, self._on_session_ended),
            bus.subscribe(CredentialRenewed, self._on_credential_renewed),
        ]

    # Introspection

    @property
    def state(self) -> ConnectionState:
        return self._state.snapshot()

    @property
    def status(self) -> ConnectionStatus:
        return self._state.status

    @property
    def subscriptions(self) -> frozenset[str]:
        return frozenset(self._subscriptions)

    def backoff_delay(self, attempt: int) -> float:
        """Delay before reconnect attempt ``attempt`` (0-indexed)."""

        base = float(self._settings.reconnect_base_delay_seconds)
        ceiling = float(self._settings.reconnect_max_delay_seconds)
        return min(base * (2 ** attempt), ceiling)

    # Lifecycle

    async def connect(self) -> bool:
        """Open the channel with the current credential.

        Refused while a connect is in progress or the channel is already up,
        and when no valid credential exists.
        """

        if self._state.status in (ConnectionStatus.CONNECTING, ConnectionStatus.CONNECTED):
            LOGGER.debug("Connect refused; channel is %s", self._state.status.value)
            return False
        credential = self._store.credential
        if credential is None or credential.is_expired():
            LOGGER.info("No valid credential; push channel stays %s", self._state.status.value)
            return False
        self._auto_connect = True
        self._cancel_reconnect()
        return await self._open(credential)

    async def reconnect(self) -> bool:
        """Explicitly restart the channel, resetting the attempt counter."""

        await self.disconnect(reason="Client reconnect")
        return await self.connect()

    async def disconnect(self, reason: str = "Client disconnect") -> None:
        """Close the channel with a normal closure; the subscription set is kept."""

        self._auto_connect = False
        self._closing = True
        try:
            self._cancel_reconnect()
            transport = self._teardown()
            self._state.attempt_count = 0
            if transport is not None:
                with contextlib.suppress(Exception):
                    await transport.close(NORMAL_CLOSURE, reason)
                await self._bus.publish(ChannelDisconnected(code=NORMAL_CLOSURE, reason=reason))
            if self._state.status is not ConnectionStatus.DISCONNECTED:
                await self._transition(ConnectionStatus.DISCONNECTED)
        finally:
            self._closing = False

    async def close(self) -> None:
        """Shut down at process exit and detach from the bus."""

        await self.disconnect(reason="Client shutdown")
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

    # Topics

    async def subscribe(self, topic: str) -> None:
        if topic in self._subscriptions:
            return
        self._subscriptions.add(topic)
        if self._state.is_connected:
            await self.send(build_subscription(topic))

    async def unsubscribe(self, topic: str) -> None:
        if topic not in self._subscriptions:
            return
        self._subscriptions.discard(topic)
        if self._state.is_connected:
            await self.send(build_subscription(topic, subscribe=False))

    async def subscribe_task(self, task_id: int) -> None:
        await self.subscribe(task_topic(task_id))

    async def unsubscribe_task(self, task_id: int) -> None:
        await self.unsubscribe(task_topic(task_id))

    async def subscribe_all_tasks(self) -> None:
        await self.subscribe(ALL_TASKS_TOPIC)

    async def unsubscribe_all_tasks(self) -> None:
        await self.unsubscribe(ALL_TASKS_TOPIC)

    def clear_subscriptions(self) -> None:
        self._subscriptions.clear()

    async def send(self, message: dict[str, Any]) -> bool:
        """Send a frame if the channel is up; returns whether it was written."""

        transport = self._transport
        if transport is None or not self._state.is_connected:
            return False
        try:
            await transport.send(message)
        except Exception as exc:  # noqa: BLE001
            LOGGER.warning("Failed to send %s frame: %s", message.get("type"), exc)
            return False
        return True

    # Session events

    async def _on_session_started(self, event: SessionStarted) -> None:
        self._state.attempt_count = 0
        if self._state.status in (ConnectionStatus.RECONNECTING, ConnectionStatus.FAILED):
            self._cancel_reconnect()
        await self.connect()

    async def _on_session_ended(self, event: SessionEnded) -> None:
        await self.disconnect(reason="Session ended")
        self.clear_subscriptions()

    async def _on_credential_renewed(self, event: CredentialRenewed) -> None:
        # the live channel keeps the secret it was opened with
        if self._auto_connect and self._state.status is ConnectionStatus.DISCONNECTED:
            LOGGER.info("Credential renewed; retrying push channel")
            await self.connect()

    # Internals

    async def _open(self, credential: Credential) -> bool:
        await self._transition(ConnectionStatus.CONNECTING)
        url = build_channel_url(str(self._settings.ws_url), credential.access_token, param=self._settings.ws_token_param)
        transport = self._transport_factory(url)
        opening = self._generation
        try:
            await asyncio.wait_for(transport.connect(), timeout=float(self._settings.connect_timeout_seconds))
        except asyncio.CancelledError:
            with contextlib.suppress(Exception):
                await transport.close()
            raise
        except Exception as exc:  # noqa: BLE001
            if isinstance(exc, asyncio.TimeoutError):
                exc = ConnectionError("Connection timeout")
            LOGGER.warning("Push channel connect failed (attempt %s): %s", self._state.attempt_count, exc)
            with contextlib.suppress(Exception):
                await transport.close()
            if opening == self._generation:
                await self._channel_lost(exc, code=None)
            return False

        if opening != self._generation or self._state.status is not ConnectionStatus.CONNECTING:
            # disconnected while the handshake was in flight
            with contextlib.suppress(Exception):
                await transport.close(NORMAL_CLOSURE, "Client disconnect")
            return False
        self._transport = transport
        self._generation += 1
        generation = self._generation
        loop = asyncio.get_running_loop()
        self._last_inbound_at = loop.time()
        self._state.last_connected_at = datetime.now(timezone.utc)
        self._state.last_error = None
        self._state.transition(ConnectionStatus.CONNECTED)
        self._start_heartbeat(generation)
        if not await self._replay_subscriptions(transport):
            return False
        self._state.attempt_count = 0
        LOGGER.info("Push channel connected (%s topic(s) subscribed)", len(self._subscriptions))
        await self._bus.publish(ConnectionStateChanged(state=self.state))
        await self._bus.publish(ChannelConnected(state=self.state))
        if generation == self._generation:
            self._recv_task = asyncio.create_task(self._receive_loop(generation, transport), name="channel-recv")
        return True

    async def _replay_subscriptions(self, transport: BaseTransport) -> bool:
        for topic in list(self._subscriptions):
            try:
                await transport.send(build_subscription(topic))
            except Exception as exc:  # noqa: BLE001
                LOGGER.warning("Failed to resubscribe %s: %s", topic, exc)
                await self._channel_lost(exc, code=getattr(exc, "code", None))
                return False
        return True

    async def _receive_loop(self, generation: int, transport: BaseTransport) -> None:
        loop = asyncio.get_running_loop()
        while generation == self._generation:
            try:
                raw = await transport.receive()
            except asyncio.CancelledError:
                raise
            except ChannelClosed as exc:
                if generation == self._generation:
                    await self._channel_lost(exc, code=exc.code, reason=exc.reason)
                return
            except Exception as exc:  # noqa: BLE001
                if generation == self._generation:
                    await self._channel_lost(exc, code=None)
                return
            self._last_inbound_at = loop.time()
            await self._dispatch(raw)

    async def _dispatch(self, raw: Any) -> None:
        try:
            message = parse_inbound(raw)
        except MessageParseError as exc:
            LOGGER.warning("Discarding malformed channel message: %s", exc)
            await self._bus.publish(ChannelError(kind="parse_error", detail=str(exc)))
            return
        await self._bus.publish(MessageReceived(message=message))
        event_type = KIND_EVENTS.get(message.kind)
        if event_type is None:
            LOGGER.debug("Unhandled channel message type %s", message.kind)
            return
        await self._bus.publish(event_type(message=message))

    def _start_heartbeat(self, generation: int) -> None:
        interval = float(self._settings.heartbeat_interval_seconds)
        if interval <= 0:
            return
        self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(generation, interval), name="channel-heartbeat")

    async def _heartbeat_loop(self, generation: int, interval: float) -> None:
        timeout = float(self._settings.heartbeat_timeout_seconds)
        loop = asyncio.get_running_loop()
        while generation == self._generation:
            await asyncio.sleep(interval)
            if generation != self._generation:
                return
            silent_for = loop.time() - self._last_inbound_at
            if timeout > 0 and silent_for > interval + timeout:
                LOGGER.warning("No inbound traffic for %.1fs; treating push channel as lost", silent_for)
                await self._channel_lost(HeartbeatTimeout(f"No heartbeat for {silent_for:.1f}s"), code=None)
                return
            await self.send(build_heartbeat())

    async def _channel_lost(self, exc: BaseException, *, code: Optional[int], reason: str = "") -> None:
        if self._closing:
            return
        transport = self._teardown()
        if transport is not None:
            with contextlib.suppress(Exception):
                await transport.close()
        self._state.last_error = str(exc) or type(exc).__name__
        if self._state.status is ConnectionStatus.CONNECTED:
            await self._bus.publish(ChannelDisconnected(code=code, reason=reason))
        if code == NORMAL_CLOSURE:
            LOGGER.info("Push channel closed normally; not reconnecting")
            self._auto_connect = False
            await self._transition(ConnectionStatus.DISCONNECTED)
            return
        await self._schedule_reconnect()

    async def _schedule_reconnect(self) -> None:
        if self._store.credential is None:
            await self._transition(ConnectionStatus.DISCONNECTED)
            return
        ceiling = int(self._settings.reconnect_max_attempts)
        if self._state.attempt_count >= ceiling:
            LOGGER.error("Push channel offline after %s reconnect attempts", self._state.attempt_count)
            await self._transition(ConnectionStatus.FAILED)
            await self._bus.publish(ChannelOffline(attempts=self._state.attempt_count, error=self._state.last_error))
            return
        delay = self.backoff_delay(self._state.attempt_count)
        self._state.attempt_count += 1
        await self._transition(ConnectionStatus.RECONNECTING)
        LOGGER.info(
            "Scheduling reconnect in %.2fs (attempt %s/%s)",
            delay,
            self._state.attempt_count,
            ceiling,
        )
        self._reconnect_task = asyncio.create_task(self._reconnect_after(delay), name="channel-reconnect")

    async def _reconnect_after(self, delay: float) -> None:
        await asyncio.sleep(delay)
        self._reconnect_task = None
        credential = self._store.credential
        if credential is None or credential.is_expired():
            LOGGER.info("Credential unavailable for reconnect; waiting for renewal")
            self._state.last_error = "Credential expired"
            await self._transition(ConnectionStatus.DISCONNECTED)
            return
        await self._open(credential)

    def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        self._reconnect_task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    def _teardown(self) -> Optional[BaseTransport]:
        """Stop loops bound to the current transport and detach it."""

        self._generation += 1
        current = asyncio.current_task()
        for task in (self._heartbeat_task, self._recv_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._heartbeat_task = None
        self._recv_task = None
        transport, self._transport = self._transport, None
        return transport

    async def _transition(self, status: ConnectionStatus) -> None:
        if self._state.status is status:
            return
        self._state.transition(status)
        await self._bus.publish(ConnectionStateChanged(state=self.state))
