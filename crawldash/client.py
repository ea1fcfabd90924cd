"""Session context owning one instance of every core component."""

from __future__ import annotations

import logging
from typing import Optional

from crawldash.auth import TokenLifecycleManager
from crawldash.config import ClientSettings
from crawldash.events import EventBus
from crawldash.http import ApiClient, BaseHttpTransport, RequestsHttpTransport
from crawldash.models.credential import TokenResponse
from crawldash.network.connection import ConnectionManager, TransportFactory
from crawldash.network.transport.dummy import DummyTransport
from crawldash.network.transport.websocket import WebSocketTransport
from crawldash.services import AuthService, CrawlService
from crawldash.storage import CredentialStore

LOGGER = logging.getLogger(__name__)


class CrawlDashClient:
    """Wires store, bus, token manager, channel and REST services together.

    Transports are injectable so the whole graph can run in memory.
    """

    def __init__(
        self,
        settings: ClientSettings,
        *,
        http_transport: Optional[BaseHttpTransport] = None,
        channel_factory: Optional[TransportFactory] = None,
        store: Optional[CredentialStore] = None,
    ) -> None:
        self.settings = settings
        self.store = store if store is not None else CredentialStore(settings.state_path)
        self.bus = EventBus()
        self.tokens = TokenLifecycleManager(settings, self.store, self.bus, self._refresh)
        self.connection = ConnectionManager(
            settings,
            self.bus,
            self.store,
            channel_factory or self._default_channel_factory(settings),
        )
        self.api = ApiClient(
            http_transport
            or RequestsHttpTransport(str(settings.api_base_url), timeout_seconds=settings.http_timeout_seconds),
            self.store,
            self.tokens,
            retry_attempts=settings.api_retry_attempts,
            retry_delay_seconds=settings.api_retry_delay_seconds,
        )
        self.auth = AuthService(self.api, self.tokens, self.store)
        self.crawl = CrawlService(self.api)

    @staticmethod
    def _default_channel_factory(settings: ClientSettings) -> TransportFactory:
        if settings.transport == "dummy":
            LOGGER.debug("Push channel via %s", DummyTransport.__name__)
            return lambda url: DummyTransport(url)
        LOGGER.debug("Push channel via %s", WebSocketTransport.__name__)
        return lambda url: WebSocketTransport(
            url,
            ping_interval=settings.ws_ping_interval_seconds,
            ping_timeout=settings.ws_ping_timeout_seconds,
        )

    async def _refresh(self, refresh_token: str) -> TokenResponse:
        return await self.auth.refresh(refresh_token)

    async def start(self) -> bool:
        """Restore persisted state; returns whether a session is active."""

        self.store.load()
        resumed = await self.tokens.resume_session()
        if not resumed:
            LOGGER.info("No persisted session; waiting for login")
        return resumed

    async def stop(self) -> None:
        """Close the channel, stop renewal timers and release the HTTP transport."""

        await self.connection.close()
        await self.tokens.close()
        await self.api.close()
        LOGGER.info("Client stopped")

    async def __aenter__(self) -> CrawlDashClient:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()
