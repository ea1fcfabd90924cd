"""Process entrypoint wiring for the dashboard client."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from crawldash.client import CrawlDashClient
from crawldash.config import ClientSettings, get_settings

LOGGER = logging.getLogger(__name__)
_client: CrawlDashClient | None = None


async def setup(settings: Optional[ClientSettings] = None) -> CrawlDashClient:
    """Construct the client, restore any persisted session and return it."""

    global _client
    settings = settings or get_settings()
    LOGGER.debug("Initialising client for %s", settings.api_base_url)
    client = CrawlDashClient(settings)
    await client.start()
    _client = client
    return client


async def serve_forever(settings: Optional[ClientSettings] = None) -> None:
    """Run the client until the surrounding task is cancelled."""

    client = _client or await setup(settings)
    try:
        await asyncio.Future()  # block until cancelled
    except asyncio.CancelledError:
        LOGGER.info("Client shutdown requested")
        raise
    finally:
        await client.stop()
