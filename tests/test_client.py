import asyncio
import json

import pytest

from conftest import make_settings, make_token
from crawldash import bootstrap
from crawldash.client import CrawlDashClient
from crawldash.http import RequestsHttpTransport, endpoints
from crawldash.http.transport import HttpResponse
from crawldash.models.connection import ConnectionStatus
from crawldash.network import DummyTransport, WebSocketTransport
from crawldash.network.transport import websocket as websocket_transport


@pytest.mark.asyncio
async def test_start_resumes_persisted_session(tmp_path, http, channels):
    path = tmp_path / "session.json"
    token = make_token(3600)
    path.write_text(json.dumps({"auth_token": token, "auth_user": {"id": 2, "username": "lin"}}), encoding="utf-8")
    settings = make_settings(state_path=path)

    async with CrawlDashClient(settings, http_transport=http, channel_factory=channels) as client:
        assert client.auth.is_authenticated()
        assert client.auth.current_user().username == "lin"
        assert client.connection.status is ConnectionStatus.CONNECTED
        assert channels.latest.url.endswith(token)

    assert http.closed
    assert client.connection.status is ConnectionStatus.DISCONNECTED


@pytest.mark.asyncio
async def test_start_renews_expired_persisted_session(tmp_path, http, channels):
    path = tmp_path / "session.json"
    path.write_text(json.dumps({"auth_token": make_token(-30), "refresh_token": "r1"}), encoding="utf-8")
    fresh = make_token(3600, jti="fresh")
    http.route("POST", endpoints.REFRESH_TOKEN, HttpResponse(200, {"access_token": fresh, "refresh_token": "r2"}))

    client = CrawlDashClient(make_settings(state_path=path), http_transport=http, channel_factory=channels)
    try:
        assert await client.start() is True
        assert client.store.credential.access_token == fresh
        persisted = json.loads(path.read_text(encoding="utf-8"))
        assert persisted["auth_token"] == fresh
        assert persisted["refresh_token"] == "r2"
        assert channels.latest.url.endswith(fresh)
    finally:
        await client.stop()


@pytest.mark.asyncio
async def test_start_without_session_waits_for_login(http, channels):
    client = CrawlDashClient(make_settings(), http_transport=http, channel_factory=channels)
    try:
        assert await client.start() is False
        assert channels.created == []
        assert client.connection.status is ConnectionStatus.DISCONNECTED
    finally:
        await client.stop()


@pytest.mark.asyncio
async def test_default_transports_follow_settings():
    client = CrawlDashClient(make_settings(transport="websocket"))
    dummy = CrawlDashClient(make_settings(transport="dummy"))
    try:
        assert isinstance(client.api._transport, RequestsHttpTransport)
        assert isinstance(client.connection._transport_factory("ws://localhost/ws"), WebSocketTransport)
        assert isinstance(dummy.connection._transport_factory("memory://"), DummyTransport)
    finally:
        await client.stop()
        await dummy.stop()


@pytest.mark.asyncio
async def test_websocket_channel_uses_protocol_pings_from_settings():
    client = CrawlDashClient(make_settings(transport="websocket", ws_ping_interval_seconds=5, ws_ping_timeout_seconds=7))
    idle = CrawlDashClient(make_settings(transport="websocket", ws_ping_interval_seconds=None))
    try:
        transport = client.connection._transport_factory("ws://localhost/ws")
        assert (transport.ping_interval, transport.ping_timeout) == (5, 7)
        assert idle.connection._transport_factory("ws://localhost/ws").ping_interval is None
    finally:
        await client.stop()
        await idle.stop()



@pytest.mark.asyncio
async def test_websocket_transport_hands_ping_settings_to_the_library(monkeypatch):
    opened = []

    async def fake_connect(url, **kwargs):
        opened.append((url, kwargs))
        return object()

    monkeypatch.setattr(websocket_transport.websockets, "connect", fake_connect)
    await WebSocketTransport("ws://localhost/ws?token=t", ping_interval=5, ping_timeout=7).connect()

    assert opened == [("ws://localhost/ws?token=t", {"ping_interval": 5, "ping_timeout": 7})]


@pytest.mark.asyncio
async def test_bootstrap_serves_until_cancelled(monkeypatch):
    monkeypatch.setattr(bootstrap, "_client", None)
    settings = make_settings()

    task = asyncio.create_task(bootstrap.serve_forever(settings))
    await asyncio.sleep(0.01)
    client = bootstrap._client
    assert isinstance(client, CrawlDashClient)
    assert client.settings is settings

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    assert client.connection.status is ConnectionStatus.DISCONNECTED
