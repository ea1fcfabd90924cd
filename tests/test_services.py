import pytest
from pydantic import ValidationError

from conftest import bearer, make_token
from crawldash.client import CrawlDashClient
from crawldash.errors import ApiError
from crawldash.events import SessionEnded, SessionStarted
from crawldash.http import endpoints
from crawldash.http.transport import HttpResponse
from crawldash.models.connection import ConnectionStatus
from crawldash.models.crawl import BulkActionRequest

USER = {"id": 1, "username": "ada", "email": "ada@example.com"}


@pytest.fixture
def client(settings, http, channels):
    return CrawlDashClient(settings, http_transport=http, channel_factory=channels)


@pytest.mark.asyncio
async def test_login_starts_session_and_channel(client, http, channels):
    token = make_token(3600)
    http.route("POST", endpoints.LOGIN, HttpResponse(200, {"token": token, "user": USER}))
    started = []
    client.bus.subscribe(SessionStarted, started.append)

    try:
        identity = await client.auth.login("ada", "secret")

        assert identity.username == "ada"
        assert http.requests[0].json == {"username": "ada", "password": "secret"}
        assert "Authorization" not in http.requests[0].headers
        assert client.auth.is_authenticated()
        assert client.auth.current_user() == identity
        assert started[0].identity == identity
        assert client.connection.status is ConnectionStatus.CONNECTED
        assert channels.latest.url.endswith(token)
    finally:
        await client.stop()


@pytest.mark.asyncio
async def test_login_rejects_malformed_token_response(client, http):
    http.route("POST", endpoints.LOGIN, HttpResponse(200, {"user": USER}))
    with pytest.raises(ApiError):
        await client.auth.login("ada", "secret")
    assert client.store.credential is None


@pytest.mark.asyncio
async def test_register_starts_session(client, http):
    http.route("POST", endpoints.REGISTER, HttpResponse(201, {"access_token": make_token(3600), "user": USER}))
    try:
        identity = await client.auth.register("ada", "ada@example.com", "secret")
        assert identity.email == "ada@example.com"
        assert http.requests[0].json["email"] == "ada@example.com"
        assert client.auth.is_authenticated()
    finally:
        await client.stop()


@pytest.mark.asyncio
async def test_logout_ends_session_even_when_server_fails(client, http, channels):
    http.route("POST", endpoints.LOGIN, HttpResponse(200, {"token": make_token(3600), "user": USER}))
    http.route("POST", endpoints.LOGOUT, HttpResponse(500, {"error": "internal"}))
    ended = []
    client.bus.subscribe(SessionEnded, ended.append)

    try:
        await client.auth.login("ada", "secret")
        await client.connection.subscribe_all_tasks()
        await client.auth.logout()

        assert len(http.calls("POST", endpoints.LOGOUT)) == 1
        assert ended[0].reason == "logout"
        assert client.store.credential is None
        assert not client.auth.is_authenticated()
        assert client.connection.status is ConnectionStatus.DISCONNECTED
        assert client.connection.subscriptions == frozenset()
        assert channels.latest.closed_with[0] == 1000
    finally:
        await client.stop()


@pytest.mark.asyncio
async def test_profile_operations_store_only_server_echo(client, http):
    http.route("POST", endpoints.LOGIN, HttpResponse(200, {"token": make_token(3600), "user": USER}))
    http.route("GET", endpoints.PROFILE, HttpResponse(200, dict(USER, username="ada.l")))
    http.route("PUT", endpoints.PROFILE, HttpResponse(200, {"user": dict(USER, email="new@example.com")}))
    http.route("PUT", endpoints.CHANGE_PASSWORD, HttpResponse(200, {"message": "ok"}))

    try:
        await client.auth.login("ada", "secret")
        profile = await client.auth.get_profile()
        assert profile.username == "ada.l"
        assert client.store.identity.username == "ada"

        updated = await client.auth.update_profile(email="new@example.com")
        assert updated.email == "new@example.com"
        assert client.store.identity.email == "new@example.com"

        await client.auth.change_password("secret", "better-secret")
        body = http.calls("PUT", endpoints.CHANGE_PASSWORD)[0].json
        assert body == {"current_password": "secret", "new_password": "better-secret"}
        assert await client.auth.validate_session() is True
        assert client.store.identity.username == "ada"
    finally:
        await client.stop()


@pytest.mark.asyncio
async def test_update_profile_without_user_echo_keeps_identity(client, http):
    http.route("POST", endpoints.LOGIN, HttpResponse(200, {"token": make_token(3600), "user": USER}))
    http.route("PUT", endpoints.PROFILE, HttpResponse(200, {"message": "profile updated"}))

    try:
        await client.auth.login("ada", "secret")
        result = await client.auth.update_profile(email="rejected@example.com", role="admin")

        assert http.calls("PUT", endpoints.PROFILE)[0].json == {"email": "rejected@example.com", "role": "admin"}
        assert result == client.store.identity
        assert client.store.identity.email == "ada@example.com"
        assert "role" not in client.store.identity.model_dump()
    finally:
        await client.stop()


@pytest.mark.asyncio
async def test_validate_session_without_or_with_failing_server(client, http):
    assert await client.auth.validate_session() is False

    http.route("POST", endpoints.LOGIN, HttpResponse(200, {"token": make_token(3600), "user": USER}))
    http.route("GET", endpoints.PROFILE, HttpResponse(500, {"error": "internal"}))
    try:
        await client.auth.login("ada", "secret")
        assert await client.auth.validate_session() is False
    finally:
        await client.stop()


@pytest.mark.asyncio
async def test_crawl_operations_hit_their_endpoints(client, http):
    token = make_token(3600)
    http.route("POST", endpoints.LOGIN, HttpResponse(200, {"token": token, "user": USER}))
    http.route("POST", endpoints.CRAWL, HttpResponse(201, {"id": 11, "status": "queued"}))
    http.route("GET", endpoints.CRAWL, HttpResponse(200, {"tasks": [], "total": 0}))
    http.route("GET", endpoints.task(11), HttpResponse(200, {"id": 11, "status": "running"}))
    http.route("PUT", endpoints.task_stop(11), HttpResponse(200, {"message": "stopped"}))
    http.route("GET", endpoints.task_results(11), HttpResponse(200, {"pages": 3}))
    http.route("GET", endpoints.task_links(11), HttpResponse(200, []))
    http.route("DELETE", endpoints.task(11), HttpResponse(204))
    for path in (endpoints.BULK_DELETE, endpoints.BULK_RERUN, endpoints.BULK_STOP, endpoints.BULK_EXPORT):
        http.route("POST", path, HttpResponse(200, {"affected": 2}))
    http.route("GET", endpoints.STATS, HttpResponse(200, {"total": 5}))
    http.route("GET", endpoints.USER_STATS, HttpResponse(200, {"total": 2}))

    crawl = client.crawl
    try:
        await client.auth.login("ada", "secret")

        assert await crawl.start_crawl("https://example.com", max_depth=2) == {"id": 11, "status": "queued"}
        assert http.calls("POST", endpoints.CRAWL)[0].json == {"url": "https://example.com", "max_depth": 2}
        await crawl.list_tasks(page=2, status="running")
        assert http.calls("GET", endpoints.CRAWL)[0].params == {"page": 2, "status": "running"}
        assert (await crawl.get_task_status(11))["status"] == "running"
        await crawl.stop_crawl(11)
        assert (await crawl.get_results(11)) == {"pages": 3}
        await crawl.get_links(11, link_type="external")
        assert http.calls("GET", endpoints.task_links(11))[0].params["type"] == "external"
        assert await crawl.delete_task(11) is None
        for action in (crawl.bulk_delete, crawl.bulk_rerun, crawl.bulk_stop, crawl.bulk_export):
            assert await action([11, 12]) == {"affected": 2}
        assert http.calls("POST", endpoints.BULK_STOP)[0].json == {"taskIds": [11, 12]}
        assert await crawl.get_stats() == {"total": 5}
        assert await crawl.get_user_stats() == {"total": 2}

        authenticated = [req for req in http.requests if req.path != endpoints.LOGIN]
        assert all(bearer(req) == token for req in authenticated)
    finally:
        await client.stop()


@pytest.mark.asyncio
async def test_health_and_version_need_no_session(client, http):
    http.route("GET", endpoints.HEALTH, HttpResponse(200, {"status": "healthy"}))
    http.route("GET", endpoints.VERSION, HttpResponse(200, {"version": "1.2.0"}))

    assert await client.crawl.health_check() == {"status": "healthy"}
    assert await client.crawl.get_version() == {"version": "1.2.0"}


def test_bulk_action_requires_task_ids():
    with pytest.raises(ValidationError):
        BulkActionRequest(task_ids=[])
