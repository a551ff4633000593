"""Tests for scanner/appliance/client.py against an in-process mock appliance."""

import hashlib
import hmac

import pytest
from aiohttp import web
from aiohttp import test_utils

from lanscan.core.exceptions import ApplianceApiError, ApplianceTransportError, SessionError
from lanscan.scanner.appliance.client import (
    ApplianceClient,
    LanHost,
    compute_password,
    lan_host_to_record,
)
from lanscan.scanner.models import UNRESOLVED_HOSTNAME

APP_TOKEN = "secret"
CHALLENGE = "abc"
SESSION_TOKEN = "session-xyz"

LAN_HOSTS = [
    {
        "primary_name": "Living room TV",
        "l2ident": {"id": "8C:79:F5:00:01:00", "type": "mac_address"},
        "l3connectivities": [
            {"addr": "fe80::1", "af": "ipv6", "active": True},
            {"addr": "192.168.1.100", "af": "ipv4", "active": True},
        ],
    },
    {
        "primary_name": "old-phone",
        "l2ident": {"id": "AA:BB:CC:00:00:01", "type": "mac_address"},
        "l3connectivities": [{"addr": "192.168.1.50", "af": "ipv4", "active": False}],
    },
    {
        "primary_name": "printer",
        "l2ident": {"id": "3C:D9:2B:00:00:07", "type": "mac_address"},
        "l3connectivities": [
            {"addr": "192.168.1.60", "af": "ipv4", "active": False},
            {"addr": "192.168.1.7", "af": "ipv4", "active": True},
        ],
    },
    {"primary_name": "ghost"},
]


def ok(result):
    return web.json_response({"success": True, "result": result})


def failure(error_code, msg, status=200):
    return web.json_response({"success": False, "error_code": error_code, "msg": msg}, status=status)


class MockAppliance:
    """Minimal Freebox login and LAN browser API."""

    def __init__(self):
        self.track_status = "pending"
        self.authorize_bodies = []
        self.session_bodies = []
        self.app = web.Application()
        self.app.router.add_post("/api/v4/login/authorize/", self.authorize)
        self.app.router.add_get("/api/v4/login/authorize/{track_id}", self.track)
        self.app.router.add_get("/api/v4/login/", self.login)
        self.app.router.add_post("/api/v4/login/session/", self.session)
        self.app.router.add_get("/api/v4/lan/browser/pub/", self.lan_browser)
        self.app.router.add_get("/api/v4/broken/", self.broken)

    async def authorize(self, request):
        self.authorize_bodies.append(await request.json())
        return ok({"app_token": APP_TOKEN, "track_id": 5})

    async def track(self, request):
        if request.match_info["track_id"] != "5":
            return failure("invalid_request", "unknown track id", status=404)
        return ok({"status": self.track_status, "challenge": CHALLENGE})

    async def login(self, request):
        return ok({"logged_in": False, "challenge": CHALLENGE})

    async def session(self, request):
        body = await request.json()
        self.session_bodies.append(body)
        expected = hmac.new(APP_TOKEN.encode(), CHALLENGE.encode(), hashlib.sha1).hexdigest()
        if body.get("password") != expected:
            return failure("invalid_token", "The app token you are trying to use is invalid", status=403)
        return ok({"session_token": SESSION_TOKEN, "challenge": CHALLENGE})

    async def lan_browser(self, request):
        if request.headers.get("X-Fbx-App-Auth") != SESSION_TOKEN:
            return failure("auth_required", "Invalid session token, or no session token sent", status=403)
        return ok(LAN_HOSTS)

    async def broken(self, request):
        return web.Response(text="<html>not json</html>", content_type="text/html")


@pytest.fixture
async def appliance():
    mock = MockAppliance()
    server = test_utils.TestServer(mock.app)
    await server.start_server()
    mock.base_url = str(server.make_url("/"))
    yield mock
    await server.close()


@pytest.fixture
async def client(appliance):
    async with ApplianceClient(appliance.base_url) as client:
        yield client


def test_compute_password_test_vector():
    password = compute_password("secret", "abc")

    assert password == hmac.new(b"secret", b"abc", hashlib.sha1).hexdigest()
    assert password == password.lower()
    assert len(password) == 40


class TestLanHostToRecord:

    def test_first_active_connectivity_wins(self):
        record = lan_host_to_record(LanHost.model_validate(LAN_HOSTS[2]))
        assert record.address == "192.168.1.7"
        assert record.hardware_address == "3c:d9:2b:00:00:07"

    def test_no_active_connectivity_is_dropped(self):
        assert lan_host_to_record(LanHost.model_validate(LAN_HOSTS[1])) is None
        assert lan_host_to_record(LanHost.model_validate(LAN_HOSTS[3])) is None

    def test_missing_name_uses_sentinel(self):
        host = LanHost.model_validate({"l3connectivities": [{"addr": "192.168.1.9", "active": True}]})
        record = lan_host_to_record(host)
        assert record.hostname == UNRESOLVED_HOSTNAME
        assert record.hardware_address is None


class TestApplianceClient:

    async def test_request_authorization(self, client, appliance):
        result = await client.request_authorization("app.id", "LAN Scanner", "1.0.0", "desk")

        assert result.app_token == APP_TOKEN
        assert result.track_id == 5
        assert appliance.authorize_bodies == [{
            "app_id": "app.id", "app_name": "LAN Scanner", "app_version": "1.0.0", "device_name": "desk",
        }]

    async def test_track_authorization(self, client, appliance):
        appliance.track_status = "granted"
        progress = await client.track_authorization(5)
        assert progress.status == "granted"
        assert progress.challenge == CHALLENGE

    async def test_track_unknown_id_is_api_error(self, client):
        with pytest.raises(ApplianceApiError) as exc_info:
            await client.track_authorization(99)
        assert exc_info.value.error_code == "invalid_request"

    async def test_open_session_sends_hmac_not_token(self, client, appliance):
        token = await client.open_session("app.id", APP_TOKEN)

        assert token == SESSION_TOKEN
        body = appliance.session_bodies[0]
        assert body["app_id"] == "app.id"
        assert body["password"] == compute_password(APP_TOKEN, CHALLENGE)
        assert APP_TOKEN not in body.values()

    async def test_open_session_with_wrong_token(self, client):
        with pytest.raises(SessionError):
            await client.open_session("app.id", "revoked")

    async def test_get_lan_devices(self, client):
        records = await client.get_lan_devices(SESSION_TOKEN)

        assert [r.address for r in records] == ["fe80::1", "192.168.1.7"]
        assert records[0].hostname == "Living room TV"
        assert records[0].hardware_address == "8c:79:f5:00:01:00"

    async def test_get_lan_devices_with_expired_session(self, client):
        with pytest.raises(SessionError):
            await client.get_lan_devices("stale")

    async def test_non_json_response_is_transport_error(self, client):
        with pytest.raises(ApplianceTransportError):
            await client._request("GET", "/broken/")

    async def test_unreachable_appliance_is_transport_error(self):
        async with ApplianceClient("http://127.0.0.1:9", timeout=1) as client:
            with pytest.raises(ApplianceTransportError):
                await client.get_challenge()

    async def test_close_releases_session(self, appliance):
        client = ApplianceClient(appliance.base_url)
        await client.get_challenge()
        await client.close()
        assert client._session is None
