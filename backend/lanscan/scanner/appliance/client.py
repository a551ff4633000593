"""
REST client for the Freebox local API.

Every call goes through :meth:`ApplianceClient._request`, which decodes the
``{success, result, error_code, msg}`` envelope and raises from the
exception hierarchy in ``core.exceptions``. The client owns its
``aiohttp.ClientSession``; use it as an async context manager or call
:meth:`close`.
"""

import asyncio
import hashlib
import hmac
import logging
from typing import Any, List, Optional

import aiohttp
from pydantic import BaseModel, ValidationError

from ..models import DeviceRecord, UNRESOLVED_HOSTNAME
from ...core.config import settings
from ...core.exceptions import (
    ApplianceApiError,
    ApplianceTransportError,
    SessionError,
)

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v4"
AUTH_HEADER = "X-Fbx-App-Auth"

# error_code values meaning the session token (or app token) is no longer accepted
SESSION_ERROR_CODES = {"auth_required", "invalid_token", "invalid_session", "pending_token"}


class ApiEnvelope(BaseModel):
    success: bool
    result: Any = None
    error_code: Optional[str] = None
    msg: Optional[str] = None


class AuthorizeResult(BaseModel):
    app_token: str
    track_id: int


class TrackAuthorizationResult(BaseModel):
    status: str
    challenge: Optional[str] = None


class LoginResult(BaseModel):
    logged_in: Optional[bool] = None
    challenge: Optional[str] = None
    session_token: Optional[str] = None


class L2Ident(BaseModel):
    id: str
    type: Optional[str] = None


class L3Connectivity(BaseModel):
    addr: str
    active: bool = False
    af: Optional[str] = None


class LanHost(BaseModel):
    primary_name: Optional[str] = None
    l2ident: Optional[L2Ident] = None
    l3connectivities: Optional[List[L3Connectivity]] = None


def compute_password(app_token: str, challenge: str) -> str:
    """Challenge response: lowercase hex HMAC-SHA1 of the challenge keyed by the app token."""
    return hmac.new(app_token.encode(), challenge.encode(), hashlib.sha1).hexdigest()


def lan_host_to_record(host: LanHost) -> Optional[DeviceRecord]:
    """Convert a LAN browser entry; None when it has no active layer-3 address."""
    active = next((c for c in host.l3connectivities or [] if c.active), None)
    if active is None:
        return None
    return DeviceRecord(
        address=active.addr,
        hostname=host.primary_name or UNRESOLVED_HOSTNAME,
        hardware_address=host.l2ident.id.lower() if host.l2ident else None,
        online=True,
    )


class ApplianceClient:
    """HTTP client for one appliance base URL."""

    def __init__(
        self,
        base_url: str,
        timeout: Optional[float] = None,
        verify_tls: Optional[bool] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.timeout = aiohttp.ClientTimeout(total=timeout or settings.APPLIANCE_REQUEST_TIMEOUT)
        self.verify_tls = settings.APPLIANCE_VERIFY_TLS if verify_tls is None else verify_tls
        self._session: Optional[aiohttp.ClientSession] = None

    async def __aenter__(self) -> "ApplianceClient":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=self.timeout,
                connector=aiohttp.TCPConnector(ssl=self.verify_tls),
                headers={'User-Agent': f'{settings.APP_ID}/{settings.APP_VERSION}'},
            )
        return self._session

    async def close(self):
        """Release the HTTP session."""
        if self._session and not self._session.closed:
            await self._session.close()
        self._session = None

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[dict] = None,
        session_token: Optional[str] = None,
    ) -> Any:
        url = f"{self.base_url}{API_PREFIX}{path}"
        headers = {AUTH_HEADER: session_token} if session_token else None

        try:
            async with self._get_session().request(method, url, json=json, headers=headers) as response:
                status = response.status
                payload = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise ApplianceTransportError(f"{method} {path} failed: {e}", {"url": url})

        try:
            envelope = ApiEnvelope.model_validate(payload)
        except ValidationError as e:
            raise ApplianceTransportError(f"Malformed response from {path}", {"errors": e.errors()})

        if not envelope.success:
            message = envelope.msg or f"{method} {path} was rejected"
            if envelope.error_code in SESSION_ERROR_CODES or status == 403:
                raise SessionError(message, {"error_code": envelope.error_code})
            raise ApplianceApiError(message, envelope.error_code)

        return envelope.result

    @staticmethod
    def _parse(model, result: Any, path: str):
        try:
            return model.model_validate(result)
        except ValidationError as e:
            raise ApplianceTransportError(f"Malformed result from {path}", {"errors": e.errors()})

    async def request_authorization(
        self, app_id: str, app_name: str, app_version: str, device_name: str
    ) -> AuthorizeResult:
        """Ask the appliance to authorize this application; the user confirms on the device."""
        result = await self._request("POST", "/login/authorize/", json={
            "app_id": app_id,
            "app_name": app_name,
            "app_version": app_version,
            "device_name": device_name,
        })
        return self._parse(AuthorizeResult, result, "/login/authorize/")

    async def track_authorization(self, track_id: int) -> TrackAuthorizationResult:
        path = f"/login/authorize/{track_id}"
        return self._parse(TrackAuthorizationResult, await self._request("GET", path), path)

    async def get_challenge(self) -> str:
        login = self._parse(LoginResult, await self._request("GET", "/login/"), "/login/")
        if not login.challenge:
            raise ApplianceTransportError("Login response carried no challenge")
        return login.challenge

    async def open_session(self, app_id: str, app_token: str) -> str:
        """
        Challenge-response login.

        Returns:
            The session token

        Raises:
            SessionError: the appliance refused the login
        """
        challenge = await self.get_challenge()
        try:
            result = await self._request("POST", "/login/session/", json={
                "app_id": app_id,
                "password": compute_password(app_token, challenge),
            })
        except ApplianceApiError as e:
            raise SessionError(f"Login refused: {e.message}", {"error_code": e.error_code})

        login = self._parse(LoginResult, result, "/login/session/")
        if not login.session_token:
            raise SessionError("Login succeeded without a session token")
        return login.session_token

    async def get_lan_devices(self, session_token: str) -> List[DeviceRecord]:
        """Devices currently known to the appliance that have an active address."""
        path = "/lan/browser/pub/"
        result = await self._request("GET", path, session_token=session_token)

        records = []
        for entry in result or []:
            host = self._parse(LanHost, entry, path)
            record = lan_host_to_record(host)
            if record is not None:
                records.append(record)
        logger.debug(f"Appliance reported {len(records)} active devices")
        return records
