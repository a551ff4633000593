"""
Appliance authorization flow.

:class:`ApplianceSession` is the explicit context for one appliance: its base
URL, the HTTP client that talks to it and the two tokens. :class:`AuthorizationFlow`
drives the state machine from ``auth_state`` through discovery, authorization,
approval polling and login, and owns the session until :meth:`AuthorizationFlow.close`.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional

from .auth_state import (
    AuthState,
    AuthEvent,
    Idle,
    Discovering,
    Authorizing,
    Authorized,
    StartDiscovery,
    ApplianceFound,
    AuthorizationPending,
    TrackStatusReceived,
    SessionOpened,
    Failure,
    Reset,
    TrackStatus,
    transition,
    describe,
    parse_track_status,
)
from .client import ApplianceClient
from .discovery import ApplianceLocator, ZeroconfApplianceLocator
from .token_store import TokenStore
from ..models import DeviceRecord
from ...core.config import settings
from ...core.exceptions import ApplianceError, SessionError, StorageError

logger = logging.getLogger(__name__)


@dataclass
class ApplianceSession:
    """Connection context for one appliance."""
    base_url: str
    client: ApplianceClient
    app_token: Optional[str] = None
    session_token: Optional[str] = None

    async def close(self):
        self.session_token = None
        await self.client.close()


class AuthorizationFlow:
    """Runs discovery, authorization and login against the appliance."""

    def __init__(
        self,
        locator: Optional[ApplianceLocator] = None,
        token_store: Optional[TokenStore] = None,
        client_factory: Callable[[str], ApplianceClient] = ApplianceClient,
        poll_interval: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.locator = locator or ZeroconfApplianceLocator()
        self.token_store = token_store or TokenStore()
        self.client_factory = client_factory
        self.poll_interval = settings.APPLIANCE_POLL_INTERVAL if poll_interval is None else poll_interval
        self._sleep = sleep
        self.state: AuthState = Idle()
        self.session: Optional[ApplianceSession] = None
        self._task: Optional[asyncio.Task] = None
        self._callbacks = []

    def register_callback(self, callback):
        """Register an async callback for state changes."""
        self._callbacks.append(callback)

    def unregister_callback(self, callback):
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    async def _apply(self, event: AuthEvent) -> AuthState:
        previous, self.state = self.state, transition(self.state, event)
        if self.state != previous:
            logger.info(f"Authorization state: {previous.name} -> {self.state.name}")
            for callback in self._callbacks:
                try:
                    await callback("auth_state_changed", describe(self.state))
                except Exception as e:
                    logger.warning(f"Callback error: {e}")
        return self.state

    @property
    def is_authorized(self) -> bool:
        return isinstance(self.state, Authorized) and self.session is not None and bool(self.session.session_token)

    async def authorize(self) -> Optional[ApplianceSession]:
        """
        Return an authenticated session, running the flow if needed.

        Concurrent callers share the run in progress. Returns None when the
        appliance was not found, authorization failed or the run was cancelled
        by :meth:`cancel` / :meth:`forget`; ``state`` then holds the outcome.
        """
        if self.is_authorized:
            return self.session
        task = self.start()
        try:
            return await asyncio.shield(task)
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if task.cancelled() and not (current is not None and current.cancelling()):
                logger.info("Authorization run was cancelled")
                return None
            raise

    async def wait(self) -> Optional[ApplianceSession]:
        """Wait for the run in progress, if any, without starting a new one."""
        if self._task is None:
            return None
        try:
            return await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if self._task is not None and self._task.cancelled():
                return None
            raise

    @property
    def in_progress(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> asyncio.Task:
        """Start the flow in the background, or return the run already in progress."""
        if not self.in_progress:
            self._task = asyncio.create_task(self._authorize())
        return self._task

    async def _authorize(self) -> Optional[ApplianceSession]:
        await self._apply(StartDiscovery())
        try:
            location = await self.locator.locate()
            if location is None:
                await self._apply(Failure("Appliance not found on the local network"))
                return None
            await self._apply(ApplianceFound(location.base_url))
            session = await self._open_context(location.base_url)

            if session.app_token:
                try:
                    await self._login(session)
                    await self._apply(SessionOpened())
                    return session
                except SessionError as e:
                    logger.info(f"Stored app token rejected ({e.message}); requesting a new authorization")
                    self._discard_token(session)

            if not await self._request_authorization(session):
                return None

            await self._login(session)
            await self._apply(SessionOpened())
            return session
        except (ApplianceError, StorageError) as e:
            logger.error(f"Authorization process failed: {e}")
            await self._apply(Failure(f"Authorization process failed: {e.message}"))
            return None
        except Exception as e:
            # Discovery and platform errors must not leave the machine in Discovering
            logger.exception(f"Unexpected error during authorization: {e}")
            await self._apply(Failure(f"Authorization process failed: {e}"))
            return None

    async def _open_context(self, base_url: str) -> ApplianceSession:
        if self.session is not None and self.session.base_url != base_url:
            await self.session.close()
            self.session = None
        if self.session is None:
            self.session = ApplianceSession(base_url=base_url, client=self.client_factory(base_url))
        self.session.app_token = self.token_store.app_token
        self.session.session_token = None
        return self.session

    async def _request_authorization(self, session: ApplianceSession) -> bool:
        """POST the authorization request and poll until the user decides. True when granted."""
        logger.info("Requesting authorization; confirm on the appliance")
        result = await session.client.request_authorization(
            app_id=settings.APP_ID,
            app_name=settings.APP_DISPLAY_NAME,
            app_version=settings.APP_VERSION,
            device_name=settings.DEVICE_NAME,
        )
        self.token_store.app_token = result.app_token
        session.app_token = result.app_token
        await self._apply(AuthorizationPending(result.track_id))
        return await self._poll(session, result.track_id)

    async def _poll(self, session: ApplianceSession, track_id: int) -> bool:
        while True:
            progress = await session.client.track_authorization(track_id)
            status = parse_track_status(progress.status)
            await self._apply(TrackStatusReceived(status))

            if status is TrackStatus.GRANTED:
                logger.info("Authorization granted")
                return True
            if not isinstance(self.state, Authorizing):
                # denied or timed out: the token will never become valid
                self._discard_token(session)
                return False
            await self._sleep(self.poll_interval)

    async def _login(self, session: ApplianceSession):
        session.session_token = await session.client.open_session(settings.APP_ID, session.app_token)
        logger.info("Appliance session opened")

    def _discard_token(self, session: ApplianceSession):
        self.token_store.clear()
        session.app_token = None
        session.session_token = None

    async def fetch_devices(self) -> Optional[List[DeviceRecord]]:
        """
        Fetch the appliance's LAN device list.

        An expired session triggers one re-authorization (cached token first,
        full flow if that is rejected). Returns None when no session can be had.
        """
        session = await self.authorize()
        if session is None:
            return None
        try:
            return await session.client.get_lan_devices(session.session_token)
        except SessionError as e:
            logger.info(f"Session rejected ({e.message}); re-authorizing")
            session.session_token = None

        session = await self.authorize()
        if session is None:
            return None
        return await session.client.get_lan_devices(session.session_token)

    async def cancel(self):
        """Abandon a running authorization (e.g. approval polling)."""
        if self.in_progress:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None
        if isinstance(self.state, (Discovering, Authorizing)):
            await self._apply(Failure("Authorization cancelled"))

    async def forget(self):
        """Drop both tokens and return to Idle."""
        await self.cancel()
        self.token_store.clear()
        if self.session is not None:
            await self.session.close()
            self.session = None
        await self._apply(Reset())

    async def close(self):
        """Release the HTTP client; the stored app token is kept."""
        await self.cancel()
        if self.session is not None:
            await self.session.close()
            self.session = None
