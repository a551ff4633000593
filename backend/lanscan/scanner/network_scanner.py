import asyncio
import logging
import time
from typing import List, Optional

from .appliance.auth_state import Idle, describe
from .appliance.session import AuthorizationFlow
from .models import DeviceRecord
from .reconciler import Reconciler, ProbeSource, ApplianceSource, ScanSource
from .subnet_prober import SubnetProber
from ..db.repository import DeviceRepository
from ..core.config import settings
from ..core.exceptions import ApplianceError, DiscoveryError

logger = logging.getLogger(__name__)


class NetworkScanner:
    """Coordinates appliance and probe discovery and keeps the reconciled device view."""

    def __init__(
        self,
        scan_interval: int = None,
        prober: Optional[SubnetProber] = None,
        auth_flow: Optional[AuthorizationFlow] = None,
        repository: Optional[DeviceRepository] = None,
        fallback_to_probe: Optional[bool] = None,
    ):
        self.scan_interval = scan_interval or settings.SCAN_INTERVAL
        self.prober = prober or SubnetProber()
        self.auth_flow = auth_flow or AuthorizationFlow()
        self.repository = repository or DeviceRepository()
        self.reconciler = Reconciler(self.repository)
        self.fallback_to_probe = (
            settings.APPLIANCE_FALLBACK_TO_PROBE if fallback_to_probe is None else fallback_to_probe
        )
        self.source: ScanSource = ProbeSource()
        self.devices: List[DeviceRecord] = []
        self.last_scan_time: Optional[int] = None
        self._running = False
        self._scan_task: Optional[asyncio.Task] = None
        self._websocket_callbacks = []
        self._auto_authorize_attempted = False
        self.auth_flow.register_callback(self._notify_callbacks)

    def register_callback(self, callback):
        """Register a callback for scan updates."""
        self._websocket_callbacks.append(callback)

    def unregister_callback(self, callback):
        """Unregister a callback."""
        if callback in self._websocket_callbacks:
            self._websocket_callbacks.remove(callback)

    async def _notify_callbacks(self, event_type: str, data: dict):
        """Notify all registered callbacks."""
        for callback in self._websocket_callbacks:
            try:
                await callback(event_type, data)
            except Exception as e:
                logger.warning(f"Callback error: {e}")

    @property
    def auth_status(self) -> dict:
        return describe(self.auth_flow.state)

    async def start_background_scanning(self):
        """Start background network scanning."""
        if self._running:
            return

        self._running = True
        self._scan_task = asyncio.create_task(self._scan_loop())

    async def stop_background_scanning(self):
        """Stop background network scanning."""
        self._running = False
        if self._scan_task:
            self._scan_task.cancel()
            try:
                await self._scan_task
            except asyncio.CancelledError:
                pass
            self._scan_task = None

    async def _scan_loop(self):
        """Main scanning loop."""
        while self._running:
            try:
                await self.perform_scan()
            except Exception as e:
                logger.error(f"Scan error: {e}")

            await asyncio.sleep(self.scan_interval)

    def _should_auto_authorize(self) -> bool:
        # Only from Idle: once on startup, or whenever a stored token can resume silently.
        # An Error waits for an explicit retry so the appliance isn't prompted every interval.
        if not isinstance(self.auth_flow.state, Idle):
            return False
        return not self._auto_authorize_attempted or self.auth_flow.token_store.app_token is not None

    async def _fetch_from_appliance(self) -> Optional[List[DeviceRecord]]:
        if self.auth_flow.in_progress:
            logger.info("Appliance authorization in progress; probing the subnet meanwhile")
            return None

        if not self.auth_flow.is_authorized:
            if self._should_auto_authorize():
                self._auto_authorize_attempted = True
                self.auth_flow.start()
                logger.info("Appliance authorization started in the background")
            return None

        try:
            return await self.auth_flow.fetch_devices()
        except ApplianceError as e:
            logger.error(f"Appliance device query failed: {e}")
            return None

    async def perform_scan(self) -> dict:
        """
        Scan the network with the best available source and refresh the device view.

        Returns:
            Scan results summary
        """
        await self._notify_callbacks("scan_started", {"auth": self.auth_status})

        appliance_devices = await self._fetch_from_appliance()
        if appliance_devices is not None:
            await self.reconciler.apply_appliance_scan(appliance_devices)
            self.source = ApplianceSource(appliance_devices)
        elif self.fallback_to_probe:
            self.source = ProbeSource(await self.prober.scan())
        else:
            raise DiscoveryError("No appliance available and probe fallback is disabled", self.auth_status)

        self.devices = await self.reconciler.display(self.source)
        self.last_scan_time = int(time.time() * 1000)

        result = {
            "source": self.source.name,
            "devices_found": len(self.devices),
            "devices_online": sum(1 for d in self.devices if d.online),
        }
        logger.info(f"Scan completed via {result['source']}: {result['devices_online']}/{result['devices_found']} online")

        await self._notify_callbacks("scan_completed", result)
        await self._notify_callbacks("devices_updated", {"source": self.source.name, "count": len(self.devices)})
        return result

    def start_authorization(self) -> dict:
        """Kick off appliance authorization in the background (also the retry after an Error)."""
        self.auth_flow.start()
        return self.auth_status

    async def forget(self):
        """Forget the appliance authorization and all device history."""
        await self.auth_flow.forget()
        await self.repository.clear_all()
        self.source = ProbeSource()
        self.devices = []
        await self._notify_callbacks("devices_updated", {"source": self.source.name, "count": 0})

    async def close(self):
        """Stop scanning and release appliance network handles."""
        await self.stop_background_scanning()
        await self.auth_flow.close()
