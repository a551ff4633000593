"""
DNS-SD discovery of the appliance.

The zeroconf browser is callback driven; :meth:`ZeroconfApplianceLocator.locate`
bridges the first resolved instance to an awaitable result and always tears
the browser down before returning.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Protocol, Set

from zeroconf import Error as ZeroconfError, IPVersion, ServiceStateChange
from zeroconf.asyncio import AsyncServiceBrowser, AsyncServiceInfo, AsyncZeroconf

from ...core.config import settings

logger = logging.getLogger(__name__)

RESOLVE_TIMEOUT_MS = 3000


@dataclass(frozen=True)
class ApplianceLocation:
    host: str
    https_port: int
    advertised_port: Optional[int] = None

    @property
    def base_url(self) -> str:
        # The advertised port is the remote-access one; locally the API is on the HTTPS port
        return f"https://{self.host}:{self.https_port}"


class ApplianceLocator(Protocol):
    async def locate(self) -> Optional[ApplianceLocation]:
        ...


class ZeroconfApplianceLocator:
    """Find the appliance by browsing for its advertised service type."""

    def __init__(
        self,
        service_type: Optional[str] = None,
        timeout: Optional[float] = None,
        https_port: Optional[int] = None,
    ):
        self.service_type = service_type or settings.APPLIANCE_SERVICE_TYPE
        self.timeout = timeout or settings.APPLIANCE_DISCOVERY_TIMEOUT
        self.https_port = https_port or settings.APPLIANCE_HTTPS_PORT

    async def locate(self) -> Optional[ApplianceLocation]:
        """
        Browse for the appliance service.

        Returns:
            Location of the first instance that resolves to an IPv4 address,
            or None if none did within the discovery timeout or multicast
            is unavailable
        """
        loop = asyncio.get_running_loop()
        found: asyncio.Future = loop.create_future()
        resolvers: Set[asyncio.Task] = set()
        try:
            aiozc = AsyncZeroconf(ip_version=IPVersion.V4Only)
        except (OSError, ZeroconfError) as e:
            logger.error(f"Service discovery unavailable: {e}")
            return None
        browser = None

        async def resolve(service_type: str, name: str):
            info = AsyncServiceInfo(service_type, name)
            try:
                if not await info.async_request(aiozc.zeroconf, RESOLVE_TIMEOUT_MS):
                    logger.debug(f"Resolve failed for {name}")
                    return
            except Exception as e:
                logger.debug(f"Resolve error for {name}: {e}")
                return

            addresses = info.parsed_addresses(IPVersion.V4Only)
            if addresses and not found.done():
                logger.info(f"Appliance resolved: {name} at {addresses[0]}")
                found.set_result(ApplianceLocation(
                    host=addresses[0],
                    https_port=self.https_port,
                    advertised_port=info.port,
                ))

        def start_resolve(service_type: str, name: str):
            task = loop.create_task(resolve(service_type, name))
            resolvers.add(task)
            task.add_done_callback(resolvers.discard)

        def on_service_state_change(zeroconf, service_type: str, name: str, state_change: ServiceStateChange):
            if state_change is ServiceStateChange.Added:
                logger.debug(f"Service found: {name}")
                loop.call_soon_threadsafe(start_resolve, service_type, name)

        try:
            logger.debug(f"Service discovery started for {self.service_type}")
            browser = AsyncServiceBrowser(
                aiozc.zeroconf, [self.service_type], handlers=[on_service_state_change]
            )
            return await asyncio.wait_for(found, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.info(f"No {self.service_type} service found within {self.timeout}s")
            return None
        except (OSError, ZeroconfError) as e:
            logger.error(f"Service discovery failed: {e}")
            return None
        finally:
            logger.debug("Stopping service discovery")
            for task in list(resolvers):
                task.cancel()
            if browser is not None:
                await browser.async_cancel()
            await aiozc.async_close()
