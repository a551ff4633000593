"""
Active subnet prober.

Finds live hosts on the local /24 by attempting a TCP connection to a single
fixed port on every host address. Both an accepted connection and an active
refusal (RST) prove that a host answered; a timeout proves nothing and is
treated as absence. Hardware addresses are never collected on this path.
"""

import asyncio
import ipaddress
import logging
import socket
import time
from typing import List, Optional, Protocol, Tuple

import netifaces

from .models import DeviceRecord, UNRESOLVED_HOSTNAME
from ..core.config import settings

logger = logging.getLogger(__name__)


class NetworkState(Protocol):
    """Platform accessor for the active network and its local addresses."""

    def is_active(self) -> bool:
        ...

    def local_addresses(self) -> List[str]:
        ...


class NetifacesNetworkState:
    """NetworkState backed by netifaces; the default-route interface is listed first."""

    def is_active(self) -> bool:
        gateways = netifaces.gateways()
        return bool(gateways.get('default', {}).get(netifaces.AF_INET))

    def local_addresses(self) -> List[str]:
        interfaces = netifaces.interfaces()
        default_gateway = netifaces.gateways().get('default', {}).get(netifaces.AF_INET)
        if default_gateway and default_gateway[1] in interfaces:
            interfaces.remove(default_gateway[1])
            interfaces.insert(0, default_gateway[1])

        addresses = []
        for interface in interfaces:
            addrs = netifaces.ifaddresses(interface)
            for family in (netifaces.AF_INET, netifaces.AF_INET6):
                for entry in addrs.get(family, []):
                    if entry.get('addr'):
                        addresses.append(entry['addr'])
        return addresses


def ip_sort_key(address: str) -> Tuple[int, int]:
    """Numeric ordering key: octets as digits of a base-1000 number; anything else sorts last."""
    key = 0
    try:
        for octet in address.split('.'):
            key = key * 1000 + int(octet)
    except ValueError:
        return (1, 0)
    return (0, key)


def subnet_prefix(addresses: List[str]) -> Optional[str]:
    """First three octets of the first IPv4, non-loopback address."""
    for addr in addresses:
        try:
            ip = ipaddress.ip_address(addr.split('%')[0])
        except ValueError:
            continue
        if ip.version == 4 and not ip.is_loopback:
            return addr.rsplit('.', 1)[0]
    return None


class SubnetProber:
    """Concurrent TCP liveness prober for every host address of the local subnet."""

    def __init__(
        self,
        network_state: Optional[NetworkState] = None,
        port: Optional[int] = None,
        timeout: Optional[float] = None,
    ):
        self.network_state = network_state or NetifacesNetworkState()
        self.port = port or settings.PROBE_PORT
        self.timeout = timeout or settings.PROBE_TIMEOUT
        self.first_host = settings.PROBE_FIRST_HOST
        self.last_host = settings.PROBE_LAST_HOST

    def get_subnet_prefix(self) -> Optional[str]:
        """Return the local prefix (e.g. "192.168.1"), or None when there is no usable network."""
        try:
            if not self.network_state.is_active():
                logger.warning("No active network; is Wi-Fi or Ethernet connected?")
                return None
            prefix = subnet_prefix(self.network_state.local_addresses())
        except OSError as e:
            logger.error(f"Error reading local addresses: {e}")
            return None

        if prefix is None:
            logger.error("No non-loopback IPv4 address found")
        return prefix

    async def probe_host(self, ip: str) -> bool:
        """True if the host accepted or actively refused a connection within the timeout."""
        writer = None
        try:
            _, writer = await asyncio.wait_for(
                asyncio.open_connection(ip, self.port),
                timeout=self.timeout
            )
            return True
        except ConnectionRefusedError:
            return True
        except (asyncio.TimeoutError, OSError):
            return False
        finally:
            if writer is not None:
                writer.close()
                try:
                    await writer.wait_closed()
                except OSError:
                    pass

    async def resolve_hostname(self, ip: str) -> str:
        """Reverse lookup; the sentinel when it fails or echoes the address back."""
        try:
            loop = asyncio.get_running_loop()
            hostname, _, _ = await loop.run_in_executor(None, socket.gethostbyaddr, ip)
        except (socket.herror, socket.gaierror, socket.timeout, OSError) as e:
            logger.debug(f"Hostname not found for {ip}: {e}")
            return UNRESOLVED_HOSTNAME

        if not hostname or hostname == ip:
            return UNRESOLVED_HOSTNAME
        return hostname

    async def scan(self) -> List[DeviceRecord]:
        """
        Probe every host address of the local subnet concurrently.

        Returns:
            Live hosts sorted by numeric address; empty when no subnet is available
        """
        prefix = self.get_subnet_prefix()
        if prefix is None:
            return []

        logger.info(f"Scanning subnet {prefix}.{self.first_host}-{self.last_host} on port {self.port}")
        found: List[DeviceRecord] = []
        lock = asyncio.Lock()

        async def probe(ip: str):
            if not await self.probe_host(ip):
                return
            hostname = await self.resolve_hostname(ip)
            logger.debug(f"Host found: {ip} ({hostname})")
            record = DeviceRecord(
                address=ip,
                hostname=hostname,
                hardware_address=None,
                online=True,
                last_seen=int(time.time() * 1000),
            )
            async with lock:
                found.append(record)

        results = await asyncio.gather(
            *[probe(f"{prefix}.{i}") for i in range(self.first_host, self.last_host + 1)],
            return_exceptions=True
        )
        for result in results:
            if isinstance(result, Exception):
                logger.debug(f"Probe failed: {result}")

        logger.info(f"Scan done: {len(found)} hosts found")
        return sorted(found, key=lambda r: ip_sort_key(r.address))
