"""
Device reconciliation.

The display list is a pure function of the active source: probe results are
shown as-is and never stored, while appliance results are written through the
store (everything marked offline first, then live devices upserted) and the
stored rows, history included, are what gets shown.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Iterable, List, Union

from .models import DeviceRecord
from .subnet_prober import ip_sort_key
from ..db.repository import DeviceRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProbeSource:
    """Transient result of the subnet prober."""
    records: List[DeviceRecord] = field(default_factory=list)
    name = "probe"


@dataclass(frozen=True)
class ApplianceSource:
    """Live device list reported by the appliance."""
    records: List[DeviceRecord] = field(default_factory=list)
    name = "appliance"


ScanSource = Union[ProbeSource, ApplianceSource]


def is_displayable(record: DeviceRecord) -> bool:
    """Only IPv4-style addresses are shown; the appliance also reports IPv6 ones."""
    return '.' in record.address


def sort_records(records: Iterable[DeviceRecord]) -> List[DeviceRecord]:
    return sorted(records, key=lambda r: ip_sort_key(r.address))


def merge(source: ScanSource, persisted: List[DeviceRecord]) -> List[DeviceRecord]:
    """
    Build the display list for a source.

    Args:
        source: The active source
        persisted: Current store contents; only used for the appliance source

    Returns:
        Filtered records sorted by numeric address
    """
    if isinstance(source, ProbeSource):
        records = [
            DeviceRecord(
                address=r.address,
                hostname=r.hostname,
                hardware_address=None,
                online=True,
                last_seen=r.last_seen,
            )
            for r in source.records
        ]
    elif isinstance(source, ApplianceSource):
        records = persisted
    else:
        raise TypeError(f"Unknown scan source: {source!r}")

    return sort_records(r for r in records if is_displayable(r))


class Reconciler:
    """Writes appliance observations into the device store."""

    def __init__(self, repository: DeviceRepository):
        self.repository = repository
        self._last_timestamp = 0

    def _now(self) -> int:
        # Strictly increasing even when two scans land in the same millisecond
        self._last_timestamp = max(int(time.time() * 1000), self._last_timestamp + 1)
        return self._last_timestamp

    async def apply_appliance_scan(self, records: List[DeviceRecord]) -> int:
        """
        Mark every stored device offline, then upsert the observed ones as online.

        Returns:
            Number of devices upserted
        """
        now = self._now()
        await self.repository.mark_all_offline()

        upserted = 0
        for record in records:
            if not record.is_persistable:
                logger.debug(f"Skipping {record.address}: no hardware address to key on")
                continue
            await self.repository.upsert(record.seen(now))
            upserted += 1

        logger.info(f"Reconciled {upserted} online devices from the appliance")
        return upserted

    async def display(self, source: ScanSource) -> List[DeviceRecord]:
        persisted = await self.repository.list_all() if isinstance(source, ApplianceSource) else []
        return merge(source, persisted)
