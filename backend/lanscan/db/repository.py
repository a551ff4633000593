import asyncio
import logging
from typing import AsyncIterator, List, Optional, Set

from sqlalchemy import select, update, delete
from sqlalchemy.ext.asyncio import async_sessionmaker

from .database import AsyncSessionLocal, with_db_retry
from .models import Device
from ..scanner.models import DeviceRecord

logger = logging.getLogger(__name__)


def _to_record(device: Device) -> DeviceRecord:
    return DeviceRecord(
        address=device.ip_address,
        hostname=device.hostname,
        hardware_address=device.mac_address,
        online=bool(device.is_online),
        last_seen=device.last_seen,
    )


class DeviceRepository:
    """
    Durable device store keyed by hardware address.

    Exposes upsert-by-key, bulk mark-offline, delete-all and a change
    subscription. Every write publishes a fresh snapshot to subscribers.
    """

    def __init__(self, session_factory: Optional[async_sessionmaker] = None):
        self._session_factory = session_factory or AsyncSessionLocal
        self._subscribers: Set[asyncio.Queue] = set()

    @with_db_retry()
    async def upsert(self, record: DeviceRecord) -> None:
        """Insert or update a device; the hardware address is never rewritten."""
        if record.hardware_address is None:
            raise ValueError(f"Cannot persist {record.address} without a hardware address")

        async with self._session_factory() as session:
            device = await session.get(Device, record.hardware_address)
            if device is None:
                session.add(Device(
                    mac_address=record.hardware_address,
                    ip_address=record.address,
                    hostname=record.hostname,
                    last_seen=record.last_seen,
                    is_online=record.online,
                ))
            else:
                device.ip_address = record.address
                device.hostname = record.hostname
                device.last_seen = record.last_seen
                device.is_online = record.online
            await session.commit()
        await self._publish()

    @with_db_retry()
    async def mark_all_offline(self) -> None:
        async with self._session_factory() as session:
            await session.execute(update(Device).values(is_online=False))
            await session.commit()
        await self._publish()

    @with_db_retry()
    async def clear_all(self) -> None:
        async with self._session_factory() as session:
            await session.execute(delete(Device))
            await session.commit()
        logger.info("Device store cleared")
        await self._publish()

    async def list_all(self) -> List[DeviceRecord]:
        """All persisted devices, ordered by ip."""
        async with self._session_factory() as session:
            result = await session.execute(select(Device).order_by(Device.ip_address))
            return [_to_record(d) for d in result.scalars().all()]

    async def subscribe(self) -> AsyncIterator[List[DeviceRecord]]:
        """Yield the current contents, then a new snapshot after every change."""
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.add(queue)
        try:
            yield await self.list_all()
            while True:
                yield await queue.get()
        finally:
            self._subscribers.discard(queue)

    async def _publish(self) -> None:
        if not self._subscribers:
            return
        snapshot = await self.list_all()
        for queue in self._subscribers:
            queue.put_nowait(snapshot)
