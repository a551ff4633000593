"""Tests for scanner/reconciler.py."""

import pytest

from lanscan.scanner.models import DeviceRecord
from lanscan.scanner.reconciler import ApplianceSource, ProbeSource, Reconciler, merge


@pytest.fixture
def reconciler(repository) -> Reconciler:
    return Reconciler(repository)


class TestMerge:

    def test_probe_records_are_online_without_hardware_address(self):
        source = ProbeSource([
            DeviceRecord(address="192.168.1.20", hardware_address="aa:bb:cc:dd:ee:ff", online=False),
            DeviceRecord(address="192.168.1.3"),
        ])

        records = merge(source, persisted=[DeviceRecord(address="192.168.1.99", hardware_address="x")])

        assert [r.address for r in records] == ["192.168.1.3", "192.168.1.20"]
        assert all(r.online and r.hardware_address is None for r in records)

    def test_appliance_uses_persisted_rows(self):
        persisted = [
            DeviceRecord(address="192.168.1.100", hardware_address="a", online=False),
            DeviceRecord(address="fe80::1", hardware_address="b"),
            DeviceRecord(address="192.168.1.9", hardware_address="c"),
        ]

        records = merge(ApplianceSource([]), persisted)

        assert [r.address for r in records] == ["192.168.1.9", "192.168.1.100"]
        assert records[1].online is False

    def test_unknown_source(self):
        with pytest.raises(TypeError):
            merge(object(), [])


class TestReconciler:

    async def test_same_scan_twice_is_idempotent_except_last_seen(self, reconciler, repository, appliance_devices):
        await reconciler.apply_appliance_scan(appliance_devices)
        first = {d.hardware_address: d for d in await repository.list_all()}

        await reconciler.apply_appliance_scan(appliance_devices)
        second = {d.hardware_address: d for d in await repository.list_all()}

        assert first.keys() == second.keys()
        for mac, device in second.items():
            assert device.online
            assert device.address == first[mac].address
            assert device.hostname == first[mac].hostname
            assert device.last_seen > first[mac].last_seen

    async def test_absent_devices_go_offline_and_keep_history(self, reconciler, repository, appliance_devices):
        await reconciler.apply_appliance_scan(appliance_devices)
        before = {d.hardware_address: d for d in await repository.list_all()}

        await reconciler.apply_appliance_scan(appliance_devices[:2])
        after = {d.hardware_address: d for d in await repository.list_all()}

        gone = appliance_devices[2].hardware_address
        assert after[gone].online is False
        assert after[gone].last_seen == before[gone].last_seen
        assert all(after[r.hardware_address].online for r in appliance_devices[:2])

    async def test_records_without_hardware_address_are_not_stored(self, reconciler, repository):
        upserted = await reconciler.apply_appliance_scan([
            DeviceRecord(address="192.168.1.40"),
            DeviceRecord(address="192.168.1.41", hardware_address="aa:aa:aa:00:00:41"),
        ])

        assert upserted == 1
        assert [d.address for d in await repository.list_all()] == ["192.168.1.41"]

    async def test_display_appliance_source_is_sorted(self, reconciler, appliance_devices):
        await reconciler.apply_appliance_scan(appliance_devices)

        records = await reconciler.display(ApplianceSource(appliance_devices))

        assert [r.address for r in records] == ["192.168.1.2", "192.168.1.10", "192.168.1.100"]

    async def test_display_probe_source_skips_the_store(self, reconciler, repository):
        records = await reconciler.display(ProbeSource([DeviceRecord(address="192.168.1.8")]))

        assert [r.address for r in records] == ["192.168.1.8"]
        assert await repository.list_all() == []


def test_mapped_ipv6_address_does_not_break_display():
    persisted = [
        DeviceRecord(address="::ffff:192.168.1.5", hardware_address="a"),
        DeviceRecord(address="192.168.1.20", hardware_address="b"),
        DeviceRecord(address="192.168.1.3", hardware_address="c"),
    ]

    records = merge(ApplianceSource([]), persisted)

    assert [r.address for r in records] == ["192.168.1.3", "192.168.1.20", "::ffff:192.168.1.5"]
