"""Tests for scanner/oui_lookup.py."""

import json

import pytest

from lanscan.scanner.oui_lookup import OUILookup


@pytest.fixture
def lookup(tmp_path):
    path = tmp_path / "oui.json"
    path.write_text(json.dumps([
        {"macPrefix": "14:0C:76", "vendorName": "FREEBOX SAS"},
        {"macPrefix": "B8:27:EB", "vendorName": "Raspberry Pi Foundation"},
        {"macPrefix": "70:B3:D5:1", "vendorName": "Small Block Vendor"},
        {"macPrefix": "", "vendorName": "ignored"},
    ]))
    return OUILookup(path)


def test_vendor_from_any_mac_format(lookup):
    assert lookup.lookup_vendor("14:0c:76:aa:bb:cc") == "FREEBOX SAS"
    assert lookup.lookup_vendor("14-0C-76-AA-BB-CC") == "FREEBOX SAS"
    assert lookup.lookup_vendor("140c76aabbcc") == "FREEBOX SAS"


def test_longer_block_prefix(lookup):
    assert lookup.lookup_vendor("70:b3:d5:1a:00:01") == "Small Block Vendor"


def test_unknown_or_missing_mac(lookup):
    assert lookup.lookup_vendor("00:00:00:00:00:01") is None
    assert lookup.lookup_vendor(None) is None


def test_device_category(lookup):
    assert lookup.device_category("14:0c:76:aa:bb:cc") == "router"
    assert lookup.device_category("b8:27:eb:00:00:01") == "smart_device"
    assert lookup.device_category("00:00:00:00:00:01") == "network"
    assert lookup.device_category(None) is None


def test_missing_database_is_empty(tmp_path):
    assert OUILookup(tmp_path / "missing.json").vendor_count() == 0


def test_bundled_database_loads():
    assert OUILookup().vendor_count() > 0
