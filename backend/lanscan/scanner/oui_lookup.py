"""
OUI (Organizationally Unique Identifier) lookup for MAC address vendor identification.
Uses a local JSON database in the maclookup.app export format.
"""

import json
import logging
from pathlib import Path
from typing import Dict, Optional

from ..core.config import settings

logger = logging.getLogger(__name__)

# Vendor keyword -> device category shown next to a device
VENDOR_CATEGORIES = {
    "FREEBOX": "router",
    "APPLE": "phone",
    "GOOGLE": "smart_display",
    "SAMSUNG": "tv",
    "SONY": "tv",
    "LG ELECTRONICS": "tv",
    "NINTENDO": "console",
    "MICROSOFT": "computer",
    "RASPBERRY PI": "smart_device",
    "SYNOLOGY": "router",
    "NETGEAR": "router",
    "TP-LINK": "router",
    "LINKSYS": "router",
    "ASUSTEK": "router",
    "UBIQUITI": "router",
    "AMAZON": "smart_device",
    "PHILIPS": "smart_device",
    "SIGNIFY": "smart_device",
    "SONOS": "smart_device",
    "BELKIN": "smart_device",
    "XIAOMI": "phone",
    "HUAWEI": "phone",
    "ONEPLUS": "phone",
    "OPPO": "phone",
    "HEWLETT PACKARD": "printer",
    "HP": "printer",
    "DELL": "computer",
    "LENOVO": "computer",
    "INTEL": "network",
    "REALTEK": "network",
}


def _normalize_mac_prefix(mac: str) -> str:
    """Uppercase hex digits without separators."""
    return mac.upper().replace(':', '').replace('-', '').replace('.', '')


class OUILookup:
    """Vendor lookup table loaded lazily from a JSON file."""

    def __init__(self, database_path: Optional[Path] = None):
        self.database_path = Path(database_path or settings.OUI_DATABASE_PATH)
        self._cache: Dict[str, str] = {}
        self._loaded = False

    def _load(self):
        self._loaded = True
        if not self.database_path.exists():
            logger.warning(f"OUI database not found at {self.database_path}")
            return

        try:
            with open(self.database_path, 'r') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(f"Failed to load OUI database: {e}")
            return

        # Format: [{"macPrefix":"00:00:0C","vendorName":"Cisco Systems, Inc",...}, ...]
        for entry in data:
            prefix = entry.get('macPrefix', '')
            vendor = entry.get('vendorName', '')
            if prefix and vendor:
                self._cache[_normalize_mac_prefix(prefix)] = vendor
        logger.info(f"OUI database loaded: {len(self._cache)} vendors")

    def lookup_vendor(self, mac: Optional[str]) -> Optional[str]:
        """
        Look up the vendor for a MAC address.

        Args:
            mac: MAC address in any format (e.g., "00:11:22:33:44:55", "00-11-22-33-44-55", "001122334455")

        Returns:
            Vendor name or None if not found
        """
        if not mac:
            return None
        if not self._loaded:
            self._load()

        mac_clean = _normalize_mac_prefix(mac)
        # 24-bit OUI first, then the longer MA-M / MA-S blocks
        for length in (6, 7, 8, 9):
            if len(mac_clean) >= length and mac_clean[:length] in self._cache:
                return self._cache[mac_clean[:length]]
        return None

    def device_category(self, mac: Optional[str]) -> Optional[str]:
        """Coarse device category for a MAC address, "network" when the vendor is not recognised."""
        if not mac:
            return None
        vendor = self.lookup_vendor(mac)
        if vendor is None:
            return "network"
        vendor_upper = vendor.upper()
        for keyword, category in VENDOR_CATEGORIES.items():
            if keyword in vendor_upper:
                return category
        return "network"

    def vendor_count(self) -> int:
        if not self._loaded:
            self._load()
        return len(self._cache)


oui_lookup = OUILookup()
