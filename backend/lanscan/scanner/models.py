from dataclasses import dataclass, replace
from typing import Optional

# Hostname used when reverse lookup fails or only echoes the address back
UNRESOLVED_HOSTNAME = "unresolved"


@dataclass(frozen=True)
class DeviceRecord:
    """A device observed on the LAN, from either the prober or the appliance."""
    address: str
    hostname: str = UNRESOLVED_HOSTNAME
    hardware_address: Optional[str] = None
    online: bool = True
    last_seen: int = 0  # epoch millis

    @property
    def is_persistable(self) -> bool:
        return self.hardware_address is not None

    def seen(self, timestamp: int) -> "DeviceRecord":
        return replace(self, online=True, last_seen=timestamp)
