from pydantic import BaseModel
from typing import Optional


class DeviceResponse(BaseModel):
    """Device as shown to clients."""
    address: str
    hostname: str
    hardware_address: Optional[str] = None
    online: bool
    last_seen: int  # epoch millis
    vendor: Optional[str] = None
    device_type: Optional[str] = None


class DeviceListResponse(BaseModel):
    """Reconciled device view."""
    source: str  # "appliance" or "probe"
    devices: list[DeviceResponse]
    total: int
    online: int
    last_scan_time: Optional[int] = None


class ScanTriggerResponse(BaseModel):
    """Scan trigger response schema."""
    success: bool
    message: str
    source: Optional[str] = None
    devices_found: Optional[int] = None
    devices_online: Optional[int] = None


class AuthStatusResponse(BaseModel):
    """Appliance authorization state."""
    state: str
    track_id: Optional[int] = None
    message: Optional[str] = None
