from fastapi import APIRouter, Depends, Query

from ..core.exceptions import LanScanError
from ..scanner.models import DeviceRecord
from ..scanner.oui_lookup import oui_lookup
from .schemas import (
    DeviceResponse,
    DeviceListResponse,
    ScanTriggerResponse,
    AuthStatusResponse,
)

router = APIRouter()


def get_scanner():
    """Dependency returning the application's scanner."""
    from ..main import scanner
    return scanner


def to_response(record: DeviceRecord) -> DeviceResponse:
    return DeviceResponse(
        address=record.address,
        hostname=record.hostname,
        hardware_address=record.hardware_address,
        online=record.online,
        last_seen=record.last_seen,
        vendor=oui_lookup.lookup_vendor(record.hardware_address),
        device_type=oui_lookup.device_category(record.hardware_address),
    )


@router.get("/devices", response_model=DeviceListResponse)
async def get_devices(
    online_only: bool = Query(False),
    scanner=Depends(get_scanner),
):
    """Get the reconciled device list, sorted by address."""
    devices = [d for d in scanner.devices if d.online or not online_only]
    return DeviceListResponse(
        source=scanner.source.name,
        devices=[to_response(d) for d in devices],
        total=len(devices),
        online=sum(1 for d in devices if d.online),
        last_scan_time=scanner.last_scan_time,
    )


@router.post("/scan/trigger", response_model=ScanTriggerResponse)
async def trigger_scan(scanner=Depends(get_scanner)):
    """Trigger an immediate network scan."""
    try:
        result = await scanner.perform_scan()
        return ScanTriggerResponse(
            success=True,
            message="Scan completed successfully",
            **result
        )
    except LanScanError as e:
        return ScanTriggerResponse(
            success=False,
            message=f"Scan failed: {e.message}",
        )


@router.get("/auth/status", response_model=AuthStatusResponse)
async def get_auth_status(scanner=Depends(get_scanner)):
    """Current appliance authorization state."""
    return AuthStatusResponse(**scanner.auth_status)


@router.post("/auth/start", response_model=AuthStatusResponse)
async def start_authorization(scanner=Depends(get_scanner)):
    """Start (or retry) appliance authorization; confirm the request on the appliance."""
    return AuthStatusResponse(**scanner.start_authorization())


@router.post("/auth/forget", response_model=AuthStatusResponse)
async def forget_authorization(scanner=Depends(get_scanner)):
    """Forget the appliance authorization and clear device history."""
    await scanner.forget()
    return AuthStatusResponse(**scanner.auth_status)
