# Database module
from .database import engine, AsyncSessionLocal, Base, init_db
from .models import Device
from .repository import DeviceRepository

__all__ = ["engine", "AsyncSessionLocal", "Base", "init_db", "Device", "DeviceRepository"]
