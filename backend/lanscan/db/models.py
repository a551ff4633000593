from sqlalchemy import Column, String, Boolean, BigInteger
from .database import Base


class Device(Base):
    """Persisted appliance-sourced device, keyed by its hardware address."""

    __tablename__ = "devices"

    mac_address = Column(String(17), primary_key=True)
    ip_address = Column(String(45), index=True, nullable=False)
    hostname = Column(String(255), nullable=False)
    last_seen = Column(BigInteger, nullable=False)  # epoch millis
    is_online = Column(Boolean, default=False, nullable=False)

    def __repr__(self):
        return f"<Device(mac={self.mac_address}, ip={self.ip_address}, online={self.is_online})>"
