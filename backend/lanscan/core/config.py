from pydantic_settings import BaseSettings
from functools import lru_cache
from pathlib import Path
import socket


class Settings(BaseSettings):
    """Application settings."""

    # Application
    APP_NAME: str = "LAN Scanner"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Storage
    DATABASE_URL: str = "sqlite+aiosqlite:///./lanscan.db"
    DATA_DIR: Path = Path.home() / ".lanscan"  # private app-scoped area (app token)
    OUI_DATABASE_PATH: Path = Path(__file__).parent.parent / "scanner" / "oui_database.json"

    # Scanning
    SCAN_INTERVAL: int = 120  # seconds between background scans

    # Subnet probing
    PROBE_PORT: int = 135  # arbitrary; a refusal still proves the host exists
    PROBE_TIMEOUT: float = 0.05  # seconds per connection attempt
    PROBE_FIRST_HOST: int = 1
    PROBE_LAST_HOST: int = 254

    # Appliance (Freebox) API
    APPLIANCE_SERVICE_TYPE: str = "_fbx-api._tcp.local."
    APPLIANCE_HTTPS_PORT: int = 443  # advertised port is for remote access only
    APPLIANCE_DISCOVERY_TIMEOUT: float = 5.0
    APPLIANCE_POLL_INTERVAL: float = 1.0
    APPLIANCE_REQUEST_TIMEOUT: float = 10.0
    APPLIANCE_VERIFY_TLS: bool = False  # appliance certificates are signed by a private CA
    APPLIANCE_FALLBACK_TO_PROBE: bool = True

    # Identity presented to the appliance when requesting authorization
    APP_ID: str = "fr.lanscan.app"
    APP_DISPLAY_NAME: str = "LAN Scanner"
    DEVICE_NAME: str = socket.gethostname()

    # CORS
    CORS_ORIGINS: list[str] = ["*"]

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
