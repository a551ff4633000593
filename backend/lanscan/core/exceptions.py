"""Exception hierarchy for the LAN scanner.

Probe-level network errors never appear here: a timeout or refusal on a single
address is folded into the scan result. These exceptions cover the failures
that callers actually have to react to.
"""

from typing import Optional


class LanScanError(Exception):
    """Base exception for all LAN scanner errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional error context.
    """

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} (details: {self.details})"
        return self.message


class DiscoveryError(LanScanError):
    """No discovery source could produce a device list."""


class ApplianceError(LanScanError):
    """Base class for failures while talking to the appliance."""


class ApplianceTransportError(ApplianceError):
    """HTTP, TLS, JSON or schema failure on an appliance REST call."""


class ApplianceApiError(ApplianceError):
    """The appliance answered with ``success: false``."""

    def __init__(self, message: str, error_code: Optional[str] = None, details: Optional[dict] = None):
        self.error_code = error_code
        super().__init__(message, details)


class SessionError(ApplianceError):
    """Login failed or the session token was rejected.

    Recovery is a full re-authorization, never a blind login retry.
    """


class InvalidTransitionError(LanScanError):
    """An event was applied to an authorization state that does not accept it."""


class StorageError(LanScanError):
    """Persistent storage (device store or token file) could not be read or written."""
