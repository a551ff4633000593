# Appliance (Freebox) discovery, authorization and device queries
from .client import ApplianceClient, compute_password
from .session import ApplianceSession, AuthorizationFlow
from .token_store import TokenStore

__all__ = ["ApplianceClient", "compute_password", "ApplianceSession", "AuthorizationFlow", "TokenStore"]
