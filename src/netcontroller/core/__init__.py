"""Core application components package."""

from .config import settings
from .exceptions import (
    AuthError,
    ConnectError,
    IncompatibleVersionError,
    NetworkControllerError,
    ProbeTimeoutError,
    ProtocolError,
    StoreError,
)
from .version import get_version

__all__ = [
    "settings",
    "get_version",
    "AuthError",
    "ConnectError",
    "IncompatibleVersionError",
    "NetworkControllerError",
    "ProbeTimeoutError",
    "ProtocolError",
    "StoreError",
]
