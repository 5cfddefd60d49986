"""Exceptions raised while talking to network elements and the central store."""


class NetworkControllerError(Exception):
    """Base class for all network controller errors."""


class ConnectError(NetworkControllerError):
    """The stream socket or the TLS transport could not be established."""


class AuthError(NetworkControllerError):
    """The network element refused the login."""


class IncompatibleVersionError(NetworkControllerError):
    """The network element runs a build older than the minimum accepted one."""

    def __init__(self, version: int, minimum: int) -> None:
        super().__init__(
            f"Version too old ({version} < {minimum}), please update the component."
        )
        self.version = version
        self.minimum = minimum


class ProtocolError(NetworkControllerError):
    """Unexpected command sequence or malformed frame."""


class ProbeTimeoutError(NetworkControllerError, TimeoutError):
    """A probe did not finish before its deadline."""

    def __init__(self, timeout: float) -> None:
        super().__init__(f"Timed out after {timeout:g} seconds")
        self.timeout = timeout


class StoreError(NetworkControllerError):
    """A read or write against the central store failed."""
