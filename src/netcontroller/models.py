"""Data models for the network controller."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class ElementKind(str, Enum):
    """Kind of a network element as registered in the store."""

    COLLECTOR = "collector"
    PROXY_REMOTE = "proxy-remote"
    PROXY_LOCAL = "proxy-local"

    @property
    def is_proxy(self) -> bool:
        return self is not ElementKind.COLLECTOR

    @property
    def store_flavor(self) -> str:
        """Path segment selecting the collector or proxy flavored store operations."""
        return "proxy" if self.is_proxy else "collector"


# Element "type" values used by the store for legacy records
_LEGACY_KINDS = {
    None: ElementKind.COLLECTOR,
    "remote": ElementKind.PROXY_REMOTE,
    "local": ElementKind.PROXY_LOCAL,
}


_TRUE_STRINGS = frozenset({"true", "1", "yes", "on"})
_FALSE_STRINGS = frozenset({"false", "0", "no", "off"})


def _parse_flag(value: Any, default: bool) -> bool:
    """Read a boolean flag from a store record; strings are parsed, not truth-tested."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
    raise ValueError(f"Invalid boolean flag {value!r}")


class ProbeStatus(str, Enum):
    """Status reported for a network element."""

    OK = "OK"
    ERROR = "ERROR"


@dataclass(frozen=True)
class NetworkElement:
    """A remote relay component read from the roster."""

    id: str
    address: str
    port: int
    kind: ElementKind
    name: str
    poll_enabled: bool = True
    configured: bool = True
    upgradable: bool = False

    @property
    def is_pollable(self) -> bool:
        """Local proxies and elements with polling disabled are never contacted."""
        return self.kind is not ElementKind.PROXY_LOCAL and self.poll_enabled

    @classmethod
    def from_payload(cls, payload: dict[str, Any]) -> NetworkElement:
        """Build an element from a store record.

        Raises:
            KeyError, TypeError, ValueError: If the record is malformed
        """
        raw_kind = payload.get("type")
        if raw_kind in _LEGACY_KINDS:
            kind = _LEGACY_KINDS[raw_kind]
        else:
            kind = ElementKind(raw_kind)
        element_id = payload.get("_id", payload.get("id"))
        if element_id is None:
            raise KeyError("_id")
        return cls(
            id=str(element_id),
            address=str(payload["address"]),
            port=int(payload["port"]),
            kind=kind,
            name=str(payload.get("name") or payload["address"]),
            poll_enabled=_parse_flag(payload.get("poll"), True),
            configured=_parse_flag(payload.get("configured"), True),
            upgradable=_parse_flag(payload.get("upgradable"), False),
        )


@dataclass(frozen=True)
class LogRecord:
    """A log entry drained from a network element."""

    timestamp: datetime
    severity: str
    description: str

    def to_payload(self) -> dict[str, Any]:
        """Convert to JSON-serializable payload."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "severity": self.severity,
            "description": self.description,
        }


@dataclass(frozen=True)
class MonitorSnapshot:
    """Self-reported status of a network element."""

    status: str
    disk: int
    cpu: int
    process_cpu: int
    description: str


@dataclass(frozen=True)
class ProbeOutcome:
    """Status of one probe, handed to the reporter and then discarded."""

    status: ProbeStatus
    message: str
    disk: int = 0
    cpu: int = 0
    process_cpu: int = 0

    @property
    def ok(self) -> bool:
        return self.status is ProbeStatus.OK

    @classmethod
    def failure(cls, message: str) -> ProbeOutcome:
        return cls(status=ProbeStatus.ERROR, message=message)

    @classmethod
    def from_monitor(cls, snapshot: MonitorSnapshot | None) -> ProbeOutcome:
        if snapshot is None:
            return cls(status=ProbeStatus.OK, message="OK")
        # the element's own status text is free-form; only ERROR is carried over
        if snapshot.status.strip().upper() == ProbeStatus.ERROR.value:
            status = ProbeStatus.ERROR
        else:
            status = ProbeStatus.OK
        return cls(
            status=status,
            message=snapshot.description or snapshot.status or "OK",
            disk=snapshot.disk,
            cpu=snapshot.cpu,
            process_cpu=snapshot.process_cpu,
        )

    def stats(self) -> dict[str, int]:
        return {"disk": self.disk, "cpu": self.cpu, "pcpu": self.process_cpu}


@dataclass
class ProbeResult:
    """Outcome of a probe plus the logs drained before it ended."""

    outcome: ProbeOutcome
    logs: list[LogRecord] = field(default_factory=list)


@dataclass(frozen=True)
class CycleSummary:
    """Counts collected over one poll cycle."""

    polled: int = 0
    ok: int = 0
    errors: int = 0
    skipped: int = 0
