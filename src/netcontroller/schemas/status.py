"""Status schemas exchanged with the central store."""

from pydantic import BaseModel, Field


class StatusStats(BaseModel):
    """Resource statistics attached to a status update."""

    disk: int = 0
    cpu: int = 0
    pcpu: int = 0


class StatusUpdate(BaseModel):
    """Status of one component as written to the store."""

    component: str
    ip: str = ""
    status: str
    message: str
    stats: StatusStats = Field(default_factory=StatusStats)
    type: str


class VersionUpdate(BaseModel):
    """Build version reported by a network element."""

    version: str


class ElementLogRequest(BaseModel):
    """One log entry drained from a network element."""

    timestamp: str
    severity: str
    description: str
