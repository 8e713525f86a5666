"""Inventory host and liveness history models."""

from datetime import datetime
from enum import Enum

from pydantic import BaseModel, Field

from .network import utc_now


class HostStatus(str, Enum):
    """Reachability status of a host."""

    ONLINE = "online"
    OFFLINE = "offline"


class Host(BaseModel):
    """A host tracked in the inventory."""

    id: int
    ip: str
    name: str = ""
    description: str = ""
    url: str = ""
    status: HostStatus = HostStatus.ONLINE
    tags: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=utc_now)
    last_checked_at: datetime | None = None
    latency_ms: float | None = None
    packet_loss_pct: float | None = None
    uptime_pct: float = 100.0

    @property
    def display_name(self) -> str:
        """Return best available name for display."""
        return self.name or self.ip


class LivenessRecord(BaseModel):
    """One timestamped observation of a host's reachability."""

    host_id: int
    status: HostStatus
    observed_at: datetime = Field(default_factory=utc_now)
    latency_ms: float | None = None
