"""Network sweep result models."""

from datetime import datetime

from pydantic import BaseModel, Field

from .network import utc_now


class DiscoveredHost(BaseModel):
    """A live address found by a sweep."""

    ip: str
    hostname: str | None = None
    port: int | None = None  # Quick port that answered, None if found by echo
    latency_ms: float | None = None
    packet_loss_pct: float | None = None
    is_existing: bool = False  # Whether the inventory already tracks this IP
    existing_name: str | None = None

    @property
    def display_name(self) -> str:
        """Return best available name for display."""
        if self.hostname:
            return self.hostname
        if self.existing_name:
            return self.existing_name
        return f"Host {self.ip.rsplit('.', 1)[-1]}"


class SweepResult(BaseModel):
    """Result of one sweep over an address range."""

    target_range: str
    hosts: list[DiscoveredHost] = Field(default_factory=list)
    scan_time: datetime = Field(default_factory=utc_now)
    duration_seconds: float = 0.0
    addresses_scanned: int = 0
    probed_addresses: list[str] = Field(default_factory=list)  # Probes that ran to completion
    batches_completed: int = 0
    total_batches: int = 0
    timed_out: bool = False

    @property
    def hosts_up(self) -> int:
        """Count of live hosts."""
        return len(self.hosts)

    @property
    def live_addresses(self) -> set[str]:
        """Set of live IP addresses."""
        return {h.ip for h in self.hosts}

    def was_probed(self, ip: str) -> bool:
        """Whether an address was actually probed.

        Every address counts as probed unless the sweep hit its deadline.
        """
        return not self.timed_out or ip in self.probed_addresses or ip in self.live_addresses

    @property
    def complete(self) -> bool:
        """Whether every batch ran before the deadline."""
        return not self.timed_out and self.batches_completed == self.total_batches


class ReconcileSummary(BaseModel):
    """Outcome of reconciling a sweep against the inventory."""

    network_id: int
    hosts: list[DiscoveredHost] = Field(default_factory=list)
    added_count: int = 0
    disconnected_count: int = 0
    updated_count: int = 0
    timed_out: bool = False
    scanned_at: datetime = Field(default_factory=utc_now)
