"""Monitored network and address range models."""

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(UTC)


class AddressRange(BaseModel):
    """An IPv4 network identifier plus prefix length.

    Range-form descriptors (``a.b.c.start-end``) are represented as a /24 whose
    usable hosts are narrowed to ``first_host``..``last_host`` in the last octet.
    """

    model_config = ConfigDict(frozen=True)

    network_address: str
    prefix_length: int
    first_host: int | None = None
    last_host: int | None = None

    @property
    def is_octet_range(self) -> bool:
        """Whether this range came from a last-octet range descriptor."""
        return self.first_host is not None and self.last_host is not None

    def __str__(self) -> str:
        if self.is_octet_range:
            base = self.network_address.rsplit(".", 1)[0]
            return f"{base}.{self.first_host}-{self.last_host}"
        return f"{self.network_address}/{self.prefix_length}"


class UsableRange(BaseModel):
    """Usable host addresses of a range.

    ``addresses`` is only populated when the range is small enough to enumerate;
    larger ranges report their boundaries and count only.
    """

    model_config = ConfigDict(frozen=True)

    first: str | None = None
    last: str | None = None
    count: int = 0
    addresses: list[str] = Field(default_factory=list)

    @property
    def enumerated(self) -> bool:
        """Whether ``addresses`` holds every usable address."""
        return len(self.addresses) == self.count


class MonitoredNetwork(BaseModel):
    """A subnet registered by the operator for discovery."""

    id: int
    name: str = ""
    network_address: str
    prefix_length: int = Field(ge=0, le=32)
    auto_scan_enabled: bool = False
    auto_scan_interval_ms: int = 300000
    last_scanned_at: datetime | None = None
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def cidr(self) -> str:
        return f"{self.network_address}/{self.prefix_length}"

    @property
    def address_range(self) -> AddressRange:
        """Return the range swept for this network."""
        return AddressRange(
            network_address=self.network_address, prefix_length=self.prefix_length
        )


class DiscoveryEventKind(str, Enum):
    """Kinds of events recorded during reconciliation."""

    NEW_DEVICE = "new_device"
    DISCONNECTED = "disconnected"


class DiscoveryEvent(BaseModel):
    """Audit trail entry for a host appearing on or leaving a network."""

    id: int
    network_id: int
    kind: DiscoveryEventKind
    host_id: int
    occurred_at: datetime = Field(default_factory=utc_now)
