"""Liveness probe result models."""

from enum import Enum

from pydantic import BaseModel

from .host import HostStatus


class ProbeOutcome(str, Enum):
    """Why a probe ended the way it did."""

    SUCCESS = "success"
    TIMEOUT = "timeout"
    CONNECTION_REFUSED = "connection_refused"
    UNREACHABLE = "unreachable"
    INVALID_ADDRESS = "invalid_address"
    ERROR = "error"


class ProbeMethod(str, Enum):
    """Which layer of the probe proved the host reachable."""

    URL = "url"
    ECHO = "echo"
    PORT = "port"


class ProbeResult(BaseModel):
    """Result of checking a single address.

    ``packet_loss_pct`` is 100 whenever loss could not be measured, including
    hosts that only answered on a TCP port; ``loss_measured`` tells the two
    cases apart.
    """

    address: str
    reachable: bool = False
    latency_ms: float | None = None
    packet_loss_pct: float | None = 100.0
    via_port: int | None = None
    method: ProbeMethod | None = None
    outcome: ProbeOutcome = ProbeOutcome.ERROR
    loss_measured: bool = False

    @property
    def status(self) -> HostStatus:
        """Collapse the probe outcome to an inventory status."""
        return HostStatus.ONLINE if self.reachable else HostStatus.OFFLINE

    @classmethod
    def offline(cls, address: str, outcome: ProbeOutcome) -> "ProbeResult":
        """Build an unreachable result carrying the diagnostic outcome."""
        return cls(address=address, reachable=False, outcome=outcome)
