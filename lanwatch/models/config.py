"""Configuration models using Pydantic for validation."""

import ipaddress
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

DEFAULT_FALLBACK_PORTS = [22, 80, 443, 3389, 8080, 8006]
DEFAULT_QUICK_PORTS = [22, 80, 443]
MAX_PORT_TIMEOUT_SECONDS = 1.5


def _validate_ports(ports: list[int]) -> list[int]:
    """Validate that every port is a usable TCP port number."""
    if not ports:
        raise ValueError("At least one port is required")
    for port in ports:
        if not 1 <= port <= 65535:
            raise ValueError(f"Port must be between 1 and 65535, got {port}")
    return ports


class ProbeConfig(BaseModel):
    """Timeouts and ports for single-host liveness checks."""

    url_timeout_seconds: float = Field(default=5.0, gt=0)
    echo_timeout_seconds: float = Field(default=3.0, gt=0)
    port_timeout_seconds: float = Field(default=1.5, gt=0)
    fallback_ports: list[int] = Field(default_factory=lambda: list(DEFAULT_FALLBACK_PORTS))
    privileged_echo: bool = False  # Use raw ICMP sockets (requires root)

    @field_validator("fallback_ports")
    @classmethod
    def validate_ports(cls, v: list[int]) -> list[int]:
        return _validate_ports(v)


class SweepConfig(BaseModel):
    """Network sweep tuning."""

    batch_size: int = Field(default=200, ge=1)
    port_timeout_seconds: float = Field(default=1.5, gt=0, le=MAX_PORT_TIMEOUT_SECONDS)
    quick_ports: list[int] = Field(default_factory=lambda: list(DEFAULT_QUICK_PORTS))
    dns_timeout_seconds: float = Field(default=5.0, gt=0)
    echo_fallback: bool = False  # Also try one ICMP echo when no quick port answers
    deadline_seconds: float | None = Field(default=None, gt=0)

    @field_validator("quick_ports")
    @classmethod
    def validate_ports(cls, v: list[int]) -> list[int]:
        return _validate_ports(v)


class SchedulerConfig(BaseModel):
    """Recurring scan defaults."""

    default_interval_ms: int = Field(default=300000, ge=1000)


class StorageConfig(BaseModel):
    """Where inventory and history are persisted."""

    data_dir: str = "data"
    inventory_file: str = "inventory.json"
    history_file: str = "history.db"
    history_limit: int = Field(default=1000, ge=1)

    @property
    def inventory_path(self) -> Path:
        return Path(self.data_dir) / self.inventory_file

    @property
    def history_path(self) -> Path:
        return Path(self.data_dir) / self.history_file


class NetworkSeed(BaseModel):
    """A network registered at start-up."""

    name: str
    range: str  # CIDR notation, e.g., "192.168.1.0/24"
    auto_scan_enabled: bool = False
    auto_scan_interval_ms: int = Field(default=300000, ge=1000)

    @field_validator("range")
    @classmethod
    def validate_cidr(cls, v: str) -> str:
        """Validate that range is a valid IPv4 CIDR notation."""
        try:
            ipaddress.IPv4Network(v, strict=False)
        except ValueError as e:
            raise ValueError(f"Invalid CIDR range '{v}': {e}")
        return v

    @property
    def network_address(self) -> str:
        return str(ipaddress.IPv4Network(self.range, strict=False).network_address)

    @property
    def prefix_length(self) -> int:
        return ipaddress.IPv4Network(self.range, strict=False).prefixlen


class Settings(BaseModel):
    """General application settings."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_dir: str = "logs"


class Config(BaseModel):
    """Main configuration model."""

    probe: ProbeConfig = Field(default_factory=ProbeConfig)
    sweep: SweepConfig = Field(default_factory=SweepConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    networks: list[NetworkSeed] = Field(default_factory=list)
    settings: Settings = Field(default_factory=Settings)

    @classmethod
    def load(cls, path: Path | str = "config.json") -> "Config":
        """Load configuration from a JSON file."""
        import json

        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")

        with open(path) as f:
            data = json.load(f)

        return cls.model_validate(data)

    @classmethod
    def load_or_default(cls, path: Path | str = "config.json") -> "Config":
        """Load configuration or return default if file doesn't exist."""
        try:
            return cls.load(path)
        except FileNotFoundError:
            return cls()
