"""Data models for the discovery engine."""

from .config import Config, NetworkSeed, ProbeConfig, SchedulerConfig, Settings, StorageConfig, SweepConfig
from .host import Host, HostStatus, LivenessRecord
from .network import AddressRange, DiscoveryEvent, DiscoveryEventKind, MonitoredNetwork, UsableRange
from .probe import ProbeMethod, ProbeOutcome, ProbeResult
from .scan_result import DiscoveredHost, ReconcileSummary, SweepResult

__all__ = [
    "AddressRange",
    "Config",
    "DiscoveredHost",
    "DiscoveryEvent",
    "DiscoveryEventKind",
    "Host",
    "HostStatus",
    "LivenessRecord",
    "MonitoredNetwork",
    "NetworkSeed",
    "ProbeConfig",
    "ProbeMethod",
    "ProbeOutcome",
    "ProbeResult",
    "ReconcileSummary",
    "SchedulerConfig",
    "Settings",
    "StorageConfig",
    "SweepConfig",
    "SweepResult",
    "UsableRange",
]
