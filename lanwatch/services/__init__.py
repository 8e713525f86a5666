"""Services for discovering hosts and tracking their liveness."""

from .discovery import DiscoveryService
from .history_store import LivenessHistoryStore
from .inventory_store import InventoryStore
from .liveness_probe import LivenessProbe
from .network_sweeper import NetworkSweeper
from .reconciler import Reconciler
from .scan_scheduler import ScanScheduler, ScanTaskRegistry

__all__ = [
    "DiscoveryService",
    "InventoryStore",
    "LivenessHistoryStore",
    "LivenessProbe",
    "NetworkSweeper",
    "Reconciler",
    "ScanScheduler",
    "ScanTaskRegistry",
]
