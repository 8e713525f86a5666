"""Discovery service: the operations offered to the API layer."""

import logging

from ..exceptions import HostNotFoundError, LanwatchError
from ..models.config import Config
from ..models.network import DiscoveryEvent, MonitoredNetwork
from ..models.probe import ProbeResult
from ..models.scan_result import ReconcileSummary, SweepResult
from .history_store import LivenessHistoryStore
from .inventory_store import InventoryStore
from .liveness_probe import LivenessProbe
from .network_sweeper import NetworkSweeper
from .reconciler import Reconciler
from .scan_scheduler import ScanScheduler

logger = logging.getLogger(__name__)


class DiscoveryService:
    """Wires probe, sweeper, scheduler and stores together."""

    def __init__(
        self,
        inventory: InventoryStore,
        history: LivenessHistoryStore,
        probe: LivenessProbe,
        sweeper: NetworkSweeper,
        reconciler: Reconciler,
        scheduler: ScanScheduler,
    ):
        self.inventory = inventory
        self.history = history
        self.probe = probe
        self.sweeper = sweeper
        self.reconciler = reconciler
        self.scheduler = scheduler

    @classmethod
    def from_config(cls, config: Config) -> "DiscoveryService":
        """Build a service with stores located by the storage configuration."""
        inventory = InventoryStore(config.storage.inventory_path)
        inventory.load()
        history = LivenessHistoryStore(config.storage.history_path, max_records=config.storage.history_limit)
        probe = LivenessProbe(config.probe)
        sweeper = NetworkSweeper(probe, config.sweep, inventory)
        reconciler = Reconciler(inventory, history)
        scheduler = ScanScheduler(
            inventory,
            sweeper,
            reconciler,
            default_interval_ms=config.scheduler.default_interval_ms,
        )
        return cls(inventory, history, probe, sweeper, reconciler, scheduler)

    async def start(self) -> None:
        """Arm recurring scans for every network that has them enabled."""
        await self.scheduler.initialize()

    async def stop(self) -> None:
        """Cancel all recurring scans."""
        await self.scheduler.shutdown()
        self.history.close()

    async def trigger_manual_check(self, host_id: int) -> ProbeResult:
        """Probe one inventory host now and record the outcome.

        Store failures are logged; the probe result is still returned.

        Raises:
            HostNotFoundError: If the host does not exist.
        """
        host = self.inventory.get_host(host_id)
        if host is None:
            raise HostNotFoundError(f"Host {host_id} not found")

        result = await self.probe.check_host(host.ip, host.url or None)
        try:
            self.inventory.set_host_status(host.id, result.status, result.latency_ms, result.packet_loss_pct)
            self.reconciler.record_observation(host.id, result.status, result.latency_ms)
        except LanwatchError as e:
            logger.error(f"Error recording check of host {host_id}: {e}")

        logger.info(f"Manual check of {host.display_name} ({host.ip}): {result.status.value}")
        return result

    async def trigger_manual_sweep(
        self, network_id: int, timeout: float | None = None, add_hosts: bool = True
    ) -> ReconcileSummary:
        """Sweep a monitored network now and reconcile the inventory."""
        return await self.scheduler.trigger_manual_sweep(network_id, timeout=timeout, add_hosts=add_hosts)

    async def sweep_range(self, descriptor: str, timeout: float | None = None) -> SweepResult:
        """Sweep an arbitrary range without touching the inventory."""
        return await self.sweeper.sweep(descriptor, deadline=timeout)

    async def set_auto_scan(
        self, network_id: int, enabled: bool, interval_ms: int | None = None
    ) -> MonitoredNetwork:
        """Switch recurring scans of a network on or off.

        Raises:
            NetworkNotFoundError: If the network does not exist.
        """
        network = self.inventory.update_network_auto_scan(network_id, enabled, interval_ms)
        if enabled:
            self.scheduler.enable(network_id, network.auto_scan_interval_ms)
        else:
            self.scheduler.disable(network_id)
        return network

    def get_uptime(self, host_id: int) -> float:
        """Rolling 24 hour uptime percentage of a host."""
        return self.history.rolling_uptime(host_id)

    def list_discovery_events(self, network_id: int | None = None) -> list[DiscoveryEvent]:
        return self.inventory.list_discovery_events(network_id)

    def clear_discovery_events(self, network_id: int | None = None) -> int:
        """Clear the discovery audit trail on operator request."""
        removed = self.inventory.clear_discovery_events(network_id)
        logger.info(f"Cleared {removed} discovery events")
        return removed
