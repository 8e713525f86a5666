"""Recurring per-network sweeps with a one-sweep-per-network guard."""

import asyncio
import logging

from ..exceptions import ConcurrencyGuardRejected, NetworkNotFoundError
from ..models.network import MonitoredNetwork
from ..models.scan_result import ReconcileSummary
from .inventory_store import InventoryStore
from .network_sweeper import NetworkSweeper
from .reconciler import Reconciler

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_MS = 300000


class ScanTaskRegistry:
    """Owns the recurring scan task of each monitored network.

    At most one task is registered per network; registering a new one cancels
    the previous task.
    """

    def __init__(self):
        self._tasks: dict[int, asyncio.Task] = {}

    def replace(self, network_id: int, task: asyncio.Task) -> None:
        """Register a task for a network, cancelling any task it replaces."""
        previous = self._tasks.pop(network_id, None)
        if previous is not None and not previous.done():
            previous.cancel()
        self._tasks[network_id] = task

    def cancel(self, network_id: int) -> bool:
        """Cancel and forget a network's task. Returns False if none was registered."""
        task = self._tasks.pop(network_id, None)
        if task is None:
            return False
        if not task.done():
            task.cancel()
        return True

    def cancel_all(self) -> list[asyncio.Task]:
        """Cancel every task. Returns the cancelled tasks so callers can await them."""
        tasks = list(self._tasks.values())
        self._tasks.clear()
        for task in tasks:
            if not task.done():
                task.cancel()
        return tasks

    def get(self, network_id: int) -> asyncio.Task | None:
        return self._tasks.get(network_id)

    def network_ids(self) -> list[int]:
        """Networks with a running task."""
        return [network_id for network_id, task in self._tasks.items() if not task.done()]

    def __contains__(self, network_id: int) -> bool:
        task = self._tasks.get(network_id)
        return task is not None and not task.done()

    def __len__(self) -> int:
        return len(self.network_ids())


class ScanScheduler:
    """Runs sweep-and-reconcile cycles on a timer for each enabled network."""

    def __init__(
        self,
        inventory: InventoryStore,
        sweeper: NetworkSweeper,
        reconciler: Reconciler,
        registry: ScanTaskRegistry | None = None,
        default_interval_ms: int = DEFAULT_INTERVAL_MS,
    ):
        self.inventory = inventory
        self.sweeper = sweeper
        self.reconciler = reconciler
        self.registry = registry if registry is not None else ScanTaskRegistry()
        self.default_interval_ms = default_interval_ms
        self._locks: dict[int, asyncio.Lock] = {}

    def _lock_for(self, network_id: int) -> asyncio.Lock:
        lock = self._locks.get(network_id)
        if lock is None:
            lock = self._locks[network_id] = asyncio.Lock()
        return lock

    def is_sweeping(self, network_id: int) -> bool:
        """Whether a sweep is in flight for the network."""
        return self._lock_for(network_id).locked()

    def enable(self, network_id: int, interval_ms: int | None = None) -> None:
        """Start recurring scans of a network, replacing any existing timer.

        The first sweep runs as soon as any replaced timer has stopped, the
        next ones every ``interval_ms``.
        Must be called from a running event loop.
        """
        interval_ms = interval_ms or self.default_interval_ms
        if interval_ms <= 0:
            raise ValueError(f"Scan interval must be positive, got {interval_ms}")

        previous = self.registry.get(network_id)
        task = asyncio.get_running_loop().create_task(
            self._run_timer(network_id, interval_ms / 1000, previous), name=f"scan-network-{network_id}"
        )
        self.registry.replace(network_id, task)
        logger.info(f"Auto scan enabled for network {network_id}, interval: {interval_ms}ms")

    def disable(self, network_id: int) -> None:
        """Stop recurring scans of a network. Does nothing if none are running."""
        if self.registry.cancel(network_id):
            logger.info(f"Auto scan stopped for network {network_id}")

    async def initialize(self) -> int:
        """Enable recurring scans for every network that has them switched on."""
        networks = self.inventory.list_auto_scan_networks()
        if networks:
            logger.info(f"Initializing auto scan for {len(networks)} networks")
        for network in networks:
            self.enable(network.id, network.auto_scan_interval_ms)
        return len(networks)

    async def shutdown(self) -> None:
        """Cancel all timers and wait for them to finish."""
        tasks = self.registry.cancel_all()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
            logger.info(f"Stopped {len(tasks)} auto scans")

    async def _run_timer(
        self, network_id: int, interval_seconds: float, previous: asyncio.Task | None = None
    ) -> None:
        if previous is not None:
            # Let the replaced timer unwind and release the network lock first
            await asyncio.gather(previous, return_exceptions=True)
        while True:
            await self._safe_tick(network_id)
            await asyncio.sleep(interval_seconds)

    async def _safe_tick(self, network_id: int) -> None:
        """Run one tick. Failures are logged and never end the timer."""
        try:
            await self.run_tick(network_id)
        except ConcurrencyGuardRejected:
            logger.info(f"Skipping scheduled scan of network {network_id}: sweep already running")
        except Exception:
            logger.exception(f"Scheduled scan of network {network_id} failed")

    async def run_tick(self, network_id: int) -> ReconcileSummary | None:
        """Run one scheduled sweep-and-reconcile cycle.

        Returns None when the network no longer exists or has auto scan off.

        Raises:
            ConcurrencyGuardRejected: If a sweep of the network is already running.
        """
        lock = self._lock_for(network_id)
        if lock.locked():
            raise ConcurrencyGuardRejected(network_id)

        async with lock:
            network = self.inventory.get_monitored_network(network_id)
            if network is None or not network.auto_scan_enabled:
                logger.debug(f"Network {network_id} is gone or has auto scan off, skipping tick")
                return None
            logger.info(f"Performing scan for network {network_id} ({network.name})")
            return await self._sweep_and_reconcile(network, add_hosts=True, deadline=None)

    async def trigger_manual_sweep(
        self, network_id: int, timeout: float | None = None, add_hosts: bool = True
    ) -> ReconcileSummary:
        """Sweep a network now, waiting for any in-flight sweep of it to finish first.

        Raises:
            NetworkNotFoundError: If the network does not exist.
        """
        async with self._lock_for(network_id):
            network = self.inventory.get_monitored_network(network_id)
            if network is None:
                raise NetworkNotFoundError(f"Network {network_id} not found")
            logger.info(
                f"Starting manual scan for network {network_id}: {network.cidr}, "
                f"timeout: {timeout}, add_hosts: {add_hosts}"
            )
            return await self._sweep_and_reconcile(network, add_hosts=add_hosts, deadline=timeout)

    async def _sweep_and_reconcile(
        self, network: MonitoredNetwork, add_hosts: bool, deadline: float | None
    ) -> ReconcileSummary:
        result = await self.sweeper.sweep(network.address_range, deadline=deadline)
        return self.reconciler.reconcile(network, result, add_hosts=add_hosts)
