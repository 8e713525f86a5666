"""Network sweeper: batched TCP discovery of live hosts in an address range."""

import asyncio
import logging
import socket
import time
from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from ..exceptions import InvalidRange
from ..models.config import MAX_PORT_TIMEOUT_SECONDS, SweepConfig
from ..models.network import AddressRange
from ..models.scan_result import DiscoveredHost, SweepResult
from .address_range import SWEEP_MAX_PREFIX, SWEEP_MIN_PREFIX, expand, parse_descriptor
from .liveness_probe import LivenessProbe

if TYPE_CHECKING:
    from .inventory_store import InventoryStore

logger = logging.getLogger(__name__)

# Called with (batches_completed, total_batches, live_so_far) after each batch
ProgressCallback = Callable[[int, int, int], None]


def short_hostname(hostname: str) -> str | None:
    """Strip a trailing dot and any domain suffix, keeping the leading label."""
    hostname = hostname.strip().rstrip(".")
    if not hostname:
        return None
    return hostname.split(".")[0]


class NetworkSweeper:
    """Finds live hosts in a range by racing TCP connects to a few common ports."""

    def __init__(
        self,
        probe: LivenessProbe | None = None,
        config: SweepConfig | None = None,
        inventory: "InventoryStore | None" = None,
    ):
        self.probe = probe or LivenessProbe()
        self.config = config or SweepConfig()
        self.inventory = inventory

    async def sweep(
        self,
        address_range: AddressRange | str,
        batch_size: int | None = None,
        port_timeout: float | None = None,
        deadline: float | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> SweepResult:
        """Sweep a range and return its live hosts.

        Args:
            address_range: Range to sweep, or a descriptor string to parse.
            batch_size: Addresses probed concurrently per batch.
            port_timeout: Per-connect timeout in seconds, capped at 1.5.
            deadline: Seconds before in-flight probes are abandoned. Hosts
                found before the deadline are still returned.
            on_progress: Called after every completed batch.

        Raises:
            InvalidRange: If the range is malformed or outside /24-/30.
        """
        if isinstance(address_range, str):
            address_range = parse_descriptor(address_range)
        self._check_sweepable(address_range)

        usable = expand(address_range)
        addresses = usable.addresses
        batch_size = max(1, batch_size or self.config.batch_size)
        port_timeout = min(port_timeout or self.config.port_timeout_seconds, MAX_PORT_TIMEOUT_SECONDS)
        if deadline is None:
            deadline = self.config.deadline_seconds

        batches = [addresses[i : i + batch_size] for i in range(0, len(addresses), batch_size)]
        start_time = datetime.now(UTC)
        started = time.perf_counter()
        live: list[DiscoveredHost] = []
        probed: set[str] = set()
        progress = {"batches": 0}

        logger.info(f"Starting sweep of {address_range}: {len(addresses)} addresses in {len(batches)} batches")

        async def run_batches() -> None:
            for index, batch in enumerate(batches, start=1):
                logger.debug(f"Sweeping batch {index} of {len(batches)} ({len(batch)} addresses)")
                found = await self._sweep_batch(batch, port_timeout, live, probed)
                progress["batches"] = index
                if found:
                    logger.info(f"Found {found} active hosts in batch {index}")
                if on_progress:
                    on_progress(index, len(batches), len(live))

        timed_out = False
        try:
            if deadline:
                await asyncio.wait_for(run_batches(), deadline)
            else:
                await run_batches()
        except TimeoutError:
            timed_out = True
            logger.warning(
                f"Sweep of {address_range} hit its {deadline}s deadline after "
                f"{progress['batches']}/{len(batches)} batches, returning {len(live)} hosts"
            )

        hosts = await self._resolve_names(live)
        logger.info(f"Sweep of {address_range} complete: found {len(hosts)} active hosts")

        return SweepResult(
            target_range=str(address_range),
            hosts=hosts,
            scan_time=start_time,
            duration_seconds=time.perf_counter() - started,
            addresses_scanned=len(addresses),
            probed_addresses=[ip for ip in addresses if ip in probed],
            batches_completed=progress["batches"],
            total_batches=len(batches),
            timed_out=timed_out,
        )

    def _check_sweepable(self, address_range: AddressRange) -> None:
        if address_range.is_octet_range:
            return
        prefix = address_range.prefix_length
        if not SWEEP_MIN_PREFIX <= prefix <= SWEEP_MAX_PREFIX:
            raise InvalidRange(
                f"Sweeps are limited to /{SWEEP_MIN_PREFIX}-/{SWEEP_MAX_PREFIX}, got /{prefix}"
            )

    async def _sweep_batch(
        self, batch: list[str], port_timeout: float, live: list[DiscoveredHost], probed: set[str]
    ) -> int:
        """Probe every address of a batch concurrently, appending live hosts as they answer.

        Addresses whose probe ran to completion are added to ``probed``.
        """
        found_before = len(live)

        async def probe_one(ip: str) -> None:
            host = await self._probe_address(ip, port_timeout)
            if host is not None:
                live.append(host)
            probed.add(ip)

        results = await asyncio.gather(*[probe_one(ip) for ip in batch], return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.debug(f"Probe error: {result}")

        return len(live) - found_before

    async def _probe_address(self, ip: str, port_timeout: float) -> DiscoveredHost | None:
        attempt = await self.probe.first_open_port(ip, self.config.quick_ports, port_timeout)
        if attempt.ok:
            return DiscoveredHost(ip=ip, port=attempt.port, latency_ms=attempt.latency_ms)

        if self.config.echo_fallback:
            echo = await self.probe.echo(ip, timeout=port_timeout)
            if echo.ok:
                return DiscoveredHost(
                    ip=ip, latency_ms=echo.latency_ms, packet_loss_pct=echo.packet_loss_pct
                )
        return None

    async def _resolve_names(self, hosts: list[DiscoveredHost]) -> list[DiscoveredHost]:
        """Attach display names: inventory name first, reverse DNS second."""
        if not hosts:
            return []

        known: dict[str, str] = {}
        if self.inventory is not None:
            try:
                known = {h.ip: h.name for h in self.inventory.list_hosts()}
            except Exception as e:
                logger.error(f"Error reading inventory for name lookup: {e}")

        loop = asyncio.get_running_loop()
        dns_timeout = self.config.dns_timeout_seconds

        async def resolve_one(host: DiscoveredHost) -> DiscoveredHost:
            if host.ip in known:
                name = known[host.ip] or None
                return host.model_copy(
                    update={"hostname": name, "is_existing": True, "existing_name": name}
                )

            try:
                hostname, _, _ = await asyncio.wait_for(
                    loop.run_in_executor(None, socket.gethostbyaddr, host.ip),
                    timeout=dns_timeout,
                )
                return host.model_copy(update={"hostname": short_hostname(hostname)})
            except TimeoutError:
                logger.debug(f"DNS lookup timeout for {host.ip}")
            except (socket.herror, socket.gaierror):
                pass  # No reverse DNS
            except Exception as e:
                logger.debug(f"DNS lookup error for {host.ip}: {e}")

            return host

        resolved = await asyncio.gather(*[resolve_one(host) for host in hosts])
        names = sum(1 for h in resolved if h.hostname)
        existing = sum(1 for h in resolved if h.is_existing)
        logger.info(f"Got {names} names for {len(resolved)} hosts, {existing} already in inventory")
        return list(resolved)
