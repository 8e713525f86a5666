"""Reconciliation of sweep results against the stored inventory."""

import logging

from ..models.host import Host, HostStatus
from ..models.network import DiscoveryEventKind, MonitoredNetwork, utc_now
from ..models.scan_result import DiscoveredHost, ReconcileSummary, SweepResult
from .history_store import LivenessHistoryStore
from .inventory_store import InventoryStore

logger = logging.getLogger(__name__)


class Reconciler:
    """Applies sweep outcomes to the inventory and liveness history."""

    def __init__(self, inventory: InventoryStore, history: LivenessHistoryStore):
        self.inventory = inventory
        self.history = history

    def record_observation(self, host_id: int, status: HostStatus, latency_ms: float | None) -> float:
        """Append a liveness record and refresh the host's stored uptime.

        Returns the recomputed uptime percentage.
        """
        self.history.append(host_id, status, latency_ms)
        uptime = self.history.rolling_uptime(host_id)
        self.inventory.set_host_uptime(host_id, uptime)
        return uptime

    def reconcile(
        self, network: MonitoredNetwork, result: SweepResult, add_hosts: bool = True
    ) -> ReconcileSummary:
        """Classify new and disconnected hosts and refresh every host's status.

        Per-host failures are logged and skipped. Hosts the sweep never reached
        before its deadline keep their status. The network's last scanned time
        is always updated.
        """
        now = utc_now()
        live = {h.ip: h for h in result.hosts}
        added = disconnected = updated = skipped = 0

        try:
            known = {
                h.ip: h
                for h in self.inventory.list_hosts_in_network(network.network_address, network.prefix_length)
            }

            if add_hosts:
                for ip, found in live.items():
                    if ip in known or found.is_existing:
                        # is_existing: added to the inventory while the sweep was running
                        continue
                    try:
                        self._add_host(network, found, now)
                        added += 1
                    except Exception as e:
                        logger.error(f"Error adding new host {ip}: {e}")

            for ip, host in known.items():
                if not result.was_probed(ip):
                    skipped += 1
                    continue
                found = live.get(ip)
                try:
                    if found is None and host.status == HostStatus.ONLINE:
                        self.inventory.record_discovery_event(
                            network.id, DiscoveryEventKind.DISCONNECTED, host.id
                        )
                        disconnected += 1
                        logger.info(f"Device went offline: {host.display_name} ({ip})")
                    self._apply_observation(host, found, now)
                    updated += 1
                except Exception as e:
                    logger.error(f"Error updating host {ip}: {e}")
        finally:
            try:
                self.inventory.update_network_last_scanned(network.id, now)
            except Exception as e:
                logger.error(f"Error updating last scan time of network {network.id}: {e}")

        if skipped:
            logger.info(f"Left {skipped} hosts of network {network.id} untouched: sweep ended before probing them")
        logger.info(
            f"Reconciled network {network.id}: {added} new devices, "
            f"{disconnected} disconnected, {updated} updated"
        )
        return ReconcileSummary(
            network_id=network.id,
            hosts=result.hosts,
            added_count=added,
            disconnected_count=disconnected,
            updated_count=updated,
            timed_out=result.timed_out,
            scanned_at=now,
        )

    def _add_host(self, network: MonitoredNetwork, found: DiscoveredHost, now) -> Host:
        host = self.inventory.upsert_host(
            found.ip,
            name=found.display_name,
            description=f"Discovered by scan of network {network.name or network.cidr}",
            status=HostStatus.ONLINE,
            last_checked_at=now,
            latency_ms=found.latency_ms,
            packet_loss_pct=found.packet_loss_pct,
        )
        self.inventory.record_discovery_event(network.id, DiscoveryEventKind.NEW_DEVICE, host.id)
        self.record_observation(host.id, HostStatus.ONLINE, found.latency_ms)
        logger.info(f"Discovered new device: {host.display_name} ({found.ip})")
        return host

    def _apply_observation(self, host: Host, found: DiscoveredHost | None, now) -> None:
        """Store a known host's status as seen by the sweep."""
        if found is None:
            self.inventory.set_host_status(host.id, HostStatus.OFFLINE, None, 100.0, now)
            self.record_observation(host.id, HostStatus.OFFLINE, None)
            return

        if host.status == HostStatus.OFFLINE:
            logger.info(f"Device came back online: {host.display_name} ({host.ip})")
        self.inventory.set_host_status(host.id, HostStatus.ONLINE, found.latency_ms, found.packet_loss_pct, now)
        self.record_observation(host.id, HostStatus.ONLINE, found.latency_ms)
