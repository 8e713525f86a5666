"""Inventory persistence: hosts, monitored networks and discovery events."""

import json
import logging
import threading
from datetime import datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from ..exceptions import HostNotFoundError, NetworkNotFoundError, TransientStoreError
from ..models.host import Host, HostStatus
from ..models.network import DiscoveryEvent, DiscoveryEventKind, MonitoredNetwork, utc_now
from .address_range import contains, ip_to_int, prefix_mask

logger = logging.getLogger(__name__)

DEFAULT_INVENTORY_PATH = "inventory.json"

_HOST_FIELDS = {"name", "description", "url", "status", "tags", "last_checked_at", "latency_ms", "packet_loss_pct"}


class InventorySnapshot(BaseModel):
    """On-disk layout of the inventory file."""

    hosts: list[Host] = Field(default_factory=list)
    networks: list[MonitoredNetwork] = Field(default_factory=list)
    events: list[DiscoveryEvent] = Field(default_factory=list)


class InventoryStore:
    """Persists the host inventory to a JSON file.

    Every mutation is applied and saved while holding the store lock, so each
    change to a host is atomic. Pass ``path=None`` to keep everything in memory.
    """

    def __init__(self, path: Path | str | None = DEFAULT_INVENTORY_PATH):
        self.path = Path(path) if path is not None else None
        self._hosts: dict[int, Host] = {}
        self._networks: dict[int, MonitoredNetwork] = {}
        self._events: list[DiscoveryEvent] = []
        self._lock = threading.RLock()
        self._loaded = False

    def load(self) -> None:
        """Load the inventory from file."""
        with self._lock:
            self._hosts, self._networks, self._events = {}, {}, []
            self._loaded = True

            if self.path is None or not self.path.exists():
                logger.debug(f"No inventory file at {self.path}")
                return

            try:
                with open(self.path) as f:
                    data = json.load(f)
                snapshot = InventorySnapshot.model_validate(data)
            except json.JSONDecodeError as e:
                logger.error(f"Invalid JSON in inventory file: {e}")
                return
            except Exception as e:
                logger.error(f"Error loading inventory: {e}")
                return

            self._hosts = {h.id: h for h in snapshot.hosts}
            self._networks = {n.id: n for n in snapshot.networks}
            self._events = list(snapshot.events)
            logger.debug(f"Loaded {len(self._hosts)} hosts and {len(self._networks)} networks")

    def save(self) -> None:
        """Save the inventory to file.

        Raises:
            TransientStoreError: If the file cannot be written.
        """
        if self.path is None:
            return
        with self._lock:
            snapshot = InventorySnapshot(
                hosts=list(self._hosts.values()),
                networks=list(self._networks.values()),
                events=self._events,
            )
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
                with open(tmp_path, "w") as f:
                    json.dump(snapshot.model_dump(mode="json"), f, indent=2)
                tmp_path.replace(self.path)
            except OSError as e:
                raise TransientStoreError(f"Cannot save inventory to {self.path}: {e}") from e

            logger.debug(f"Saved {len(self._hosts)} hosts")

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    @staticmethod
    def _next_id(ids) -> int:
        return max(ids, default=0) + 1

    # Hosts

    def get_host(self, host_id: int) -> Host | None:
        """Get a host by id."""
        with self._lock:
            self._ensure_loaded()
            return self._hosts.get(host_id)

    def get_host_by_ip(self, ip: str) -> Host | None:
        """Get a host by IP address."""
        with self._lock:
            self._ensure_loaded()
            return next((h for h in self._hosts.values() if h.ip == ip), None)

    def list_hosts(self) -> list[Host]:
        """Get all hosts."""
        with self._lock:
            self._ensure_loaded()
            return list(self._hosts.values())

    def list_hosts_in_network(self, network_address: str, prefix_length: int) -> list[Host]:
        """Get hosts whose IP lies inside the given network."""
        return [h for h in self.list_hosts() if contains(h.ip, network_address, prefix_length)]

    def upsert_host(self, ip: str, **fields: Any) -> Host:
        """Update the host with this IP, or add it. Returns the stored host."""
        unknown = set(fields) - _HOST_FIELDS
        if unknown:
            raise ValueError(f"Unknown host fields: {', '.join(sorted(unknown))}")

        with self._lock:
            self._ensure_loaded()
            existing = self.get_host_by_ip(ip)
            if existing is not None:
                host = Host.model_validate({**existing.model_dump(), **fields})
            else:
                host = Host(id=self._next_id(self._hosts), ip=ip, **fields)
            self._hosts[host.id] = host
            self.save()
            return host

    def set_host_status(
        self,
        host_id: int,
        status: HostStatus,
        latency_ms: float | None,
        packet_loss_pct: float | None,
        checked_at: datetime | None = None,
    ) -> Host:
        """Record the latest probe outcome on a host."""
        return self._update_host(
            host_id,
            status=status,
            latency_ms=latency_ms,
            packet_loss_pct=packet_loss_pct,
            last_checked_at=checked_at or utc_now(),
        )

    def set_host_uptime(self, host_id: int, uptime_pct: float) -> Host:
        """Store the latest rolling uptime of a host."""
        return self._update_host(host_id, uptime_pct=uptime_pct)

    def _update_host(self, host_id: int, **update: Any) -> Host:
        with self._lock:
            self._ensure_loaded()
            host = self._hosts.get(host_id)
            if host is None:
                raise HostNotFoundError(f"Host {host_id} not found")
            self._hosts[host_id] = host.model_copy(update=update)
            self.save()
            return self._hosts[host_id]

    # Networks

    def add_network(
        self,
        name: str,
        network_address: str,
        prefix_length: int,
        auto_scan_enabled: bool = False,
        auto_scan_interval_ms: int = 300000,
    ) -> MonitoredNetwork:
        """Register a network to monitor."""
        # Raises InvalidRange for a malformed address or prefix
        ip_to_int(network_address)
        prefix_mask(prefix_length)

        with self._lock:
            self._ensure_loaded()
            network = MonitoredNetwork(
                id=self._next_id(self._networks),
                name=name,
                network_address=network_address,
                prefix_length=prefix_length,
                auto_scan_enabled=auto_scan_enabled,
                auto_scan_interval_ms=auto_scan_interval_ms,
            )
            self._networks[network.id] = network
            self.save()
            return network

    def get_monitored_network(self, network_id: int) -> MonitoredNetwork | None:
        """Get a network by id."""
        with self._lock:
            self._ensure_loaded()
            return self._networks.get(network_id)

    def list_networks(self) -> list[MonitoredNetwork]:
        """Get all monitored networks."""
        with self._lock:
            self._ensure_loaded()
            return list(self._networks.values())

    def list_auto_scan_networks(self) -> list[MonitoredNetwork]:
        """Get networks with recurring scans enabled."""
        return [n for n in self.list_networks() if n.auto_scan_enabled]

    def update_network_auto_scan(
        self, network_id: int, enabled: bool, interval_ms: int | None = None
    ) -> MonitoredNetwork:
        """Enable or disable recurring scans of a network."""
        update: dict[str, Any] = {"auto_scan_enabled": enabled}
        if interval_ms is not None:
            update["auto_scan_interval_ms"] = interval_ms
        return self._update_network(network_id, **update)

    def update_network_last_scanned(self, network_id: int, timestamp: datetime) -> MonitoredNetwork:
        """Record when a network was last swept."""
        return self._update_network(network_id, last_scanned_at=timestamp)

    def _update_network(self, network_id: int, **update: Any) -> MonitoredNetwork:
        with self._lock:
            self._ensure_loaded()
            network = self._networks.get(network_id)
            if network is None:
                raise NetworkNotFoundError(f"Network {network_id} not found")
            self._networks[network_id] = network.model_copy(update=update)
            self.save()
            return self._networks[network_id]

    # Discovery events

    def record_discovery_event(
        self, network_id: int, kind: DiscoveryEventKind, host_id: int
    ) -> DiscoveryEvent:
        """Append a discovery event to the audit trail."""
        with self._lock:
            self._ensure_loaded()
            event = DiscoveryEvent(
                id=self._next_id(e.id for e in self._events),
                network_id=network_id,
                kind=kind,
                host_id=host_id,
            )
            self._events.append(event)
            self.save()
            return event

    def list_discovery_events(self, network_id: int | None = None) -> list[DiscoveryEvent]:
        """Get discovery events, newest first."""
        with self._lock:
            self._ensure_loaded()
            events = [e for e in self._events if network_id is None or e.network_id == network_id]
        return sorted(events, key=lambda e: (e.occurred_at, e.id), reverse=True)

    def clear_discovery_events(self, network_id: int | None = None) -> int:
        """Remove discovery events. Returns how many were removed."""
        with self._lock:
            self._ensure_loaded()
            kept = [e for e in self._events if network_id is not None and e.network_id != network_id]
            removed = len(self._events) - len(kept)
            self._events = kept
            self.save()
            return removed

    @property
    def count(self) -> int:
        """Number of hosts in the inventory."""
        with self._lock:
            self._ensure_loaded()
            return len(self._hosts)
