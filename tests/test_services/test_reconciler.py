"""Tests for reconciling sweep results against the inventory."""

import sqlite3

import pytest

from lanwatch.exceptions import TransientStoreError
from lanwatch.models.host import HostStatus
from lanwatch.models.network import DiscoveryEventKind
from lanwatch.models.scan_result import DiscoveredHost, SweepResult
from lanwatch.services.reconciler import Reconciler


@pytest.fixture
def reconciler(inventory, history):
    return Reconciler(inventory, history)


@pytest.fixture
def network(inventory):
    return inventory.add_network("Home", "192.168.1.0", 24)


def sweep_of(*hosts: DiscoveredHost, timed_out: bool = False) -> SweepResult:
    return SweepResult(target_range="192.168.1.0/24", hosts=list(hosts), timed_out=timed_out)


class TestReconcile:
    """Tests for Reconciler.reconcile."""

    def test_new_host_added(self, reconciler, inventory, history, network):
        """Test a new live address is added Online with a record and event."""
        summary = reconciler.reconcile(
            network, sweep_of(DiscoveredHost(ip="192.168.1.50", hostname="tv", latency_ms=3.0))
        )
        assert summary.added_count == 1

        host = inventory.get_host_by_ip("192.168.1.50")
        assert host.name == "tv"
        assert host.latency_ms == 3.0
        assert host.description == "Discovered by scan of network Home"
        assert history.count(host.id) == 1
        assert inventory.list_discovery_events()[0].kind == DiscoveryEventKind.NEW_DEVICE

    def test_add_hosts_off(self, reconciler, inventory, network):
        """Test new addresses are ignored when adding is switched off."""
        summary = reconciler.reconcile(network, sweep_of(DiscoveredHost(ip="192.168.1.50")), add_hosts=False)
        assert summary.added_count == 0
        assert inventory.count == 0
        assert inventory.list_discovery_events() == []

    def test_existing_host_refreshed(self, reconciler, inventory, history, network):
        """Test a known host seen again is marked Online with fresh latency."""
        host = inventory.upsert_host("192.168.1.10", status=HostStatus.OFFLINE)
        summary = reconciler.reconcile(
            network, sweep_of(DiscoveredHost(ip="192.168.1.10", latency_ms=2.0))
        )
        assert summary.updated_count == 1
        assert summary.added_count == 0

        refreshed = inventory.get_host(host.id)
        assert refreshed.status == HostStatus.ONLINE
        assert refreshed.latency_ms == 2.0
        assert refreshed.last_checked_at is not None
        assert history.records(host.id)[0].status == HostStatus.ONLINE
        # Coming back online is not a discovery event
        assert inventory.list_discovery_events() == []

    def test_hosts_outside_network_untouched(self, reconciler, inventory, network):
        """Test hosts from other networks are never marked offline."""
        other = inventory.upsert_host("10.0.0.1")
        summary = reconciler.reconcile(network, sweep_of())
        assert summary.disconnected_count == 0
        assert inventory.get_host(other.id).status == HostStatus.ONLINE

    def test_uptime_stored_on_host(self, reconciler, inventory, network):
        """Test each observation refreshes the host's stored uptime."""
        host = inventory.upsert_host("192.168.1.10")
        reconciler.reconcile(network, sweep_of(DiscoveredHost(ip="192.168.1.10")))
        reconciler.reconcile(network, sweep_of())
        assert inventory.get_host(host.id).uptime_pct == 50.0

    def test_last_scanned_updated(self, reconciler, inventory, network):
        """Test the network's last scan time is recorded."""
        summary = reconciler.reconcile(network, sweep_of(timed_out=True))
        assert summary.timed_out is True
        assert inventory.get_monitored_network(network.id).last_scanned_at == summary.scanned_at

    def test_store_failure_skips_host(self, reconciler, inventory, history, network, monkeypatch):
        """Test a failure recording one host does not stop the others."""
        first = inventory.upsert_host("192.168.1.10")
        second = inventory.upsert_host("192.168.1.11")
        original = history.append

        def flaky_append(host_id, *args, **kwargs):
            if host_id == first.id:
                raise TransientStoreError("disk full")
            return original(host_id, *args, **kwargs)

        monkeypatch.setattr(history, "append", flaky_append)
        summary = reconciler.reconcile(network, sweep_of())
        assert summary.disconnected_count == 2
        assert history.count(second.id) == 1
        assert inventory.get_host(second.id).status == HostStatus.OFFLINE

    def test_read_failure_still_marks_scanned(self, reconciler, inventory, history, network, monkeypatch):
        """Test a failing history read neither aborts the loop nor skips the scan time."""
        first = inventory.upsert_host("192.168.1.10")
        second = inventory.upsert_host("192.168.1.11")

        def broken_uptime(host_id, *args, **kwargs):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(history, "rolling_uptime", broken_uptime)
        summary = reconciler.reconcile(network, sweep_of())
        assert inventory.get_monitored_network(network.id).last_scanned_at == summary.scanned_at
        assert inventory.get_host(first.id).status == HostStatus.OFFLINE
        assert inventory.get_host(second.id).status == HostStatus.OFFLINE
        assert summary.disconnected_count == 2


class TestRecordObservation:
    """Tests for Reconciler.record_observation."""

    def test_returns_uptime(self, reconciler, inventory):
        """Test recording returns and stores the new uptime."""
        host = inventory.upsert_host("192.168.1.10")
        assert reconciler.record_observation(host.id, HostStatus.ONLINE, 1.0) == 100.0
        assert reconciler.record_observation(host.id, HostStatus.OFFLINE, None) == 50.0
        assert inventory.get_host(host.id).uptime_pct == 50.0


class TestPartialSweep:
    """Tests for reconciling a sweep cut short by its deadline."""

    def test_unprobed_hosts_untouched(self, reconciler, inventory, history, network):
        """Test hosts in batches that never ran keep their status and get no event."""
        reached = inventory.upsert_host("192.168.1.20")
        unreached = inventory.upsert_host("192.168.1.200")
        result = SweepResult(
            target_range="192.168.1.0/24",
            probed_addresses=[f"192.168.1.{i}" for i in range(1, 101)],
            batches_completed=1,
            total_batches=3,
            timed_out=True,
        )

        summary = reconciler.reconcile(network, result)
        assert summary.disconnected_count == 1
        assert inventory.get_host(unreached.id).status == HostStatus.ONLINE
        assert history.count(unreached.id) == 0
        assert inventory.get_host(reached.id).status == HostStatus.OFFLINE
        events = inventory.list_discovery_events()
        assert [(e.kind, e.host_id) for e in events] == [(DiscoveryEventKind.DISCONNECTED, reached.id)]
        assert inventory.get_monitored_network(network.id).last_scanned_at is not None

    def test_live_hosts_counted_as_probed(self, reconciler, inventory, network):
        """Test a host that answered is refreshed even if not listed as probed."""
        host = inventory.upsert_host("192.168.1.200", status=HostStatus.OFFLINE)
        result = sweep_of(DiscoveredHost(ip="192.168.1.200", latency_ms=1.0), timed_out=True)
        reconciler.reconcile(network, result)
        assert inventory.get_host(host.id).status == HostStatus.ONLINE
