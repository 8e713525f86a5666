"""Tests for the network sweeper."""

import asyncio
import socket
import time

import pytest

from lanwatch.exceptions import InvalidRange
from lanwatch.models.config import SweepConfig
from lanwatch.models.probe import ProbeOutcome
from lanwatch.services.liveness_probe import EchoResult, LivenessProbe, PortAttempt
from lanwatch.services.network_sweeper import NetworkSweeper, short_hostname


def answering(live: dict[str, int], delays: dict[str, float] | None = None, calls=None):
    """Build a connect replacement where only the given address:port pairs accept."""
    delays = delays or {}

    async def connect(self, address, port, timeout):
        if calls is not None:
            calls.append((address, port))
        if address in delays:
            await asyncio.sleep(delays[address])
        if live.get(address) == port:
            return PortAttempt(port, ProbeOutcome.SUCCESS, latency_ms=0.8)
        return PortAttempt(port, ProbeOutcome.TIMEOUT)

    return connect


@pytest.fixture
def no_dns(monkeypatch):
    """Make every reverse lookup fail."""

    def gethostbyaddr(ip):
        raise socket.herror(1, "Unknown host")

    monkeypatch.setattr(socket, "gethostbyaddr", gethostbyaddr)


class TestShortHostname:
    """Tests for hostname shortening."""

    def test_strips_domain_and_dot(self):
        """Test the domain suffix and trailing dot are removed."""
        assert short_hostname("nas.home.lan.") == "nas"

    def test_plain_name(self):
        """Test an unqualified name is kept."""
        assert short_hostname("printer") == "printer"

    def test_empty(self):
        """Test an empty answer yields no name."""
        assert short_hostname(" . ") is None


class TestSweep:
    """Tests for sweeping ranges."""

    def test_single_live_host(self, monkeypatch, no_dns):
        """Test a /30 with one host answering on port 80 returns exactly that host."""
        monkeypatch.setattr(LivenessProbe, "connect", answering({"10.0.0.1": 80}))
        result = asyncio.run(NetworkSweeper().sweep("10.0.0.0/30"))
        assert [h.ip for h in result.hosts] == ["10.0.0.1"]
        assert result.hosts[0].port == 80
        assert result.hosts[0].latency_ms == 0.8
        assert result.addresses_scanned == 2
        assert result.target_range == "10.0.0.0/30"
        assert result.complete is True
        assert result.probed_addresses == ["10.0.0.1", "10.0.0.2"]

    def test_quick_ports_only(self, monkeypatch, no_dns):
        """Test each address is probed on the configured quick ports."""
        calls = []
        monkeypatch.setattr(LivenessProbe, "connect", answering({}, calls=calls))
        sweeper = NetworkSweeper(config=SweepConfig(quick_ports=[80, 443]))
        result = asyncio.run(sweeper.sweep("10.0.0.0/30"))
        assert result.hosts == []
        assert sorted(calls) == [
            ("10.0.0.1", 80),
            ("10.0.0.1", 443),
            ("10.0.0.2", 80),
            ("10.0.0.2", 443),
        ]

    def test_octet_range(self, monkeypatch, no_dns):
        """Test a last-octet range only probes the named addresses."""
        calls = []
        monkeypatch.setattr(LivenessProbe, "connect", answering({"192.168.30.11": 22}, calls=calls))
        sweeper = NetworkSweeper(config=SweepConfig(quick_ports=[22]))
        result = asyncio.run(sweeper.sweep("192.168.30.10-12"))
        assert {ip for ip, _ in calls} == {"192.168.30.10", "192.168.30.11", "192.168.30.12"}
        assert result.live_addresses == {"192.168.30.11"}
        assert result.target_range == "192.168.30.10-12"

    @pytest.mark.parametrize("descriptor", ["10.0.0.0/22", "10.0.0.0/31", "10.0.0.0/16"])
    def test_out_of_bounds_range(self, descriptor):
        """Test ranges outside /24-/30 are rejected before probing."""
        with pytest.raises(InvalidRange):
            asyncio.run(NetworkSweeper().sweep(descriptor))

    def test_batches_and_progress(self, monkeypatch, no_dns):
        """Test addresses are split into batches with progress after each."""
        monkeypatch.setattr(LivenessProbe, "connect", answering({"10.0.0.3": 80, "10.0.0.9": 80}))
        progress = []
        sweeper = NetworkSweeper()
        result = asyncio.run(
            sweeper.sweep("10.0.0.0/28", batch_size=5, on_progress=lambda *args: progress.append(args))
        )
        assert result.addresses_scanned == 14
        assert result.total_batches == 3
        assert result.batches_completed == 3
        assert progress == [(1, 3, 1), (2, 3, 2), (3, 3, 2)]

    def test_deadline_returns_partial_results(self, monkeypatch, no_dns):
        """Test hosts found before the deadline survive it."""
        monkeypatch.setattr(
            LivenessProbe,
            "connect",
            answering({"10.0.0.1": 80, "10.0.0.2": 80}, delays={"10.0.0.2": 5}),
        )
        result = asyncio.run(NetworkSweeper().sweep("10.0.0.0/30", deadline=0.3))
        assert result.timed_out is True
        assert result.complete is False
        assert [h.ip for h in result.hosts] == ["10.0.0.1"]
        assert result.probed_addresses == ["10.0.0.1"]

    def test_echo_fallback(self, monkeypatch, no_dns):
        """Test the optional echo fallback finds hosts with no open quick port."""
        monkeypatch.setattr(LivenessProbe, "connect", answering({}))

        async def echo(self, address, timeout=None):
            if address == "10.0.0.2":
                return EchoResult(ProbeOutcome.SUCCESS, latency_ms=2.0, packet_loss_pct=0.0)
            return EchoResult(ProbeOutcome.TIMEOUT)

        monkeypatch.setattr(LivenessProbe, "echo", echo)
        sweeper = NetworkSweeper(config=SweepConfig(echo_fallback=True))
        result = asyncio.run(sweeper.sweep("10.0.0.0/30"))
        assert [h.ip for h in result.hosts] == ["10.0.0.2"]
        assert result.hosts[0].port is None
        assert result.hosts[0].packet_loss_pct == 0.0


class TestNameResolution:
    """Tests for naming live hosts."""

    def test_reverse_dns(self, monkeypatch):
        """Test reverse DNS names are shortened."""
        monkeypatch.setattr(LivenessProbe, "connect", answering({"10.0.0.1": 443}))
        monkeypatch.setattr(
            socket, "gethostbyaddr", lambda ip: ("gateway.corp.example.", [], [ip])
        )
        result = asyncio.run(NetworkSweeper().sweep("10.0.0.0/30"))
        assert result.hosts[0].hostname == "gateway"
        assert result.hosts[0].display_name == "gateway"

    def test_no_reverse_dns(self, monkeypatch, no_dns):
        """Test hosts without a PTR record fall back to the last octet."""
        monkeypatch.setattr(LivenessProbe, "connect", answering({"10.0.0.2": 80}))
        result = asyncio.run(NetworkSweeper().sweep("10.0.0.0/30"))
        assert result.hosts[0].hostname is None
        assert result.hosts[0].display_name == "Host 2"

    def test_inventory_name_preferred(self, monkeypatch, inventory):
        """Test a host already in the inventory keeps its stored name."""
        inventory.upsert_host("10.0.0.1", name="core-switch")
        monkeypatch.setattr(LivenessProbe, "connect", answering({"10.0.0.1": 22}))

        def gethostbyaddr(ip):
            raise AssertionError("reverse DNS should not be used for known hosts")

        monkeypatch.setattr(socket, "gethostbyaddr", gethostbyaddr)
        sweeper = NetworkSweeper(inventory=inventory)
        result = asyncio.run(sweeper.sweep("10.0.0.0/30"))
        host = result.hosts[0]
        assert host.is_existing is True
        assert host.existing_name == "core-switch"
        assert host.display_name == "core-switch"

    def test_dns_timeout(self, monkeypatch):
        """Test a slow resolver is abandoned after the DNS timeout."""
        monkeypatch.setattr(LivenessProbe, "connect", answering({"10.0.0.1": 80}))

        def gethostbyaddr(ip):
            time.sleep(0.5)
            return ("late.example", [], [ip])

        monkeypatch.setattr(socket, "gethostbyaddr", gethostbyaddr)
        sweeper = NetworkSweeper(config=SweepConfig(dns_timeout_seconds=0.05))
        result = asyncio.run(sweeper.sweep("10.0.0.0/30"))
        assert result.hosts[0].hostname is None
