"""Tests for the liveness history store."""

from datetime import UTC, datetime, timedelta

import pytest

from lanwatch.exceptions import TransientStoreError
from lanwatch.models.host import HostStatus
from lanwatch.services.history_store import LivenessHistoryStore

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


class TestRollingUptime:
    """Tests for rolling uptime computation."""

    def test_no_history_is_full_uptime(self, history):
        """Test a host with no records reports 100%."""
        assert history.rolling_uptime(1, now=NOW) == 100.0

    def test_three_of_four_online(self, history):
        """Test the ratio of Online records in the window."""
        for minutes, status in enumerate(
            [HostStatus.ONLINE, HostStatus.ONLINE, HostStatus.OFFLINE, HostStatus.ONLINE]
        ):
            history.append(1, status, observed_at=NOW - timedelta(minutes=60 - minutes))
        assert history.rolling_uptime(1, now=NOW) == 75.0

    def test_old_records_outside_window(self, history):
        """Test records older than the window are ignored."""
        history.append(1, HostStatus.OFFLINE, observed_at=NOW - timedelta(hours=30))
        history.append(1, HostStatus.ONLINE, observed_at=NOW - timedelta(hours=1))
        assert history.rolling_uptime(1, now=NOW) == 100.0
        assert history.rolling_uptime(1, window=timedelta(hours=48), now=NOW) == 50.0

    def test_hosts_are_independent(self, history):
        """Test one host's history does not affect another's."""
        history.append(1, HostStatus.OFFLINE, observed_at=NOW - timedelta(minutes=5))
        history.append(2, HostStatus.ONLINE, observed_at=NOW - timedelta(minutes=5))
        assert history.rolling_uptime(1, now=NOW) == 0.0
        assert history.rolling_uptime(2, now=NOW) == 100.0

    def test_naive_timestamps_treated_as_utc(self, history):
        """Test naive timestamps are stored as UTC."""
        history.append(1, HostStatus.OFFLINE, observed_at=datetime(2024, 5, 1, 11, 30))
        assert history.rolling_uptime(1, now=NOW) == 0.0


class TestRetention:
    """Tests for per-host record retention."""

    def test_prunes_to_limit(self):
        """Test only the most recent records are kept."""
        store = LivenessHistoryStore(":memory:", max_records=3)
        for minutes in range(5):
            status = HostStatus.OFFLINE if minutes < 2 else HostStatus.ONLINE
            store.append(7, status, observed_at=NOW - timedelta(minutes=10 - minutes))
        assert store.count(7) == 3
        # The two oldest (Offline) records were pruned
        assert store.rolling_uptime(7, now=NOW) == 100.0
        store.close()

    def test_prune_is_per_host(self):
        """Test pruning one host leaves others untouched."""
        store = LivenessHistoryStore(":memory:", max_records=2)
        for _ in range(4):
            store.append(1, HostStatus.ONLINE)
        store.append(2, HostStatus.ONLINE)
        assert store.count(1) == 2
        assert store.count(2) == 1
        store.close()


class TestRecords:
    """Tests for reading records back."""

    def test_newest_first(self, history):
        """Test records are returned newest first."""
        history.append(3, HostStatus.ONLINE, latency_ms=1.0, observed_at=NOW - timedelta(minutes=2))
        history.append(3, HostStatus.OFFLINE, observed_at=NOW - timedelta(minutes=1))
        records = history.records(3)
        assert [r.status for r in records] == [HostStatus.OFFLINE, HostStatus.ONLINE]
        assert records[1].latency_ms == 1.0
        assert records[0].observed_at == NOW - timedelta(minutes=1)

    def test_append_returns_record(self, history):
        """Test append returns the stored record."""
        record = history.append(4, HostStatus.ONLINE, latency_ms=2.5)
        assert record.host_id == 4
        assert record.latency_ms == 2.5
        assert record.observed_at.tzinfo is not None


class TestPersistence:
    """Tests for the on-disk database."""

    def test_file_survives_reopen(self, temp_dir):
        """Test records persist across store instances."""
        path = temp_dir / "sub" / "history.db"
        store = LivenessHistoryStore(path)
        store.append(1, HostStatus.ONLINE, observed_at=NOW)
        store.close()

        reopened = LivenessHistoryStore(path)
        assert reopened.count(1) == 1
        reopened.close()

    def test_write_failure_is_transient(self, history):
        """Test database errors surface as TransientStoreError."""
        history.connect().execute("DROP TABLE liveness_history;")
        with pytest.raises(TransientStoreError):
            history.append(1, HostStatus.ONLINE)

    def test_read_failures_are_transient(self, history):
        """Test database errors on reads surface as TransientStoreError."""
        history.connect().execute("DROP TABLE liveness_history;")
        with pytest.raises(TransientStoreError):
            history.rolling_uptime(1)
        with pytest.raises(TransientStoreError):
            history.records(1)
        with pytest.raises(TransientStoreError):
            history.count(1)
