"""Pytest configuration and fixtures."""

import json
import tempfile
from pathlib import Path

import pytest

from lanwatch.services.history_store import LivenessHistoryStore
from lanwatch.services.inventory_store import InventoryStore


@pytest.fixture
def temp_dir():
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def sample_config_data():
    """Sample configuration data for testing."""
    return {
        "probe": {
            "url_timeout_seconds": 2.0,
            "echo_timeout_seconds": 1.0,
            "fallback_ports": [80, 443, 22],
        },
        "sweep": {
            "batch_size": 50,
            "port_timeout_seconds": 0.5,
            "quick_ports": [80, 443],
        },
        "scheduler": {"default_interval_ms": 60000},
        "storage": {"data_dir": "var", "history_limit": 500},
        "networks": [
            {
                "name": "Local",
                "range": "192.168.1.0/24",
                "auto_scan_enabled": True,
                "auto_scan_interval_ms": 120000,
            }
        ],
        "settings": {"log_level": "DEBUG", "log_dir": "var/logs"},
    }


@pytest.fixture
def sample_config_file(temp_dir, sample_config_data):
    """Create a sample config file for testing."""
    config_path = temp_dir / "config.json"
    with open(config_path, "w") as f:
        json.dump(sample_config_data, f)
    return config_path


@pytest.fixture
def inventory(temp_dir):
    """Create an inventory store backed by a temporary file."""
    store = InventoryStore(temp_dir / "inventory.json")
    store.load()
    return store


@pytest.fixture
def history():
    """Create an in-memory liveness history store."""
    store = LivenessHistoryStore(":memory:", max_records=1000)
    yield store
    store.close()
