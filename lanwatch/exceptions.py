"""Exception types raised by the discovery engine."""


class LanwatchError(Exception):
    """Base class for all lanwatch errors."""


class InvalidRange(LanwatchError, ValueError):
    """Raised when a network address or prefix length is not usable."""


class InvalidDescriptor(InvalidRange):
    """Raised when a range descriptor string cannot be parsed."""


class TransientStoreError(LanwatchError):
    """Raised when a store cannot persist a change. The next cycle retries."""


class ConcurrencyGuardRejected(LanwatchError):
    """Raised when a scheduled tick finds a sweep already running for its network."""

    def __init__(self, network_id: int):
        super().__init__(f"Sweep already in progress for network {network_id}")
        self.network_id = network_id


class HostNotFoundError(LanwatchError, LookupError):
    """Raised when a host id is not present in the inventory."""


class NetworkNotFoundError(LanwatchError, LookupError):
    """Raised when a monitored network id is not present in the inventory."""
