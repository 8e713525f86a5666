"""LAN inventory discovery and liveness engine."""

__version__ = "0.1.0"
