"""Entry point for running lanwatch as a module."""

import argparse
import asyncio
import atexit
import logging
import signal
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

from .exceptions import LanwatchError
from .models.config import Config
from .services.discovery import DiscoveryService

# Global references for signal handlers
_loop: asyncio.AbstractEventLoop | None = None
_stop_event: asyncio.Event | None = None
_logger = logging.getLogger(__name__)


def setup_logging(log_level: str = "INFO", log_dir: str = "logs") -> None:
    """Configure logging with rotation support.

    Args:
        log_level: The logging level (DEBUG, INFO, WARNING, ERROR)
        log_dir: Directory for the rotating log file
    """
    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]

    # Try to add rotating file handler
    log_path = Path(log_dir)
    try:
        log_path.mkdir(parents=True, exist_ok=True)
        # Rotate at 10MB, keep 5 backup files
        file_handler = RotatingFileHandler(
            log_path / "lanwatch.log",
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5,
            encoding="utf-8",
        )
        handlers.append(file_handler)
    except (PermissionError, OSError):
        pass  # Skip file logging if we can't write

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=handlers,
    )


def _signal_handler(signum: int, frame: object) -> None:
    """Handle shutdown signals gracefully.

    Args:
        signum: Signal number received
        frame: Current stack frame (unused)
    """
    signal_name = signal.Signals(signum).name
    _logger.info(f"Received {signal_name}, shutting down gracefully...")

    if _loop is not None and _stop_event is not None:
        _loop.call_soon_threadsafe(_stop_event.set)


def _cleanup() -> None:
    """Cleanup handler called on exit."""
    _logger.info("lanwatch shutdown complete")


def setup_signal_handlers() -> None:
    """Set up signal handlers for graceful shutdown."""
    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    atexit.register(_cleanup)


def seed_networks(service: DiscoveryService, config: Config) -> int:
    """Register configured networks that the inventory does not know yet.

    Returns:
        Number of networks added
    """
    known = {(n.network_address, n.prefix_length) for n in service.inventory.list_networks()}
    added = 0
    for seed in config.networks:
        if (seed.network_address, seed.prefix_length) in known:
            continue
        service.inventory.add_network(
            seed.name,
            seed.network_address,
            seed.prefix_length,
            auto_scan_enabled=seed.auto_scan_enabled,
            auto_scan_interval_ms=seed.auto_scan_interval_ms,
        )
        known.add((seed.network_address, seed.prefix_length))
        added += 1
    if added:
        _logger.info(f"Registered {added} networks from configuration")
    return added


async def run_service(config: Config) -> None:
    """Run recurring scans until a shutdown signal arrives."""
    global _loop, _stop_event

    _loop = asyncio.get_running_loop()
    _stop_event = asyncio.Event()

    service = DiscoveryService.from_config(config)
    seed_networks(service, config)
    await service.start()
    try:
        await _stop_event.wait()
    finally:
        await service.stop()


async def run_sweep(config: Config, descriptor: str) -> int:
    """Sweep one range and print the live hosts."""
    service = DiscoveryService.from_config(config)
    try:
        result = await service.sweep_range(descriptor, timeout=config.sweep.deadline_seconds)
    finally:
        await service.stop()

    for host in sorted(result.hosts, key=lambda h: tuple(int(o) for o in h.ip.split("."))):
        latency = f"{host.latency_ms:.1f}ms" if host.latency_ms is not None else "-"
        port = host.port if host.port is not None else "echo"
        print(f"{host.ip:<16} {host.display_name:<32} {port!s:<6} {latency}")
    status = " (timed out, partial results)" if result.timed_out else ""
    print(
        f"\n{result.hosts_up} hosts up out of {result.addresses_scanned} scanned "
        f"in {result.duration_seconds:.1f}s{status}"
    )
    return 0


async def run_check(config: Config, ip: str, url: str | None) -> int:
    """Probe a single address and print the outcome."""
    service = DiscoveryService.from_config(config)
    try:
        result = await service.probe.check_host(ip, url)
    finally:
        await service.stop()

    print(f"{result.address}: {result.status.value} ({result.outcome.value})")
    if result.reachable:
        method = result.method.value if result.method else "-"
        if result.via_port is not None:
            method = f"{method} {result.via_port}"
        latency = f"{result.latency_ms:.1f}ms" if result.latency_ms is not None else "-"
        loss = f"{result.packet_loss_pct:.0f}%" if result.loss_measured else "not measured"
        print(f"  method: {method}, latency: {latency}, packet loss: {loss}")
    return 0 if result.reachable else 1


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="lanwatch - LAN host discovery and liveness monitoring"
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=Path("config.json"),
        help="Path to configuration file (default: config.json)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "-V",
        "--version",
        action="store_true",
        help="Show version and exit",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--sweep",
        metavar="DESCRIPTOR",
        help="Sweep a range once (e.g. 192.168.1.0/24 or 192.168.1.1-254) and exit",
    )
    mode.add_argument(
        "--check",
        metavar="IP",
        help="Check a single host once and exit",
    )
    parser.add_argument(
        "--url",
        help="URL to try first when using --check",
    )

    args = parser.parse_args()

    # Handle version flag
    if args.version:
        from . import __version__

        print(f"lanwatch v{__version__}")
        sys.exit(0)

    if args.url and not args.check:
        parser.error("--url requires --check")

    if not args.config.exists():
        print(f"Config file not found: {args.config}, using defaults", file=sys.stderr)
    try:
        config = Config.load_or_default(args.config)
    except ValueError as e:
        print(f"Invalid configuration in {args.config}: {e}", file=sys.stderr)
        sys.exit(2)

    # Setup logging
    log_level = "DEBUG" if args.verbose else config.settings.log_level
    setup_logging(log_level, config.settings.log_dir)

    try:
        if args.sweep:
            sys.exit(asyncio.run(run_sweep(config, args.sweep)))
        if args.check:
            sys.exit(asyncio.run(run_check(config, args.check, args.url)))

        setup_signal_handlers()
        _logger.info("Starting lanwatch")
        asyncio.run(run_service(config))
    except LanwatchError as e:
        _logger.error(str(e))
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
