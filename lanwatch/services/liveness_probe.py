"""Layered liveness checks: URL, ICMP echo, then TCP port fallback."""

import asyncio
import logging
import ssl
import time
from dataclasses import dataclass

import httpx
from icmplib import ICMPLibError, SocketPermissionError, async_ping

from ..models.config import ProbeConfig
from ..models.probe import ProbeMethod, ProbeOutcome, ProbeResult
from .address_range import is_valid_ipv4

logger = logging.getLogger(__name__)

# HTTP statuses below this prove the server process is alive, even errors
REACHABLE_STATUS_LIMIT = 500


@dataclass(frozen=True)
class EchoResult:
    """Outcome of one ICMP echo attempt."""

    outcome: ProbeOutcome
    latency_ms: float | None = None
    packet_loss_pct: float = 100.0

    @property
    def ok(self) -> bool:
        return self.outcome is ProbeOutcome.SUCCESS


@dataclass(frozen=True)
class PortAttempt:
    """Outcome of one TCP connect attempt."""

    port: int | None
    outcome: ProbeOutcome
    latency_ms: float | None = None

    @property
    def ok(self) -> bool:
        return self.outcome is ProbeOutcome.SUCCESS


def _is_tls_error(error: BaseException) -> bool:
    """Check whether an HTTP error was caused by TLS or certificate validation."""
    seen: set[int] = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        if isinstance(current, ssl.SSLError):
            return True
        seen.add(id(current))
        current = current.__cause__ or current.__context__
    message = str(error).lower()
    return "certificate" in message or "ssl" in message


def _normalize_url(url: str) -> str:
    url = url.strip()
    if not url.startswith(("http://", "https://")):
        url = f"http://{url}"
    return url


def _summarize_failures(attempts: list[PortAttempt]) -> ProbeOutcome:
    """Pick the most informative outcome from a set of failed connects."""
    outcomes = {a.outcome for a in attempts}
    for outcome in (
        ProbeOutcome.CONNECTION_REFUSED,
        ProbeOutcome.TIMEOUT,
        ProbeOutcome.UNREACHABLE,
    ):
        if outcome in outcomes:
            return outcome
    return ProbeOutcome.ERROR


class LivenessProbe:
    """Determines whether a single address is reachable."""

    def __init__(
        self,
        config: ProbeConfig | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or ProbeConfig()
        self._transport = transport

    async def check_host(self, ip: str, url: str | None = None) -> ProbeResult:
        """Check a host, trying its URL first, then echo, then common ports.

        Never raises: every failure is reported as an unreachable result.
        """
        address = ip.strip() if isinstance(ip, str) else ""
        if not is_valid_ipv4(address):
            logger.debug(f"Skipping probe of invalid address {ip!r}")
            return ProbeResult.offline(address, ProbeOutcome.INVALID_ADDRESS)

        try:
            return await self._check(address, url)
        except Exception as e:
            logger.warning(f"Probe of {address} failed: {e}")
            return ProbeResult.offline(address, ProbeOutcome.ERROR)

    async def _check(self, address: str, url: str | None) -> ProbeResult:
        if url and url.strip():
            if await self.check_url(url):
                logger.debug(f"URL reachable for {address}: {url}")
                # Latency is still taken from an echo when one answers
                echo = await self.echo(address)
                return ProbeResult(
                    address=address,
                    reachable=True,
                    latency_ms=echo.latency_ms if echo.ok else None,
                    packet_loss_pct=echo.packet_loss_pct if echo.ok else 0.0,
                    method=ProbeMethod.URL,
                    outcome=ProbeOutcome.SUCCESS,
                    loss_measured=echo.ok,
                )
            logger.debug(f"URL not reachable for {address}: {url}")

        echo = await self.echo(address)
        if echo.ok:
            return ProbeResult(
                address=address,
                reachable=True,
                latency_ms=echo.latency_ms,
                packet_loss_pct=echo.packet_loss_pct,
                method=ProbeMethod.ECHO,
                outcome=ProbeOutcome.SUCCESS,
                loss_measured=True,
            )

        attempt = await self.first_open_port(
            address, self.config.fallback_ports, self.config.port_timeout_seconds
        )
        if attempt.ok:
            # Loss cannot be measured over TCP, so it is reported as fully lost
            return ProbeResult(
                address=address,
                reachable=True,
                latency_ms=None,
                packet_loss_pct=100.0,
                via_port=attempt.port,
                method=ProbeMethod.PORT,
                outcome=ProbeOutcome.SUCCESS,
            )

        logger.debug(f"{address} unreachable (echo: {echo.outcome.value}, ports: {attempt.outcome.value})")
        return ProbeResult.offline(address, attempt.outcome)

    async def check_url(self, url: str) -> bool:
        """Check whether a URL answers with a status below 500.

        A HEAD request is sent first; on a TLS or certificate failure it is
        retried once as a GET without certificate verification.
        """
        if not url or not url.strip():
            return False
        full_url = _normalize_url(url)
        timeout = self.config.url_timeout_seconds

        try:
            status = await self._request("HEAD", full_url, timeout, verify=True)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            if isinstance(e, httpx.InvalidURL) or not _is_tls_error(e):
                logger.debug(f"URL check failed for {full_url}: {e}")
                return False
            logger.debug(f"TLS error for {full_url}, retrying with GET: {e}")
            try:
                status = await self._request("GET", full_url, timeout, verify=False)
            except (httpx.HTTPError, httpx.InvalidURL) as e2:
                logger.debug(f"URL retry failed for {full_url}: {e2}")
                return False

        return 200 <= status < REACHABLE_STATUS_LIMIT

    async def _request(self, method: str, url: str, timeout: float, verify: bool) -> int:
        async with httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            verify=verify,
            transport=self._transport,
        ) as client:
            response = await client.request(method, url)
            return response.status_code

    async def echo(self, address: str, timeout: float | None = None) -> EchoResult:
        """Send a single ICMP echo and report latency and packet loss."""
        timeout = timeout or self.config.echo_timeout_seconds
        privileged = self.config.privileged_echo
        try:
            try:
                host = await async_ping(address, count=1, timeout=timeout, privileged=privileged)
            except SocketPermissionError:
                if privileged:
                    raise
                # Unprivileged ICMP sockets are disabled on this system
                host = await async_ping(address, count=1, timeout=timeout, privileged=True)
        except (ICMPLibError, OSError) as e:
            logger.debug(f"Echo to {address} failed: {e}")
            return EchoResult(ProbeOutcome.ERROR)

        if not host.is_alive:
            return EchoResult(ProbeOutcome.TIMEOUT)
        return EchoResult(
            ProbeOutcome.SUCCESS,
            latency_ms=float(host.avg_rtt),
            packet_loss_pct=float(host.packet_loss) * 100,
        )

    async def connect(self, address: str, port: int, timeout: float) -> PortAttempt:
        """Attempt one TCP connection."""
        started = time.perf_counter()
        try:
            _, writer = await asyncio.wait_for(asyncio.open_connection(address, port), timeout)
        except TimeoutError:
            return PortAttempt(port, ProbeOutcome.TIMEOUT)
        except ConnectionRefusedError:
            return PortAttempt(port, ProbeOutcome.CONNECTION_REFUSED)
        except OSError:
            return PortAttempt(port, ProbeOutcome.UNREACHABLE)

        latency = (time.perf_counter() - started) * 1000
        writer.close()
        try:
            await writer.wait_closed()
        except OSError:
            pass  # Peer reset after accept, the connect still succeeded
        return PortAttempt(port, ProbeOutcome.SUCCESS, latency_ms=latency)

    async def first_open_port(self, address: str, ports: list[int], timeout: float) -> PortAttempt:
        """Connect to all ports in parallel and return the first that accepts.

        Remaining attempts are cancelled as soon as one port succeeds.
        """
        if not ports:
            return PortAttempt(None, ProbeOutcome.ERROR)

        tasks = [asyncio.create_task(self.connect(address, port, timeout)) for port in ports]
        failures: list[PortAttempt] = []
        try:
            for next_done in asyncio.as_completed(tasks):
                try:
                    attempt = await next_done
                except Exception as e:
                    logger.debug(f"Connect to {address} raised: {e}")
                    failures.append(PortAttempt(None, ProbeOutcome.ERROR))
                    continue
                if attempt.ok:
                    return attempt
                failures.append(attempt)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        return PortAttempt(None, _summarize_failures(failures))
