"""
Traceroute and ping probes for SiteTrace
by BitSpectreLabs

Supports both IPv4 and IPv6 targets.
"""

import asyncio
import logging
import platform
import time
from typing import Callable, List, Optional, Sequence

from sitetrace.core.lookup import run_command
from sitetrace.core.models import ProbeResult
from sitetrace.core.utils import is_ipv6

logger = logging.getLogger(__name__)


class ProbeRunner:
    """Runs traceroute followed by ping against resolved addresses."""

    def __init__(
        self,
        ping_count: int = 4,
        max_hops: int = 30,
        traceroute_timeout: float = 120.0,
        ping_timeout: float = 30.0,
        concurrency: int = 4,
        traceroute: bool = True,
        ping: bool = True,
    ):
        """
        Initialize probe runner.

        Args:
            ping_count: Echo requests per ping
            max_hops: Maximum traceroute hops
            traceroute_timeout: Seconds before a traceroute is killed
            ping_timeout: Seconds before a ping is killed
            concurrency: Addresses probed at the same time
            traceroute: Run traceroute
            ping: Run ping
        """
        self.ping_count = ping_count
        self.max_hops = max_hops
        self.traceroute_timeout = traceroute_timeout
        self.ping_timeout = ping_timeout
        self.concurrency = max(1, concurrency)
        self.traceroute_enabled = traceroute
        self.ping_enabled = ping

    @staticmethod
    def _is_windows() -> bool:
        return platform.system().lower() == "windows"

    def traceroute_command(self, address: str) -> List[str]:
        """Build the platform traceroute command for address."""
        ipv6 = is_ipv6(address)

        if self._is_windows():
            command = ["tracert", "-h", str(self.max_hops)]
            if ipv6:
                command.append("-6")
        else:
            command = ["traceroute"]
            if ipv6:
                command.append("-6")
            command.extend(["-m", str(self.max_hops)])

        command.append(address)
        return command

    def ping_command(self, address: str) -> List[str]:
        """Build the platform ping command for address."""
        param = "-n" if self._is_windows() else "-c"
        command = ["ping", param, str(self.ping_count)]
        if is_ipv6(address):
            command.append("-6")
        command.append(address)
        return command

    async def _execute(self, kind: str, address: str, command: List[str], timeout: float) -> ProbeResult:
        logger.debug(f"Running: {' '.join(command)}")

        start = time.monotonic()
        output, errors, exit_status, error = await run_command(command, timeout)

        result = ProbeResult(
            kind=kind,
            address=address,
            command=command,
            output=output,
            errors=errors,
            exit_status=exit_status,
            error=error,
            duration=time.monotonic() - start,
        )

        if error:
            logger.warning(f"{kind} to {address} failed: {error}")

        return result

    async def traceroute(self, address: str) -> ProbeResult:
        return await self._execute(
            "traceroute", address, self.traceroute_command(address), self.traceroute_timeout
        )

    async def ping(self, address: str) -> ProbeResult:
        return await self._execute("ping", address, self.ping_command(address), self.ping_timeout)

    async def probe(
        self,
        address: str,
        callback: Optional[Callable[[ProbeResult], None]] = None,
    ) -> List[ProbeResult]:
        """Traceroute, then ping, one address."""
        results = []

        if self.traceroute_enabled:
            result = await self.traceroute(address)
            results.append(result)
            if callback:
                callback(result)

        if self.ping_enabled:
            result = await self.ping(address)
            results.append(result)
            if callback:
                callback(result)

        return results

    async def run(
        self,
        addresses: Sequence[str],
        callback: Optional[Callable[[ProbeResult], None]] = None,
    ) -> List[ProbeResult]:
        """
        Probe every address, at most ``concurrency`` at a time.

        Returns:
            Results grouped by address in input order
        """
        semaphore = asyncio.Semaphore(self.concurrency)

        async def bounded(address: str) -> List[ProbeResult]:
            async with semaphore:
                return await self.probe(address, callback)

        grouped = await asyncio.gather(*(bounded(address) for address in addresses))
        return [result for group in grouped for result in group]
