"""
Resolver Runner for SiteTrace.

Runs ``nslookup <hostname> <resolver>`` once per configured resolver as
concurrent asyncio subprocesses. A failed invocation still produces a
LookupResult so the run can count it.

by BitSpectreLabs
"""

import asyncio
import logging
import platform
import subprocess
import time
from typing import List, Optional, Sequence

from sitetrace.core.models import LookupResult, ResolverSpec

logger = logging.getLogger(__name__)

REAP_TIMEOUT = 2.0


def build_resolver_specs(addresses: Sequence[str]) -> List[ResolverSpec]:
    """
    Turn configured resolver strings into indexed ResolverSpecs.

    Blank entries are skipped. Indices follow the remaining order.

    Raises:
        ValueError: If no resolver remains
    """
    cleaned = [address.strip() for address in addresses if address and address.strip()]
    if not cleaned:
        raise ValueError("At least one DNS server must be selected")

    for address in cleaned:
        if address.startswith("-"):
            raise ValueError(f"Invalid DNS server: {address}")

    return [ResolverSpec(address=address, index=index) for index, address in enumerate(cleaned)]


def _decode(data: Optional[bytes]) -> str:
    if not data:
        return ""
    return data.decode("utf-8", errors="replace")


def _creationflags() -> int:
    """Hide console windows for child processes on Windows."""
    if platform.system().lower() == "windows":
        return getattr(subprocess, "CREATE_NO_WINDOW", 0)
    return 0


async def run_command(command: List[str], timeout: float):
    """
    Run an external command and capture its output.

    Args:
        command: Argument vector (never passed through a shell)
        timeout: Seconds before the process is killed

    Returns:
        Tuple of (stdout, stderr, exit_status, error)

    Raises:
        asyncio.CancelledError: After the child process has been killed
    """
    try:
        process = await asyncio.create_subprocess_exec(
            *command,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            creationflags=_creationflags(),
        )
    except FileNotFoundError:
        return "", "", None, f"{command[0]} not found"
    except OSError as e:
        return "", "", None, f"Failed to start {command[0]}: {e}"

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        _kill(process)
        await process.wait()
        return "", "", None, f"timed out after {timeout}s"
    except asyncio.CancelledError:
        _kill(process)
        # Reap the child so no transport outlives the event loop
        try:
            await asyncio.wait_for(asyncio.shield(process.wait()), timeout=REAP_TIMEOUT)
        except (asyncio.TimeoutError, asyncio.CancelledError):
            logger.debug(f"{command[0]} not reaped after cancellation")
        raise

    return _decode(stdout), _decode(stderr), process.returncode, None


def _kill(process) -> None:
    try:
        process.kill()
    except ProcessLookupError:
        pass


class LookupRunner:
    """Invokes the system DNS lookup tool against each resolver."""

    def __init__(
        self,
        timeout: float = 10.0,
        command: str = "nslookup",
        extra_args: Optional[Sequence[str]] = None,
    ):
        """
        Initialize lookup runner.

        Args:
            timeout: Per-invocation timeout in seconds
            command: Lookup binary
            extra_args: Arguments inserted before the hostname
        """
        self.timeout = timeout
        self.command = command
        self.extra_args = list(extra_args or [])

    def build_command(self, hostname: str, resolver: ResolverSpec) -> List[str]:
        """
        Build the argument vector for one lookup.

        Raises:
            ValueError: If hostname is empty or looks like an option
        """
        hostname = (hostname or "").strip()
        if not hostname:
            raise ValueError("Hostname must not be empty")
        if hostname.startswith("-") or resolver.address.startswith("-"):
            raise ValueError("Hostname and resolver must not start with '-'")

        return [self.command, *self.extra_args, hostname, resolver.address]

    async def lookup(self, hostname: str, resolver: ResolverSpec) -> LookupResult:
        """
        Look up hostname against a single resolver.

        Never raises for process failures; they are reported through the
        ``error`` field of the result.
        """
        command = self.build_command(hostname, resolver)
        logger.debug(f"Running: {' '.join(command)}")

        start = time.monotonic()
        output, errors, exit_status, error = await run_command(command, self.timeout)
        duration = time.monotonic() - start

        result = LookupResult(
            resolver=resolver,
            hostname=hostname,
            output=output,
            errors=errors,
            exit_status=exit_status,
            error=error,
            duration=duration,
        )

        if error:
            logger.warning(f"Lookup via {resolver.address} failed: {error}")
        elif not result.success:
            logger.info(f"Lookup via {resolver.address} exited with status {exit_status}")

        return result
