"""
Diagnostic Run orchestration for SiteTrace.

One DiagnosticRun is the application context for a single run: it
launches the lookups, feeds parsed addresses into the aggregator, probes
the finalized addresses and can be stopped from any thread.

by BitSpectreLabs
"""

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Sequence, Set

from sitetrace.core.aggregator import IPAggregator
from sitetrace.core.lookup import LookupRunner, build_resolver_specs
from sitetrace.core.models import DiagnosticReport, ProbeResult, ResolverSpec, RunState
from sitetrace.core.network_info import check_internet, get_public_ips
from sitetrace.core.parser import ResponseParser
from sitetrace.core.probes import ProbeRunner
from sitetrace.core.utils import extract_hostname

logger = logging.getLogger(__name__)


EventCallback = Callable[[str, Dict[str, Any]], None]


class DiagnosticRun:
    """
    A single website diagnostic run.

    Events are delivered through ``callback(event_type, data)``:

    - ``status``: progress message
    - ``network_info``: connectivity and public addresses
    - ``lookup_output``: verbatim lookup text with its resolver index
    - ``lookup_parsed``: addresses extracted from one resolver
    - ``addresses``: the finalized address list
    - ``empty`` / ``failed`` / ``cancelled``: terminal lookup states
    - ``probe_output``: verbatim traceroute or ping text
    - ``complete``: the run has ended, with its final state
    """

    def __init__(
        self,
        target: str,
        resolvers: Sequence[str],
        lookup_runner: Optional[LookupRunner] = None,
        probe_runner: Optional[ProbeRunner] = None,
        parser: Optional[ResponseParser] = None,
        run_timeout: Optional[float] = 120.0,
        probe: bool = True,
        network_info: bool = False,
        callback: Optional[EventCallback] = None,
    ):
        """
        Initialize diagnostic run.

        Args:
            target: URL or hostname entered by the user
            resolvers: DNS servers to query
            lookup_runner: Runner for nslookup (default settings if None)
            probe_runner: Runner for traceroute/ping (default settings if None)
            parser: Output parser (built from resolvers if None)
            run_timeout: Supervisory limit for the lookup phase in seconds
            probe: Probe the finalized addresses
            network_info: Record connectivity and public IPs first
            callback: Event callback

        Raises:
            ValueError: If target or resolver list is unusable
        """
        self.target = target
        self.hostname = extract_hostname(target)
        self.resolvers = build_resolver_specs(resolvers)
        self.lookup_runner = lookup_runner or LookupRunner()
        self.probe_runner = probe_runner or ProbeRunner()
        self.parser = parser or ResponseParser(self.resolvers)
        self.run_timeout = run_timeout
        self.probe_enabled = probe
        self.network_info_enabled = network_info
        self.callback = callback

        self.aggregator = IPAggregator(len(self.resolvers))
        self.report: Optional[DiagnosticReport] = None

        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._tasks: Set[asyncio.Future] = set()
        self._stopped = False

    @property
    def stopped(self) -> bool:
        return self._stopped

    def stop(self) -> None:
        """
        Stop the run. Safe to call from any thread.

        Lookups still in flight are abandoned and the address set ends in
        the cancelled state instead of being finalized.
        """
        if self._stopped:
            return

        self._stopped = True
        logger.info("Diagnostics stopped by user")
        self.aggregator.cancel()

        loop = self._loop
        if loop is None or loop.is_closed():
            return

        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None

        if running is loop:
            self._cancel_tasks()
        else:
            loop.call_soon_threadsafe(self._cancel_tasks)

    async def execute(self) -> DiagnosticReport:
        """
        Run lookups, aggregation and probes.

        Returns:
            DiagnosticReport whose state is complete, empty, failed or
            cancelled
        """
        self._loop = asyncio.get_running_loop()

        report = DiagnosticReport(
            target=self.target,
            hostname=self.hostname,
            resolvers=[resolver.address for resolver in self.resolvers],
        )
        self.report = report

        try:
            if not self._stopped and self.network_info_enabled:
                await self._collect_network_info(report)

            if not self._stopped:
                await self._resolve(report)

            report.outcome = self.aggregator.outcome
            self._emit_outcome(report)

            if (
                report.state is RunState.COMPLETE
                and self.probe_enabled
                and not self._stopped
            ):
                await self._probe(report)

        except asyncio.CancelledError:
            self.stop()
            self._finish(report)
            raise

        self._finish(report)
        return report

    async def _collect_network_info(self, report: DiagnosticReport) -> None:
        loop = asyncio.get_running_loop()
        self._emit("status", {"message": "Checking network connectivity"})

        report.internet_connected = await loop.run_in_executor(None, check_internet)
        public_ips = await loop.run_in_executor(None, get_public_ips)
        report.public_ipv4 = public_ips.ipv4
        report.public_ipv6 = public_ips.ipv6

        self._emit("network_info", {
            "internet_connected": report.internet_connected,
            "public_ipv4": report.public_ipv4,
            "public_ipv6": report.public_ipv6,
        })

    async def _resolve(self, report: DiagnosticReport) -> None:
        self._emit("status", {
            "message": f"Resolving {self.hostname} via {len(self.resolvers)} DNS servers",
        })

        tasks = [self._spawn(self._lookup_and_record(resolver, report)) for resolver in self.resolvers]
        done, pending = await asyncio.wait(tasks, timeout=self.run_timeout)

        if pending:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            if not self._stopped:
                self.aggregator.fail(
                    f"timed out waiting for resolvers "
                    f"({self.aggregator.reported}/{self.aggregator.expected} reported)"
                )

        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.error(f"Lookup task failed: {task.exception()}")

        # Resolver that raised without recording would leave the run pending
        if self.aggregator.state is RunState.PENDING and not self._stopped:
            self.aggregator.fail("lookup task failed before reporting")

        report.lookups.sort(key=lambda r: r.resolver.index)

    async def _lookup_and_record(self, resolver: ResolverSpec, report: DiagnosticReport) -> None:
        result = await self.lookup_runner.lookup(self.hostname, resolver)
        if self._stopped:
            return

        report.lookups.append(result)
        self._emit("lookup_output", {
            "dns_index": resolver.index,
            "resolver": resolver.address,
            "output": result.text,
            "error": result.error,
            "result": result,
        })

        addresses = self.parser.parse_result(result)
        self._emit("lookup_parsed", {
            "dns_index": resolver.index,
            "resolver": resolver.address,
            "addresses": [address.address for address in addresses],
        })

        self.aggregator.record(resolver.index, addresses)

    def _emit_outcome(self, report: DiagnosticReport) -> None:
        state = report.state
        outcome = report.outcome

        if state is RunState.COMPLETE:
            self._emit("addresses", {"addresses": report.addresses})
        elif state is RunState.EMPTY:
            self._emit("empty", {"message": "No IP addresses found in nslookup results"})
        elif state is RunState.CANCELLED:
            self._emit("cancelled", {"message": "Diagnostics stopped by user"})
        elif state is RunState.FAILED:
            self._emit("failed", {"reason": outcome.reason if outcome else "unknown error"})

    async def _probe(self, report: DiagnosticReport) -> None:
        self._emit("status", {
            "message": f"Starting traceroute and ping tests for {len(report.addresses)} addresses",
        })

        def on_probe(result: ProbeResult) -> None:
            if self._stopped:
                return
            report.probes.append(result)
            self._emit("probe_output", {
                "kind": result.kind,
                "address": result.address,
                "output": result.text,
                "error": result.error,
                "result": result,
            })

        task = self._spawn(self.probe_runner.run(report.addresses, callback=on_probe))
        try:
            await task
        except asyncio.CancelledError:
            if not self._stopped:
                raise
            logger.debug(f"Probing abandoned after {len(report.probes)} results")

    def _finish(self, report: DiagnosticReport) -> None:
        if report.outcome is None:
            report.outcome = self.aggregator.outcome
        report.cancelled = self._stopped
        report.end_time = datetime.now()

        self._emit("complete", {"state": report.state.value, "duration": report.duration})
        logger.info(f"Diagnostic run for {self.hostname} finished: {report.state.value}")

    def _spawn(self, coro) -> asyncio.Future:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _cancel_tasks(self) -> None:
        for task in list(self._tasks):
            task.cancel()

    def _emit(self, event_type: str, data: Dict[str, Any]) -> None:
        if self.callback:
            self.callback(event_type, data)

