"""
Tests for DiagnosticRun orchestration
by BitSpectreLabs
"""

import asyncio
import threading
from typing import Dict, List, Optional
from unittest.mock import patch

import pytest

from sitetrace.core.diagnostics import DiagnosticRun
from sitetrace.core.models import LookupResult, ProbeResult, RunState
from sitetrace.core.network_info import PublicIPs


ANSWER = "Server: {resolver}\nAddress: {resolver}#53\n\nNon-authoritative answer:\nName: example.com\nAddress: {ip}\n"
NXDOMAIN = "Server: {resolver}\nAddress: {resolver}#53\n\n** server can't find example.com: NXDOMAIN\n"


class _FakeLookupRunner:
    """Returns canned nslookup text per resolver."""

    def __init__(
        self,
        outputs: Dict[str, str],
        errors: Optional[Dict[str, str]] = None,
        delays: Optional[Dict[str, float]] = None,
    ):
        self.outputs = outputs
        self.errors = errors or {}
        self.delays = delays or {}
        self.calls: List[str] = []

    async def lookup(self, hostname, resolver):
        self.calls.append(resolver.address)
        delay = self.delays.get(resolver.address, 0.0)
        if delay:
            await asyncio.sleep(delay)
        return LookupResult(
            resolver=resolver,
            hostname=hostname,
            output=self.outputs.get(resolver.address, ""),
            exit_status=None if resolver.address in self.errors else 0,
            error=self.errors.get(resolver.address),
        )


class _FakeProbeRunner:
    """Records probed addresses; optionally hangs after the first result."""

    def __init__(self, hang: bool = False):
        self.hang = hang
        self.probed: List[str] = []
        self.traceroute_enabled = True
        self.ping_enabled = True

    async def run(self, addresses, callback=None):
        results = []
        for address in addresses:
            self.probed.append(address)
            result = ProbeResult(kind="traceroute", address=address, output="1 hop\n", exit_status=0)
            results.append(result)
            if callback:
                callback(result)
            if self.hang:
                await asyncio.sleep(30)
        return results


class _Events:
    def __init__(self):
        self.items = []

    def __call__(self, event_type, data):
        self.items.append((event_type, data))

    def types(self):
        return [event_type for event_type, _ in self.items]


def _answers(mapping):
    return {resolver: ANSWER.format(resolver=resolver, ip=ip) for resolver, ip in mapping.items()}


class TestConstruction:
    """Tests for DiagnosticRun setup."""

    def test_hostname_from_url(self):
        """Test the target URL is reduced to a hostname."""
        run = DiagnosticRun("https://www.example.com/index.html", ["8.8.8.8"])
        assert run.hostname == "www.example.com"
        assert [r.index for r in run.resolvers] == [0]

    def test_empty_target(self):
        """Test an empty target is rejected."""
        with pytest.raises(ValueError):
            DiagnosticRun("", ["8.8.8.8"])

    def test_no_resolvers(self):
        """Test an empty resolver list is rejected."""
        with pytest.raises(ValueError):
            DiagnosticRun("example.com", [])


class TestExecute:
    """Tests for DiagnosticRun.execute()."""

    @pytest.mark.asyncio
    async def test_scenario_a(self):
        """Test two resolvers agreeing on one address probe it once."""
        lookups = _FakeLookupRunner(_answers({"8.8.8.8": "93.184.216.34", "1.1.1.1": "93.184.216.34"}))
        probes = _FakeProbeRunner()
        events = _Events()

        run = DiagnosticRun(
            "example.com", ["8.8.8.8", "1.1.1.1"],
            lookup_runner=lookups, probe_runner=probes, callback=events,
        )
        report = await run.execute()

        assert report.state is RunState.COMPLETE
        assert report.addresses == ["93.184.216.34"]
        assert probes.probed == ["93.184.216.34"]
        assert [lookup.resolver.index for lookup in report.lookups] == [0, 1]
        assert len(report.probes) == 1
        assert report.end_time is not None

        types = events.types()
        assert types.count("lookup_output") == 2
        assert types.count("lookup_parsed") == 2
        assert "addresses" in types
        assert "probe_output" in types
        assert types[-1] == "complete"

    @pytest.mark.asyncio
    async def test_lookup_output_annotated(self):
        """Test per-resolver text carries the resolver index."""
        lookups = _FakeLookupRunner(_answers({"8.8.8.8": "10.0.0.1", "1.1.1.1": "10.0.0.2"}))
        events = _Events()

        run = DiagnosticRun(
            "example.com", ["8.8.8.8", "1.1.1.1"],
            lookup_runner=lookups, probe=False, callback=events,
        )
        await run.execute()

        outputs = {data["dns_index"]: data["output"] for t, data in events.items if t == "lookup_output"}
        assert "10.0.0.1" in outputs[0]
        assert "10.0.0.2" in outputs[1]

    @pytest.mark.asyncio
    async def test_scenario_c_failed_resolver_counts(self):
        """Test a failed invocation is still counted toward completion."""
        lookups = _FakeLookupRunner(
            {**_answers({"8.8.8.8": "10.0.0.1"}), "1.1.1.1": ""},
            errors={"1.1.1.1": "nslookup not found"},
        )
        run = DiagnosticRun(
            "example.com", ["8.8.8.8", "1.1.1.1"],
            lookup_runner=lookups, probe_runner=_FakeProbeRunner(),
        )
        report = await run.execute()

        assert report.state is RunState.COMPLETE
        assert report.addresses == ["10.0.0.1"]
        assert report.outcome.reported == 2
        assert report.to_dict()["statistics"]["failed_lookups"] == 1

    @pytest.mark.asyncio
    async def test_empty_result(self):
        """Test no addresses anywhere ends empty without probing."""
        outputs = {r: NXDOMAIN.format(resolver=r) for r in ("8.8.8.8", "1.1.1.1")}
        probes = _FakeProbeRunner()
        events = _Events()

        run = DiagnosticRun(
            "example.com", ["8.8.8.8", "1.1.1.1"],
            lookup_runner=_FakeLookupRunner(outputs), probe_runner=probes, callback=events,
        )
        report = await run.execute()

        assert report.state is RunState.EMPTY
        assert report.outcome.reason == "no targets found"
        assert probes.probed == []
        assert "empty" in events.types()

    @pytest.mark.asyncio
    async def test_probe_disabled(self):
        """Test probing can be turned off."""
        probes = _FakeProbeRunner()
        run = DiagnosticRun(
            "example.com", ["8.8.8.8"],
            lookup_runner=_FakeLookupRunner(_answers({"8.8.8.8": "10.0.0.1"})),
            probe_runner=probes, probe=False,
        )
        report = await run.execute()

        assert report.state is RunState.COMPLETE
        assert probes.probed == []

    @pytest.mark.asyncio
    async def test_supervisory_timeout(self):
        """Test a resolver that never answers fails the run."""
        lookups = _FakeLookupRunner(
            _answers({"8.8.8.8": "10.0.0.1", "1.1.1.1": "10.0.0.2"}),
            delays={"1.1.1.1": 30.0},
        )
        events = _Events()
        run = DiagnosticRun(
            "example.com", ["8.8.8.8", "1.1.1.1"],
            lookup_runner=lookups, probe_runner=_FakeProbeRunner(),
            run_timeout=0.1, callback=events,
        )
        report = await run.execute()

        assert report.state is RunState.FAILED
        assert report.outcome.reason == "timed out waiting for resolvers (1/2 reported)"
        assert report.probes == []
        assert "failed" in events.types()

    @pytest.mark.asyncio
    async def test_scenario_d_stop_during_lookup(self):
        """Test a stop before all resolvers report ends cancelled."""
        lookups = _FakeLookupRunner(
            _answers({"8.8.8.8": "10.0.0.1", "1.1.1.1": "10.0.0.2", "9.9.9.9": "10.0.0.3"}),
            delays={"9.9.9.9": 30.0},
        )
        probes = _FakeProbeRunner()
        events = _Events()
        run = DiagnosticRun(
            "example.com", ["8.8.8.8", "1.1.1.1", "9.9.9.9"],
            lookup_runner=lookups, probe_runner=probes, callback=events,
        )

        asyncio.get_running_loop().call_later(0.05, run.stop)
        report = await run.execute()

        assert report.state is RunState.CANCELLED
        assert report.outcome.state is RunState.CANCELLED
        assert report.addresses == []
        assert probes.probed == []
        assert "cancelled" in events.types()
        assert "addresses" not in events.types()

    @pytest.mark.asyncio
    async def test_stop_from_other_thread(self):
        """Test stop() can be called from outside the event loop thread."""
        lookups = _FakeLookupRunner(
            _answers({"8.8.8.8": "10.0.0.1", "1.1.1.1": "10.0.0.2"}),
            delays={"1.1.1.1": 30.0},
        )
        run = DiagnosticRun("example.com", ["8.8.8.8", "1.1.1.1"], lookup_runner=lookups)

        timer = threading.Timer(0.05, run.stop)
        timer.start()
        try:
            report = await asyncio.wait_for(run.execute(), timeout=5.0)
        finally:
            timer.cancel()

        assert run.stopped is True
        assert report.state is RunState.CANCELLED

    @pytest.mark.asyncio
    async def test_stop_during_probes(self):
        """Test a stop while probing keeps earlier results and ends cancelled."""
        probes = _FakeProbeRunner(hang=True)
        run = DiagnosticRun(
            "example.com", ["8.8.8.8"],
            lookup_runner=_FakeLookupRunner(_answers({"8.8.8.8": "10.0.0.1"})),
            probe_runner=probes,
        )

        asyncio.get_running_loop().call_later(0.05, run.stop)
        report = await run.execute()

        assert report.state is RunState.CANCELLED
        assert report.outcome.state is RunState.COMPLETE
        assert len(report.probes) == 1

    @pytest.mark.asyncio
    async def test_stop_before_execute(self):
        """Test a run stopped up front performs no lookups."""
        lookups = _FakeLookupRunner(_answers({"8.8.8.8": "10.0.0.1"}))
        run = DiagnosticRun("example.com", ["8.8.8.8"], lookup_runner=lookups)
        run.stop()

        report = await run.execute()

        assert report.state is RunState.CANCELLED
        assert lookups.calls == []

    @pytest.mark.asyncio
    async def test_network_info(self):
        """Test connectivity and public IPs are recorded when enabled."""
        run = DiagnosticRun(
            "example.com", ["8.8.8.8"],
            lookup_runner=_FakeLookupRunner(_answers({"8.8.8.8": "10.0.0.1"})),
            probe=False, network_info=True,
        )

        with patch("sitetrace.core.diagnostics.check_internet", return_value=True), \
             patch("sitetrace.core.diagnostics.get_public_ips",
                   return_value=PublicIPs(ipv4="203.0.113.7", ipv6="Not available")):
            report = await run.execute()

        assert report.internet_connected is True
        assert report.public_ipv4 == "203.0.113.7"
        assert report.public_ipv6 == "Not available"
