"""
Tests for CLI main module smoke coverage
by BitSpectreLabs
"""

from __future__ import annotations

import asyncio
import json
import zipfile
from pathlib import Path
from typing import Dict, Optional

import pytest
from typer.testing import CliRunner

import sitetrace.cli.main as cli
from sitetrace.core.config import SiteTraceConfig
from sitetrace.core.models import LookupResult, ProbeResult
from sitetrace.core.network_info import PublicIPs


ANSWER = "Server: {resolver}\nAddress: {resolver}#53\n\nNon-authoritative answer:\nName: example.com\nAddress: 93.184.216.34\n"
NXDOMAIN = "Server: {resolver}\nAddress: {resolver}#53\n\n** server can't find example.com: NXDOMAIN\n"


class _FakeLookupRunner:
    """Deterministic fake LookupRunner for CLI tests."""

    template = ANSWER
    delay = 0.0

    def __init__(self, timeout: float = 10.0, command: str = "nslookup", extra_args=None) -> None:
        self.timeout = timeout
        self.command = command

    async def lookup(self, hostname: str, resolver) -> LookupResult:
        if self.delay:
            await asyncio.sleep(self.delay)
        return LookupResult(
            resolver=resolver,
            hostname=hostname,
            output=self.template.format(resolver=resolver.address),
            exit_status=0,
        )


class _FakeProbeRunner:
    """Deterministic fake ProbeRunner for CLI tests."""

    def __init__(self, traceroute: bool = True, ping: bool = True, **kwargs) -> None:
        self.traceroute_enabled = traceroute
        self.ping_enabled = ping

    async def run(self, addresses, callback=None):
        results = []
        for address in addresses:
            for kind in ("traceroute", "ping"):
                if kind == "traceroute" and not self.traceroute_enabled:
                    continue
                if kind == "ping" and not self.ping_enabled:
                    continue
                result = ProbeResult(kind=kind, address=address, output=f"{kind} ok\n", exit_status=0)
                results.append(result)
                if callback is not None:
                    callback(result)
        return results


@pytest.fixture()
def runner() -> CliRunner:
    """Typer test runner."""

    return CliRunner()


def _result_output(result) -> str:
    """Get output from a Typer/CliRunner result across Click versions."""

    return getattr(result, "stdout", None) or getattr(result, "output", "")


@pytest.fixture()
def config(tmp_path: Path) -> SiteTraceConfig:
    """Configuration with network info off and results in tmp_path."""

    cfg = SiteTraceConfig()
    cfg.lookup.servers = ["8.8.8.8", "1.1.1.1"]
    cfg.advanced.check_connectivity = False
    cfg.output.results_directory = str(tmp_path / "results")
    return cfg


@pytest.fixture()
def fake_runners(monkeypatch: pytest.MonkeyPatch, config: SiteTraceConfig) -> Dict[str, object]:
    """Patch CLI module to use fake runners and a fixed config."""

    calls: Dict[str, object] = {}

    def fake_setup_logging(log_level: str = "WARNING", log_file: Optional[str] = None, **kwargs):
        calls["log_level"] = log_level

    _FakeLookupRunner.template = ANSWER
    _FakeLookupRunner.delay = 0.0

    monkeypatch.setattr(cli, "LookupRunner", _FakeLookupRunner)
    monkeypatch.setattr(cli, "ProbeRunner", _FakeProbeRunner)
    monkeypatch.setattr(cli, "_load_config", lambda: config)
    monkeypatch.setattr(cli, "setup_logging", fake_setup_logging)
    return calls


class TestRunCommand:
    """Tests for `sitetrace run`."""

    def test_complete(self, runner, fake_runners):
        """Test a successful run prints lookups, probes and the summary."""
        result = runner.invoke(cli.app, ["run", "https://example.com/"])
        output = _result_output(result)

        assert result.exit_code == 0, output
        assert "NSLOOKUP with DNS 8.8.8.8" in output
        assert "NSLOOKUP with DNS 1.1.1.1" in output
        assert "Found 1 unique IP addresses: 93.184.216.34" in output
        assert "TRACERT to 93.184.216.34" in output
        assert "PING to 93.184.216.34" in output
        assert "DIAGNOSTICS COMPLETE" in output

    def test_dns_option_overrides_config(self, runner, fake_runners):
        """Test --dns replaces the configured servers."""
        result = runner.invoke(cli.app, ["run", "example.com", "-d", "9.9.9.9"])
        output = _result_output(result)

        assert result.exit_code == 0, output
        assert "NSLOOKUP with DNS 9.9.9.9" in output
        assert "NSLOOKUP with DNS 8.8.8.8" not in output

    def test_no_traceroute(self, runner, fake_runners):
        """Test --no-traceroute skips traceroute."""
        result = runner.invoke(cli.app, ["run", "example.com", "--no-traceroute"])
        output = _result_output(result)

        assert result.exit_code == 0, output
        assert "TRACERT" not in output
        assert "PING to 93.184.216.34" in output

    def test_empty(self, runner, fake_runners):
        """Test no addresses is reported and exits 0."""
        _FakeLookupRunner.template = NXDOMAIN

        result = runner.invoke(cli.app, ["run", "example.com"])
        output = _result_output(result)

        assert result.exit_code == 0, output
        assert "No IP addresses found in nslookup results" in output
        assert "TRACERT" not in output

    def test_timeout_fails(self, runner, fake_runners):
        """Test a supervisory timeout exits 1."""
        _FakeLookupRunner.delay = 5.0

        result = runner.invoke(cli.app, ["run", "example.com", "--run-timeout", "0.05"])
        output = _result_output(result)

        assert result.exit_code == 1
        assert "DIAGNOSTICS FAILED: timed out waiting for resolvers" in output

    def test_cancelled_exit_code(self, runner, fake_runners, monkeypatch):
        """Test a stopped run exits 130."""

        class _StoppedRun(cli.DiagnosticRun):
            async def execute(self):
                self.stop()
                return await super().execute()

        monkeypatch.setattr(cli, "DiagnosticRun", _StoppedRun)

        result = runner.invoke(cli.app, ["run", "example.com"])

        assert result.exit_code == 130
        assert "DIAGNOSTICS STOPPED BY USER" in _result_output(result)

    def test_invalid_target(self, runner, fake_runners):
        """Test an unusable target is an error."""
        result = runner.invoke(cli.app, ["run", "https:///"])

        assert result.exit_code == 1
        assert "Error" in _result_output(result)

    def test_verbose_forces_debug(self, runner, fake_runners):
        """Test --verbose configures DEBUG logging."""
        runner.invoke(cli.app, ["run", "example.com", "--verbose"])
        assert fake_runners["log_level"] == "DEBUG"

    def test_quiet(self, runner, fake_runners):
        """Test --quiet hides raw tool output."""
        result = runner.invoke(cli.app, ["run", "example.com", "--quiet"])
        output = _result_output(result)

        assert result.exit_code == 0, output
        assert "NSLOOKUP" not in output
        assert "DIAGNOSTICS COMPLETE" in output

    def test_outputs_written(self, runner, fake_runners, tmp_path):
        """Test --report, --json and --archive write files."""
        report_path = tmp_path / "run.txt"
        json_path = tmp_path / "run.json"
        archive_dir = tmp_path / "archives"
        screenshot = tmp_path / "shot.png"
        screenshot.write_bytes(b"png")

        result = runner.invoke(cli.app, [
            "run", "example.com", "--quiet",
            "--report", str(report_path),
            "--json", str(json_path),
            "--archive", str(archive_dir),
            "--attach", str(screenshot),
        ])

        assert result.exit_code == 0, _result_output(result)
        assert "DIAGNOSTICS COMPLETE" in report_path.read_text(encoding="utf-8")
        assert json.loads(json_path.read_text(encoding="utf-8"))["state"] == "complete"

        archives = list(archive_dir.glob("sitetrace_example.com_*.zip"))
        assert len(archives) == 1
        with zipfile.ZipFile(archives[0]) as zf:
            assert set(zf.namelist()) == {"report.txt", "report.json", "shot.png"}


class TestParseCommand:
    """Tests for `sitetrace parse`."""

    def test_parse_file(self, runner, tmp_path):
        """Test addresses are extracted from a saved file."""
        path = tmp_path / "lookup.txt"
        path.write_text(ANSWER.format(resolver="8.8.8.8"), encoding="utf-8")

        result = runner.invoke(cli.app, ["parse", str(path), "-r", "8.8.8.8"])
        output = _result_output(result)

        assert result.exit_code == 0, output
        assert "93.184.216.34" in output
        assert "8.8.8.8" not in output
        assert "answer_section" in output

    def test_parse_json(self, runner, tmp_path):
        """Test --json prints structured addresses."""
        path = tmp_path / "lookup.txt"
        path.write_text(ANSWER.format(resolver="8.8.8.8"), encoding="utf-8")

        result = runner.invoke(cli.app, ["parse", str(path), "-r", "8.8.8.8", "--json"])
        data = json.loads(_result_output(result))

        assert data == [{
            "address": "93.184.216.34",
            "resolver": "8.8.8.8",
            "source": "answer_section",
            "version": 4,
        }]

    def test_parse_nothing_found(self, runner, tmp_path):
        """Test a file without addresses."""
        path = tmp_path / "lookup.txt"
        path.write_text(NXDOMAIN.format(resolver="8.8.8.8"), encoding="utf-8")

        result = runner.invoke(cli.app, ["parse", str(path), "-r", "8.8.8.8"])

        assert result.exit_code == 0
        assert "No IP addresses found" in _result_output(result)

    def test_parse_missing_file(self, runner, tmp_path):
        """Test a missing file is an error."""
        result = runner.invoke(cli.app, ["parse", str(tmp_path / "nope.txt")])
        assert result.exit_code == 1


class TestOtherCommands:
    """Tests for info, config and version."""

    def test_info(self, runner, monkeypatch):
        """Test connectivity and public IPs are shown."""
        monkeypatch.setattr(cli, "check_internet", lambda: True)
        monkeypatch.setattr(cli, "get_public_ips", lambda: PublicIPs(ipv4="203.0.113.7"))

        result = runner.invoke(cli.app, ["info"])
        output = _result_output(result)

        assert result.exit_code == 0, output
        assert "203.0.113.7" in output
        assert "Not available" in output

    def test_config_init_get_validate(self, runner, tmp_path, monkeypatch):
        """Test config init, get and validate against a custom file."""
        monkeypatch.chdir(tmp_path)
        config_file = tmp_path / "config.toml"

        result = runner.invoke(cli.app, ["config", "init", "--file", str(config_file)])
        assert result.exit_code == 0, _result_output(result)
        assert config_file.exists()

        result = runner.invoke(cli.app, ["config", "get", "lookup.command", "--file", str(config_file)])
        assert "lookup.command = nslookup" in _result_output(result)

        result = runner.invoke(cli.app, ["config", "validate", "--file", str(config_file)])
        assert result.exit_code == 0
        assert "Configuration is valid" in _result_output(result)

    def test_config_set(self, runner, tmp_path, monkeypatch):
        """Test config set persists to the chosen file."""
        monkeypatch.chdir(tmp_path)
        config_file = tmp_path / "config.toml"

        result = runner.invoke(cli.app, ["config", "set", "probes.ping_count", "7", "--file", str(config_file)])
        assert result.exit_code == 0, _result_output(result)
        assert "ping_count = 7" in config_file.read_text(encoding="utf-8")

    def test_config_unknown_action(self, runner):
        """Test an unknown action exits 1."""
        result = runner.invoke(cli.app, ["config", "explode"])
        assert result.exit_code == 1

    def test_version(self, runner):
        """Test version output."""
        from sitetrace import __version__

        result = runner.invoke(cli.app, ["version"])
        assert result.exit_code == 0
        assert __version__ in _result_output(result)
