"""
SiteTrace CLI - Command Line Interface
by BitSpectreLabs
"""

import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from sitetrace.core.config import ConfigError, ConfigManager, SiteTraceConfig, get_config
from sitetrace.core.diagnostics import DiagnosticRun
from sitetrace.core.logging_config import setup_logging
from sitetrace.core.lookup import LookupRunner
from sitetrace.core.models import DiagnosticReport, RunState
from sitetrace.core.network_info import check_internet, get_public_ips
from sitetrace.core.parser import ResponseParser
from sitetrace.core.probes import ProbeRunner
from sitetrace.core.utils import format_duration
from sitetrace.reports import (
    addresses_line,
    create_archive,
    generate_json_report,
    generate_text_report,
    lookup_block,
    probe_block,
    terminal_line,
)


app = typer.Typer(
    name="sitetrace",
    help="SiteTrace - Website Network Diagnostics by BitSpectreLabs",
    add_completion=False,
    no_args_is_help=True
)

console = Console()


EXIT_CODES = {
    RunState.COMPLETE: 0,
    RunState.EMPTY: 0,
    RunState.FAILED: 1,
    RunState.CANCELLED: 130,
    RunState.PENDING: 1,
}


def _load_config() -> SiteTraceConfig:
    try:
        return get_config()
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


def _state_style(state: RunState) -> str:
    return {
        RunState.COMPLETE: "green",
        RunState.EMPTY: "yellow",
        RunState.CANCELLED: "yellow",
        RunState.FAILED: "red",
    }.get(state, "white")


async def _execute_run(run: DiagnosticRun) -> DiagnosticReport:
    """Execute a run, turning SIGINT/SIGTERM into run.stop()."""
    loop = asyncio.get_running_loop()
    installed = []

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, run.stop)
            installed.append(sig)
        except (NotImplementedError, RuntimeError, ValueError):
            # Windows and non-main threads fall back to KeyboardInterrupt
            pass

    try:
        return await run.execute()
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)


@app.command(name="run", help="Resolve a website via several DNS servers, then trace and ping it")
def run_diagnostics(
    target: str = typer.Argument(..., help="Website URL or hostname"),

    # Lookup
    dns: Optional[List[str]] = typer.Option(
        None, "-d", "--dns",
        help="DNS server to query (repeatable, defaults to lookup.servers)"
    ),
    timeout: Optional[float] = typer.Option(None, "--timeout", help="Per-lookup timeout in seconds"),
    run_timeout: Optional[float] = typer.Option(
        None, "--run-timeout",
        help="Give up waiting for DNS servers after this many seconds"
    ),

    # Probes
    no_traceroute: bool = typer.Option(False, "--no-traceroute", help="Skip traceroute"),
    no_ping: bool = typer.Option(False, "--no-ping", help="Skip ping"),
    skip_network_info: bool = typer.Option(
        False, "--skip-network-info",
        help="Skip the connectivity check and public IP lookup"
    ),

    # Output
    json_output: Optional[Path] = typer.Option(None, "--json", help="Save JSON report"),
    report_output: Optional[Path] = typer.Option(None, "--report", help="Save text transcript"),
    archive_dir: Optional[Path] = typer.Option(None, "--archive", help="Write a zip archive to this directory"),
    attach: Optional[List[Path]] = typer.Option(
        None, "--attach",
        help="Extra file to include in the archive (repeatable)"
    ),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose output"),
    quiet: bool = typer.Option(False, "-q", "--quiet", help="Only print the summary"),
):
    """
    Run website diagnostics.

    Every DNS server is asked for the target's addresses with nslookup.
    Once all of them have answered, each unique address gets a traceroute
    followed by a ping. Press Ctrl+C to stop.

    Examples:

      sitetrace run https://www.example.com

      sitetrace run example.com -d 8.8.8.8 -d 1.1.1.1

      sitetrace run example.com --no-traceroute --report run.txt

      sitetrace run example.com --archive ./runs --attach screenshot.png
    """
    config = _load_config()

    verbose = verbose or config.output.verbose
    quiet = (quiet or config.output.quiet) and not verbose
    if not config.output.color_enabled:
        console.no_color = True

    setup_logging(
        log_level="DEBUG" if verbose else config.advanced.log_level,
        log_file=config.advanced.log_file,
    )

    lookup_runner = LookupRunner(
        timeout=timeout if timeout is not None else config.lookup.timeout,
        command=config.lookup.command,
    )
    probe_runner = ProbeRunner(
        ping_count=config.probes.ping_count,
        max_hops=config.probes.max_hops,
        traceroute_timeout=config.probes.traceroute_timeout,
        ping_timeout=config.probes.ping_timeout,
        concurrency=config.probes.concurrency,
        traceroute=config.probes.traceroute and not no_traceroute,
        ping=config.probes.ping and not no_ping,
    )

    def progress_callback(event_type: str, data):
        if event_type == "status":
            if verbose:
                console.print(f"[cyan]>[/cyan] {data['message']}")
        elif event_type == "network_info":
            if not quiet:
                connected = "[green]Yes[/green]" if data["internet_connected"] else "[red]No[/red]"
                console.print(f"[bold]Internet Connected:[/bold] {connected}")
                console.print(f"[bold]Public IPv4:[/bold] {data['public_ipv4']}")
                console.print(f"[bold]Public IPv6:[/bold] {data['public_ipv6']}")
        elif event_type == "lookup_output":
            if not quiet:
                console.print(lookup_block(data["result"]), markup=False, highlight=False)
        elif event_type == "lookup_parsed":
            if verbose:
                found = ", ".join(data["addresses"]) or "none"
                console.print(f"  [dim]DNS {data['resolver']}: {found}[/dim]")
        elif event_type == "addresses":
            console.print(f"\n[green]✓[/green] {addresses_line(data['addresses'])}")
        elif event_type == "empty":
            console.print(f"\n[yellow]![/yellow] {data['message']}")
        elif event_type == "failed":
            console.print(f"\n[red]✗[/red] Lookup phase failed: {data['reason']}")
        elif event_type == "probe_output":
            if not quiet:
                console.print(probe_block(data["result"]), markup=False, highlight=False)

    try:
        run = DiagnosticRun(
            target=target,
            resolvers=dns or config.lookup.servers,
            lookup_runner=lookup_runner,
            probe_runner=probe_runner,
            run_timeout=run_timeout if run_timeout is not None else config.advanced.run_timeout,
            probe=probe_runner.traceroute_enabled or probe_runner.ping_enabled,
            network_info=config.advanced.check_connectivity and not skip_network_info,
            callback=progress_callback,
        )
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}", style="bold")
        sys.exit(1)

    if not quiet:
        console.print(f"\n[bold]Website Diagnostics: {run.hostname}[/bold]")
        console.print(f"[dim]DNS servers: {', '.join(r.address for r in run.resolvers)}[/dim]")
        console.print("[dim]Press Ctrl+C to stop[/dim]\n")

    report = None
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
            transient=True,
            disable=quiet,
        ) as progress:
            progress.add_task("Running diagnostics...", total=None)
            report = asyncio.run(_execute_run(run))
    except KeyboardInterrupt:
        run.stop()
        report = run.report

    if report is None:
        console.print("\n[yellow]DIAGNOSTICS STOPPED BY USER[/yellow]")
        sys.exit(EXIT_CODES[RunState.CANCELLED])

    _print_summary(report)
    _save_outputs(report, config, json_output, report_output, archive_dir, attach or [])

    code = EXIT_CODES[report.state]
    if code:
        sys.exit(code)


def _print_summary(report: DiagnosticReport) -> None:
    style = _state_style(report.state)

    console.print("\n" + "=" * 70)
    console.print(f"[bold {style}]{terminal_line(report)}[/bold {style}]")
    console.print("=" * 70)

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("DNS Server")
    table.add_column("Status")
    table.add_column("Duration", justify="right")

    for lookup in sorted(report.lookups, key=lambda r: r.resolver.index):
        if lookup.success:
            status = "[green]OK[/green]"
        else:
            status = f"[red]{lookup.error or f'exit {lookup.exit_status}'}[/red]"
        table.add_row(lookup.resolver.address, status, format_duration(lookup.duration))

    if report.lookups:
        console.print(table)

    console.print(f"[bold]Target:[/bold] {report.hostname}")
    console.print(f"[bold]Unique IPs:[/bold] {len(report.addresses)}")
    console.print(f"[bold]Probes Run:[/bold] {len(report.probes)}")
    console.print(f"[bold]Duration:[/bold] {format_duration(report.duration)}")


def _save_outputs(
    report: DiagnosticReport,
    config: SiteTraceConfig,
    json_output: Optional[Path],
    report_output: Optional[Path],
    archive_dir: Optional[Path],
    attachments: List[Path],
) -> None:
    results_dir = Path(config.output.results_directory).expanduser()

    try:
        if report_output:
            generate_text_report(report, report_output)
            console.print(f"[green]✓[/green] Transcript saved to: {report_output}")
        elif config.output.save_results:
            results_dir.mkdir(parents=True, exist_ok=True)
            path = results_dir / f"{report.hostname}_{report.start_time.strftime('%Y%m%d_%H%M%S')}.txt"
            generate_text_report(report, path)
            console.print(f"[green]✓[/green] Transcript saved to: {path}")

        if json_output:
            generate_json_report(report, json_output)
            console.print(f"[green]✓[/green] JSON report saved to: {json_output}")

        if archive_dir is None and (config.output.archive or attachments):
            archive_dir = results_dir
        if archive_dir is not None:
            path = create_archive(report, archive_dir, attachments)
            console.print(f"[green]✓[/green] Archive saved to: {path}")
    except (OSError, ValueError) as e:
        console.print(f"[red]Error:[/red] Failed to save results: {e}")
        sys.exit(1)


@app.command(name="parse", help="Extract target IPs from saved nslookup output")
def parse_output(
    file: Path = typer.Argument(..., help="File holding nslookup output"),
    resolver: Optional[List[str]] = typer.Option(
        None, "-r", "--resolver",
        help="DNS server that produced the output; repeat to exclude other configured servers too"
    ),
    json_output: bool = typer.Option(False, "--json", help="Print addresses as JSON"),
):
    """
    Parse saved nslookup output.

    The first --resolver is the server that produced the output. All of
    them are excluded from the fallback scan.

    Examples:

      sitetrace parse lookup.txt -r 8.8.8.8

      sitetrace parse lookup.txt -r 8.8.8.8 -r 1.1.1.1 --json
    """
    if not file.is_file():
        console.print(f"[red]Error:[/red] File not found: {file}", style="bold")
        sys.exit(1)

    try:
        text = file.read_text(encoding="utf-8", errors="replace")
    except OSError as e:
        console.print(f"[red]Error:[/red] {e}", style="bold")
        sys.exit(1)

    resolvers = resolver or []
    parser = ResponseParser(resolvers)
    addresses = parser.parse(text, resolvers[0] if resolvers else None)

    if json_output:
        console.print_json(json.dumps([address.to_dict() for address in addresses]))
        return

    if not addresses:
        console.print("[yellow]![/yellow] No IP addresses found")
        return

    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Address")
    table.add_column("Version")
    table.add_column("Source")

    for address in addresses:
        table.add_row(address.address, f"IPv{address.version}", address.source.value)

    console.print(table)
    console.print(addresses_line([address.address for address in addresses]))


@app.command(name="info", help="Show internet connectivity and public IP addresses")
def network_info():
    """Show local network information."""
    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        console=console,
        transient=True
    ) as progress:
        progress.add_task("Checking network...", total=None)
        connected = check_internet()
        public_ips = get_public_ips()

    table = Table(show_header=False)
    table.add_column("Property", style="bold")
    table.add_column("Value")
    table.add_row("Internet Connected", "[green]Yes[/green]" if connected else "[red]No[/red]")
    table.add_row("Public IPv4", public_ips.ipv4)
    table.add_row("Public IPv6", public_ips.ipv6)

    console.print(table)


@app.command(name="config")
def manage_config(
    action: str = typer.Argument(..., help="Action: show, init, get, set, validate"),
    key: Optional[str] = typer.Argument(None, help="Config key (e.g., lookup.timeout)"),
    value: Optional[str] = typer.Argument(None, help="Value to set"),
    section: Optional[str] = typer.Option(None, "--section", "-s", help="Show specific section"),
    file_path: Optional[Path] = typer.Option(None, "--file", "-f", help="Config file path"),
    project: bool = typer.Option(False, "--project", "-p", help="Create/use project-level config"),
):
    """
    Manage SiteTrace configuration.

    Configuration priority (highest to lowest):
      1. CLI arguments
      2. Environment variables (SITETRACE_*)
      3. Project config (.sitetrace.toml)
      4. User config (~/.sitetrace/config.toml)
      5. Built-in defaults

    Examples:

      sitetrace config show

      sitetrace config show --section lookup

      sitetrace config init

      sitetrace config get lookup.servers

      sitetrace config set probes.ping_count 10

      sitetrace config validate
    """
    manager = ConfigManager(user_config_path=file_path) if file_path and not project else ConfigManager()

    if action == "show":
        try:
            manager.load()
            output = manager.show_config(section=section)

            sources = manager.get_loaded_sources()
            console.print(f"[dim]Loaded from: {', '.join(sources)}[/dim]\n")

            console.print(output, markup=False, highlight=False)
        except ConfigError as e:
            console.print(f"[red]Error:[/red] {e}")
            sys.exit(1)

    elif action == "init":
        config_path = file_path
        if not config_path:
            if project:
                config_path = Path.cwd() / ConfigManager.PROJECT_CONFIG_NAME
            else:
                config_path = manager.user_config_path

        try:
            path = manager.init_config(path=config_path)
            console.print(f"[green]✓[/green] Configuration file created: {path}")
            console.print("\nEdit the file to customize your settings.")
        except ConfigError as e:
            console.print(f"[red]Error:[/red] {e}")
            sys.exit(1)

    elif action == "get":
        if not key:
            console.print("[red]Error:[/red] Key required (e.g., lookup.timeout)")
            sys.exit(1)

        try:
            manager.load()
            value_result = manager.get_value(key)
            console.print(f"{key} = {value_result}", markup=False, highlight=False)
        except (ConfigError, KeyError) as e:
            console.print(f"[red]Error:[/red] {e}")
            sys.exit(1)

    elif action == "set":
        if not key or value is None:
            console.print("[red]Error:[/red] Key and value required")
            sys.exit(1)

        try:
            manager.load()
            manager.set_value(key, value)
            manager.save_user_config()
            console.print(f"[green]✓[/green] Set {key} = {value}")
        except (ConfigError, KeyError, ValueError) as e:
            console.print(f"[red]Error:[/red] {e}")
            sys.exit(1)

    elif action == "validate":
        try:
            manager.load()
            errors = manager.validate()

            if errors:
                console.print("[red]Configuration validation failed:[/red]\n")
                for error in errors:
                    console.print(f"  • {error}")
                sys.exit(1)
            else:
                console.print("[green]✓[/green] Configuration is valid")
                sources = manager.get_loaded_sources()
                console.print(f"[dim]Loaded from: {', '.join(sources)}[/dim]")
        except ConfigError as e:
            console.print(f"[red]Error:[/red] {e}")
            sys.exit(1)

    else:
        console.print(f"[red]Error:[/red] Unknown action '{action}'")
        console.print("Valid actions: show, init, get, set, validate")
        sys.exit(1)


@app.command(name="version")
def show_version():
    """Show version information."""
    from sitetrace import __version__
    console.print(f"[bold cyan]SiteTrace[/bold cyan] version [yellow]{__version__}[/yellow]")
    console.print("by [bold]BitSpectreLabs[/bold]")


def main():
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
