"""
Report generation modules for SiteTrace
by BitSpectreLabs
"""

import json
import zipfile
from pathlib import Path
from typing import Iterable, List, Optional, Union

from sitetrace.core.models import DiagnosticReport, LookupResult, ProbeResult, RunState
from sitetrace.core.network_info import NOT_AVAILABLE
from sitetrace.core.utils import get_timestamp, sanitize_filename


PROBE_TITLES = {
    "traceroute": "TRACERT",
    "ping": "PING",
}


def lookup_block(result: LookupResult) -> str:
    """Verbatim nslookup output under its resolver banner."""
    body = result.text
    if result.error:
        body = f"{body}{result.error}\n"
    return f"\n===== NSLOOKUP with DNS {result.resolver.address} =====\n{body}"


def probe_block(result: ProbeResult) -> str:
    """Verbatim traceroute or ping output under its address banner."""
    title = PROBE_TITLES.get(result.kind, result.kind.upper())
    body = result.text
    if result.error:
        body = f"{body}{result.error}\n"
    return f"\n===== {title} to {result.address} =====\n{body}"


def addresses_line(addresses: List[str]) -> str:
    return f"Found {len(addresses)} unique IP addresses: {', '.join(addresses)}"


def terminal_line(report: DiagnosticReport) -> str:
    """Closing line of a transcript for the report's final state."""
    state = report.state

    if state is RunState.COMPLETE:
        return "DIAGNOSTICS COMPLETE"
    if state is RunState.EMPTY:
        return "No IP addresses found in nslookup results"
    if state is RunState.CANCELLED:
        return "DIAGNOSTICS STOPPED BY USER"
    if state is RunState.FAILED:
        reason = report.outcome.reason if report.outcome and report.outcome.reason else "unknown error"
        return f"DIAGNOSTICS FAILED: {reason}"
    return "DIAGNOSTICS INCOMPLETE"


def format_text_report(report: DiagnosticReport) -> str:
    """
    Render a diagnostic run as the plain-text transcript.

    Args:
        report: Finished (or stopped) diagnostic report

    Returns:
        Transcript text
    """
    started = report.start_time.strftime("%Y-%m-%d %H:%M:%S") if report.start_time else get_timestamp()

    parts = [
        f"DIAGNOSTIC RUN: {started}",
        f"Target URL: {report.target}",
        "",
        f"Public IPv4: {report.public_ipv4 or NOT_AVAILABLE}",
        f"Public IPv6: {report.public_ipv6 or NOT_AVAILABLE}",
    ]

    for lookup in sorted(report.lookups, key=lambda r: r.resolver.index):
        parts.append(lookup_block(lookup).rstrip("\n"))

    if report.state is RunState.COMPLETE or (report.cancelled and report.addresses):
        parts.append("")
        parts.append(addresses_line(report.addresses))

    for probe in report.probes:
        parts.append(probe_block(probe).rstrip("\n"))

    parts.append("")
    parts.append(terminal_line(report))

    return "\n".join(parts) + "\n"


def generate_text_report(report: DiagnosticReport, output_path: Path) -> None:
    """
    Generate plain-text transcript report.

    Args:
        report: Diagnostic report
        output_path: Output file path
    """
    with open(output_path, 'w', encoding='utf-8') as f:
        f.write(format_text_report(report))


def build_json_report(report: DiagnosticReport) -> dict:
    return {
        "run_info": {
            "tool": "SiteTrace",
            "vendor": "BitSpectreLabs",
            "timestamp": get_timestamp(),
        },
        **report.to_dict(),
    }


def generate_json_report(report: DiagnosticReport, output_path: Path) -> None:
    """
    Generate JSON report.

    Args:
        report: Diagnostic report
        output_path: Output file path
    """
    with open(output_path, 'w', encoding='utf-8') as f:
        json.dump(build_json_report(report), f, indent=2, ensure_ascii=False)


def archive_name(report: DiagnosticReport) -> str:
    """File name of the run archive: sitetrace_<host>_<timestamp>.zip"""
    started = report.start_time.strftime("%Y%m%d_%H%M%S") if report.start_time else "unknown"
    return sanitize_filename(f"sitetrace_{report.hostname}_{started}.zip")


def create_archive(
    report: DiagnosticReport,
    output_dir: Union[str, Path],
    attachments: Iterable[Union[str, Path]] = (),
) -> Path:
    """
    Bundle the transcript, the JSON report and extra files into a zip.

    Args:
        report: Diagnostic report
        output_dir: Directory the archive is written to
        attachments: Extra files (e.g. screenshots) stored under their
            own names

    Returns:
        Path to the created archive

    Raises:
        FileNotFoundError: If an attachment does not exist
    """
    output_dir = Path(output_dir).expanduser()
    output_dir.mkdir(parents=True, exist_ok=True)

    files = [Path(attachment).expanduser() for attachment in attachments]
    for path in files:
        if not path.is_file():
            raise FileNotFoundError(f"Attachment not found: {path}")

    archive_path = output_dir / archive_name(report)

    with zipfile.ZipFile(archive_path, 'w', compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr('report.txt', format_text_report(report))
        zf.writestr('report.json', json.dumps(build_json_report(report), indent=2, ensure_ascii=False))

        used = {'report.txt', 'report.json'}
        for path in files:
            name = _unique_name(path.name, used)
            used.add(name)
            zf.write(path, name)

    return archive_path


def _unique_name(name: str, used: set) -> str:
    if name not in used:
        return name

    stem, suffix = Path(name).stem, Path(name).suffix
    counter = 1
    candidate: Optional[str] = None
    while candidate is None or candidate in used:
        candidate = f"{stem}_{counter}{suffix}"
        counter += 1
    return candidate


__all__ = [
    "format_text_report",
    "generate_text_report",
    "generate_json_report",
    "build_json_report",
    "create_archive",
    "archive_name",
    "lookup_block",
    "probe_block",
    "addresses_line",
    "terminal_line",
]
