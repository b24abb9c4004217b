"""
Data models for SiteTrace diagnostic runs.

by BitSpectreLabs
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from sitetrace.core.utils import get_ip_version


def _join_streams(output: str, errors: str) -> str:
    """Join stdout and stderr so the last stdout line stays on its own line."""
    if output and errors and not output.endswith("\n"):
        return f"{output}\n{errors}"
    return f"{output}{errors}"


class RunState(str, Enum):
    """Lifecycle state of a diagnostic run."""
    PENDING = "pending"
    COMPLETE = "complete"
    EMPTY = "empty"
    CANCELLED = "cancelled"
    FAILED = "failed"


class AddressSource(str, Enum):
    """Parsing tier that produced an address."""
    ANSWER_SECTION = "answer_section"
    FALLBACK = "fallback"


@dataclass(frozen=True)
class ResolverSpec:
    """A configured DNS resolver."""
    address: str
    index: int


@dataclass
class LookupResult:
    """Raw output of one nslookup invocation against one resolver."""
    resolver: ResolverSpec
    hostname: str
    output: str = ""
    errors: str = ""
    exit_status: Optional[int] = None
    error: Optional[str] = None
    duration: float = 0.0
    timestamp: Optional[datetime] = None

    def __post_init__(self):
        if self.timestamp is None:
            self.timestamp = datetime.now()

    @property
    def text(self) -> str:
        """Combined stdout and stderr, in that order."""
        return _join_streams(self.output, self.errors)

    @property
    def success(self) -> bool:
        return self.error is None and self.exit_status == 0 and bool(self.output.strip())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "resolver": self.resolver.address,
            "resolver_index": self.resolver.index,
            "hostname": self.hostname,
            "output": self.output,
            "errors": self.errors,
            "exit_status": self.exit_status,
            "error": self.error,
            "success": self.success,
            "duration_seconds": self.duration,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


@dataclass(frozen=True)
class ExtractedAddress:
    """A validated IP address found in lookup output."""
    address: str
    resolver: str
    source: AddressSource = AddressSource.ANSWER_SECTION

    @property
    def version(self) -> int:
        return get_ip_version(self.address).value

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "resolver": self.resolver,
            "source": self.source.value,
            "version": self.version,
        }


@dataclass(frozen=True)
class AggregationOutcome:
    """Terminal snapshot of the address set for one run."""
    state: RunState
    addresses: Tuple[str, ...] = ()
    expected: int = 0
    reported: int = 0
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "state": self.state.value,
            "addresses": list(self.addresses),
            "expected": self.expected,
            "reported": self.reported,
            "reason": self.reason,
        }


@dataclass
class ProbeResult:
    """Output of one traceroute or ping invocation."""
    kind: str  # "traceroute" or "ping"
    address: str
    command: List[str] = field(default_factory=list)
    output: str = ""
    errors: str = ""
    exit_status: Optional[int] = None
    error: Optional[str] = None
    duration: float = 0.0

    @property
    def text(self) -> str:
        return _join_streams(self.output, self.errors)

    @property
    def success(self) -> bool:
        return self.error is None and self.exit_status == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "address": self.address,
            "command": self.command,
            "output": self.output,
            "errors": self.errors,
            "exit_status": self.exit_status,
            "error": self.error,
            "success": self.success,
            "duration_seconds": self.duration,
        }


@dataclass
class DiagnosticReport:
    """Complete result of a diagnostic run."""
    target: str
    hostname: str
    resolvers: List[str] = field(default_factory=list)
    lookups: List[LookupResult] = field(default_factory=list)
    outcome: Optional[AggregationOutcome] = None
    probes: List[ProbeResult] = field(default_factory=list)
    public_ipv4: Optional[str] = None
    public_ipv6: Optional[str] = None
    internet_connected: Optional[bool] = None
    cancelled: bool = False
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    def __post_init__(self):
        if self.start_time is None:
            self.start_time = datetime.now()

    @property
    def state(self) -> RunState:
        """Overall run state; a stop during probing still counts as cancelled."""
        if self.cancelled:
            return RunState.CANCELLED
        if self.outcome is None:
            return RunState.PENDING
        return self.outcome.state

    @property
    def addresses(self) -> List[str]:
        if self.outcome is None:
            return []
        return list(self.outcome.addresses)

    @property
    def duration(self) -> float:
        """Get run duration in seconds."""
        if self.start_time and self.end_time:
            return (self.end_time - self.start_time).total_seconds()
        return 0.0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "target": self.target,
            "hostname": self.hostname,
            "state": self.state.value,
            "resolvers": self.resolvers,
            "public_ipv4": self.public_ipv4,
            "public_ipv6": self.public_ipv6,
            "internet_connected": self.internet_connected,
            "lookups": [lookup.to_dict() for lookup in self.lookups],
            "outcome": self.outcome.to_dict() if self.outcome else None,
            "probes": [probe.to_dict() for probe in self.probes],
            "statistics": {
                "unique_addresses": len(self.addresses),
                "failed_lookups": sum(1 for lookup in self.lookups if not lookup.success),
                "duration_seconds": self.duration,
            },
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
        }
