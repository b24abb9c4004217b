"""Core diagnostic engine modules."""

from sitetrace.core.models import (
    RunState,
    AddressSource,
    ResolverSpec,
    LookupResult,
    ExtractedAddress,
    AggregationOutcome,
    ProbeResult,
    DiagnosticReport,
)
from sitetrace.core.parser import ResponseParser, parse_lookup_output
from sitetrace.core.aggregator import IPAggregator, AggregatorProtocolError
from sitetrace.core.lookup import LookupRunner, build_resolver_specs
from sitetrace.core.probes import ProbeRunner
from sitetrace.core.diagnostics import DiagnosticRun
from sitetrace.core.network_info import PublicIPs, check_internet, get_public_ips
from sitetrace.core.config import (
    ConfigManager,
    SiteTraceConfig,
    LookupConfig,
    ProbesConfig,
    OutputConfig,
    AdvancedConfig,
    ConfigError,
    get_config,
    get_config_manager,
)

__all__ = [
    "RunState",
    "AddressSource",
    "ResolverSpec",
    "LookupResult",
    "ExtractedAddress",
    "AggregationOutcome",
    "ProbeResult",
    "DiagnosticReport",
    "ResponseParser",
    "parse_lookup_output",
    "IPAggregator",
    "AggregatorProtocolError",
    "LookupRunner",
    "build_resolver_specs",
    "ProbeRunner",
    "DiagnosticRun",
    "PublicIPs",
    "check_internet",
    "get_public_ips",
    "ConfigManager",
    "SiteTraceConfig",
    "LookupConfig",
    "ProbesConfig",
    "OutputConfig",
    "AdvancedConfig",
    "ConfigError",
    "get_config",
    "get_config_manager",
]
