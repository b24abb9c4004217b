"""
SiteTrace - Website Network Diagnostics
by BitSpectreLabs

Resolves a website through several DNS servers, then traces and pings
every address it finds.
"""

__version__ = "1.0.0"
__author__ = "BitSpectreLabs"
__license__ = "MIT"

from sitetrace.core.diagnostics import DiagnosticRun
from sitetrace.core.parser import parse_lookup_output

__all__ = ["DiagnosticRun", "parse_lookup_output"]
