"""
Utility functions for SiteTrace
by BitSpectreLabs

Supports both IPv4 and IPv6 addresses.
"""

import ipaddress
import re
from typing import Optional
from datetime import datetime
from enum import Enum
from urllib.parse import urlparse


class IPVersion(Enum):
    """IP version enum for address handling."""
    IPv4 = 4
    IPv6 = 6
    UNKNOWN = 0


def _strip_address(ip: str) -> str:
    """Remove brackets (e.g., [::1]) and zone id (e.g., %eth0)."""
    ip = ip.strip()
    if ip.startswith('[') and ']' in ip:
        ip = ip[1:ip.index(']')]
    if '%' in ip:
        ip = ip.split('%', 1)[0]
    return ip


def get_ip_version(ip: str) -> IPVersion:
    """
    Determine the IP version of an address.

    Args:
        ip: IP address string

    Returns:
        IPVersion enum (IPv4, IPv6, or UNKNOWN)

    Examples:
        >>> get_ip_version("192.168.1.1")
        IPVersion.IPv4
        >>> get_ip_version("2001:db8::1")
        IPVersion.IPv6
        >>> get_ip_version("invalid")
        IPVersion.UNKNOWN
    """
    try:
        addr = ipaddress.ip_address(_strip_address(ip))
        return IPVersion.IPv6 if addr.version == 6 else IPVersion.IPv4
    except ValueError:
        return IPVersion.UNKNOWN


def is_ipv6(ip: str) -> bool:
    """Check if string is an IPv6 address."""
    return get_ip_version(ip) == IPVersion.IPv6


def is_valid_ip(ip: str) -> bool:
    """
    Check if string is a valid IP address (IPv4 or IPv6).

    Args:
        ip: IP address string

    Returns:
        True if valid IPv4 or IPv6, False otherwise

    Examples:
        >>> is_valid_ip("192.168.1.1")
        True
        >>> is_valid_ip("2001:db8::1")
        True
        >>> is_valid_ip("8.8.8.8#53")
        False
    """
    return get_ip_version(ip) != IPVersion.UNKNOWN


def normalize_address(address: str) -> str:
    """
    Canonical form used for address equality.

    IP literals are rendered by ipaddress, so IPv6 comes out lower-case
    and compressed. Anything else (a resolver hostname) is lower-cased.

    Examples:
        >>> normalize_address("2001:0DB8:0000:0000:0000:0000:0000:0001")
        '2001:db8::1'
        >>> normalize_address("Dns.Google")
        'dns.google'
    """
    stripped = _strip_address(address)
    try:
        return str(ipaddress.ip_address(stripped))
    except ValueError:
        return stripped.lower()


def is_loopback_or_unspecified(address: str) -> bool:
    """
    Check for loopback and unspecified literals.

    IPv4 uses the textual prefixes "127." and "0.0.0."; IPv6 uses the
    ipaddress flags so "::1" and "::" are caught in any spelling.
    """
    address = address.strip()
    if address.startswith("127.") or address.startswith("0.0.0."):
        return True
    try:
        addr = ipaddress.ip_address(_strip_address(address))
    except ValueError:
        return False
    return addr.version == 6 and (addr.is_loopback or addr.is_unspecified)


def extract_hostname(target: str) -> str:
    """
    Reduce a user-supplied URL to the hostname nslookup expects.

    Args:
        target: URL or bare hostname (e.g. "https://example.com/path")

    Returns:
        Hostname without scheme, credentials, port or path

    Raises:
        ValueError: If nothing usable remains

    Examples:
        >>> extract_hostname("https://www.example.com:8443/index.html")
        'www.example.com'
        >>> extract_hostname("example.com")
        'example.com'
    """
    target = (target or "").strip()
    if not target:
        raise ValueError("Target must not be empty")

    if is_valid_ip(target):
        return _strip_address(target)

    # urlparse only fills netloc when a scheme is present
    candidate = target if "://" in target else f"//{target}"
    parsed = urlparse(candidate)
    hostname = parsed.hostname or ""

    if not hostname:
        raise ValueError(f"Could not determine hostname from target: {target}")
    if hostname.startswith("-"):
        raise ValueError(f"Invalid hostname: {hostname}")

    return hostname


def sanitize_filename(filename: str) -> str:
    """
    Sanitize filename for safe file writing.

    Args:
        filename: Original filename

    Returns:
        Sanitized filename
    """
    # Remove invalid characters
    filename = re.sub(r'[<>:"/\\|?*]', '_', filename)
    # Remove leading/trailing spaces and dots
    filename = filename.strip('. ')
    # Limit length
    if len(filename) > 200:
        filename = filename[:200]
    return filename


def format_duration(seconds: Optional[float]) -> str:
    """Format a duration in seconds for display."""
    if seconds is None:
        return "-"
    if seconds < 60:
        return f"{seconds:.2f}s"
    minutes, secs = divmod(seconds, 60)
    return f"{int(minutes)}m {secs:.0f}s"


def get_timestamp() -> str:
    """Get formatted timestamp for reports."""
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")
