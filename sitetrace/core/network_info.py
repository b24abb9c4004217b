"""
Local network information for SiteTrace.

Internet connectivity check and public IPv4/IPv6 discovery, recorded in
the header of every diagnostic report.

by BitSpectreLabs
"""

import logging
import socket
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional

import httpx

logger = logging.getLogger(__name__)


NOT_AVAILABLE = "Not available"
IPV4_SERVICE = "https://api.ipify.org"
IPV6_SERVICE = "https://api6.ipify.org"


@dataclass
class PublicIPs:
    """Public addresses as seen by an external echo service."""
    ipv4: str = NOT_AVAILABLE
    ipv6: str = NOT_AVAILABLE

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def check_internet(host: str = "google.com", timeout: float = 3.0) -> bool:
    """
    Check internet connectivity by resolving a well-known name.

    getaddrinfo has no timeout of its own, so it runs on a worker thread
    and is abandoned once ``timeout`` expires.

    Args:
        host: Hostname to resolve
        timeout: Resolution timeout in seconds

    Returns:
        True if the name resolved in time
    """
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="sitetrace-connectivity")
    try:
        future = executor.submit(socket.getaddrinfo, host, None)
        future.result(timeout=timeout)
        return True
    except FutureTimeoutError:
        logger.info(f"Connectivity check timed out after {timeout}s")
        return False
    except OSError as e:
        logger.info(f"Connectivity check failed: {e}")
        return False
    finally:
        executor.shutdown(wait=False)


def _fetch_ip(client: httpx.Client, url: str) -> str:
    try:
        response = client.get(url)
        response.raise_for_status()
    except httpx.HTTPError as e:
        logger.info(f"Public IP lookup via {url} failed: {e}")
        return NOT_AVAILABLE

    value = response.text.strip()
    return value or NOT_AVAILABLE


def get_public_ips(client: Optional[httpx.Client] = None, timeout: float = 5.0) -> PublicIPs:
    """
    Discover public IPv4 and IPv6 addresses.

    Many networks have no IPv6 route; that lookup then simply reports
    "Not available".

    Args:
        client: Optional preconfigured httpx client
        timeout: Request timeout in seconds

    Returns:
        PublicIPs with each unavailable family set to "Not available"
    """
    if client is not None:
        return PublicIPs(ipv4=_fetch_ip(client, IPV4_SERVICE), ipv6=_fetch_ip(client, IPV6_SERVICE))

    with httpx.Client(timeout=timeout) as own_client:
        return PublicIPs(
            ipv4=_fetch_ip(own_client, IPV4_SERVICE),
            ipv6=_fetch_ip(own_client, IPV6_SERVICE),
        )
