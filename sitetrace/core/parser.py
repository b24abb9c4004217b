"""
nslookup Output Parser for SiteTrace.

Turns the human-readable output of ``nslookup <host> <server>`` into the
list of target IP addresses. Two tiers are applied in order:

1. Structured scan of the answer section ("Non-authoritative answer:")
   collecting ``Address:``/``Addresses:`` fields until a blank line.
2. Regex fallback over the whole output, used only when no answer
   section exists or it produced nothing.

The server banner (``Server:`` plus the ``Address:`` line after it) names
the resolver itself and is skipped by both tiers.

Known limitation: the answer-section marker is English. Localized
nslookup output only gets the fallback tier.

by BitSpectreLabs
"""

import logging
import re
from typing import Iterable, List, Optional, Sequence, Set, Tuple, Union

from sitetrace.core.models import AddressSource, ExtractedAddress, LookupResult, ResolverSpec
from sitetrace.core.utils import is_loopback_or_unspecified, is_valid_ip, normalize_address

logger = logging.getLogger(__name__)


ANSWER_MARKER = re.compile(r"answer", re.IGNORECASE)
SERVER_LINE = re.compile(r"^\s*Server\s*:", re.IGNORECASE)
ADDRESS_FIELD = re.compile(r"^\s*(Address(?:es)?)\s*:\s*(\S+)?", re.IGNORECASE)

IPV4_PATTERN = re.compile(r"\b(?:\d{1,3}\.){3}\d{1,3}\b")

_H = r"[0-9A-Fa-f]{1,4}"
IPV6_PATTERN = re.compile(
    r"(?<![0-9A-Fa-f:])("
    rf"(?:{_H}:){{7}}{_H}|"
    rf"(?:{_H}:){{1,7}}:|"
    rf"(?:{_H}:){{1,6}}:{_H}|"
    rf"(?:{_H}:){{1,5}}(?::{_H}){{1,2}}|"
    rf"(?:{_H}:){{1,4}}(?::{_H}){{1,3}}|"
    rf"(?:{_H}:){{1,3}}(?::{_H}){{1,4}}|"
    rf"(?:{_H}:){{1,2}}(?::{_H}){{1,5}}|"
    rf"{_H}:(?::{_H}){{1,6}}|"
    rf":(?:(?::{_H}){{1,7}}|:)"
    r")(?![0-9A-Fa-f:]|\.\d)"
)

# Owner names of PTR answers (reverse lookups of an IP-literal target)
REVERSE_NAME = re.compile(r"\S+\.(?:in-addr|ip6)\.arpa\.?", re.IGNORECASE)

ResolverLike = Union[str, ResolverSpec]


def _resolver_address(resolver: Optional[ResolverLike]) -> str:
    if resolver is None:
        return ""
    if isinstance(resolver, ResolverSpec):
        return resolver.address
    return str(resolver)


def strip_server_block(lines: Sequence[str]) -> List[str]:
    """
    Drop the resolver banner from nslookup output.

    Removes every ``Server:`` line and the ``Address:`` line that directly
    follows it (ignoring blank lines in between).
    """
    kept = []
    after_server = False

    for line in lines:
        if SERVER_LINE.match(line):
            after_server = True
            continue

        if after_server:
            if not line.strip():
                continue
            after_server = False
            if ADDRESS_FIELD.match(line):
                continue

        kept.append(line)

    return kept


def find_answer_addresses(text: str) -> Tuple[bool, List[str]]:
    """
    Scan answer sections for Address fields.

    Args:
        text: Raw nslookup output (server banner already removed or not)

    Returns:
        Tuple of (marker_found, raw tokens in order of appearance)
    """
    marker_found = False
    tokens: List[str] = []

    in_section = False
    has_content = False
    in_addresses = False

    for line in strip_server_block(text.splitlines()):
        stripped = line.strip()

        if not in_section:
            if ANSWER_MARKER.search(line):
                marker_found = True
                in_section = True
                has_content = False
                in_addresses = False
            continue

        if not stripped:
            # Blank lines directly under the marker do not close the section
            if has_content:
                in_section = False
            in_addresses = False
            continue

        has_content = True

        field_match = ADDRESS_FIELD.match(line)
        if field_match:
            in_addresses = field_match.group(1).lower() == "addresses"
            if field_match.group(2):
                tokens.append(field_match.group(2))
            continue

        # Windows lists extra addresses on indented lines under "Addresses:"
        if in_addresses and is_valid_ip(stripped):
            tokens.append(stripped)
            continue

        in_addresses = False

    return marker_found, tokens


def find_fallback_addresses(text: str) -> List[str]:
    """
    Regex sweep for IPv4 and IPv6 literals outside the server banner.

    IPv4 matches come first, then IPv6, each in order of appearance.
    Reverse-lookup owner names (``*.in-addr.arpa``, ``*.ip6.arpa``) are
    removed first since their labels read like reversed addresses.
    """
    body = "\n".join(strip_server_block(text.splitlines()))
    body = REVERSE_NAME.sub(" ", body)
    candidates = [m.group(0) for m in IPV4_PATTERN.finditer(body)]
    candidates.extend(m.group(1) for m in IPV6_PATTERN.finditer(body))
    return candidates


class ResponseParser:
    """
    Extracts target addresses from nslookup output.

    Stateless apart from the configured resolver list, so one instance
    can be shared by concurrent lookups.
    """

    def __init__(self, resolvers: Iterable[ResolverLike] = ()):
        """
        Initialize parser.

        Args:
            resolvers: Every resolver configured for the run; the fallback
                tier never reports any of them as a target
        """
        self.resolver_keys: Set[str] = {
            normalize_address(_resolver_address(r)) for r in resolvers if _resolver_address(r)
        }

    def parse(self, text: Optional[str], resolver: Optional[ResolverLike] = None) -> List[ExtractedAddress]:
        """
        Extract addresses from one resolver's output.

        Args:
            text: Raw nslookup output; empty or None yields no addresses
            resolver: Resolver that produced the output

        Returns:
            Addresses in first-seen order, without duplicates
        """
        text = text or ""
        resolver_address = _resolver_address(resolver)
        resolver_key = normalize_address(resolver_address) if resolver_address else ""

        marker_found, tokens = find_answer_addresses(text)
        addresses = self._collect(
            tokens,
            excluded={resolver_key} if resolver_key else set(),
            resolver=resolver_address,
            source=AddressSource.ANSWER_SECTION,
            skip_local=False,
        )

        if addresses:
            return addresses

        if marker_found:
            logger.debug(f"Answer section from {resolver_address or 'resolver'} held no addresses, using fallback")
        else:
            logger.debug(f"No answer section from {resolver_address or 'resolver'}, using fallback")

        excluded = set(self.resolver_keys)
        if resolver_key:
            excluded.add(resolver_key)

        return self._collect(
            find_fallback_addresses(text),
            excluded=excluded,
            resolver=resolver_address,
            source=AddressSource.FALLBACK,
            skip_local=True,
        )

    def parse_result(self, result: LookupResult) -> List[ExtractedAddress]:
        """Parse a LookupResult using its own resolver for exclusion."""
        return self.parse(result.text, result.resolver)

    @staticmethod
    def _collect(
        candidates: Iterable[str],
        excluded: Set[str],
        resolver: str,
        source: AddressSource,
        skip_local: bool,
    ) -> List[ExtractedAddress]:
        seen: Set[str] = set()
        addresses: List[ExtractedAddress] = []

        for candidate in candidates:
            if not is_valid_ip(candidate):
                continue
            if skip_local and is_loopback_or_unspecified(candidate):
                continue

            key = normalize_address(candidate)
            if key in excluded or key in seen:
                continue

            seen.add(key)
            addresses.append(ExtractedAddress(address=key, resolver=resolver, source=source))

        return addresses


def parse_lookup_output(
    text: Optional[str],
    resolver: Optional[ResolverLike] = None,
    resolvers: Optional[Iterable[ResolverLike]] = None,
) -> List[ExtractedAddress]:
    """
    Convenience wrapper around ResponseParser.

    Args:
        text: Raw nslookup output
        resolver: Resolver that produced the output
        resolvers: All configured resolvers (defaults to just ``resolver``)

    Returns:
        Extracted addresses in first-seen order
    """
    if resolvers is None:
        resolvers = [resolver] if resolver is not None else []
    return ResponseParser(resolvers).parse(text, resolver)
