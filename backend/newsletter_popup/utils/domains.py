"""
Hostname helpers shared by the script synthesizer, the verifier and the
public gateway's origin check.
"""

import logging
import re
from typing import Iterable, Optional
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

_HOSTNAME_PATTERN = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?(\.[a-z0-9]([a-z0-9-]*[a-z0-9])?)*$")


def normalize_domain(value: Optional[str]) -> str:
    """
    Reduce a URL or bare host to a lowercase hostname.

    Args:
        value: "https://shop.example.com/path", "shop.example.com" or similar

    Returns:
        Hostname without scheme, port or path

    Raises:
        ValueError: If the value is empty or does not contain a valid hostname
    """
    if not value or not value.strip():
        raise ValueError("Domain is required")

    candidate = value.strip()
    if "://" not in candidate:
        candidate = f"https://{candidate}"

    try:
        hostname = urlparse(candidate).hostname
    except ValueError as e:
        raise ValueError(f"Invalid domain: {value}") from e

    if not hostname or not _HOSTNAME_PATTERN.match(hostname):
        raise ValueError(f"Invalid domain: {value}")

    return hostname


def to_url(value: str) -> str:
    """Turn a bare host into an https URL, leaving full URLs untouched."""
    value = value.strip()
    if "://" in value:
        return value
    return f"https://{value}"


def hostname_from_header(header_value: Optional[str]) -> Optional[str]:
    """Extract the hostname from an Origin or Referer header value."""
    if not header_value:
        return None
    try:
        return urlparse(header_value.strip()).hostname
    except ValueError:
        return None


def origin_from_header(header_value: str) -> Optional[str]:
    """Get the scheme://host[:port] part of an Origin or Referer header."""
    try:
        parsed = urlparse(header_value.strip())
    except ValueError:
        return None
    if not parsed.scheme or not parsed.netloc:
        return None
    return f"{parsed.scheme}://{parsed.netloc}"


def host_matches(request_host: str, allowed_hosts: Iterable[str]) -> bool:
    """
    Check a request hostname against the store's domains.

    A host matches when it is equal to an allowed host or either one
    contains the other. This is a best-effort allowlist, not a security
    boundary: any page can omit or forge these headers.
    """
    request_host = request_host.lower()
    for allowed in allowed_hosts:
        if not allowed:
            continue
        allowed = allowed.lower()
        if request_host == allowed or allowed in request_host or request_host in allowed:
            return True
    return False
