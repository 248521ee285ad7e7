"""
URL validation for outbound page fetches.

Blocks requests to private/internal addresses so a source URL cannot be
used to reach the server's own network.
"""

import ipaddress
import re
from urllib.parse import urlparse
import structlog

from exceptions import UnsafeUrlError

logger = structlog.get_logger(__name__)

_BLOCKED_HOSTS = {
    "localhost",
    "localhost.localdomain",
    "metadata.google.internal",
    "instance-data",
}

_BLOCKED_PATTERNS = [
    re.compile(r"^127\."),
    re.compile(r"^10\."),
    re.compile(r"^172\.(1[6-9]|2[0-9]|3[0-1])\."),
    re.compile(r"^192\.168\."),
    re.compile(r"^169\.254\."),
    re.compile(r"^0\."),
]


def is_private_ip(host: str) -> bool:
    """True for loopback, private, link-local or unspecified IPs."""
    try:
        ip = ipaddress.ip_address(host.strip("[]"))
    except ValueError:
        return False
    return (
        ip.is_loopback
        or ip.is_private
        or ip.is_link_local
        or ip.is_unspecified
        or ip.is_reserved
    )


def is_public_url(url: str) -> bool:
    """
    Check that a URL is http(s) and does not target an internal host.

    Args:
        url: URL to check

    Returns:
        True if the URL is safe to fetch
    """
    try:
        parsed = urlparse(url)
    except ValueError:
        return False

    if parsed.scheme not in ("http", "https"):
        return False

    host = (parsed.hostname or "").lower()
    if not host:
        return False

    if host in _BLOCKED_HOSTS or host.endswith(".localhost"):
        return False

    if is_private_ip(host):
        return False

    return not any(p.match(host) for p in _BLOCKED_PATTERNS)


def validate_external_url(url: str) -> str:
    """
    Return the URL if safe to fetch.

    Raises:
        UnsafeUrlError: If the URL is blocked
    """
    url = (url or "").strip()
    if is_public_url(url):
        return url
    logger.warning("unsafe_url_blocked", url=url)
    raise UnsafeUrlError(url)
