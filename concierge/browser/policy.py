"""URL admission policy for the sandboxed browser (SSRF guard).

Only ``http``/``https`` URLs whose host is a public name or a globally
routable address are admitted.  Loopback, RFC 1918 private ranges,
link-local, the unspecified address and ``.local``/``.internal`` names
are refused.  The check is purely syntactic: it never resolves DNS, so
it must be re-applied to every navigation and redirect hop.
"""

from __future__ import annotations

import ipaddress
import re
import socket
from urllib.parse import urlsplit

ALLOWED_SCHEMES = frozenset({"http", "https"})

BLOCKED_HOST_PATTERNS = (
    re.compile(r"^localhost$", re.IGNORECASE),
    re.compile(r"\.localhost$", re.IGNORECASE),
    re.compile(r"\.local$", re.IGNORECASE),
    re.compile(r"\.internal$", re.IGNORECASE),
)


_NUMERIC_HOST = re.compile(r"^[0-9a-fx.]+$", re.IGNORECASE)


def _parse_address(host: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address | None:
    try:
        return ipaddress.ip_address(host)
    except ValueError:
        pass
    # Browsers accept legacy IPv4 spellings such as 127.1, 0x7f000001 or 2130706433.
    if _NUMERIC_HOST.match(host) and any(c.isdigit() for c in host):
        try:
            return ipaddress.IPv4Address(socket.inet_aton(host))
        except OSError:
            return None
    return None


def _blocked_address(host: str) -> bool:
    addr = _parse_address(host)
    if addr is None:
        return False
    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped is not None:
        addr = addr.ipv4_mapped
    return (
        addr.is_loopback
        or addr.is_private
        or addr.is_link_local
        or addr.is_unspecified
        or addr.is_reserved
        or addr.is_multicast
    )


def is_url_allowed(url: str) -> bool:
    """Return ``True`` if the browser (or fetcher) may load *url*."""
    if not url or not isinstance(url, str):
        return False
    try:
        parts = urlsplit(url.strip())
        host = parts.hostname
    except ValueError:
        return False

    if parts.scheme.lower() not in ALLOWED_SCHEMES:
        return False
    if not host:
        return False

    host = host.rstrip(".")
    if any(p.search(host) for p in BLOCKED_HOST_PATTERNS):
        return False
    return not _blocked_address(host)
