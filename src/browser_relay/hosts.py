"""URL classification helpers.

``is_local_url`` decides which extraction defaults apply to a page.  It is a
hostname heuristic only: a hostname can be made to look local, so it must
not be treated as a trust boundary.
"""

from __future__ import annotations

from collections.abc import Iterable
from urllib.parse import urlsplit

_STATIC_LOCAL_HOSTS = frozenset(
    {"localhost", "127.0.0.1", "::1", "0.0.0.0", "host.docker.internal"}
)

# Resources that cannot be walked as an HTML tree.
_BINARY_SUFFIXES = (".pdf",)


def _is_private_172(host: str) -> bool:
    parts = host.split(".")
    if len(parts) < 2:
        return False
    try:
        second_octet = int(parts[1])
    except ValueError:
        return False
    return 16 <= second_octet <= 31


def is_local_url(url: str, known_local_hosts: Iterable[str] = ()) -> bool:
    """Return ``True`` when *url* points at a loopback, private or listed host."""
    try:
        hostname = urlsplit(url).hostname
    except ValueError:
        return False
    if not hostname:
        return False

    host = hostname.strip("[]").lower()
    if (
        host in _STATIC_LOCAL_HOSTS
        or host.endswith(".local")
        or host.startswith("192.168.")
        or host.startswith("10.")
        or (host.startswith("172.") and _is_private_172(host))
    ):
        return True
    return host in {h.lower() for h in known_local_hosts}


def is_scrapable_url(url: str | None) -> bool:
    """Return ``False`` for data URIs and binary documents such as PDFs."""
    if not url:
        return False
    if url.lower().startswith("data:"):
        return False
    try:
        path = urlsplit(url).path.lower()
    except ValueError:
        return False
    return not path.endswith(_BINARY_SUFFIXES)
