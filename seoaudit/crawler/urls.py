"""
URL normalization and origin helpers shared by the crawler and analyzers.
"""
from __future__ import annotations

from urllib.parse import urlsplit, urlunsplit

_DEFAULT_PORTS = {"http": 80, "https": 443}


def normalize_url(url: str) -> str:
    """
    Normalize a URL for use as a crawl-graph key:
    - Remove fragment
    - Remove trailing slashes
    - Lowercase scheme and host, drop default ports
    Idempotent; input that is not an absolute http(s) URL only loses its
    fragment and trailing slashes.
    """
    url = url.strip()
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        return url.split("#", 1)[0].rstrip("/")

    scheme = parts.scheme.lower()
    if scheme not in _DEFAULT_PORTS or not parts.hostname:
        return url.split("#", 1)[0].rstrip("/")

    host = parts.hostname.lower()
    if ":" in host:
        host = f"[{host}]"
    if port is not None and port != _DEFAULT_PORTS[scheme]:
        host = f"{host}:{port}"
    if parts.username or parts.password:
        userinfo = parts.username or ""
        if parts.password:
            userinfo = f"{userinfo}:{parts.password}"
        host = f"{userinfo}@{host}"

    path = parts.path.rstrip("/")
    return urlunsplit((scheme, host, path, parts.query, "")).rstrip("/")


def strip_fragment(url: str) -> str:
    return url.split("#", 1)[0]


def origin_of(url: str) -> str:
    """scheme://host[:port] with defaults removed, or "" for non-http(s) input."""
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        return ""
    scheme = parts.scheme.lower()
    if scheme not in _DEFAULT_PORTS or not parts.hostname:
        return ""
    host = parts.hostname.lower()
    if ":" in host:
        host = f"[{host}]"
    if port is not None and port != _DEFAULT_PORTS[scheme]:
        host = f"{host}:{port}"
    return f"{scheme}://{host}"


def is_same_origin(url: str, base_origin: str) -> bool:
    origin = origin_of(url)
    return bool(origin) and origin == base_origin