"""
Fetches and parses XML sitemaps (including sitemap index files and gzip-compressed sitemaps).
"""
from __future__ import annotations

import gzip
import logging
from typing import Optional
from urllib.parse import urlparse

import requests
from lxml import etree

from seoaudit.config import ANALYZER_BOT_USER_AGENT, VALIDATOR_TIMEOUT
from seoaudit.models import SitemapData

logger = logging.getLogger(__name__)

_SM_NS = "http://www.sitemaps.org/schemas/sitemap/0.9"

_MAX_RECURSION = 3   # max sitemap-index nesting depth
_MAX_URLS      = 10_000


def default_sitemap_url(base_url: str) -> str:
    parsed = urlparse(base_url)
    return f"{parsed.scheme}://{parsed.netloc}/sitemap.xml"


def fetch_sitemap(
    url: str,
    session: requests.Session,
    timeout: float = VALIDATOR_TIMEOUT,
    user_agent: Optional[str] = ANALYZER_BOT_USER_AGENT,
) -> SitemapData:
    """Fetch and parse a sitemap; network and XML errors land in parse_errors."""
    data = SitemapData(url=url, exists=False)
    headers = {"User-Agent": user_agent} if user_agent else None
    _fetch_recursive(url, session, timeout, headers, data, depth=0, seen=set())
    return data


def _fetch_recursive(
    url: str,
    session: requests.Session,
    timeout: float,
    headers: Optional[dict],
    data: SitemapData,
    depth: int,
    seen: set[str],
) -> None:
    if depth > _MAX_RECURSION or url in seen:
        return
    seen.add(url)

    try:
        resp = session.get(url, headers=headers, timeout=timeout, allow_redirects=True)
    except requests.RequestException as exc:
        logger.warning("Could not fetch sitemap %s: %s", url, exc)
        data.parse_errors.append(f"Could not fetch sitemap {url!r}: {exc}")
        return

    if depth == 0:
        data.status_code = resp.status_code
    if resp.status_code != 200:
        data.parse_errors.append(f"Sitemap {url!r} returned HTTP {resp.status_code}")
        return

    data.exists = True
    root = parse_sitemap_xml(_decompress_if_gzip(resp), data)
    if root is None:
        return

    tag = _local_tag(root.tag)
    if tag == "sitemapindex":
        data.is_index = True
        for loc in _locs(root, "sitemap"):
            data.child_sitemaps.append(loc)
            _fetch_recursive(loc, session, timeout, headers, data, depth + 1, seen)
    elif tag == "urlset":
        for loc in _locs(root, "url"):
            if len(data.urls) >= _MAX_URLS:
                break
            data.urls.append(loc)
    else:
        data.parse_errors.append(f"Unexpected root element <{tag}> in sitemap {url!r}")


def parse_sitemap_xml(raw: bytes, data: SitemapData):
    """Parse XML bytes, recording any parse errors on `data`."""
    try:
        parser = etree.XMLParser(resolve_entities=False, no_network=True, recover=False)
        return etree.fromstring(raw, parser=parser)
    except etree.XMLSyntaxError as exc:
        data.parse_errors.append(f"XML parse error: {exc}")
        return None


def _locs(root, entry: str) -> list[str]:
    """<entry><loc> texts, with or without the sitemap namespace."""
    out: list[str] = []
    for elem in root.iter(f"{{{_SM_NS}}}{entry}", entry):
        for loc in elem:
            if _local_tag(loc.tag) == "loc" and loc.text and loc.text.strip():
                out.append(loc.text.strip())
    return out


def _decompress_if_gzip(resp: requests.Response) -> bytes:
    content_type = resp.headers.get("content-type", "")
    if resp.url.endswith(".gz") or "gzip" in content_type:
        try:
            return gzip.decompress(resp.content)
        except OSError:
            # already decoded by the transport
            pass
    return resp.content


def _local_tag(tag) -> str:
    if not isinstance(tag, str):
        return ""
    if "}" in tag:
        return tag.split("}", 1)[1]
    return tag
