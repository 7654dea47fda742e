"""
HTML parser that fills the indexing fields of a PageRecord from a fetched
page body, and answers fragment lookups for the link checker.
"""
from __future__ import annotations

import re
from typing import Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from seoaudit.config import SNIPPET_MAX_CHARS
from seoaudit.crawler.urls import is_same_origin, normalize_url
from seoaudit.models import PageRecord

_WS_RE = re.compile(r"\s+")


def make_soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "lxml")


def parse_page(page: PageRecord, html: str, page_url: str, base_origin: str) -> PageRecord:
    """
    Populate title, description, indexability, canonical, snippet and
    same-origin links. Mutates and returns the same PageRecord.
    """
    soup = make_soup(html)
    base_url = _resolve_base_url(soup, page_url)

    _parse_meta(soup, page, base_url)
    _parse_snippet(soup, page)
    page.links = extract_links(soup, base_url, base_origin)
    return page


def _resolve_base_url(soup: BeautifulSoup, fallback: str) -> str:
    base_tag = soup.find("base", href=True)
    if base_tag:
        return urljoin(fallback, base_tag["href"])
    return fallback


# ── Meta ──────────────────────────────────────────────────────────────────────

def _parse_meta(soup: BeautifulSoup, page: PageRecord, base_url: str) -> None:
    robots = _meta_content(soup, "robots") or ""
    noindex = "noindex" in robots.lower()
    # an X-Robots-Tag noindex recorded from headers stays in force
    page.is_indexable = (page.is_indexable is not False) and not noindex

    title_tag = soup.find("title")
    if title_tag:
        page.title = title_tag.get_text(strip=True) or None

    page.description = _meta_content(soup, "description") or None

    canonical_tag = soup.find("link", rel=lambda r: r and "canonical" in _rel_tokens(r))
    if canonical_tag:
        href = (canonical_tag.get("href") or "").strip()
        if href:
            page.canonical = normalize_url(urljoin(base_url, href))


def _meta_content(soup: BeautifulSoup, name: str) -> Optional[str]:
    for meta in soup.find_all("meta"):
        if (meta.get("name") or "").strip().lower() == name:
            return meta.get("content")
    return None


def _rel_tokens(rel) -> list[str]:
    if isinstance(rel, str):
        rel = rel.split()
    return [r.lower() for r in rel]


# ── Snippet ───────────────────────────────────────────────────────────────────

def _parse_snippet(soup: BeautifulSoup, page: PageRecord) -> None:
    body = soup.find("body")
    if body is None:
        return
    for tag in body(["script", "style", "noscript", "template"]):
        tag.decompose()
    text = _WS_RE.sub(" ", body.get_text(separator=" ")).strip()
    if text:
        page.snippet = text[:SNIPPET_MAX_CHARS]


# ── Links ─────────────────────────────────────────────────────────────────────

def extract_links(soup: BeautifulSoup, base_url: str, base_origin: str) -> list[str]:
    """Absolute, normalized, same-origin <a href> targets in document order, deduplicated."""
    seen: set[str] = set()
    links: list[str] = []

    for a_tag in soup.find_all("a", href=True):
        href = a_tag["href"].strip()
        if not href:
            continue
        try:
            abs_url = urljoin(base_url, href)
        except ValueError:
            continue
        if not is_same_origin(abs_url, base_origin):
            continue
        norm = normalize_url(abs_url)
        if norm not in seen:
            seen.add(norm)
            links.append(norm)

    return links


# ── Fragments ─────────────────────────────────────────────────────────────────

def anchor_exists(html: str, fragment: str) -> bool:
    """True if the document has an element with this id, or an <a name=...>."""
    if not fragment:
        return False
    soup = make_soup(html)
    if soup.find(id=fragment) is not None:
        return True
    return soup.find("a", attrs={"name": fragment}) is not None
