"""
Robots/sitemap validator: robots.txt and sitemap discovery, homepage meta
tags, image accessibility, JSON-LD presence, HTTPS and security headers.
"""
from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urljoin, urlsplit

import requests
from bs4 import BeautifulSoup

from seoaudit.config import (
    ANALYZER_BOT_USER_AGENT,
    EXPECTED_SECURITY_HEADERS,
    SELECTOR_MAX_CHARS,
    VALIDATOR_HEAD_TIMEOUT,
    VALIDATOR_MAX_REDIRECTS,
    VALIDATOR_TIMEOUT,
)
from seoaudit.crawler.fetcher import fetch_text, make_session
from seoaudit.crawler.parser import make_soup
from seoaudit.crawler.robots import fetch_and_parse_robots
from seoaudit.crawler.sitemap import default_sitemap_url, fetch_sitemap
from seoaudit.exceptions import HttpFetchError
from seoaudit.models import ImageRef, OpenGraphTags, TwitterTags, ValidationResult

logger = logging.getLogger(__name__)


class RobotsSitemapValidator:
    """Validates indexing files and homepage signals for one site; validate() never raises."""

    def __init__(
        self,
        base_url: str,
        timeout: float = VALIDATOR_TIMEOUT,
        head_timeout: float = VALIDATOR_HEAD_TIMEOUT,
        max_redirects: int = VALIDATOR_MAX_REDIRECTS,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url
        self.timeout = timeout
        self.head_timeout = head_timeout
        self.max_redirects = max_redirects
        self.session = session or make_session(ANALYZER_BOT_USER_AGENT)

    def validate(self) -> ValidationResult:
        result = ValidationResult(
            security_headers={name: None for name in EXPECTED_SECURITY_HEADERS},
        )
        self._check_robots_and_sitemap(result)

        page_url = urljoin(self.base_url, "/")
        self._check_head(page_url, result)
        self._check_homepage(page_url, result)

        logger.info(
            "Validated %s: robots=%s sitemap=%s (%d urls) https=%s",
            self.base_url, result.robots_txt_exists, result.sitemap_exists,
            len(result.sitemap_urls), result.https,
        )
        return result

    # ── robots.txt / sitemap ──────────────────────────────────────────────────

    def _check_robots_and_sitemap(self, result: ValidationResult) -> None:
        robots = fetch_and_parse_robots(
            self.base_url, self.session, self.timeout, user_agent=ANALYZER_BOT_USER_AGENT,
        )
        result.robots_txt_exists = robots.exists

        sitemap_url = default_sitemap_url(self.base_url)
        if robots.exists and robots.sitemap_urls:
            sitemap_url = robots.sitemap_urls[0]

        sitemap = fetch_sitemap(sitemap_url, self.session, self.timeout, ANALYZER_BOT_USER_AGENT)
        for error in sitemap.parse_errors:
            logger.debug("Sitemap %s: %s", sitemap_url, error)
        result.sitemap_exists = sitemap.exists
        result.sitemap_urls = list(sitemap.urls)

    # ── HTTPS / security headers ──────────────────────────────────────────────

    def _check_head(self, page_url: str, result: ValidationResult) -> None:
        try:
            resp, final_url = self._head_follow(page_url)
        except HttpFetchError as exc:
            logger.warning("HEAD %s failed: %s", page_url, exc.original)
            return

        result.https = urlsplit(final_url).scheme.lower() == "https"
        for name in EXPECTED_SECURITY_HEADERS:
            result.security_headers[name] = resp.headers.get(name)

    def _head_follow(self, url: str) -> tuple[requests.Response, str]:
        current = url
        try:
            for _ in range(self.max_redirects + 1):
                resp = self.session.head(current, timeout=self.head_timeout, allow_redirects=False)
                location = resp.headers.get("location")
                if not (300 <= resp.status_code < 400 and location):
                    return resp, current
                current = urljoin(current, location)
        except requests.RequestException as exc:
            raise HttpFetchError(url, exc) from exc
        raise HttpFetchError(url, requests.exceptions.TooManyRedirects(
            f"Exceeded {self.max_redirects} redirects"
        ))

    # ── Homepage HTML ─────────────────────────────────────────────────────────

    def _check_homepage(self, page_url: str, result: ValidationResult) -> None:
        try:
            resp = fetch_text(
                page_url, self.session, self.timeout, ANALYZER_BOT_USER_AGENT, self.max_redirects,
            )
        except HttpFetchError as exc:
            logger.warning("GET %s failed: %s", page_url, exc.original)
            return
        if resp.status_code != 200:
            logger.debug("Homepage %s returned HTTP %d", page_url, resp.status_code)
            return
        inspect_homepage(make_soup(resp.text or ""), result)


def inspect_homepage(soup: BeautifulSoup, result: ValidationResult) -> ValidationResult:
    """Fill the tag, image and JSON-LD fields of `result` from a parsed homepage."""
    head = soup.find("head")
    if head is not None:
        title = head.find("title")
        result.title_exists = bool(title and title.get_text().strip())
        result.meta_description_exists = bool(_meta(head, "name", "description"))
        canonical = head.find("link", rel="canonical")
        result.canonical_exists = bool(canonical and canonical.get("href"))

        result.open_graph = OpenGraphTags(
            title=bool(_meta(head, "property", "og:title")),
            description=bool(_meta(head, "property", "og:description")),
            image=bool(_meta(head, "property", "og:image")),
        )
        result.twitter = TwitterTags(
            card=bool(_meta(head, "name", "twitter:card")),
            title=bool(_meta(head, "name", "twitter:title")),
            description=bool(_meta(head, "name", "twitter:description")),
            image=bool(_meta(head, "name", "twitter:image")),
        )

    for img in soup.find_all("img"):
        ref = ImageRef(
            src=img.get("src") or img.get("data-src") or "",
            selector=str(img)[:SELECTOR_MAX_CHARS],
        )
        if not (img.get("alt") or "").strip():
            result.images_missing_alt.append(ref)
        if (img.get("loading") or "").lower() != "lazy":
            result.images_without_lazy.append(ref)

    result.json_ld_count = len(soup.find_all("script", type="application/ld+json"))
    result.has_json_ld = result.json_ld_count > 0
    return result


def _meta(head, attr: str, value: str) -> Optional[str]:
    tag = head.find("meta", attrs={attr: value})
    return tag.get("content") if tag else None
