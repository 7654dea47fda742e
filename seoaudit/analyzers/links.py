"""
Link checker: classifies every link found in the crawl graph and probes each
distinct destination for reachability and redirect chains.
"""
from __future__ import annotations

import logging
import re
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Optional
from urllib.parse import urljoin, urlsplit

import requests

from seoaudit.config import (
    ASSET_EXTENSIONS,
    LINK_CHECK_CONCURRENCY,
    LINK_CHECK_PER_PAGE_LIMIT,
    LINK_CHECK_RETRIES,
    LINK_CHECK_RETRY_DELAY,
    LINK_CHECK_TIMEOUT,
    LINK_CHECK_TOTAL_LIMIT,
    MAX_REDIRECTS_TO_FOLLOW,
    MEDIA_EXTENSIONS,
)
from seoaudit.crawler.fetcher import follow_redirects, make_session
from seoaudit.crawler.parser import anchor_exists
from seoaudit.exceptions import HttpFetchError
from seoaudit.models import (
    AnchorCheck,
    BrokenLink,
    CrawlGraph,
    LinkCategory,
    LinkCheckItem,
    LinkCheckReport,
    LinkCheckResult,
    MailtoCheck,
    OkLink,
    RedirectChain,
)

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_ABSOLUTE_HTTP_RE = re.compile(r"^https?://", re.IGNORECASE)
_MEDIA_RE = re.compile(r"\.(%s)$" % "|".join(MEDIA_EXTENSIONS))
_ASSET_RE = re.compile(r"\.(%s)$" % "|".join(ASSET_EXTENSIONS))

CRAWLER_REFERER = "Crawler detected"


def validate_email(address: str) -> bool:
    return bool(address) and bool(_EMAIL_RE.match(address))


def categorize_url(url: str, base_host: str) -> str:
    """internal/external by hostname, overridden by media/asset extensions."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return LinkCategory.UNKNOWN
    if not parts.hostname:
        return LinkCategory.UNKNOWN

    path = parts.path.lower()
    if _MEDIA_RE.search(path):
        return LinkCategory.MEDIA
    if _ASSET_RE.search(path):
        return LinkCategory.ASSET
    if parts.hostname.lower() == base_host:
        return LinkCategory.INTERNAL
    return LinkCategory.EXTERNAL


class LinkChecker:
    """Checks every link of a crawl graph; one instance per site."""

    def __init__(
        self,
        base_url: str,
        concurrency: int = LINK_CHECK_CONCURRENCY,
        per_page_limit: int = LINK_CHECK_PER_PAGE_LIMIT,
        total_limit: int = LINK_CHECK_TOTAL_LIMIT,
        timeout: float = LINK_CHECK_TIMEOUT,
        retries: int = LINK_CHECK_RETRIES,
        retry_delay: float = LINK_CHECK_RETRY_DELAY,
        max_redirects_to_follow: int = MAX_REDIRECTS_TO_FOLLOW,
        session: Optional[requests.Session] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.base_host = (urlsplit(self.base_url).hostname or "").lower()
        self.concurrency = max(1, concurrency)
        self.per_page_limit = per_page_limit
        self.total_limit = total_limit
        self.timeout = timeout
        self.retries = retries
        self.retry_delay = retry_delay
        self.max_redirects_to_follow = max_redirects_to_follow
        self.session = session or make_session(pool_size=self.concurrency)

    def check_links(self, crawled_pages: CrawlGraph) -> LinkCheckReport:
        """
        Crawler error pages are reported as broken without a request; every
        other page's links are queued (per-page and total caps), then checked
        in batches. Each batch is joined before the next one starts.
        """
        report = LinkCheckReport()
        queue: list[LinkCheckItem] = []
        started = time.perf_counter()

        for page_url, page in crawled_pages.items():
            if page.error:
                report.broken.append(BrokenLink(
                    url=page_url,
                    referer=CRAWLER_REFERER,
                    category=LinkCategory.INTERNAL,
                    status=page.status,
                    error="Crawler error",
                ))
                continue
            for raw in page.links[: self.per_page_limit]:
                queue.append(LinkCheckItem(url=raw, referer=page_url))

        to_check = queue[: self.total_limit]
        logger.info(
            "Checking %d links from %d pages (%d queued)",
            len(to_check), len(crawled_pages), len(queue),
        )

        checked: set[str] = set()
        lock = threading.Lock()

        with ThreadPoolExecutor(max_workers=self.concurrency, thread_name_prefix="linkcheck") as executor:
            for start in range(0, len(to_check), self.concurrency):
                batch = to_check[start:start + self.concurrency]
                futures = {
                    executor.submit(self.classify_and_check, item, crawled_pages, checked, lock): item
                    for item in batch
                }
                wait(futures)
                for future, item in futures.items():
                    try:
                        result = future.result()
                    except Exception as exc:
                        logger.warning("Link check crashed for %s: %s", item.url, exc)
                        result = BrokenLink(
                            url=item.url, referer=item.referer,
                            category=LinkCategory.UNKNOWN, status="Error", error=str(exc),
                        )
                    _file_result(report, result)

        logger.info(
            "Link check done in %.0fms: %d broken, %d redirects, %d ok",
            (time.perf_counter() - started) * 1000,
            len(report.broken), len(report.redirects), len(report.ok),
        )
        return report

    def classify_and_check(
        self,
        item: LinkCheckItem,
        crawled_pages: CrawlGraph,
        checked: set[str],
        lock: threading.Lock,
    ) -> Optional[LinkCheckResult]:
        """Resolve and classify one link, then run the matching check. None for a duplicate."""
        raw = (item.url or "").strip()
        referer = item.referer
        if not raw:
            return None

        if raw.lower().startswith("mailto:"):
            item.category = LinkCategory.MAILTO
            address = raw[len("mailto:"):].split("?", 1)[0]
            return MailtoCheck(
                url=raw, referer=referer,
                status="valid" if validate_email(address) else "invalid",
            )

        if raw.startswith("#"):
            item.category = LinkCategory.ANCHOR
            return self._check_fragment(raw, raw[1:], crawled_pages.get(referer), referer)

        try:
            if _ABSOLUTE_HTTP_RE.match(raw):
                absolute = raw
            else:
                absolute = urljoin(referer or self.base_url, raw)
            parts = urlsplit(absolute)
            if parts.scheme.lower() not in ("http", "https") or not parts.hostname:
                raise ValueError(f"not an http(s) URL: {absolute}")
        except ValueError as exc:
            logger.debug("Malformed link %r on %s: %s", raw, referer, exc)
            return BrokenLink(
                url=raw, referer=referer, category=LinkCategory.UNKNOWN,
                status="malformed", error=str(exc),
            )

        url = absolute.split("#", 1)[0]

        with lock:
            if url in checked:
                return None
            checked.add(url)

        category = item.category = categorize_url(url, self.base_host)

        # path + fragment: validate against the target page when it was crawled
        if parts.fragment:
            target = crawled_pages.get(url) or crawled_pages.get(url.rstrip("/"))
            if target is not None and target.html:
                return self._check_fragment(f"{url}#{parts.fragment}", parts.fragment, target, referer)

        is_asset = category in (LinkCategory.MEDIA, LinkCategory.ASSET)
        try:
            chain = follow_redirects(
                url,
                self.session,
                use_head=not is_asset,
                timeout=self.timeout,
                max_redirects=self.max_redirects_to_follow,
                retries=self.retries,
                retry_delay=self.retry_delay,
            )
        except HttpFetchError as exc:
            return BrokenLink(
                url=url, referer=referer, category=category,
                status="Error", error=str(exc.original),
            )

        last = chain[-1]
        if last.status >= 400:
            return BrokenLink(
                url=url, referer=referer, category=category,
                status=last.status, error=f"HTTP {last.status}",
            )
        if len(chain) > 1:
            return RedirectChain(url=url, referer=referer, category=category, chain=chain)
        return OkLink(url=url, referer=referer, category=category, status=last.status)

    @staticmethod
    def _check_fragment(url: str, fragment: str, page, referer: str) -> AnchorCheck:
        if page is None or not page.html:
            return AnchorCheck(url=url, referer=referer, status="invalid-referer")
        exists = anchor_exists(page.html, fragment)
        return AnchorCheck(
            url=url, referer=referer,
            status="ok" if exists else "missing",
            element=f"#{fragment}" if exists else None,
        )


def _file_result(report: LinkCheckReport, result: Optional[LinkCheckResult]) -> None:
    if result is None:
        return
    if isinstance(result, BrokenLink):
        report.broken.append(result)
    elif isinstance(result, RedirectChain):
        report.redirects.append(result)
    elif isinstance(result, OkLink):
        report.ok.append(result)
    elif isinstance(result, AnchorCheck):
        report.anchors.append(result)
    elif isinstance(result, MailtoCheck):
        report.mailto.append(result)
