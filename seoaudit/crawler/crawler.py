"""
Same-origin site crawler.
A bounded ThreadPoolExecutor pulls (url, depth) items from a shared queue;
only the coordinating loop writes to the crawl graph.
"""
from __future__ import annotations

import hashlib
import logging
import threading
import time
from collections import deque
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urljoin

import requests

from seoaudit.config import (
    CLIENT_ERROR_STATUS,
    DEFAULT_CRAWL_CONCURRENCY,
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_PAGES,
    DEFAULT_REQUEST_TIMEOUT,
    DEFAULT_USER_AGENT,
    MAX_CRAWL_DELAY,
    TIMEOUT_STATUS,
)
from seoaudit.crawler.fetcher import fetch_page, make_session
from seoaudit.crawler.parser import parse_page
from seoaudit.crawler.robots import fetch_and_parse_robots, is_url_allowed
from seoaudit.crawler.urls import is_same_origin, normalize_url, origin_of, strip_fragment
from seoaudit.exceptions import CrawlSetupError, HttpFetchError, is_timeout
from seoaudit.models import CrawlGraph, PageRecord, RobotsData

logger = logging.getLogger(__name__)


@dataclass
class _FetchOutcome:
    url: str
    depth: int
    record: PageRecord
    is_content: bool = False
    redirect_to: Optional[str] = None
    links: list[str] = field(default_factory=list)


def crawl(
    base_url: str,
    max_pages: int = DEFAULT_MAX_PAGES,
    max_depth: int = DEFAULT_MAX_DEPTH,
    *,
    concurrency: int = DEFAULT_CRAWL_CONCURRENCY,
    session: Optional[requests.Session] = None,
    respect_robots: bool = True,
    user_agent: str = DEFAULT_USER_AGENT,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> CrawlGraph:
    """
    Crawl same-origin pages reachable from `base_url`.

    `max_depth` counts the start URL as depth 1 (0 disables the limit), so
    the default of 2 fetches the start page and the pages it links to.
    Raises CrawlSetupError for a malformed base URL; individual page failures
    are recorded as error PageRecords.
    """
    base_origin = origin_of(base_url)
    if not base_origin:
        raise CrawlSetupError(base_url, "expected an absolute http(s) URL")
    if max_pages < 1:
        raise CrawlSetupError(base_url, f"max_pages must be positive, got {max_pages}")

    session = session or make_session(user_agent, pool_size=concurrency)
    robots = (
        fetch_and_parse_robots(base_url, session, timeout, user_agent=None)
        if respect_robots else RobotsData(url="", exists=False)
    )

    started = time.perf_counter()
    graph = _CrawlState(base_url, base_origin, max_pages, max_depth, robots, user_agent).run(
        session, concurrency, timeout,
    )
    logger.info(
        "Crawled %s: %d records in %.0fms",
        base_url, len(graph), (time.perf_counter() - started) * 1000,
    )
    return graph


class _CrawlState:
    """Queue, visited set and results for one crawl; touched only by the coordinating thread."""

    def __init__(
        self,
        base_url: str,
        base_origin: str,
        max_pages: int,
        max_depth: int,
        robots: RobotsData,
        user_agent: str,
    ):
        self.base_origin = base_origin
        self.max_pages = max_pages
        self.max_depth = max_depth
        self.robots = robots
        self.user_agent = user_agent

        self.graph: CrawlGraph = {}
        self.visited: set[str] = set()
        self.queued: set[str] = set()
        self.todo: deque[tuple[str, int]] = deque()
        self.pages_found = 0
        self.stop = threading.Event()
        self.crawl_delay = min(robots.crawl_delay or 0, MAX_CRAWL_DELAY)
        self._last_dispatch: Optional[float] = None

        self._enqueue(base_url, 1)

    def run(self, session: requests.Session, concurrency: int, timeout: float) -> CrawlGraph:
        with ThreadPoolExecutor(max_workers=concurrency, thread_name_prefix="crawl") as executor:
            pending: dict[Future, tuple[str, int]] = {}

            while True:
                # Submit new work while there is room and no stop was requested
                while (
                    self.todo
                    and len(pending) < concurrency
                    and not self.stop.is_set()
                    and self.pages_found + len(pending) < self.max_pages
                ):
                    url, depth = self.todo.popleft()
                    self._throttle()
                    future = executor.submit(
                        _fetch_one, url, depth, session, timeout, self.base_origin,
                    )
                    self._last_dispatch = time.monotonic()
                    pending[future] = (url, depth)

                if not pending:
                    break

                done, _ = wait(pending, return_when=FIRST_COMPLETED)
                for future in done:
                    url, depth = pending.pop(future)
                    try:
                        outcome = future.result()
                    except Exception as exc:
                        logger.exception("Unexpected crawler failure for %s", url)
                        outcome = _error_outcome(url, depth, exc)
                    self._record(outcome)

        return self.graph

    def _record(self, outcome: _FetchOutcome) -> None:
        key = normalize_url(outcome.url)

        if outcome.is_content:
            if key in self.visited or self.stop.is_set():
                return
            self.visited.add(key)
            self.pages_found += 1
            self.graph[key] = outcome.record
            for link in outcome.links:
                self._enqueue(link, outcome.depth + 1)
            if self.pages_found >= self.max_pages:
                logger.info("Reached max_pages=%d, stopping crawl", self.max_pages)
                self.stop.set()
            return

        # A content fetch already landed on this key; keep it
        if key in self.visited:
            return
        self.graph[key] = outcome.record
        if outcome.redirect_to and is_same_origin(outcome.redirect_to, self.base_origin):
            # a redirect is not a link hop; the destination keeps the source depth
            self._enqueue(outcome.redirect_to, outcome.depth)

    def _throttle(self) -> None:
        """Space request dispatches by the robots.txt Crawl-delay."""
        if not self.crawl_delay or self._last_dispatch is None:
            return
        remaining = self._last_dispatch + self.crawl_delay - time.monotonic()
        if remaining > 0:
            time.sleep(remaining)

    def _enqueue(self, url: str, depth: int) -> None:
        if self.max_depth and depth > self.max_depth:
            return
        url = normalize_url(url)
        if url in self.queued:
            return
        self.queued.add(url)
        if not is_url_allowed(url, self.robots, self.user_agent):
            logger.debug("Skipping %s (disallowed by robots.txt)", url)
            return
        self.todo.append((url, depth))


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _fetch_one(
    url: str,
    depth: int,
    session: requests.Session,
    timeout: float,
    base_origin: str,
) -> _FetchOutcome:
    """Fetch + parse a single URL. Runs on a worker thread; never touches shared state."""
    try:
        resp = fetch_page(url, session, timeout)
    except HttpFetchError as exc:
        return _error_outcome(url, depth, exc)

    status = resp.status_code
    headers = resp.headers

    if 300 <= status < 400:
        location = headers.get("location", "")
        record = PageRecord(status=status, discovered_at=_now())
        target = None
        if location:
            target = strip_fragment(urljoin(url, location))
            if is_same_origin(target, base_origin):
                record.links = [normalize_url(target)]
        logger.debug("Redirect %s -> %s [%d]", url, target, status)
        return _FetchOutcome(url=url, depth=depth, record=record, redirect_to=target)

    if status >= 400:
        logger.debug("Fetch error %s [%d]", url, status)
        return _FetchOutcome(
            url=url, depth=depth,
            record=PageRecord(status=status, discovered_at=_now(), error=True),
        )

    body = resp.content or b""
    record = PageRecord(
        status=status,
        discovered_at=_now(),
        last_modified=headers.get("last-modified"),
        etag=headers.get("etag"),
        content_hash=hashlib.sha256(body).hexdigest(),
    )

    x_robots = headers.get("x-robots-tag", "")
    if x_robots and "noindex" in x_robots.lower():
        record.is_indexable = False

    content_type = headers.get("content-type", "").lower()
    if "html" in content_type:
        html = resp.text
        record.html = html
        parse_page(record, html, resp.url or url, base_origin)

    return _FetchOutcome(url=url, depth=depth, record=record, is_content=True, links=list(record.links))


def _error_outcome(url: str, depth: int, exc: Exception) -> _FetchOutcome:
    status = TIMEOUT_STATUS if is_timeout(exc) else CLIENT_ERROR_STATUS
    logger.warning("Failed to fetch %s: %s", url, exc)
    return _FetchOutcome(
        url=url, depth=depth,
        record=PageRecord(status=status, discovered_at=_now(), error=True),
    )
