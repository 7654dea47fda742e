"""
Low-level HTTP helpers: session construction, single fetches, and manual
redirect-chain tracking with retry on transport failure.
"""
from __future__ import annotations

import logging
import time
from typing import Optional
from urllib.parse import urljoin

import requests
from requests.adapters import HTTPAdapter

from seoaudit.config import DEFAULT_REQUEST_TIMEOUT, DEFAULT_USER_AGENT
from seoaudit.exceptions import HttpFetchError
from seoaudit.models import RedirectHop

logger = logging.getLogger(__name__)

_REDIRECT_CODES = (301, 302, 303, 307, 308)


def make_session(user_agent: str = DEFAULT_USER_AGENT, pool_size: int = 10) -> requests.Session:
    """
    Build a pooled session. Retries are disabled at the adapter level; the
    link checker applies its own retry policy and nothing else retries.
    """
    session = requests.Session()
    adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size, max_retries=0)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers.update({
        "User-Agent": user_agent,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.5",
        "Accept-Encoding": "gzip, deflate",
    })
    return session


def fetch_page(
    url: str,
    session: requests.Session,
    timeout: float = DEFAULT_REQUEST_TIMEOUT,
) -> requests.Response:
    """
    GET a single URL without following redirects.
    Transport failures are wrapped in HttpFetchError; HTTP error statuses are
    returned as-is for the caller to record.
    """
    try:
        return session.get(url, timeout=timeout, allow_redirects=False)
    except requests.RequestException as exc:
        raise HttpFetchError(url, exc) from exc


def fetch_text(
    url: str,
    session: requests.Session,
    timeout: float,
    user_agent: Optional[str] = None,
    max_redirects: int = 3,
) -> requests.Response:
    """GET following at most `max_redirects` hops. Raises HttpFetchError on transport failure."""
    headers = {"User-Agent": user_agent} if user_agent else None
    current = url
    try:
        for _ in range(max_redirects + 1):
            resp = session.get(current, headers=headers, timeout=timeout, allow_redirects=False)
            location = resp.headers.get("location", "")
            if resp.status_code not in _REDIRECT_CODES or not location:
                return resp
            current = urljoin(current, location)
    except requests.RequestException as exc:
        raise HttpFetchError(url, exc) from exc
    raise HttpFetchError(url, requests.exceptions.TooManyRedirects(f"Exceeded {max_redirects} redirects"))


def request_with_retry(
    url: str,
    session: requests.Session,
    method: str = "HEAD",
    timeout: float = 5.0,
    retries: int = 1,
    retry_delay: float = 0.2,
) -> requests.Response:
    """
    One HTTP attempt, retried `retries` times after `retry_delay × attempt`
    seconds on transport failure. Raises HttpFetchError once attempts run out.
    """
    last_exc: Optional[Exception] = None
    for attempt in range(retries + 1):
        try:
            resp = session.request(
                method,
                url,
                timeout=timeout,
                allow_redirects=False,
                stream=(method == "GET"),
            )
            if method == "GET":
                resp.close()
            return resp
        except requests.RequestException as exc:
            last_exc = exc
            logger.debug("%s %s failed (attempt %d): %s", method, url, attempt + 1, exc)
            if attempt < retries:
                time.sleep(retry_delay * (attempt + 1))
    raise HttpFetchError(url, last_exc)


def follow_redirects(
    url: str,
    session: requests.Session,
    use_head: bool = True,
    timeout: float = 5.0,
    max_redirects: int = 5,
    retries: int = 1,
    retry_delay: float = 0.2,
) -> list[RedirectHop]:
    """
    Follow redirects manually to capture the full chain.
    Every response is appended; the chain ends at a non-redirect status, a
    3xx without Location, or once `max_redirects` hops have been followed.
    """
    method = "HEAD" if use_head else "GET"
    chain: list[RedirectHop] = []
    current = url
    redirects = 0

    while True:
        resp = request_with_retry(current, session, method, timeout, retries, retry_delay)
        location = resp.headers.get("location") or None
        chain.append(RedirectHop(url=current, status=resp.status_code, location=location))

        if 300 <= resp.status_code < 400 and location and redirects < max_redirects:
            current = urljoin(current, location)
            redirects += 1
            continue
        return chain
