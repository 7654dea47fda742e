"""Custom exceptions and failure classification for the audit pipeline."""
import concurrent.futures

import requests

from seoaudit.models import AnalysisStatus


class SEOAuditError(Exception):
    """Base class for audit errors."""


class CrawlSetupError(SEOAuditError):
    """Raised when the crawl cannot start; fatal for the whole analysis."""

    def __init__(self, url: str, reason: str = "invalid base URL"):
        self.url = url
        self.reason = reason
        super().__init__(f"Cannot crawl {url!r}: {reason}")


class HttpFetchError(SEOAuditError):
    """Raised when an HTTP request fails due to network/transport errors."""

    def __init__(self, url: str, original: Exception):
        self.url = url
        self.original = original
        super().__init__(f"HTTP fetch failed for {url}: {original}")


_TIMEOUT_TYPES = (
    requests.exceptions.Timeout,
    concurrent.futures.TimeoutError,
    TimeoutError,
)


def is_timeout(exc: BaseException) -> bool:
    """True if `exc`, or anything it wraps, is a deadline-exceeded error."""
    seen: set[int] = set()
    current = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, _TIMEOUT_TYPES):
            return True
        current = getattr(current, "original", None) or current.__cause__
    return False


def classify_failure(exc: BaseException) -> str:
    return AnalysisStatus.TIMED_OUT if is_timeout(exc) else AnalysisStatus.FAILED
