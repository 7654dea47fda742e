"""
Global configuration constants for the SEO audit core.
All tunable thresholds live here; components take them as defaults only.
"""
import logging
import os

logger = logging.getLogger(__name__)


def _get_int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.exception("Invalid %s: %r", name, raw)
        return default


def _get_float_env(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.exception("Invalid %s: %r", name, raw)
        return default


# ── Identity ──────────────────────────────────────────────────────────────────
DEFAULT_USER_AGENT = os.getenv("SEOAUDIT_USER_AGENT", "SEO-Analyzer/1.0")
ANALYZER_BOT_USER_AGENT = "Mozilla/5.0 (compatible; AnalyzerBot/1.0)"
SCHEMA_USER_AGENT = "schema-checker/2.0"

# ── Crawler defaults ──────────────────────────────────────────────────────────
DEFAULT_MAX_PAGES = _get_int_env("SEOAUDIT_CRAWL_MAX_PAGES", 50)
DEFAULT_MAX_DEPTH = _get_int_env("SEOAUDIT_CRAWL_MAX_DEPTH", 2)
DEFAULT_CRAWL_CONCURRENCY = _get_int_env("SEOAUDIT_CRAWL_CONCURRENCY", 6)
DEFAULT_REQUEST_TIMEOUT = 10            # seconds
MAX_CRAWL_DELAY = 10                    # seconds; caps robots.txt Crawl-delay
SNIPPET_MAX_CHARS = 300

# Status codes recorded for fetches that never produced an HTTP response
TIMEOUT_STATUS = 408
CLIENT_ERROR_STATUS = 520

# ── Link checker ──────────────────────────────────────────────────────────────
LINK_CHECK_CONCURRENCY = 50
LINK_CHECK_PER_PAGE_LIMIT = 200
LINK_CHECK_TOTAL_LIMIT = 1000
LINK_CHECK_TIMEOUT = _get_float_env("SEOAUDIT_LINK_TIMEOUT", 5.0)
LINK_CHECK_RETRIES = 1
LINK_CHECK_RETRY_DELAY = 0.2            # seconds × attempt
MAX_REDIRECTS_TO_FOLLOW = 5

MEDIA_EXTENSIONS = ("jpg", "jpeg", "png", "gif", "webp", "svg", "mp4", "mp3", "webm", "ogg")
ASSET_EXTENSIONS = ("css", "js", "map")

# ── Mobile scanner ────────────────────────────────────────────────────────────
MOBILE_TIMEOUT = 12
MOBILE_MAX_REDIRECTS = 3
MAX_CSS_FETCH = 4
MIN_FONT_SIZE_PX = 12
MIN_TOUCH_PADDING_PX = 6
FRIENDLY_URL_MAX_SEGMENTS = 6

MOBILE_USER_AGENTS = [
    # mobile
    "Mozilla/5.0 (Linux; Android 13; Pixel 7) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120 Mobile Safari/537.36",
    # desktop
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120 Safari/537.36",
    # tablet
    "Mozilla/5.0 (iPad; CPU OS 15_0 like Mac OS X) AppleWebKit/605.1.15 (KHTML, like Gecko) "
    "Version/15.0 Mobile/15E148 Safari/604.1",
]

# Deductions applied to the 100-point mobile score
MOBILE_SCORE_DEDUCTIONS: dict[str, int] = {
    "viewport":          30,
    "meta_description":   5,
    "title":              5,
    "structured_data":    5,
    "responsive_images": 10,
    "media_queries":     10,
    "friendly_url":       5,
}
TOUCH_TARGET_POINTS = 2
TOUCH_TARGET_MAX_DEDUCTION = 20
FONT_SIZE_POINTS = 5
FONT_SIZE_MAX_DEDUCTION = 10
SERVER_RESPONSIVE_BONUS = 2

# ── Schema checker ────────────────────────────────────────────────────────────
SCHEMA_TIMEOUT = 7

# Minimal required fields for the common rich-result types
SCHEMA_REQUIRED_FIELDS: dict[str, list[str]] = {
    "WebSite":        ["name", "url"],
    "Organization":   ["name", "url"],
    "BreadcrumbList": ["itemListElement"],
    "Article":        ["headline", "author", "datePublished"],
    "BlogPosting":    ["headline", "author", "datePublished"],
    "Product":        ["name", "image", "description", "sku", "offers"],
    "LocalBusiness":  ["name", "image", "address"],
    "FAQPage":        ["mainEntity"],
    "Event":          ["name", "startDate", "location"],
}
SCHEMA_URL_FIELDS = ["url", "image", "logo", "sameAs"]
SCHEMA_DATE_FIELDS = ["datePublished", "startDate", "endDate"]

# ── Validator ─────────────────────────────────────────────────────────────────
VALIDATOR_TIMEOUT = 10
VALIDATOR_HEAD_TIMEOUT = 8
VALIDATOR_MAX_REDIRECTS = 3
SELECTOR_MAX_CHARS = 200

# ── Security headers expected ─────────────────────────────────────────────────
EXPECTED_SECURITY_HEADERS = [
    "strict-transport-security",
    "x-content-type-options",
    "x-frame-options",
    "content-security-policy",
    "referrer-policy",
    "permissions-policy",
]

# ── Architecture ──────────────────────────────────────────────────────────────
TOP_LINKED_PAGES = 5
UNREACHABLE_LEVEL = "unreachable"
