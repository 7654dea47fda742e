"""
Mobile-friendliness scanner: fetches one URL as three devices and scores
viewport, responsive images, media queries, touch targets and font sizes.
"""
from __future__ import annotations

import json
import logging
import re
from concurrent.futures import ThreadPoolExecutor
from typing import Optional
from urllib.parse import parse_qsl, urljoin, urlsplit

import requests
from bs4 import BeautifulSoup

from seoaudit.config import (
    ANALYZER_BOT_USER_AGENT,
    FRIENDLY_URL_MAX_SEGMENTS,
    MAX_CSS_FETCH,
    MIN_FONT_SIZE_PX,
    MIN_TOUCH_PADDING_PX,
    MOBILE_MAX_REDIRECTS,
    MOBILE_TIMEOUT,
    MOBILE_USER_AGENTS,
)
from seoaudit.crawler.fetcher import fetch_text, make_session
from seoaudit.crawler.parser import make_soup
from seoaudit.exceptions import HttpFetchError
from seoaudit.models import MobileScanResult, StructuredDataSummary
from seoaudit.scoring.scorer import compute_mobile_score

logger = logging.getLogger(__name__)

_TOUCH_SELECTOR = "button, a[href], input[type='button'], input[type='submit'], [role='button']"
_INLINE_FONT_RE = re.compile(r"font-size:\s*(\d+(?:\.\d+)?)(px|rem|em)?", re.IGNORECASE)
_INLINE_PADDING_RE = re.compile(r"padding:\s*(\d+(?:\.\d+)?)(px|rem|em)?", re.IGNORECASE)
_CSS_TOUCH_RULE_RE = re.compile(
    r"(?:button|a\[href\]|\[role=[\"']?button[\"']?\])[^{}]*\{([^}]*)\}", re.IGNORECASE,
)
_CSS_FONT_PX_RE = re.compile(r"font-size:\s*(\d+(?:\.\d+)?)px", re.IGNORECASE)
_CSS_PADDING_PX_RE = re.compile(r"padding:\s*(\d+(?:\.\d+)?)px", re.IGNORECASE)
_CSS_ROOT_FONT_RE = re.compile(
    r"(?:^|[\s,}]):root\b[^{}]*\{[^}]*font-size:\s*(\d+(?:\.\d+)?)(px)?", re.IGNORECASE,
)
_CSS_BODY_FONT_RE = re.compile(
    r"(?:^|[\s,}])body\b[^{}]*\{[^}]*font-size:\s*(\d+(?:\.\d+)?)(px)?", re.IGNORECASE,
)
_MEDIA_QUERY_RE = re.compile(r"@media\b|max-width\b|min-width\b", re.IGNORECASE)
_UNFRIENDLY_SEGMENT_RE = re.compile(r"[%?&=#]")
_LONG_ID_RE = re.compile(r"\d{6,}")


class MobileScanner:
    """Scores mobile-friendliness of a single URL. scan() never raises."""

    def __init__(
        self,
        timeout: float = MOBILE_TIMEOUT,
        max_css_fetch: int = MAX_CSS_FETCH,
        user_agents: Optional[list[str]] = None,
        session: Optional[requests.Session] = None,
    ):
        self.timeout = timeout
        self.max_css_fetch = max_css_fetch
        self.user_agents = list(user_agents or MOBILE_USER_AGENTS)
        self.session = session or make_session()

    def scan(self, url: str) -> MobileScanResult:
        errors: list[str] = []
        try:
            htmls = self._fetch_all(url, errors)
            if not any(htmls):
                if not errors:
                    errors.append("No HTML content fetched")
                logger.warning("Mobile scan of %s fetched no HTML", url)
                return degraded_result(url, errors)
            return self._analyze(url, htmls, errors)
        except Exception as exc:
            logger.exception("Mobile scan of %s failed", url)
            return degraded_result(url, errors + [str(exc)])

    # ── Fetching ───────────────────────────────────────────────────────────────

    def _fetch_all(self, url: str, errors: list[str]) -> list[str]:
        with ThreadPoolExecutor(max_workers=len(self.user_agents), thread_name_prefix="mobile") as executor:
            futures = [executor.submit(self._fetch_with_ua, url, ua) for ua in self.user_agents]
            htmls: list[str] = []
            for future in futures:
                try:
                    htmls.append(future.result())
                except HttpFetchError as exc:
                    errors.append(str(exc.original))
                    htmls.append("")
        return htmls

    def _fetch_with_ua(self, url: str, user_agent: str) -> str:
        resp = fetch_text(url, self.session, self.timeout, user_agent, MOBILE_MAX_REDIRECTS)
        if resp.status_code >= 400:
            raise HttpFetchError(url, requests.HTTPError(f"HTTP {resp.status_code}"))
        return resp.text or ""

    def _fetch_css(self, base_url: str, hrefs: list[str]) -> list[str]:
        contents: list[str] = []
        for href in hrefs[: self.max_css_fetch]:
            resolved = urljoin(base_url, href)
            try:
                resp = fetch_text(resolved, self.session, self.timeout, ANALYZER_BOT_USER_AGENT, 2)
            except HttpFetchError as exc:
                logger.debug("Skipping stylesheet %s: %s", resolved, exc)
                continue
            if resp.status_code < 400:
                contents.append(resp.text or "")
        return contents

    # ── Analysis ───────────────────────────────────────────────────────────────

    def _analyze(self, url: str, htmls: list[str], errors: list[str]) -> MobileScanResult:
        server_responsive = len(set(htmls)) > 1
        html = htmls[0] or next(h for h in htmls if h)
        soup = make_soup(html)

        viewport_content = (_meta_content(soup, "viewport") or "").lower()
        viewport_meta = any(
            token in viewport_content
            for token in ("width=device-width", "initial-scale", "viewport-fit=cover")
        )
        meta_description = bool(_meta_content(soup, "description"))
        title_tag = soup.find("title")
        title = bool(title_tag and title_tag.get_text().strip())
        structured_data = extract_structured_data(soup)
        touch_icons = detect_touch_icons(soup)

        css_links = [
            link.get("href")
            for link in soup.find_all("link", href=True)
            if "stylesheet" in _rel_tokens(link.get("rel"))
        ]
        inline_styles = "\n".join(style.get_text() for style in soup.find_all("style"))
        css_contents = self._fetch_css(url, css_links) + [inline_styles]

        css_media_queries = bool(_MEDIA_QUERY_RE.search("\n".join(css_contents)))
        responsive_images = detect_responsive_images(soup)
        touch_target_issues = analyze_touch_targets(soup, css_contents)
        font_size_issues = analyze_font_sizes(soup, css_contents)
        friendly_url = is_friendly_url(url)

        score = compute_mobile_score(
            viewport_meta=viewport_meta,
            meta_description=meta_description,
            title=title,
            has_structured_data=bool(structured_data),
            responsive_images=responsive_images,
            css_media_queries=css_media_queries,
            touch_target_issues=touch_target_issues,
            font_size_issues=font_size_issues,
            friendly_url=friendly_url,
            server_responsive=server_responsive,
        )
        appropriate_font_size = font_size_issues == 0

        logger.info("Mobile scan of %s: score %d", url, score)
        return MobileScanResult(
            url=url,
            fetched_with=tuple(self.user_agents),
            mobile_score=score,
            viewport_meta=viewport_meta,
            meta_description=meta_description,
            title=title,
            structured_data=tuple(structured_data),
            responsive_images=responsive_images,
            css_media_queries=css_media_queries,
            touch_target_issues=touch_target_issues,
            font_size_issues=font_size_issues,
            friendly_url=friendly_url,
            server_responsive=server_responsive,
            # independent of the score: all three signals must hold
            is_mobile_friendly=viewport_meta and touch_icons and appropriate_font_size,
            touch_icons=touch_icons,
            appropriate_font_size=appropriate_font_size,
            errors=tuple(errors) if errors else None,
        )


def degraded_result(url: str, errors: list[str]) -> MobileScanResult:
    return MobileScanResult(
        url=url,
        mobile_score=0,
        viewport_meta=False,
        responsive_images=False,
        css_media_queries=False,
        touch_target_issues=0,
        font_size_issues=0,
        friendly_url=False,
        server_responsive=False,
        is_mobile_friendly=False,
        errors=tuple(errors),
    )


# ── Detectors ─────────────────────────────────────────────────────────────────

def is_friendly_url(url: str) -> bool:
    try:
        parts = urlsplit(url)
    except ValueError:
        return False
    if not parts.scheme or not parts.netloc:
        return False

    if parts.query:
        params = [key for key, _ in parse_qsl(parts.query, keep_blank_values=True)]
        if not all(p.startswith("utm_") or p == "ref" for p in params):
            return False

    segments = [s for s in parts.path.split("/") if s]
    if len(segments) > FRIENDLY_URL_MAX_SEGMENTS:
        return False
    if any(_UNFRIENDLY_SEGMENT_RE.search(s) for s in segments):
        return False
    if any(_LONG_ID_RE.search(s) for s in segments):
        return False
    return True


def extract_structured_data(soup: BeautifulSoup) -> list[StructuredDataSummary]:
    """One summary per JSON-LD block with every @type found at any nesting level."""
    results: list[StructuredDataSummary] = []
    for script in soup.find_all("script", type="application/ld+json"):
        raw = script.string or script.get_text() or ""
        try:
            parsed = json.loads(raw)
        except ValueError:
            results.append(StructuredDataSummary(raw=raw))
            continue
        types: list[str] = []
        _walk_types(parsed, types)
        results.append(StructuredDataSummary(raw=raw, types=tuple(dict.fromkeys(types))))
    return results


def _walk_types(node, types: list[str]) -> None:
    if isinstance(node, list):
        for child in node:
            _walk_types(child, types)
    elif isinstance(node, dict):
        t = node.get("@type")
        if isinstance(t, list):
            types.extend(str(x) for x in t)
        elif t:
            types.append(str(t))
        for child in node.values():
            _walk_types(child, types)


def detect_touch_icons(soup: BeautifulSoup) -> bool:
    for link in soup.find_all("link"):
        rel = _rel_tokens(link.get("rel"))
        if "icon" in rel or any(r.startswith("apple-touch-icon") for r in rel):
            return True
    return False


def detect_responsive_images(soup: BeautifulSoup) -> bool:
    if soup.find("img", srcset=True) or soup.find("picture"):
        return True
    return soup.find("source", srcset=True) is not None or soup.find("source", sizes=True) is not None


def analyze_touch_targets(soup: BeautifulSoup, css_contents: list[str]) -> int:
    issues = 0
    for el in soup.select(_TOUCH_SELECTOR):
        style = (el.get("style") or "").lower()
        font = _INLINE_FONT_RE.search(style)
        padding = _INLINE_PADDING_RE.search(style)
        font_px = float(font.group(1)) if font else 0.0
        padding_px = float(padding.group(1)) if padding else 0.0
        if font_px and font_px < MIN_FONT_SIZE_PX:
            issues += 1
        if padding_px and padding_px < MIN_TOUCH_PADDING_PX:
            issues += 1

    for rule_body in _CSS_TOUCH_RULE_RE.findall("\n".join(css_contents)):
        font = _CSS_FONT_PX_RE.search(rule_body)
        padding = _CSS_PADDING_PX_RE.search(rule_body)
        if font and 0 < float(font.group(1)) < MIN_FONT_SIZE_PX:
            issues += 1
        if padding and 0 < float(padding.group(1)) < MIN_TOUCH_PADDING_PX:
            issues += 1
    return issues


def analyze_font_sizes(soup: BeautifulSoup, css_contents: list[str]) -> int:
    body = soup.find("body")
    body_font = _INLINE_FONT_RE.search((body.get("style") or "") if body else "")
    if body_font and float(body_font.group(1)) < MIN_FONT_SIZE_PX:
        return 1
    for css in css_contents:
        for pattern in (_CSS_ROOT_FONT_RE, _CSS_BODY_FONT_RE):
            match = pattern.search(css)
            if match and float(match.group(1)) < MIN_FONT_SIZE_PX:
                return 1
    return 0


def _meta_content(soup: BeautifulSoup, name: str) -> Optional[str]:
    for meta in soup.find_all("meta"):
        if (meta.get("name") or "").strip().lower() == name:
            return meta.get("content")
    return None


def _rel_tokens(rel) -> list[str]:
    if not rel:
        return []
    if isinstance(rel, str):
        rel = rel.split()
    return [r.lower() for r in rel]
