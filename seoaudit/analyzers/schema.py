"""
Structured-data checker.
Extracts JSON-LD, microdata and RDFa entities from one fetched page,
validates them against a required-field table, cross-checks a few values
against the visible page, and flags duplicate / conflicting entities.
"""
from __future__ import annotations

import json
import logging
import re
from datetime import date, datetime
from email.utils import parsedate_to_datetime
from typing import Any, Optional
from urllib.parse import urlsplit

import requests
from bs4 import BeautifulSoup

from seoaudit.config import (
    SCHEMA_DATE_FIELDS,
    SCHEMA_REQUIRED_FIELDS,
    SCHEMA_TIMEOUT,
    SCHEMA_URL_FIELDS,
    SCHEMA_USER_AGENT,
)
from seoaudit.crawler.fetcher import fetch_text, make_session
from seoaudit.crawler.parser import make_soup
from seoaudit.exceptions import HttpFetchError
from seoaudit.models import PageMatch, SchemaCheckResult, SchemaDetail, SchemaSummary

logger = logging.getLogger(__name__)

_PRICE_RE = re.compile(r"\$\s?\d+[\d.,]*")
_NON_PRICE_CHARS_RE = re.compile(r"[^0-9.]")
_OPAQUE_URL_SCHEMES = ("mailto", "tel", "data")
# Forms browsers accept beyond ISO-8601 and RFC-2822
_DATE_FORMATS = (
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M%z",
    "%Y-%m-%d %H:%M:%S",
    "%Y/%m/%d",
    "%Y/%m/%d %H:%M:%S",
    "%m/%d/%Y",
    "%m/%d/%Y %H:%M:%S",
    "%B %d, %Y",
    "%b %d, %Y",
    "%B %d %Y",
    "%b %d %Y",
    "%d %B %Y",
    "%d %b %Y",
    "%a %b %d %Y",
    "%a %b %d %Y %H:%M:%S",
    "%a, %d %b %Y",
    "%Y-%m",
    "%Y",
)
_PRICE_PATHS = (
    "offers.price",
    "offers.priceSpecification.price",
    "offers.priceSpecification",
    "offers.priceCurrency",
    "offers",
)

SOURCE_JSON_LD = "json-ld"
SOURCE_MICRODATA = "microdata"
SOURCE_RDFA = "rdfa"


# ── Value helpers ─────────────────────────────────────────────────────────────

def canonical_json(value: Any) -> str:
    """Key-order independent JSON text, used for identity and conflict checks."""
    return json.dumps(value, sort_keys=True, ensure_ascii=False, default=str)


def get_nested(obj: Any, path: str) -> Any:
    cur = obj
    for part in path.split("."):
        if isinstance(cur, list):
            cur = cur[0] if cur else None
        if not isinstance(cur, dict):
            return None
        cur = cur.get(part)
    return cur


def stringify_type(t: Any) -> str:
    if not t:
        return "Unknown"
    if isinstance(t, list):
        return ",".join(str(x) for x in t)
    if isinstance(t, dict) and t.get("@type"):
        return str(t["@type"])
    return str(t)


def is_valid_url(value: Any) -> bool:
    if not value or not isinstance(value, str):
        return False
    try:
        parts = urlsplit(value.strip())
    except ValueError:
        return False
    if parts.scheme.lower() in _OPAQUE_URL_SCHEMES:
        return True
    return bool(parts.scheme and parts.netloc)


def is_valid_date(value: Any) -> bool:
    text = str(value).strip()
    if not text:
        return False
    iso = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
    for parse in (datetime.fromisoformat, date.fromisoformat):
        try:
            parse(iso)
            return True
        except ValueError:
            pass
    try:
        parsedate_to_datetime(text)
        return True
    except (TypeError, ValueError, IndexError):
        pass
    for fmt in _DATE_FORMATS:
        try:
            datetime.strptime(text, fmt)
            return True
        except ValueError:
            pass
    return False


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


# ── Checker ───────────────────────────────────────────────────────────────────

class SchemaChecker:
    """Fetch a page and analyze the structured data found on it."""

    def __init__(self, timeout: float = SCHEMA_TIMEOUT, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or make_session(SCHEMA_USER_AGENT)

    def check_schema(self, url: str) -> SchemaCheckResult:
        """Never raises; a fetch or parse failure yields a single FetchError detail."""
        try:
            resp = fetch_text(url, self.session, self.timeout, SCHEMA_USER_AGENT, max_redirects=5)
            if resp.status_code >= 400:
                raise HttpFetchError(url, requests.HTTPError(f"HTTP {resp.status_code}"))
            result = self.analyze_html(resp.text or "")
        except Exception as exc:
            logger.warning("Schema check of %s failed: %s", url, exc)
            return _fetch_error_result(exc)

        logger.info(
            "Schema check of %s: %d entities, %d errors, %d warnings",
            url, len(result.schemas), result.summary.errors, result.summary.warnings,
        )
        return result

    def analyze_html(self, html: str) -> SchemaCheckResult:
        soup = make_soup(html)
        result = SchemaCheckResult()
        summary = result.summary

        page = _PageSignals.from_soup(soup)

        scripts = soup.find_all("script", type="application/ld+json")
        summary.json_ld_blocks = len(scripts)
        for script in scripts:
            result.schemas.extend(_json_ld_details(script, page))

        micro_items = soup.select("[itemscope]")
        summary.microdata_items = len(micro_items)
        for el in micro_items:
            item_type = (el.get("itemtype") or "").rstrip().split("/")[-1] or "MicrodataItem"
            result.schemas.append(_attribute_detail(el, "itemprop", item_type, SOURCE_MICRODATA))

        rdfa_items = soup.select("[typeof], [vocab]")
        summary.rdfa_items = len(rdfa_items)
        for el in rdfa_items:
            type_attr = el.get("typeof") or el.get("vocab") or "RDFaItem"
            item_type = type_attr.split(" ")[-1] or "RDFaItem"
            result.schemas.append(_attribute_detail(el, "property", item_type, SOURCE_RDFA))

        summary.total_blocks = summary.json_ld_blocks + summary.microdata_items + summary.rdfa_items
        summary.duplicate_count = mark_duplicates(result.schemas)
        summary.errors = sum(len(s.errors) for s in result.schemas)
        summary.warnings = sum(len(s.warnings) for s in result.schemas)
        result.has_schema = bool(result.schemas)
        return result


class _PageSignals:
    """Visible page values the JSON-LD entities are compared against."""

    def __init__(self, title: str, description: str, body_text: str):
        self.title = title
        self.description = description
        self.body_text = body_text

    @classmethod
    def from_soup(cls, soup: BeautifulSoup) -> "_PageSignals":
        title_tag = soup.find("title")
        description = ""
        for meta in soup.find_all("meta"):
            if (meta.get("name") or "").strip().lower() == "description":
                description = (meta.get("content") or "").strip()
                break
        body = soup.find("body")
        return cls(
            title=title_tag.get_text().strip() if title_tag else "",
            description=description,
            body_text=body.get_text() if body else "",
        )


def _fetch_error_result(exc: Exception) -> SchemaCheckResult:
    message = str(getattr(exc, "original", None) or exc)
    return SchemaCheckResult(
        has_schema=False,
        schemas=[SchemaDetail(type="FetchError", source=SOURCE_JSON_LD, errors=[message], raw=message)],
        summary=SchemaSummary(errors=1),
    )


# ── JSON-LD ───────────────────────────────────────────────────────────────────

def _json_ld_details(script, page: _PageSignals) -> list[SchemaDetail]:
    text = script.string if script.string is not None else script.get_text()
    if not text or not text.strip():
        return []
    try:
        parsed = json.loads(text)
    except ValueError:
        logger.debug("Unparsable JSON-LD block: %.80s", text)
        return [SchemaDetail(
            type="InvalidJSON",
            source=SOURCE_JSON_LD,
            errors=["Invalid JSON-LD block: JSON parse failed"],
            raw=text,
        )]

    details = []
    for item in flatten_entities(parsed):
        details.append(validate_entity(item, page))
    return details


def flatten_entities(parsed: Any) -> list[dict]:
    """Top-level arrays and @graph wrappers become individual entities."""
    if isinstance(parsed, list):
        items = parsed
    elif isinstance(parsed, dict):
        graph = parsed.get("@graph")
        items = graph if isinstance(graph, list) else [parsed]
    else:
        items = []
    return [item for item in items if isinstance(item, dict)]


def validate_entity(item: dict, page: Optional[_PageSignals] = None) -> SchemaDetail:
    entity_type = stringify_type(item.get("@type") or item.get("type"))
    detail = SchemaDetail(
        type=entity_type,
        source=SOURCE_JSON_LD,
        properties=[k for k in item if not k.startswith("@")],
        context=item.get("@context"),
        raw=item,
    )

    for field_name in SCHEMA_REQUIRED_FIELDS.get(entity_type, []):
        value = get_nested(item, field_name)
        if _is_missing(value):
            detail.required_missing.append(field_name)
            detail.warnings.append(f"Missing required field: {field_name}")

    for field_name in SCHEMA_URL_FIELDS:
        value = item.get(field_name)
        if not value:
            continue
        for candidate in value if isinstance(value, list) else [value]:
            if isinstance(candidate, dict):
                # ImageObject and friends carry their own url
                candidate = candidate.get("url") or candidate.get("@id")
            if not is_valid_url(candidate):
                detail.warnings.append(f"Invalid URL in {field_name}: {candidate}")

    for field_name in SCHEMA_DATE_FIELDS:
        value = item.get(field_name)
        if value and not is_valid_date(value):
            detail.errors.append(f"Invalid date format for {field_name}: {value}")

    if page is not None:
        detail.matched_on_page = _match_on_page(item, entity_type, page)
    return detail


def _match_on_page(item: dict, entity_type: str, page: _PageSignals) -> PageMatch:
    match = PageMatch()
    name = item.get("name")
    if name and page.title:
        match.name_match = str(name).strip() == page.title
    description = item.get("description")
    if description and page.description:
        match.description_match = str(description).strip() == page.description

    if entity_type == "Product":
        on_page = _PRICE_RE.findall(page.body_text)
        schema_price = next(
            (v for v in (get_nested(item, p) for p in _PRICE_PATHS) if v not in (None, "")),
            None,
        )
        if schema_price is not None and on_page:
            price = schema_price if isinstance(schema_price, str) else (
                canonical_json(schema_price) if isinstance(schema_price, (dict, list)) else str(schema_price)
            )
            match.price_match = any(
                price in p or _NON_PRICE_CHARS_RE.sub("", p) in price for p in on_page
            )
    return match


# ── Microdata / RDFa ──────────────────────────────────────────────────────────

def _attribute_detail(el, prop_attr: str, item_type: str, source: str) -> SchemaDetail:
    props: dict[str, str] = {}
    for prop_el in el.select(f"[{prop_attr}]"):
        name = prop_el.get(prop_attr) or ""
        if isinstance(name, list):
            name = " ".join(name)
        props[name] = prop_el.get("content") or prop_el.get_text().strip()

    detail = SchemaDetail(type=item_type, source=source, properties=list(props), raw=props)
    for field_name in SCHEMA_REQUIRED_FIELDS.get(item_type, []):
        if field_name not in props:
            detail.required_missing.append(field_name)
            detail.warnings.append(f"Missing required field: {field_name}")
    return detail


# ── Duplicates and conflicts ──────────────────────────────────────────────────

def identity_signature(detail: SchemaDetail) -> str:
    raw = detail.raw
    identity = raw
    if isinstance(raw, dict):
        identity = raw.get("@id") or raw.get("id") or raw
    return f"{detail.type}::{canonical_json(identity)}"


def mark_duplicates(details: list[SchemaDetail]) -> int:
    """
    Group details by type + identity. Every member of a group larger than one
    is flagged as a duplicate; properties whose values differ across the group
    are reported as conflicts on every member. Returns Σ(group size − 1).
    """
    groups: dict[str, list[SchemaDetail]] = {}
    for detail in details:
        groups.setdefault(identity_signature(detail), []).append(detail)

    duplicate_count = 0
    for members in groups.values():
        if len(members) < 2:
            continue
        duplicate_count += len(members) - 1
        for member in members:
            member.duplicates = True

        props = list(dict.fromkeys(p for m in members for p in m.properties))
        conflicts = [
            p for p in props
            if len({canonical_json(_raw_value(m.raw, p)) for m in members}) > 1
        ]
        if conflicts:
            for member in members:
                member.conflicts = list(conflicts)
                member.errors.append(f"Conflicting values for: {', '.join(conflicts)}")
    return duplicate_count


def _raw_value(raw: Any, prop: str) -> Any:
    return raw.get(prop) if isinstance(raw, dict) else None
