"""
Converts an AnalysisReport to JSON-ready dicts and JSON bytes for export.
Dataclass field names become camelCase keys; in-memory only fields
(page HTML, raw structured-data payloads) are left out.
"""
from __future__ import annotations

import dataclasses
import json
from typing import Any

from seoaudit.models import AnalysisReport, CrawlGraph, Stage

_OMITTED_FIELDS = {"html", "raw"}
_KEY_OVERRIDES = {
    "sitemap_urls": "sitemapURLs",
}


def camel_case(name: str) -> str:
    if name in _KEY_OVERRIDES:
        return _KEY_OVERRIDES[name]
    head, *rest = name.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def to_jsonable(value: Any) -> Any:
    """Recursively convert dataclasses, dicts, lists and tuples to JSON-safe values."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            camel_case(f.name): to_jsonable(getattr(value, f.name))
            for f in dataclasses.fields(value)
            if f.name not in _OMITTED_FIELDS
        }
    if isinstance(value, dict):
        # keys are data (URLs, header names, depth levels), not field names
        return {str(k): to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_jsonable(v) for v in value]
    return value


# ── Crawl graph ────────────────────────────────────────────────────────────────

def crawl_to_dict(graph: CrawlGraph) -> dict[str, dict]:
    return {url: to_jsonable(page) for url, page in graph.items()}


# ── Full report ────────────────────────────────────────────────────────────────

def report_to_dict(report: AnalysisReport) -> dict:
    r = report.results
    return {
        "results": {
            "crawl":                crawl_to_dict(r.crawl) if r.crawl is not None else None,
            "brokenLinks":          to_jsonable(r.broken_links),
            "mobile":               to_jsonable(r.mobile),
            "validation":           to_jsonable(r.validation),
            "schema":               to_jsonable(r.schema),
            "architecture":         to_jsonable(r.architecture),
            "architectureAnalysis": to_jsonable(r.architecture_analysis),
        },
        "status": {camel_case(stage): report.status[stage] for stage in Stage.ALL},
    }


def to_json_bytes(report: AnalysisReport, indent: int = 2) -> bytes:
    return json.dumps(report_to_dict(report), indent=indent, ensure_ascii=False).encode("utf-8")
