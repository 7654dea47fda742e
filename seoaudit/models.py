"""
Core data models for the SEO audit core.
All modules import from here; nothing else is cross-imported at this level.

NOTE: `from __future__ import annotations` is intentionally omitted here.
Python 3.13.0 has a regression (bpo-121814) where that import causes a crash
in the dataclasses decorator when the module is not yet fully registered in
sys.modules. Python 3.9+ supports generic aliases (list[str], dict[str, Any])
natively, so the future import is unnecessary.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Union


# ── Enumerations ──────────────────────────────────────────────────────────────
class AnalysisStatus:
    COMPLETE  = "complete"
    FAILED    = "failed"
    SKIPPED   = "skipped"
    TIMED_OUT = "timed_out"

    ALL = [COMPLETE, FAILED, SKIPPED, TIMED_OUT]


class LinkCategory:
    INTERNAL = "internal"
    EXTERNAL = "external"
    MEDIA    = "media"
    ASSET    = "asset"
    MAILTO   = "mailto"
    ANCHOR   = "anchor"
    UNKNOWN  = "unknown"

    ALL = [INTERNAL, EXTERNAL, MEDIA, ASSET, MAILTO, ANCHOR, UNKNOWN]


class Stage:
    CRAWL        = "crawl"
    BROKEN_LINKS = "broken_links"
    MOBILE       = "mobile"
    VALIDATION   = "validation"
    SCHEMA       = "schema"
    ARCHITECTURE = "architecture"

    ALL = [CRAWL, BROKEN_LINKS, MOBILE, VALIDATION, SCHEMA, ARCHITECTURE]


# ── Crawl graph ───────────────────────────────────────────────────────────────
@dataclass
class PageRecord:
    status: int
    discovered_at: str
    links: list[str] = field(default_factory=list)
    title: Optional[str] = None
    description: Optional[str] = None
    is_indexable: Optional[bool] = None
    canonical: Optional[str] = None
    last_modified: Optional[str] = None
    etag: Optional[str] = None
    content_hash: Optional[str] = None
    snippet: Optional[str] = None
    error: bool = False

    # In-memory only; lets the link checker validate fragments without a refetch
    html: Optional[str] = field(default=None, repr=False)


# normalized URL -> PageRecord; the first key is the crawl root
CrawlGraph = dict[str, PageRecord]


@dataclass
class RobotsData:
    url: str
    exists: bool
    status_code: int = 0
    raw_text: str = ""
    sitemap_urls: list[str] = field(default_factory=list)
    disallow_rules: list[dict] = field(default_factory=list)  # [{agent, path}]
    allow_rules: list[dict] = field(default_factory=list)
    crawl_delay: Optional[float] = None
    parse_errors: list[str] = field(default_factory=list)


@dataclass
class SitemapData:
    url: str
    exists: bool
    status_code: int = 0
    is_index: bool = False
    child_sitemaps: list[str] = field(default_factory=list)
    urls: list[str] = field(default_factory=list)
    parse_errors: list[str] = field(default_factory=list)


# ── Link checking ─────────────────────────────────────────────────────────────
@dataclass
class LinkCheckItem:
    url: str
    referer: str
    category: str = LinkCategory.UNKNOWN


@dataclass
class BrokenLink:
    url: str
    referer: str
    category: str
    status: Union[int, str]
    error: Optional[str] = None


@dataclass
class RedirectHop:
    url: str
    status: int
    location: Optional[str] = None


@dataclass
class RedirectChain:
    url: str
    referer: str
    category: str
    chain: list[RedirectHop] = field(default_factory=list)

    @property
    def final_url(self) -> str:
        last = self.chain[-1]
        return last.location or last.url


@dataclass
class OkLink:
    url: str
    referer: str
    category: str
    status: int


@dataclass
class AnchorCheck:
    url: str
    referer: str
    status: str                     # missing / ok / invalid-referer
    element: Optional[str] = None
    category: str = LinkCategory.ANCHOR


@dataclass
class MailtoCheck:
    url: str
    referer: str
    status: str                     # valid / invalid
    category: str = LinkCategory.MAILTO


LinkCheckResult = Union[BrokenLink, RedirectChain, OkLink, AnchorCheck, MailtoCheck]


@dataclass
class LinkCheckReport:
    broken: list[BrokenLink] = field(default_factory=list)
    redirects: list[RedirectChain] = field(default_factory=list)
    ok: list[OkLink] = field(default_factory=list)
    anchors: list[AnchorCheck] = field(default_factory=list)
    mailto: list[MailtoCheck] = field(default_factory=list)


# ── Structured data ───────────────────────────────────────────────────────────
@dataclass
class PageMatch:
    name_match: Optional[bool] = None
    description_match: Optional[bool] = None
    price_match: Optional[bool] = None


@dataclass
class SchemaDetail:
    type: str
    source: str                     # json-ld / microdata / rdfa
    properties: list[str] = field(default_factory=list)
    required_missing: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    duplicates: Optional[bool] = None
    conflicts: Optional[list[str]] = None
    matched_on_page: Optional[PageMatch] = None
    context: Any = None
    raw: Any = field(default=None, repr=False)


@dataclass
class SchemaSummary:
    total_blocks: int = 0
    json_ld_blocks: int = 0
    microdata_items: int = 0
    rdfa_items: int = 0
    duplicate_count: int = 0
    errors: int = 0
    warnings: int = 0


@dataclass
class SchemaCheckResult:
    has_schema: bool = False
    schemas: list[SchemaDetail] = field(default_factory=list)
    summary: SchemaSummary = field(default_factory=SchemaSummary)


# ── Mobile ────────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class StructuredDataSummary:
    raw: str
    types: tuple[str, ...] = ()


@dataclass(frozen=True)
class MobileScanResult:
    url: str
    mobile_score: int
    viewport_meta: bool
    responsive_images: bool
    css_media_queries: bool
    touch_target_issues: int
    font_size_issues: int
    friendly_url: bool
    server_responsive: bool
    is_mobile_friendly: bool
    fetched_with: tuple[str, ...] = ()
    meta_description: bool = False
    title: bool = False
    structured_data: tuple[StructuredDataSummary, ...] = ()
    touch_icons: bool = False
    appropriate_font_size: bool = False
    errors: Optional[tuple[str, ...]] = None


# ── Validation ────────────────────────────────────────────────────────────────
@dataclass
class OpenGraphTags:
    title: bool = False
    description: bool = False
    image: bool = False


@dataclass
class TwitterTags:
    card: bool = False
    title: bool = False
    description: bool = False
    image: bool = False


@dataclass
class ImageRef:
    src: str
    selector: str


@dataclass
class ValidationResult:
    robots_txt_exists: bool = False
    sitemap_exists: bool = False
    sitemap_urls: list[str] = field(default_factory=list)
    missing_in_sitemap: list[str] = field(default_factory=list)

    title_exists: bool = False
    meta_description_exists: bool = False
    canonical_exists: bool = False
    open_graph: OpenGraphTags = field(default_factory=OpenGraphTags)
    twitter: TwitterTags = field(default_factory=TwitterTags)

    images_missing_alt: list[ImageRef] = field(default_factory=list)
    images_without_lazy: list[ImageRef] = field(default_factory=list)

    has_json_ld: bool = False
    json_ld_count: int = 0

    https: bool = False
    security_headers: dict[str, Optional[str]] = field(default_factory=dict)


# ── Architecture ──────────────────────────────────────────────────────────────
@dataclass
class TopLinkedPage:
    url: str
    in_degree: int


@dataclass
class ArchitectureMetrics:
    total_pages: int = 0
    levels: int = 0
    max_depth: int = 0
    avg_branching_factor: float = 0.0
    orphan_pages: int = 0
    isolated_pages: int = 0
    top_linked_pages: list[TopLinkedPage] = field(default_factory=list)


@dataclass
class ArchitectureDetails:
    in_degree: dict[str, int] = field(default_factory=dict)
    out_degree: dict[str, int] = field(default_factory=dict)


@dataclass
class ArchitectureAnalysis:
    summary: str
    metrics: ArchitectureMetrics = field(default_factory=ArchitectureMetrics)
    details: ArchitectureDetails = field(default_factory=ArchitectureDetails)


# ── Orchestration ─────────────────────────────────────────────────────────────
@dataclass
class StageResult:
    """Outcome of one pipeline stage; a stage that never ran stays skipped."""
    status: str = AnalysisStatus.SKIPPED
    error: Optional[str] = None
    elapsed_ms: Optional[float] = None

    @property
    def ok(self) -> bool:
        return self.status == AnalysisStatus.COMPLETE


@dataclass
class AnalysisResults:
    crawl: Optional[CrawlGraph] = None
    broken_links: Optional[LinkCheckReport] = None
    mobile: Optional[MobileScanResult] = None
    validation: Optional[ValidationResult] = None
    schema: Optional[SchemaCheckResult] = None
    architecture: Optional[dict[str, list[str]]] = None
    architecture_analysis: Optional[ArchitectureAnalysis] = None


@dataclass
class AnalysisReport:
    results: AnalysisResults
    stages: dict[str, StageResult] = field(default_factory=dict)

    @property
    def status(self) -> dict[str, str]:
        return {name: self.stages.get(name, StageResult()).status for name in Stage.ALL}

    @property
    def degraded_stages(self) -> list[str]:
        return [name for name in Stage.ALL if not self.stages.get(name, StageResult()).ok]
