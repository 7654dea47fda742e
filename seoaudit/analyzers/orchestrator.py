"""
Runs the full audit pipeline: crawl, then the four independent analyzers in
parallel, then site architecture. Only the crawl can fail the whole run;
every other stage degrades into its own status entry.
"""
from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, Optional

import requests

from seoaudit.analyzers.architecture import analyze_architecture, empty_analysis, visualize
from seoaudit.analyzers.links import LinkChecker
from seoaudit.analyzers.mobile import MobileScanner, degraded_result
from seoaudit.analyzers.schema import SchemaChecker
from seoaudit.analyzers.validator import RobotsSitemapValidator
from seoaudit.config import (
    DEFAULT_CRAWL_CONCURRENCY,
    DEFAULT_MAX_DEPTH,
    DEFAULT_MAX_PAGES,
    EXPECTED_SECURITY_HEADERS,
)
from seoaudit.crawler.crawler import crawl
from seoaudit.crawler.urls import normalize_url
from seoaudit.exceptions import CrawlSetupError, classify_failure
from seoaudit.models import (
    AnalysisReport,
    AnalysisResults,
    AnalysisStatus,
    LinkCheckReport,
    SchemaCheckResult,
    Stage,
    StageResult,
    ValidationResult,
)
from seoaudit.reporting.exporter import report_to_dict
from seoaudit.scoring.scorer import score_label

logger = logging.getLogger(__name__)


class SEOAnalysisOrchestrator:
    """One audit run for one site. Analyzer instances can be injected."""

    def __init__(
        self,
        base_url: str,
        *,
        max_pages: int = DEFAULT_MAX_PAGES,
        max_depth: int = DEFAULT_MAX_DEPTH,
        crawl_concurrency: int = DEFAULT_CRAWL_CONCURRENCY,
        session: Optional[requests.Session] = None,
        crawl_fn: Optional[Callable] = None,
        link_checker: Optional[LinkChecker] = None,
        mobile_scanner: Optional[MobileScanner] = None,
        validator: Optional[RobotsSitemapValidator] = None,
        schema_checker: Optional[SchemaChecker] = None,
    ):
        self.base_url = base_url
        self.max_pages = max_pages
        self.max_depth = max_depth
        self.crawl_concurrency = crawl_concurrency
        self.session = session
        self.crawl_fn = crawl_fn or crawl
        self.link_checker = link_checker or LinkChecker(base_url, session=session)
        self.mobile_scanner = mobile_scanner or MobileScanner(session=session)
        self.validator = validator or RobotsSitemapValidator(base_url, session=session)
        self.schema_checker = schema_checker or SchemaChecker(session=session)

        self.results = AnalysisResults()
        self.stages: dict[str, StageResult] = {name: StageResult() for name in Stage.ALL}

    def run_full_analysis(self) -> AnalysisReport:
        """
        Crawl → {links, mobile, validation, schema} → architecture.
        Raises CrawlSetupError if the crawl fails; never raises otherwise.
        """
        started = time.perf_counter()
        logger.info("Starting analysis of %s", self.base_url)

        self._run_crawl()

        analyzers = {
            Stage.BROKEN_LINKS: self._run_broken_links,
            Stage.MOBILE:       self._run_mobile,
            Stage.VALIDATION:   self._run_validation,
            Stage.SCHEMA:       self._run_schema,
        }
        with ThreadPoolExecutor(max_workers=len(analyzers), thread_name_prefix="analyze") as executor:
            futures = {executor.submit(fn): stage for stage, fn in analyzers.items()}
            wait(futures)
        for future, stage in futures.items():
            exc = future.exception()
            if exc is not None:
                self._on_stage_crash(stage, exc)

        self._fill_missing_in_sitemap()
        self._run_architecture()

        report = AnalysisReport(results=self.results, stages=self.stages)
        self._log_summary(report, time.perf_counter() - started)
        return report

    # ── Stages ────────────────────────────────────────────────────────────────

    def _run_crawl(self) -> None:
        with _timed(self.stages[Stage.CRAWL]):
            try:
                self.results.crawl = self.crawl_fn(
                    self.base_url,
                    self.max_pages,
                    self.max_depth,
                    concurrency=self.crawl_concurrency,
                    session=self.session,
                )
            except CrawlSetupError as exc:
                self._mark(Stage.CRAWL, AnalysisStatus.FAILED, exc)
                raise
            except Exception as exc:
                self._mark(Stage.CRAWL, AnalysisStatus.FAILED, exc)
                raise CrawlSetupError(self.base_url, str(exc)) from exc
        self._mark(Stage.CRAWL, AnalysisStatus.COMPLETE)

    def _run_broken_links(self) -> None:
        stage = self.stages[Stage.BROKEN_LINKS]
        if not self.results.crawl:
            self.results.broken_links = LinkCheckReport()
            logger.info("Link check skipped: crawl produced no pages")
            return
        with _timed(stage):
            try:
                self.results.broken_links = self.link_checker.check_links(self.results.crawl)
            except Exception as exc:
                self.results.broken_links = LinkCheckReport()
                self._mark(Stage.BROKEN_LINKS, classify_failure(exc), exc)
                return
        self._mark(Stage.BROKEN_LINKS, AnalysisStatus.COMPLETE)

    def _run_mobile(self) -> None:
        with _timed(self.stages[Stage.MOBILE]):
            try:
                self.results.mobile = self.mobile_scanner.scan(self.base_url)
            except Exception as exc:
                self.results.mobile = degraded_result(self.base_url, [str(exc)])
                self._mark(Stage.MOBILE, classify_failure(exc), exc)
                return
        self._mark(Stage.MOBILE, AnalysisStatus.COMPLETE)

    def _run_validation(self) -> None:
        with _timed(self.stages[Stage.VALIDATION]):
            try:
                self.results.validation = self.validator.validate()
            except Exception as exc:
                self.results.validation = _empty_validation()
                self._mark(Stage.VALIDATION, classify_failure(exc), exc)
                return
        self._mark(Stage.VALIDATION, AnalysisStatus.COMPLETE)

    def _run_schema(self) -> None:
        with _timed(self.stages[Stage.SCHEMA]):
            try:
                self.results.schema = self.schema_checker.check_schema(self.base_url)
            except Exception as exc:
                self.results.schema = SchemaCheckResult()
                self._mark(Stage.SCHEMA, classify_failure(exc), exc)
                return
        self._mark(Stage.SCHEMA, AnalysisStatus.COMPLETE)

    def _run_architecture(self) -> None:
        with _timed(self.stages[Stage.ARCHITECTURE]):
            try:
                self.results.architecture = visualize(self.results.crawl or {})
                self.results.architecture_analysis = analyze_architecture(
                    self.results.crawl, self.results.architecture,
                )
            except Exception as exc:
                self.results.architecture = {}
                self.results.architecture_analysis = empty_analysis()
                self._mark(Stage.ARCHITECTURE, AnalysisStatus.FAILED, exc)
                return
        self._mark(Stage.ARCHITECTURE, AnalysisStatus.COMPLETE)

    # ── Helpers ───────────────────────────────────────────────────────────────

    def _on_stage_crash(self, stage: str, exc: BaseException) -> None:
        """A stage method raised past its own handler; keep any more specific status."""
        logger.error("Stage %s crashed: %s", stage, exc, exc_info=exc)
        current = self.stages[stage]
        if current.status not in (AnalysisStatus.TIMED_OUT, AnalysisStatus.FAILED):
            self._mark(stage, AnalysisStatus.FAILED, exc)

        if stage == Stage.BROKEN_LINKS and self.results.broken_links is None:
            self.results.broken_links = LinkCheckReport()
        elif stage == Stage.MOBILE and self.results.mobile is None:
            self.results.mobile = degraded_result(self.base_url, [str(exc)])
        elif stage == Stage.VALIDATION and self.results.validation is None:
            self.results.validation = _empty_validation()
        elif stage == Stage.SCHEMA and self.results.schema is None:
            self.results.schema = SchemaCheckResult()

    def _mark(self, stage: str, status: str, exc: Optional[BaseException] = None) -> None:
        entry = self.stages[stage]
        entry.status = status
        if exc is not None:
            entry.error = str(exc)
            logger.warning("Stage %s %s: %s", stage, status, exc)

    def _fill_missing_in_sitemap(self) -> None:
        """Crawled, indexable, non-error pages the sitemap does not list."""
        validation = self.results.validation
        if (
            not self.results.crawl
            or validation is None
            or not validation.sitemap_exists
            or self.stages[Stage.VALIDATION].status != AnalysisStatus.COMPLETE
        ):
            return
        listed = {normalize_url(url) for url in validation.sitemap_urls}
        validation.missing_in_sitemap = [
            url for url, page in self.results.crawl.items()
            if not page.error
            and 200 <= page.status < 300
            and page.is_indexable is not False
            and normalize_url(url) not in listed
        ]

    def _log_summary(self, report: AnalysisReport, elapsed: float) -> None:
        results = report.results
        links = results.broken_links or LinkCheckReport()
        mobile = (
            f"{results.mobile.mobile_score} ({score_label(results.mobile.mobile_score)})"
            if results.mobile else "n/a"
        )
        logger.info(
            "Analysis of %s done in %.1fs: %d pages, %d broken, %d redirects, "
            "mobile %s, %d schema entities, %d architecture levels, degraded=%s",
            self.base_url, elapsed,
            len(results.crawl or {}), len(links.broken), len(links.redirects),
            mobile,
            len(results.schema.schemas) if results.schema else 0,
            len(results.architecture or {}),
            report.degraded_stages or "none",
        )


class _timed:
    """Context manager that records a stage's wall time on its StageResult."""

    def __init__(self, stage: StageResult):
        self.stage = stage

    def __enter__(self):
        self.started = time.perf_counter()
        return self.stage

    def __exit__(self, *exc_info):
        self.stage.elapsed_ms = (time.perf_counter() - self.started) * 1000
        return False


def _empty_validation() -> ValidationResult:
    return ValidationResult(security_headers={name: None for name in EXPECTED_SECURITY_HEADERS})


def run_full_analysis(base_url: str, **options) -> dict:
    """Run a complete audit and return the JSON-ready {"results", "status"} mapping."""
    report = SEOAnalysisOrchestrator(base_url, **options).run_full_analysis()
    return report_to_dict(report)
