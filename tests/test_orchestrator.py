import concurrent.futures
import json
from unittest.mock import MagicMock, Mock

import pytest
import requests

from seoaudit.analyzers.orchestrator import SEOAnalysisOrchestrator, run_full_analysis
from seoaudit.exceptions import CrawlSetupError
from seoaudit.models import (
    AnalysisStatus,
    LinkCheckReport,
    MobileScanResult,
    PageRecord,
    SchemaCheckResult,
    Stage,
    ValidationResult,
)

A, B, C = "https://example.com", "https://example.com/b", "https://example.com/c"


def graph():
    return {
        A: PageRecord(status=200, discovered_at="now", links=[B, C]),
        B: PageRecord(status=200, discovered_at="now", links=[C]),
        C: PageRecord(status=200, discovered_at="now"),
    }


def mobile_result():
    return MobileScanResult(
        url=A, mobile_score=80, viewport_meta=True, responsive_images=False,
        css_media_queries=False, touch_target_issues=0, font_size_issues=0,
        friendly_url=True, server_responsive=False, is_mobile_friendly=False,
    )


def orchestrator(crawl_graph=None, **overrides):
    crawl_fn = Mock(return_value=graph() if crawl_graph is None else crawl_graph)
    link_checker = MagicMock()
    link_checker.check_links.return_value = LinkCheckReport()
    mobile_scanner = MagicMock()
    mobile_scanner.scan.return_value = mobile_result()
    validator = MagicMock()
    validator.validate.return_value = ValidationResult(sitemap_exists=True, sitemap_urls=[A + "/", B])
    schema_checker = MagicMock()
    schema_checker.check_schema.return_value = SchemaCheckResult()
    components = dict(
        crawl_fn=crawl_fn,
        link_checker=link_checker,
        mobile_scanner=mobile_scanner,
        validator=validator,
        schema_checker=schema_checker,
    )
    components.update(overrides)
    return SEOAnalysisOrchestrator(A, **components)


def test_all_stages_complete():
    report = orchestrator().run_full_analysis()

    assert report.status == {stage: AnalysisStatus.COMPLETE for stage in Stage.ALL}
    assert report.degraded_stages == []
    assert report.results.mobile.mobile_score == 80
    assert report.results.architecture == {"0": [A], "1": [B, C]}
    assert report.results.architecture_analysis.details.in_degree == {A: 0, B: 1, C: 2}


def test_link_check_failure_is_isolated():
    link_checker = MagicMock()
    link_checker.check_links.side_effect = RuntimeError("link checker exploded")
    report = orchestrator(link_checker=link_checker).run_full_analysis()

    assert report.status[Stage.BROKEN_LINKS] == AnalysisStatus.FAILED
    assert report.stages[Stage.BROKEN_LINKS].error == "link checker exploded"
    assert report.degraded_stages == [Stage.BROKEN_LINKS]
    assert report.results.broken_links == LinkCheckReport()
    for stage in (Stage.MOBILE, Stage.VALIDATION, Stage.SCHEMA, Stage.ARCHITECTURE):
        assert report.status[stage] == AnalysisStatus.COMPLETE


@pytest.mark.parametrize("exc", [
    requests.exceptions.ReadTimeout("read timed out"),
    concurrent.futures.TimeoutError(),
])
def test_timeouts_are_classified_by_type(exc):
    mobile_scanner = MagicMock()
    mobile_scanner.scan.side_effect = exc
    report = orchestrator(mobile_scanner=mobile_scanner).run_full_analysis()

    assert report.status[Stage.MOBILE] == AnalysisStatus.TIMED_OUT
    assert report.results.mobile.mobile_score == 0


def test_failures_leave_safe_defaults():
    validator = MagicMock()
    validator.validate.side_effect = ValueError("bad xml")
    schema_checker = MagicMock()
    schema_checker.check_schema.side_effect = KeyError("type")
    report = orchestrator(validator=validator, schema_checker=schema_checker).run_full_analysis()

    assert report.status[Stage.VALIDATION] == AnalysisStatus.FAILED
    assert report.status[Stage.SCHEMA] == AnalysisStatus.FAILED
    assert report.results.validation.security_headers["x-frame-options"] is None
    assert report.results.schema.has_schema is False


def test_crawl_failure_is_fatal():
    crawl_fn = Mock(side_effect=CrawlSetupError(A, "bad"))
    with pytest.raises(CrawlSetupError):
        orchestrator(crawl_fn=crawl_fn).run_full_analysis()

    crawl_fn = Mock(side_effect=OSError("no route"))
    with pytest.raises(CrawlSetupError):
        orchestrator(crawl_fn=crawl_fn).run_full_analysis()


def test_empty_crawl_skips_link_check():
    orch = orchestrator(crawl_graph={})
    report = orch.run_full_analysis()

    assert report.status[Stage.CRAWL] == AnalysisStatus.COMPLETE
    assert report.status[Stage.BROKEN_LINKS] == AnalysisStatus.SKIPPED
    assert report.results.broken_links == LinkCheckReport()
    orch.link_checker.check_links.assert_not_called()
    assert report.results.architecture_analysis.summary == "No architecture data available"


def test_missing_in_sitemap_is_filled_from_crawl():
    crawl_graph = graph()
    crawl_graph[C].is_indexable = False
    crawl_graph["https://example.com/gone"] = PageRecord(status=404, discovered_at="now", error=True)
    crawl_graph["https://example.com/new"] = PageRecord(status=200, discovered_at="now")
    report = orchestrator(crawl_graph=crawl_graph).run_full_analysis()

    assert report.results.validation.missing_in_sitemap == ["https://example.com/new"]


def test_sitemap_entries_are_compared_normalized():
    validator = MagicMock()
    validator.validate.return_value = ValidationResult(
        sitemap_exists=True,
        sitemap_urls=["HTTPS://Example.com:443/", "https://example.com/b#main", "https://EXAMPLE.com/c/"],
    )
    report = orchestrator(validator=validator).run_full_analysis()

    assert report.results.validation.missing_in_sitemap == []


def test_architecture_failure_is_isolated(monkeypatch):
    def boom(_graph):
        raise RuntimeError("visualizer broke")

    monkeypatch.setattr("seoaudit.analyzers.orchestrator.visualize", boom)
    report = orchestrator().run_full_analysis()

    assert report.status[Stage.ARCHITECTURE] == AnalysisStatus.FAILED
    assert report.results.architecture_analysis.summary == "No architecture data available"
    assert report.status[Stage.MOBILE] == AnalysisStatus.COMPLETE


def test_architecture_analysis_failure_is_isolated(monkeypatch):
    def boom(_graph, _groups):
        raise RuntimeError("analysis broke")

    monkeypatch.setattr("seoaudit.analyzers.orchestrator.analyze_architecture", boom)
    report = orchestrator().run_full_analysis()

    assert report.status[Stage.ARCHITECTURE] == AnalysisStatus.FAILED
    assert report.stages[Stage.ARCHITECTURE].error == "analysis broke"
    assert report.results.architecture == {}
    assert report.results.architecture_analysis.summary == "No architecture data available"
    assert report.status[Stage.SCHEMA] == AnalysisStatus.COMPLETE


def test_stage_timings_are_recorded():
    report = orchestrator().run_full_analysis()
    assert all(report.stages[stage].elapsed_ms is not None for stage in Stage.ALL)


def test_run_full_analysis_returns_wire_shape(monkeypatch):
    monkeypatch.setattr(
        "seoaudit.analyzers.orchestrator.SEOAnalysisOrchestrator",
        lambda base_url, **options: orchestrator(),
    )
    result = run_full_analysis(A)

    assert set(result) == {"results", "status"}
    assert set(result["results"]) == {
        "crawl", "brokenLinks", "mobile", "validation", "schema", "architecture", "architectureAnalysis",
    }
    assert set(result["status"]) == {
        "crawl", "brokenLinks", "mobile", "validation", "schema", "architecture",
    }
    assert result["results"]["mobile"]["mobileScore"] == 80
    json.dumps(result)
