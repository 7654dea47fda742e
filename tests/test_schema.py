import json

import pytest
import requests

from fakes import FakeResponse, FakeSession, html_response
from seoaudit.analyzers.schema import (
    SchemaChecker,
    canonical_json,
    flatten_entities,
    is_valid_date,
    is_valid_url,
    mark_duplicates,
    validate_entity,
)
from seoaudit.models import SchemaDetail

URL = "https://example.com/"


def ld(obj):
    body = obj if isinstance(obj, str) else json.dumps(obj)
    return f'<script type="application/ld+json">{body}</script>'


def analyze(body, head=""):
    return SchemaChecker(session=FakeSession()).analyze_html(
        f"<html><head>{head}</head><body>{body}</body></html>"
    )


def test_product_missing_required_fields():
    result = analyze(ld({"@type": "Product", "name": "Shoe"}))

    detail = result.schemas[0]
    assert detail.type == "Product"
    assert detail.source == "json-ld"
    assert detail.required_missing == ["image", "description", "sku", "offers"]
    assert len(detail.warnings) == 4
    assert detail.warnings[0] == "Missing required field: image"
    assert result.summary.warnings == 4
    assert result.has_schema is True


def test_invalid_json_block_does_not_abort():
    result = analyze(ld("{broken") + ld({"@type": "WebSite", "name": "Site", "url": "https://example.com"}))

    assert [s.type for s in result.schemas] == ["InvalidJSON", "WebSite"]
    assert result.schemas[0].errors == ["Invalid JSON-LD block: JSON parse failed"]
    assert result.summary.json_ld_blocks == 2
    assert result.summary.errors == 1


def test_arrays_and_graph_are_flattened():
    graph = {"@context": "https://schema.org", "@graph": [
        {"@type": "Organization", "name": "Org", "url": "https://example.com"},
        {"@type": "WebSite", "name": "Site", "url": "https://example.com"},
    ]}
    result = analyze(ld(graph) + ld([{"@type": "FAQPage", "mainEntity": []}, "not an entity"]))
    assert [s.type for s in result.schemas] == ["Organization", "WebSite", "FAQPage"]
    assert flatten_entities(42) == []


def test_url_and_date_checks():
    detail = validate_entity({
        "@type": "Article",
        "headline": "Post",
        "author": "Me",
        "datePublished": "yesterday-ish",
        "url": "not a url",
        "sameAs": ["https://twitter.com/me", "twitter"],
        "image": {"@type": "ImageObject", "url": "https://example.com/a.png"},
    })
    assert "Invalid date format for datePublished: yesterday-ish" in detail.errors
    assert "Invalid URL in url: not a url" in detail.warnings
    assert "Invalid URL in sameAs: twitter" in detail.warnings
    assert not any("image" in w for w in detail.warnings)


@pytest.mark.parametrize("value, valid", [
    ("2024-03-01", True),
    ("2024-03-01T10:00:00Z", True),
    ("2024-03-01T10:00:00+02:00", True),
    ("Fri, 01 Mar 2024 10:00:00 GMT", True),
    ("2024-01-15T10:00:00+0000", True),
    ("March 5, 2024", True),
    ("Mar 5, 2024", True),
    ("2024/03/05", True),
    ("03/05/2024", True),
    ("Tue Mar 05 2024", True),
    ("2024", True),
    ("2024-13-45", False),
    ("March first", False),
    ("", False),
])
def test_is_valid_date(value, valid):
    assert is_valid_date(value) is valid


@pytest.mark.parametrize("value, valid", [
    ("https://example.com/a", True),
    ("mailto:someone@example.com", True),
    ("/relative.png", False),
    ("", False),
    (None, False),
])
def test_is_valid_url(value, valid):
    assert is_valid_url(value) is valid


def test_page_cross_checks():
    head = '<title>Running Shoe</title><meta name="description" content="Fast shoe">'
    product = {
        "@type": "Product", "name": "Running Shoe", "description": "Slow shoe",
        "offers": {"@type": "Offer", "price": "49.99", "priceCurrency": "USD"},
    }
    result = analyze(ld(product) + "<p>Now only $49.99!</p>", head=head)
    match = result.schemas[0].matched_on_page
    assert match.name_match is True
    assert match.description_match is False
    assert match.price_match is True


def test_price_mismatch():
    product = {"@type": "Product", "name": "Shoe", "offers": {"price": 20}}
    result = analyze(ld(product) + "<p>$35.00</p>")
    assert result.schemas[0].matched_on_page.price_match is False


def test_microdata_and_rdfa():
    body = (
        '<div itemscope itemtype="https://schema.org/Product">'
        '<span itemprop="name">Shoe</span><span itemprop="sku" content="S-1"></span></div>'
        '<div vocab="https://schema.org/" typeof="Organization">'
        '<span property="name">Org</span></div>'
    )
    result = analyze(body)
    micro, rdfa = result.schemas
    assert micro.source == "microdata"
    assert micro.type == "Product"
    assert micro.properties == ["name", "sku"]
    assert micro.required_missing == ["image", "description", "offers"]
    assert rdfa.source == "rdfa"
    assert rdfa.type == "Organization"
    assert rdfa.required_missing == ["url"]
    assert result.summary.microdata_items == 1
    assert result.summary.rdfa_items == 1
    assert result.summary.total_blocks == 2


def test_duplicates_with_conflicting_values():
    a = {"@type": "Organization", "@id": "https://example.com/#org", "name": "Acme", "url": "https://example.com"}
    b = {"url": "https://example.com", "name": "Acme Inc", "@id": "https://example.com/#org", "@type": "Organization"}
    result = analyze(ld(a) + ld(b))

    first, second = result.schemas
    assert first.duplicates is True and second.duplicates is True
    assert first.conflicts == ["name"] and second.conflicts == ["name"]
    assert "Conflicting values for: name" in first.errors
    assert result.summary.duplicate_count == 1


def test_identical_blocks_match_regardless_of_key_order():
    a = {"@type": "WebSite", "name": "Site", "url": "https://example.com"}
    b = {"url": "https://example.com", "@type": "WebSite", "name": "Site"}
    result = analyze(ld(a) + ld(b) + ld({"@type": "WebSite", "name": "Other", "url": "https://o.com"}))

    assert [s.duplicates for s in result.schemas] == [True, True, None]
    assert result.schemas[0].conflicts is None
    assert result.summary.duplicate_count == 1


def test_mark_duplicates_counts_group_sizes():
    details = [SchemaDetail(type="Thing", source="json-ld", raw={"id": 1}) for _ in range(3)]
    assert mark_duplicates(details) == 2


def test_canonical_json_sorts_keys():
    assert canonical_json({"b": 1, "a": [2, {"d": 1, "c": 2}]}) == canonical_json({"a": [2, {"c": 2, "d": 1}], "b": 1})


def test_check_schema_fetches_page():
    session = FakeSession()
    session.add(URL, html_response(ld({"@type": "WebSite", "name": "S", "url": "https://example.com"})))
    result = SchemaChecker(session=session).check_schema(URL)
    assert result.has_schema is True
    assert result.schemas[0].required_missing == []


def test_page_without_structured_data():
    session = FakeSession()
    session.add(URL, html_response("<html><body>plain</body></html>"))
    result = SchemaChecker(session=session).check_schema(URL)
    assert result.has_schema is False
    assert result.schemas == []
    assert result.summary.total_blocks == 0


@pytest.mark.parametrize("response", [
    requests.exceptions.ReadTimeout("timed out"),
    FakeResponse(500, "oops"),
])
def test_fetch_failure_yields_single_fetch_error(response):
    session = FakeSession()
    session.add(URL, response)
    result = SchemaChecker(session=session).check_schema(URL)

    assert result.has_schema is False
    assert len(result.schemas) == 1
    assert result.schemas[0].type == "FetchError"
    assert result.summary.errors == 1
