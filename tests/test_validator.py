import requests

from fakes import FakeResponse, FakeSession, html_response, redirect
from seoaudit.analyzers.validator import RobotsSitemapValidator, inspect_homepage
from seoaudit.crawler.parser import make_soup
from seoaudit.models import ValidationResult

BASE = "https://example.com"

SITEMAP = """<?xml version="1.0" encoding="UTF-8"?>
<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">
  <url><loc>https://example.com/</loc></url>
  <url><loc>https://example.com/about</loc></url>
</urlset>"""

HOMEPAGE = """
<html>
  <head>
    <title>Example</title>
    <meta name="description" content="An example">
    <link rel="canonical" href="https://example.com/">
    <meta property="og:title" content="Example">
    <meta property="og:image" content="https://example.com/og.png">
    <meta name="twitter:card" content="summary">
    <script type="application/ld+json">{"@type": "WebSite"}</script>
  </head>
  <body>
    <img src="/a.png" alt="A" loading="lazy">
    <img data-src="/b.png">
    <img src="/c.png" alt="  ">
  </body>
</html>
"""

SECURE_HEADERS = {
    "Strict-Transport-Security": "max-age=63072000",
    "X-Frame-Options": "DENY",
}


def site():
    session = FakeSession()
    session.add(BASE + "/robots.txt", FakeResponse(200, "User-agent: *\nSitemap: https://example.com/sm.xml\n"))
    session.add(BASE + "/sm.xml", FakeResponse(200, SITEMAP, {"Content-Type": "application/xml"}))
    session.add(BASE + "/", FakeResponse(200, "", SECURE_HEADERS), method="HEAD")
    session.add(BASE + "/", html_response(HOMEPAGE), method="GET")
    return session


def test_full_validation():
    session = site()
    result = RobotsSitemapValidator(BASE, session=session).validate()

    assert result.robots_txt_exists is True
    assert result.sitemap_exists is True
    assert result.sitemap_urls == ["https://example.com/", "https://example.com/about"]
    assert result.missing_in_sitemap == []
    assert result.https is True
    assert result.security_headers["strict-transport-security"] == "max-age=63072000"
    assert result.security_headers["x-frame-options"] == "DENY"
    assert result.security_headers["content-security-policy"] is None
    assert list(result.security_headers) == [
        "strict-transport-security",
        "x-content-type-options",
        "x-frame-options",
        "content-security-policy",
        "referrer-policy",
        "permissions-policy",
    ]
    assert result.title_exists and result.meta_description_exists and result.canonical_exists
    assert result.json_ld_count == 1 and result.has_json_ld is True


def test_sitemap_falls_back_to_default_location():
    session = FakeSession()
    session.add(BASE + "/sitemap.xml", FakeResponse(200, SITEMAP))
    result = RobotsSitemapValidator(BASE, session=session).validate()

    assert result.robots_txt_exists is False
    assert result.sitemap_exists is True
    assert len(result.sitemap_urls) == 2


def test_https_comes_from_final_redirect_target():
    session = FakeSession()
    session.add("http://example.com/", redirect("https://example.com/"), method="HEAD")
    session.add("https://example.com/", FakeResponse(200), method="HEAD")
    result = RobotsSitemapValidator("http://example.com", session=session).validate()
    assert result.https is True


def test_network_failures_degrade_fields():
    session = FakeSession()
    session.add(BASE + "/robots.txt", requests.exceptions.ConnectionError("down"))
    session.add(BASE + "/sitemap.xml", requests.exceptions.ConnectionError("down"))
    session.add(BASE + "/", requests.exceptions.ReadTimeout("slow"))
    result = RobotsSitemapValidator(BASE, session=session).validate()

    assert result.robots_txt_exists is False
    assert result.sitemap_exists is False
    assert result.sitemap_urls == []
    assert result.https is False
    assert all(v is None for v in result.security_headers.values())
    assert result.title_exists is False
    assert result.images_missing_alt == []


def test_non_200_homepage_is_not_inspected():
    session = FakeSession()
    session.add(BASE + "/", FakeResponse(503, "<html><head><title>Down</title></head></html>"), method="GET")
    result = RobotsSitemapValidator(BASE, session=session).validate()
    assert result.title_exists is False


def test_inspect_homepage_tags_and_images():
    result = inspect_homepage(make_soup(HOMEPAGE), ValidationResult())

    assert result.open_graph.title is True
    assert result.open_graph.description is False
    assert result.open_graph.image is True
    assert result.twitter.card is True
    assert result.twitter.title is False

    assert [img.src for img in result.images_missing_alt] == ["/b.png", "/c.png"]
    assert [img.src for img in result.images_without_lazy] == ["/b.png", "/c.png"]
    assert result.images_missing_alt[0].selector.startswith("<img")


def test_long_image_selector_is_truncated():
    html = '<img src="/x.png" data-note="' + "n" * 500 + '">'
    result = inspect_homepage(make_soup(html), ValidationResult())
    assert len(result.images_missing_alt[0].selector) == 200
