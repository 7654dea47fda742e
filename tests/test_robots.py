import requests

from fakes import FakeResponse, FakeSession
from seoaudit.crawler.robots import build_robots_url, fetch_and_parse_robots, is_url_allowed, parse_robots
from seoaudit.models import RobotsData

ROBOTS = """
# comment line
User-agent: *
Disallow: /private
Allow: /private/press
Disallow: /*.pdf$
Crawl-delay: 2

User-agent: SEO-Analyzer
Disallow: /beta

Sitemap: https://example.com/sitemap.xml
Sitemap: https://example.com/news.xml
"""


def parsed(text=ROBOTS):
    return parse_robots(RobotsData(url="https://example.com/robots.txt", exists=True, raw_text=text))


def test_build_robots_url():
    assert build_robots_url("https://example.com/some/page?q=1") == "https://example.com/robots.txt"


def test_parse_collects_rules_and_sitemaps():
    data = parsed()
    assert {"agent": "*", "path": "/private"} in data.disallow_rules
    assert {"agent": "SEO-Analyzer", "path": "/beta"} in data.disallow_rules
    assert data.allow_rules == [{"agent": "*", "path": "/private/press"}]
    assert data.crawl_delay == 2.0
    assert data.sitemap_urls == ["https://example.com/sitemap.xml", "https://example.com/news.xml"]


def test_longest_match_wins_and_allow_wins_ties():
    data = parsed()
    assert not is_url_allowed("https://example.com/private/x", data)
    assert is_url_allowed("https://example.com/private/press/2024", data)
    assert is_url_allowed("https://example.com/public", data)


def test_wildcard_and_anchor_patterns():
    data = parsed()
    assert not is_url_allowed("https://example.com/docs/file.pdf", data)
    assert is_url_allowed("https://example.com/docs/file.pdf?download=1", data)


def test_agent_specific_group_replaces_wildcard():
    data = parsed()
    agent = "SEO-Analyzer/1.0"
    assert not is_url_allowed("https://example.com/beta/feature", data, agent)
    # the specific group has no /private rule
    assert is_url_allowed("https://example.com/private/x", data, agent)


def test_missing_robots_allows_everything():
    assert is_url_allowed("https://example.com/private", RobotsData(url="", exists=False))


def test_invalid_lines_are_reported():
    data = parsed("User-agent: *\nthis line has no colon\nCrawl-delay: soon\n")
    assert len(data.parse_errors) == 2


def test_fetch_and_parse_robots():
    session = FakeSession()
    session.add("https://example.com/robots.txt", FakeResponse(200, ROBOTS))
    data = fetch_and_parse_robots("https://example.com", session)
    assert data.exists is True
    assert data.status_code == 200
    assert data.sitemap_urls


def test_fetch_robots_404_and_network_error():
    data = fetch_and_parse_robots("https://example.com", FakeSession())
    assert data.exists is False
    assert data.status_code == 404
    assert data.parse_errors == []

    session = FakeSession()
    session.add("https://example.com/robots.txt", requests.exceptions.ConnectionError("down"))
    data = fetch_and_parse_robots("https://example.com", session)
    assert data.exists is False
    assert data.parse_errors
