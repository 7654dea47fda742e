import pytest

from seoaudit.crawler.urls import is_same_origin, normalize_url, origin_of, strip_fragment


@pytest.mark.parametrize("raw, expected", [
    ("https://Example.COM/about/", "https://example.com/about"),
    ("https://example.com/", "https://example.com"),
    ("https://example.com", "https://example.com"),
    ("https://example.com/a#section", "https://example.com/a"),
    ("http://example.com:80/x", "http://example.com/x"),
    ("https://example.com:8443/x/", "https://example.com:8443/x"),
    ("https://example.com/search?q=1", "https://example.com/search?q=1"),
])
def test_normalize_url(raw, expected):
    assert normalize_url(raw) == expected


@pytest.mark.parametrize("raw", [
    "https://example.com/a/b/",
    "HTTPS://EXAMPLE.com:443/#top",
    "https://example.com/?q=/",
    "/relative/path/",
    "mailto:someone@example.com",
    "https://example.com//",
])
def test_normalize_is_idempotent(raw):
    once = normalize_url(raw)
    assert normalize_url(once) == once
    assert "#" not in once
    assert not once.endswith("/")


def test_strip_fragment():
    assert strip_fragment("https://example.com/a#b") == "https://example.com/a"
    assert strip_fragment("https://example.com/a") == "https://example.com/a"


def test_origin_of():
    assert origin_of("https://Example.com:443/path") == "https://example.com"
    assert origin_of("http://example.com:8080/") == "http://example.com:8080"
    assert origin_of("ftp://example.com/") == ""
    assert origin_of("not a url") == ""


def test_is_same_origin():
    base = origin_of("https://example.com")
    assert is_same_origin("https://example.com/about", base)
    assert not is_same_origin("http://example.com/about", base)
    assert not is_same_origin("https://blog.example.com/", base)
    assert not is_same_origin("mailto:a@example.com", base)
