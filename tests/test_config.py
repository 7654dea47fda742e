from seoaudit.config import _get_float_env, _get_int_env


def test_int_env_override(monkeypatch):
    monkeypatch.setenv("SEOAUDIT_TEST_INT", "12")
    assert _get_int_env("SEOAUDIT_TEST_INT", 3) == 12


def test_int_env_missing_or_blank(monkeypatch):
    monkeypatch.delenv("SEOAUDIT_TEST_INT", raising=False)
    assert _get_int_env("SEOAUDIT_TEST_INT", 3) == 3
    monkeypatch.setenv("SEOAUDIT_TEST_INT", "")
    assert _get_int_env("SEOAUDIT_TEST_INT", 3) == 3


def test_invalid_values_fall_back(monkeypatch, caplog):
    monkeypatch.setenv("SEOAUDIT_TEST_INT", "lots")
    monkeypatch.setenv("SEOAUDIT_TEST_FLOAT", "quick")
    assert _get_int_env("SEOAUDIT_TEST_INT", 3) == 3
    assert _get_float_env("SEOAUDIT_TEST_FLOAT", 2.5) == 2.5
    assert "Invalid SEOAUDIT_TEST_INT" in caplog.text


def test_float_env_override(monkeypatch):
    monkeypatch.setenv("SEOAUDIT_TEST_FLOAT", "0.75")
    assert _get_float_env("SEOAUDIT_TEST_FLOAT", 2.5) == 0.75
