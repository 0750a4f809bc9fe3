"""Tests for core configuration module."""

import pytest

from pim_agent.core.config import (
    ConfigError,
    get_config_summary,
    is_valid_url,
    load_settings,
    mask_secret,
)

VALID_ENV = {
    "UNOPIM_BASE_URL": "https://pim.example.com/",
    "UNOPIM_CLIENT_ID": "client-id-1234",
    "UNOPIM_CLIENT_SECRET": "client-secret-5678",
    "UNOPIM_USERNAME": "api@example.com",
    "UNOPIM_PASSWORD": "s3cret",
}


def test_load_settings_strips_trailing_slash():
    """Base URL should be normalized without a trailing slash."""
    settings = load_settings(VALID_ENV)
    assert settings.base_url == "https://pim.example.com"
    assert settings.client_id == "client-id-1234"
    assert settings.username == "api@example.com"


def test_load_settings_reads_overrides():
    env = {
        **VALID_ENV,
        "UNOPIM_DEFAULT_LOCALE": "de_DE",
        "UNOPIM_DEFAULT_CHANNEL": "ecommerce",
        "UNOPIM_REQUEST_TIMEOUT": "12.5",
    }
    settings = load_settings(env)
    assert settings.default_locale == "de_DE"
    assert settings.default_channel == "ecommerce"
    assert settings.request_timeout == 12.5


def test_load_settings_reports_every_missing_variable():
    """All missing variables should be reported at once."""
    env = {"UNOPIM_BASE_URL": "https://pim.example.com"}
    with pytest.raises(ConfigError) as exc_info:
        load_settings(env)

    problems = exc_info.value.problems
    assert len(problems) == 4
    assert any("UNOPIM_CLIENT_SECRET" in p for p in problems)
    assert any("UNOPIM_PASSWORD" in p for p in problems)


def test_load_settings_rejects_invalid_url():
    env = {**VALID_ENV, "UNOPIM_BASE_URL": "pim.example.com"}
    with pytest.raises(ConfigError, match="not a valid http"):
        load_settings(env)


def test_load_settings_rejects_non_numeric_timeout():
    env = {**VALID_ENV, "UNOPIM_REQUEST_TIMEOUT": "soon"}
    with pytest.raises(ConfigError, match="UNOPIM_REQUEST_TIMEOUT"):
        load_settings(env)


def test_settings_repr_hides_secrets():
    """Secrets must not leak through repr()."""
    settings = load_settings(VALID_ENV)
    text = repr(settings)
    assert "client-secret-5678" not in text
    assert "s3cret" not in text
    assert "client-id-1234" not in text


@pytest.mark.parametrize("value,expected", [
    (None, "Not set"),
    ("", "Not set"),
    ("short", "****"),
    ("abcdefghijklmnop", "abcd...mnop"),
])
def test_mask_secret(value, expected):
    assert mask_secret(value) == expected


def test_is_valid_url():
    assert is_valid_url("https://pim.example.com")
    assert is_valid_url("http://localhost:8000")
    assert not is_valid_url("ftp://pim.example.com")
    assert not is_valid_url("/relative/path")


def test_get_config_summary_masks_client_id():
    """Config summary should return a formatted string without raw secrets."""
    summary = get_config_summary(load_settings(VALID_ENV))
    assert isinstance(summary, str)
    assert "https://pim.example.com" in summary
    assert "clie...1234" in summary
    assert "client-secret-5678" not in summary


def test_get_config_summary_without_settings():
    summary = get_config_summary()
    assert "UnoPim Catalog Agent Configuration" in summary
