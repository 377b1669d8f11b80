"""Tests for environment-driven settings."""

import pytest

from policybot.config import DEFAULT_API_URL, Settings


def test_from_env_defaults():
    settings = Settings.from_env({})
    assert settings.github_token == ""
    assert settings.api_url == DEFAULT_API_URL
    assert settings.concurrency == 1
    assert settings.backoff_base == 1.0


def test_from_env_reads_values():
    settings = Settings.from_env(
        {
            "POLICYBOT_GITHUB_TOKEN": "tok",
            "POLICYBOT_ORG": "acme",
            "POLICYBOT_TIMEOUT": "5",
            "POLICYBOT_CONCURRENCY": "4",
            "POLICYBOT_LOG_LEVEL": "debug",
        }
    )
    assert settings.github_token == "tok"
    assert settings.org == "acme"
    assert settings.timeout == 5.0
    assert settings.concurrency == 4
    assert settings.log_level == "debug"


def test_legacy_token_variable():
    assert Settings.from_env({"TTV_GITHUB_PAT": "legacy"}).github_token == "legacy"
    both = {"POLICYBOT_GITHUB_TOKEN": "new", "TTV_GITHUB_PAT": "legacy"}
    assert Settings.from_env(both).github_token == "new"


def test_invalid_number():
    with pytest.raises(ValueError, match="POLICYBOT_TIMEOUT"):
        Settings.from_env({"POLICYBOT_TIMEOUT": "soon"})


def test_overrides_ignore_none():
    settings = Settings(org="acme").with_overrides(org=None, timeout=3.0)
    assert settings.org == "acme"
    assert settings.timeout == 3.0


def test_validate():
    assert Settings(github_token="t", org="acme").validate() == []
    issues = Settings().validate()
    assert len(issues) == 2
    assert Settings(org="acme").validate(require_token=False) == []
    assert Settings(github_token="t", org="acme", concurrency=0).validate()
