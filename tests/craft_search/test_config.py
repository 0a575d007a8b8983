# tests/craft_search/test_config.py

"""Tests for settings resolution in `craft_search.config`."""

import logging
import pathlib

import dotenv
import pytest

import craft_search.config
from craft_search import defaults
from craft_search.config import Settings, load_settings


def test_defaults_without_overrides():
    """With no environment overrides the defaults are used."""
    assert load_settings() == Settings()


def test_environment_overrides(monkeypatch: pytest.MonkeyPatch):
    """Environment variables are converted to the attribute types.

    Args:
        monkeypatch: Pytest's built-in fixture for modifying objects.
    """
    monkeypatch.setenv("CRAFT_SEARCH_DB_URL", "postgresql://search@db/community")
    monkeypatch.setenv("CRAFT_SEARCH_POLICY_FILE", "/etc/craft/policy.toml")
    monkeypatch.setenv("CRAFT_SEARCH_CLASSIFIER", "gemini")
    monkeypatch.setenv("CRAFT_SEARCH_CLASSIFIER_TIMEOUT", "1.5")
    monkeypatch.setenv("CRAFT_SEARCH_RESULTS_LIMIT", " 20 ")
    monkeypatch.setenv("GEMINI_API_KEY", "secret")

    settings = load_settings()

    assert settings.db_url == "postgresql://search@db/community"
    assert settings.policy_path == pathlib.Path("/etc/craft/policy.toml")
    assert settings.classifier == "gemini"
    assert settings.classifier_timeout == 1.5
    assert settings.results_limit == 20
    assert settings.gemini_api_key == "secret"


@pytest.mark.parametrize(
    "env_var, raw_value, attribute, expected",
    [
        ("CRAFT_SEARCH_RESULTS_LIMIT", "many", "results_limit", defaults.DEFAULT_RESULTS_LIMIT),
        ("CRAFT_SEARCH_RESULTS_LIMIT", "0", "results_limit", defaults.DEFAULT_RESULTS_LIMIT),
        (
            "CRAFT_SEARCH_CLASSIFIER_TIMEOUT",
            "-2",
            "classifier_timeout",
            defaults.DEFAULT_CLASSIFIER_TIMEOUT_SECONDS,
        ),
    ],
)
def test_invalid_values_keep_defaults(
    monkeypatch: pytest.MonkeyPatch,
    caplog: pytest.LogCaptureFixture,
    env_var: str,
    raw_value: str,
    attribute: str,
    expected,
):
    """Unparseable or out-of-range values are logged and ignored.

    Args:
        monkeypatch: Pytest's built-in fixture for modifying objects.
        caplog: Pytest fixture to capture log output.
        env_var: Variable under test.
        raw_value: Invalid raw value.
        attribute: Settings attribute fed by the variable.
        expected: Value expected after fallback.
    """
    monkeypatch.setenv(env_var, raw_value)
    with caplog.at_level(logging.WARNING):
        settings = load_settings()
    assert getattr(settings, attribute) == expected
    assert raw_value in caplog.text


def test_blank_values_are_ignored(monkeypatch: pytest.MonkeyPatch):
    """Empty variables count as unset.

    Args:
        monkeypatch: Pytest's built-in fixture for modifying objects.
    """
    monkeypatch.setenv("CRAFT_SEARCH_CLASSIFIER", "   ")
    assert load_settings().classifier == defaults.DEFAULT_CLASSIFIER


def test_dotenv_file(monkeypatch: pytest.MonkeyPatch, tmp_path: pathlib.Path):
    """A `.env` file fills unset variables; the environment wins otherwise.

    Args:
        monkeypatch: Pytest's built-in fixture for modifying objects.
        tmp_path: Pytest's built-in fixture for a temporary directory.
    """
    env_file = tmp_path / ".env"
    env_file.write_text(
        "CRAFT_SEARCH_GEMINI_MODEL=gemini-test\nCRAFT_SEARCH_RESULTS_LIMIT=7\n",
        encoding="utf-8",
    )
    monkeypatch.setattr(craft_search.config, "load_dotenv", dotenv.load_dotenv)
    # Set then delete so the variable loaded from .env is removed on teardown.
    monkeypatch.setenv("CRAFT_SEARCH_GEMINI_MODEL", "placeholder")
    monkeypatch.delenv("CRAFT_SEARCH_GEMINI_MODEL")
    monkeypatch.setenv("CRAFT_SEARCH_RESULTS_LIMIT", "9")

    settings = load_settings(str(env_file))

    assert settings.gemini_model == "gemini-test"
    assert settings.results_limit == 9
