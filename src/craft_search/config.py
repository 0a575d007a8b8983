# src/craft_search/config.py

"""Loads runtime settings from a `.env` file and environment variables.

Settings resolve in three layers: the constants in `craft_search.defaults`,
a `.env` file (loaded with python-dotenv, never overriding variables already
present in the process environment), and finally the process environment.
Invalid numeric overrides are logged and the default is kept.
"""

import logging
import os
import pathlib
from dataclasses import dataclass
from typing import List, Optional, Tuple, Type

from dotenv import load_dotenv

from craft_search import defaults

logger = logging.getLogger(__name__)

# (ENV_VARIABLE_NAME, Settings attribute, target type)
ENV_OVERRIDES: List[Tuple[str, str, Type]] = [
    ("CRAFT_SEARCH_DB_URL", "db_url", str),
    ("CRAFT_SEARCH_POLICY_FILE", "policy_path", pathlib.Path),
    ("CRAFT_SEARCH_CLASSIFIER", "classifier", str),
    ("CRAFT_SEARCH_CLASSIFIER_TIMEOUT", "classifier_timeout", float),
    ("CRAFT_SEARCH_RESULTS_LIMIT", "results_limit", int),
    ("CRAFT_SEARCH_QUERY_LOG", "query_log_path", pathlib.Path),
    ("CRAFT_SEARCH_GEMINI_MODEL", "gemini_model", str),
    ("GEMINI_API_KEY", "gemini_api_key", str),
]


@dataclass
class Settings:
    """Resolved runtime settings for the service, API server and CLI."""

    db_url: str = defaults.DEFAULT_DB_URL
    policy_path: Optional[pathlib.Path] = None
    classifier: str = defaults.DEFAULT_CLASSIFIER
    classifier_timeout: float = defaults.DEFAULT_CLASSIFIER_TIMEOUT_SECONDS
    results_limit: int = defaults.DEFAULT_RESULTS_LIMIT
    query_log_path: pathlib.Path = defaults.DEFAULT_QUERY_LOG_PATH
    gemini_model: str = defaults.DEFAULT_GEMINI_MODEL_NAME
    gemini_api_key: Optional[str] = None


def load_settings(dotenv_path: Optional[str] = None) -> Settings:
    """Builds `Settings` from defaults, `.env` and the process environment.

    Args:
        dotenv_path: Optional explicit path to a `.env` file. When None,
            python-dotenv searches upwards from the working directory.

    Returns:
        The resolved `Settings`.
    """
    load_dotenv(dotenv_path=dotenv_path, override=False)

    settings = Settings()
    for env_var, attribute, target_type in ENV_OVERRIDES:
        raw_value = os.getenv(env_var)
        if raw_value is None or raw_value.strip() == "":
            continue
        try:
            setattr(settings, attribute, target_type(raw_value.strip()))
        except (TypeError, ValueError):
            logger.warning(
                "Invalid value '%s' for %s (expected %s). Keeping default %r.",
                raw_value,
                env_var,
                target_type.__name__,
                getattr(settings, attribute),
            )

    if settings.classifier_timeout <= 0:
        logger.warning(
            "Classifier timeout must be positive, got %s. Using %s.",
            settings.classifier_timeout,
            defaults.DEFAULT_CLASSIFIER_TIMEOUT_SECONDS,
        )
        settings.classifier_timeout = defaults.DEFAULT_CLASSIFIER_TIMEOUT_SECONDS
    if settings.results_limit < 1:
        logger.warning(
            "Results limit must be at least 1, got %s. Using %s.",
            settings.results_limit,
            defaults.DEFAULT_RESULTS_LIMIT,
        )
        settings.results_limit = defaults.DEFAULT_RESULTS_LIMIT
    return settings
