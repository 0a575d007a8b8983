# src/craft_search/defaults.py

"""Provides default paths and ranking parameters for the craft_search package.

This module centralizes the tunable numbers of the search pipeline (grade
table, weights, bonuses, similarity thresholds) together with the default
locations of local data assets. `craft_search.policy.DEFAULT_POLICY` is built
from these values; deployments override them through a policy TOML file
rather than by editing this module.
"""

import os
import pathlib
from typing import Dict, Final, List

# --- User-Specific Data Directory ---
# Example: ~/.craft_search/data/
USER_HOME_DIR: Final[pathlib.Path] = pathlib.Path(os.path.expanduser("~"))
CRAFT_SEARCH_USER_DATA_DIR: Final[pathlib.Path] = (
    USER_HOME_DIR / ".craft_search" / "data"
)

# --- Default Filenames ---
DEFAULT_DB_FILENAME: Final[str] = "craft_search.db"
DEFAULT_QUERY_LOG_FILENAME: Final[str] = "search_queries.jsonl"

# --- Default Full Paths ---
DEFAULT_DB_PATH: Final[pathlib.Path] = CRAFT_SEARCH_USER_DATA_DIR / DEFAULT_DB_FILENAME
DEFAULT_QUERY_LOG_PATH: Final[pathlib.Path] = (
    CRAFT_SEARCH_USER_DATA_DIR.parent / "logs" / DEFAULT_QUERY_LOG_FILENAME
)

# For SQLAlchemy, the database URL needs to be a string.
DEFAULT_DB_URL: Final[str] = f"sqlite:///{DEFAULT_DB_PATH.resolve()}"


# --- Policy Identification ---
DEFAULT_POLICY_VERSION: Final[str] = "2024.1"


# --- Score Model ---
# Must be strictly decreasing from S to F and never negative.
DEFAULT_GRADE_SCORES: Final[Dict[str, int]] = {
    "S": 100,
    "A": 80,
    "B": 50,
    "C": 20,
    "F": 0,
}
# Trust > relevance > accuracy.
DEFAULT_TRUST_WEIGHT: Final[float] = 5.0
DEFAULT_RELEVANCE_WEIGHT: Final[float] = 3.0
DEFAULT_ACCURACY_WEIGHT: Final[float] = 1.0

DEFAULT_RECENCY_WINDOW_DAYS: Final[int] = 7
DEFAULT_RECENCY_BONUS: Final[int] = 100

DEFAULT_POPULARITY_SCALE: Final[float] = 40.0
DEFAULT_POPULARITY_CAP: Final[float] = 150.0

DEFAULT_LIKE_WEIGHT: Final[float] = 0.2
DEFAULT_LIKE_CAP: Final[float] = 100.0
DEFAULT_CTR_SCALE: Final[float] = 500.0
DEFAULT_CTR_CAP: Final[float] = 500.0
DEFAULT_CTR_IMPRESSION_SMOOTHING: Final[int] = 10
DEFAULT_COMMENT_WEIGHT: Final[float] = 10.0
DEFAULT_COMMENT_CAP: Final[float] = 100.0

DEFAULT_MIN_CONTENT_LENGTH: Final[int] = 50
DEFAULT_CONTENT_LENGTH_SCALE: Final[float] = 20.0
DEFAULT_CONTENT_LENGTH_CAP: Final[int] = 100
DEFAULT_READABILITY_WEIGHT: Final[float] = 0.5

DEFAULT_REPORT_PENALTY_THRESHOLD: Final[int] = 8
DEFAULT_REPORT_PENALTY_PER_REPORT: Final[int] = 10


# --- Result Scorer ---
DEFAULT_KEYWORD_MATCH_BONUS: Final[int] = 200
DEFAULT_DESC_OR_TAG_BONUS: Final[int] = 50

# Intent category -> content type -> bonus.
DEFAULT_INTENT_TYPE_BONUSES: Final[Dict[str, Dict[str, int]]] = {
    "NAVIGATION": {"SERVER": 200},
    "SERVER": {"SERVER": 200},
    "GUIDE": {"WIKI": 100},
    "RESOURCE": {"RESOURCE": 100},
}

DEFAULT_SUB_CATEGORY_BONUS: Final[int] = 150
# Sub-category -> tag fragments. Unknown sub-categories match their own name.
DEFAULT_SUB_CATEGORY_TAGS: Final[Dict[str, List[str]]] = {
    "NEWS": ["Update", "News", "Snapshot", "Patch", "업데이트", "뉴스"],
    "MODS": ["Mod", "Addon", "모드", "애드온"],
    "MAPS": ["Map", "World", "Save", "맵", "월드"],
    "PLUGINS": ["Plugin", "플러그인"],
    "SCRIPTS": ["Skript", "스크립트"],
    "DEV_QUESTION": ["Dev", "Code", "API", "개발"],
}

DEFAULT_FUZZY_BONUS_THRESHOLD: Final[float] = 0.3
DEFAULT_FUZZY_BONUS_SCALE: Final[int] = 300


# --- Retrieval ---
# Trigram similarity at or above which a title counts as strongly similar
# (matches pg_trgm's default `%` threshold).
DEFAULT_STRONG_SIMILARITY_THRESHOLD: Final[float] = 0.3
DEFAULT_MIN_SIMILARITY: Final[float] = 0.1
DEFAULT_RESULTS_LIMIT: Final[int] = 50
# SQL rows fetched per final result before the exact match predicate runs.
DEFAULT_RETRIEVAL_OVERSAMPLING_FACTOR: Final[int] = 3
MIN_QUERY_TOKEN_LENGTH: Final[int] = 2


# --- Index Writer ---
MAX_DESCRIPTION_LENGTH: Final[int] = 500


# --- Intent Classifier ---
DEFAULT_CLASSIFIER: Final[str] = "rules"
DEFAULT_CLASSIFIER_TIMEOUT_SECONDS: Final[float] = 3.0
DEFAULT_GEMINI_MODEL_NAME: Final[str] = "gemini-1.5-flash-latest"
