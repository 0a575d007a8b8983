# src/craft_search/local/similarity.py

"""Trigram similarity with PostgreSQL pg_trgm semantics.

PostgreSQL deployments use the `similarity()` function of the pg_trgm
extension directly. SQLite has no equivalent, so `trigram_similarity` is
registered as a SQL function of the same name on every SQLite connection
(see `craft_search.local.database`). Both produce the same value for the
same pair of strings, which keeps the 0.1 and 0.3 retrieval thresholds
calibrated on either engine.

Words are maximal runs of alphanumeric characters (Hangul included), lower-
cased and padded with two spaces in front and one behind before being cut
into trigrams. Similarity is the Jaccard index of the two trigram sets.
"""

import re
from typing import FrozenSet, Optional

_WORD_PATTERN = re.compile(r"[^\W_]+", re.UNICODE)


def trigrams(text: Optional[str]) -> FrozenSet[str]:
    """Returns the pg_trgm trigram set of `text`.

    Args:
        text: Input string. None yields an empty set.

    Returns:
        A frozenset of three-character strings.
    """
    if not text:
        return frozenset()
    grams = set()
    for word in _WORD_PATTERN.findall(text.lower()):
        padded = f"  {word} "
        for i in range(len(padded) - 2):
            grams.add(padded[i : i + 3])
    return frozenset(grams)


def trigram_similarity(left: Optional[str], right: Optional[str]) -> float:
    """Computes pg_trgm `similarity(left, right)` in the range [0, 1].

    Args:
        left: First string.
        right: Second string.

    Returns:
        Shared trigrams divided by the size of the trigram union; 0.0 when
        either side has no trigrams.
    """
    left_grams = trigrams(left)
    right_grams = trigrams(right)
    if not left_grams or not right_grams:
        return 0.0
    common = len(left_grams & right_grams)
    return common / float(len(left_grams) + len(right_grams) - common)
