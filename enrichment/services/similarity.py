"""
Name and entity similarity scoring.

name_similarity compares two free-text names with tiered containment scores
and a heavy penalty when family names differ. entity_similarity combines it
with domain and shared-source corroboration for duplicate detection.
"""
from dataclasses import dataclass, field
from typing import Optional

from rapidfuzz.distance import Levenshtein

from config.resolution_weights import (
    DIFFERENT_FAMILY_NAME_PENALTY,
    ENTITY_DOMAIN_BONUS,
    ENTITY_NAME_WEIGHT,
    ENTITY_SHARED_SOURCE_BONUS,
    FAMILY_NAME_MIN_SIMILARITY,
    MIN_NAME_LENGTH,
    SINGLE_TOKEN_MATCH_SCORE,
    SUBSTRING_MATCH_SCORE,
    SUBSTRING_MIN_FULL_LENGTH,
    SUBSTRING_THREE_CHAR_SCORE,
    SUBSTRING_TWO_CHAR_SCORE,
)
from enrichment.services.normalize import normalize_display_name


def levenshtein_distance(a: str, b: str) -> int:
    """Unit-cost insert/delete/substitute edit distance."""
    return Levenshtein.distance(a, b)


def levenshtein_similarity(a: str, b: str) -> float:
    """1 - distance / max(len); two empty strings are identical."""
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    return 1.0 - levenshtein_distance(a, b) / max_len


def _containment_score(shorter: str) -> float:
    if len(shorter) >= SUBSTRING_MIN_FULL_LENGTH:
        return SUBSTRING_MATCH_SCORE
    if len(shorter) == 3:
        return SUBSTRING_THREE_CHAR_SCORE
    return SUBSTRING_TWO_CHAR_SCORE


def name_similarity(a: str, b: str) -> float:
    """
    Similarity between two display names, 0.0 to 1.0.

    Given and family names are compared separately so that people sharing a
    first name but not a surname score low:

        name_similarity("Patrick Brisbane", "Patrick Bussmann")  -> 0.3
        name_similarity("John Smith", "Smith, John")             -> 1.0
        name_similarity("Rick", "Rick Eskelsen")                 -> 0.85
    """
    a = normalize_display_name(a).lower()
    b = normalize_display_name(b).lower()

    if not a or not b:
        return 0.0
    if a == b:
        return 1.0

    # Single initials like "K" must not match real names
    if len(a) < MIN_NAME_LENGTH or len(b) < MIN_NAME_LENGTH:
        if len(a) < MIN_NAME_LENGTH and len(b) < MIN_NAME_LENGTH:
            return levenshtein_similarity(a, b)
        return 0.0

    shorter, longer = (a, b) if len(a) < len(b) else (b, a)
    if shorter in longer:
        return _containment_score(shorter)

    words_a = a.split()
    words_b = b.split()

    if len(words_a) == 1 or len(words_b) == 1:
        if len(words_a) == 1 and len(words_b) == 1:
            return levenshtein_similarity(words_a[0], words_b[0])
        single, multi = (words_a[0], words_b) if len(words_a) == 1 else (words_b[0], words_a)
        if single in multi:
            return SINGLE_TOKEN_MATCH_SCORE
        return levenshtein_similarity(a, b)

    given_sim = levenshtein_similarity(words_a[0], words_b[0])
    family_sim = levenshtein_similarity(words_a[-1], words_b[-1])

    if family_sim < FAMILY_NAME_MIN_SIMILARITY:
        return given_sim * DIFFERENT_FAMILY_NAME_PENALTY

    return (given_sim + family_sim) / 2.0


@dataclass
class EntityComparisonData:
    """The fields of a person that matter for duplicate detection."""

    name: str
    email: str = ""
    domain: str = ""
    source_ids: set[str] = field(default_factory=set)


def entity_similarity(
    a: Optional[EntityComparisonData],
    b: Optional[EntityComparisonData],
) -> float:
    """
    Weighted similarity of two entities, 0.0 to 1.0.

    Name evidence is mandatory: a zero name similarity scores 0 regardless of
    domain or shared sources.
    """
    if a is None or b is None:
        return 0.0

    name_sim = name_similarity(a.name, b.name)
    if name_sim == 0:
        return 0.0

    score = name_sim * ENTITY_NAME_WEIGHT
    if a.domain and a.domain == b.domain:
        score += ENTITY_DOMAIN_BONUS
    if a.source_ids & b.source_ids:
        score += ENTITY_SHARED_SOURCE_BONUS

    return min(score, 1.0)
