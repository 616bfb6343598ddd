"""
Tests for name and entity similarity.
"""
import pytest

from enrichment.services.similarity import (
    EntityComparisonData,
    entity_similarity,
    levenshtein_distance,
    levenshtein_similarity,
    name_similarity,
)

pytestmark = pytest.mark.unit

NAMES = [
    "John Smith",
    "Smith, John",
    "Jon Smyth",
    "Patrick Brisbane",
    "Patrick Bussmann",
    "Rick",
    "Rick Eskelsen",
    "K",
    "Mi",
    "",
]


class TestLevenshtein:
    """Tests for the edit distance helpers."""

    def test_known_distances(self):
        assert levenshtein_distance("kitten", "sitting") == 3
        assert levenshtein_distance("", "abc") == 3
        assert levenshtein_distance("flaw", "lawn") == 2

    @pytest.mark.parametrize("word", ["", "a", "smith", "Émile"])
    def test_identity(self, word):
        assert levenshtein_distance(word, word) == 0

    def test_symmetric(self):
        assert levenshtein_distance("brisbane", "bussmann") == levenshtein_distance("bussmann", "brisbane")

    @pytest.mark.parametrize("a,b,c", [
        ("john", "jon", "joan"),
        ("smith", "smyth", "smithers"),
        ("", "abc", "abd"),
    ])
    def test_triangle_inequality(self, a, b, c):
        assert levenshtein_distance(a, c) <= levenshtein_distance(a, b) + levenshtein_distance(b, c)

    def test_similarity_of_empty_strings(self):
        assert levenshtein_similarity("", "") == 1.0

    def test_similarity_normalized_by_longer(self):
        assert levenshtein_similarity("jon", "john") == pytest.approx(0.75)


class TestNameSimilarity:
    """Tests for name_similarity."""

    def test_same_first_different_surname_scores_low(self):
        score = name_similarity("Patrick Brisbane", "Patrick Bussmann")
        assert score < 0.5
        assert score == pytest.approx(0.3)

    def test_last_first_order(self):
        assert name_similarity("John Smith", "Smith, John") > 0.9

    def test_case_and_whitespace_insensitive(self):
        assert name_similarity("JOHN   smith", "John Smith") == 1.0

    def test_full_containment(self):
        assert name_similarity("Rick", "Rick Eskelsen") == pytest.approx(0.85)

    def test_three_char_containment(self):
        assert name_similarity("ike", "Mike") == pytest.approx(0.4)

    def test_two_char_containment(self):
        assert name_similarity("Mi", "Mike") == pytest.approx(0.2)

    def test_single_initial_never_matches_real_name(self):
        assert name_similarity("K", "Kevin") == 0.0
        assert name_similarity("Kevin", "K") == 0.0

    def test_two_initials(self):
        assert name_similarity("K", "K") == 1.0
        assert name_similarity("K", "M") == 0.0

    def test_empty(self):
        assert name_similarity("", "John") == 0.0
        assert name_similarity("John", "") == 0.0
        assert name_similarity("", "") == 0.0

    @pytest.mark.parametrize("name", ["'", '"', "''", "   ", "\t\n", "' '"])
    def test_empty_after_normalization_scores_zero(self, name):
        """Quote-only and whitespace-only names carry no name evidence, even against themselves."""
        assert name_similarity(name, name) == 0.0
        assert name_similarity(name, "John Smith") == 0.0

    def test_single_tokens_use_edit_distance(self):
        assert name_similarity("Jon", "John") == pytest.approx(0.75)
        assert name_similarity("Smith", "Smyth") == pytest.approx(0.8)

    def test_single_vs_multi_token_falls_back_to_whole_string(self):
        assert name_similarity("Jon", "John Smith") == pytest.approx(0.3)

    def test_similar_family_names_average(self):
        assert name_similarity("John Smith", "Jon Smyth") == pytest.approx(0.775)

    @pytest.mark.parametrize("a", NAMES)
    @pytest.mark.parametrize("b", NAMES)
    def test_symmetric_and_bounded(self, a, b):
        score = name_similarity(a, b)
        assert score == name_similarity(b, a)
        assert 0.0 <= score <= 1.0

    @pytest.mark.parametrize("name", [n for n in NAMES if n])
    def test_identity(self, name):
        assert name_similarity(name, name) == 1.0


class TestEntitySimilarity:
    """Tests for entity_similarity."""

    def test_none_scores_zero(self):
        entity = EntityComparisonData(name="John Smith")
        assert entity_similarity(None, entity) == 0.0
        assert entity_similarity(entity, None) == 0.0

    def test_all_evidence_capped_at_one(self):
        a = EntityComparisonData(name="John Smith", domain="acme.com", source_ids={"s1"})
        b = EntityComparisonData(name="John Smith", domain="acme.com", source_ids={"s1", "s2"})
        assert entity_similarity(a, b) == pytest.approx(1.0)
        assert entity_similarity(a, b) <= 1.0

    def test_name_only(self):
        a = EntityComparisonData(name="John Smith")
        b = EntityComparisonData(name="Smith, John")
        assert entity_similarity(a, b) == pytest.approx(0.73)

    def test_empty_domains_give_no_bonus(self):
        a = EntityComparisonData(name="John Smith", domain="")
        b = EntityComparisonData(name="John Smith", domain="")
        assert entity_similarity(a, b) == pytest.approx(0.73)

    def test_domain_bonus(self):
        a = EntityComparisonData(name="John Smith", domain="acme.com")
        b = EntityComparisonData(name="John Smith", domain="acme.com")
        assert entity_similarity(a, b) == pytest.approx(0.95)

    def test_shared_source_bonus(self):
        a = EntityComparisonData(name="John Smith", source_ids={"thread-1"})
        b = EntityComparisonData(name="John Smith", source_ids={"thread-1"})
        assert entity_similarity(a, b) == pytest.approx(0.78)

    def test_zero_name_similarity_ignores_other_evidence(self):
        a = EntityComparisonData(name="Alice Jones", domain="acme.com", source_ids={"s1"})
        b = EntityComparisonData(name="Bob Brown", domain="acme.com", source_ids={"s1"})
        assert entity_similarity(a, b) == 0.0

    def test_different_surname_same_domain_stays_below_half(self):
        a = EntityComparisonData(name="Patrick Brisbane", domain="acme.com")
        b = EntityComparisonData(name="Patrick Bussmann", domain="acme.com")
        assert entity_similarity(a, b) < 0.5
