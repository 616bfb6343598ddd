"""
Tests for name and email normalization.
"""
import pytest

from enrichment.services.normalize import (
    derive_name_from_email,
    extract_domain,
    is_internal_domain,
    local_part,
    normalize_display_name,
    title_case,
)

pytestmark = pytest.mark.unit


class TestNormalizeDisplayName:
    """Tests for normalize_display_name."""

    @pytest.mark.parametrize("raw,expected", [
        ("Eskelsen, Rick", "Rick Eskelsen"),
        ('"John Doe"', "John Doe"),
        ("'Jane Smith'", "Jane Smith"),
        ("  james   BROWN ", "James Brown"),
        ("JOHN o'neil", "John O'neil"),
        ("mary", "Mary"),
    ])
    def test_fixtures(self, raw, expected):
        assert normalize_display_name(raw) == expected

    def test_empty(self):
        assert normalize_display_name("") == ""
        assert normalize_display_name("   ") == ""
        assert normalize_display_name('""') == ""

    def test_multiple_commas_not_reordered(self):
        assert normalize_display_name("Smith, John, Jr") == "Smith, John, Jr"

    def test_comma_with_empty_side_not_reordered(self):
        assert normalize_display_name("Smith,") == "Smith,"
        assert normalize_display_name(", John") == ", John"

    def test_quoted_last_first(self):
        assert normalize_display_name('"Doe, Jane"') == "Jane Doe"

    def test_unicode_letters(self):
        assert normalize_display_name("ÉMILE zola") == "Émile Zola"
        assert normalize_display_name("josé garcía") == "José García"

    def test_multi_codepoint_uppercase_kept(self):
        """'ß' upper-cases to 'SS'; the token keeps its original first letter."""
        assert normalize_display_name("ßtest") == "ßtest"

    @pytest.mark.parametrize("raw", [
        "Eskelsen, Rick",
        '"John Doe"',
        "  james   BROWN ",
        "Smith, John, Jr",
        ", John",
        "'\"Doe, Jane\"'",
        "ÉMILE zola",
        "ßtest",
        "o'brien, pat",
        "",
    ])
    def test_idempotent(self, raw):
        once = normalize_display_name(raw)
        assert normalize_display_name(once) == once


class TestTitleCase:
    """Tests for title_case."""

    def test_collapses_whitespace(self):
        assert title_case("  a   b\tc ") == "A B C"

    def test_lowercases_rest(self):
        assert title_case("mcDONALD") == "Mcdonald"


class TestDomainHelpers:
    """Tests for extract_domain, local_part and is_internal_domain."""

    def test_extract_domain_lowercases(self):
        assert extract_domain("A@Example.COM") == "example.com"

    @pytest.mark.parametrize("email", ["", "no-at-sign", "a@b@c.com", "@acme.com", "john@"])
    def test_extract_domain_malformed(self, email):
        assert extract_domain(email) == ""

    def test_local_part(self):
        assert local_part("john.smith@acme.com") == "john.smith"
        assert local_part("plain") == "plain"
        assert local_part("") == ""

    def test_internal_exact_and_subdomain(self):
        assert is_internal_domain("x@acme.com", ["acme.com"])
        assert is_internal_domain("x@eng.acme.com", ["acme.com"])
        assert is_internal_domain("x@ACME.com", ["Acme.com"])

    def test_internal_requires_dot_boundary(self):
        assert not is_internal_domain("x@notacme.com", ["acme.com"])

    def test_internal_no_domains(self):
        assert not is_internal_domain("x@acme.com", [])
        assert not is_internal_domain("invalid", ["acme.com"])


class TestDeriveNameFromEmail:
    """Tests for derive_name_from_email."""

    @pytest.mark.parametrize("email,expected", [
        ("john.smith@example.com", "John Smith"),
        ("jane_doe@example.com", "Jane Doe"),
        ("mary-ann@example.com", "Mary Ann"),
        ("j.smith@example.com", "J Smith"),
        ("JOHN.SMITH@example.com", "John Smith"),
        ("jSmith@example.com", "J Smith"),
    ])
    def test_split_names(self, email, expected):
        assert derive_name_from_email(email) == expected

    @pytest.mark.parametrize("email,expected", [
        ("jsmith@example.com", "Jsmith"),
        ("uzeeshan@example.com", "Uzeeshan"),
        ("john@example.com", "John"),
    ])
    def test_plain_lowercase_never_split(self, email, expected):
        assert derive_name_from_email(email) == expected

    def test_camel_case_needs_three_characters(self):
        assert derive_name_from_email("jS@example.com") == "Js"

    def test_camel_case_only_at_start(self):
        assert derive_name_from_email("johnSmith@example.com") == "Johnsmith"

    @pytest.mark.parametrize("email", ["", "noatsign", "a@b@c.com", "@example.com"])
    def test_malformed(self, email):
        assert derive_name_from_email(email) == ""

    def test_only_separators(self):
        assert derive_name_from_email("...@example.com") == ""
