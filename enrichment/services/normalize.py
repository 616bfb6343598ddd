"""
Name and email normalization for entity resolution.

- normalize_display_name: canonical form of a free-text display name
- derive_name_from_email: fallback name from an email local part
- extract_domain / is_internal_domain: email domain helpers
"""
import re

_QUOTES = "\"'"

_EMAIL_SEPARATORS = re.compile(r"[._-]")


def _strip_surrounding(text: str) -> str:
    """Strip surrounding whitespace and quote characters, in any nesting."""
    while True:
        stripped = text.strip().strip(_QUOTES)
        if stripped == text:
            return text
        text = stripped


def _title_token(token: str) -> str:
    """Lowercase a token and uppercase its first code point."""
    lowered = token.lower()
    if not lowered:
        return lowered
    first = lowered[0].upper()
    # Keep characters like 'ß' whose uppercase form is several code points
    if len(first) != 1:
        first = lowered[0]
    return first + lowered[1:]


def title_case(text: str) -> str:
    """Title-case each whitespace-separated token, collapsing whitespace."""
    return " ".join(_title_token(word) for word in text.split())


def normalize_display_name(name: str) -> str:
    """
    Normalize a display name to canonical form.

    Examples:
        "Eskelsen, Rick"     -> "Rick Eskelsen"
        "  James  Brown  "   -> "James Brown"
        '"John Doe"'         -> "John Doe"
        "JOHN o'neil"        -> "John O'neil"

    Idempotent: normalize_display_name(normalize_display_name(s)) equals
    normalize_display_name(s).
    """
    if not name:
        return ""

    name = _strip_surrounding(name)

    # "Last, First" -> "First Last", only for a single comma with both sides present
    if name.count(",") == 1:
        last, first = (part.strip() for part in name.split(","))
        if first and last:
            name = _strip_surrounding(f"{first} {last}")

    return title_case(name)


def extract_domain(email: str) -> str:
    """Extract the lowercased domain, or "" unless there is exactly one '@' with both sides non-empty."""
    if not email:
        return ""
    parts = email.split("@")
    if len(parts) != 2 or not parts[0] or not parts[1]:
        return ""
    return parts[1].lower()


def local_part(email: str) -> str:
    """Text before the first '@' (the whole string if there is none)."""
    if not email:
        return ""
    return email.split("@")[0]


def is_internal_domain(email: str, internal_domains: list[str]) -> bool:
    """Check if an email's domain is, or is a subdomain of, an internal domain."""
    domain = extract_domain(email)
    if not domain:
        return False
    for internal in internal_domains:
        internal = internal.lower()
        if domain == internal or domain.endswith("." + internal):
            return True
    return False


def derive_name_from_email(email: str) -> str:
    """
    Derive a human-readable name from an email address prefix.

    Patterns:
        "john.smith@example.com" -> "John Smith"   (separator split)
        "jane_doe@example.com"   -> "Jane Doe"
        "mary-ann@example.com"   -> "Mary Ann"
        "jSmith@example.com"     -> "J Smith"      (camelCase split)
        "jsmith@example.com"     -> "Jsmith"       (no split)
        "uzeeshan@example.com"   -> "Uzeeshan"     (no split)

    Plain lowercase usernames are never split: "uzeeshan" is a surname with a
    leading initial as often as it is anything else, so guessing would create
    wrong names like "U Zeeshan".
    """
    if not email:
        return ""

    parts = email.split("@")
    if len(parts) != 2 or not parts[0]:
        return ""

    local = parts[0]

    # camelCase: lowercase ASCII letter followed by uppercase ASCII letter ("jSmith")
    if len(local) >= 3 and not _EMAIL_SEPARATORS.search(local):
        first, second = local[0], local[1]
        if first.isascii() and second.isascii() and first.islower() and second.isupper():
            local = f"{first} {local[1:]}"

    words = _EMAIL_SEPARATORS.sub(" ", local).split()
    if not words:
        return ""

    # Single-letter first word is an initial: "j smith" -> "J Smith"
    if len(words) > 1 and len(words[0]) == 1:
        return " ".join([words[0].upper()] + [title_case(w) for w in words[1:]])

    return title_case(" ".join(words))
