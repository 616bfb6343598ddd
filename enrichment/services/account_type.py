"""
Account type classification for email identities.

Classifies an (email, display name) pair into one of the AccountType values
using built-in patterns (config/account_patterns.py) merged with optional
tenant patterns. Precedence is fixed:

1. external_service - domain is, or ends with, an external service domain
2. bot              - local part or full email contains a bot substring
3. distribution     - local part starts with a distribution prefix
4. role             - local part equals a role pattern, or starts with "<pattern>-"
5. person           - default
"""
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from config.account_patterns import (
    BOT_PATTERNS,
    DISTRIBUTION_PATTERNS,
    EXTERNAL_SERVICE_DOMAINS,
    ROLE_PATTERNS,
)
from enrichment.services.normalize import extract_domain, local_part


class AccountType(str, Enum):
    """Discrete classification of an email identity."""

    PERSON = "person"
    ROLE = "role"
    DISTRIBUTION = "distribution"
    BOT = "bot"
    EXTERNAL_SERVICE = "external_service"
    TEAM = "team"
    SERVICE = "service"

    def __str__(self) -> str:
        return self.value


# Pattern types accepted by the tenant pattern registry
PATTERN_TYPE_BOT = "bot"
PATTERN_TYPE_DISTRIBUTION = "distribution"
PATTERN_TYPE_ROLE = "role"
PATTERN_TYPE_EXTERNAL_DOMAIN = "external_domain"

PATTERN_TYPES = {
    PATTERN_TYPE_BOT,
    PATTERN_TYPE_DISTRIBUTION,
    PATTERN_TYPE_ROLE,
    PATTERN_TYPE_EXTERNAL_DOMAIN,
}


@dataclass(frozen=True)
class AccountTypePatterns:
    """
    Extra patterns for account type detection.

    Always merged with the built-in defaults, never substituted for them.
    Frozen so one value can be shared across threads and resolvers.
    """

    bot_patterns: tuple[str, ...] = ()
    distribution_patterns: tuple[str, ...] = ()
    role_patterns: tuple[str, ...] = ()
    external_domains: tuple[str, ...] = ()

    @classmethod
    def from_lists(
        cls,
        bot_patterns: Optional[Iterable[str]] = None,
        distribution_patterns: Optional[Iterable[str]] = None,
        role_patterns: Optional[Iterable[str]] = None,
        external_domains: Optional[Iterable[str]] = None,
    ) -> "AccountTypePatterns":
        """Build from any iterables, lowercasing and dropping blanks."""
        def clean(values: Optional[Iterable[str]]) -> tuple[str, ...]:
            return tuple(v.strip().lower() for v in (values or ()) if v and v.strip())

        return cls(
            bot_patterns=clean(bot_patterns),
            distribution_patterns=clean(distribution_patterns),
            role_patterns=clean(role_patterns),
            external_domains=clean(external_domains),
        )

    def merged_with_defaults(self) -> "AccountTypePatterns":
        """Defaults first, then these patterns."""
        return AccountTypePatterns(
            bot_patterns=BOT_PATTERNS + self.bot_patterns,
            distribution_patterns=DISTRIBUTION_PATTERNS + self.distribution_patterns,
            role_patterns=ROLE_PATTERNS + self.role_patterns,
            external_domains=EXTERNAL_SERVICE_DOMAINS + self.external_domains,
        )

    def is_empty(self) -> bool:
        return not (
            self.bot_patterns
            or self.distribution_patterns
            or self.role_patterns
            or self.external_domains
        )


DEFAULT_PATTERNS = AccountTypePatterns().merged_with_defaults()


def detect_account_type(
    email: str,
    display_name: str = "",
    extra_patterns: Optional[AccountTypePatterns] = None,
) -> AccountType:
    """
    Determine the account type of an email identity.

    Args:
        email: Email address
        display_name: Display name (accepted for call-site symmetry; the
            current rules look at the address only)
        extra_patterns: Tenant patterns merged with the defaults (None = defaults only)

    Returns:
        One of EXTERNAL_SERVICE, BOT, DISTRIBUTION, ROLE, PERSON
    """
    if extra_patterns is None or extra_patterns.is_empty():
        patterns = DEFAULT_PATTERNS
    else:
        patterns = extra_patterns.merged_with_defaults()

    email_lower = (email or "").lower()
    domain = extract_domain(email)
    local = local_part(email).lower()

    if domain and any(domain.endswith(svc) for svc in patterns.external_domains):
        return AccountType.EXTERNAL_SERVICE

    if any(p in local or p in email_lower for p in patterns.bot_patterns):
        return AccountType.BOT

    if any(local.startswith(p) for p in patterns.distribution_patterns):
        return AccountType.DISTRIBUTION

    if any(local == p or local.startswith(p + "-") for p in patterns.role_patterns):
        return AccountType.ROLE

    return AccountType.PERSON
