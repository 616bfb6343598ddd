"""
Account Type Patterns Configuration.

Built-in patterns for classifying an email identity as a bot, distribution
list, role account or external service. Tenant-specific patterns are always
merged on top of these tables, never substituted for them.

Used by:
- enrichment/services/account_type.py (classification)
"""

# =============================================================================
# EXTERNAL SERVICE DOMAINS
# =============================================================================
# Matched against the lowercased email domain: exact match or suffix match.
# Checked first, so a notification from github.com is external_service, not bot.

EXTERNAL_SERVICE_DOMAINS = (
    'docs.google.com',
    'calendar.google.com',
    'slack.com',
    'atlassian.net',
    'github.com',
    'gitlab.com',
    'circleci.com',
    'travis-ci.org',
    'travis-ci.com',
    'mailer.aha.io',  # Aha! product management notifications
)

# =============================================================================
# BOT PATTERNS
# =============================================================================
# Substrings checked against the local part and the full lowercased email.

BOT_PATTERNS = (
    # No-reply senders
    'noreply', 'no-reply', 'donotreply', 'do-not-reply',

    # Mail system
    'mailer-daemon', 'postmaster',

    # CI / tooling
    'jira', 'jenkins', 'github', 'gitlab', 'circleci', 'travis',

    # Generic automation
    'bot', 'automation', 'system', 'alert', 'notification',

    # Service account prefix
    'gsd-',
)

# =============================================================================
# DISTRIBUTION LIST PATTERNS
# =============================================================================
# Prefixes checked against the local part.

DISTRIBUTION_PATTERNS = (
    'team-', 'all-', 'group-', 'list-', 'dl-', 'dept-',
    'everyone', 'staff', 'employees',
)

# =============================================================================
# ROLE ACCOUNT PATTERNS
# =============================================================================
# Local part must equal the pattern, or start with "<pattern>-".

ROLE_PATTERNS = (
    'support', 'sales', 'info', 'contact', 'help', 'admin',
    'security', 'hr', 'recruiting', 'careers', 'press', 'media',
    'legal', 'finance', 'billing', 'accounts',
    'facilitator', 'prb-facilitator',
)
