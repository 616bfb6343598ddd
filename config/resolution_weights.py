"""
Entity Resolution Weights Configuration.

Central configuration for the thresholds and weights used in:
- Name similarity scoring
- Entity similarity (duplicate detection)
- Confidence assigned to auto-created people
- Alias confidence

Edit this file to tune resolution behavior.
"""

# =============================================================================
# NAME SIMILARITY
# =============================================================================

# Substring containment: score by the length of the shorter string
SUBSTRING_MATCH_SCORE = 0.85        # shorter string >= 4 chars ("rick" in "rick eskelsen")
SUBSTRING_MIN_FULL_LENGTH = 4
SUBSTRING_THREE_CHAR_SCORE = 0.4
SUBSTRING_TWO_CHAR_SCORE = 0.2

# Single token vs multi-token name, exact token hit
SINGLE_TOKEN_MATCH_SCORE = 0.85

# Family names below this similarity are treated as different people
FAMILY_NAME_MIN_SIMILARITY = 0.7
# Given-name similarity is multiplied by this when family names differ.
# 0.3 keeps "same first name, different surname" below 0.5 even with a domain match:
# 1.0 * 0.3 * 0.73 + 0.22 = 0.439
DIFFERENT_FAMILY_NAME_PENALTY = 0.3

# Names shorter than this only match other equally short names
MIN_NAME_LENGTH = 2

# =============================================================================
# ENTITY SIMILARITY
# =============================================================================
# score = name * NAME_WEIGHT + DOMAIN_BONUS (same domain) + SHARED_SOURCE_BONUS

ENTITY_NAME_WEIGHT = 0.73
ENTITY_DOMAIN_BONUS = 0.22
ENTITY_SHARED_SOURCE_BONUS = 0.05

# =============================================================================
# RESOLVER
# =============================================================================

# Candidates above this name similarity are recorded as potential duplicates
POTENTIAL_DUPLICATE_THRESHOLD = 0.8

# Confidence for auto-created people
BASE_CONFIDENCE = 0.6
INTERNAL_CONFIDENCE = 0.7
NON_PERSON_CONFIDENCE = 0.8  # bot/role/distribution detection is more certain

# Alias confidence
EMAIL_ALIAS_CONFIDENCE = 1.0
DISPLAY_NAME_ALIAS_CONFIDENCE = 0.8

# Alias provenance
ALIAS_SOURCE_AUTO_CREATED = "auto_created"
ALIAS_SOURCE_EMAIL_HEADER = "email_header"

# Confidence buckets for statistics
HIGH_CONFIDENCE = 0.8
MEDIUM_CONFIDENCE = 0.5
