# Entity Resolution Utilities
"""
Shared utility functions for entity resolution services.
"""

from enrichment.utils.datetime_utils import make_aware, utc_now
from enrichment.utils.db_paths import get_entity_db_path
from enrichment.utils.deadline import Deadline

__all__ = ["make_aware", "utc_now", "get_entity_db_path", "Deadline"]
