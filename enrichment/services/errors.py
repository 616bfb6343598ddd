"""
Error types for entity resolution.

Taxonomy:
- not-found on lookup is not an error (lookups return None)
- StoreError and subclasses: persistence faults, wrapped with operation context,
  plus the not-found errors raised by mutations
- FilterBlockedError: expected non-creation, message starts with BLOCKED_PREFIX
- InvalidEmailError: malformed or empty email
- DeadlineExceededError / OperationCancelledError: caller gave up
"""
from typing import Optional

# Stable, greppable prefix for every blocked creation
BLOCKED_PREFIX = "entity creation blocked by"

BLOCKED_REASON_FILTER_RULE = "filter rule"
BLOCKED_REASON_REJECTED = "rejected entity"


class EntityError(Exception):
    """Base class for entity resolution errors."""


class InvalidEmailError(EntityError, ValueError):
    """Raised when an email address is empty or malformed."""

    def __init__(self, email: Optional[str]):
        self.email = email
        super().__init__(f"invalid email address: {email!r}")


class StoreError(EntityError):
    """A persistence fault (connectivity, constraint violation, ...)."""

    retryable = False

    def __init__(self, operation: str, message: str):
        self.operation = operation
        super().__init__(f"failed to {operation}: {message}")


class PersonNotFoundError(StoreError):
    """Raised when a mutation targets a person that does not exist."""

    def __init__(self, operation: str, person_id: int, detail: str = "person not found"):
        self.person_id = person_id
        super().__init__(operation, f"{detail}: {person_id}")


class PersonConflictError(StoreError):
    """
    Another record already owns (tenant_id, primary_email).

    Raised by the losing side of a concurrent create. Callers should re-run
    resolution, which will find the winning record.
    """

    retryable = True

    def __init__(self, tenant_id: str, email: str, existing_id: Optional[int],
                 existing_rejected: bool = False):
        self.tenant_id = tenant_id
        self.email = email
        self.existing_id = existing_id
        self.existing_rejected = existing_rejected
        super().__init__(
            "create person",
            f"person with email {email} already exists in tenant {tenant_id} (id={existing_id})",
        )


class DuplicateAliasError(StoreError):
    """Raised when an identical alias already exists for the person."""

    def __init__(self, person_id: int, alias_type: str, alias_value: str):
        self.person_id = person_id
        self.alias_type = alias_type
        self.alias_value = alias_value
        super().__init__("create alias", f"duplicate {alias_type} alias {alias_value!r} for person {person_id}")


class RecordNotFoundError(StoreError):
    """Raised when a mutation targets a rule, pattern, team or project that does not exist."""

    kind = "record"

    def __init__(self, operation: str, record_id: int):
        self.record_id = record_id
        super().__init__(operation, f"{self.kind} not found: {record_id}")


class FilterRuleNotFoundError(RecordNotFoundError):
    kind = "filter rule"


class TenantPatternNotFoundError(RecordNotFoundError):
    kind = "tenant pattern"


class TeamNotFoundError(RecordNotFoundError):
    kind = "team"


class TeamMemberNotFoundError(RecordNotFoundError):
    kind = "team member"


class ProjectNotFoundError(RecordNotFoundError):
    kind = "project"


class FilterBlockedError(EntityError):
    """
    Creation was refused on purpose.

    The message always starts with BLOCKED_PREFIX so callers can tell an
    expected non-creation from a genuine fault.
    """

    def __init__(self, email: str, reason: str = BLOCKED_REASON_FILTER_RULE):
        self.email = email
        self.reason = reason
        super().__init__(f"{BLOCKED_PREFIX} {reason}: {email}")


class DeadlineExceededError(EntityError):
    """The caller's deadline passed before or during a store operation."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"deadline exceeded during {operation}")


class OperationCancelledError(EntityError):
    """The caller cancelled before or during a store operation."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"operation cancelled during {operation}")
