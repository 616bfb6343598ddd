"""
Entity Resolver - resolve-or-create for email identities.

Protocol:
1. Lookup - exact primary-email match, then alias match
2. ExactMatch - best-effort repairs (canonical name, display-name alias,
   account type), then return
3. AliasMatch - return as is
4. NotFound - flag potential duplicates, check filter rules (fail-open),
   derive a name, classify, create the person and its aliases

Repairs and alias writes never fail a resolution; their errors are logged.

Concurrent creates for the same unseen (tenant, email) are settled by the
store: the losing call gets a retryable PersonConflictError and should
resolve again, which lands on ExactMatch.
"""
import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from config.resolution_weights import (
    ALIAS_SOURCE_AUTO_CREATED,
    ALIAS_SOURCE_EMAIL_HEADER,
    BASE_CONFIDENCE,
    DISPLAY_NAME_ALIAS_CONFIDENCE,
    EMAIL_ALIAS_CONFIDENCE,
    INTERNAL_CONFIDENCE,
    NON_PERSON_CONFIDENCE,
    POTENTIAL_DUPLICATE_THRESHOLD,
)
from config.settings import settings
from enrichment.services.account_type import AccountType, AccountTypePatterns, detect_account_type
from enrichment.services.errors import (
    BLOCKED_REASON_REJECTED,
    DeadlineExceededError,
    DuplicateAliasError,
    EntityError,
    FilterBlockedError,
    InvalidEmailError,
    OperationCancelledError,
    PersonConflictError,
)
from enrichment.services.normalize import (
    derive_name_from_email,
    extract_domain,
    is_internal_domain,
    normalize_display_name,
)
from enrichment.services.person_entity import AliasType, EntityStore, Person, PersonAlias, PersonStore
from enrichment.services.similarity import name_similarity
from enrichment.utils.deadline import Deadline

logger = logging.getLogger(__name__)


class ResolutionState(str, Enum):
    """
    Resolver states.

    The values of the three terminal successes double as the result source tag.
    """

    EXACT_MATCH = "exact_match"
    ALIAS_MATCH = "alias"
    NOT_FOUND = "not_found"
    BLOCKED = "blocked"
    CREATED = "auto_created"


@dataclass
class ResolutionResult:
    """Result of entity resolution. Not persisted."""

    person: Person
    confidence: float
    source: str  # "exact_match", "alias", "auto_created"
    is_new: bool = False

    def to_dict(self) -> dict:
        return {
            "person": self.person.to_dict(),
            "confidence": self.confidence,
            "source": self.source,
            "is_new": self.is_new,
        }


@dataclass
class Participant:
    """A sender or recipient seen on a message."""

    email: str
    name: str = ""


@dataclass
class ResolvedParticipant:
    """A participant joined with its resolution. person_id is None when resolution failed."""

    participant: Participant
    person_id: Optional[int] = None
    confidence: float = 0.0
    source: str = ""
    is_internal: Optional[bool] = None
    account_type: str = ""

    @property
    def resolved(self) -> bool:
        return self.person_id is not None

    def to_dict(self) -> dict:
        return {
            "email": self.participant.email,
            "name": self.participant.name,
            "person_id": self.person_id,
            "confidence": self.confidence,
            "source": self.source,
            "is_internal": self.is_internal,
            "account_type": self.account_type,
        }


def validate_email(email: Optional[str]) -> str:
    """
    Return the lookup key for an email: trimmed and lowercased.

    Raises:
        InvalidEmailError: empty, or not exactly one '@' with both sides non-empty
    """
    key = (email or "").strip().lower()
    if not extract_domain(key):
        raise InvalidEmailError(email)
    return key


class EntityResolver:
    """
    Resolves (tenant, email, display name) to a Person, creating one if needed.

    Holds no mutable state; one instance can serve concurrent calls.
    """

    def __init__(
        self,
        store: EntityStore,
        internal_domains: Optional[list[str]] = None,
        tenant_patterns: Optional[AccountTypePatterns] = None,
        duplicate_search_limit: Optional[int] = None,
    ):
        """
        Initialize the resolver.

        Args:
            store: Entity store
            internal_domains: Domains whose addresses are internal (subdomains included)
            tenant_patterns: Extra account-type patterns, merged with the defaults
            duplicate_search_limit: Max name-search candidates checked for duplicates
        """
        self._store = store
        self.internal_domains = [d.lower() for d in (internal_domains or [])]
        self.tenant_patterns = tenant_patterns
        self.duplicate_search_limit = duplicate_search_limit or settings.duplicate_search_limit

    @property
    def store(self) -> EntityStore:
        return self._store

    def classify(self, email: str, display_name: str = "") -> AccountType:
        """Account type under this resolver's patterns."""
        return detect_account_type(email, display_name, self.tenant_patterns)

    # ==================== Public operations ====================

    def resolve(
        self,
        tenant_id: str,
        email: str,
        deadline: Optional[Deadline] = None,
    ) -> Optional[ResolutionResult]:
        """
        Lookup only: exact match, then alias. Never creates or repairs.

        Returns:
            ResolutionResult, or None if nothing matches
        """
        key = validate_email(email)
        state, person = self._lookup(tenant_id, key, deadline)
        if state is ResolutionState.NOT_FOUND:
            return None
        return ResolutionResult(person=person, confidence=person.confidence, source=state.value)

    def resolve_or_create(
        self,
        tenant_id: str,
        email: str,
        display_name: str = "",
        deadline: Optional[Deadline] = None,
    ) -> ResolutionResult:
        """
        Resolve an email to a person, creating one if none exists.

        Args:
            tenant_id: Tenant scope
            email: Email address as seen on the message
            display_name: Display name as seen on the message (may be empty)
            deadline: Optional deadline/cancellation for store calls

        Returns:
            ResolutionResult

        Raises:
            InvalidEmailError: malformed email
            FilterBlockedError: creation refused by a filter rule, or the
                address belongs to a rejected person
            PersonConflictError: lost a concurrent create; resolve again
            StoreError: lookup or create failed
        """
        key = validate_email(email)
        display_name = (display_name or "").strip()

        state, person = self._lookup(tenant_id, key, deadline)

        if state is ResolutionState.EXACT_MATCH:
            self._repair(person, key, display_name, deadline)
            return ResolutionResult(person=person, confidence=person.confidence, source=state.value)

        if state is ResolutionState.ALIAS_MATCH:
            return ResolutionResult(person=person, confidence=person.confidence, source=state.value)

        return self._create(tenant_id, key, email.strip(), display_name, deadline)

    def resolve_participants(
        self,
        tenant_id: str,
        participants: list[Participant],
        max_workers: Optional[int] = None,
        deadline: Optional[Deadline] = None,
    ) -> list[ResolvedParticipant]:
        """
        Resolve every participant of one message.

        Participants without an email are skipped. The rest are resolved
        independently on a thread pool and returned in input order. A failure
        for one participant yields an unresolved entry and does not affect the
        others; a lost create race is retried once.

        Raises:
            DeadlineExceededError, OperationCancelledError: the caller gave up
        """
        with_email = [p for p in participants if p.email and p.email.strip()]
        if not with_email:
            return []

        workers = max(1, min(max_workers or settings.batch_workers, len(with_email)))
        results: list[Optional[ResolvedParticipant]] = [None] * len(with_email)

        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                executor.submit(self._resolve_participant, tenant_id, p, deadline): i
                for i, p in enumerate(with_email)
            }
            for future, index in futures.items():
                results[index] = future.result()

        return results

    # ==================== States ====================

    def _lookup(
        self,
        tenant_id: str,
        email: str,
        deadline: Optional[Deadline],
    ) -> tuple[ResolutionState, Optional[Person]]:
        """Lookup -> ExactMatch | AliasMatch | NotFound. Store errors propagate."""
        person = self._store.get_person_by_email(tenant_id, email, deadline=deadline)
        if person is not None:
            return ResolutionState.EXACT_MATCH, person

        person = self._store.get_person_by_alias(tenant_id, email, deadline=deadline)
        if person is not None:
            return ResolutionState.ALIAS_MATCH, person

        return ResolutionState.NOT_FOUND, None

    def _repair(
        self,
        person: Person,
        email: str,
        display_name: str,
        deadline: Optional[Deadline],
    ) -> None:
        """Best-effort fixes on an exact match. Each failure is logged and ignored."""
        # Canonical name that is still a bare email gets the real name
        if display_name and "@" in person.canonical_name:
            old_name = person.canonical_name
            logger.info(
                f"Updating canonical_name from email to display name for person {person.id} "
                f"({email}): {old_name!r} -> {display_name!r}"
            )
            person.canonical_name = display_name
            try:
                self._store.update_person(person, deadline=deadline)
            except EntityError as e:
                logger.warning(f"Failed to update canonical_name for person {person.id}: {e}")
                person.canonical_name = old_name

        if display_name and display_name != person.canonical_name:
            self._add_display_name_alias(person.id, display_name, deadline)

        # Heal records classified before the pattern set changed
        current_type = self.classify(email, display_name)
        if current_type != person.account_type:
            old_type = person.account_type
            logger.info(
                f"Updating stale account_type for person {person.id} ({email}): "
                f"{old_type} -> {current_type}"
            )
            person.account_type = current_type
            try:
                self._store.update_person(person, deadline=deadline)
            except EntityError as e:
                logger.warning(f"Failed to update account_type for person {person.id}: {e}")
                person.account_type = old_type

    def _find_potential_duplicates(
        self,
        tenant_id: str,
        display_name: str,
        deadline: Optional[Deadline],
    ) -> list[int]:
        """Ids of people whose names closely match. Search failures are logged and ignored."""
        if not display_name:
            return []
        try:
            candidates = self._store.search_people_by_name(
                tenant_id, display_name, self.duplicate_search_limit, deadline=deadline
            )
        except (DeadlineExceededError, OperationCancelledError):
            raise
        except EntityError as e:
            logger.warning(f"Failed to search for duplicates of {display_name!r}: {e}")
            return []

        return [
            c.id for c in candidates
            if name_similarity(display_name, c.canonical_name) > POTENTIAL_DUPLICATE_THRESHOLD
        ]

    def _filter_state(
        self,
        tenant_id: str,
        email: str,
        display_name: str,
        deadline: Optional[Deadline],
    ) -> ResolutionState:
        """NotFound -> Blocked, or NotFound to proceed. Fails open on store errors."""
        try:
            matched = self._store.matches_filter_rule(tenant_id, email, display_name, deadline=deadline)
        except (DeadlineExceededError, OperationCancelledError):
            raise
        except EntityError as e:
            logger.warning(f"Failed to check filter rules for {email}, allowing creation: {e}")
            return ResolutionState.NOT_FOUND

        if matched:
            logger.info(f"Entity creation blocked by filter rule: {email} ({display_name!r})")
            return ResolutionState.BLOCKED
        return ResolutionState.NOT_FOUND

    def _create(
        self,
        tenant_id: str,
        email: str,
        raw_email: str,
        display_name: str,
        deadline: Optional[Deadline],
    ) -> ResolutionResult:
        """NotFound -> Blocked | Created."""
        potential_duplicates = self._find_potential_duplicates(tenant_id, display_name, deadline)

        if self._filter_state(tenant_id, email, display_name, deadline) is ResolutionState.BLOCKED:
            raise FilterBlockedError(email)

        # Derive from the address as supplied so camelCase survives
        canonical_name = (
            normalize_display_name(display_name)
            or derive_name_from_email(raw_email)
            or raw_email
        )

        account_type = self.classify(email, display_name)
        is_internal = is_internal_domain(email, self.internal_domains)

        confidence = INTERNAL_CONFIDENCE if is_internal else BASE_CONFIDENCE
        if account_type != AccountType.PERSON:
            confidence = NON_PERSON_CONFIDENCE

        person = Person(
            tenant_id=tenant_id,
            canonical_name=canonical_name,
            primary_email=email,
            is_internal=is_internal,
            account_type=account_type,
            confidence=confidence,
            needs_review=account_type == AccountType.PERSON,
            auto_created=True,
            potential_duplicates=potential_duplicates,
        )

        try:
            self._store.create_person(person, deadline=deadline)
        except PersonConflictError as e:
            if e.existing_rejected:
                logger.info(f"Entity creation blocked, {email} belongs to rejected person {e.existing_id}")
                raise FilterBlockedError(email, reason=BLOCKED_REASON_REJECTED) from e
            logger.warning(f"Lost create race for {email} in tenant {tenant_id}, existing person {e.existing_id}")
            raise

        try:
            self._store.create_alias(PersonAlias(
                person_id=person.id,
                alias_type=AliasType.EMAIL,
                alias_value=email,
                confidence=EMAIL_ALIAS_CONFIDENCE,
                source=ALIAS_SOURCE_AUTO_CREATED,
            ), deadline=deadline)
        except EntityError as e:
            logger.warning(f"Failed to create email alias for person {person.id}: {e}")

        if display_name and display_name != canonical_name:
            self._add_display_name_alias(person.id, display_name, deadline)

        logger.debug(
            f"Created person {person.id}: email={email} name={canonical_name!r} "
            f"account_type={account_type} internal={is_internal} "
            f"potential_duplicates={len(potential_duplicates)}"
        )

        return ResolutionResult(
            person=person,
            confidence=confidence,
            source=ResolutionState.CREATED.value,
            is_new=True,
        )

    # ==================== Helpers ====================

    def _add_display_name_alias(self, person_id: int, display_name: str,
                                deadline: Optional[Deadline]) -> None:
        try:
            self._store.create_alias(PersonAlias(
                person_id=person_id,
                alias_type=AliasType.DISPLAY_NAME,
                alias_value=display_name,
                confidence=DISPLAY_NAME_ALIAS_CONFIDENCE,
                source=ALIAS_SOURCE_EMAIL_HEADER,
            ), deadline=deadline)
        except DuplicateAliasError:
            logger.debug(f"Display name alias {display_name!r} already exists for person {person_id}")
        except EntityError as e:
            logger.warning(f"Failed to add display name alias for person {person_id}: {e}")

    def _resolve_participant(
        self,
        tenant_id: str,
        participant: Participant,
        deadline: Optional[Deadline],
    ) -> ResolvedParticipant:
        try:
            try:
                result = self.resolve_or_create(tenant_id, participant.email, participant.name, deadline)
            except PersonConflictError:
                # The winner's record now exists; a second pass finds it
                result = self.resolve_or_create(tenant_id, participant.email, participant.name, deadline)
        except (DeadlineExceededError, OperationCancelledError):
            raise
        except FilterBlockedError as e:
            logger.info(f"Participant not resolved: {e}")
            return ResolvedParticipant(participant=participant)
        except EntityError as e:
            logger.warning(f"Failed to resolve participant {participant.email}: {e}")
            return ResolvedParticipant(participant=participant)

        return ResolvedParticipant(
            participant=participant,
            person_id=result.person.id,
            confidence=result.confidence,
            source=result.source,
            is_internal=result.person.is_internal,
            account_type=str(result.person.account_type),
        )


def resolver_for_tenant(store: PersonStore, tenant_id: str) -> EntityResolver:
    """
    Build a resolver configured for one tenant.

    Internal domains come from settings, extra account-type patterns from
    the store's tenant pattern registry.
    """
    return EntityResolver(
        store,
        internal_domains=settings.internal_domains,
        tenant_patterns=store.get_account_type_patterns(tenant_id),
        duplicate_search_limit=settings.duplicate_search_limit,
    )
