"""
Entity API endpoints.

Resolve-or-create, review and lifecycle operations for people.
"""
import logging
from typing import NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from enrichment.services.account_type import AccountType
from enrichment.services.entity_resolver import Participant, resolver_for_tenant
from enrichment.services.errors import (
    DeadlineExceededError,
    FilterBlockedError,
    InvalidEmailError,
    OperationCancelledError,
    PersonConflictError,
    PersonNotFoundError,
    RecordNotFoundError,
)
from enrichment.services.person_entity import Person, PersonStore, get_person_store
from enrichment.utils.deadline import Deadline

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/entities", tags=["entities"])


def get_store() -> PersonStore:
    """Store dependency (overridden in tests)."""
    return get_person_store()


def raise_http_error(e: Exception) -> NoReturn:
    """Translate an entity error into an HTTPException. Re-raises anything else."""
    if isinstance(e, InvalidEmailError):
        raise HTTPException(status_code=400, detail=str(e)) from e
    if isinstance(e, FilterBlockedError):
        raise HTTPException(
            status_code=409,
            detail={"error": str(e), "blocked": True, "reason": e.reason},
        ) from e
    if isinstance(e, PersonConflictError):
        raise HTTPException(
            status_code=409,
            detail={"error": str(e), "retryable": True, "existing_id": e.existing_id},
        ) from e
    if isinstance(e, (PersonNotFoundError, RecordNotFoundError)):
        raise HTTPException(status_code=404, detail=str(e)) from e
    if isinstance(e, (DeadlineExceededError, OperationCancelledError)):
        raise HTTPException(status_code=504, detail=str(e)) from e
    if isinstance(e, ValueError):
        raise HTTPException(status_code=400, detail=str(e)) from e
    raise e


# ============================================================================
# Models
# ============================================================================


class PersonResponse(BaseModel):
    """Response model for a person."""
    id: int
    tenant_id: str
    canonical_name: str
    primary_email: str = ""
    title: Optional[str] = None
    department: Optional[str] = None
    company: Optional[str] = None
    is_internal: bool = False
    account_type: str = "person"
    confidence: float = 0.0
    needs_review: bool = False
    auto_created: bool = False
    reviewed_at: Optional[str] = None
    reviewed_by: Optional[str] = None
    is_rejected: bool = False
    rejected_at: Optional[str] = None
    rejected_reason: Optional[str] = None
    rejected_by: Optional[str] = None
    potential_duplicates: list[int] = []
    sent_count: int = 0
    received_count: int = 0
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class PeopleListResponse(BaseModel):
    people: list[PersonResponse]
    count: int


class AliasResponse(BaseModel):
    id: int
    person_id: int
    alias_type: str
    alias_value: str
    confidence: float
    source: str = ""
    discovered_at: Optional[str] = None


class AliasListResponse(BaseModel):
    aliases: list[AliasResponse]
    count: int


class ResolveRequest(BaseModel):
    """Request for entity resolution."""
    tenant_id: str
    email: str
    display_name: str = ""
    create_if_missing: bool = True
    timeout: Optional[float] = None  # seconds


class ResolveResponse(BaseModel):
    """Response from entity resolution."""
    found: bool
    is_new: bool = False
    confidence: float = 0.0
    source: str = ""
    person: Optional[PersonResponse] = None


class ParticipantModel(BaseModel):
    email: str = ""
    name: str = ""


class BatchResolveRequest(BaseModel):
    tenant_id: str
    participants: list[ParticipantModel]
    timeout: Optional[float] = None


class ResolvedParticipantResponse(BaseModel):
    email: str
    name: str = ""
    person_id: Optional[int] = None
    confidence: float = 0.0
    source: str = ""
    is_internal: Optional[bool] = None
    account_type: str = ""


class BatchResolveResponse(BaseModel):
    results: list[ResolvedParticipantResponse]
    resolved: int
    count: int


class StatsResponse(BaseModel):
    total_people: int
    total_rejected: int
    by_account_type: dict[str, int]
    by_confidence: dict[str, int]
    needing_review: int
    auto_created: int
    internal: int
    external: int


class ReviewRequest(BaseModel):
    tenant_id: str
    reviewed_by: str


class RejectRequest(BaseModel):
    tenant_id: str
    reason: str = ""
    rejected_by: str = ""


class RestoreRequest(BaseModel):
    tenant_id: str


class UpdateEntityRequest(BaseModel):
    """Fields to change; omitted fields are left alone."""
    tenant_id: str
    name: Optional[str] = None
    account_type: Optional[AccountType] = None
    title: Optional[str] = None
    company: Optional[str] = None


class BulkRejectRequest(BaseModel):
    tenant_id: str
    email_pattern: str = ""
    name_pattern: str = ""
    reason: str = ""
    rejected_by: str = ""


class BulkEnrichRequest(BaseModel):
    tenant_id: str
    domain: str
    company: str = ""
    is_internal: bool = False


class CountResponse(BaseModel):
    count: int


class StatusResponse(BaseModel):
    status: str
    person_id: int


def _person_to_response(person: Person) -> PersonResponse:
    return PersonResponse(**person.to_dict())


def _deadline(timeout: Optional[float]) -> Optional[Deadline]:
    return Deadline(timeout) if timeout is not None else None


# ============================================================================
# Resolution
# ============================================================================


@router.post("/resolve", response_model=ResolveResponse)
async def resolve_entity(request: ResolveRequest, store: PersonStore = Depends(get_store)) -> ResolveResponse:
    """
    Resolve an email (and display name) to a person.

    With create_if_missing (default) a person is created when none exists.
    Without it, an unknown address returns found=false.
    """
    deadline = _deadline(request.timeout)
    try:
        resolver = resolver_for_tenant(store, request.tenant_id)
        if request.create_if_missing:
            result = resolver.resolve_or_create(
                request.tenant_id, request.email, request.display_name, deadline=deadline
            )
        else:
            result = resolver.resolve(request.tenant_id, request.email, deadline=deadline)
    except Exception as e:
        raise_http_error(e)

    if result is None:
        return ResolveResponse(found=False)

    return ResolveResponse(
        found=True,
        is_new=result.is_new,
        confidence=result.confidence,
        source=result.source,
        person=_person_to_response(result.person),
    )


@router.post("/resolve/batch", response_model=BatchResolveResponse)
async def resolve_participants(
    request: BatchResolveRequest,
    store: PersonStore = Depends(get_store),
) -> BatchResolveResponse:
    """Resolve every participant of one message. Participants without an email are skipped."""
    participants = [Participant(email=p.email, name=p.name) for p in request.participants]
    try:
        resolver = resolver_for_tenant(store, request.tenant_id)
        resolved = resolver.resolve_participants(
            request.tenant_id, participants, deadline=_deadline(request.timeout)
        )
    except Exception as e:
        raise_http_error(e)

    results = [ResolvedParticipantResponse(**r.to_dict()) for r in resolved]
    return BatchResolveResponse(
        results=results,
        resolved=sum(1 for r in resolved if r.resolved),
        count=len(results),
    )


# ============================================================================
# Listing and statistics
# ============================================================================


@router.get("/stats", response_model=StatsResponse)
async def get_stats(tenant_id: str = Query(...), store: PersonStore = Depends(get_store)):
    """Entity statistics for a tenant."""
    return StatsResponse(**store.get_entity_stats(tenant_id).to_dict())


@router.get("/review/queue", response_model=PeopleListResponse)
async def get_review_queue(
    tenant_id: str = Query(...),
    limit: int = Query(default=100, ge=1, le=1000),
    store: PersonStore = Depends(get_store),
):
    """People waiting for review, oldest first."""
    people = store.list_people_needing_review(tenant_id, limit)
    return PeopleListResponse(people=[_person_to_response(p) for p in people], count=len(people))


@router.get("/search", response_model=PeopleListResponse)
async def search_entities(
    tenant_id: str = Query(...),
    q: str = Query(..., min_length=1, description="Substring to search for"),
    field: str = Query(default="", description="'name', 'email', or empty for both"),
    limit: int = Query(default=100, ge=1, le=1000),
    store: PersonStore = Depends(get_store),
):
    """Search people by name or email substring, rejected people included."""
    try:
        people = store.search_entities(tenant_id, q, field, limit)
    except Exception as e:
        raise_http_error(e)
    return PeopleListResponse(people=[_person_to_response(p) for p in people], count=len(people))


@router.post("/bulk-reject", response_model=CountResponse)
async def bulk_reject(request: BulkRejectRequest, store: PersonStore = Depends(get_store)):
    """Reject every active person matching an email or name LIKE pattern."""
    try:
        count = store.bulk_reject_by_pattern(
            request.tenant_id,
            email_pattern=request.email_pattern,
            name_pattern=request.name_pattern,
            reason=request.reason,
            rejected_by=request.rejected_by,
        )
    except Exception as e:
        raise_http_error(e)
    return CountResponse(count=count)


@router.post("/bulk-enrich", response_model=CountResponse)
async def bulk_enrich(request: BulkEnrichRequest, store: PersonStore = Depends(get_store)):
    """Set company and internal flag for everyone at a domain."""
    try:
        count = store.bulk_enrich_by_domain(
            request.tenant_id, request.domain, company=request.company, is_internal=request.is_internal
        )
    except Exception as e:
        raise_http_error(e)
    return CountResponse(count=count)


# ============================================================================
# Single person
# ============================================================================


@router.get("/{person_id}", response_model=PersonResponse)
async def get_entity(person_id: int, tenant_id: str = Query(...), store: PersonStore = Depends(get_store)):
    """Get a person of the tenant by id."""
    person = store.get_person_by_id(tenant_id, person_id)
    if not person:
        raise HTTPException(status_code=404, detail=f"Person {person_id} not found")
    return _person_to_response(person)


@router.get("/{person_id}/aliases", response_model=AliasListResponse)
async def get_entity_aliases(person_id: int, tenant_id: str = Query(...), store: PersonStore = Depends(get_store)):
    """Aliases of a person, highest confidence first."""
    if not store.get_person_by_id(tenant_id, person_id):
        raise HTTPException(status_code=404, detail=f"Person {person_id} not found")
    aliases = store.get_aliases_for_person(person_id)
    return AliasListResponse(
        aliases=[AliasResponse(**a.to_dict()) for a in aliases],
        count=len(aliases),
    )


@router.post("/{person_id}/review", response_model=StatusResponse)
async def review_entity(person_id: int, request: ReviewRequest, store: PersonStore = Depends(get_store)):
    """Mark a person as reviewed."""
    try:
        store.mark_person_reviewed(request.tenant_id, person_id, request.reviewed_by)
    except Exception as e:
        raise_http_error(e)
    return StatusResponse(status="reviewed", person_id=person_id)


@router.post("/{person_id}/reject", response_model=StatusResponse)
async def reject_entity(person_id: int, request: RejectRequest, store: PersonStore = Depends(get_store)):
    """Soft-delete a person."""
    try:
        store.reject_person(request.tenant_id, person_id, request.reason, request.rejected_by)
    except Exception as e:
        raise_http_error(e)
    return StatusResponse(status="rejected", person_id=person_id)


@router.post("/{person_id}/restore", response_model=StatusResponse)
async def restore_entity(person_id: int, request: RestoreRequest, store: PersonStore = Depends(get_store)):
    """Undo a rejection."""
    try:
        store.restore_person(request.tenant_id, person_id)
    except Exception as e:
        raise_http_error(e)
    return StatusResponse(status="restored", person_id=person_id)


@router.patch("/{person_id}", response_model=PersonResponse)
async def update_entity(person_id: int, request: UpdateEntityRequest, store: PersonStore = Depends(get_store)):
    """Update name, account type, title or company."""
    try:
        store.update_entity_fields(
            request.tenant_id,
            person_id,
            name=request.name,
            account_type=request.account_type,
            title=request.title,
            company=request.company,
        )
    except Exception as e:
        raise_http_error(e)
    return _person_to_response(store.get_person_by_id(request.tenant_id, person_id))


@router.delete("/{person_id}", response_model=StatusResponse)
async def delete_entity(person_id: int, tenant_id: str = Query(...), store: PersonStore = Depends(get_store)):
    """Permanently delete a person with its aliases and duplicate references."""
    try:
        store.delete_person(tenant_id, person_id)
    except Exception as e:
        raise_http_error(e)
    return StatusResponse(status="deleted", person_id=person_id)
