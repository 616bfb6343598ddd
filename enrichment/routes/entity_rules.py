"""
Filter rule and tenant pattern endpoints.

Filter rules block auto-creation of matching people. Tenant patterns add
account-type patterns on top of the built-in defaults.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from enrichment.routes.entities import get_store, raise_http_error
from enrichment.services.person_entity import EntityFilterRule, PersonStore

logger = logging.getLogger(__name__)

filters_router = APIRouter(prefix="/api/entities/filters", tags=["entity-filters"])
patterns_router = APIRouter(prefix="/api/entities/patterns", tags=["entity-patterns"])


class FilterRuleRequest(BaseModel):
    """Request to create a filter rule. Patterns use LIKE syntax (% and _)."""
    tenant_id: str
    email_pattern: Optional[str] = None
    name_pattern: Optional[str] = None
    entity_type: Optional[str] = None
    reason: str = ""
    created_by: Optional[str] = None


class FilterRuleResponse(BaseModel):
    id: int
    tenant_id: str
    email_pattern: Optional[str] = None
    name_pattern: Optional[str] = None
    entity_type: Optional[str] = None
    reason: str = ""
    created_by: Optional[str] = None
    created_at: Optional[str] = None


class FilterRuleListResponse(BaseModel):
    rules: list[FilterRuleResponse]
    count: int


class FilterTestRequest(BaseModel):
    tenant_id: str
    email: str = ""
    name: str = ""


class FilterTestResponse(BaseModel):
    matches: bool
    rules: list[FilterRuleResponse]


class TenantPatternRequest(BaseModel):
    tenant_id: str
    pattern: str
    pattern_type: str  # bot, distribution, role, external_domain


class TenantPatternResponse(BaseModel):
    id: int
    tenant_id: str
    pattern: str
    pattern_type: str
    created_at: Optional[str] = None


class TenantPatternListResponse(BaseModel):
    patterns: list[TenantPatternResponse]
    count: int


class DeletedResponse(BaseModel):
    status: str
    id: int


# ============================================================================
# Filter rules
# ============================================================================


@filters_router.get("", response_model=FilterRuleListResponse)
async def list_filter_rules(tenant_id: str = Query(...), store: PersonStore = Depends(get_store)):
    """Filter rules of a tenant, newest first."""
    rules = store.list_filter_rules(tenant_id)
    return FilterRuleListResponse(
        rules=[FilterRuleResponse(**r.to_dict()) for r in rules],
        count=len(rules),
    )


@filters_router.post("", response_model=FilterRuleResponse)
async def create_filter_rule(request: FilterRuleRequest, store: PersonStore = Depends(get_store)):
    """Create a filter rule. At least one of email_pattern and name_pattern is required."""
    rule = EntityFilterRule(
        tenant_id=request.tenant_id,
        email_pattern=request.email_pattern,
        name_pattern=request.name_pattern,
        entity_type=request.entity_type,
        reason=request.reason,
        created_by=request.created_by,
    )
    try:
        store.create_filter_rule(rule)
    except Exception as e:
        raise_http_error(e)
    return FilterRuleResponse(**rule.to_dict())


@filters_router.post("/test", response_model=FilterTestResponse)
async def test_filter_rules(request: FilterTestRequest, store: PersonStore = Depends(get_store)):
    """Show which rules an email/name would match."""
    rules = store.test_filter_rule(request.tenant_id, request.email.strip().lower(), request.name)
    return FilterTestResponse(
        matches=bool(rules),
        rules=[FilterRuleResponse(**r.to_dict()) for r in rules],
    )


@filters_router.delete("/{rule_id}", response_model=DeletedResponse)
async def delete_filter_rule(rule_id: int, tenant_id: str = Query(...), store: PersonStore = Depends(get_store)):
    try:
        store.delete_filter_rule(tenant_id, rule_id)
    except Exception as e:
        raise_http_error(e)
    return DeletedResponse(status="deleted", id=rule_id)


# ============================================================================
# Tenant account-type patterns
# ============================================================================


@patterns_router.get("", response_model=TenantPatternListResponse)
async def list_tenant_patterns(tenant_id: str = Query(...), store: PersonStore = Depends(get_store)):
    patterns = store.list_tenant_patterns(tenant_id)
    return TenantPatternListResponse(
        patterns=[TenantPatternResponse(**p.to_dict()) for p in patterns],
        count=len(patterns),
    )


@patterns_router.post("", response_model=TenantPatternResponse)
async def add_tenant_pattern(request: TenantPatternRequest, store: PersonStore = Depends(get_store)):
    """Add an account-type pattern. Takes effect on the next resolution for the tenant."""
    try:
        pattern = store.add_tenant_pattern(request.tenant_id, request.pattern, request.pattern_type)
    except Exception as e:
        raise_http_error(e)
    return TenantPatternResponse(**pattern.to_dict())


@patterns_router.delete("/{pattern_id}", response_model=DeletedResponse)
async def delete_tenant_pattern(pattern_id: int, tenant_id: str = Query(...), store: PersonStore = Depends(get_store)):
    try:
        store.delete_tenant_pattern(tenant_id, pattern_id)
    except Exception as e:
        raise_http_error(e)
    return DeletedResponse(status="deleted", id=pattern_id)
