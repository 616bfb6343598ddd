"""
Team and project endpoints.

Teams group people; projects attach people directly or through whole teams.
"""
import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from enrichment.routes.entities import get_store, raise_http_error
from enrichment.services.person_entity import PersonStore, Project, ProjectMember, Team, TeamMember

logger = logging.getLogger(__name__)

teams_router = APIRouter(prefix="/api/teams", tags=["teams"])
projects_router = APIRouter(prefix="/api/projects", tags=["projects"])


class TeamRequest(BaseModel):
    tenant_id: str
    name: str
    description: str = ""


class TeamMemberRequest(BaseModel):
    tenant_id: str
    person_id: int
    role: str = ""


class TeamMemberPerson(BaseModel):
    id: int
    canonical_name: str
    primary_email: str = ""


class TeamMemberResponse(BaseModel):
    id: int
    team_id: int
    person_id: int
    role: str = ""
    joined_at: Optional[str] = None
    person: Optional[TeamMemberPerson] = None


class TeamResponse(BaseModel):
    id: int
    tenant_id: str
    name: str
    description: str = ""
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    members: list[TeamMemberResponse] = []


class TeamListResponse(BaseModel):
    teams: list[TeamResponse]
    count: int


class ProjectRequest(BaseModel):
    tenant_id: str
    name: str
    description: str = ""
    keywords: list[str] = []
    jira_projects: list[str] = []


class ProjectMemberRequest(BaseModel):
    """Exactly one of person_id and team_id."""
    tenant_id: str
    person_id: Optional[int] = None
    team_id: Optional[int] = None
    role: str = ""


class ProjectMemberResponse(BaseModel):
    id: int
    project_id: int
    person_id: Optional[int] = None
    team_id: Optional[int] = None
    role: str = ""
    added_at: Optional[str] = None


class ProjectResponse(BaseModel):
    id: int
    tenant_id: str
    name: str
    description: str = ""
    keywords: list[str] = []
    jira_projects: list[str] = []
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    member_ids: list[int] = []


class ProjectListResponse(BaseModel):
    projects: list[ProjectResponse]
    count: int


class DeletedResponse(BaseModel):
    status: str
    id: int


def _team_to_response(team: Team) -> TeamResponse:
    data = team.to_dict()
    for member in data["members"]:
        person = member["person"]
        if person:
            member["person"] = {k: person[k] for k in ("id", "canonical_name", "primary_email")}
    return TeamResponse(**data)


# ============================================================================
# Teams
# ============================================================================


@teams_router.get("", response_model=TeamListResponse)
async def list_teams(
    tenant_id: str = Query(...),
    q: str = Query(default="", description="Case-insensitive name substring"),
    limit: int = Query(default=100, ge=1, le=1000),
    offset: int = Query(default=0, ge=0),
    store: PersonStore = Depends(get_store),
):
    teams = store.list_teams(tenant_id, q, limit, offset)
    return TeamListResponse(teams=[_team_to_response(t) for t in teams], count=len(teams))


@teams_router.post("", response_model=TeamResponse)
async def create_team(request: TeamRequest, store: PersonStore = Depends(get_store)):
    """Create a team. Names are unique per tenant."""
    if store.get_team_by_name(request.tenant_id, request.name.strip()):
        raise HTTPException(status_code=409, detail=f"Team {request.name.strip()!r} already exists")
    team = Team(tenant_id=request.tenant_id, name=request.name, description=request.description)
    try:
        store.create_team(team)
    except Exception as e:
        raise_http_error(e)
    return _team_to_response(team)


@teams_router.get("/{team_id}", response_model=TeamResponse)
async def get_team(team_id: int, tenant_id: str = Query(...), store: PersonStore = Depends(get_store)):
    """Get a team with its members."""
    team = store.get_team_by_id(tenant_id, team_id, include_members=True)
    if not team:
        raise HTTPException(status_code=404, detail=f"Team {team_id} not found")
    return _team_to_response(team)


@teams_router.delete("/{team_id}", response_model=DeletedResponse)
async def delete_team(team_id: int, tenant_id: str = Query(...), store: PersonStore = Depends(get_store)):
    try:
        store.delete_team(tenant_id, team_id)
    except Exception as e:
        raise_http_error(e)
    return DeletedResponse(status="deleted", id=team_id)


@teams_router.post("/{team_id}/members", response_model=TeamMemberResponse)
async def add_team_member(team_id: int, request: TeamMemberRequest, store: PersonStore = Depends(get_store)):
    """Add a person to a team, or change their role if already a member."""
    member = TeamMember(team_id=team_id, person_id=request.person_id, role=request.role)
    try:
        store.add_team_member(request.tenant_id, member)
    except Exception as e:
        raise_http_error(e)
    return TeamMemberResponse(**member.to_dict())


@teams_router.delete("/members/{member_id}", response_model=DeletedResponse)
async def remove_team_member(member_id: int, tenant_id: str = Query(...), store: PersonStore = Depends(get_store)):
    try:
        store.remove_team_member(tenant_id, member_id)
    except Exception as e:
        raise_http_error(e)
    return DeletedResponse(status="deleted", id=member_id)


# ============================================================================
# Projects
# ============================================================================


def _project_to_response(project: Project, store: PersonStore) -> ProjectResponse:
    return ProjectResponse(
        **project.to_dict(),
        member_ids=store.get_project_member_ids(project.tenant_id, project.id),
    )


@projects_router.post("", response_model=ProjectResponse)
async def create_project(request: ProjectRequest, store: PersonStore = Depends(get_store)):
    """Create a project. Names are unique per tenant."""
    if store.get_project_by_name(request.tenant_id, request.name.strip()):
        raise HTTPException(status_code=409, detail=f"Project {request.name.strip()!r} already exists")
    project = Project(
        tenant_id=request.tenant_id,
        name=request.name,
        description=request.description,
        keywords=request.keywords,
        jira_projects=request.jira_projects,
    )
    try:
        store.create_project(project)
    except Exception as e:
        raise_http_error(e)
    return _project_to_response(project, store)


@projects_router.get("/with-keywords", response_model=ProjectListResponse)
async def list_projects_with_keywords(tenant_id: str = Query(...), store: PersonStore = Depends(get_store)):
    """Projects that define keywords, for matching mentions in message text."""
    projects = store.get_projects_with_keywords(tenant_id)
    return ProjectListResponse(
        projects=[_project_to_response(p, store) for p in projects],
        count=len(projects),
    )


@projects_router.get("/by-jira-key/{jira_key}", response_model=ProjectResponse)
async def get_project_by_jira_key(jira_key: str, tenant_id: str = Query(...), store: PersonStore = Depends(get_store)):
    project = store.get_project_by_jira_key(tenant_id, jira_key)
    if not project:
        raise HTTPException(status_code=404, detail=f"No project for Jira key {jira_key}")
    return _project_to_response(project, store)


@projects_router.get("/{project_id}", response_model=ProjectResponse)
async def get_project(project_id: int, tenant_id: str = Query(...), store: PersonStore = Depends(get_store)):
    """Get a project with the ids of everyone on it, directly or through a team."""
    project = store.get_project_by_id(tenant_id, project_id)
    if not project:
        raise HTTPException(status_code=404, detail=f"Project {project_id} not found")
    return _project_to_response(project, store)


@projects_router.post("/{project_id}/members", response_model=ProjectMemberResponse)
async def add_project_member(project_id: int, request: ProjectMemberRequest, store: PersonStore = Depends(get_store)):
    """Attach a person or a whole team to a project."""
    member = ProjectMember(
        project_id=project_id,
        person_id=request.person_id,
        team_id=request.team_id,
        role=request.role,
    )
    try:
        store.add_project_member(request.tenant_id, member)
    except Exception as e:
        raise_http_error(e)
    return ProjectMemberResponse(**member.to_dict())
