"""
Person entities and their SQLite store.

A Person is the canonical identity an email address resolves to. Secondary
pointers (other emails, display names, chat ids) are PersonAlias rows.

Primary identifier: (tenant_id, primary_email), unique per tenant.
Soft delete: rejected_at is set; rejected people are invisible to the
resolution lookups (email, alias, name search) but kept on disk.
"""
import json
import logging
import sqlite3
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Iterator, Optional, Protocol

from config.resolution_weights import HIGH_CONFIDENCE, MEDIUM_CONFIDENCE
from config.settings import settings
from enrichment.services.account_type import (
    PATTERN_TYPE_BOT,
    PATTERN_TYPE_DISTRIBUTION,
    PATTERN_TYPE_EXTERNAL_DOMAIN,
    PATTERN_TYPE_ROLE,
    PATTERN_TYPES,
    AccountType,
    AccountTypePatterns,
)
from enrichment.services.errors import (
    DuplicateAliasError,
    FilterRuleNotFoundError,
    PersonConflictError,
    PersonNotFoundError,
    ProjectNotFoundError,
    StoreError,
    TeamMemberNotFoundError,
    TeamNotFoundError,
    TenantPatternNotFoundError,
)
from enrichment.utils.datetime_utils import parse_timestamp, utc_now
from enrichment.utils.db_paths import get_entity_db_path
from enrichment.utils.deadline import Deadline

logger = logging.getLogger(__name__)

# Lookups and listings never return more than this many rows
MAX_QUERY_LIMIT = 1000
DEFAULT_QUERY_LIMIT = 100

# SQLite progress handler granularity (VM instructions between deadline checks)
PROGRESS_HANDLER_STEPS = 1000


class AliasType(str, Enum):
    """Kinds of secondary identity pointer."""

    EMAIL = "email"
    SLACK_ID = "slack_id"
    NAME = "name"
    DISPLAY_NAME = "display_name"

    def __str__(self) -> str:
        return self.value


def _clamp_limit(limit: int) -> int:
    if limit <= 0 or limit > MAX_QUERY_LIMIT:
        return DEFAULT_QUERY_LIMIT
    return limit


def _escape_like(value: str) -> str:
    """Escape LIKE wildcards so user text matches literally (use with ESCAPE '\\')."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass
class PersonAlias:
    """A secondary identity pointer resolving to exactly one Person."""

    person_id: int
    alias_type: AliasType
    alias_value: str
    confidence: float = 1.0
    source: str = ""
    id: Optional[int] = None
    discovered_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        """Convert to dict for JSON serialization."""
        data = asdict(self)
        data["alias_type"] = str(self.alias_type)
        data["discovered_at"] = _iso(self.discovered_at)
        return data

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "PersonAlias":
        """Create PersonAlias from a person_aliases row."""
        return cls(
            id=row["id"],
            person_id=row["person_id"],
            alias_type=AliasType(row["alias_type"]),
            alias_value=row["alias_value"],
            confidence=row["confidence"],
            source=row["source"] or "",
            discovered_at=parse_timestamp(row["discovered_at"]),
        )


@dataclass
class Person:
    """
    Canonical identity record.

    id, created_at and updated_at are assigned by the store.
    """

    tenant_id: str
    canonical_name: str
    primary_email: str = ""
    id: Optional[int] = None

    # Professional info
    title: Optional[str] = None
    department: Optional[str] = None
    company: Optional[str] = None

    # Classification
    is_internal: bool = False
    account_type: AccountType = AccountType.PERSON
    confidence: float = 0.0

    # Review
    needs_review: bool = False
    auto_created: bool = False
    reviewed_at: Optional[datetime] = None
    reviewed_by: Optional[str] = None

    # Soft delete
    rejected_at: Optional[datetime] = None
    rejected_reason: Optional[str] = None
    rejected_by: Optional[str] = None

    # Advisory only, never auto-merged
    potential_duplicates: list[int] = field(default_factory=list)

    # Message counters
    sent_count: int = 0
    received_count: int = 0

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # Loaded on demand
    aliases: list[PersonAlias] = field(default_factory=list)

    @property
    def is_rejected(self) -> bool:
        return self.rejected_at is not None

    @property
    def is_bot(self) -> bool:
        """Automated sender: a bot or an external service."""
        return self.account_type in (AccountType.BOT, AccountType.EXTERNAL_SERVICE)

    @property
    def is_distribution_list(self) -> bool:
        return self.account_type == AccountType.DISTRIBUTION

    def has_email(self, email: str) -> bool:
        """Check the primary email and email aliases (case-insensitive)."""
        email_lower = _normalize_email(email)
        if not email_lower:
            return False
        if self.primary_email.lower() == email_lower:
            return True
        return any(
            a.alias_type == AliasType.EMAIL and a.alias_value.lower() == email_lower
            for a in self.aliases
        )

    def to_dict(self) -> dict:
        """Convert to dict for JSON serialization."""
        data = asdict(self)
        data["account_type"] = str(self.account_type)
        for key in ("reviewed_at", "rejected_at", "created_at", "updated_at"):
            data[key] = _iso(getattr(self, key))
        data["aliases"] = [a.to_dict() for a in self.aliases]
        data["is_rejected"] = self.is_rejected
        return data

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Person":
        """Create Person from a people row."""
        try:
            account_type = AccountType(row["account_type"])
        except ValueError:
            logger.warning(f"Unknown account type {row['account_type']!r} for person {row['id']}")
            account_type = AccountType.PERSON

        return cls(
            id=row["id"],
            tenant_id=row["tenant_id"],
            canonical_name=row["canonical_name"],
            primary_email=row["primary_email"] or "",
            title=row["title"],
            department=row["department"],
            company=row["company"],
            is_internal=bool(row["is_internal"]),
            account_type=account_type,
            confidence=row["confidence"],
            needs_review=bool(row["needs_review"]),
            auto_created=bool(row["auto_created"]),
            reviewed_at=parse_timestamp(row["reviewed_at"]),
            reviewed_by=row["reviewed_by"],
            rejected_at=parse_timestamp(row["rejected_at"]),
            rejected_reason=row["rejected_reason"],
            rejected_by=row["rejected_by"],
            potential_duplicates=json.loads(row["potential_duplicates"]) if row["potential_duplicates"] else [],
            sent_count=row["sent_count"],
            received_count=row["received_count"],
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
        )


@dataclass
class EntityFilterRule:
    """
    Tenant rule that blocks auto-creation of matching people.

    Patterns use SQL LIKE syntax: % matches any run, _ one character.
    """

    tenant_id: str
    email_pattern: Optional[str] = None
    name_pattern: Optional[str] = None
    entity_type: Optional[str] = None
    reason: str = ""
    created_by: Optional[str] = None
    id: Optional[int] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["created_at"] = _iso(self.created_at)
        return data

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "EntityFilterRule":
        return cls(
            id=row["id"],
            tenant_id=row["tenant_id"],
            email_pattern=row["email_pattern"],
            name_pattern=row["name_pattern"],
            entity_type=row["entity_type"],
            reason=row["reason"] or "",
            created_by=row["created_by"],
            created_at=parse_timestamp(row["created_at"]),
        )


@dataclass
class TenantPattern:
    """One extra account-type pattern for a tenant."""

    tenant_id: str
    pattern: str
    pattern_type: str
    id: Optional[int] = None
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["created_at"] = _iso(self.created_at)
        return data

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "TenantPattern":
        return cls(
            id=row["id"],
            tenant_id=row["tenant_id"],
            pattern=row["pattern"],
            pattern_type=row["pattern_type"],
            created_at=parse_timestamp(row["created_at"]),
        )


@dataclass
class TeamMember:
    """Membership of a person in a team. One row per (team, person)."""

    team_id: int
    person_id: int
    role: str = ""
    id: Optional[int] = None
    joined_at: Optional[datetime] = None

    # Name and email only, loaded by get_team_members
    person: Optional[Person] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "team_id": self.team_id,
            "person_id": self.person_id,
            "role": self.role,
            "joined_at": _iso(self.joined_at),
            "person": self.person.to_dict() if self.person else None,
        }


@dataclass
class Team:
    """A named group of people within a tenant."""

    tenant_id: str
    name: str
    description: str = ""
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    members: list[TeamMember] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "name": self.name,
            "description": self.description,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "members": [m.to_dict() for m in self.members],
        }

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Team":
        return cls(
            id=row["id"],
            tenant_id=row["tenant_id"],
            name=row["name"],
            description=row["description"] or "",
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
        )


@dataclass
class ProjectMember:
    """A person or a whole team attached to a project. Exactly one of person_id and team_id is set."""

    project_id: int
    person_id: Optional[int] = None
    team_id: Optional[int] = None
    role: str = ""
    id: Optional[int] = None
    added_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["added_at"] = _iso(self.added_at)
        return data


@dataclass
class Project:
    """
    A project people work on.

    keywords match project mentions in message text; jira_projects are the
    issue tracker keys (e.g. "ENG") that belong to the project.
    """

    tenant_id: str
    name: str
    description: str = ""
    keywords: list[str] = field(default_factory=list)
    jira_projects: list[str] = field(default_factory=list)
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["created_at"] = _iso(self.created_at)
        data["updated_at"] = _iso(self.updated_at)
        return data

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Project":
        return cls(
            id=row["id"],
            tenant_id=row["tenant_id"],
            name=row["name"],
            description=row["description"] or "",
            keywords=json.loads(row["keywords"]) if row["keywords"] else [],
            jira_projects=json.loads(row["jira_projects"]) if row["jira_projects"] else [],
            created_at=parse_timestamp(row["created_at"]),
            updated_at=parse_timestamp(row["updated_at"]),
        )


@dataclass
class EntityStats:
    """Per-tenant counts. Breakdowns cover active (non-rejected) people only."""

    total_people: int = 0
    total_rejected: int = 0
    by_account_type: dict[str, int] = field(default_factory=dict)
    by_confidence: dict[str, int] = field(default_factory=dict)
    needing_review: int = 0
    auto_created: int = 0
    internal: int = 0
    external: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


class EntityStore(Protocol):
    """The store operations the resolver depends on."""

    def get_person_by_email(self, tenant_id: str, email: str,
                            deadline: Optional[Deadline] = None) -> Optional[Person]: ...

    def get_person_by_alias(self, tenant_id: str, value: str,
                            deadline: Optional[Deadline] = None) -> Optional[Person]: ...

    def search_people_by_name(self, tenant_id: str, name: str, limit: int,
                              deadline: Optional[Deadline] = None) -> list[Person]: ...

    def create_person(self, person: Person, deadline: Optional[Deadline] = None) -> Person: ...

    def update_person(self, person: Person, deadline: Optional[Deadline] = None) -> Person: ...

    def create_alias(self, alias: PersonAlias, deadline: Optional[Deadline] = None) -> PersonAlias: ...

    def matches_filter_rule(self, tenant_id: str, email: str, name: str,
                            deadline: Optional[Deadline] = None) -> bool: ...


_PERSON_COLUMNS = """
    id, tenant_id, canonical_name, primary_email,
    title, department, company, is_internal, account_type,
    confidence, needs_review, auto_created,
    reviewed_at, reviewed_by,
    rejected_at, rejected_reason, rejected_by,
    potential_duplicates, sent_count, received_count,
    created_at, updated_at
"""

_FILTER_RULE_COLUMNS = (
    "id, tenant_id, email_pattern, name_pattern, entity_type, reason, created_at, created_by"
)

# A filter rule matches when either of its non-null patterns matches
_FILTER_RULE_MATCH = """
    tenant_id = ?
    AND (
        (email_pattern IS NOT NULL AND ? LIKE email_pattern) OR
        (name_pattern IS NOT NULL AND ? LIKE name_pattern)
    )
"""

_TEAM_COLUMNS = "id, tenant_id, name, description, created_at, updated_at"

_PROJECT_COLUMNS = "id, tenant_id, name, description, keywords, jira_projects, created_at, updated_at"


class PersonStore:
    """
    SQLite-backed storage for people, aliases, filter rules, tenant patterns,
    teams and projects.

    Opens a connection per operation. Every method that the resolver calls
    takes an optional Deadline: it is checked before the database is touched,
    bounds the busy timeout, and interrupts a statement that is still running
    when it fires.
    """

    def __init__(self, db_path: Optional[str] = None, timeout: Optional[float] = None):
        """
        Initialize the person store.

        Args:
            db_path: Path to SQLite database (default from settings)
            timeout: Busy timeout in seconds (default from settings)
        """
        self.db_path = db_path or get_entity_db_path()
        self.timeout = timeout if timeout is not None else settings.db_timeout
        self._init_db()

    def _init_db(self):
        """Create database tables if they don't exist."""
        conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS people (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    tenant_id TEXT NOT NULL,
                    canonical_name TEXT NOT NULL,
                    primary_email TEXT,
                    title TEXT,
                    department TEXT,
                    company TEXT,
                    is_internal INTEGER NOT NULL DEFAULT 0,
                    account_type TEXT NOT NULL DEFAULT 'person',
                    confidence REAL NOT NULL DEFAULT 0,
                    needs_review INTEGER NOT NULL DEFAULT 0,
                    auto_created INTEGER NOT NULL DEFAULT 0,
                    reviewed_at TEXT,
                    reviewed_by TEXT,
                    rejected_at TEXT,
                    rejected_reason TEXT,
                    rejected_by TEXT,
                    potential_duplicates TEXT,
                    sent_count INTEGER NOT NULL DEFAULT 0,
                    received_count INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE (tenant_id, primary_email)
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_people_tenant_name
                ON people(tenant_id, canonical_name)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_people_review
                ON people(tenant_id, needs_review)
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS person_aliases (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    person_id INTEGER NOT NULL REFERENCES people(id),
                    alias_type TEXT NOT NULL,
                    alias_value TEXT NOT NULL,
                    confidence REAL NOT NULL DEFAULT 1.0,
                    source TEXT,
                    discovered_at TEXT NOT NULL,
                    UNIQUE (person_id, alias_type, alias_value)
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_person_aliases_value
                ON person_aliases(alias_value)
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS entity_filter_rules (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    tenant_id TEXT NOT NULL,
                    email_pattern TEXT,
                    name_pattern TEXT,
                    entity_type TEXT,
                    reason TEXT NOT NULL DEFAULT '',
                    created_at TEXT NOT NULL,
                    created_by TEXT
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_entity_filter_rules_tenant
                ON entity_filter_rules(tenant_id)
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tenant_account_patterns (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    tenant_id TEXT NOT NULL,
                    pattern TEXT NOT NULL,
                    pattern_type TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    UNIQUE (tenant_id, pattern, pattern_type)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS teams (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    tenant_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    description TEXT,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE (tenant_id, name)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS team_members (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    team_id INTEGER NOT NULL REFERENCES teams(id),
                    person_id INTEGER NOT NULL REFERENCES people(id),
                    role TEXT NOT NULL DEFAULT '',
                    joined_at TEXT NOT NULL,
                    UNIQUE (team_id, person_id)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS projects (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    tenant_id TEXT NOT NULL,
                    name TEXT NOT NULL,
                    description TEXT,
                    keywords TEXT NOT NULL DEFAULT '[]',
                    jira_projects TEXT NOT NULL DEFAULT '[]',
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL,
                    UNIQUE (tenant_id, name)
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS project_members (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    project_id INTEGER NOT NULL REFERENCES projects(id),
                    person_id INTEGER REFERENCES people(id),
                    team_id INTEGER REFERENCES teams(id),
                    role TEXT NOT NULL DEFAULT '',
                    added_at TEXT NOT NULL,
                    CHECK ((person_id IS NULL) != (team_id IS NULL))
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_team_members_person
                ON team_members(person_id)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_project_members_project
                ON project_members(project_id)
            """)
            conn.commit()
            logger.info(f"Initialized entity database at {self.db_path}")
        finally:
            conn.close()

    @contextmanager
    def _connection(self, operation: str, deadline: Optional[Deadline] = None) -> Iterator[sqlite3.Connection]:
        """
        Open a connection for one operation.

        sqlite3 errors are wrapped in StoreError with the operation name;
        an interrupt caused by the deadline becomes DeadlineExceededError or
        OperationCancelledError. Uncommitted work is rolled back on close.
        """
        timeout = self.timeout
        if deadline is not None:
            deadline.check(operation)
            remaining = deadline.remaining()
            if remaining is not None:
                timeout = min(timeout, remaining)

        try:
            conn = sqlite3.connect(self.db_path, timeout=timeout)
        except sqlite3.Error as e:
            raise StoreError(operation, str(e)) from e

        try:
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA foreign_keys = ON")
            if deadline is not None:
                conn.set_progress_handler(lambda: 1 if deadline.done else 0, PROGRESS_HANDLER_STEPS)
            yield conn
        except sqlite3.Error as e:
            # An interrupt from the progress handler surfaces as OperationalError
            if deadline is not None and deadline.done:
                raise deadline.error(operation) from e
            raise StoreError(operation, str(e)) from e
        finally:
            conn.close()

    # ==================== Resolver contract ====================

    def get_person_by_email(self, tenant_id: str, email: str,
                            deadline: Optional[Deadline] = None) -> Optional[Person]:
        """Active person whose primary email matches (case-insensitive), or None."""
        with self._connection("get person by email", deadline) as conn:
            row = conn.execute(f"""
                SELECT {_PERSON_COLUMNS} FROM people
                WHERE tenant_id = ? AND primary_email = ? AND rejected_at IS NULL
            """, (tenant_id, _normalize_email(email))).fetchone()
            return Person.from_row(row) if row else None

    def get_person_by_alias(self, tenant_id: str, value: str,
                            deadline: Optional[Deadline] = None) -> Optional[Person]:
        """Active person owning an alias with this value, or None. Highest confidence alias wins."""
        with self._connection("get person by alias", deadline) as conn:
            row = conn.execute(f"""
                SELECT {_PERSON_COLUMNS} FROM people
                WHERE id = (
                    SELECT p.id FROM people p
                    JOIN person_aliases a ON a.person_id = p.id
                    WHERE p.tenant_id = ? AND a.alias_value = ? AND p.rejected_at IS NULL
                    ORDER BY a.confidence DESC, a.id ASC
                    LIMIT 1
                )
            """, (tenant_id, value)).fetchone()
            return Person.from_row(row) if row else None

    def search_people_by_name(self, tenant_id: str, name: str, limit: int = DEFAULT_QUERY_LIMIT,
                              deadline: Optional[Deadline] = None) -> list[Person]:
        """Active people whose canonical name contains `name` (case-insensitive for ASCII)."""
        limit = _clamp_limit(limit)
        with self._connection("search people", deadline) as conn:
            rows = conn.execute(f"""
                SELECT {_PERSON_COLUMNS} FROM people
                WHERE tenant_id = ? AND rejected_at IS NULL
                  AND canonical_name LIKE '%' || ? || '%' ESCAPE '\\'
                ORDER BY id
                LIMIT ?
            """, (tenant_id, _escape_like(name), limit)).fetchall()
            return [Person.from_row(row) for row in rows]

    def create_person(self, person: Person, deadline: Optional[Deadline] = None) -> Person:
        """
        Insert a person, assigning id, created_at and updated_at.

        Atomic insert-or-fetch on (tenant_id, primary_email): if another record
        already owns the address, nothing is written and PersonConflictError
        (retryable) carries the existing id.
        """
        now = utc_now()
        email = _normalize_email(person.primary_email)
        with self._connection("create person", deadline) as conn:
            cursor = conn.execute("""
                INSERT INTO people (
                    tenant_id, canonical_name, primary_email,
                    title, department, company, is_internal, account_type,
                    confidence, needs_review, auto_created,
                    potential_duplicates, sent_count, received_count,
                    created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (tenant_id, primary_email) DO NOTHING
            """, (
                person.tenant_id,
                person.canonical_name,
                email or None,
                person.title,
                person.department,
                person.company,
                int(person.is_internal),
                str(person.account_type),
                person.confidence,
                int(person.needs_review),
                int(person.auto_created),
                json.dumps(person.potential_duplicates) if person.potential_duplicates else None,
                person.sent_count,
                person.received_count,
                now.isoformat(),
                now.isoformat(),
            ))

            if cursor.rowcount == 0:
                existing = conn.execute(
                    "SELECT id, rejected_at FROM people WHERE tenant_id = ? AND primary_email = ?",
                    (person.tenant_id, email),
                ).fetchone()
                raise PersonConflictError(
                    person.tenant_id,
                    email,
                    existing["id"] if existing else None,
                    existing_rejected=bool(existing and existing["rejected_at"]),
                )

            conn.commit()
            person.id = cursor.lastrowid
            person.primary_email = email
            person.created_at = now
            person.updated_at = now
            return person

    def update_person(self, person: Person, deadline: Optional[Deadline] = None) -> Person:
        """Persist the mutable fields of a person. Raises PersonNotFoundError if absent."""
        now = utc_now()
        with self._connection("update person", deadline) as conn:
            cursor = conn.execute("""
                UPDATE people SET
                    canonical_name = ?,
                    title = ?,
                    department = ?,
                    company = ?,
                    is_internal = ?,
                    account_type = ?,
                    confidence = ?,
                    needs_review = ?,
                    reviewed_at = ?,
                    reviewed_by = ?,
                    potential_duplicates = ?,
                    updated_at = ?
                WHERE id = ?
            """, (
                person.canonical_name,
                person.title,
                person.department,
                person.company,
                int(person.is_internal),
                str(person.account_type),
                person.confidence,
                int(person.needs_review),
                _iso(person.reviewed_at),
                person.reviewed_by,
                json.dumps(person.potential_duplicates) if person.potential_duplicates else None,
                now.isoformat(),
                person.id,
            ))
            if cursor.rowcount == 0:
                raise PersonNotFoundError("update person", person.id)
            conn.commit()
            person.updated_at = now
            return person

    def create_alias(self, alias: PersonAlias, deadline: Optional[Deadline] = None) -> PersonAlias:
        """Insert an alias, assigning id and discovered_at. Raises DuplicateAliasError on repeats."""
        now = utc_now()
        with self._connection("create alias", deadline) as conn:
            cursor = conn.execute("""
                INSERT INTO person_aliases (
                    person_id, alias_type, alias_value, confidence, source, discovered_at
                ) VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT (person_id, alias_type, alias_value) DO NOTHING
            """, (
                alias.person_id,
                str(alias.alias_type),
                alias.alias_value,
                alias.confidence,
                alias.source,
                now.isoformat(),
            ))
            if cursor.rowcount == 0:
                raise DuplicateAliasError(alias.person_id, str(alias.alias_type), alias.alias_value)
            conn.commit()
            alias.id = cursor.lastrowid
            alias.discovered_at = now
            return alias

    def matches_filter_rule(self, tenant_id: str, email: str, name: str,
                            deadline: Optional[Deadline] = None) -> bool:
        """True if the email or name matches any of the tenant's filter rules."""
        with self._connection("check filter rules", deadline) as conn:
            row = conn.execute(
                f"SELECT EXISTS (SELECT 1 FROM entity_filter_rules WHERE {_FILTER_RULE_MATCH})",
                (tenant_id, email or "", name or ""),
            ).fetchone()
            return bool(row[0])

    # ==================== Lookups ====================

    def get_person_by_id(self, tenant_id: str, person_id: int, include_aliases: bool = False,
                         deadline: Optional[Deadline] = None) -> Optional[Person]:
        """Get a person of the tenant by id, rejected or not."""
        with self._connection("get person", deadline) as conn:
            row = conn.execute(
                f"SELECT {_PERSON_COLUMNS} FROM people WHERE tenant_id = ? AND id = ?", (tenant_id, person_id)
            ).fetchone()
        if not row:
            return None
        person = Person.from_row(row)
        if include_aliases:
            person.aliases = self.get_aliases_for_person(person_id, deadline=deadline)
        return person

    def get_aliases_for_person(self, person_id: int,
                               deadline: Optional[Deadline] = None) -> list[PersonAlias]:
        """Aliases of a person, highest confidence first, then newest."""
        with self._connection("get aliases", deadline) as conn:
            rows = conn.execute("""
                SELECT id, person_id, alias_type, alias_value, confidence, source, discovered_at
                FROM person_aliases
                WHERE person_id = ?
                ORDER BY confidence DESC, discovered_at DESC, id DESC
            """, (person_id,)).fetchall()
            return [PersonAlias.from_row(row) for row in rows]

    def get_people_by_domain(self, tenant_id: str, domain: str,
                             deadline: Optional[Deadline] = None) -> list[Person]:
        """People whose primary email is at exactly this domain."""
        with self._connection("get people by domain", deadline) as conn:
            rows = conn.execute(f"""
                SELECT {_PERSON_COLUMNS} FROM people
                WHERE tenant_id = ? AND primary_email LIKE '%@' || ? ESCAPE '\\'
                ORDER BY id
                LIMIT ?
            """, (tenant_id, _escape_like(domain.strip().lower()), MAX_QUERY_LIMIT)).fetchall()
            return [Person.from_row(row) for row in rows]

    def list_active_people(self, tenant_id: str,
                           deadline: Optional[Deadline] = None) -> list[Person]:
        """Every non-rejected person of a tenant, by id."""
        with self._connection("list people", deadline) as conn:
            rows = conn.execute(f"""
                SELECT {_PERSON_COLUMNS} FROM people
                WHERE tenant_id = ? AND rejected_at IS NULL
                ORDER BY id
            """, (tenant_id,)).fetchall()
            return [Person.from_row(row) for row in rows]

    def search_entities(self, tenant_id: str, query: str, search_field: str = "",
                        limit: int = DEFAULT_QUERY_LIMIT,
                        deadline: Optional[Deadline] = None) -> list[Person]:
        """
        Substring search over names and/or emails, rejected people included.

        Args:
            search_field: "name", "email", or "" for both
        """
        if search_field not in ("", "name", "email"):
            raise ValueError(f"invalid search field: {search_field!r}")
        limit = _clamp_limit(limit)

        if search_field == "name":
            where = "canonical_name LIKE ? ESCAPE '\\'"
        elif search_field == "email":
            where = "primary_email LIKE ? ESCAPE '\\'"
        else:
            where = "(canonical_name LIKE ? ESCAPE '\\' OR primary_email LIKE ? ESCAPE '\\')"

        pattern = f"%{_escape_like(query)}%"
        params: list = [tenant_id, pattern] if search_field else [tenant_id, pattern, pattern]
        with self._connection("search entities", deadline) as conn:
            rows = conn.execute(f"""
                SELECT {_PERSON_COLUMNS} FROM people
                WHERE tenant_id = ? AND {where}
                ORDER BY canonical_name
                LIMIT ?
            """, (*params, limit)).fetchall()
            return [Person.from_row(row) for row in rows]

    # ==================== Review ====================

    def list_people_needing_review(self, tenant_id: str, limit: int = DEFAULT_QUERY_LIMIT,
                                   deadline: Optional[Deadline] = None) -> list[Person]:
        """Active people flagged for review, oldest first."""
        limit = _clamp_limit(limit)
        with self._connection("list people needing review", deadline) as conn:
            rows = conn.execute(f"""
                SELECT {_PERSON_COLUMNS} FROM people
                WHERE tenant_id = ? AND needs_review = 1 AND rejected_at IS NULL
                ORDER BY created_at ASC, id ASC
                LIMIT ?
            """, (tenant_id, limit)).fetchall()
            return [Person.from_row(row) for row in rows]

    def mark_person_reviewed(self, tenant_id: str, person_id: int, reviewed_by: str,
                             deadline: Optional[Deadline] = None) -> None:
        """Clear needs_review and set confidence to 1.0."""
        now = utc_now().isoformat()
        with self._connection("mark person reviewed", deadline) as conn:
            cursor = conn.execute("""
                UPDATE people SET
                    needs_review = 0,
                    reviewed_at = ?,
                    reviewed_by = ?,
                    confidence = 1.0,
                    updated_at = ?
                WHERE tenant_id = ? AND id = ?
            """, (now, reviewed_by, now, tenant_id, person_id))
            if cursor.rowcount == 0:
                raise PersonNotFoundError("mark person reviewed", person_id)
            conn.commit()
        logger.info(f"Person {person_id} reviewed by {reviewed_by}")

    def update_entity_fields(
        self,
        tenant_id: str,
        person_id: int,
        name: Optional[str] = None,
        account_type: Optional[AccountType] = None,
        title: Optional[str] = None,
        company: Optional[str] = None,
        deadline: Optional[Deadline] = None,
    ) -> None:
        """Update only the given fields. At least one is required."""
        updates = {}
        if name is not None:
            updates["canonical_name"] = name
        if account_type is not None:
            updates["account_type"] = str(AccountType(account_type))
        if title is not None:
            updates["title"] = title
        if company is not None:
            updates["company"] = company
        if not updates:
            raise ValueError("at least one field (name, account_type, title, or company) must be specified")

        updates["updated_at"] = utc_now().isoformat()
        set_clause = ", ".join(f"{column} = ?" for column in updates)

        with self._connection("update entity fields", deadline) as conn:
            cursor = conn.execute(
                f"UPDATE people SET {set_clause} WHERE tenant_id = ? AND id = ?",
                (*updates.values(), tenant_id, person_id),
            )
            if cursor.rowcount == 0:
                raise PersonNotFoundError("update entity fields", person_id, "entity not found")
            conn.commit()
        logger.info(f"Entity {person_id} fields updated: {sorted(k for k in updates if k != 'updated_at')}")

    # ==================== Lifecycle ====================

    def reject_person(self, tenant_id: str, person_id: int, reason: str, rejected_by: str,
                      deadline: Optional[Deadline] = None) -> None:
        """Soft-delete an active person."""
        now = utc_now().isoformat()
        with self._connection("reject person", deadline) as conn:
            cursor = conn.execute("""
                UPDATE people SET
                    rejected_at = ?,
                    rejected_reason = ?,
                    rejected_by = ?,
                    updated_at = ?
                WHERE tenant_id = ? AND id = ? AND rejected_at IS NULL
            """, (now, reason, rejected_by, now, tenant_id, person_id))
            if cursor.rowcount == 0:
                raise PersonNotFoundError("reject person", person_id, "person not found or already rejected")
            conn.commit()
        logger.info(f"Person {person_id} rejected by {rejected_by}: {reason}")

    def restore_person(self, tenant_id: str, person_id: int,
                       deadline: Optional[Deadline] = None) -> None:
        """Clear the rejection of a rejected person."""
        with self._connection("restore person", deadline) as conn:
            cursor = conn.execute("""
                UPDATE people SET
                    rejected_at = NULL,
                    rejected_reason = NULL,
                    rejected_by = NULL,
                    updated_at = ?
                WHERE tenant_id = ? AND id = ? AND rejected_at IS NOT NULL
            """, (utc_now().isoformat(), tenant_id, person_id))
            if cursor.rowcount == 0:
                raise PersonNotFoundError("restore person", person_id, "person not found or not rejected")
            conn.commit()
        logger.info(f"Person {person_id} restored")

    def bulk_reject_by_pattern(self, tenant_id: str, email_pattern: str = "", name_pattern: str = "",
                               reason: str = "", rejected_by: str = "",
                               deadline: Optional[Deadline] = None) -> int:
        """Reject every active person matching either LIKE pattern. Returns the count."""
        if not email_pattern and not name_pattern:
            raise ValueError("at least one pattern (email or name) is required")

        now = utc_now().isoformat()
        with self._connection("bulk reject", deadline) as conn:
            cursor = conn.execute("""
                UPDATE people SET
                    rejected_at = ?,
                    rejected_reason = ?,
                    rejected_by = ?,
                    updated_at = ?
                WHERE tenant_id = ?
                  AND rejected_at IS NULL
                  AND (
                      (? != '' AND primary_email LIKE ?) OR
                      (? != '' AND canonical_name LIKE ?)
                  )
            """, (now, reason, rejected_by, now, tenant_id,
                  email_pattern, email_pattern, name_pattern, name_pattern))
            count = cursor.rowcount
            conn.commit()
        logger.info(
            f"Bulk rejected {count} people (email_pattern={email_pattern!r}, "
            f"name_pattern={name_pattern!r}, reason={reason!r})"
        )
        return count

    def bulk_enrich_by_domain(self, tenant_id: str, domain: str, company: str = "",
                              is_internal: bool = False,
                              deadline: Optional[Deadline] = None) -> int:
        """Set is_internal (and company, when given) on everyone at a domain. Returns the count."""
        domain = (domain or "").strip().lower()
        if not domain:
            raise ValueError("domain is required")

        updates = {"is_internal": int(is_internal), "updated_at": utc_now().isoformat()}
        if company:
            updates["company"] = company
        set_clause = ", ".join(f"{column} = ?" for column in updates)

        with self._connection("bulk enrich", deadline) as conn:
            cursor = conn.execute(
                f"UPDATE people SET {set_clause} "
                f"WHERE tenant_id = ? AND primary_email LIKE '%@' || ? ESCAPE '\\'",
                (*updates.values(), tenant_id, _escape_like(domain)),
            )
            count = cursor.rowcount
            conn.commit()
        logger.info(f"Bulk enriched {count} people at {domain} (company={company!r}, internal={is_internal})")
        return count

    def delete_person(self, tenant_id: str, person_id: int,
                      deadline: Optional[Deadline] = None) -> None:
        """
        Hard-delete a person in one transaction.

        Removes the person's aliases, team and project memberships and every
        other person's potential duplicate reference to it, then the person.
        If the person does not exist in the tenant nothing is removed.
        """
        with self._connection("delete person", deadline) as conn:
            exists = conn.execute(
                "SELECT 1 FROM people WHERE tenant_id = ? AND id = ?", (tenant_id, person_id)
            ).fetchone()
            if not exists:
                raise PersonNotFoundError("delete person", person_id, "entity not found")

            conn.execute("DELETE FROM person_aliases WHERE person_id = ?", (person_id,))
            conn.execute("DELETE FROM team_members WHERE person_id = ?", (person_id,))
            conn.execute("DELETE FROM project_members WHERE person_id = ?", (person_id,))

            rows = conn.execute("""
                SELECT id, potential_duplicates FROM people
                WHERE tenant_id = ? AND id != ? AND potential_duplicates IS NOT NULL
            """, (tenant_id, person_id)).fetchall()
            for row in rows:
                duplicates = json.loads(row["potential_duplicates"])
                if person_id in duplicates:
                    remaining = [d for d in duplicates if d != person_id]
                    conn.execute(
                        "UPDATE people SET potential_duplicates = ? WHERE id = ?",
                        (json.dumps(remaining) if remaining else None, row["id"]),
                    )

            conn.execute("DELETE FROM people WHERE tenant_id = ? AND id = ?", (tenant_id, person_id))
            conn.commit()
        logger.info(f"Entity {person_id} deleted from tenant {tenant_id}")

    def increment_sent_count(self, person_id: int, deadline: Optional[Deadline] = None) -> None:
        self._increment_counter("sent_count", person_id, deadline)

    def increment_received_count(self, person_id: int, deadline: Optional[Deadline] = None) -> None:
        self._increment_counter("received_count", person_id, deadline)

    def _increment_counter(self, column: str, person_id: int, deadline: Optional[Deadline]) -> None:
        operation = f"increment {column}"
        with self._connection(operation, deadline) as conn:
            cursor = conn.execute(
                f"UPDATE people SET {column} = {column} + 1, updated_at = ? WHERE id = ?",
                (utc_now().isoformat(), person_id),
            )
            if cursor.rowcount == 0:
                raise PersonNotFoundError(operation, person_id)
            conn.commit()

    def update_person_title(self, person_id: int, title: str,
                            deadline: Optional[Deadline] = None) -> None:
        with self._connection("update title", deadline) as conn:
            cursor = conn.execute(
                "UPDATE people SET title = ?, updated_at = ? WHERE id = ?",
                (title, utc_now().isoformat(), person_id),
            )
            if cursor.rowcount == 0:
                raise PersonNotFoundError("update title", person_id)
            conn.commit()

    def get_entity_stats(self, tenant_id: str, deadline: Optional[Deadline] = None) -> EntityStats:
        """Aggregate counts for a tenant."""
        stats = EntityStats()
        with self._connection("get entity stats", deadline) as conn:
            row = conn.execute("""
                SELECT
                    COUNT(*) AS total,
                    SUM(CASE WHEN rejected_at IS NOT NULL THEN 1 ELSE 0 END) AS rejected,
                    SUM(CASE WHEN needs_review = 1 THEN 1 ELSE 0 END) AS needs_review,
                    SUM(CASE WHEN auto_created = 1 THEN 1 ELSE 0 END) AS auto_created,
                    SUM(CASE WHEN is_internal = 1 THEN 1 ELSE 0 END) AS internal,
                    SUM(CASE WHEN is_internal = 0 THEN 1 ELSE 0 END) AS external
                FROM people
                WHERE tenant_id = ?
            """, (tenant_id,)).fetchone()
            stats.total_people = row["total"] or 0
            stats.total_rejected = row["rejected"] or 0
            stats.needing_review = row["needs_review"] or 0
            stats.auto_created = row["auto_created"] or 0
            stats.internal = row["internal"] or 0
            stats.external = row["external"] or 0

            cursor = conn.execute("""
                SELECT account_type, COUNT(*) AS count
                FROM people
                WHERE tenant_id = ? AND rejected_at IS NULL
                GROUP BY account_type
            """, (tenant_id,))
            for type_row in cursor.fetchall():
                stats.by_account_type[type_row["account_type"]] = type_row["count"]

            row = conn.execute("""
                SELECT
                    SUM(CASE WHEN confidence >= ? THEN 1 ELSE 0 END) AS high,
                    SUM(CASE WHEN confidence >= ? AND confidence < ? THEN 1 ELSE 0 END) AS medium,
                    SUM(CASE WHEN confidence < ? THEN 1 ELSE 0 END) AS low
                FROM people
                WHERE tenant_id = ? AND rejected_at IS NULL
            """, (HIGH_CONFIDENCE, MEDIUM_CONFIDENCE, HIGH_CONFIDENCE, MEDIUM_CONFIDENCE,
                  tenant_id)).fetchone()
            stats.by_confidence = {
                "high": row["high"] or 0,
                "medium": row["medium"] or 0,
                "low": row["low"] or 0,
            }
        return stats

    # ==================== Filter rules ====================

    def create_filter_rule(self, rule: EntityFilterRule,
                           deadline: Optional[Deadline] = None) -> EntityFilterRule:
        """Insert a filter rule. At least one pattern is required."""
        if not rule.email_pattern and not rule.name_pattern:
            raise ValueError("at least one pattern (email or name) is required")

        now = utc_now()
        with self._connection("create filter rule", deadline) as conn:
            cursor = conn.execute("""
                INSERT INTO entity_filter_rules (
                    tenant_id, email_pattern, name_pattern, entity_type, reason, created_at, created_by
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                rule.tenant_id,
                rule.email_pattern or None,
                rule.name_pattern or None,
                rule.entity_type or None,
                rule.reason,
                now.isoformat(),
                rule.created_by or None,
            ))
            conn.commit()
            rule.id = cursor.lastrowid
            rule.created_at = now
        logger.info(
            f"Filter rule {rule.id} created (email_pattern={rule.email_pattern!r}, "
            f"name_pattern={rule.name_pattern!r})"
        )
        return rule

    def list_filter_rules(self, tenant_id: str,
                          deadline: Optional[Deadline] = None) -> list[EntityFilterRule]:
        """Filter rules of a tenant, newest first."""
        with self._connection("list filter rules", deadline) as conn:
            rows = conn.execute(f"""
                SELECT {_FILTER_RULE_COLUMNS} FROM entity_filter_rules
                WHERE tenant_id = ?
                ORDER BY created_at DESC, id DESC
                LIMIT ?
            """, (tenant_id, MAX_QUERY_LIMIT)).fetchall()
            return [EntityFilterRule.from_row(row) for row in rows]

    def delete_filter_rule(self, tenant_id: str, rule_id: int,
                           deadline: Optional[Deadline] = None) -> None:
        with self._connection("delete filter rule", deadline) as conn:
            cursor = conn.execute(
                "DELETE FROM entity_filter_rules WHERE tenant_id = ? AND id = ?", (tenant_id, rule_id)
            )
            if cursor.rowcount == 0:
                raise FilterRuleNotFoundError("delete filter rule", rule_id)
            conn.commit()
        logger.info(f"Filter rule {rule_id} deleted")

    def test_filter_rule(self, tenant_id: str, email: str, name: str = "",
                         deadline: Optional[Deadline] = None) -> list[EntityFilterRule]:
        """Rules the email or name would match."""
        with self._connection("test filter rules", deadline) as conn:
            rows = conn.execute(
                f"SELECT {_FILTER_RULE_COLUMNS} FROM entity_filter_rules WHERE {_FILTER_RULE_MATCH} ORDER BY id",
                (tenant_id, email or "", name or ""),
            ).fetchall()
            return [EntityFilterRule.from_row(row) for row in rows]

    # ==================== Tenant account-type patterns ====================

    def add_tenant_pattern(self, tenant_id: str, pattern: str, pattern_type: str,
                           deadline: Optional[Deadline] = None) -> TenantPattern:
        """Add an account-type pattern for a tenant. Adding an existing pattern returns it."""
        pattern = (pattern or "").strip().lower()
        if not pattern:
            raise ValueError("pattern is required")
        if pattern_type not in PATTERN_TYPES:
            raise ValueError(f"invalid pattern type {pattern_type!r}, expected one of {sorted(PATTERN_TYPES)}")

        with self._connection("add tenant pattern", deadline) as conn:
            conn.execute("""
                INSERT INTO tenant_account_patterns (tenant_id, pattern, pattern_type, created_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (tenant_id, pattern, pattern_type) DO NOTHING
            """, (tenant_id, pattern, pattern_type, utc_now().isoformat()))
            conn.commit()
            row = conn.execute("""
                SELECT id, tenant_id, pattern, pattern_type, created_at
                FROM tenant_account_patterns
                WHERE tenant_id = ? AND pattern = ? AND pattern_type = ?
            """, (tenant_id, pattern, pattern_type)).fetchone()
        logger.info(f"Tenant pattern {pattern_type}:{pattern} added for {tenant_id}")
        return TenantPattern.from_row(row)

    def list_tenant_patterns(self, tenant_id: str,
                             deadline: Optional[Deadline] = None) -> list[TenantPattern]:
        with self._connection("list tenant patterns", deadline) as conn:
            rows = conn.execute("""
                SELECT id, tenant_id, pattern, pattern_type, created_at
                FROM tenant_account_patterns
                WHERE tenant_id = ?
                ORDER BY pattern_type, pattern
            """, (tenant_id,)).fetchall()
            return [TenantPattern.from_row(row) for row in rows]

    def delete_tenant_pattern(self, tenant_id: str, pattern_id: int,
                              deadline: Optional[Deadline] = None) -> None:
        with self._connection("delete tenant pattern", deadline) as conn:
            cursor = conn.execute(
                "DELETE FROM tenant_account_patterns WHERE tenant_id = ? AND id = ?", (tenant_id, pattern_id)
            )
            if cursor.rowcount == 0:
                raise TenantPatternNotFoundError("delete tenant pattern", pattern_id)
            conn.commit()
        logger.info(f"Tenant pattern {pattern_id} deleted")

    def get_account_type_patterns(self, tenant_id: str,
                                  deadline: Optional[Deadline] = None) -> AccountTypePatterns:
        """Load a tenant's extra patterns as an AccountTypePatterns value."""
        by_type: dict[str, list[str]] = {t: [] for t in PATTERN_TYPES}
        for p in self.list_tenant_patterns(tenant_id, deadline=deadline):
            by_type.setdefault(p.pattern_type, []).append(p.pattern)
        return AccountTypePatterns.from_lists(
            bot_patterns=by_type[PATTERN_TYPE_BOT],
            distribution_patterns=by_type[PATTERN_TYPE_DISTRIBUTION],
            role_patterns=by_type[PATTERN_TYPE_ROLE],
            external_domains=by_type[PATTERN_TYPE_EXTERNAL_DOMAIN],
        )

    # ==================== Teams ====================

    @staticmethod
    def _in_tenant(conn: sqlite3.Connection, table: str, tenant_id: str, record_id: int) -> bool:
        row = conn.execute(
            f"SELECT 1 FROM {table} WHERE tenant_id = ? AND id = ?", (tenant_id, record_id)
        ).fetchone()
        return row is not None

    def create_team(self, team: Team, deadline: Optional[Deadline] = None) -> Team:
        """Insert a team, assigning id and timestamps. Names are unique per tenant."""
        team.name = (team.name or "").strip()
        if not team.name:
            raise ValueError("team name is required")

        now = utc_now()
        with self._connection("create team", deadline) as conn:
            cursor = conn.execute("""
                INSERT INTO teams (tenant_id, name, description, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
            """, (team.tenant_id, team.name, team.description or None, now.isoformat(), now.isoformat()))
            conn.commit()
            team.id = cursor.lastrowid
        team.created_at = now
        team.updated_at = now
        logger.info(f"Team {team.id} ({team.name}) created for {team.tenant_id}")
        return team

    def get_team_by_id(self, tenant_id: str, team_id: int, include_members: bool = False,
                       deadline: Optional[Deadline] = None) -> Optional[Team]:
        with self._connection("get team", deadline) as conn:
            row = conn.execute(
                f"SELECT {_TEAM_COLUMNS} FROM teams WHERE tenant_id = ? AND id = ?", (tenant_id, team_id)
            ).fetchone()
        if not row:
            return None
        team = Team.from_row(row)
        if include_members:
            team.members = self.get_team_members(tenant_id, team_id, deadline=deadline)
        return team

    def get_team_by_name(self, tenant_id: str, name: str,
                         deadline: Optional[Deadline] = None) -> Optional[Team]:
        """Exact (case-sensitive) name lookup."""
        with self._connection("get team by name", deadline) as conn:
            row = conn.execute(
                f"SELECT {_TEAM_COLUMNS} FROM teams WHERE tenant_id = ? AND name = ?", (tenant_id, name)
            ).fetchone()
            return Team.from_row(row) if row else None

    def list_teams(self, tenant_id: str, name_search: str = "", limit: int = DEFAULT_QUERY_LIMIT,
                   offset: int = 0, deadline: Optional[Deadline] = None) -> list[Team]:
        """Teams of a tenant by name, optionally filtered by a case-insensitive substring."""
        limit = _clamp_limit(limit)
        with self._connection("list teams", deadline) as conn:
            rows = conn.execute(f"""
                SELECT {_TEAM_COLUMNS} FROM teams
                WHERE tenant_id = ?
                  AND (? = '' OR LOWER(name) LIKE '%' || LOWER(?) || '%' ESCAPE '\\')
                ORDER BY name ASC
                LIMIT ? OFFSET ?
            """, (tenant_id, name_search, _escape_like(name_search), limit, max(offset, 0))).fetchall()
            return [Team.from_row(row) for row in rows]

    def add_team_member(self, tenant_id: str, member: TeamMember,
                        deadline: Optional[Deadline] = None) -> TeamMember:
        """
        Add a person to a team. Adding an existing member updates the role.

        Both the team and the person must belong to the tenant.
        """
        with self._connection("add team member", deadline) as conn:
            if not self._in_tenant(conn, "teams", tenant_id, member.team_id):
                raise TeamNotFoundError("add team member", member.team_id)
            if not self._in_tenant(conn, "people", tenant_id, member.person_id):
                raise PersonNotFoundError("add team member", member.person_id)

            conn.execute("""
                INSERT INTO team_members (team_id, person_id, role, joined_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (team_id, person_id) DO UPDATE SET role = excluded.role
            """, (member.team_id, member.person_id, member.role or "", utc_now().isoformat()))
            conn.commit()
            row = conn.execute(
                "SELECT id, joined_at FROM team_members WHERE team_id = ? AND person_id = ?",
                (member.team_id, member.person_id),
            ).fetchone()
        member.id = row["id"]
        member.joined_at = parse_timestamp(row["joined_at"])
        logger.info(f"Person {member.person_id} added to team {member.team_id} (role={member.role!r})")
        return member

    def get_team_members(self, tenant_id: str, team_id: int,
                         deadline: Optional[Deadline] = None) -> list[TeamMember]:
        """Members of a team, earliest joined first, with name and email loaded."""
        with self._connection("get team members", deadline) as conn:
            rows = conn.execute("""
                SELECT tm.id, tm.team_id, tm.person_id, tm.role, tm.joined_at,
                       p.canonical_name, p.primary_email
                FROM team_members tm
                JOIN teams t ON t.id = tm.team_id
                JOIN people p ON p.id = tm.person_id
                WHERE tm.team_id = ? AND t.tenant_id = ?
                ORDER BY tm.joined_at ASC, tm.id ASC
                LIMIT ?
            """, (team_id, tenant_id, MAX_QUERY_LIMIT)).fetchall()
        return [
            TeamMember(
                id=row["id"],
                team_id=row["team_id"],
                person_id=row["person_id"],
                role=row["role"] or "",
                joined_at=parse_timestamp(row["joined_at"]),
                person=Person(
                    tenant_id=tenant_id,
                    canonical_name=row["canonical_name"],
                    primary_email=row["primary_email"] or "",
                    id=row["person_id"],
                ),
            )
            for row in rows
        ]

    def remove_team_member(self, tenant_id: str, member_id: int,
                           deadline: Optional[Deadline] = None) -> None:
        with self._connection("remove team member", deadline) as conn:
            cursor = conn.execute("""
                DELETE FROM team_members
                WHERE id = ? AND team_id IN (SELECT id FROM teams WHERE tenant_id = ?)
            """, (member_id, tenant_id))
            if cursor.rowcount == 0:
                raise TeamMemberNotFoundError("remove team member", member_id)
            conn.commit()
        logger.info(f"Team member {member_id} removed")

    def delete_team(self, tenant_id: str, team_id: int,
                    deadline: Optional[Deadline] = None) -> None:
        """Delete a team with its memberships and its project attachments."""
        with self._connection("delete team", deadline) as conn:
            if not self._in_tenant(conn, "teams", tenant_id, team_id):
                raise TeamNotFoundError("delete team", team_id)
            conn.execute("DELETE FROM team_members WHERE team_id = ?", (team_id,))
            conn.execute("DELETE FROM project_members WHERE team_id = ?", (team_id,))
            conn.execute("DELETE FROM teams WHERE tenant_id = ? AND id = ?", (tenant_id, team_id))
            conn.commit()
        logger.info(f"Team {team_id} deleted from tenant {tenant_id}")

    # ==================== Projects ====================

    def create_project(self, project: Project, deadline: Optional[Deadline] = None) -> Project:
        """Insert a project, assigning id and timestamps. Names are unique per tenant."""
        project.name = (project.name or "").strip()
        if not project.name:
            raise ValueError("project name is required")

        now = utc_now()
        with self._connection("create project", deadline) as conn:
            cursor = conn.execute("""
                INSERT INTO projects (
                    tenant_id, name, description, keywords, jira_projects, created_at, updated_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?)
            """, (
                project.tenant_id,
                project.name,
                project.description or None,
                json.dumps(list(project.keywords)),
                json.dumps(list(project.jira_projects)),
                now.isoformat(),
                now.isoformat(),
            ))
            conn.commit()
            project.id = cursor.lastrowid
        project.created_at = now
        project.updated_at = now
        logger.info(f"Project {project.id} ({project.name}) created for {project.tenant_id}")
        return project

    def get_project_by_id(self, tenant_id: str, project_id: int,
                          deadline: Optional[Deadline] = None) -> Optional[Project]:
        with self._connection("get project", deadline) as conn:
            row = conn.execute(
                f"SELECT {_PROJECT_COLUMNS} FROM projects WHERE tenant_id = ? AND id = ?",
                (tenant_id, project_id),
            ).fetchone()
            return Project.from_row(row) if row else None

    def get_project_by_name(self, tenant_id: str, name: str,
                            deadline: Optional[Deadline] = None) -> Optional[Project]:
        with self._connection("get project by name", deadline) as conn:
            row = conn.execute(
                f"SELECT {_PROJECT_COLUMNS} FROM projects WHERE tenant_id = ? AND name = ?", (tenant_id, name)
            ).fetchone()
            return Project.from_row(row) if row else None

    def get_project_by_jira_key(self, tenant_id: str, jira_key: str,
                                deadline: Optional[Deadline] = None) -> Optional[Project]:
        """The project listing this Jira key. The oldest wins if several do."""
        with self._connection("get project by jira key", deadline) as conn:
            row = conn.execute(f"""
                SELECT {_PROJECT_COLUMNS} FROM projects
                WHERE tenant_id = ?
                  AND EXISTS (SELECT 1 FROM json_each(projects.jira_projects) WHERE value = ?)
                ORDER BY id
                LIMIT 1
            """, (tenant_id, jira_key)).fetchone()
            return Project.from_row(row) if row else None

    def get_projects_with_keywords(self, tenant_id: str,
                                   deadline: Optional[Deadline] = None) -> list[Project]:
        """Projects that define at least one keyword."""
        with self._connection("get projects with keywords", deadline) as conn:
            rows = conn.execute(f"""
                SELECT {_PROJECT_COLUMNS} FROM projects
                WHERE tenant_id = ? AND json_array_length(keywords) > 0
                ORDER BY id
                LIMIT ?
            """, (tenant_id, MAX_QUERY_LIMIT)).fetchall()
            return [Project.from_row(row) for row in rows]

    def add_project_member(self, tenant_id: str, member: ProjectMember,
                           deadline: Optional[Deadline] = None) -> ProjectMember:
        """Attach a person or a whole team to a project of the same tenant."""
        if (member.person_id is None) == (member.team_id is None):
            raise ValueError("exactly one of person_id and team_id is required")

        now = utc_now()
        with self._connection("add project member", deadline) as conn:
            if not self._in_tenant(conn, "projects", tenant_id, member.project_id):
                raise ProjectNotFoundError("add project member", member.project_id)
            if member.person_id is not None and not self._in_tenant(conn, "people", tenant_id, member.person_id):
                raise PersonNotFoundError("add project member", member.person_id)
            if member.team_id is not None and not self._in_tenant(conn, "teams", tenant_id, member.team_id):
                raise TeamNotFoundError("add project member", member.team_id)

            cursor = conn.execute("""
                INSERT INTO project_members (project_id, person_id, team_id, role, added_at)
                VALUES (?, ?, ?, ?, ?)
            """, (member.project_id, member.person_id, member.team_id, member.role or "", now.isoformat()))
            conn.commit()
            member.id = cursor.lastrowid
        member.added_at = now
        return member

    def get_project_member_ids(self, tenant_id: str, project_id: int,
                               deadline: Optional[Deadline] = None) -> list[int]:
        """Ids of everyone on a project, directly or through a team, ascending."""
        with self._connection("get project member ids", deadline) as conn:
            rows = conn.execute("""
                SELECT pm.person_id
                FROM project_members pm
                JOIN projects pr ON pr.id = pm.project_id
                WHERE pm.project_id = ? AND pr.tenant_id = ? AND pm.person_id IS NOT NULL
                UNION
                SELECT tm.person_id
                FROM project_members pm
                JOIN projects pr ON pr.id = pm.project_id
                JOIN team_members tm ON tm.team_id = pm.team_id
                WHERE pm.project_id = ? AND pr.tenant_id = ? AND pm.team_id IS NOT NULL
                ORDER BY 1
            """, (project_id, tenant_id, project_id, tenant_id)).fetchall()
            return [row[0] for row in rows]


# Singleton instance
_person_store: Optional[PersonStore] = None


def get_person_store(db_path: Optional[str] = None) -> PersonStore:
    """
    Get or create the singleton PersonStore.

    Args:
        db_path: Path to SQLite database

    Returns:
        PersonStore instance
    """
    global _person_store
    if _person_store is None:
        _person_store = PersonStore(db_path)
    return _person_store
