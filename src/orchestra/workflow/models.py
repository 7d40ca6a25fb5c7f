"""Data models for the orchestration loop.

Defines the snapshot aggregate persisted between cycles: the current
project with its bugs and completed tasks, the orchestrator record, the
specialist roster, the bounded event window, the last-observation caches
and the file-verification ring buffer. Pure data, no I/O.

Lifecycle (``phase``):
    AWAITING_GOAL -> Planning -> <progress phases> -> AWAITING_NEXT_GOAL
    AWAITING_NEXT_GOAL -> Planning (new goal) or halt
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

MAX_COMPLETED_TASKS = 10
MAX_FILE_VERIFICATIONS = 10

CLOSED_BUG_STATUSES = frozenset({"Verified", "Closed"})


def _now() -> str:
    return datetime.now().isoformat(timespec="seconds")


def _normalize_label(label: str) -> str:
    return re.sub(r"[^a-z0-9]", "", label.lower())


class Phase(StrEnum):
    """System-wide lifecycle phase. ``UNKNOWN`` stands for any unrecognized label."""

    AWAITING_GOAL = "AWAITING_GOAL"
    PLANNING = "Planning"
    DESIGN = "Design"
    IMPLEMENTATION = "Implementation"
    TESTING = "Testing"
    REVIEW = "Review"
    DEPLOYMENT = "Deployment"
    AWAITING_NEXT_GOAL = "AWAITING_NEXT_GOAL"
    UNKNOWN = "Unknown"

    @classmethod
    def lookup(cls, label: str | None) -> Phase:
        """Resolve a model- or operator-authored label against the known set."""
        return _lookup(cls, label, _PHASE_ALIASES)

    @property
    def awaiting_input(self) -> bool:
        return self in (Phase.AWAITING_GOAL, Phase.AWAITING_NEXT_GOAL)


class ProjectStatus(StrEnum):
    """Project-level status, distinct from the system phase."""

    AWAITING_GOAL = "Awaiting Goal"
    PLANNING = "Planning"
    IN_PROGRESS = "In Progress"
    TESTING = "Testing"
    BLOCKED = "Blocked"
    COMPLETED = "Completed"
    UNKNOWN = "Unknown"

    @classmethod
    def lookup(cls, label: str | None) -> ProjectStatus:
        return _lookup(cls, label, _STATUS_ALIASES)


_PHASE_ALIASES: dict[str, Phase] = {
    "awaitingnextgoal": Phase.AWAITING_NEXT_GOAL,
    "awaitinggoal": Phase.AWAITING_GOAL,
    "plan": Phase.PLANNING,
    "requirements": Phase.PLANNING,
    "architecture": Phase.DESIGN,
    "coding": Phase.IMPLEMENTATION,
    "development": Phase.IMPLEMENTATION,
    "execution": Phase.IMPLEMENTATION,
    "building": Phase.IMPLEMENTATION,
    "qa": Phase.TESTING,
    "verification": Phase.TESTING,
    "validation": Phase.TESTING,
    "codereview": Phase.REVIEW,
    "release": Phase.DEPLOYMENT,
    "complete": Phase.AWAITING_NEXT_GOAL,
    "completed": Phase.AWAITING_NEXT_GOAL,
    "done": Phase.AWAITING_NEXT_GOAL,
}

_STATUS_ALIASES: dict[str, ProjectStatus] = {
    "inprogress": ProjectStatus.IN_PROGRESS,
    "active": ProjectStatus.IN_PROGRESS,
    "implementation": ProjectStatus.IN_PROGRESS,
    "development": ProjectStatus.IN_PROGRESS,
    "coding": ProjectStatus.IN_PROGRESS,
    "design": ProjectStatus.IN_PROGRESS,
    "qa": ProjectStatus.TESTING,
    "stuck": ProjectStatus.BLOCKED,
    "complete": ProjectStatus.COMPLETED,
    "done": ProjectStatus.COMPLETED,
    "finished": ProjectStatus.COMPLETED,
}


def _lookup(enum_cls: Any, label: str | None, aliases: dict[str, Any]) -> Any:
    if not label or not isinstance(label, str):
        return enum_cls.UNKNOWN
    key = _normalize_label(label)
    for member in enum_cls:
        if member is enum_cls.UNKNOWN:
            continue
        if key in (_normalize_label(member.value), _normalize_label(member.name)):
            return member
    return aliases.get(key, enum_cls.UNKNOWN)


# Phases a directive may request. AWAITING_GOAL is reserved for a fresh snapshot.
REQUESTABLE_PHASES = frozenset(p for p in Phase if p not in (Phase.AWAITING_GOAL, Phase.UNKNOWN))


class FileActionType(StrEnum):
    CREATE_FILE = "CREATE_FILE"
    MODIFY_FILE = "MODIFY_FILE"
    CREATE_DIRECTORY = "CREATE_DIRECTORY"


_FILE_ACTION_VALUES = frozenset(t.value for t in FileActionType)


def _known_action(value: Any) -> bool:
    return isinstance(value, str) and value in _FILE_ACTION_VALUES


def push_bounded(items: list, item: Any, limit: int) -> None:
    """Append ``item`` and evict the oldest entries beyond ``limit``."""
    items.append(item)
    overflow = len(items) - limit
    if overflow > 0:
        del items[:overflow]


def as_list(value: Any) -> list:
    """A persisted list field, or ``[]`` when the document holds anything else."""
    return value if isinstance(value, list) else []


def as_optional_str(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def _str_list(value: Any) -> list[str]:
    return [str(v) for v in as_list(value)]


def _dicts(value: Any) -> list[dict[str, Any]]:
    return [v for v in as_list(value) if isinstance(v, dict)]


@dataclass
class Bug:
    id: str
    description: str
    severity: str = "Medium"
    status: str = "Open"
    reported_by: str = ""
    assigned_to: str | None = None
    comments: list[str] = field(default_factory=list)

    @property
    def is_open(self) -> bool:
        return self.status not in CLOSED_BUG_STATUSES

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "description": self.description,
            "severity": self.severity,
            "status": self.status,
            "reported_by": self.reported_by,
            "assigned_to": self.assigned_to,
            "comments": list(self.comments),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Bug:
        return cls(
            id=str(data.get("id", "")),
            description=str(data.get("description", "")),
            severity=str(data.get("severity", "Medium")),
            status=str(data.get("status", "Open")),
            reported_by=str(data.get("reported_by", "")),
            assigned_to=as_optional_str(data.get("assigned_to")),
            comments=_str_list(data.get("comments")),
        )


@dataclass
class Project:
    name: str = "New Project"
    goal: str = "Awaiting user definition"
    status: ProjectStatus = ProjectStatus.AWAITING_GOAL
    bugs: list[Bug] = field(default_factory=list)
    completed_tasks: list[str] = field(default_factory=list)

    @property
    def open_bugs(self) -> list[Bug]:
        return [b for b in self.bugs if b.is_open]

    def find_bug(self, bug_id: str) -> Bug | None:
        for bug in self.bugs:
            if bug.id.upper() == bug_id.upper():
                return bug
        return None

    def next_bug_id(self) -> str:
        highest = 0
        for bug in self.bugs:
            m = re.fullmatch(r"B(\d+)", bug.id, re.IGNORECASE)
            if m:
                highest = max(highest, int(m.group(1)))
        return f"B{highest + 1}"

    def record_completed_task(self, task: str) -> None:
        push_bounded(self.completed_tasks, task, MAX_COMPLETED_TASKS)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "goal": self.goal,
            "status": self.status.value,
            "bugs": [b.to_dict() for b in self.bugs],
            "completed_tasks": list(self.completed_tasks),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Project:
        completed = _str_list(data.get("completed_tasks"))
        return cls(
            name=str(data.get("name") or "New Project"),
            goal=str(data.get("goal") or "Awaiting user definition"),
            status=ProjectStatus.lookup(data.get("status")),
            bugs=[Bug.from_dict(b) for b in _dicts(data.get("bugs"))],
            completed_tasks=completed[-MAX_COMPLETED_TASKS:],
        )


@dataclass
class OrchestratorRecord:
    id: str
    role: str
    capabilities: list[str] = field(default_factory=list)
    description: str = ""
    current_focus: str | None = None

    @property
    def is_valid(self) -> bool:
        return bool(self.id) and bool(self.role)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "capabilities": list(self.capabilities),
            "description": self.description,
            "current_focus": self.current_focus,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> OrchestratorRecord:
        return cls(
            id=str(data.get("id") or ""),
            role=str(data.get("role") or ""),
            capabilities=_str_list(data.get("capabilities")),
            description=str(data.get("description") or ""),
            current_focus=as_optional_str(data.get("current_focus")),
        )


@dataclass
class Specialist:
    id: str
    role: str
    capabilities: list[str] = field(default_factory=list)
    description: str = ""
    task_description: str | None = None
    created_at: str = field(default_factory=_now)

    @property
    def idle(self) -> bool:
        return self.task_description is None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "capabilities": list(self.capabilities),
            "description": self.description,
            "task_description": self.task_description,
            "created_at": self.created_at,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Specialist:
        return cls(
            id=str(data.get("id") or ""),
            role=str(data.get("role") or ""),
            capabilities=_str_list(data.get("capabilities")),
            description=str(data.get("description") or ""),
            task_description=as_optional_str(data.get("task_description")),
            created_at=str(data.get("created_at") or _now()),
        )


@dataclass
class EventRecord:
    """One entry of the snapshot's bounded history window."""

    actor: str
    event: str
    timestamp: str = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {"actor": self.actor, "event": self.event, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EventRecord:
        return cls(
            actor=str(data.get("actor", "")),
            event=str(data.get("event", "")),
            timestamp=str(data.get("timestamp") or _now()),
        )


@dataclass
class FileOpResult:
    """Outcome of one file mutation. ``error_code`` is an errno name or EINVAL."""

    type: FileActionType
    path: str
    success: bool
    error: str | None = None
    error_code: str | None = None
    timestamp: str = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "path": self.path,
            "success": self.success,
            "error": self.error,
            "error_code": self.error_code,
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FileOpResult:
        return cls(
            type=FileActionType(data["type"]),
            path=str(data.get("path", "")),
            success=bool(data.get("success", False)),
            error=as_optional_str(data.get("error")),
            error_code=as_optional_str(data.get("error_code")),
            timestamp=str(data.get("timestamp") or _now()),
        )


@dataclass
class FileVerification:
    agent_id: str
    task: str
    results: list[FileOpResult] = field(default_factory=list)
    timestamp: str = field(default_factory=_now)

    @property
    def failures(self) -> list[FileOpResult]:
        return [r for r in self.results if not r.success]

    def to_dict(self) -> dict[str, Any]:
        return {
            "agent_id": self.agent_id,
            "task": self.task,
            "results": [r.to_dict() for r in self.results],
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FileVerification:
        return cls(
            agent_id=str(data.get("agent_id", "")),
            task=str(data.get("task", "")),
            results=[FileOpResult.from_dict(r) for r in _dicts(data.get("results")) if _known_action(r.get("type"))],
            timestamp=str(data.get("timestamp") or _now()),
        )


@dataclass
class DirectoryListing:
    path: str
    entries: list[str] = field(default_factory=list)

    @property
    def formatted_listing(self) -> str:
        return "\n".join(self.entries)

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "entries": list(self.entries)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DirectoryListing:
        return cls(path=str(data.get("path", "")), entries=_str_list(data.get("entries")))


@dataclass
class FileReadContent:
    path: str
    content: str
    is_truncated: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {"path": self.path, "content": self.content, "is_truncated": self.is_truncated}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> FileReadContent:
        return cls(
            path=str(data.get("path", "")),
            content=str(data.get("content", "")),
            is_truncated=bool(data.get("is_truncated", False)),
        )


@dataclass
class Snapshot:
    """The single persisted aggregate, owned by the loop for one cycle at a time."""

    orchestrator: OrchestratorRecord
    phase: Phase = Phase.AWAITING_GOAL
    project: Project = field(default_factory=Project)
    specialists: list[Specialist] = field(default_factory=list)
    event_log: list[EventRecord] = field(default_factory=list)
    last_console_output: str | None = None
    last_directory_listing: DirectoryListing | None = None
    last_file_read: FileReadContent | None = None
    last_specialist_event: EventRecord | None = None
    file_verifications: list[FileVerification] = field(default_factory=list)
    project_structure: str = "Empty"
    project_sequence: list[str] = field(default_factory=list)

    def record_verification(self, verification: FileVerification) -> None:
        push_bounded(self.file_verifications, verification, MAX_FILE_VERIFICATIONS)


    def clear_observations(self) -> None:
        self.last_console_output = None
        self.last_directory_listing = None
        self.last_file_read = None
        self.last_specialist_event = None


def snapshot_to_dict(snapshot: Snapshot) -> dict[str, Any]:
    """Serialize a Snapshot to a JSON-safe dict."""
    return {
        "phase": snapshot.phase.value,
        "project": snapshot.project.to_dict(),
        "orchestrator": snapshot.orchestrator.to_dict(),
        "specialists": [s.to_dict() for s in snapshot.specialists],
        "event_log": [e.to_dict() for e in snapshot.event_log],
        "last_console_output": snapshot.last_console_output,
        "last_directory_listing": (
            snapshot.last_directory_listing.to_dict() if snapshot.last_directory_listing else None
        ),
        "last_file_read": snapshot.last_file_read.to_dict() if snapshot.last_file_read else None,
        "last_specialist_event": (
            snapshot.last_specialist_event.to_dict() if snapshot.last_specialist_event else None
        ),
        "file_verifications": [v.to_dict() for v in snapshot.file_verifications],
        "project_structure": snapshot.project_structure,
        "project_sequence": list(snapshot.project_sequence),
    }
