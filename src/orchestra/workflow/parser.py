"""Action grammar parser.

Turns a free-form directive into an :class:`ActionBundle`. Parsing is a
pure function of its input: the same text always yields an equal bundle,
malformed markers are skipped one by one, and nothing here raises for bad
input.

Grammar (marker names are case-insensitive, parameters are ``key="value"``
pairs on the marker's line)::

    SYSTEM_ACTION: CHANGE_PHASE phase="Testing" reason="..."
    SYSTEM_ACTION: CHANGE_STATUS status="Completed" reason="..."
    SYSTEM_ACTION: WAIT reason="..."
    SYSTEM_ACTION: REQUEST_USER_INPUT reason="..."
    ACTION: LIST_DIRECTORY path="src/"
    ACTION: READ_FILE path="src/app.py"
    ACTION: DELEGATE_TASK role="Executor-Code" description="..."
    ACTION: RUN_TEST_COMMAND command="pytest -q"
    ACTION: CREATE_FILE path="src/app.py"      (content: next unclaimed fenced block)
    ACTION: MODIFY_FILE path="src/app.py"      (content: next unclaimed fenced block)
    ACTION: CREATE_DIRECTORY path="src/"
    ACTION: REPORT_BUG description="..." severity="High"
    ACTION: VERIFY_BUG id="B1" status="Verified" comment="..."
    ACTION: FIX_BUG id="B1" comment="..."
    TASK_COMPLETE: <assigned task text>
    TASK_BLOCKED: <reason>

Single-valued actions take the first well-formed occurrence; file and bug
actions collect every occurrence in document order.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum

from .models import FileActionType


class SystemActionType(StrEnum):
    CHANGE_PHASE = "CHANGE_PHASE"
    CHANGE_STATUS = "CHANGE_STATUS"
    WAIT = "WAIT"
    REQUEST_USER_INPUT = "REQUEST_USER_INPUT"


class BugActionType(StrEnum):
    REPORT_BUG = "REPORT_BUG"
    VERIFY_BUG = "VERIFY_BUG"
    FIX_BUG = "FIX_BUG"


class TaskStatusType(StrEnum):
    COMPLETE = "TASK_COMPLETE"
    BLOCKED = "TASK_BLOCKED"


# Parameter each system action carries; CHANGE_* cannot do without theirs.
_SYSTEM_PARAM: dict[SystemActionType, str] = {
    SystemActionType.CHANGE_PHASE: "phase",
    SystemActionType.CHANGE_STATUS: "status",
    SystemActionType.WAIT: "reason",
    SystemActionType.REQUEST_USER_INPUT: "reason",
}
_SYSTEM_PARAM_REQUIRED = frozenset({SystemActionType.CHANGE_PHASE, SystemActionType.CHANGE_STATUS})

VERIFY_BUG_STATUSES = ("Verified", "Reopened")

_SYSTEM_ACTION_RE = re.compile(r"(?<!\w)SYSTEM_ACTION:\s*(\w+)", re.IGNORECASE)
# The lookbehind keeps "SYSTEM_ACTION:" from also matching as "ACTION:"
_ACTION_RE = re.compile(r"(?<!\w)ACTION:[ \t]*([A-Za-z_]+)", re.IGNORECASE)
_PARAM_RE = re.compile(r'(\w+)[ \t]*=[ \t]*(?:"([^"\n]*)"|([^\s"`]+))')
_FENCE_RE = re.compile(r"```(?:[\w+.#-]*[ \t]*\r?\n)?([\s\S]*?)```")
_TASK_BLOCKED_RE = re.compile(r"(?i:TASK_BLOCKED):[ \t]*(.*)")
_BUG_ID_RE = re.compile(r"B\d+", re.IGNORECASE)


@dataclass(frozen=True)
class SystemAction:
    type: SystemActionType
    key: str
    value: str | None = None
    reason: str | None = None


@dataclass(frozen=True)
class ListDirectoryAction:
    path: str


@dataclass(frozen=True)
class ReadFileAction:
    path: str


@dataclass(frozen=True)
class DelegateTaskAction:
    role: str
    description: str


@dataclass(frozen=True)
class CommandAction:
    command: str


@dataclass(frozen=True)
class FileAction:
    type: FileActionType
    path: str
    content: str | None = None


@dataclass(frozen=True)
class BugAction:
    type: BugActionType
    bug_id: str | None = None
    description: str | None = None
    severity: str | None = None
    status: str | None = None
    comment: str = ""


@dataclass(frozen=True)
class TaskStatus:
    type: TaskStatusType
    detail: str  # the task text for COMPLETE, the reason for BLOCKED


@dataclass(frozen=True)
class ActionBundle:
    system_action: SystemAction | None = None
    list_directory: ListDirectoryAction | None = None
    read_file: ReadFileAction | None = None
    delegate_task: DelegateTaskAction | None = None
    command: CommandAction | None = None
    file_actions: tuple[FileAction, ...] = ()
    bug_actions: tuple[BugAction, ...] = ()
    task_status: TaskStatus | None = None

    @property
    def is_empty(self) -> bool:
        return self == ActionBundle()


@dataclass(frozen=True)
class _Marker:
    name: str
    start: int
    end: int
    params: dict[str, str]


@dataclass(frozen=True)
class _Fence:
    start: int
    content: str


def parse_actions(text: str, task_description: str | None = None) -> ActionBundle:
    """Parse one directive into an action bundle.

    Args:
        text: Raw model output.
        task_description: The responding specialist's assigned task. Task
            status markers are only recognized when this is given.
    """
    if not isinstance(text, str) or not text:
        return ActionBundle()

    markers = _scan_markers(text)
    fences = _scan_fences(text)

    return ActionBundle(
        system_action=_find_system_action(text),
        list_directory=_first_path_action(markers, "LIST_DIRECTORY", ListDirectoryAction),
        read_file=_first_path_action(markers, "READ_FILE", ReadFileAction),
        delegate_task=_find_delegation(markers),
        command=_find_command(markers),
        file_actions=tuple(associate_file_content(markers, fences)),
        bug_actions=tuple(_collect_bug_actions(markers)),
        task_status=_find_task_status(text, task_description) if task_description else None,
    )


# ── Tokenizing ─────────────────────────────────────────────────────


def _line_tail(text: str, pos: int) -> tuple[str, int]:
    """Text from ``pos`` to the end of its line, and that line end offset."""
    line_end = text.find("\n", pos)
    if line_end == -1:
        line_end = len(text)
    return text[pos:line_end], line_end


def _parse_params(segment: str) -> tuple[dict[str, str], int]:
    """Parse ``key="value"`` pairs; returns (params, end offset of the last pair)."""
    params: dict[str, str] = {}
    last_end = 0
    for m in _PARAM_RE.finditer(segment):
        key = m.group(1).lower()
        value = m.group(2) if m.group(2) is not None else m.group(3)
        params.setdefault(key, value.strip())
        last_end = m.end()
    return params, last_end


def _scan_markers(text: str) -> list[_Marker]:
    markers = []
    for m in _ACTION_RE.finditer(text):
        segment, _ = _line_tail(text, m.end())
        params, params_end = _parse_params(segment)
        markers.append(_Marker(name=m.group(1).upper(), start=m.start(), end=m.end() + params_end, params=params))
    return markers


def _scan_fences(text: str) -> list[_Fence]:
    fences = []
    for m in _FENCE_RE.finditer(text):
        content = m.group(1)
        # The newline before the closing fence belongs to the fence
        if content.endswith("\r\n"):
            content = content[:-2]
        elif content.endswith("\n"):
            content = content[:-1]
        fences.append(_Fence(start=m.start(), content=content))
    return fences


# ── Single-valued actions ──────────────────────────────────────────


def _find_system_action(text: str) -> SystemAction | None:
    for m in _SYSTEM_ACTION_RE.finditer(text):
        try:
            action_type = SystemActionType(m.group(1).upper())
        except ValueError:
            continue
        segment, _ = _line_tail(text, m.end())
        params, _ = _parse_params(segment)
        key = _SYSTEM_PARAM[action_type]
        value = params.get(key) or None
        if action_type in _SYSTEM_PARAM_REQUIRED and not value:
            continue
        return SystemAction(type=action_type, key=key, value=value, reason=params.get("reason") or None)
    return None


def _first_path_action(markers: list[_Marker], name: str, action_cls: type) -> object | None:
    for marker in markers:
        if marker.name == name and marker.params.get("path"):
            return action_cls(path=marker.params["path"])
    return None


def _find_delegation(markers: list[_Marker]) -> DelegateTaskAction | None:
    for marker in markers:
        if marker.name != "DELEGATE_TASK":
            continue
        role = marker.params.get("role")
        description = marker.params.get("description")
        if role and description:
            return DelegateTaskAction(role=role, description=description)
    return None


def _find_command(markers: list[_Marker]) -> CommandAction | None:
    for marker in markers:
        if marker.name == "RUN_TEST_COMMAND" and marker.params.get("command"):
            return CommandAction(command=marker.params["command"])
    return None


def _find_task_status(text: str, task_description: str) -> TaskStatus | None:
    task = task_description.strip()
    if task and re.search(r"(?i:TASK_COMPLETE):[ \t]*" + re.escape(task), text):
        return TaskStatus(type=TaskStatusType.COMPLETE, detail=task)

    for m in _TASK_BLOCKED_RE.finditer(text):
        reason = m.group(1).strip().strip("`").strip()
        if reason:
            return TaskStatus(type=TaskStatusType.BLOCKED, detail=reason)
    return None


# ── Multi-valued actions ───────────────────────────────────────────


def associate_file_content(markers: list[_Marker], fences: list[_Fence]) -> list[FileAction]:
    """Pair file markers with fenced blocks.

    Markers are visited in document order; each CREATE_FILE/MODIFY_FILE
    claims the first unclaimed block starting after the marker ends. A
    claimed block is never handed out again, even when its marker is then
    dropped (empty MODIFY_FILE) or deduplicated.
    """
    file_names = {t.value for t in FileActionType}
    claimed = [False] * len(fences)
    seen: set[tuple[FileActionType, str]] = set()
    actions: list[FileAction] = []

    for marker in sorted((m for m in markers if m.name in file_names), key=lambda m: m.start):
        path = marker.params.get("path")
        if not path:
            continue
        action_type = FileActionType(marker.name)

        content: str | None = None
        if action_type is not FileActionType.CREATE_DIRECTORY:
            for i, fence in enumerate(fences):
                if not claimed[i] and fence.start > marker.end:
                    claimed[i] = True
                    content = fence.content
                    break

        if action_type is FileActionType.CREATE_FILE and content is None:
            content = ""
        if action_type is FileActionType.MODIFY_FILE and (content is None or not content.strip()):
            continue

        key = (action_type, path)
        if key in seen:
            continue
        seen.add(key)
        actions.append(FileAction(type=action_type, path=path, content=content))

    return actions


def _collect_bug_actions(markers: list[_Marker]) -> list[BugAction]:
    bug_names = {t.value for t in BugActionType}
    actions: list[BugAction] = []

    for marker in markers:
        if marker.name not in bug_names:
            continue
        params = marker.params
        action_type = BugActionType(marker.name)
        comment = params.get("comment", "")

        if action_type is BugActionType.REPORT_BUG:
            if params.get("description") and params.get("severity"):
                actions.append(
                    BugAction(
                        type=action_type,
                        description=params["description"],
                        severity=params["severity"],
                        comment=comment,
                    )
                )
            continue

        bug_id = params.get("id", "")
        if not _BUG_ID_RE.fullmatch(bug_id):
            continue
        bug_id = bug_id.upper()

        if action_type is BugActionType.VERIFY_BUG:
            status = _match_verify_status(params.get("status", ""))
            if status:
                actions.append(BugAction(type=action_type, bug_id=bug_id, status=status, comment=comment))
        else:
            actions.append(BugAction(type=action_type, bug_id=bug_id, comment=comment))

    return actions


def _match_verify_status(value: str) -> str | None:
    for status in VERIFY_BUG_STATUSES:
        if value.lower() == status.lower():
            return status
    return None
