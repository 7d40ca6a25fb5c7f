"""Prompt builders for the orchestrator and specialist turns.

Both builders are pure functions of the snapshot: they read state and
return text, and never mutate what they are given.
"""

from __future__ import annotations

from orchestra.core.utils.text import preview

from .models import Snapshot, Specialist
from .specialists import EXECUTOR_CODE, EXECUTOR_DESIGN, EXECUTOR_TEST

HISTORY_WINDOW = 5
HISTORY_EVENT_PREVIEW = 70
COMPLETED_TASKS_WINDOW = 5
OPEN_BUGS_SHOWN = 3
SPECIALIST_EVENT_PREVIEW = 300
TRIGGER_PREVIEW = 300
FILE_READ_PREVIEW = 1000
TASK_PREVIEW = 30

ORCHESTRATOR_INSTRUCTIONS = """\
Instruction: Analyze the current state, goal, and recent events. Determine the most critical action to progress. You can either:

1. PERFORM DIRECT ACTIONS:
*   `ACTION: READ_FILE path="src/app.py"` (To get the content of a specific file)
*   `ACTION: LIST_DIRECTORY path="src/"` (To get contents of a specific directory)
*   `ACTION: RUN_TEST_COMMAND command="command to run"` (To execute a test or system command; no pipes or chaining)

2. DELEGATE TO SPECIALISTS:
*   `ACTION: DELEGATE_TASK role="Executor-Code" description="Clear, specific, actionable coding task"`
*   `ACTION: DELEGATE_TASK role="Executor-Test" description="Clear, specific, actionable testing task"`
*   `ACTION: DELEGATE_TASK role="Executor-Design" description="Clear, specific, actionable design task"`

3. SYSTEM ACTIONS:
*   `SYSTEM_ACTION: CHANGE_PHASE phase="NewPhase" reason="Justification"` (Phases: Planning, Design, Implementation, Testing, Review, Deployment, AWAITING_NEXT_GOAL when the goal is achieved)
*   `SYSTEM_ACTION: CHANGE_STATUS status="NewStatus" reason="Justification"` (Statuses: Planning, In Progress, Testing, Blocked, Completed)
*   `SYSTEM_ACTION: WAIT reason="Why waiting, e.g., Waiting for specialist to complete task"`
*   `SYSTEM_ACTION: REQUEST_USER_INPUT reason="Why input needed, e.g., Awaiting next goal"`

CRITICAL CONSTRAINTS:
1. DO NOT re-assign recently completed tasks.
2. If FILE OPERATIONS VERIFICATION shows failures, fix directly or delegate a fix task.
3. If LAST SPECIALIST EVENT contains 'TASK_BLOCKED:', DO NOT WAIT. Analyze the reason and take appropriate action.
4. Use READ/LIST actions if more info needed BEFORE delegating tasks.
5. For complex tasks requiring specialized knowledge, DELEGATE rather than attempting directly.
6. All paths are relative to the project workspace root. Never start a path with "/".
7. Respond ONLY with the single chosen action string.
"""

_ROLE_ACTIONS = {
    EXECUTOR_TEST: (
        '    *   Bug Reporting: `ACTION: REPORT_BUG description="Detailed description..." severity="High/Medium/Low"`\n'
        '    *   Bug Verification: `ACTION: VERIFY_BUG id="B1" status="Verified/Reopened" comment="..."`\n'
    ),
    EXECUTOR_CODE: (
        '    *   Bug Fixing: `ACTION: FIX_BUG id="B1" comment="Fixed by [changes]"` (Use AFTER modifying files)\n'
        "\nIMPORTANT CLARIFICATION FOR CODE EXECUTOR:\n"
        "- When asked to create code/scripts: Use CREATE_FILE to write the code content to a file, NOT to output commands.\n"
        "- If you need a command executed: ask the Orchestrator to run it via a TASK_BLOCKED message.\n"
        "- NEVER include executable shell commands as file content unless explicitly creating a script file.\n"
        "- Always include complete, runnable code in file content, not command instructions.\n"
    ),
    EXECUTOR_DESIGN: "    *   Design Implementation: Use CREATE_FILE/MODIFY_FILE for CSS, HTML, or other design assets.\n",
}


def _fenced(title: str, body: str) -> str:
    return f"\n{title}:\n```\n{body}\n```\n"


def _specialist_lines(snapshot: Snapshot) -> str:
    if not snapshot.specialists:
        return "- No active specialists"
    lines = []
    for s in snapshot.specialists:
        if s.idle:
            lines.append(f"- {s.id} ({s.role}): IDLE")
        else:
            lines.append(f'- {s.id} ({s.role}): BUSY ("{preview(s.task_description or "", TASK_PREVIEW)}")')
    return "\n".join(lines)


def _bug_summary(snapshot: Snapshot) -> str:
    open_bugs = snapshot.project.open_bugs
    if not open_bugs:
        return "No open bugs."
    shown = []
    for bug in open_bugs[:OPEN_BUGS_SHOWN]:
        owner = f"->{bug.assigned_to.split('-')[-1]}" if bug.assigned_to else ""
        shown.append(f"#{bug.id}({bug.status}{owner})")
    more = "..." if len(open_bugs) > OPEN_BUGS_SHOWN else ""
    return f"Open Bugs ({len(open_bugs)}): {', '.join(shown)}{more}"


def _completed_summary(snapshot: Snapshot) -> str:
    recent = snapshot.project.completed_tasks[-COMPLETED_TASKS_WINDOW:]
    if not recent:
        return "No recently completed tasks."
    tasks = "\n".join(f'- "{task}"' for task in recent)
    return f"Recently Completed Tasks ({len(recent)}):\n{tasks}"


def _verification_summary(snapshot: Snapshot) -> str:
    if not snapshot.file_verifications:
        return ""
    latest = snapshot.file_verifications[-1]
    failures = latest.failures
    text = (
        f"\nLATEST FILE OPERATIONS VERIFICATION ({latest.agent_id}):\n"
        f'Task: "{latest.task}"\n'
        f"Status: {len(latest.results) - len(failures)} successful, {len(failures)} failed\n"
    )
    if failures:
        text += "Failed Operations:\n"
        text += "".join(f'- {r.type.value} on "{r.path}" failed: {r.error}\n' for r in failures)
    return text


def build_orchestrator_context(snapshot: Snapshot) -> str:
    """Render the orchestrator's prompt: state summary, observations, then instructions."""
    project = snapshot.project
    orchestrator = snapshot.orchestrator

    parts = [
        f"SYSTEM STATE for Orchestrator (ID: {orchestrator.id}):\n\n",
        f"Current Overall Phase: {snapshot.phase.value}\n",
        f"Project: {project.name} | Status: {project.status.value}\n",
        f'User Goal: "{project.goal}"\n',
        f"Project Files (summary): {snapshot.project_structure or 'None'}\n",
        f"Bugs: {_bug_summary(snapshot)}\n",
        f"Current Focus: {orchestrator.current_focus or 'None'}\n",
        f"Active Specialists:\n{_specialist_lines(snapshot)}\n",
        f"{_completed_summary(snapshot)}\n",
    ]

    history = snapshot.event_log[-HISTORY_WINDOW:]
    if history:
        lines = "\n".join(f"[{e.actor}] {preview(e.event, HISTORY_EVENT_PREVIEW)}" for e in history)
        parts.append(f"Recent Event History (last {HISTORY_WINDOW}):\n{lines}\n")

    last = snapshot.last_specialist_event
    if last is not None:
        parts.append(_fenced(f"LAST SPECIALIST EVENT ({last.actor})", preview(last.event, SPECIALIST_EVENT_PREVIEW)))

    parts.append(_verification_summary(snapshot))

    if snapshot.last_console_output:
        parts.append(_fenced("LAST CONSOLE OUTPUT", snapshot.last_console_output))
    if snapshot.last_directory_listing is not None:
        listing = snapshot.last_directory_listing
        parts.append(_fenced(f"LAST DIRECTORY LISTING ({listing.path})", listing.formatted_listing or "(empty)"))
    if snapshot.last_file_read is not None:
        read = snapshot.last_file_read
        body = read.content[:FILE_READ_PREVIEW]
        if len(read.content) > FILE_READ_PREVIEW:
            body += "\n... (content truncated for context)"
        parts.append(_fenced(f"LAST FILE READ ({read.path})", body))

    parts.append("\n\n")
    parts.append(ORCHESTRATOR_INSTRUCTIONS)
    return "".join(parts)


def build_specialist_context(specialist: Specialist, snapshot: Snapshot, trigger_text: str | None = None) -> str:
    """Render a specialist's prompt for its assigned task.

    ``trigger_text`` is the orchestrator directive that delegated the task;
    only a short preview of it is included.
    """
    project = snapshot.project
    task = specialist.task_description or "None (awaiting instructions)"
    trigger = trigger_text or "Execute assigned task based on project goal and status."

    prompt = (
        f"SPECIALIST EXECUTOR TASKING (ID: {specialist.id}, ROLE: {specialist.role}):\n\n"
        f"Project: {project.name} ({project.status.value})\n"
        f'Project Goal: "{project.goal}"\n'
        f'Assigned Task Description: "{task}"\n'
        f"Project Files (summary): {snapshot.project_structure or 'None'}\n\n"
        f"Triggering Orchestrator Delegation:\n>>>\n{preview(trigger, TRIGGER_PREVIEW)}\n>>>\n\n"
        f"Instruction for {specialist.id}:\n"
        f'1. Execute your assigned task ("{task}") precisely.\n'
        "2. Output deliverables/results using STRICT ACTION formats. Paths are relative to the "
        'project workspace root (e.g. "src/app.js"); never start a path with "/":\n'
        '    *   Code/Text Files: `ACTION: CREATE_FILE path="src/file.ext"`\n```\nFile Content Here\n```\n'
        '    *   File Modifications: `ACTION: MODIFY_FILE path="src/existing.ext"`\n```\nNew Full File Content Here\n```\n'
        '    *   Directory Creation: `ACTION: CREATE_DIRECTORY path="src/new_dir/"`\n'
    )
    prompt += _ROLE_ACTIONS.get(specialist.role, "")
    prompt += (
        f"3. On SUCCESSFUL and FULL completion of the task, end your response with the exact phrase: "
        f"`TASK_COMPLETE: {task}`\n"
        "4. If task completion is BLOCKED or impossible, respond with the exact format: "
        "`TASK_BLOCKED: [Clear reason for blockage]`\n"
        "5. Critical Constraint: Your response MUST contain only file/bug ACTIONs and at most ONE "
        "TASK_COMPLETE or TASK_BLOCKED line. Do NOT add conversational text.\n"
        "\nExecute and provide output now:"
    )
    return prompt
