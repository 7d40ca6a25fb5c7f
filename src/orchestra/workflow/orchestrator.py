"""Orchestration loop: one orchestrator decision per cycle, at most one specialist turn.

Each cycle reloads the snapshot, asks the orchestrator for a directive,
parses it, and applies the resulting effects in a fixed order:

    system action -> list/read observations -> command -> delegation -> specialist turn

Which effects may run together is decided by :data:`PRECEDENCE`, not by
code order. The snapshot is checkpointed after every effect category so a
crash loses at most one step.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from loguru import logger

from orchestra.core.utils.text import preview, slugify_goal

from .commands import CommandRunner
from .context import build_orchestrator_context, build_specialist_context
from .events import SYSTEM, SYSTEM_BUGS, SYSTEM_EXEC, SYSTEM_LIST_DIR, SYSTEM_READ_FILE, SYSTEM_VERIFY, USER
from .inference import InferenceBackend, is_inference_failure
from .models import (
    REQUESTABLE_PHASES,
    Bug,
    DirectoryListing,
    EventRecord,
    FileReadContent,
    FileVerification,
    Phase,
    Project,
    ProjectStatus,
    Snapshot,
    Specialist,
)
from .operator import Operator
from .parser import (
    ActionBundle,
    BugAction,
    BugActionType,
    CommandAction,
    DelegateTaskAction,
    FileAction,
    ListDirectoryAction,
    ReadFileAction,
    SystemAction,
    SystemActionType,
    TaskStatusType,
    parse_actions,
)
from .specialists import SpecialistRegistry
from .store import EventLog, SnapshotStore
from .workspace import FileOperationQueue, Workspace

if TYPE_CHECKING:
    from orchestra.core.config import Config


class Effect(StrEnum):
    HALT = "halt"  # WAIT, REQUEST_USER_INPUT, or a transition that completes the project
    SYSTEM = "system"  # any other system action
    COMMAND = "command"
    DELEGATION = "delegation"


# Highest precedence first. An effect that is present suppresses the effects listed beside it.
PRECEDENCE: tuple[tuple[Effect, frozenset[Effect]], ...] = (
    (Effect.HALT, frozenset({Effect.COMMAND, Effect.DELEGATION})),
    (Effect.SYSTEM, frozenset()),
    (Effect.COMMAND, frozenset({Effect.DELEGATION})),
    (Effect.DELEGATION, frozenset()),
)


def halts_cycle(action: SystemAction) -> bool:
    """True for system actions after which no command or specialist may run this cycle."""
    if action.type in (SystemActionType.WAIT, SystemActionType.REQUEST_USER_INPUT):
        return True
    if action.type is SystemActionType.CHANGE_PHASE:
        return Phase.lookup(action.value) is Phase.AWAITING_NEXT_GOAL
    return ProjectStatus.lookup(action.value) is ProjectStatus.COMPLETED


@dataclass(frozen=True)
class ExecutionPlan:
    """The effects of one directive that survive precedence resolution."""

    system_action: SystemAction | None = None
    command: CommandAction | None = None
    delegation: DelegateTaskAction | None = None
    suppressed: frozenset[Effect] = frozenset()


def resolve_execution(bundle: ActionBundle) -> ExecutionPlan:
    present: set[Effect] = set()
    if bundle.system_action is not None:
        present.add(Effect.HALT if halts_cycle(bundle.system_action) else Effect.SYSTEM)
    if bundle.command is not None:
        present.add(Effect.COMMAND)
    if bundle.delegate_task is not None:
        present.add(Effect.DELEGATION)

    suppressed: set[Effect] = set()
    for effect, suppresses in PRECEDENCE:
        if effect in present and effect not in suppressed:
            suppressed |= suppresses

    return ExecutionPlan(
        system_action=bundle.system_action,
        command=bundle.command if Effect.COMMAND not in suppressed else None,
        delegation=bundle.delegate_task if Effect.DELEGATION not in suppressed else None,
        suppressed=frozenset(present & suppressed),
    )


@dataclass
class LoopSettings:
    max_cycles: int = 100
    wait_threshold: int = 5
    max_history_turns: int = 15
    cycle_delay: float = 1.5
    specialist_delay: float = 2.0

    @classmethod
    def from_config(cls, config: Config) -> LoopSettings:
        return cls(
            max_cycles=config.get_int("loop.max_cycles", cls.max_cycles),
            wait_threshold=config.get_int("loop.wait_threshold", cls.wait_threshold),
            max_history_turns=config.get_int("loop.max_history_turns", cls.max_history_turns),
            cycle_delay=config.get_float("loop.cycle_delay", cls.cycle_delay),
            specialist_delay=config.get_float("loop.specialist_delay", cls.specialist_delay),
        )


@dataclass
class CycleOutcome:
    """What one cycle did; returned for the run loop and for tests."""

    directive: str
    failed: bool = False
    plan: ExecutionPlan | None = None
    specialist_id: str | None = None
    completed: bool = False
    escalated: bool = False
    halted: bool = False


STAGNATION_PROMPT = (
    "System has been waiting for {count} consecutive cycles. What would you like to do?\n"
    "1. Continue waiting\n"
    "2. Request a specific action\n"
    "3. Change project goal\n"
    "Enter choice (1-3):"
)


def _with_reason(message: str, reason: str | None) -> str:
    return f"{message}: {reason}" if reason else message


class OrchestrationLoop:
    """Drives the orchestrator/specialist cycle over a persisted snapshot.

    The loop owns the in-memory snapshot for the duration of a cycle and
    reloads it from the store at the start of the next one.
    """

    def __init__(
        self,
        *,
        store: SnapshotStore,
        event_log: EventLog,
        workspace: Workspace,
        file_queue: FileOperationQueue,
        inference: InferenceBackend,
        operator: Operator,
        commands: CommandRunner,
        registry: SpecialistRegistry | None = None,
        settings: LoopSettings | None = None,
    ) -> None:
        self.store = store
        self.event_log = event_log
        self.workspace = workspace
        self.file_queue = file_queue
        self.inference = inference
        self.operator = operator
        self.commands = commands
        self.registry = registry or SpecialistRegistry()
        self.settings = settings or LoopSettings()

        self.snapshot: Snapshot | None = None
        self.cycles_run = 0
        self._wait_count = 0

    @property
    def wait_count(self) -> int:
        """Consecutive WAIT directives seen since the last reset."""
        return self._wait_count

    # -- Public API ----------------------------------------------------------

    async def run(self) -> int:
        """Run cycles until the operator stops or ``max_cycles`` is reached.

        Returns:
            The number of cycles run.
        """
        self.workspace.ensure_root()
        self.snapshot = await self.store.load()
        await self._checkpoint()

        snapshot = self.snapshot
        logger.info(
            f"System ready. Phase: {snapshot.phase.value} | "
            f"Project: {snapshot.project.name!r} ({snapshot.project.status.value})"
        )

        if snapshot.phase.awaiting_input:
            if not await self._prompt_for_goal(initial=snapshot.phase is Phase.AWAITING_GOAL):
                return self.cycles_run

        while self.cycles_run < self.settings.max_cycles:
            self.cycles_run += 1
            outcome = await self.run_cycle()
            if outcome.halted:
                break
            await asyncio.sleep(self.settings.cycle_delay)
        else:
            logger.warning(f"Stopping after reaching the cycle limit ({self.settings.max_cycles})")

        await self.file_queue.wait_for_drain()
        return self.cycles_run

    async def run_cycle(self) -> CycleOutcome:
        """One orchestrator decision and everything it triggers."""
        self.snapshot = await self.store.load()
        snapshot = self.snapshot
        snapshot.project_structure = await self.workspace.structure_summary()

        orchestrator = snapshot.orchestrator
        log = logger.bind(agent=orchestrator.id)
        log.info(f"Processing state (cycle {self.cycles_run})")
        directive = await self.inference.infer(build_orchestrator_context(snapshot))
        # Observations are shown to the orchestrator exactly once
        snapshot.clear_observations()
        await self._record(orchestrator.id, directive)

        if is_inference_failure(directive):
            logger.warning(f"No actionable directive this cycle: {preview(directive, 200)}")
            await self._finish_cycle()
            return CycleOutcome(directive=directive, failed=True)

        log.info(f"Directive: {preview(directive, 300)}")
        bundle = parse_actions(directive)
        plan = resolve_execution(bundle)
        outcome = CycleOutcome(directive=directive, plan=plan)
        if plan.suppressed:
            logger.info(f"Suppressed this cycle: {', '.join(sorted(e.value for e in plan.suppressed))}")

        if plan.system_action is not None:
            await self._apply_system_action(plan.system_action, outcome)
        else:
            self._wait_count = 0
        await self._checkpoint()

        if bundle.list_directory is not None:
            await self._list_directory(bundle.list_directory)
        if bundle.read_file is not None:
            await self._read_file(bundle.read_file)
        if plan.command is not None:
            await self._run_command(plan.command)

        if outcome.completed:
            outcome.halted = not await self._prompt_for_goal(initial=False)
        elif plan.delegation is not None:
            specialist = await self._delegate(plan.delegation)
            if specialist is not None:
                outcome.specialist_id = specialist.id
                await self._run_specialist_turn(specialist, directive)

        await self._finish_cycle()
        return outcome

    # -- Project lifecycle ---------------------------------------------------

    async def _prompt_for_goal(self, *, initial: bool) -> bool:
        """Ask for a goal and start it. False means the operator chose to stop."""
        question = "Enter initial project goal:" if initial else "Project complete! Next goal? (or type 'exit'):"
        goal = (await self.operator.ask(question)).strip()
        if not goal or goal.lower() == "exit":
            logger.info("No goal provided; stopping")
            return False
        await self._start_project(goal)
        return True

    async def _start_project(self, goal: str) -> None:
        snapshot = self.snapshot
        name = slugify_goal(goal)
        snapshot.project = Project(name=name, goal=goal, status=ProjectStatus.PLANNING)
        snapshot.phase = Phase.PLANNING
        snapshot.specialists = []
        snapshot.orchestrator.current_focus = None
        snapshot.clear_observations()
        snapshot.project_sequence.append(name)
        self._wait_count = 0

        self.operator.notify(f'Goal set: "{goal}". Starting Planning phase.', title=name)
        await self._record(USER, f"Set Goal: {goal}")
        await self._checkpoint()

    async def _complete_project(self, reason: str | None) -> None:
        snapshot = self.snapshot
        project = snapshot.project
        project.status = ProjectStatus.COMPLETED
        snapshot.phase = Phase.AWAITING_NEXT_GOAL
        snapshot.orchestrator.current_focus = None
        snapshot.specialists = []

        message = f"Project {project.name!r} completed"
        if reason:
            message += f": {reason}"
        self.operator.notify(message, title="Project complete")
        await self._record(SYSTEM, message)

    # -- System actions ------------------------------------------------------

    async def _apply_system_action(self, action: SystemAction, outcome: CycleOutcome) -> None:
        if action.type is SystemActionType.WAIT:
            self._wait_count += 1
            logger.info(f"WAIT ({self._wait_count} consecutive): {action.reason or 'no reason given'}")
            await self._record(SYSTEM, f"WAIT: {action.reason or 'no reason given'}")
            if self._wait_count >= self.settings.wait_threshold:
                outcome.escalated = True
                await self._escalate()
            return

        self._wait_count = 0

        if action.type is SystemActionType.REQUEST_USER_INPUT:
            outcome.completed = True
            await self._complete_project(action.reason or "Orchestrator requested user input")
            return

        if action.type is SystemActionType.CHANGE_PHASE:
            await self._change_phase(action, outcome)
        else:
            await self._change_status(action, outcome)

    async def _change_phase(self, action: SystemAction, outcome: CycleOutcome) -> None:
        snapshot = self.snapshot
        target = Phase.lookup(action.value)
        if target not in REQUESTABLE_PHASES:
            logger.warning(f"Rejected phase change to unrecognized phase {action.value!r}")
            await self._record(SYSTEM, f"Rejected CHANGE_PHASE: unrecognized phase {action.value!r}")
            return
        if target is snapshot.phase:
            logger.info(f"Phase is already {target.value}; nothing to change")
            return
        if target is Phase.AWAITING_NEXT_GOAL:
            outcome.completed = True
            await self._complete_project(action.reason)
            return

        previous = snapshot.phase
        snapshot.phase = target
        logger.info(f"Phase: {previous.value} -> {target.value}")
        await self._record(SYSTEM, _with_reason(f"Phase changed from {previous.value} to {target.value}", action.reason))

    async def _change_status(self, action: SystemAction, outcome: CycleOutcome) -> None:
        project = self.snapshot.project
        target = ProjectStatus.lookup(action.value)
        if target is ProjectStatus.UNKNOWN:
            logger.warning(f"Rejected status change to unrecognized status {action.value!r}")
            await self._record(SYSTEM, f"Rejected CHANGE_STATUS: unrecognized status {action.value!r}")
            return
        if target is project.status:
            logger.info(f"Status is already {target.value}; nothing to change")
            return
        if target is ProjectStatus.COMPLETED:
            outcome.completed = True
            await self._complete_project(action.reason)
            return

        previous = project.status
        project.status = target
        logger.info(f"Status: {previous.value} -> {target.value}")
        await self._record(SYSTEM, _with_reason(f"Status changed from {previous.value} to {target.value}", action.reason))

    async def _escalate(self) -> None:
        """Stagnation guard: hand control to the operator once, then reset."""
        count = self._wait_count
        self._wait_count = 0
        logger.warning(f"{count} consecutive WAIT directives; asking the operator")

        choice = (await self.operator.ask(STAGNATION_PROMPT.format(count=count))).strip()
        await self._record(USER, f"Stagnation choice: {choice or '(none)'}")

        if choice == "2":
            request = (await self.operator.ask("What action would you like the system to take?")).strip()
            if request:
                self.snapshot.orchestrator.current_focus = f"User request: {request}"
                await self._record(USER, f"Requested action: {request}")
        elif choice == "3":
            goal = (await self.operator.ask("Enter new project goal:")).strip()
            if goal:
                await self._start_project(goal)
            else:
                logger.info("No new goal given; keeping the current project")
        elif choice != "1":
            logger.warning(f"Invalid stagnation choice {choice!r}; continuing")

    # -- Observations --------------------------------------------------------

    async def _list_directory(self, action: ListDirectoryAction) -> None:
        result = await self.workspace.list_directory(action.path)
        if result.success:
            self.snapshot.last_directory_listing = result.listing
            await self._record(SYSTEM_LIST_DIR, f"Listed directory: {result.path}", result=result.listing.to_dict())
        else:
            logger.warning(f"Directory listing failed for {action.path!r}: {result.error}")
            self.snapshot.last_directory_listing = DirectoryListing(path=result.path, entries=[f"Error: {result.error}"])
            await self._record(SYSTEM_LIST_DIR, f"Failed to list directory: {result.path}", error=result.error)
        await self._checkpoint()

    async def _read_file(self, action: ReadFileAction) -> None:
        result = await self.workspace.read_file(action.path)
        if result.success:
            read = result.file
            self.snapshot.last_file_read = read
            await self._record(
                SYSTEM_READ_FILE,
                f"Read file: {result.path}",
                result={"path": read.path, "size": len(read.content), "is_truncated": read.is_truncated},
            )
        else:
            logger.warning(f"File read failed for {action.path!r}: {result.error}")
            self.snapshot.last_file_read = FileReadContent(path=result.path, content=f"Error: {result.error}")
            await self._record(SYSTEM_READ_FILE, f"Failed to read file: {result.path}", error=result.error)
        await self._checkpoint()

    async def _run_command(self, action: CommandAction) -> None:
        output = await self.commands.run(action.command)
        self.snapshot.last_console_output = output
        await self._record(SYSTEM_EXEC, f"Executed: {action.command}", output=output)
        await self._checkpoint()

    # -- Delegation and specialist turns -------------------------------------

    async def _delegate(self, action: DelegateTaskAction) -> Specialist | None:
        snapshot = self.snapshot
        specialist = self.registry.assign(snapshot.specialists, action.role, action.description)
        if specialist is None:
            await self._record(SYSTEM, f"No specialist available for role {action.role!r}; not delegated: {action.description}")
            await self._checkpoint()
            return None

        snapshot.orchestrator.current_focus = f"{specialist.role}: {action.description}"
        await self._record(SYSTEM, f"Task delegated to {specialist.id}: {action.description}")
        await self._checkpoint()
        return specialist

    async def _run_specialist_turn(self, specialist: Specialist, trigger_text: str) -> None:
        snapshot = self.snapshot
        await asyncio.sleep(self.settings.specialist_delay)

        log = logger.bind(agent=specialist.id)
        log.info(f"Working on: {specialist.task_description}")
        response = await self.inference.infer(build_specialist_context(specialist, snapshot, trigger_text))
        await self._record(specialist.id, response)

        if is_inference_failure(response):
            log.error("No output; task stays assigned")
        else:
            bundle = parse_actions(response, specialist.task_description)
            if bundle.file_actions:
                await self._apply_file_actions(specialist, bundle.file_actions)
            if bundle.bug_actions:
                await self._apply_bug_actions(specialist, bundle.bug_actions)

            status = bundle.task_status
            if status is not None and status.type is TaskStatusType.COMPLETE:
                task = self.registry.complete(specialist)
                snapshot.project.record_completed_task(task or status.detail)
                log.info(f"Completed: {task}")
                await self._record(SYSTEM, f"{specialist.id} completed task: {task}")
            elif status is not None:
                log.warning(f"Blocked: {status.detail}")
                await self._record(SYSTEM, f"{specialist.id} blocked: {status.detail}")

        snapshot.last_specialist_event = EventRecord(actor=specialist.id, event=response)
        await self._checkpoint()

    async def _apply_file_actions(self, specialist: Specialist, actions: tuple[FileAction, ...]) -> None:
        futures = [self.file_queue.submit(a.type, a.path, a.content) for a in actions]
        results = list(await asyncio.gather(*futures))

        verification = FileVerification(agent_id=specialist.id, task=specialist.task_description or "", results=results)
        self.snapshot.record_verification(verification)
        failed = len(verification.failures)
        await self._record(
            SYSTEM_VERIFY,
            f"File operations by {specialist.id}: {len(results) - failed} succeeded, {failed} failed",
            results=[r.to_dict() for r in results],
        )
        await self._checkpoint()

    async def _apply_bug_actions(self, specialist: Specialist, actions: tuple[BugAction, ...]) -> None:
        project = self.snapshot.project
        for action in actions:
            if action.type is BugActionType.REPORT_BUG:
                bug = Bug(
                    id=project.next_bug_id(),
                    description=action.description or "",
                    severity=action.severity or "Medium",
                    reported_by=specialist.id,
                    comments=[action.comment] if action.comment else [],
                )
                project.bugs.append(bug)
                await self._record(SYSTEM_BUGS, f"{specialist.id} reported bug {bug.id} ({bug.severity}): {bug.description}")
                continue

            bug = project.find_bug(action.bug_id or "")
            if bug is None:
                logger.warning(f"{specialist.id} referenced unknown bug {action.bug_id}; skipped")
                continue
            if action.type is BugActionType.VERIFY_BUG:
                bug.status = action.status or bug.status
            else:
                bug.status = "Fixed"
                bug.assigned_to = specialist.id
            if action.comment:
                bug.comments.append(action.comment)
            await self._record(SYSTEM_BUGS, f"{specialist.id} set bug {bug.id} to {bug.status}")
        await self._checkpoint()

    # -- Bookkeeping ---------------------------------------------------------

    async def _record(self, actor: str, event: str, **extra) -> None:
        """Append to the snapshot's history window and the durable event log."""
        self.snapshot.event_log.append(EventRecord(actor=actor, event=event))
        await self.event_log.append(actor, event, **extra)

    async def _finish_cycle(self) -> None:
        history = self.snapshot.event_log
        limit = self.settings.max_history_turns
        if len(history) > limit * 3:
            del history[: len(history) - limit]
        await self._checkpoint()

    async def _checkpoint(self) -> None:
        await self.store.save(self.snapshot)
