"""Agent templates and the specialist registry.

The orchestrator is a singleton built from :data:`ORCHESTRATOR_TEMPLATE`.
Specialists are created on demand from :data:`SPECIALIST_TEMPLATES`, one of
a fixed set of roles, and reused once idle.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable
from dataclasses import dataclass, field

from loguru import logger

from .models import OrchestratorRecord, Specialist


@dataclass(frozen=True)
class AgentTemplate:
    role: str
    description: str
    capabilities: tuple[str, ...] = field(default_factory=tuple)


ORCHESTRATOR_ID = "Orchestrator"

ORCHESTRATOR_TEMPLATE = AgentTemplate(
    role="Orchestrator",
    description=(
        "Analyzes overall state and goal, determines the next system action. "
        "Performs direct read/list/command actions or delegates to specialists. "
        "Manages phases and monitors progress."
    ),
    capabilities=(
        "System State Analysis",
        "Goal Decomposition",
        "Task Planning",
        "Direct Action Execution",
        "Specialist Delegation",
        "Status Monitoring",
        "Phase Management",
    ),
)

EXECUTOR_CODE = "Executor-Code"
EXECUTOR_TEST = "Executor-Test"
EXECUTOR_DESIGN = "Executor-Design"

SPECIALIST_TEMPLATES: dict[str, AgentTemplate] = {
    EXECUTOR_CODE: AgentTemplate(
        role=EXECUTOR_CODE,
        description=(
            "Executes coding and file manipulation tasks. Creates and modifies files "
            "via ACTION formats. Implements bug fixes."
        ),
        capabilities=(
            "File Content Generation (HTML, CSS, JS, JSON, Python, etc.)",
            "File Content Modification",
            "Directory Creation",
            "Bug Fix Implementation (via File Modification)",
            "Dependency Configuration (e.g., package.json, requirements.txt)",
        ),
    ),
    EXECUTOR_TEST: AgentTemplate(
        role=EXECUTOR_TEST,
        description=(
            "Generates test cases and suites. Executes testing tasks and reports results "
            "and bugs via ACTION formats."
        ),
        capabilities=(
            "Test Case Generation (Textual/Code)",
            "Bug Reporting (via ACTION: REPORT_BUG)",
            "Bug Verification (via ACTION: VERIFY_BUG)",
        ),
    ),
    EXECUTOR_DESIGN: AgentTemplate(
        role=EXECUTOR_DESIGN,
        description=(
            "Produces design artifacts and basic styling. Delivers via ACTION: CREATE_FILE "
            "or ACTION: MODIFY_FILE."
        ),
        capabilities=(
            "UI/UX Specification Generation (Textual)",
            "Wireframe Description Generation",
            "Style Guide Definition (Textual)",
            "CSS Generation/Modification",
        ),
    ),
}


def new_orchestrator() -> OrchestratorRecord:
    """Build a fresh orchestrator record from its template."""
    return OrchestratorRecord(
        id=ORCHESTRATOR_ID,
        role=ORCHESTRATOR_TEMPLATE.role,
        capabilities=list(ORCHESTRATOR_TEMPLATE.capabilities),
        description=ORCHESTRATOR_TEMPLATE.description,
        current_focus=None,
    )


def _default_id(role: str) -> str:
    return f"Specialist-{role}-{uuid.uuid4().hex[:8]}"


class SpecialistRegistry:
    """Creates and reuses specialists on a roster list owned by the snapshot.

    The registry keeps no roster of its own: the loop reloads the snapshot
    every cycle and passes its ``specialists`` list in.
    """

    def __init__(
        self,
        templates: dict[str, AgentTemplate] | None = None,
        id_factory: Callable[[str], str] | None = None,
    ) -> None:
        self._templates = templates if templates is not None else SPECIALIST_TEMPLATES
        self._id_factory = id_factory or _default_id
        self._issued: set[str] = set()

    @property
    def roles(self) -> tuple[str, ...]:
        return tuple(self._templates)

    def resolve_role(self, role: str) -> str | None:
        """Match a requested role name against the registered set (case-insensitive)."""
        wanted = role.strip().lower()
        for registered in self._templates:
            if registered.lower() == wanted:
                return registered
        return None

    def assign(self, roster: list[Specialist], role: str, task_description: str) -> Specialist | None:
        """Hand ``task_description`` to an idle specialist of ``role``, creating one if needed.

        Returns None when ``role`` is not a registered specialist role.
        """
        registered = self.resolve_role(role)
        if registered is None:
            logger.warning(f"No specialist available for role {role!r}")
            return None

        for specialist in roster:
            if specialist.role == registered and specialist.idle:
                specialist.task_description = task_description
                logger.info(f"Reusing idle specialist {specialist.id} for: {task_description}")
                return specialist

        specialist = self._create(registered, task_description, roster)
        roster.append(specialist)
        logger.info(f"Created specialist {specialist.id} for: {task_description}")
        return specialist

    def complete(self, specialist: Specialist) -> str | None:
        """Return a specialist to idle; gives back the task it was holding."""
        task = specialist.task_description
        specialist.task_description = None
        return task

    def is_registered(self, specialist: Specialist) -> bool:
        return specialist.role in self._templates

    def _create(self, role: str, task_description: str, roster: list[Specialist]) -> Specialist:
        template = self._templates[role]
        taken = self._issued | {s.id for s in roster}
        specialist_id = self._id_factory(role)
        while specialist_id in taken:
            specialist_id = self._id_factory(role)
        self._issued.add(specialist_id)
        return Specialist(
            id=specialist_id,
            role=role,
            capabilities=list(template.capabilities),
            description=template.description,
            task_description=task_description,
        )
