"""Autonomous orchestrator/specialist task loop.

An orchestrator model reads the project snapshot and emits one directive
per cycle; the loop parses it into typed actions, applies them against a
sandboxed workspace, and hands delegated tasks to specialist models.

Quick start::

    from orchestra.workflow import OrchestrationLoop, SnapshotStore, Workspace

    workspace = Workspace("./.orchestra/project_workspace")
    # ... wire store, event log, inference and operator ...
    await loop.run()
"""

from .commands import CommandRunner, format_command_output, is_command_allowed
from .context import build_orchestrator_context, build_specialist_context
from .events import (
    SYSTEM,
    SYSTEM_BUGS,
    SYSTEM_EXEC,
    SYSTEM_LIST_DIR,
    SYSTEM_READ_FILE,
    SYSTEM_VERIFY,
    USER,
)
from .inference import AI_ERROR_PREFIX, InferenceBackend, LLMInference, is_inference_failure
from .models import (
    MAX_COMPLETED_TASKS,
    MAX_FILE_VERIFICATIONS,
    REQUESTABLE_PHASES,
    Bug,
    DirectoryListing,
    EventRecord,
    FileActionType,
    FileOpResult,
    FileReadContent,
    FileVerification,
    OrchestratorRecord,
    Phase,
    Project,
    ProjectStatus,
    Snapshot,
    Specialist,
    snapshot_to_dict,
)
from .operator import ConsoleOperator, Operator
from .orchestrator import (
    PRECEDENCE,
    CycleOutcome,
    Effect,
    ExecutionPlan,
    LoopSettings,
    OrchestrationLoop,
    resolve_execution,
)
from .parser import ActionBundle, parse_actions
from .specialists import SPECIALIST_TEMPLATES, SpecialistRegistry, new_orchestrator
from .store import EventLog, SnapshotStore
from .workspace import FileOperationQueue, Workspace

__all__ = [
    "AI_ERROR_PREFIX",
    "MAX_COMPLETED_TASKS",
    "MAX_FILE_VERIFICATIONS",
    "PRECEDENCE",
    "REQUESTABLE_PHASES",
    "SPECIALIST_TEMPLATES",
    "SYSTEM",
    "SYSTEM_BUGS",
    "SYSTEM_EXEC",
    "SYSTEM_LIST_DIR",
    "SYSTEM_READ_FILE",
    "SYSTEM_VERIFY",
    "USER",
    "ActionBundle",
    "Bug",
    "CommandRunner",
    "ConsoleOperator",
    "CycleOutcome",
    "DirectoryListing",
    "Effect",
    "EventLog",
    "EventRecord",
    "ExecutionPlan",
    "FileActionType",
    "FileOpResult",
    "FileOperationQueue",
    "FileReadContent",
    "FileVerification",
    "InferenceBackend",
    "LLMInference",
    "LoopSettings",
    "Operator",
    "OrchestrationLoop",
    "OrchestratorRecord",
    "Phase",
    "Project",
    "ProjectStatus",
    "Snapshot",
    "SnapshotStore",
    "Specialist",
    "SpecialistRegistry",
    "Workspace",
    "build_orchestrator_context",
    "build_specialist_context",
    "format_command_output",
    "is_command_allowed",
    "is_inference_failure",
    "new_orchestrator",
    "parse_actions",
    "resolve_execution",
    "snapshot_to_dict",
]
