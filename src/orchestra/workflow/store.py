"""Snapshot persistence and the append-only event log.

The snapshot is one JSON document rewritten wholesale at every checkpoint
(temp file + fsync + rename, then a best-effort fsync of the directory).
Loading is forgiving: each section is defaulted on its own, a missing
project becomes a "Recovered Project" placeholder in Planning, and a
missing or invalid orchestrator is rebuilt from its template. Only a
document that is not a JSON object, or an orchestrator the template cannot
rebuild, is fatal.

The event log (events.jsonl) is the durable audit trail. Records are
appended with O_APPEND and fsync'd, and the loop never reads them back.
"""

from __future__ import annotations

import asyncio
import json
import os
import tempfile
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

from loguru import logger

from orchestra.core.exceptions import FileIOError, OrchestratorUnavailableError, SnapshotError
from orchestra.core.types import PathLike

from .models import (
    MAX_FILE_VERIFICATIONS,
    DirectoryListing,
    EventRecord,
    FileReadContent,
    FileVerification,
    OrchestratorRecord,
    Phase,
    Project,
    ProjectStatus,
    Snapshot,
    Specialist,
    as_list,
    as_optional_str,
    snapshot_to_dict,
)
from .specialists import SpecialistRegistry, new_orchestrator
from .workspace import FileOperationQueue, Workspace

RECOVERED_PROJECT_NAME = "Recovered Project"
RECOVERED_GOAL = "Recovered state - Goal Unknown"


class EventLog:
    """Append-only JSON Lines audit log."""

    def __init__(self, path: PathLike) -> None:
        self.path = Path(path)

    async def append(self, actor: str, event: str, **extra: Any) -> None:
        record = {"actor": actor, "event": event, "timestamp": datetime.now().isoformat(timespec="seconds")}
        record.update(extra)
        line = json.dumps(record, ensure_ascii=False, default=str) + "\n"
        await asyncio.to_thread(self._write_line, line)

    def _write_line(self, line: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(self.path), os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o644)
        try:
            os.write(fd, line.encode("utf-8"))
            os.fsync(fd)
        finally:
            os.close(fd)


class SnapshotStore:
    """Loads and checkpoints the snapshot document.

    When a workspace and file queue are attached, every load and save first
    waits for queued file operations to drain, and every save refreshes the
    workspace structure summary.
    """

    def __init__(
        self,
        path: PathLike,
        *,
        workspace: Workspace | None = None,
        file_queue: FileOperationQueue | None = None,
        drain_timeout: float = 5.0,
        registry: SpecialistRegistry | None = None,
        orchestrator_factory: Callable[[], OrchestratorRecord] = new_orchestrator,
    ) -> None:
        self.path = Path(path)
        self._workspace = workspace
        self._file_queue = file_queue
        self._drain_timeout = drain_timeout
        self._registry = registry or SpecialistRegistry()
        self._orchestrator_factory = orchestrator_factory

    def new_snapshot(self) -> Snapshot:
        """A first-run snapshot, awaiting the operator's goal."""
        return Snapshot(orchestrator=self._template_orchestrator())

    async def load(self) -> Snapshot:
        """Read the persisted snapshot, defaulting whatever is missing.

        Raises:
            SnapshotError: the file exists but is not a JSON object.
            OrchestratorUnavailableError: the orchestrator could not be rebuilt.
        """
        await self._drain()

        if not self.path.exists():
            logger.info(f"No snapshot at {self.path}; starting fresh")
            return self.new_snapshot()

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise SnapshotError(f"Snapshot {self.path} is not valid JSON: {e}") from e
        except OSError as e:
            raise SnapshotError(f"Could not read snapshot {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise SnapshotError(f"Snapshot {self.path} must contain a JSON object")

        return self.restore(data)

    async def save(self, snapshot: Snapshot) -> bool:
        """Checkpoint the snapshot. Returns False if the snapshot was refused as invalid.

        Raises:
            FileIOError: the document could not be written.
        """
        if snapshot.orchestrator is None or not snapshot.orchestrator.is_valid:
            logger.error("Refusing to save snapshot without a valid orchestrator record")
            return False

        await self._drain()
        if self._workspace is not None:
            snapshot.project_structure = await self._workspace.structure_summary()

        content = json.dumps(snapshot_to_dict(snapshot), indent=2, ensure_ascii=False)
        try:
            self._atomic_write(self.path, content)
        except OSError as e:
            raise FileIOError(f"Could not write snapshot {self.path}: {e}") from e
        self._fsync_directory(self.path.parent)
        return True

    # ── Defaulting ─────────────────────────────────────────────────

    def restore(self, data: dict[str, Any]) -> Snapshot:
        """Build a Snapshot from a raw document, section by section."""
        raw_phase = data.get("phase")
        phase = Phase.lookup(raw_phase) if raw_phase else Phase.AWAITING_GOAL
        if raw_phase and phase is Phase.UNKNOWN:
            logger.warning(f"Unrecognized phase {raw_phase!r} in snapshot")

        project_sequence = [str(n) for n in as_list(data.get("project_sequence"))]

        project_data = data.get("project")
        if isinstance(project_data, dict):
            project = Project.from_dict(project_data)
        else:
            name = project_sequence[-1] if project_sequence else RECOVERED_PROJECT_NAME
            project = Project(name=name, goal=RECOVERED_GOAL, status=ProjectStatus.PLANNING)
            phase = Phase.PLANNING
            logger.warning(f"Project record missing; recovered as {name!r} and set phase to Planning")

        if not project_sequence:
            project_sequence = [project.name]

        return Snapshot(
            orchestrator=self._restore_orchestrator(data.get("orchestrator")),
            phase=phase,
            project=project,
            specialists=self._restore_specialists(data.get("specialists")),
            event_log=[EventRecord.from_dict(e) for e in as_list(data.get("event_log")) if isinstance(e, dict)],
            last_console_output=as_optional_str(data.get("last_console_output")),
            last_directory_listing=_optional(DirectoryListing, data.get("last_directory_listing")),
            last_file_read=_optional(FileReadContent, data.get("last_file_read")),
            last_specialist_event=_optional(EventRecord, data.get("last_specialist_event")),
            file_verifications=[
                FileVerification.from_dict(v) for v in as_list(data.get("file_verifications")) if isinstance(v, dict)
            ][-MAX_FILE_VERIFICATIONS:],
            project_structure=str(data.get("project_structure") or "Empty"),
            project_sequence=project_sequence,
        )

    def _restore_orchestrator(self, raw: Any) -> OrchestratorRecord:
        if isinstance(raw, dict):
            record = OrchestratorRecord.from_dict(raw)
            if record.is_valid:
                template = self._orchestrator_factory()
                record.capabilities = record.capabilities or template.capabilities
                record.description = record.description or template.description
                return record
        logger.warning("Orchestrator record missing or invalid; rebuilding from template")
        return self._template_orchestrator()

    def _template_orchestrator(self) -> OrchestratorRecord:
        record = self._orchestrator_factory()
        if record is None or not record.is_valid:
            raise OrchestratorUnavailableError("Orchestrator template produced an invalid record")
        return record

    def _restore_specialists(self, raw: Any) -> list[Specialist]:
        if not isinstance(raw, list):
            if raw is not None:
                logger.warning("Specialist roster is not a list; starting with an empty roster")
            return []
        roster: list[Specialist] = []
        seen: set[str] = set()
        for item in raw:
            if not isinstance(item, dict):
                continue
            specialist = Specialist.from_dict(item)
            if not specialist.id or specialist.id in seen:
                logger.warning(f"Dropping specialist record without a unique id: {item!r}")
                continue
            if not self._registry.is_registered(specialist):
                logger.warning(f"Dropping specialist {specialist.id} with unregistered role {specialist.role!r}")
                continue
            seen.add(specialist.id)
            roster.append(specialist)
        return roster

    # ── I/O ────────────────────────────────────────────────────────

    async def _drain(self) -> None:
        if self._file_queue is not None:
            await self._file_queue.wait_for_drain(self._drain_timeout)

    @staticmethod
    def _atomic_write(path: Path, content: str) -> None:
        """Write atomically via temp file + rename."""
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=str(path.parent), suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, str(path))
        except Exception:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    @staticmethod
    def _fsync_directory(directory: Path) -> None:
        """Best-effort flush of the directory entry after a rename."""
        try:
            fd = os.open(str(directory), os.O_RDONLY)
        except OSError as e:
            logger.debug(f"Directory sync skipped for {directory}: {e}")
            return
        try:
            os.fsync(fd)
        except OSError as e:
            logger.debug(f"Directory sync failed for {directory}: {e}")
        finally:
            os.close(fd)


def _optional(record_cls: Any, value: Any) -> Any:
    return record_cls.from_dict(value) if isinstance(value, dict) else None


__all__ = [
    "RECOVERED_GOAL",
    "RECOVERED_PROJECT_NAME",
    "EventLog",
    "SnapshotStore",
]
