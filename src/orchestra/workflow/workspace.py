"""Path-sandboxed file store and the serialized file-operation queue.

Every path the model names is resolved against the workspace root. Empty
paths, absolute paths, ``..`` segments, and anything that resolves outside
the root (including through symlinks) are rejected with the same
"Invalid path" error. A leading ``/workspace/`` is stripped first, since
models often echo that prefix from container-style prompts.

Mutations go through :class:`FileOperationQueue`, which applies them one at
a time in submission order and hands each caller a future for its own
result. Reads and listings are not queued.
"""

from __future__ import annotations

import asyncio
import errno
import os
from collections import deque
from dataclasses import dataclass
from pathlib import Path

import aiofiles
import aiofiles.os
from loguru import logger

from orchestra.core.exceptions import InvalidPathError
from orchestra.core.types import PathLike

from .models import DirectoryListing, FileActionType, FileOpResult, FileReadContent

WORKSPACE_PREFIX = "/workspace/"
INVALID_PATH = "Invalid path"

DEFAULT_READ_LIMIT = 10_000
DEFAULT_STRUCTURE_LIMIT = 500


@dataclass
class ListResult:
    path: str
    success: bool
    listing: DirectoryListing | None = None
    error: str | None = None


@dataclass
class ReadResult:
    path: str
    success: bool
    file: FileReadContent | None = None
    error: str | None = None


def _errno_name(exc: OSError) -> str:
    if exc.errno is not None:
        return errno.errorcode.get(exc.errno, "EIO")
    return "EIO"


class Workspace:
    """The sandboxed root directory all model-supplied paths resolve against."""

    def __init__(
        self,
        root: PathLike,
        *,
        read_limit: int = DEFAULT_READ_LIMIT,
        structure_limit: int = DEFAULT_STRUCTURE_LIMIT,
    ) -> None:
        self.root = Path(root).expanduser().resolve()
        self.read_limit = read_limit
        self.structure_limit = structure_limit

    def ensure_root(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    # ── Path validation ────────────────────────────────────────────

    def resolve(self, raw_path: str) -> tuple[str, Path]:
        """Validate a workspace-relative path.

        Returns:
            ``(relative_path, absolute_path)``.

        Raises:
            InvalidPathError: for every rejection reason alike.
        """
        if not isinstance(raw_path, str):
            raise InvalidPathError(INVALID_PATH)
        candidate = raw_path.strip()
        if candidate.startswith(WORKSPACE_PREFIX):
            candidate = candidate[len(WORKSPACE_PREFIX) :]

        if not candidate or "\x00" in candidate or "\\" in candidate:
            raise InvalidPathError(INVALID_PATH)
        if candidate.startswith(("/", "~")) or Path(candidate).is_absolute():
            raise InvalidPathError(INVALID_PATH)
        if ".." in candidate.split("/"):
            raise InvalidPathError(INVALID_PATH)

        full_path = (self.root / candidate).resolve()
        try:
            full_path.relative_to(self.root)
        except ValueError as e:
            raise InvalidPathError(INVALID_PATH) from e
        return candidate, full_path

    # ── Mutations ──────────────────────────────────────────────────

    async def apply(self, action: FileActionType, raw_path: str, content: str | None = None) -> FileOpResult:
        """Apply one mutation directly. Never raises; failures come back as results."""
        try:
            rel_path, full_path = self.resolve(raw_path)
        except InvalidPathError:
            logger.warning(f"Rejected {action.value} on invalid path: {raw_path!r}")
            return FileOpResult(action, str(raw_path), False, INVALID_PATH, "EINVAL")

        try:
            if action is FileActionType.CREATE_FILE:
                return await self._create_file(rel_path, full_path, content)
            if action is FileActionType.MODIFY_FILE:
                return await self._modify_file(rel_path, full_path, content)
            return await self._create_directory(rel_path, full_path)
        except IsADirectoryError:
            return self._failure(action, rel_path, f"Attempted file operation on a directory path: {rel_path}.", "EISDIR")
        except NotADirectoryError:
            return self._failure(action, rel_path, f"Attempted directory operation on a file path: {rel_path}.", "ENOTDIR")
        except FileExistsError:
            return self._failure(action, rel_path, f"A file already exists at {rel_path}.", "EEXIST")
        except OSError as e:
            code = _errno_name(e)
            return self._failure(action, rel_path, f"File system error: {code}", code)

    async def _create_file(self, rel_path: str, full_path: Path, content: str | None) -> FileOpResult:
        if rel_path.endswith("/"):
            return self._failure(FileActionType.CREATE_FILE, rel_path, "Cannot CREATE_FILE on a directory path.", "EISDIR")
        full_path.parent.mkdir(parents=True, exist_ok=True)
        async with aiofiles.open(full_path, "w", encoding="utf-8") as f:
            await f.write(content or "")
        logger.info(f"File created: {rel_path} ({len(content or '')} chars)")
        return FileOpResult(FileActionType.CREATE_FILE, rel_path, True)

    async def _modify_file(self, rel_path: str, full_path: Path, content: str | None) -> FileOpResult:
        action = FileActionType.MODIFY_FILE
        if rel_path.endswith("/"):
            return self._failure(action, rel_path, "Cannot MODIFY_FILE on a directory path.", "EISDIR")
        if not await aiofiles.os.path.exists(full_path):
            return self._failure(action, rel_path, "Cannot modify non-existent file.", "ENOENT")
        if await aiofiles.os.path.isdir(full_path):
            return self._failure(action, rel_path, f"Attempted file operation on a directory path: {rel_path}.", "EISDIR")
        if content is None:
            return self._failure(action, rel_path, "Invalid content for file modification.", "EINVAL")

        previous = (await aiofiles.os.stat(full_path)).st_size
        async with aiofiles.open(full_path, "w", encoding="utf-8") as f:
            await f.write(content)
        logger.info(f"File modified: {rel_path} ({previous} -> {len(content.encode('utf-8'))} bytes)")
        return FileOpResult(action, rel_path, True)

    async def _create_directory(self, rel_path: str, full_path: Path) -> FileOpResult:
        full_path.mkdir(parents=True, exist_ok=True)
        display = rel_path if rel_path.endswith("/") else f"{rel_path}/"
        logger.info(f"Directory created: {display}")
        return FileOpResult(FileActionType.CREATE_DIRECTORY, display, True)

    @staticmethod
    def _failure(action: FileActionType, rel_path: str, error: str, code: str) -> FileOpResult:
        logger.warning(f"{action.value} failed on {rel_path}: {error}")
        return FileOpResult(action, rel_path, False, error, code)

    # ── Reads ──────────────────────────────────────────────────────

    async def list_directory(self, raw_path: str) -> ListResult:
        """List non-hidden entries of a workspace directory; directories end in ``/``."""
        try:
            rel_path, full_path = self.resolve(raw_path or ".")
        except InvalidPathError:
            logger.warning(f"Rejected LIST_DIRECTORY on invalid path: {raw_path!r}")
            return ListResult(str(raw_path), False, error=INVALID_PATH)

        if not await aiofiles.os.path.exists(full_path):
            return ListResult(rel_path, False, error="Directory not found")
        if not await aiofiles.os.path.isdir(full_path):
            return ListResult(rel_path, False, error="Path is not a directory")

        try:
            entries = self._visible_entries(full_path)
        except OSError as e:
            return ListResult(rel_path, False, error=f"File system error: {_errno_name(e)}")

        logger.info(f"Directory listed: {rel_path} ({len(entries)} entries)")
        return ListResult(rel_path, True, listing=DirectoryListing(path=rel_path, entries=entries))

    async def read_file(self, raw_path: str) -> ReadResult:
        """Read a UTF-8 file, truncated to ``read_limit`` characters."""
        try:
            rel_path, full_path = self.resolve(raw_path)
        except InvalidPathError:
            logger.warning(f"Rejected READ_FILE on invalid path: {raw_path!r}")
            return ReadResult(str(raw_path), False, error=INVALID_PATH)

        if not await aiofiles.os.path.exists(full_path):
            return ReadResult(rel_path, False, error="File not found")
        if await aiofiles.os.path.isdir(full_path):
            return ReadResult(rel_path, False, error="Path is not a file")

        try:
            async with aiofiles.open(full_path, encoding="utf-8", errors="replace") as f:
                content = await f.read()
        except OSError as e:
            return ReadResult(rel_path, False, error=f"File system error: {_errno_name(e)}")

        truncated = len(content) > self.read_limit
        if truncated:
            content = (
                content[: self.read_limit]
                + f"\n... (content truncated, showing first {self.read_limit} characters)"
            )
        logger.info(f"File read: {rel_path}{' (truncated)' if truncated else ''}")
        return ReadResult(rel_path, True, file=FileReadContent(path=rel_path, content=content, is_truncated=truncated))

    async def structure_summary(self) -> str:
        """Top-level non-hidden entries joined by ``", "``, capped at ``structure_limit``."""
        if not self.root.is_dir():
            return "Empty"
        try:
            entries = self._visible_entries(self.root)
        except OSError as e:
            logger.warning(f"Could not summarize workspace: {e}")
            return "Empty"
        if not entries:
            return "Empty"
        summary = ", ".join(entries)
        if len(summary) > self.structure_limit:
            summary = summary[: self.structure_limit] + "..."
        return summary

    @staticmethod
    def _visible_entries(directory: Path) -> list[str]:
        entries = []
        with os.scandir(directory) as it:
            for entry in sorted(it, key=lambda e: e.name):
                if entry.name.startswith("."):
                    continue
                entries.append(f"{entry.name}/" if entry.is_dir() else entry.name)
        return entries


@dataclass
class _PendingOperation:
    action: FileActionType
    path: str
    content: str | None
    future: asyncio.Future


class FileOperationQueue:
    """FIFO of workspace mutations drained by a single task.

    ``submit`` never blocks: it enqueues the operation, starts the drain task
    when none is running, and returns a future for that operation's
    :class:`FileOpResult`. ``wait_for_drain`` is the barrier used before
    every checkpoint and reload.
    """

    def __init__(self, workspace: Workspace) -> None:
        self._workspace = workspace
        self._queue: deque[_PendingOperation] = deque()
        self._processing = False
        self._pending = 0
        self._idle = asyncio.Event()
        self._idle.set()
        self._drain_task: asyncio.Task | None = None

    @property
    def pending(self) -> int:
        """Operations queued or in flight."""
        return self._pending

    def submit(self, action: FileActionType, path: str, content: str | None = None) -> asyncio.Future:
        """Enqueue a mutation. Must be called from a running event loop."""
        future = asyncio.get_running_loop().create_future()
        self._queue.append(_PendingOperation(action, path, content, future))
        self._pending += 1
        self._idle.clear()
        logger.debug(f"Queued {action.value} {path} (pending={self._pending})")

        if not self._processing:
            self._processing = True
            self._drain_task = asyncio.create_task(self._drain(), name="file-operation-drain")
        return future


    async def wait_for_drain(self, timeout: float = 5.0) -> bool:
        """Wait until every queued and in-flight operation has finished.

        Returns False (after logging a warning) if the queue did not drain
        within ``timeout`` seconds.
        """
        if self._pending == 0:
            return True
        logger.debug(f"Waiting for {self._pending} file operation(s) to finish")
        try:
            await asyncio.wait_for(self._idle.wait(), timeout)
        except TimeoutError:
            logger.warning(
                f"Timed out after {timeout}s waiting for file operations; "
                f"still pending: {self._pending}, queued: {len(self._queue)}"
            )
            return False
        return True

    async def _drain(self) -> None:
        try:
            while self._queue:
                op = self._queue.popleft()
                try:
                    result = await self._workspace.apply(op.action, op.path, op.content)
                except Exception as e:
                    logger.exception(f"Unexpected error applying {op.action.value} on {op.path}")
                    result = FileOpResult(op.action, op.path, False, f"File system error: {e}", "EIO")
                finally:
                    self._pending -= 1
                    if self._pending == 0:
                        self._idle.set()
                if not op.future.done():
                    op.future.set_result(result)
        finally:
            self._processing = False
