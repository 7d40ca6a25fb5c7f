"""Shell command runner for ``RUN_TEST_COMMAND`` directives.

Commands run through the shell in the workspace directory with a fixed
timeout. Anything that chains, pipes, backgrounds or substitutes commands
is refused before a process is spawned. This is a denylist, not a sandbox.
"""

from __future__ import annotations

import asyncio
import contextlib
from pathlib import Path

from loguru import logger

from orchestra.core.types import PathLike

BLOCKED_SEQUENCES = ("&&", "||", "|", ";", "&", "`", "$(", "\n", "\r")
BLOCKED_MESSAGE = "Error: Command blocked due to potentially unsafe characters."
TRUNCATION_MARKER = "\n... (output truncated)"

DEFAULT_TIMEOUT = 15.0
DEFAULT_MAX_OUTPUT = 1500


def is_command_allowed(command: str) -> bool:
    return bool(command.strip()) and not any(seq in command for seq in BLOCKED_SEQUENCES)


def format_command_output(exit_code: int | None, stdout: str, stderr: str, max_output: int = DEFAULT_MAX_OUTPUT) -> str:
    """Render a finished command the way the orchestrator context expects it."""
    output = f"Exit Code: {exit_code if exit_code is not None else 'unknown'}\n"
    if stderr:
        output += f"Stderr:\n{stderr}\n"
    if stdout:
        output += f"Stdout:\n{stdout}\n"
    if len(output) > max_output:
        output = output[:max_output] + TRUNCATION_MARKER
    return output


class CommandRunner:
    """Runs one shell command at a time inside the workspace."""

    def __init__(
        self,
        cwd: PathLike,
        *,
        timeout: float = DEFAULT_TIMEOUT,
        max_output: int = DEFAULT_MAX_OUTPUT,
    ) -> None:
        self.cwd = Path(cwd)
        self.timeout = timeout
        self.max_output = max_output

    async def run(self, command: str) -> str:
        """Execute ``command`` and return its formatted output. Never raises."""
        if not is_command_allowed(command):
            logger.warning(f"Blocked command: {command!r}")
            return BLOCKED_MESSAGE

        logger.info(f"Running command: {command}")
        try:
            proc = await asyncio.create_subprocess_shell(
                command,
                cwd=str(self.cwd),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            logger.error(f"Could not start command {command!r}: {e}")
            return f"Error: Could not start command: {e}"

        stdout_chunks: list[bytes] = []
        stderr_chunks: list[bytes] = []
        readers = [
            asyncio.create_task(self._collect(proc.stdout, stdout_chunks)),
            asyncio.create_task(self._collect(proc.stderr, stderr_chunks)),
        ]

        timed_out = False
        try:
            await asyncio.wait_for(proc.wait(), self.timeout)
        except TimeoutError:
            timed_out = True
            logger.warning(f"Command timed out after {self.timeout}s: {command}")
            with contextlib.suppress(ProcessLookupError):
                proc.kill()
            await proc.wait()

        # Grandchildren may keep the pipes open after a kill
        _, still_reading = await asyncio.wait(readers, timeout=1.0)
        for task in still_reading:
            task.cancel()

        stdout = b"".join(stdout_chunks).decode("utf-8", errors="replace").strip()
        stderr = b"".join(stderr_chunks).decode("utf-8", errors="replace").strip()
        if timed_out:
            note = f"Command timed out after {self.timeout:g}s"
            stderr = f"{stderr}\n{note}" if stderr else note

        logger.info(f"Command finished with exit code {proc.returncode}")
        return format_command_output(proc.returncode, stdout, stderr, self.max_output)

    @staticmethod
    async def _collect(stream: asyncio.StreamReader | None, sink: list[bytes]) -> None:
        if stream is None:
            return
        while chunk := await stream.read(4096):
            sink.append(chunk)
