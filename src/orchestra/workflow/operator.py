"""Operator interaction surface.

The loop prompts a human at three points only: the initial goal, the
stagnation escalation, and the next goal after completion.
"""

from __future__ import annotations

import asyncio
from typing import Protocol, runtime_checkable

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel


@runtime_checkable
class Operator(Protocol):
    async def ask(self, question: str) -> str: ...

    def notify(self, message: str, title: str | None = None) -> None: ...


class ConsoleOperator:
    """Terminal operator using rich for formatting.

    Input is read in a worker thread so queued file operations keep
    draining while the prompt is open. EOF and Ctrl-C read as an empty answer.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    async def ask(self, question: str) -> str:
        self.console.print()
        try:
            answer = await asyncio.to_thread(self.console.input, f"[bold cyan]{escape(question)}[/] ")
        except (EOFError, KeyboardInterrupt):
            self.console.print()
            return ""
        return answer.strip()

    def notify(self, message: str, title: str | None = None) -> None:
        self.console.print(Panel(escape(message), title=escape(title or "Orchestra")))
