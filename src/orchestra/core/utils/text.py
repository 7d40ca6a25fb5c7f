"""Text helpers for building prompts and log lines."""

import re


def preview(text: str | None, limit: int, marker: str = "...") -> str:
    """First ``limit`` characters of ``text`` followed by ``marker`` when cut."""
    if not text:
        return ""
    if len(text) <= limit:
        return text
    return text[:limit] + marker


def slugify_goal(goal: str, max_length: int = 30, default: str = "New-Project") -> str:
    """Derive a project name from the first characters of a goal.

    >>> slugify_goal("Build a todo app!")
    'Build-a-todo-app'
    """
    head = (goal or "")[:max_length]
    head = re.sub(r"[^\w\s-]", "", head)
    head = re.sub(r"\s+", "-", head.strip())
    return head or default
