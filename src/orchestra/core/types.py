"""Shared type aliases used across orchestra."""

from pathlib import Path

# Path types
PathLike = str | Path
