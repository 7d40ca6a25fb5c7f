"""
Orchestra exception hierarchy.

All orchestra exceptions inherit from OrchestraError, so the CLI can catch
library-level errors in one place while callers still distinguish specific
failure modes.
"""


class OrchestraError(Exception):
    """Base exception class for all orchestra errors."""


class ConfigurationError(OrchestraError):
    """Raised for configuration errors (missing files, invalid values)."""


class FileIOError(OrchestraError):
    """Raised for file I/O errors outside the sandboxed workspace."""


class InvalidPathError(OrchestraError):
    """Raised when a workspace path is empty, absolute, traversing, or escapes the root."""


class SnapshotError(OrchestraError):
    """Raised when the persisted snapshot cannot be read as a JSON object."""


class OrchestratorUnavailableError(SnapshotError):
    """Raised when the orchestrator record cannot be rebuilt from its template."""
