"""Canonical actor names for history events.

Used as ``EventRecord.actor`` in the snapshot window and as the ``actor``
field of every record in the append-only event log. Orchestrator and
specialist turns use the agent's own id as the actor.
"""

USER = "USER"  # goal entry, stagnation choices, injected actions
SYSTEM = "SYSTEM"  # applied system actions, delegation bookkeeping, task status
SYSTEM_EXEC = "SYSTEM_EXEC"  # RUN_TEST_COMMAND output
SYSTEM_LIST_DIR = "SYSTEM_LIST_DIR"  # LIST_DIRECTORY results
SYSTEM_READ_FILE = "SYSTEM_READ_FILE"  # READ_FILE results
SYSTEM_VERIFY = "SYSTEM_VERIFY"  # file-verification batches
SYSTEM_BUGS = "SYSTEM_BUGS"  # bug tracker updates
