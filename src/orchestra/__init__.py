"""orchestra: an autonomous orchestrator/specialist task loop driven by an LLM."""

__version__ = "0.1.0"
