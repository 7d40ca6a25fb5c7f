"""Shared infrastructure: configuration, exceptions, logging, LLM access, CLI."""
