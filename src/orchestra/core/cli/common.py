"""Shared setup logic for CLI commands."""

from __future__ import annotations

import os

from orchestra.core.config import Config


def load_config(config_path: str | None = None, data_dir: str | None = None) -> Config:
    """Load config from an optional YAML/JSON file plus ORCHESTRA_* env vars."""
    return Config(config_file=config_path, data_dir=data_dir)


def set_api_key_env(config: Config) -> None:
    """Set API keys as env vars so litellm can find them.

    Reads ``llm.api_keys.<provider>`` (or a single ``llm.api_key`` for the
    configured model's provider). Keys already in the environment win.
    """
    from orchestra.core.llm.config import PROVIDER_ENV_MAP, infer_provider

    api_keys: dict = config.get("llm.api_keys", {}) or {}
    if api_keys:
        for provider, key in api_keys.items():
            env_var = PROVIDER_ENV_MAP.get(provider)
            if env_var and key and env_var not in os.environ:
                os.environ[env_var] = str(key)
        return

    api_key = config.get("llm.api_key", "")
    if not api_key:
        return

    env_var = PROVIDER_ENV_MAP.get(infer_provider(config.get("llm.model", "")))
    if env_var and env_var not in os.environ:
        os.environ[env_var] = str(api_key)


def configure_logging(config: Config, verbose: bool = False) -> None:
    from orchestra.core.utils.logging import setup_logging

    level = "DEBUG" if verbose else str(config.get("logging.level", "INFO"))
    setup_logging(level=level, log_file=config.get("logging.file") or None)


def create_store(config: Config, workspace=None, file_queue=None):
    """Build the snapshot store for the configured state file."""
    from orchestra.workflow.store import SnapshotStore

    return SnapshotStore(
        config.get("paths.state_file"),
        workspace=workspace,
        file_queue=file_queue,
        drain_timeout=config.get_float("loop.drain_timeout", 5.0),
    )


def create_loop(config: Config, operator=None, inference=None):
    """Wire config -> LLM client -> inference adapter -> workspace, store, log -> loop."""
    from orchestra.core.llm import LLMClient
    from orchestra.workflow.commands import CommandRunner
    from orchestra.workflow.inference import LLMInference
    from orchestra.workflow.operator import ConsoleOperator
    from orchestra.workflow.orchestrator import LoopSettings, OrchestrationLoop
    from orchestra.workflow.store import EventLog
    from orchestra.workflow.workspace import FileOperationQueue, Workspace

    config.ensure_directories()

    if inference is None:
        set_api_key_env(config)
        client = LLMClient(
            model=config.get("llm.model") or None,
            temperature=config.get_float("llm.temperature", 0.7),
            timeout=config.get_int("llm.timeout", 180),
            num_retries=config.get_int("llm.num_retries", 2),
            api_base=config.get("llm.api_base") or None,
            fallback_model=config.get("llm.fallback_model") or None,
        )
        inference = LLMInference(client)

    workspace = Workspace(
        config.get("paths.workspace_dir"),
        read_limit=config.get_int("files.read_limit", 10_000),
        structure_limit=config.get_int("files.structure_limit", 500),
    )
    file_queue = FileOperationQueue(workspace)

    return OrchestrationLoop(
        store=create_store(config, workspace, file_queue),
        event_log=EventLog(config.get("paths.event_log")),
        workspace=workspace,
        file_queue=file_queue,
        inference=inference,
        operator=operator or ConsoleOperator(),
        commands=CommandRunner(
            workspace.root,
            timeout=config.get_float("commands.timeout", 15),
            max_output=config.get_int("commands.max_output", 1500),
        ),
        settings=LoopSettings.from_config(config),
    )
