"""Shared test fixtures for orchestra."""

import os
import tempfile

import pytest

from orchestra.workflow.commands import CommandRunner
from orchestra.workflow.orchestrator import LoopSettings, OrchestrationLoop
from orchestra.workflow.specialists import SpecialistRegistry
from orchestra.workflow.store import EventLog, SnapshotStore
from orchestra.workflow.workspace import FileOperationQueue, Workspace


@pytest.fixture
def tmp_dir():
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory() as d:
        yield d


@pytest.fixture
def tmp_config_file(tmp_dir):
    """Create a temporary YAML config file."""
    import yaml

    config_data = {
        "paths": {
            "data_dir": os.path.join(tmp_dir, "data"),
            "workspace_dir": os.path.join(tmp_dir, "data", "workspace"),
            "state_file": os.path.join(tmp_dir, "data", "state.json"),
            "event_log": os.path.join(tmp_dir, "data", "events.jsonl"),
        },
        "llm": {"model": "ollama/qwen3:1.7b"},
        "loop": {"max_cycles": 3, "cycle_delay": 0, "specialist_delay": 0},
    }
    config_path = os.path.join(tmp_dir, "config.yaml")
    with open(config_path, "w") as f:
        yaml.dump(config_data, f)
    return config_path


class ScriptedInference:
    """Returns canned responses in order and keeps every prompt it was given."""

    def __init__(self, responses=None):
        self.responses = list(responses or [])
        self.prompts = []

    async def infer(self, prompt):
        self.prompts.append(prompt)
        if not self.responses:
            return "[AI Error: no scripted response left]"
        return self.responses.pop(0)


class ScriptedOperator:
    """Answers prompts from a list; an exhausted script answers with an empty line."""

    def __init__(self, answers=None):
        self.answers = list(answers or [])
        self.questions = []
        self.notifications = []

    async def ask(self, question):
        self.questions.append(question)
        return self.answers.pop(0) if self.answers else ""

    def notify(self, message, title=None):
        self.notifications.append((title, message))


@pytest.fixture
def loop_factory(tmp_path):
    """Build an OrchestrationLoop over tmp_path with no pacing delays.

    Returns ``build(responses, answers, **settings) -> (loop, inference, operator)``.
    """

    def build(responses=(), answers=(), **settings):
        workspace = Workspace(tmp_path / "workspace")
        queue = FileOperationQueue(workspace)
        counter = iter(range(1, 1000))
        registry = SpecialistRegistry(id_factory=lambda role: f"Specialist-{role}-{next(counter):08x}")
        inference = ScriptedInference(responses)
        operator = ScriptedOperator(answers)
        loop = OrchestrationLoop(
            store=SnapshotStore(tmp_path / "state.json", workspace=workspace, file_queue=queue, registry=registry),
            event_log=EventLog(tmp_path / "events.jsonl"),
            workspace=workspace,
            file_queue=queue,
            inference=inference,
            operator=operator,
            commands=CommandRunner(workspace.root, timeout=5),
            registry=registry,
            settings=LoopSettings(cycle_delay=0, specialist_delay=0, **settings),
        )
        return loop, inference, operator

    return build
