"""Tests for orchestra.core.config."""

import json
import os

import pytest
import yaml

from orchestra.core.config import Config, get_config, reset_config
from orchestra.core.exceptions import ConfigurationError


@pytest.fixture(autouse=True)
def _reset_singleton():
    """Reset config singleton between tests."""
    reset_config()
    yield
    reset_config()


class TestConfig:
    def test_defaults(self, monkeypatch, tmp_dir):
        monkeypatch.chdir(tmp_dir)
        config = Config()
        assert config.get("paths.data_dir").endswith(".orchestra")
        assert config.get("llm.model") == "ollama/qwen3:1.7b"
        assert config.get("llm.api_base") == "http://127.0.0.1:11434"
        assert config.get("loop.max_cycles") == 100
        assert config.get("loop.wait_threshold") == 5
        assert config.get("commands.timeout") == 15
        assert config.get("files.read_limit") == 10_000

    def test_custom_data_dir(self, tmp_dir):
        config = Config(data_dir=tmp_dir)
        assert config.get("paths.data_dir") == tmp_dir
        assert config.get("paths.workspace_dir") == os.path.join(tmp_dir, "project_workspace")
        assert config.get("paths.state_file") == os.path.join(tmp_dir, "state.json")
        assert config.get("paths.event_log") == os.path.join(tmp_dir, "events.jsonl")

    def test_custom_env_prefix(self, monkeypatch, tmp_dir):
        monkeypatch.setenv("MYAPP_LLM__MODEL", "gpt-4o-mini")
        config = Config(env_prefix="MYAPP_", data_dir=tmp_dir)
        assert config.get("llm.model") == "gpt-4o-mini"

    def test_yaml_config_file(self, tmp_config_file, tmp_dir):
        config = Config(config_file=tmp_config_file, data_dir=tmp_dir)
        assert config.get("loop.max_cycles") == 3
        assert config.get("paths.state_file").endswith("state.json")
        # Untouched defaults survive the merge
        assert config.get("loop.wait_threshold") == 5

    def test_json_config_file(self, tmp_dir):
        config_path = os.path.join(tmp_dir, "config.json")
        with open(config_path, "w") as f:
            json.dump({"commands": {"timeout": 30}}, f)

        config = Config(config_file=config_path, data_dir=tmp_dir)
        assert config.get("commands.timeout") == 30

    def test_env_overrides_file(self, tmp_dir, monkeypatch):
        config_path = os.path.join(tmp_dir, "config.yaml")
        with open(config_path, "w") as f:
            yaml.dump({"llm": {"model": "gemini/gemini-2.5-flash"}}, f)

        monkeypatch.setenv("ORCHESTRA_LLM__MODEL", "anthropic/claude-sonnet-4-20250514")
        config = Config(config_file=config_path, data_dir=tmp_dir)
        assert config.get("llm.model") == "anthropic/claude-sonnet-4-20250514"

    def test_missing_config_file(self, tmp_dir):
        with pytest.raises(ConfigurationError, match="not found"):
            Config(config_file=os.path.join(tmp_dir, "nope.yaml"), data_dir=tmp_dir)

    def test_unsupported_config_type(self, tmp_dir):
        config_path = os.path.join(tmp_dir, "config.ini")
        with open(config_path, "w") as f:
            f.write("[loop]\n")
        with pytest.raises(ConfigurationError, match="Unsupported"):
            Config(config_file=config_path, data_dir=tmp_dir)

    def test_non_mapping_config_file(self, tmp_dir):
        config_path = os.path.join(tmp_dir, "config.yaml")
        with open(config_path, "w") as f:
            f.write("- just\n- a list\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            Config(config_file=config_path, data_dir=tmp_dir)

    def test_get_missing_key(self, tmp_dir):
        config = Config(data_dir=tmp_dir)
        assert config.get("nonexistent.key") is None
        assert config.get("nonexistent.key", "fallback") == "fallback"

    def test_set(self, tmp_dir):
        config = Config(data_dir=tmp_dir)
        config.set("custom.nested.value", 42)
        assert config.get("custom.nested.value") == 42

    def test_ensure_directories(self, tmp_dir):
        config = Config(data_dir=tmp_dir)
        config.ensure_directories()
        assert os.path.isdir(os.path.join(tmp_dir, "project_workspace"))
        assert os.path.isdir(os.path.join(tmp_dir, "logs"))

    def test_extra_defaults(self, tmp_dir):
        config = Config(data_dir=tmp_dir, defaults={"custom": {"key": "value"}})
        assert config.get("custom.key") == "value"


class TestTypedAccessors:
    def test_env_values_are_coerced(self, tmp_dir, monkeypatch):
        monkeypatch.setenv("ORCHESTRA_LOOP__MAX_CYCLES", "20")
        monkeypatch.setenv("ORCHESTRA_LOOP__CYCLE_DELAY", "0.25")
        config = Config(data_dir=tmp_dir)
        assert config.get("loop.max_cycles") == "20"
        assert config.get_int("loop.max_cycles") == 20
        assert config.get_float("loop.cycle_delay") == 0.25

    def test_invalid_values_raise(self, tmp_dir):
        config = Config(data_dir=tmp_dir)
        config.set("loop.max_cycles", "many")
        with pytest.raises(ConfigurationError):
            config.get_int("loop.max_cycles")
        with pytest.raises(ConfigurationError):
            config.get_float("loop.max_cycles")


class TestGetConfig:
    def test_singleton(self, tmp_dir):
        c1 = get_config(data_dir=tmp_dir)
        c2 = get_config()
        assert c1 is c2

    def test_reset_clears_singleton(self, tmp_dir):
        c1 = get_config(data_dir=tmp_dir)
        reset_config()
        c2 = get_config(data_dir=tmp_dir)
        assert c1 is not c2
