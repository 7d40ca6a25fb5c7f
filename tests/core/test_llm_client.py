"""Tests for LLMClient: completion kwargs, fallback behavior, acomplete."""

import sys
import types
from unittest.mock import AsyncMock, MagicMock

import pytest

# --- litellm mock setup ---
# Client tests never touch the network. We create a mock module with the
# exception classes that client.py references.

_litellm_mock = types.ModuleType("litellm")


class _MockRateLimitError(Exception):
    def __init__(self, message="", llm_provider="", model=""):
        super().__init__(message)


class _MockAPIError(Exception):
    def __init__(self, message="", llm_provider="", model="", status_code=500):
        super().__init__(message)


class _MockAPIConnectionError(Exception):
    def __init__(self, message="", llm_provider="", model=""):
        super().__init__(message)


_litellm_mock.RateLimitError = _MockRateLimitError
_litellm_mock.APIError = _MockAPIError
_litellm_mock.APIConnectionError = _MockAPIConnectionError
_litellm_mock.acompletion = AsyncMock()


@pytest.fixture(autouse=True)
def _mock_litellm():
    """Inject our mock litellm into sys.modules for all tests."""
    old = sys.modules.get("litellm")
    sys.modules["litellm"] = _litellm_mock
    _litellm_mock.acompletion = AsyncMock()
    yield
    if old is not None:
        sys.modules["litellm"] = old
    else:
        sys.modules.pop("litellm", None)


def _make_response(content="Hello"):
    """Build a mock litellm response."""
    msg = MagicMock()
    msg.content = content
    choice = MagicMock()
    choice.message = msg
    return MagicMock(choices=[choice])


class TestInit:
    def test_defaults_to_local_model(self):
        from orchestra.core.llm.client import LLMClient

        client = LLMClient()
        assert client.model == "ollama/qwen3:1.7b"
        assert client.provider == "local"
        assert client.fallback_model is None

    def test_api_base_only_for_local(self):
        from orchestra.core.llm.client import LLMClient

        local = LLMClient(model="ollama/qwen3:1.7b", api_base="http://127.0.0.1:11434")
        remote = LLMClient(model="gpt-4o-mini", api_base="http://127.0.0.1:11434")
        assert local.api_base == "http://127.0.0.1:11434"
        assert remote.api_base is None

    def test_max_tokens_capped_to_model_limit(self):
        from orchestra.core.llm.client import LLMClient

        client = LLMClient(model="gpt-4", max_tokens=100_000)
        assert client.max_tokens == 4_096

    def test_fallback_provider_inferred(self):
        from orchestra.core.llm.client import LLMClient

        client = LLMClient(model="ollama/qwen3:1.7b", api_base="http://localhost:11434", fallback_model="gpt-4o-mini")
        assert client.api_base == "http://localhost:11434"
        assert client.fallback_provider == "openai"


class TestAcomplete:
    async def test_returns_text_and_elapsed(self):
        from orchestra.core.llm.client import LLMClient

        _litellm_mock.acompletion.return_value = _make_response("SYSTEM_ACTION: WAIT")
        client = LLMClient(model="ollama/qwen3:1.7b", api_base="http://127.0.0.1:11434")

        text, elapsed = await client.acomplete("state")

        assert text == "SYSTEM_ACTION: WAIT"
        assert elapsed >= 0
        kwargs = _litellm_mock.acompletion.call_args.kwargs
        assert kwargs["model"] == "ollama/qwen3:1.7b"
        assert kwargs["api_base"] == "http://127.0.0.1:11434"
        assert kwargs["messages"][0]["role"] == "system"
        assert kwargs["messages"][-1] == {"role": "user", "content": "state"}

    async def test_empty_system_prompt_sends_user_only(self):
        from orchestra.core.llm.client import LLMClient

        _litellm_mock.acompletion.return_value = _make_response("ok")
        client = LLMClient(system_prompt="")
        await client.acomplete("hi")
        assert _litellm_mock.acompletion.call_args.kwargs["messages"] == [{"role": "user", "content": "hi"}]

    async def test_errors_propagate_without_fallback(self):
        from orchestra.core.llm.client import LLMClient

        _litellm_mock.acompletion.side_effect = _MockAPIConnectionError("connection refused")
        client = LLMClient()
        with pytest.raises(_MockAPIConnectionError):
            await client.acomplete("state")


class TestFallback:
    async def test_falls_back_on_rate_limit(self):
        from orchestra.core.llm.client import LLMClient

        _litellm_mock.acompletion.side_effect = [
            _MockRateLimitError("slow down"),
            _make_response("from fallback"),
        ]
        client = LLMClient(model="ollama/qwen3:1.7b", api_base="http://127.0.0.1:11434", fallback_model="gpt-4o-mini")

        text, _ = await client.acomplete("state")

        assert text == "from fallback"
        second = _litellm_mock.acompletion.call_args_list[1].kwargs
        assert second["model"] == "gpt-4o-mini"
        assert "api_base" not in second

    async def test_non_retryable_error_is_not_caught(self):
        from orchestra.core.llm.client import LLMClient

        _litellm_mock.acompletion.side_effect = ValueError("bad request")
        client = LLMClient(fallback_model="gpt-4o-mini")
        with pytest.raises(ValueError):
            await client.acomplete("state")
        assert _litellm_mock.acompletion.call_count == 1
