"""Tests for the LLM inference adapter."""

from unittest.mock import AsyncMock, MagicMock

from orchestra.workflow.inference import (
    AI_ERROR_PREFIX,
    InferenceBackend,
    LLMInference,
    failure_text,
    is_inference_failure,
)


def _client(**kwargs):
    client = MagicMock()
    client.model = "ollama/qwen3:1.7b"
    client.acomplete = AsyncMock(**kwargs)
    return client


class TestFailureText:
    def test_detection(self):
        assert is_inference_failure("")
        assert is_inference_failure(None)
        assert is_inference_failure("[AI Error: timeout]")
        assert not is_inference_failure("SYSTEM_ACTION: WAIT")

    def test_format(self):
        assert failure_text("boom") == "[AI Error: boom]"
        assert failure_text("boom").startswith(AI_ERROR_PREFIX)


class TestLLMInference:
    def test_satisfies_protocol(self):
        assert isinstance(LLMInference(_client()), InferenceBackend)

    async def test_returns_stripped_text(self):
        inference = LLMInference(_client(return_value=("<think>hmm</think>\n  SYSTEM_ACTION: WAIT  \n", 0.4)))
        assert await inference.infer("state") == "SYSTEM_ACTION: WAIT"

    async def test_exception_becomes_failure_text(self):
        inference = LLMInference(_client(side_effect=ConnectionError("refused")))
        text = await inference.infer("state")
        assert text == "[AI Error: ConnectionError: refused]"
        assert is_inference_failure(text)

    async def test_empty_response_is_failure(self):
        inference = LLMInference(_client(return_value=("   ", 0.1)))
        text = await inference.infer("state")
        assert text == "[AI Error: Empty response from model]"
