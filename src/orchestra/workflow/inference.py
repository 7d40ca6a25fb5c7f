"""Inference backend adapter.

The loop sees the backend as ``infer(prompt) -> text``. Failures are not
raised: they come back as text starting with :data:`AI_ERROR_PREFIX`, which
the loop treats as "no actionable directive".
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from loguru import logger

from orchestra.core.llm import LLMClient, strip_reasoning

AI_ERROR_PREFIX = "[AI Error"


@runtime_checkable
class InferenceBackend(Protocol):
    async def infer(self, prompt: str) -> str: ...


def is_inference_failure(text: str | None) -> bool:
    return not text or text.lstrip().startswith(AI_ERROR_PREFIX)


def failure_text(reason: str) -> str:
    return f"{AI_ERROR_PREFIX}: {reason}]"


class LLMInference:
    """Adapts :class:`LLMClient` to the loop's string-in, string-out contract."""

    def __init__(self, client: LLMClient) -> None:
        self.client = client

    async def infer(self, prompt: str) -> str:
        try:
            text, elapsed = await self.client.acomplete(prompt)
        except Exception as e:
            logger.error(f"Inference failed on {self.client.model}: {type(e).__name__}: {e}")
            return failure_text(f"{type(e).__name__}: {e}")

        text = strip_reasoning(text or "").strip()
        if not text:
            logger.error(f"Inference on {self.client.model} returned an empty response")
            return failure_text("Empty response from model")

        logger.debug(f"Inference on {self.client.model} took {elapsed:.1f}s ({len(text)} chars)")
        return text
