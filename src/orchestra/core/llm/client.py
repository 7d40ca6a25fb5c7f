"""
LLM Client: unified interface for LLM interactions via LiteLLM.

The orchestration loop sends one self-contained prompt per turn, so the
client keeps no conversation history: every call is system prompt + one
user message.
"""

from time import time
from typing import Any

from loguru import logger

from .config import get_default_model, get_model_max_tokens, infer_provider
from .utils import safe_get_content

DEFAULT_SYSTEM_PROMPT = (
    "You are one agent inside an automated software project loop. "
    "Follow the response format in the user message exactly."
)


class LLMClient:
    """
    Multi-provider LLM client backed by LiteLLM.

    Model names follow litellm conventions:
      - Local:     ``"ollama/qwen3:1.7b"``
      - OpenAI:    ``"gpt-4o-mini"``
      - Anthropic: ``"anthropic/claude-sonnet-4-20250514"``
      - Gemini:    ``"gemini/gemini-2.5-flash"``
    """

    def __init__(
        self,
        model: str | None = None,
        provider: str | None = None,
        system_prompt: str | None = None,
        temperature: float = 0.7,
        max_tokens: int | None = None,
        timeout: int = 180,
        num_retries: int = 2,
        api_base: str | None = None,
        fallback_model: str | None = None,
    ):
        # Resolve model ─ accept either (model=) or (provider=) style
        if model:
            self.model = model
            self.provider = provider or infer_provider(model)
        elif provider:
            self.provider = provider
            self.model = get_default_model(provider)
        else:
            self.provider = "local"
            self.model = get_default_model("local")

        self.temperature = temperature
        self.timeout = timeout
        self.num_retries = num_retries
        # api_base only applies to self-hosted providers
        self.api_base = api_base if self.provider == "local" else None

        self.fallback_model = fallback_model or None
        self.fallback_provider = infer_provider(fallback_model) if fallback_model else None

        model_limit = get_model_max_tokens(self.model, self.provider)
        if max_tokens is not None and max_tokens > model_limit:
            logger.warning(f"max_tokens ({max_tokens}) exceeds model limit ({model_limit}). Capping.")
            self.max_tokens = model_limit
        else:
            self.max_tokens = max_tokens or model_limit

        self.system_prompt = system_prompt if system_prompt is not None else DEFAULT_SYSTEM_PROMPT

        logger.debug(f"LLMClient: model={self.model}  max_tokens={self.max_tokens}")
        if self.fallback_model:
            logger.debug(f"LLMClient: fallback={self.fallback_model}")

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def acompletion(self, messages: list[dict[str, Any]], *, stop: list[str] | None = None) -> Any:
        """Low-level async completion call with fallback.

        On retryable errors (rate limit, API error, connection) the call is
        repeated once against the fallback model if one is configured.

        Returns:
            The raw litellm response object.
        """
        import litellm

        kwargs = self._build_completion_kwargs(messages, stop=stop)

        try:
            return await litellm.acompletion(**kwargs)
        except (litellm.RateLimitError, litellm.APIError, litellm.APIConnectionError) as e:
            if not self.fallback_model:
                raise
            return await self._afallback_completion(kwargs, e)

    async def acomplete(self, prompt: str) -> tuple[str, float]:
        """Send one prompt and return (response_text, elapsed_seconds).

        Exceptions propagate; callers decide how a failure is surfaced.
        """
        start = time()
        response = await self.acompletion(self._build_messages(prompt))
        return safe_get_content(response), time() - start


    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _build_completion_kwargs(
        self,
        messages: list[dict[str, Any]],
        *,
        stop: list[str] | None = None,
    ) -> dict[str, Any]:
        """Build kwargs dict for litellm.acompletion."""
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
            "timeout": self.timeout,
            "num_retries": self.num_retries,
        }
        if self.api_base:
            kwargs["api_base"] = self.api_base
        if stop:
            kwargs["stop"] = stop
        return kwargs

    async def _afallback_completion(self, kwargs: dict[str, Any], original_error: Exception) -> Any:
        """Retry with the fallback model."""
        import litellm

        logger.warning(
            f"Primary model {self.model} failed ({type(original_error).__name__}), "
            f"falling back to {self.fallback_model}"
        )

        fallback_limit = get_model_max_tokens(self.fallback_model, self.fallback_provider)
        kwargs["model"] = self.fallback_model
        kwargs["max_tokens"] = min(kwargs.get("max_tokens", fallback_limit), fallback_limit)
        if self.fallback_provider != "local":
            kwargs.pop("api_base", None)

        return await litellm.acompletion(**kwargs)

    def _build_messages(self, prompt: str) -> list[dict[str, str]]:
        messages: list[dict[str, str]] = []
        if self.system_prompt and self.system_prompt.strip():
            messages.append({"role": "system", "content": self.system_prompt})
        messages.append({"role": "user", "content": prompt})
        return messages
