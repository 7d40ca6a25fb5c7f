"""
LLM client and utilities: powered by LiteLLM.
"""

from .client import LLMClient
from .config import (
    PROVIDER_ENV_MAP,
    get_default_model,
    get_model_max_tokens,
    infer_provider,
)
from .utils import safe_get_content, strip_reasoning

__all__ = [
    "PROVIDER_ENV_MAP",
    "LLMClient",
    "get_default_model",
    "get_model_max_tokens",
    "infer_provider",
    "safe_get_content",
    "strip_reasoning",
]
