"""
LLM Module
==========

Generation backend abstraction plus the OpenRouter implementation.

Environment Variables:
- LLM_MODE: none | openrouter
- OPENROUTER_API_KEY: Required for openrouter mode
- OPENROUTER_MODEL: Model used for generation and extraction

Usage:
    from dispute_backend.llm import get_generation_backend

    backend = get_generation_backend()
    if backend is not None:
        text = await backend.generate(prompt, system_instructions)
"""

from .openrouter_base import OpenRouterBaseClient, LLMCallResult
from .backend import (
    GenerationBackend,
    OpenRouterBackend,
    get_generation_backend,
    reset_generation_backend,
    parse_json_robust,
    safe_log_content,
)

__all__ = [
    "OpenRouterBaseClient",
    "LLMCallResult",
    "GenerationBackend",
    "OpenRouterBackend",
    "get_generation_backend",
    "reset_generation_backend",
    "parse_json_robust",
    "safe_log_content",
]
