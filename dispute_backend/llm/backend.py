"""
Generation Backend
==================

Pluggable text generation behind one narrow interface:

    await backend.generate(prompt, system_instructions) -> str

The backend is untrusted: whatever it returns still goes through the
placeholder sweep and the legal audit. Failures raise GenerationBackendError
so callers can fall back to deterministic generation.
"""

import json
import hashlib
import logging
from typing import Dict, Optional, Protocol, Tuple, runtime_checkable

from ..config import get_settings
from ..errors import GenerationBackendError
from ..schemas import LLMMode
from .openrouter_base import OpenRouterBaseClient

logger = logging.getLogger(__name__)


@runtime_checkable
class GenerationBackend(Protocol):
    """Anything that can turn a prompt into text"""

    async def generate(self, prompt: str, system_instructions: str) -> str:
        ...


def parse_json_robust(content: str) -> Tuple[Optional[Dict], bool, str]:
    """
    Parse JSON content robustly, handling common LLM output issues.

    Handles:
    - Empty content
    - Markdown code blocks (```json...```)
    - Prefix text before JSON
    - Trailing text after JSON

    Returns:
        Tuple of (parsed_dict, success, error_message)
    """
    if not content:
        return None, False, "Empty content"

    content = content.strip()

    if "```json" in content:
        start = content.find("```json") + 7
        end = content.find("```", start)
        if end > start:
            content = content[start:end].strip()
    elif "```" in content:
        start = content.find("```") + 3
        end = content.find("```", start)
        if end > start:
            content = content[start:end].strip()

    try:
        data = json.loads(content)
        if isinstance(data, dict):
            return data, True, ""
    except json.JSONDecodeError:
        pass

    # Largest balanced {...} block wins
    brace_blocks = []
    depth = 0
    start_idx = None
    for i, char in enumerate(content):
        if char == '{':
            if depth == 0:
                start_idx = i
            depth += 1
        elif char == '}' and depth > 0:
            depth -= 1
            if depth == 0 and start_idx is not None:
                brace_blocks.append(content[start_idx:i + 1])
                start_idx = None

    for block in sorted(brace_blocks, key=len, reverse=True):
        try:
            data = json.loads(block)
            if isinstance(data, dict):
                return data, True, ""
        except json.JSONDecodeError:
            continue

    return None, False, "No JSON object found"


def safe_log_content(content: str, max_chars: int = 120) -> str:
    """Log-safe representation: length, short hash and a preview"""
    if not content:
        return "(empty)"

    content_hash = hashlib.sha256(content.encode()).hexdigest()[:12]
    preview = content[:max_chars].replace('\n', ' ')

    return f"len={len(content)} hash={content_hash} preview='{preview}...'"


class OpenRouterBackend:
    """GenerationBackend implemented over the OpenRouter client"""

    def __init__(self, client: OpenRouterBaseClient, temperature: float = 0.2, max_tokens: int = 4096):
        self.client = client
        self.temperature = temperature
        self.max_tokens = max_tokens

    async def generate(self, prompt: str, system_instructions: str) -> str:
        result = await self.client.chat(
            system_instructions, prompt, temperature=self.temperature, max_tokens=self.max_tokens,
        )

        if not result.success:
            raise GenerationBackendError(result.error or "Generation backend call failed")
        if not result.content.strip():
            raise GenerationBackendError("Generation backend returned empty content")

        logger.info(f"[Backend] {result.model} ({result.latency_ms}ms) output {safe_log_content(result.content)}")
        return result.content

    async def close(self):
        await self.client.close()


_backend: Optional[OpenRouterBackend] = None


def get_generation_backend() -> Optional[OpenRouterBackend]:
    """
    Configured backend singleton, or None in LLM_MODE=none.

    A missing API key also yields None so the deterministic generator runs.
    """
    global _backend
    settings = get_settings()
    if settings.llm_mode != LLMMode.OPENROUTER or not settings.openrouter_api_key:
        return None
    if _backend is None:
        client = OpenRouterBaseClient(
            api_key=settings.openrouter_api_key,
            model=settings.openrouter_model,
            timeout=settings.generation_timeout,
            base_url=settings.openrouter_base_url,
        )
        _backend = OpenRouterBackend(client)
    return _backend


def reset_generation_backend() -> None:
    """Drop the cached backend (primarily for tests)."""
    global _backend
    _backend = None
