"""
OpenRouter Base Client
======================

Async chat-completions client shared by the generation backend and the
optional LLM fact extractor.

The client never raises for HTTP or transport problems; the caller gets
an LLMCallResult with success=False and decides whether to fall back.
"""

import httpx
import logging
import time
from typing import Optional, Dict, Any, List
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class LLMCallResult:
    """Result from an LLM API call"""
    content: str
    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    latency_ms: int = 0
    raw_response: Optional[Dict] = None
    success: bool = True
    error: Optional[str] = None


class OpenRouterBaseClient:
    """
    One model, one API key, one lazily created httpx.AsyncClient.

    The httpx timeout bounds every call; the generator adds its own
    asyncio deadline on top.
    """

    DEFAULT_BASE_URL = "https://openrouter.ai/api/v1"

    def __init__(
        self,
        api_key: Optional[str],
        model: str,
        timeout: float = 60,
        base_url: Optional[str] = None,
        app_name: str = "Dispute Document Service"
    ):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.base_url = (base_url or self.DEFAULT_BASE_URL).rstrip("/")
        self.app_name = app_name
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def completions_url(self) -> str:
        return f"{self.base_url}/chat/completions"

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def close(self):
        if self._client:
            await self._client.aclose()
            self._client = None

    def _failure(self, error: str, raw_response: Optional[Dict] = None) -> LLMCallResult:
        return LLMCallResult(content="", model=self.model, success=False, error=error, raw_response=raw_response)

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
            "X-Title": self.app_name,
        }

    async def call(
        self,
        messages: List[Dict[str, str]],
        temperature: float = 0,
        max_tokens: int = 4096
    ) -> LLMCallResult:
        """
        POST one chat completion.

        Args:
            messages: role/content dicts, system message first
            temperature: Sampling temperature (0 = deterministic)
            max_tokens: Maximum response tokens

        Returns:
            LLMCallResult with content or error
        """
        if not self.api_key:
            return self._failure("API key not configured")

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
            "max_tokens": max_tokens,
        }

        started = time.monotonic()
        try:
            client = await self._get_client()
            response = await client.post(self.completions_url, json=payload, headers=self._headers())
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"[OpenRouter] API error: {e.response.status_code}")
            return self._failure(f"HTTP {e.response.status_code}: {e.response.text[:200]}")
        except httpx.HTTPError as e:
            logger.error(f"[OpenRouter] Request failed: {e}")
            return self._failure(str(e) or e.__class__.__name__)

        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as e:
            logger.error(f"[OpenRouter] Response missing content: {e}")
            return self._failure(f"Response missing content: {e}", raw_response=data)

        usage = data.get("usage") or {}
        return LLMCallResult(
            content=content or "",
            model=self.model,
            input_tokens=usage.get("prompt_tokens", 0),
            output_tokens=usage.get("completion_tokens", 0),
            latency_ms=int((time.monotonic() - started) * 1000),
            raw_response=data,
        )

    async def chat(self, system_instructions: str, prompt: str, **kwargs) -> LLMCallResult:
        """System instructions plus one user prompt"""
        return await self.call(
            [
                {"role": "system", "content": system_instructions},
                {"role": "user", "content": prompt},
            ],
            **kwargs,
        )
