"""
Tests for the Generation Backend
================================

Tests:
1. parse_json_robust on typical LLM output
2. OpenRouter client against a mocked transport
3. OpenRouterBackend error mapping
4. Backend selection from settings
"""

import json
from pathlib import Path

import httpx
import pytest

import sys
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from dispute_backend.config import get_settings
from dispute_backend.errors import GenerationBackendError
from dispute_backend.llm import (
    OpenRouterBackend,
    OpenRouterBaseClient,
    get_generation_backend,
    parse_json_robust,
    reset_generation_backend,
    safe_log_content,
)


def make_client(handler, api_key="test-key"):
    client = OpenRouterBaseClient(api_key=api_key, model="test/model", base_url="https://llm.test/api/v1/")
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client


def completion(content):
    return httpx.Response(200, json={
        "choices": [{"message": {"content": content}}],
        "usage": {"prompt_tokens": 12, "completion_tokens": 5},
    })


# =============================================================================
# JSON parsing
# =============================================================================

class TestParseJsonRobust:
    """Tests for parse_json_robust"""

    def test_plain_json(self):
        data, ok, error = parse_json_robust('{"dispute_type": "debt"}')
        assert ok and error == ""
        assert data == {"dispute_type": "debt"}

    def test_markdown_block(self):
        data, ok, _ = parse_json_robust('Here you go:\n```json\n{"amount": 148.5}\n```\nThanks')
        assert ok
        assert data == {"amount": 148.5}

    def test_prefix_and_suffix_text(self):
        data, ok, _ = parse_json_robust('Sure! {"a": {"b": 1}} hope that helps {"c": 2}')
        assert ok
        assert data == {"a": {"b": 1}}

    def test_failures(self):
        assert parse_json_robust("") == (None, False, "Empty content")
        assert parse_json_robust("no json here") == (None, False, "No JSON object found")
        assert parse_json_robust("[1, 2]")[1] is False


def test_safe_log_content():
    assert safe_log_content("") == "(empty)"
    line = safe_log_content("Claimant: Jane Doe\nDefendant: ACME CLEANING LTD", max_chars=18)
    assert line.startswith("len=47 hash=")
    assert "preview='Claimant: Jane Doe...'" in line


# =============================================================================
# OpenRouter client
# =============================================================================

class TestOpenRouterClient:
    """Tests for OpenRouterBaseClient.call"""

    @pytest.mark.asyncio
    async def test_successful_call(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["payload"] = json.loads(request.content)
            return completion("Dear Sir or Madam")

        client = make_client(handler)
        result = await client.call([{"role": "user", "content": "hi"}], max_tokens=100)
        await client.close()

        assert result.success
        assert result.content == "Dear Sir or Madam"
        assert (result.input_tokens, result.output_tokens) == (12, 5)
        assert seen["url"] == "https://llm.test/api/v1/chat/completions"
        assert seen["auth"] == "Bearer test-key"
        assert seen["payload"]["model"] == "test/model"
        assert seen["payload"]["max_tokens"] == 100

    @pytest.mark.asyncio
    async def test_http_error_is_returned_not_raised(self):
        client = make_client(lambda request: httpx.Response(503, text="overloaded"))
        result = await client.call([{"role": "user", "content": "hi"}])
        assert not result.success
        assert result.error == "HTTP 503: overloaded"

    @pytest.mark.asyncio
    async def test_missing_content(self):
        client = make_client(lambda request: httpx.Response(200, json={"choices": []}))
        result = await client.call([{"role": "user", "content": "hi"}])
        assert not result.success
        assert result.error.startswith("Response missing content")

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        client = make_client(handler)
        result = await client.call([{"role": "user", "content": "hi"}])
        assert not result.success
        assert result.error == "connection refused"

    @pytest.mark.asyncio
    async def test_no_api_key(self):
        client = OpenRouterBaseClient(api_key=None, model="test/model")
        result = await client.call([{"role": "user", "content": "hi"}])
        assert not result.success
        assert result.error == "API key not configured"


# =============================================================================
# Backend adapter
# =============================================================================

class TestOpenRouterBackend:
    """Tests for OpenRouterBackend.generate"""

    @pytest.mark.asyncio
    async def test_system_instructions_come_first(self):
        seen = {}

        def handler(request):
            seen["messages"] = json.loads(request.content)["messages"]
            return completion("LETTER BEFORE ACTION")

        backend = OpenRouterBackend(make_client(handler))
        text = await backend.generate("Write the letter", "LOCKED FACTS")
        await backend.close()

        assert text == "LETTER BEFORE ACTION"
        assert seen["messages"] == [
            {"role": "system", "content": "LOCKED FACTS"},
            {"role": "user", "content": "Write the letter"},
        ]

    @pytest.mark.asyncio
    async def test_failure_raises(self):
        backend = OpenRouterBackend(make_client(lambda request: httpx.Response(500, text="boom")))
        with pytest.raises(GenerationBackendError) as exc:
            await backend.generate("Write the letter", "")
        assert "HTTP 500" in str(exc.value)

    @pytest.mark.asyncio
    async def test_empty_output_raises(self):
        backend = OpenRouterBackend(make_client(lambda request: completion("   ")))
        with pytest.raises(GenerationBackendError) as exc:
            await backend.generate("Write the letter", "")
        assert "empty content" in str(exc.value)


# =============================================================================
# Backend selection
# =============================================================================

class TestBackendSelection:
    """get_generation_backend follows LLM_MODE"""

    @pytest.fixture(autouse=True)
    def fresh_settings(self, monkeypatch):
        monkeypatch.delenv("LLM_MODE", raising=False)
        monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
        get_settings.cache_clear()
        reset_generation_backend()
        yield
        get_settings.cache_clear()
        reset_generation_backend()

    def test_none_mode(self):
        assert get_generation_backend() is None

    def test_openrouter_without_key(self, monkeypatch):
        monkeypatch.setenv("LLM_MODE", "openrouter")
        get_settings.cache_clear()

        assert get_generation_backend() is None
        assert get_settings().validate_llm_config() == [
            "LLM_MODE=openrouter but OPENROUTER_API_KEY not set (deterministic generator will be used)"
        ]

    def test_openrouter_with_key_is_cached(self, monkeypatch):
        monkeypatch.setenv("LLM_MODE", "openrouter")
        monkeypatch.setenv("OPENROUTER_API_KEY", "sk-test")
        monkeypatch.setenv("GENERATION_TIMEOUT", "5")
        get_settings.cache_clear()

        backend = get_generation_backend()
        assert isinstance(backend, OpenRouterBackend)
        assert backend.client.timeout == 5
        assert get_generation_backend() is backend
