from __future__ import annotations

import asyncio
from types import SimpleNamespace

import google.generativeai as genai
import httpx
import openai
import pytest

from portfolio_sync.config.settings import settings
from portfolio_sync.services.llm import LLMClient, LLMUnavailableError, extract_json


def test_extract_json_strips_fences_and_chatter() -> None:
    assert extract_json('```json\n{"isRelevant": true, "reason": "ok"}\n```') == {"isRelevant": True, "reason": "ok"}
    assert extract_json('Sure! {"title": "Widget"} Hope that helps.') == {"title": "Widget"}


def test_extract_json_signals_failure_without_raising() -> None:
    assert extract_json("not json at all") is None
    assert extract_json("[1, 2, 3]") is None
    assert extract_json("") is None
    assert extract_json(None) is None
    assert extract_json("{broken: json}") is None


def test_llm_client_retries_injected_call_until_success() -> None:
    calls: list[str] = []

    async def flaky_call(system: str, prompt: str, temperature: float, max_tokens: int) -> str:
        calls.append(prompt)
        if len(calls) < 3:
            raise ConnectionError("temporary outage")
        return '{"ok": true}'

    client = LLMClient(llm_call=flaky_call, max_attempts=3, backoff_base_seconds=0, backoff_max_seconds=0)

    result = asyncio.run(client.complete_json(system="s", prompt="p"))

    assert result == {"ok": True}
    assert len(calls) == 3


def test_llm_client_reraises_after_attempts_exhausted() -> None:
    async def broken_call(*_):
        raise ConnectionError("still down")

    client = LLMClient(llm_call=broken_call, max_attempts=2, backoff_base_seconds=0, backoff_max_seconds=0)

    with pytest.raises(ConnectionError, match="still down"):
        asyncio.run(client.complete(system="s", prompt="p"))


def test_llm_client_without_key_is_unavailable(monkeypatch) -> None:
    monkeypatch.setattr(settings, "OPENAI_API_KEY", None)
    client = LLMClient(provider="openai")

    assert client.is_available is False
    assert client.can_generate_images is False
    with pytest.raises(LLMUnavailableError):
        asyncio.run(client.complete(system="s", prompt="p"))


def test_llm_client_rejects_unknown_provider() -> None:
    with pytest.raises(ValueError):
        LLMClient(provider="blackbox")


def test_llm_client_does_not_retry_auth_errors() -> None:
    calls: list[str] = []
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")

    async def rejected_call(system: str, prompt: str, temperature: float, max_tokens: int) -> str:
        calls.append(prompt)
        raise openai.AuthenticationError(
            "Incorrect API key provided",
            response=httpx.Response(401, request=request),
            body=None,
        )

    client = LLMClient(llm_call=rejected_call, max_attempts=3, backoff_base_seconds=0, backoff_max_seconds=0)

    with pytest.raises(openai.AuthenticationError):
        asyncio.run(client.complete(system="s", prompt="p"))
    assert len(calls) == 1


def test_llm_client_retries_provider_connection_errors() -> None:
    calls: list[str] = []
    request = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")

    async def unstable_call(system: str, prompt: str, temperature: float, max_tokens: int) -> str:
        calls.append(prompt)
        if len(calls) == 1:
            raise openai.APIConnectionError(request=request)
        return "done"

    client = LLMClient(llm_call=unstable_call, max_attempts=2, backoff_base_seconds=0, backoff_max_seconds=0)

    assert asyncio.run(client.complete(system="s", prompt="p")) == "done"
    assert len(calls) == 2


def test_gemini_shares_one_model_and_sends_each_system_prompt(monkeypatch) -> None:
    models: list["FakeGeminiModel"] = []

    class FakeGeminiModel:
        def __init__(self, model_name: str, **kwargs) -> None:
            self.model_name = model_name
            self.kwargs = kwargs
            self.contents: list[str] = []
            models.append(self)

        def generate_content(self, contents: str, generation_config=None):
            self.contents.append(contents)
            return SimpleNamespace(text=' {"ok": true} ')

    monkeypatch.setattr(settings, "GEMINI_API_KEY", "gemini-key")
    monkeypatch.setattr(genai, "configure", lambda **_: None)
    monkeypatch.setattr(genai, "GenerativeModel", FakeGeminiModel)
    client = LLMClient(provider="gemini", max_attempts=1, backoff_base_seconds=0)

    async def run() -> list[str]:
        first = await client.complete(system="Classify repositories.", prompt="repo A")
        second = await client.complete(system="Write portfolio titles.", prompt="repo B")
        return [first, second]

    assert asyncio.run(run()) == ['{"ok": true}', '{"ok": true}']
    assert len(models) == 1
    assert "system_instruction" not in models[0].kwargs
    assert models[0].contents[0].startswith("Classify repositories.")
    assert models[0].contents[1].startswith("Write portfolio titles.")
    assert models[0].contents[1].endswith("repo B")
