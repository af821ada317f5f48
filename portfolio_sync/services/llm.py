"""Chat-completion backend shared by classification, dedupe and enhancement"""

from __future__ import annotations

import asyncio
import base64
import json
import logging
import re
from typing import Any, Awaitable, Callable, Optional

import anthropic
import google.generativeai as genai
import httpx
import openai
from anthropic import AsyncAnthropic
from google.api_core import exceptions as google_exceptions
from openai import AsyncOpenAI
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from portfolio_sync.config.settings import settings
from portfolio_sync.crawlers.github.client import sanitize_log_extra

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = ("openai", "anthropic", "gemini")

# (system, prompt, temperature, max_tokens) -> raw model text
LLMCall = Callable[[str, str, float, int], Awaitable[str]]

_FENCE = re.compile(r"```(?:json|JSON)?\s*")

# Network, rate-limit and server-side failures; auth and request errors are not retried
TRANSIENT_LLM_ERRORS = (
    openai.APIConnectionError,
    openai.RateLimitError,
    openai.InternalServerError,
    anthropic.APIConnectionError,
    anthropic.RateLimitError,
    anthropic.InternalServerError,
    google_exceptions.ResourceExhausted,
    google_exceptions.ServiceUnavailable,
    google_exceptions.InternalServerError,
    google_exceptions.DeadlineExceeded,
    httpx.TransportError,
    asyncio.TimeoutError,
    ConnectionError,
)


class LLMUnavailableError(RuntimeError):
    """Raised when no LLM backend is configured."""


def extract_json(content: Optional[str]) -> Optional[dict[str, Any]]:
    """Parse a JSON object out of raw model text.

    Strips markdown code fences and surrounding chatter. Returns None instead
    of raising when nothing usable is found.
    """
    if not isinstance(content, str):
        return None

    text = _FENCE.sub("", content).strip()
    if not text:
        return None

    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        start = text.find("{")
        end = text.rfind("}")
        if start == -1 or end <= start:
            return None
        try:
            data = json.loads(text[start : end + 1])
        except json.JSONDecodeError:
            return None

    return data if isinstance(data, dict) else None


class LLMClient:
    """Provider-agnostic chat client with bounded retries"""

    def __init__(
        self,
        *,
        provider: Optional[str] = None,
        llm_call: Optional[LLMCall] = None,
        max_attempts: Optional[int] = None,
        backoff_base_seconds: Optional[float] = None,
        backoff_max_seconds: Optional[float] = None,
    ):
        self.provider = (provider or settings.LLM_PROVIDER).lower()
        self._llm_call = llm_call
        self._max_attempts = max(1, max_attempts if max_attempts is not None else settings.LLM_MAX_ATTEMPTS)
        self._backoff_base_seconds = (
            backoff_base_seconds if backoff_base_seconds is not None else settings.LLM_BACKOFF_BASE_SECONDS
        )
        self._backoff_max_seconds = (
            backoff_max_seconds if backoff_max_seconds is not None else settings.LLM_BACKOFF_MAX_SECONDS
        )
        self._openai_client: Optional[AsyncOpenAI] = None
        self._anthropic_client: Optional[AsyncAnthropic] = None
        self._gemini_model: Any = None

        if self.provider not in SUPPORTED_PROVIDERS:
            raise ValueError(f"Unsupported LLM provider: {self.provider}")

    @property
    def is_available(self) -> bool:
        if self._llm_call is not None:
            return True
        return bool(self._api_key())

    @property
    def can_generate_images(self) -> bool:
        return self._llm_call is None and self.provider == "openai" and bool(settings.OPENAI_API_KEY)

    async def complete(
        self,
        *,
        system: str,
        prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 256,
    ) -> str:
        """Send one system+user exchange and return the raw reply text."""

        if not self.is_available:
            raise LLMUnavailableError(f"No API key configured for LLM provider '{self.provider}'")

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=wait_exponential(multiplier=self._backoff_base_seconds, max=self._backoff_max_seconds),
            retry=retry_if_exception_type(TRANSIENT_LLM_ERRORS),
            reraise=True,
        ):
            with attempt:
                if self._llm_call is not None:
                    return await self._llm_call(system, prompt, temperature, max_tokens)
                if self.provider == "openai":
                    return await self._complete_openai(system, prompt, temperature, max_tokens)
                if self.provider == "anthropic":
                    return await self._complete_anthropic(system, prompt, temperature, max_tokens)
                return await self._complete_gemini(system, prompt, temperature, max_tokens)

        raise LLMUnavailableError("LLM call produced no result")

    async def complete_json(
        self,
        *,
        system: str,
        prompt: str,
        temperature: float = 0.3,
        max_tokens: int = 256,
    ) -> Optional[dict[str, Any]]:
        """Like `complete`, but parsed; None when the reply is not a JSON object."""

        content = await self.complete(system=system, prompt=prompt, temperature=temperature, max_tokens=max_tokens)
        data = extract_json(content)
        if data is None:
            logger.warning(
                "Failed to parse LLM response as JSON",
                extra=sanitize_log_extra(provider=self.provider, response=content),
            )
        return data

    async def generate_image(self, prompt: str) -> Optional[bytes]:
        """Generate one image through the OpenAI images endpoint."""

        if not self.can_generate_images:
            return None

        client = self._ensure_openai()
        response = await client.images.generate(model=settings.IMAGE_MODEL, prompt=prompt, n=1, size="1024x1024")
        image = response.data[0] if response.data else None
        if image is None:
            return None
        if getattr(image, "b64_json", None):
            return base64.b64decode(image.b64_json)
        if getattr(image, "url", None):
            async with httpx.AsyncClient(timeout=60.0, follow_redirects=True) as http:
                download = await http.get(image.url)
                download.raise_for_status()
                return download.content
        return None

    def _api_key(self) -> Optional[str]:
        if self.provider == "openai":
            return settings.OPENAI_API_KEY
        if self.provider == "anthropic":
            return settings.ANTHROPIC_API_KEY
        return settings.GEMINI_API_KEY

    def _ensure_openai(self) -> AsyncOpenAI:
        if self._openai_client is None:
            self._openai_client = AsyncOpenAI(
                api_key=settings.OPENAI_API_KEY,
                base_url=settings.OPENAI_BASE_URL,
                timeout=settings.LLM_TIMEOUT_SECONDS,
            )
        return self._openai_client

    async def _complete_openai(self, system: str, prompt: str, temperature: float, max_tokens: int) -> str:
        response = await self._ensure_openai().chat.completions.create(
            model=settings.OPENAI_MODEL,
            messages=[
                {"role": "system", "content": system},
                {"role": "user", "content": prompt},
            ],
            temperature=temperature,
            max_tokens=max_tokens,
        )
        return (response.choices[0].message.content or "").strip()

    async def _complete_anthropic(self, system: str, prompt: str, temperature: float, max_tokens: int) -> str:
        if self._anthropic_client is None:
            self._anthropic_client = AsyncAnthropic(
                api_key=settings.ANTHROPIC_API_KEY,
                timeout=settings.LLM_TIMEOUT_SECONDS,
            )
        response = await self._anthropic_client.messages.create(
            model=settings.ANTHROPIC_MODEL,
            system=system,
            max_tokens=max_tokens,
            temperature=temperature,
            messages=[{"role": "user", "content": prompt}],
        )
        return response.content[0].text.strip()

    async def _complete_gemini(self, system: str, prompt: str, temperature: float, max_tokens: int) -> str:
        if self._gemini_model is None:
            genai.configure(api_key=settings.GEMINI_API_KEY)
            self._gemini_model = genai.GenerativeModel(settings.GEMINI_MODEL)

        # One model serves every caller, so the system text travels with each prompt
        contents = f"{system}\n\n{prompt}" if system else prompt

        # Gemini SDK is sync, so run it in an executor
        loop = asyncio.get_running_loop()
        response = await loop.run_in_executor(
            None,
            lambda: self._gemini_model.generate_content(
                contents,
                generation_config=genai.types.GenerationConfig(
                    temperature=temperature,
                    max_output_tokens=max_tokens,
                ),
            ),
        )
        return response.text.strip()
