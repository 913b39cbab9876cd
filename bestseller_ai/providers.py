"""
Provider Adapters
=================

One adapter per provider. Each adapter translates a generic generation
request into the provider's wire format, sets the right authentication
(bearer token, custom header or query-string key), and turns the response
envelope back into a ``GenerationResult``.

Failures are raised as ``ProviderError`` subclasses whose message carries
the HTTP status and the provider's own error text, which is what the retry
engine classifies on.
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

import httpx

from .errors import (
    MalformedResponseError,
    ModelListingUnsupportedError,
    ProviderHTTPError,
    ProviderNetworkError,
)
from .registry import PROVIDERS, ProviderDescriptor, ProviderId, parse_provider

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 120.0
DEFAULT_SYSTEM_PROMPT = "You are a professional ebook author and writing assistant."
ANTHROPIC_VERSION = "2023-06-01"


@dataclass
class GenerationResult:
    """Standardized generation outcome"""

    content: str
    provider: ProviderId
    model: str
    tokens_used: int | None = None
    cached: bool = False
    latency_ms: float = 0.0


def format_http_error(exc: httpx.HTTPStatusError) -> str:
    """Format detailed error message from HTTP exception."""
    response = exc.response
    status_code = response.status_code
    message = response.reason_phrase or str(exc)
    retry_after = response.headers.get("Retry-After")

    try:
        payload = response.json()
    except ValueError:
        payload = None

    if isinstance(payload, dict):
        error_info = payload.get("error")
        if isinstance(error_info, dict):
            error_message = error_info.get("message")
            if error_message:
                message = error_message
        elif isinstance(error_info, str) and error_info:
            # Hugging Face inference endpoints return {"error": "..."}
            message = error_info

    if retry_after:
        message = f"{message} Retry-After: {retry_after}."

    return f"HTTP {status_code}: {message}"


class BaseProvider(ABC):
    """Abstract base class for AI provider adapters"""

    provider_id: ProviderId

    def __init__(
        self,
        client: httpx.AsyncClient,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
    ) -> None:
        self._client = client
        self.system_prompt = system_prompt

    @property
    def descriptor(self) -> ProviderDescriptor:
        return PROVIDERS[self.provider_id]

    @property
    def provider_name(self) -> str:
        return self.provider_id.value

    @property
    def supports_model_listing(self) -> bool:
        return self.descriptor.supports_model_listing

    @abstractmethod
    def build_request(
        self,
        model: str,
        prompt: str,
        max_tokens: int,
        temperature: float,
        api_key: str,
        system_prompt: str,
    ) -> tuple[str, dict[str, str], dict[str, str], dict[str, Any]]:
        """Return (url, headers, query params, json body) for one generation"""

    @abstractmethod
    def parse_response(self, data: Any, model: str) -> GenerationResult:
        """Extract content and usage from a successful response body"""

    async def call(
        self,
        model: str,
        prompt: str,
        max_tokens: int,
        temperature: float,
        api_key: str,
        system_prompt: str | None = None,
    ) -> GenerationResult:
        """Send one generation request"""
        url, headers, params, body = self.build_request(
            model,
            prompt,
            max_tokens,
            temperature,
            api_key.strip(),
            system_prompt or self.system_prompt,
        )
        start_time = time.time()
        data = await self._send("POST", url, headers=headers, params=params, json=body)
        result = self.parse_response(data, model)
        result.latency_ms = (time.time() - start_time) * 1000
        return result

    async def list_models(self, api_key: str) -> list[str]:
        """Live model discovery, filtered to generation models, newest first"""
        raise ModelListingUnsupportedError(self.provider_name)

    async def _send(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        name = self.descriptor.display_name
        try:
            response = await self._client.request(
                method, url, headers=headers, params=params or None, json=json
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ProviderHTTPError(
                self.provider_name,
                f"{name} API error: {format_http_error(e)}",
                status_code=e.response.status_code,
            ) from e
        except httpx.TimeoutException as e:
            raise ProviderNetworkError(
                self.provider_name, f"{name} API network timeout: {e}"
            ) from e
        except httpx.RequestError as e:
            raise ProviderNetworkError(
                self.provider_name, f"{name} API network error: {e}"
            ) from e

        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponseError(
                self.provider_name,
                f"{name} API returned a non-JSON response body.",
                status_code=response.status_code,
            ) from e

    def _malformed(self, data: Any) -> MalformedResponseError:
        logger.error(
            f"{self.descriptor.display_name} API unexpected response shape: "
            f"{type(data).__name__} with keys "
            f"{sorted(data) if isinstance(data, dict) else '-'}"
        )
        return MalformedResponseError(
            self.provider_name,
            f"{self.descriptor.display_name} API returned unexpected response format. "
            "This may be due to an invalid API key or API quota exceeded.",
            status_code=200,
        )


class ChatCompletionsProvider(BaseProvider):
    """Shared wire format for OpenAI-style chat completion endpoints"""

    completions_path = "/v1/chat/completions"
    extra_body: dict[str, Any] = {}

    def build_request(
        self, model, prompt, max_tokens, temperature, api_key, system_prompt
    ):
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": prompt},
        ]
        body = {
            "model": model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
            **self.extra_body,
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        }
        return self.descriptor.base_url + self.completions_path, headers, {}, body

    def parse_response(self, data, model):
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError):
            raise self._malformed(data) from None
        if not isinstance(content, str):
            raise self._malformed(data)

        usage = data.get("usage") or {}
        return GenerationResult(
            content=content,
            provider=self.provider_id,
            model=model,
            tokens_used=usage.get("total_tokens"),
        )


class OpenAIProvider(ChatCompletionsProvider):
    """OpenAI chat completions"""

    provider_id = ProviderId.OPENAI

    async def list_models(self, api_key: str) -> list[str]:
        data = await self._send(
            "GET",
            f"{self.descriptor.base_url}/v1/models",
            headers={"Authorization": f"Bearer {api_key.strip()}"},
        )
        try:
            ids = [entry["id"] for entry in data["data"]]
        except (KeyError, TypeError):
            raise self._malformed(data) from None
        return sorted((i for i in ids if "gpt" in i), reverse=True)


class XAIProvider(ChatCompletionsProvider):
    """xAI Grok, OpenAI-compatible"""

    provider_id = ProviderId.XAI
    extra_body = {"stream": False}


class AnthropicProvider(BaseProvider):
    """Anthropic Messages API"""

    provider_id = ProviderId.ANTHROPIC

    def build_request(
        self, model, prompt, max_tokens, temperature, api_key, system_prompt
    ):
        headers = {
            "Content-Type": "application/json",
            "x-api-key": api_key,
            "anthropic-version": ANTHROPIC_VERSION,
        }
        body = {
            "model": model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "system": system_prompt,
            "messages": [{"role": "user", "content": prompt}],
        }
        return f"{self.descriptor.base_url}/v1/messages", headers, {}, body

    def parse_response(self, data, model):
        try:
            content = data["content"][0]["text"]
        except (KeyError, IndexError, TypeError):
            raise self._malformed(data) from None

        usage = data.get("usage") or {}
        tokens_used = None
        if "input_tokens" in usage or "output_tokens" in usage:
            tokens_used = (usage.get("input_tokens") or 0) + (
                usage.get("output_tokens") or 0
            )

        return GenerationResult(
            content=content,
            provider=self.provider_id,
            model=model,
            tokens_used=tokens_used,
        )


class GoogleProvider(BaseProvider):
    """Google Gemini generateContent (API key in the query string)"""

    provider_id = ProviderId.GOOGLE

    def build_request(
        self, model, prompt, max_tokens, temperature, api_key, system_prompt
    ):
        url = f"{self.descriptor.base_url}/v1beta/models/{model}:generateContent"
        body = {
            "systemInstruction": {"parts": [{"text": system_prompt}]},
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "temperature": temperature,
                "maxOutputTokens": max_tokens,
            },
        }
        return url, {"Content-Type": "application/json"}, {"key": api_key}, body

    def parse_response(self, data, model):
        # A 200 without candidates usually means a bad key or exhausted quota
        try:
            content = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError):
            raise self._malformed(data) from None

        usage = data.get("usageMetadata") or {}
        return GenerationResult(
            content=content,
            provider=self.provider_id,
            model=model,
            tokens_used=usage.get("totalTokenCount"),
        )

    async def list_models(self, api_key: str) -> list[str]:
        data = await self._send(
            "GET",
            f"{self.descriptor.base_url}/v1beta/models",
            headers={"Content-Type": "application/json"},
            params={"key": api_key.strip()},
        )
        try:
            models = data["models"]
            names = [
                m["name"].removeprefix("models/")
                for m in models
                if "gemini" in m["name"]
                and "generateContent" in (m.get("supportedGenerationMethods") or [])
            ]
        except (KeyError, TypeError):
            raise self._malformed(data) from None
        return sorted(names, reverse=True)


class DeepSeekProvider(BaseProvider):
    """DeepSeek models on Hugging Face inference endpoints"""

    provider_id = ProviderId.DEEPSEEK
    model_namespace = "deepseek-ai"

    def build_request(
        self, model, prompt, max_tokens, temperature, api_key, system_prompt
    ):
        url = f"{self.descriptor.base_url}/models/{self.model_namespace}/{model}"
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Bearer {api_key}",
        }
        body = {
            "inputs": f"{system_prompt}\n\n{prompt}",
            "parameters": {
                "max_new_tokens": max_tokens,
                "temperature": temperature,
                "return_full_text": False,
            },
        }
        return url, headers, {}, body

    def parse_response(self, data, model):
        # The endpoint answers with either [{"generated_text": ...}] or {...}
        item = data[0] if isinstance(data, list) and data else data
        content = item.get("generated_text") if isinstance(item, dict) else None
        if not isinstance(content, str):
            raise self._malformed(data)

        return GenerationResult(
            content=content,
            provider=self.provider_id,
            model=model,
        )


ADAPTER_CLASSES: dict[ProviderId, type[BaseProvider]] = {
    ProviderId.OPENAI: OpenAIProvider,
    ProviderId.ANTHROPIC: AnthropicProvider,
    ProviderId.GOOGLE: GoogleProvider,
    ProviderId.XAI: XAIProvider,
    ProviderId.DEEPSEEK: DeepSeekProvider,
}


def create_adapter(
    provider: ProviderId | str,
    client: httpx.AsyncClient,
    system_prompt: str = DEFAULT_SYSTEM_PROMPT,
) -> BaseProvider:
    """Instantiate the adapter for a provider id"""
    return ADAPTER_CLASSES[parse_provider(provider)](client, system_prompt=system_prompt)
