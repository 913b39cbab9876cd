"""Shared fixtures: well-formed fake keys, mocked HTTP, instant backoff"""

import json

import httpx
import pytest

import bestseller_ai.retry as retry_module
from bestseller_ai.config import ServiceConfig
from bestseller_ai.orchestrator import AIService

# Structurally valid, obviously fake keys
OPENAI_KEY = "sk-" + "a" * 40
ANTHROPIC_KEY = "sk-ant-" + "b" * 40
GOOGLE_KEY = "AIza" + "c" * 35
XAI_KEY = "xai-" + "d" * 40
DEEPSEEK_KEY = "hf_" + "e" * 34

ALL_KEYS = {
    "openai": OPENAI_KEY,
    "anthropic": ANTHROPIC_KEY,
    "google": GOOGLE_KEY,
    "xai": XAI_KEY,
    "deepseek": DEEPSEEK_KEY,
}

HOSTS = {
    "api.openai.com": "openai",
    "api.anthropic.com": "anthropic",
    "generativelanguage.googleapis.com": "google",
    "api.x.ai": "xai",
    "api-inference.huggingface.co": "deepseek",
}


def provider_of(request: httpx.Request) -> str:
    return HOSTS[request.url.host]


def success_body(provider: str, text: str = "Generated text") -> object:
    """Minimal successful response envelope for each provider"""
    if provider in ("openai", "xai"):
        return {
            "choices": [{"message": {"role": "assistant", "content": text}}],
            "usage": {"total_tokens": 42},
        }
    if provider == "anthropic":
        return {
            "content": [{"type": "text", "text": text}],
            "usage": {"input_tokens": 10, "output_tokens": 32},
        }
    if provider == "google":
        return {
            "candidates": [{"content": {"parts": [{"text": text}]}}],
            "usageMetadata": {"totalTokenCount": 42},
        }
    return [{"generated_text": text}]


def json_response(status_code: int, body: object) -> httpx.Response:
    return httpx.Response(
        status_code,
        content=json.dumps(body).encode(),
        headers={"Content-Type": "application/json"},
    )


class RecordingHandler:
    """MockTransport handler that records requests and answers per provider"""

    def __init__(self, responder=None):
        self.requests: list[httpx.Request] = []
        self._responder = responder or (
            lambda request: json_response(200, success_body(provider_of(request)))
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._responder(request)

    def generation_calls(self, provider: str | None = None) -> list[httpx.Request]:
        return [
            r
            for r in self.requests
            if r.method == "POST" and (provider is None or provider_of(r) == provider)
        ]


@pytest.fixture
def sleeps(monkeypatch):
    """Make retry backoff instant, recording the requested delays"""
    delays: list[float] = []

    async def fast_sleep(delay):
        delays.append(delay)

    monkeypatch.setattr(retry_module.asyncio, "sleep", fast_sleep)
    return delays


@pytest.fixture
def make_service():
    """Build an AIService whose HTTP traffic goes to a handler"""

    def _make(handler, config: ServiceConfig | None = None, **kwargs) -> AIService:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return AIService(config=config or ServiceConfig(), client=client, **kwargs)

    return _make
