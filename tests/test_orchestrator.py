"""
Tests for the AI service
========================

Run with: pytest tests/ -v

Security note: These tests use mocked HTTP transports and do not
require real API keys. Never commit real API keys to tests.
"""

import asyncio
import json

import pytest

from bestseller_ai.config import ServiceConfig
from bestseller_ai.credentials import CredentialManager, EnvironmentBackend
from bestseller_ai.errors import (
    AllProvidersFailedError,
    GenerationTimeoutError,
    KeyValidationError,
    NoUsableKeysError,
    ProviderHTTPError,
    RequestValidationError,
    UnknownProviderError,
)
from bestseller_ai.orchestrator import (
    AIService,
    GenerationRequest,
    KeyCheckResult,
    describe_key_failure,
)
from bestseller_ai.registry import ProviderId

from .conftest import (
    ALL_KEYS,
    ANTHROPIC_KEY,
    GOOGLE_KEY,
    OPENAI_KEY,
    XAI_KEY,
    RecordingHandler,
    json_response,
    provider_of,
    success_body,
)


def failing(status_code: int, message: str):
    def responder(request):
        return json_response(status_code, {"error": {"message": message}})

    return responder


class TestGenerationRequest:
    def test_defaults(self):
        request = GenerationRequest(prompt="Hello")
        assert request.provider == "auto"
        assert request.model == "auto"
        assert request.max_tokens == 2000
        assert request.temperature == 0.7
        assert request.is_cacheable is False

    def test_cacheable_threshold(self):
        assert GenerationRequest(prompt="Hi", temperature=0.3).is_cacheable is True
        assert GenerationRequest(prompt="Hi", temperature=0.31).is_cacheable is False

    def test_custom_system_prompt_not_cacheable(self):
        request = GenerationRequest(prompt="Hi", temperature=0.1, system_prompt="Terse.")
        assert request.is_cacheable is False


class TestFallbackCandidates:
    def test_order_and_filtering(self, make_service):
        service = make_service(RecordingHandler())
        request = GenerationRequest(
            prompt="Hi",
            api_keys={"xai": XAI_KEY, "openai": "not-a-key", "google": GOOGLE_KEY},
        )
        assert service.fallback_candidates(request) == [
            (ProviderId.GOOGLE, GOOGLE_KEY),
            (ProviderId.XAI, XAI_KEY),
        ]

    def test_single_key_tried_against_every_provider(self, make_service):
        service = make_service(RecordingHandler())
        # An Anthropic key also passes the OpenAI and Google format checks
        assert service.available_providers(api_key=ANTHROPIC_KEY) == [
            ProviderId.OPENAI,
            ProviderId.ANTHROPIC,
            ProviderId.GOOGLE,
        ]

    def test_key_set_wins_over_single_key(self, make_service):
        service = make_service(RecordingHandler())
        providers = service.available_providers(
            api_key=XAI_KEY, api_keys={ProviderId.XAI: "xai-short"}
        )
        assert ProviderId.XAI not in providers

        candidates = service.fallback_candidates(
            GenerationRequest(prompt="Hi", api_key="xai-short", api_keys={"xai": XAI_KEY})
        )
        assert (ProviderId.XAI, XAI_KEY) in candidates

    def test_key_store_consulted(self, make_service, monkeypatch):
        monkeypatch.setenv("XAI_API_KEY", XAI_KEY)
        for var in ("OPENAI_API_KEY", "ANTHROPIC_API_KEY", "GOOGLE_API_KEY", "HUGGINGFACE_API_KEY"):
            monkeypatch.setenv(var, "")
        credentials = CredentialManager(backends=[EnvironmentBackend()])
        service = make_service(RecordingHandler(), credentials=credentials)
        assert service.available_providers() == [ProviderId.XAI]


class TestAutoGeneration:
    @pytest.mark.asyncio
    async def test_skips_invalid_key_and_uses_static_default(self, make_service, sleeps):
        """openai key malformed, anthropic valid: one anthropic call"""
        handler = RecordingHandler()
        service = make_service(handler)

        result = await service.generate(
            GenerationRequest(
                prompt="Hello",
                provider="auto",
                model="auto",
                temperature=0.1,
                api_keys={"openai": "invalid", "anthropic": ANTHROPIC_KEY},
            )
        )

        assert len(handler.requests) == 1
        request = handler.requests[0]
        assert provider_of(request) == "anthropic"
        assert json.loads(request.content)["model"] == "claude-4-opus"
        assert result.provider is ProviderId.ANTHROPIC
        assert result.model == "claude-4-opus"
        assert result.content == "Generated text"
        assert result.cached is False

    @pytest.mark.asyncio
    async def test_starts_at_first_provider_with_valid_key(self, make_service, sleeps):
        handler = RecordingHandler(
            lambda request: (
                json_response(503, {})
                if request.method == "GET"
                else json_response(200, success_body(provider_of(request)))
            )
        )
        service = make_service(handler)

        result = await service.generate(
            GenerationRequest(prompt="Hi", api_keys=dict(ALL_KEYS))
        )

        assert result.provider is ProviderId.OPENAI
        assert result.model == "gpt-5.2"
        assert [provider_of(r) for r in handler.generation_calls()] == ["openai"]

    @pytest.mark.asyncio
    async def test_falls_back_after_permanent_failure(self, make_service, sleeps, caplog):
        def responder(request):
            if provider_of(request) == "anthropic":
                return json_response(401, {"error": {"message": "invalid x-api-key"}})
            return json_response(200, success_body(provider_of(request), "from xai"))

        handler = RecordingHandler(responder)
        service = make_service(handler)

        with caplog.at_level("WARNING", logger="bestseller_ai.orchestrator"):
            result = await service.generate(
                GenerationRequest(
                    prompt="Hi", api_keys={"anthropic": ANTHROPIC_KEY, "xai": XAI_KEY}
                )
            )

        assert result.provider is ProviderId.XAI
        assert result.content == "from xai"
        assert len(handler.generation_calls("anthropic")) == 1
        assert sleeps == []
        assert "Provider anthropic failed" in caplog.text
        assert ANTHROPIC_KEY not in caplog.text

    @pytest.mark.asyncio
    async def test_all_providers_fail(self, make_service, sleeps):
        handler = RecordingHandler(failing(503, "Service Unavailable"))
        service = make_service(handler)

        with pytest.raises(AllProvidersFailedError) as exc_info:
            await service.generate(GenerationRequest(prompt="Hi", api_keys=dict(ALL_KEYS)))

        error = exc_info.value
        assert error.attempted == ["openai", "anthropic", "google", "xai", "deepseek"]
        assert "tried: openai, anthropic, google, xai, deepseek" in str(error)
        assert "DeepSeek API error: HTTP 503" in str(error)
        for provider in ALL_KEYS:
            assert len(handler.generation_calls(provider)) == 3
        assert sleeps == [1.0, 2.0] * 5

    @pytest.mark.asyncio
    async def test_no_usable_keys(self, make_service):
        handler = RecordingHandler()
        service = make_service(handler)

        with pytest.raises(NoUsableKeysError, match="No usable API keys"):
            await service.generate(
                GenerationRequest(prompt="Hi", api_keys={"openai": "nope"})
            )
        assert handler.requests == []


class TestSpecificProvider:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("provider", list(ALL_KEYS))
    async def test_system_prompt_reaches_every_provider(self, make_service, provider):
        handler = RecordingHandler()
        service = make_service(handler)

        await service.generate(
            GenerationRequest(
                prompt="Hi",
                provider=provider,
                model="m1",
                system_prompt="Answer as a pirate.",
                api_keys=ALL_KEYS,
            )
        )

        (request,) = handler.generation_calls(provider)
        assert b"Answer as a pirate." in request.content

    @pytest.mark.asyncio
    async def test_invalid_key_rejected_before_network(self, make_service):
        handler = RecordingHandler()
        service = make_service(handler)

        with pytest.raises(KeyValidationError) as exc_info:
            await service.generate(
                GenerationRequest(prompt="Hi", provider="openai", api_key="sk-short")
            )

        assert exc_info.value.provider == "openai"
        assert "too short" in str(exc_info.value)
        assert handler.requests == []

    @pytest.mark.asyncio
    async def test_missing_key(self, make_service):
        service = make_service(RecordingHandler())
        with pytest.raises(KeyValidationError, match="API key is required for google"):
            await service.generate(GenerationRequest(prompt="Hi", provider="google"))

    @pytest.mark.asyncio
    async def test_unknown_provider(self, make_service):
        service = make_service(RecordingHandler())
        with pytest.raises(UnknownProviderError):
            await service.generate(
                GenerationRequest(prompt="Hi", provider="mistral", api_key=OPENAI_KEY)
            )

    @pytest.mark.asyncio
    async def test_unauthorized_called_once_and_propagates(self, make_service, sleeps):
        handler = RecordingHandler(failing(401, "Unauthorized"))
        service = make_service(handler)

        with pytest.raises(ProviderHTTPError) as exc_info:
            await service.generate(
                GenerationRequest(
                    prompt="Hi", provider="anthropic", api_key=ANTHROPIC_KEY
                )
            )

        assert exc_info.value.status_code == 401
        assert len(handler.requests) == 1
        assert sleeps == []

    @pytest.mark.asyncio
    async def test_transient_error_retried_to_budget(self, make_service, sleeps):
        handler = RecordingHandler(failing(429, "Rate limit reached"))
        service = make_service(handler, config=ServiceConfig(max_attempts=4))

        with pytest.raises(ProviderHTTPError, match="429"):
            await service.generate(
                GenerationRequest(prompt="Hi", provider="xai", api_key=XAI_KEY)
            )

        assert len(handler.requests) == 4
        assert sleeps == [1.0, 2.0, 4.0]

    @pytest.mark.asyncio
    async def test_concrete_model_used_as_is(self, make_service):
        handler = RecordingHandler()
        service = make_service(handler)

        result = await service.generate(
            GenerationRequest(
                prompt="Hi", provider="openai", model="gpt-4o", api_key=OPENAI_KEY
            )
        )

        assert len(handler.requests) == 1
        assert json.loads(handler.requests[0].content)["model"] == "gpt-4o"
        assert result.model == "gpt-4o"

    @pytest.mark.asyncio
    async def test_invalid_request(self, make_service):
        handler = RecordingHandler()
        service = make_service(handler)

        with pytest.raises(RequestValidationError, match="temperature"):
            await service.generate(
                GenerationRequest(
                    prompt="Hi", provider="openai", temperature=3.0, api_key=OPENAI_KEY
                )
            )
        with pytest.raises(RequestValidationError, match="non-empty"):
            await service.generate(GenerationRequest(prompt=""))
        assert handler.requests == []


class TestCaching:
    @pytest.mark.asyncio
    async def test_identical_deterministic_requests_hit_cache(self, make_service):
        handler = RecordingHandler()
        service = make_service(handler)
        request = GenerationRequest(
            prompt="Hello",
            provider="anthropic",
            model="claude-4-sonnet",
            temperature=0.2,
            api_key=ANTHROPIC_KEY,
        )

        first = await service.generate(request)
        second = await service.generate(request)

        assert len(handler.requests) == 1
        assert first.tokens_used == 42
        assert second.cached is True
        assert second.tokens_used == 0
        assert second.content == first.content
        assert second.provider is ProviderId.ANTHROPIC
        assert second.model == "claude-4-sonnet"

    @pytest.mark.asyncio
    async def test_high_temperature_bypasses_cache(self, make_service):
        handler = RecordingHandler()
        service = make_service(handler)
        request = GenerationRequest(
            prompt="Hello", provider="anthropic", temperature=0.9, api_key=ANTHROPIC_KEY
        )

        await service.generate(request)
        result = await service.generate(request)

        assert len(handler.requests) == 2
        assert result.cached is False
        assert len(service.cache) == 0

    @pytest.mark.asyncio
    async def test_high_temperature_ignores_earlier_cached_answer(self, make_service):
        handler = RecordingHandler()
        service = make_service(handler)
        fields = dict(
            prompt="Hello", provider="anthropic", model="claude-4-sonnet", api_key=ANTHROPIC_KEY
        )

        await service.generate(GenerationRequest(temperature=0.1, **fields))
        result = await service.generate(GenerationRequest(temperature=0.9, **fields))

        assert result.cached is False
        assert result.tokens_used == 42
        assert len(handler.generation_calls()) == 2

    @pytest.mark.asyncio
    async def test_auto_result_cached_under_requested_and_served_keys(self, make_service):
        handler = RecordingHandler()
        service = make_service(handler)
        keys = {"anthropic": ANTHROPIC_KEY}

        await service.generate(GenerationRequest(prompt="Hi", temperature=0.0, api_keys=keys))
        auto_hit = await service.generate(
            GenerationRequest(prompt="Hi", temperature=0.0, api_keys=keys)
        )
        direct_hit = await service.generate(
            GenerationRequest(
                prompt="Hi",
                provider="anthropic",
                model="claude-4-opus",
                temperature=0.0,
                api_keys=keys,
            )
        )

        assert len(handler.requests) == 1
        assert auto_hit.cached and direct_hit.cached
        assert auto_hit.provider is ProviderId.ANTHROPIC
        assert auto_hit.model == "claude-4-opus"

    @pytest.mark.asyncio
    async def test_cache_can_be_disabled(self, make_service):
        handler = RecordingHandler()
        service = make_service(handler, config=ServiceConfig(cache_enabled=False))
        request = GenerationRequest(
            prompt="Hi",
            provider="google",
            model="gemini-pro",
            temperature=0.0,
            api_key=GOOGLE_KEY,
        )

        await service.generate(request)
        await service.generate(request)

        assert len(handler.requests) == 2


class TestTimeoutsAndConcurrency:
    @pytest.mark.asyncio
    async def test_timeout_raises(self, make_service):
        async def hang(request):
            await asyncio.Event().wait()

        service = make_service(hang)

        with pytest.raises(GenerationTimeoutError, match="timed out after 0.05s"):
            await service.generate(
                GenerationRequest(
                    prompt="Hi", provider="anthropic", api_key=ANTHROPIC_KEY
                ),
                timeout=0.05,
            )

    @pytest.mark.asyncio
    async def test_non_positive_timeout_rejected(self, make_service):
        service = make_service(RecordingHandler())
        with pytest.raises(RequestValidationError):
            await service.generate(GenerationRequest(prompt="Hi"), timeout=0)

    @pytest.mark.asyncio
    async def test_per_provider_concurrency_bound(self, make_service):
        active = 0
        peak = 0

        async def slow(request):
            nonlocal active, peak
            active += 1
            peak = max(peak, active)
            await asyncio.sleep(0.01)
            active -= 1
            return json_response(200, success_body("anthropic"))

        service = make_service(slow, config=ServiceConfig(max_concurrent_per_provider=1))
        request = GenerationRequest(
            prompt="Hi", provider="anthropic", api_key=ANTHROPIC_KEY
        )

        results = await asyncio.gather(*(service.generate(request) for _ in range(3)))

        assert len(results) == 3
        assert peak == 1

    @pytest.mark.asyncio
    async def test_context_manager_closes_owned_client(self):
        async with AIService() as service:
            client = service._client
        assert client.is_closed


class TestApiKeyCheck:
    @pytest.mark.asyncio
    async def test_valid_key(self, make_service):
        handler = RecordingHandler()
        service = make_service(handler)

        check = await service.test_api_key("anthropic", ANTHROPIC_KEY)

        assert check.valid is True
        assert check.error is None
        body = json.loads(handler.requests[0].content)
        assert body["model"] == "claude-4-opus"
        assert body["max_tokens"] == 10
        assert body["temperature"] == 0.1
        assert body["messages"][0]["content"] == "Hello"

    @pytest.mark.asyncio
    async def test_format_error_skips_network(self, make_service):
        handler = RecordingHandler()
        service = make_service(handler)

        check = await service.test_api_key("xai", "grok-key-without-prefix-000")

        assert check.valid is False
        assert "must start with 'xai-'" in check.error
        assert handler.requests == []

    @pytest.mark.asyncio
    async def test_rejected_key(self, make_service, sleeps):
        service = make_service(RecordingHandler(failing(401, "Incorrect API key")))
        check = await service.test_api_key("openai", OPENAI_KEY)
        assert check.error == (
            "Invalid API key for openai. Please check your key is correct and active."
        )

    @pytest.mark.asyncio
    async def test_unknown_provider(self, make_service):
        service = make_service(RecordingHandler())
        check = await service.test_api_key("cohere", OPENAI_KEY)
        assert check == KeyCheckResult(valid=False, error="Unsupported AI provider: cohere")

    @pytest.mark.parametrize(
        "message, expected",
        [
            ("HTTP 403: Forbidden", "lacks required permissions"),
            ("HTTP 429: rate limit", "Rate limit exceeded for google"),
            ("Google API network error: boom", "Network error testing google"),
            ("HTTP 400: bad things", "Failed to validate google API key: HTTP 400"),
        ],
    )
    def test_failure_messages(self, message, expected):
        assert expected in describe_key_failure(ProviderId.GOOGLE, RuntimeError(message))
