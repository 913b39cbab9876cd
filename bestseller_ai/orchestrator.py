"""
AI Service
==========

Routes generation requests to a provider. With ``provider="auto"`` the
service walks the fixed preference order, skipping providers without a
structurally valid key and moving on when a provider fails. Every provider
call runs under the retry engine; deterministic requests are memoized in
the response cache.

Usage:
    async with AIService() as service:
        result = await service.generate(
            GenerationRequest(prompt="Outline a cookbook", api_keys=keys)
        )
"""

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field

import httpx

from .cache import ResponseCache
from .config import ServiceConfig
from .credentials import CredentialManager
from .errors import (
    AllProvidersFailedError,
    GenerationTimeoutError,
    KeyValidationError,
    NoUsableKeysError,
    RequestValidationError,
    UnknownProviderError,
)
from .models import ModelResolver, default_model
from .providers import BaseProvider, GenerationResult, create_adapter
from .registry import (
    AUTO,
    PROVIDER_PREFERENCE_ORDER,
    ProviderId,
    is_auto,
    parse_provider,
)
from .retry import with_retry
from .validation import InputValidator, KeyValidator

logger = logging.getLogger(__name__)

CACHEABLE_TEMPERATURE = 0.3
DEFAULT_MAX_TOKENS = 2000
DEFAULT_TEMPERATURE = 0.7


@dataclass
class GenerationRequest:
    """A single content-generation request"""

    prompt: str
    provider: ProviderId | str = AUTO
    model: str = AUTO
    max_tokens: int = DEFAULT_MAX_TOKENS
    temperature: float = DEFAULT_TEMPERATURE
    api_key: str | None = None
    api_keys: dict[ProviderId | str, str] = field(default_factory=dict)
    system_prompt: str | None = None

    @property
    def is_cacheable(self) -> bool:
        # A custom system prompt changes the answer but is not part of the cache key
        return self.temperature <= CACHEABLE_TEMPERATURE and self.system_prompt is None


@dataclass
class KeyCheckResult:
    valid: bool
    error: str | None = None


class AIService:
    """
    Multi-provider generation service.

    Features:
    - Automatic provider fallback in preference order
    - Live model discovery with static defaults
    - Retry with exponential backoff on transient failures
    - Response caching for low-temperature requests
    """

    def __init__(
        self,
        config: ServiceConfig | None = None,
        cache: ResponseCache | None = None,
        credentials: CredentialManager | None = None,
        client: httpx.AsyncClient | None = None,
        resolver: ModelResolver | None = None,
        adapters: dict[ProviderId, BaseProvider] | None = None,
    ) -> None:
        self.config = config or ServiceConfig()
        self.cache = (
            cache
            if cache is not None
            else ResponseCache(max_entries=self.config.cache_max_entries)
        )
        self.credentials = credentials
        self.resolver = resolver or ModelResolver()

        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(self.config.request_timeout_seconds)
        )

        self.adapters: dict[ProviderId, BaseProvider] = {
            provider: create_adapter(
                provider, self._client, system_prompt=self.config.system_prompt
            )
            for provider in ProviderId
        }
        if adapters:
            self.adapters.update(adapters)

        self._semaphores: dict[ProviderId, asyncio.Semaphore] = {}

    async def __aenter__(self) -> "AIService":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client if this service created it"""
        if self._owns_client:
            await self._client.aclose()

    def lookup_key(
        self,
        provider: ProviderId,
        api_key: str | None = None,
        api_keys: dict[ProviderId | str, str] | None = None,
    ) -> str | None:
        """Key from the per-provider set, then the single key, then the key store"""
        key = (api_keys or {}).get(provider) or api_key
        if not key and self.credentials is not None:
            key = self.credentials.get_api_key(provider.value)
        return key

    def _usable_keys(
        self,
        api_key: str | None,
        api_keys: dict[ProviderId | str, str] | None,
    ) -> list[tuple[ProviderId, str]]:
        usable = []
        for provider in PROVIDER_PREFERENCE_ORDER:
            key = self.lookup_key(provider, api_key, api_keys)
            reason = KeyValidator.explain(provider, key)
            if reason:
                logger.debug(f"Skipping {provider.value}: {reason}")
                continue
            usable.append((provider, key.strip()))
        return usable

    def fallback_candidates(
        self, request: GenerationRequest
    ) -> list[tuple[ProviderId, str]]:
        """Providers with a structurally valid key, in fallback order"""
        return self._usable_keys(request.api_key, request.api_keys)

    def available_providers(
        self,
        api_key: str | None = None,
        api_keys: dict[ProviderId | str, str] | None = None,
    ) -> list[ProviderId]:
        """Providers that could be tried with the given keys (no network)"""
        return [provider for provider, _ in self._usable_keys(api_key, api_keys)]

    def _limit(self, provider: ProviderId) -> contextlib.AbstractAsyncContextManager:
        limit = self.config.max_concurrent_per_provider
        if not limit:
            return contextlib.nullcontext()
        if provider not in self._semaphores:
            self._semaphores[provider] = asyncio.Semaphore(limit)
        return self._semaphores[provider]

    async def generate(
        self, request: GenerationRequest, timeout: float | None = None
    ) -> GenerationResult:
        """
        Generate content for a request.

        Args:
            request: The generation request
            timeout: Optional bound in seconds on the whole call, retries
                and fallback included

        Returns:
            GenerationResult tagged with the provider and model that served it

        Raises:
            RequestValidationError: The request parameters are invalid
            KeyValidationError: A named provider has no usable key
            NoUsableKeysError: provider="auto" and no key validates
            AllProvidersFailedError: Every auto candidate failed
            GenerationTimeoutError: ``timeout`` elapsed first
            ProviderError: A named provider failed after retries
        """
        if timeout is None:
            return await self._generate(request)

        if timeout <= 0:
            raise RequestValidationError("Invalid timeout: must be a positive number")

        try:
            return await asyncio.wait_for(self._generate(request), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Generation timed out after {timeout:g}s")
            raise GenerationTimeoutError(timeout) from None

    async def _generate(self, request: GenerationRequest) -> GenerationResult:
        is_valid, error = InputValidator.validate_request(
            request.prompt, request.max_tokens, request.temperature
        )
        if not is_valid:
            raise RequestValidationError(error)

        auto_provider = is_auto(request.provider)
        provider_label = AUTO if auto_provider else parse_provider(request.provider).value
        model_label = AUTO if not request.model or is_auto(request.model) else request.model

        use_cache = self.config.cache_enabled and request.is_cacheable
        if use_cache:
            entry = self.cache.get_response(provider_label, model_label, request.prompt)
            if entry is not None:
                logger.info(f"Cache hit for {provider_label}/{model_label}")
                return GenerationResult(
                    content=entry.content,
                    provider=ProviderId(entry.provider),
                    model=entry.model,
                    tokens_used=0,
                    cached=True,
                )

        if auto_provider:
            result = await self._generate_with_fallback(request)
        else:
            result = await self._generate_with_provider(
                parse_provider(request.provider), request
            )

        if use_cache:
            self._remember(provider_label, model_label, request.prompt, result)
        return result

    async def _generate_with_provider(
        self, provider: ProviderId, request: GenerationRequest
    ) -> GenerationResult:
        api_key = self.lookup_key(provider, request.api_key, request.api_keys)
        error = KeyValidator.explain(provider, api_key)
        if error:
            raise KeyValidationError(provider.value, error)

        return await self._invoke(provider, request.model, request, api_key.strip())

    async def _generate_with_fallback(
        self, request: GenerationRequest
    ) -> GenerationResult:
        candidates = self.fallback_candidates(request)
        if not candidates:
            raise NoUsableKeysError()

        logger.info(
            f"Auto provider candidates: {', '.join(p.value for p, _ in candidates)}"
        )

        attempted: list[str] = []
        last_error: Exception | None = None

        for provider, api_key in candidates:
            attempted.append(provider.value)
            try:
                return await self._invoke(provider, AUTO, request, api_key)
            except Exception as e:
                last_error = e
                logger.warning(
                    f"Provider {provider.value} failed, trying next: "
                    f"{InputValidator.sanitize_for_logging(str(e), max_len=200)}"
                )

        raise AllProvidersFailedError(attempted, last_error)

    async def _invoke(
        self,
        provider: ProviderId,
        requested_model: str,
        request: GenerationRequest,
        api_key: str,
    ) -> GenerationResult:
        adapter = self.adapters[provider]
        model = await self.resolver.resolve(adapter, requested_model, api_key)
        logger.info(f"Generating with {provider.value}/{model}")

        async def _attempt() -> GenerationResult:
            async with self._limit(provider):
                return await adapter.call(
                    model,
                    request.prompt,
                    request.max_tokens,
                    request.temperature,
                    api_key,
                    system_prompt=request.system_prompt,
                )

        result = await with_retry(_attempt, max_attempts=self.config.max_attempts)
        logger.info(
            f"{provider.value}/{model} answered in {result.latency_ms:.0f}ms "
            f"({result.tokens_used if result.tokens_used is not None else '?'} tokens)"
        )
        return result

    def _remember(
        self,
        provider_label: str,
        model_label: str,
        prompt: str,
        result: GenerationResult,
    ) -> None:
        served = (result.provider.value, result.model)
        for cache_provider, cache_model in {(provider_label, model_label), served}:
            self.cache.put_response(
                cache_provider,
                cache_model,
                prompt,
                result.content,
                tokens_used=result.tokens_used,
                served_provider=result.provider.value,
                served_model=result.model,
            )

    async def test_api_key(self, provider: ProviderId | str, api_key: str) -> KeyCheckResult:
        """Format check followed by a minimal live request"""
        try:
            provider_id = parse_provider(provider)
        except UnknownProviderError as e:
            return KeyCheckResult(valid=False, error=e.message)

        error = KeyValidator.explain(provider_id, api_key)
        if error:
            return KeyCheckResult(valid=False, error=error)

        request = GenerationRequest(
            prompt="Hello",
            provider=provider_id,
            model=default_model(provider_id),
            max_tokens=10,
            temperature=0.1,
            api_key=api_key,
        )
        try:
            await self._invoke(provider_id, request.model, request, api_key.strip())
        except Exception as e:
            return KeyCheckResult(valid=False, error=describe_key_failure(provider_id, e))

        return KeyCheckResult(valid=True)


def describe_key_failure(provider: ProviderId, error: BaseException) -> str:
    """Turn a failed key test into advice for the user"""
    name = provider.value
    message = str(error)
    lowered = message.lower()

    if "401" in lowered or "unauthorized" in lowered:
        return f"Invalid API key for {name}. Please check your key is correct and active."
    if "403" in lowered or "forbidden" in lowered:
        return f"API key for {name} lacks required permissions or has exceeded quota."
    if "429" in lowered or "rate limit" in lowered:
        return f"Rate limit exceeded for {name}. API key is valid but temporarily blocked."
    if "network" in lowered or "fetch" in lowered:
        return f"Network error testing {name} API key. Please check your connection."
    return f"Failed to validate {name} API key: {message}"
