"""
Bestseller AI - Multi-Provider Generation Service
=================================================

Routes ebook generation requests across OpenAI, Anthropic, Google, xAI
and DeepSeek (via Hugging Face), with automatic provider and model
selection, retry with exponential backoff, provider fallback and a
response cache.

Example Usage:
    >>> import asyncio
    >>> from bestseller_ai import AIService, GenerationRequest
    >>>
    >>> async def main():
    ...     async with AIService() as service:
    ...         result = await service.generate(
    ...             GenerationRequest(
    ...                 prompt="Suggest five titles for a sourdough cookbook",
    ...                 api_keys={"anthropic": "sk-ant-..."},
    ...             )
    ...         )
    ...         print(result.provider, result.content)
    >>>
    >>> asyncio.run(main())
"""

__version__ = "1.0.0"

from .cache import CacheEntry, ResponseCache, TTLCache
from .config import ServiceConfig, load_config, setup_logging
from .content import BrainstormResult, ContentGenerator
from .credentials import (
    CredentialManager,
    configure_credentials_interactive,
    get_api_key,
    get_credential_manager,
    set_api_key,
)
from .errors import (
    AIServiceError,
    AllProvidersFailedError,
    ContentGenerationError,
    GenerationTimeoutError,
    KeyValidationError,
    NoUsableKeysError,
    ProviderError,
    RequestValidationError,
    UnknownProviderError,
)
from .models import ModelResolver, default_model, select_best_model
from .orchestrator import AIService, GenerationRequest, KeyCheckResult
from .providers import GenerationResult
from .registry import AUTO, PROVIDERS, ProviderId
from .retry import backoff_delay_ms, is_transient_error, with_retry
from .validation import InputValidator, KeyValidator

__all__ = [
    # Version
    "__version__",

    # Service
    "AIService",
    "GenerationRequest",
    "GenerationResult",
    "KeyCheckResult",
    "ContentGenerator",
    "BrainstormResult",

    # Providers and models
    "AUTO",
    "PROVIDERS",
    "ProviderId",
    "ModelResolver",
    "default_model",
    "select_best_model",

    # Validation and retry
    "KeyValidator",
    "InputValidator",
    "is_transient_error",
    "backoff_delay_ms",
    "with_retry",

    # Cache
    "TTLCache",
    "ResponseCache",
    "CacheEntry",

    # Configuration and credentials
    "ServiceConfig",
    "load_config",
    "setup_logging",
    "CredentialManager",
    "configure_credentials_interactive",
    "get_api_key",
    "get_credential_manager",
    "set_api_key",

    # Errors
    "AIServiceError",
    "AllProvidersFailedError",
    "ContentGenerationError",
    "GenerationTimeoutError",
    "KeyValidationError",
    "NoUsableKeysError",
    "ProviderError",
    "RequestValidationError",
    "UnknownProviderError",
]
