"""
Error Types
===========

Every error raised by the AI service derives from ``AIServiceError``.
Messages are written to be shown to end users unmodified: they name the
provider and, where possible, what the user should do about it.
"""

from __future__ import annotations


class AIServiceError(Exception):
    """Base class for all AI service errors."""

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ValidationError(AIServiceError):
    """Raised before any network call when the input cannot be used."""


class KeyValidationError(ValidationError):
    """An API key failed the structural check for its provider."""

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        super().__init__(message)


class RequestValidationError(ValidationError):
    """The generation request itself is malformed (empty prompt, bad ranges)."""


class UnknownProviderError(AIServiceError):
    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"Unsupported AI provider: {provider}")


class ProviderError(AIServiceError):
    """A provider call failed. Retry classification works on ``message``."""

    def __init__(
        self,
        provider: str,
        message: str,
        status_code: int | None = None,
    ) -> None:
        self.provider = provider
        self.status_code = status_code
        super().__init__(message)


class ProviderHTTPError(ProviderError):
    """Non-2xx HTTP status returned by the provider."""


class ProviderNetworkError(ProviderError):
    """Connection failure or timeout before a response was received."""


class MalformedResponseError(ProviderError):
    """A 2xx response whose body does not have the expected shape."""


class ModelListingUnsupportedError(AIServiceError):
    def __init__(self, provider: str) -> None:
        self.provider = provider
        super().__init__(f"Provider '{provider}' does not support model listing")


class NoUsableKeysError(AIServiceError):
    def __init__(self) -> None:
        super().__init__(
            "No usable API keys found for any AI provider. "
            "Please add an API key in Settings."
        )


class AllProvidersFailedError(AIServiceError):
    """Every fallback candidate was tried and none succeeded."""

    def __init__(
        self,
        attempted: list[str],
        last_error: BaseException | None,
    ) -> None:
        self.attempted = list(attempted)
        self.last_error = last_error
        last_message = str(last_error) if last_error else "Unknown error"
        super().__init__(
            f"All AI providers failed (tried: {', '.join(self.attempted)}). "
            f"Last error: {last_message}"
        )


class GenerationTimeoutError(AIServiceError):
    def __init__(self, timeout: float) -> None:
        self.timeout = timeout
        super().__init__(f"AI generation timed out after {timeout:g}s")


class ContentGenerationError(AIServiceError):
    """Wraps a provider failure raised while producing ebook content."""
