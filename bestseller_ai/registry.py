"""
Provider Registry
=================

Static knowledge about every supported AI provider: key format rules,
endpoint metadata, model preferences and whether live model discovery
is available.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from .errors import UnknownProviderError

AUTO = "auto"


class ProviderId(str, Enum):
    """Closed set of providers the service can route to"""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GOOGLE = "google"
    XAI = "xai"
    DEEPSEEK = "deepseek"

    def __str__(self) -> str:
        return self.value


class AuthStyle(Enum):
    BEARER = "bearer"  # Authorization: Bearer <key>
    HEADER = "header"  # provider-specific key header
    QUERY = "query"  # ?key=<key>


@dataclass(frozen=True)
class ProviderDescriptor:
    """Immutable per-provider definition"""

    id: ProviderId
    display_name: str
    base_url: str
    auth_style: AuthStyle
    default_model: str
    model_preferences: tuple[str, ...]
    min_key_length: int
    key_prefix: str | None = None
    key_pattern: str | None = None
    key_label: str = "API key"
    supports_model_listing: bool = False


PROVIDERS: dict[ProviderId, ProviderDescriptor] = {
    ProviderId.OPENAI: ProviderDescriptor(
        id=ProviderId.OPENAI,
        display_name="OpenAI",
        base_url="https://api.openai.com",
        auth_style=AuthStyle.BEARER,
        default_model="gpt-5.2",
        model_preferences=(
            "gpt-5.2",
            "gpt-5",
            "gpt-4-turbo-2024-04-09",
            "gpt-4-turbo",
            "gpt-4-0125-preview",
            "gpt-4-1106-preview",
            "gpt-4",
            "gpt-3.5-turbo-0125",
            "gpt-3.5-turbo",
        ),
        min_key_length=20,
        key_prefix="sk-",
        supports_model_listing=True,
    ),
    ProviderId.ANTHROPIC: ProviderDescriptor(
        id=ProviderId.ANTHROPIC,
        display_name="Anthropic",
        base_url="https://api.anthropic.com",
        auth_style=AuthStyle.HEADER,
        default_model="claude-4-opus",
        model_preferences=(
            "claude-4-opus",
            "claude-4-sonnet",
            "claude-3-5-sonnet-20241022",
            "claude-3-5-sonnet-20240620",
            "claude-3-opus-20240229",
            "claude-3-sonnet-20240229",
            "claude-3-haiku-20240307",
        ),
        min_key_length=30,
        key_prefix="sk-ant-",
    ),
    ProviderId.GOOGLE: ProviderDescriptor(
        id=ProviderId.GOOGLE,
        display_name="Google",
        base_url="https://generativelanguage.googleapis.com",
        auth_style=AuthStyle.QUERY,
        default_model="gemini-2-pro",
        model_preferences=(
            "gemini-2-pro",
            "gemini-2-flash",
            "gemini-1.5-pro-latest",
            "gemini-1.5-pro",
            "gemini-1.5-flash-latest",
            "gemini-1.5-flash",
            "gemini-pro",
        ),
        min_key_length=20,
        key_pattern=r"^[A-Za-z0-9_-]+$",
        supports_model_listing=True,
    ),
    ProviderId.XAI: ProviderDescriptor(
        id=ProviderId.XAI,
        display_name="xAI",
        base_url="https://api.x.ai",
        auth_style=AuthStyle.BEARER,
        default_model="grok-3",
        model_preferences=("grok-3", "grok-2-latest", "grok-beta"),
        min_key_length=20,
        key_prefix="xai-",
    ),
    # DeepSeek models are served through Hugging Face inference endpoints
    ProviderId.DEEPSEEK: ProviderDescriptor(
        id=ProviderId.DEEPSEEK,
        display_name="DeepSeek",
        base_url="https://api-inference.huggingface.co",
        auth_style=AuthStyle.BEARER,
        default_model="deepseek-llm-7b-instruct",
        model_preferences=(
            "deepseek-llm-7b-instruct",
            "deepseek-coder-7b-instruct",
        ),
        min_key_length=20,
        key_prefix="hf_",
        key_label="Hugging Face token",
    ),
}

# Fallback order used when the caller asks for provider="auto"
PROVIDER_PREFERENCE_ORDER: tuple[ProviderId, ...] = (
    ProviderId.OPENAI,
    ProviderId.ANTHROPIC,
    ProviderId.GOOGLE,
    ProviderId.XAI,
    ProviderId.DEEPSEEK,
)


def parse_provider(provider: ProviderId | str) -> ProviderId:
    """Normalize a provider id string, raising for anything unsupported."""
    if isinstance(provider, ProviderId):
        return provider
    try:
        return ProviderId(str(provider).strip().lower())
    except ValueError:
        raise UnknownProviderError(str(provider)) from None


def get_descriptor(provider: ProviderId | str) -> ProviderDescriptor:
    return PROVIDERS[parse_provider(provider)]


def is_auto(value: object) -> bool:
    return isinstance(value, str) and value.strip().lower() == AUTO
