"""
Input and API Key Validation
============================

Everything here is pure: no network access, no side effects. Validation
runs before any provider call so that bad input is reported with an
actionable message instead of a provider-side 401.
"""

import re
from typing import Any

from .errors import UnknownProviderError
from .registry import ProviderId, get_descriptor


class KeyValidator:
    """Structural API key checks per provider"""

    @classmethod
    def validate(cls, provider: ProviderId | str, api_key: str | None) -> bool:
        """Return True when the key is structurally usable for the provider"""
        return cls.explain(provider, api_key) is None

    @classmethod
    def explain(cls, provider: ProviderId | str, api_key: str | None) -> str | None:
        """Return a human-readable reason the key is unusable, or None if it passes"""
        try:
            descriptor = get_descriptor(provider)
        except UnknownProviderError as e:
            return e.message

        if not api_key or not api_key.strip():
            return (
                f"API key is required for {descriptor.id.value}. "
                "Please add your API key in Settings."
            )

        key = api_key.strip()
        name = descriptor.display_name
        label = descriptor.key_label

        if descriptor.key_prefix and not key.startswith(descriptor.key_prefix):
            if label == "API key":
                return (
                    f"{name} API keys must start with '{descriptor.key_prefix}'. "
                    "Please check your key format."
                )
            return (
                f"{name} requires a {label} starting with "
                f"'{descriptor.key_prefix}'. Please check your key format."
            )

        if len(key) < descriptor.min_key_length:
            return (
                f"{name} {label} appears too short. "
                f"Please verify your complete {'key' if label == 'API key' else 'token'}."
            )

        if descriptor.key_pattern and not re.match(descriptor.key_pattern, key):
            return (
                f"{name} {label} contains invalid characters. Should only contain "
                "letters, numbers, underscores, and hyphens."
            )

        return None


class InputValidator:
    """Request validation and log hygiene"""

    MAX_PROMPT_LENGTH = 500000  # 500k chars max
    MIN_TEMPERATURE = 0.0
    MAX_TEMPERATURE = 2.0

    # Anything that looks like a credential in a log line
    _SECRET_PATTERN = re.compile(
        r"(sk-|xai-|hf_|AIza|api[_-]?key[=:]?\s*|key=|bearer\s+)[a-zA-Z0-9\-_]{16,}",
        flags=re.IGNORECASE,
    )

    @classmethod
    def validate_prompt(cls, prompt: str) -> tuple[bool, str]:
        """Validate user prompt"""
        if not prompt or not isinstance(prompt, str) or not prompt.strip():
            return False, "Invalid prompt: must be a non-empty string"

        if len(prompt) > cls.MAX_PROMPT_LENGTH:
            return False, f"Prompt exceeds maximum length of {cls.MAX_PROMPT_LENGTH}"

        return True, ""

    @classmethod
    def validate_request(
        cls, prompt: str, max_tokens: Any, temperature: Any
    ) -> tuple[bool, str]:
        """Validate the generation parameters of a request"""
        is_valid, error = cls.validate_prompt(prompt)
        if not is_valid:
            return False, error

        if (
            isinstance(max_tokens, bool)
            or not isinstance(max_tokens, int)
            or max_tokens <= 0
        ):
            return False, "Invalid max_tokens: must be a positive integer"

        if isinstance(temperature, bool) or not isinstance(temperature, (int, float)):
            return False, "Invalid temperature: must be a number"

        if not cls.MIN_TEMPERATURE <= temperature <= cls.MAX_TEMPERATURE:
            return False, (
                f"Invalid temperature: must be between {cls.MIN_TEMPERATURE} "
                f"and {cls.MAX_TEMPERATURE}"
            )

        return True, ""

    @classmethod
    def sanitize_for_logging(cls, text: str, max_len: int = 100) -> str:
        """Sanitize text for safe logging (no sensitive data)"""
        if not text:
            return ""
        sanitized = cls._SECRET_PATTERN.sub("[REDACTED]", text[:max_len])
        return sanitized + ("..." if len(text) > max_len else "")
