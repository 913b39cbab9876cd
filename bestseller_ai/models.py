"""
Model Resolver
==============

Expands ``model="auto"`` into a concrete model id for a provider. Live model
discovery is attempted where the provider supports it and ranked against a
static preference list; anything that goes wrong degrades to the provider's
static default model. Resolution never raises: a failed model listing must
not block generation.
"""

import logging

from .providers import BaseProvider
from .registry import PROVIDERS, ProviderId, is_auto, parse_provider
from .validation import InputValidator

logger = logging.getLogger(__name__)


def default_model(provider: ProviderId | str) -> str:
    """Static "latest known" model for a provider"""
    return PROVIDERS[parse_provider(provider)].default_model


def select_best_model(provider: ProviderId | str, available: list[str]) -> str:
    """
    Pick the most preferred model present in ``available``.

    Falls back to the first available model when none of the preferred
    names appear, and to the static default when the list is empty.
    """
    descriptor = PROVIDERS[parse_provider(provider)]
    for preferred in descriptor.model_preferences:
        if preferred in available:
            return preferred
    if available:
        return available[0]
    return descriptor.default_model


class ModelResolver:
    """Resolve requested model ids, discovering models when asked for auto"""

    async def resolve(
        self,
        adapter: BaseProvider,
        requested_model: str,
        api_key: str,
    ) -> str:
        if requested_model and not is_auto(requested_model):
            return requested_model

        provider = adapter.provider_id
        if not adapter.supports_model_listing:
            model = default_model(provider)
            logger.debug(f"{provider.value} has no model listing, using {model}")
            return model

        try:
            available = await adapter.list_models(api_key)
        except Exception as e:
            logger.warning(
                f"Failed to detect models for {provider.value}, using default: "
                f"{InputValidator.sanitize_for_logging(str(e))}"
            )
            return default_model(provider)

        if not available:
            logger.warning(
                f"Model listing for {provider.value} returned no usable models, "
                "using default"
            )
            return default_model(provider)

        model = select_best_model(provider, available)
        logger.info(f"Auto-selected model {model} for {provider.value}")
        return model
