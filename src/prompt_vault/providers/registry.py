"""
Provider registry: builds the provider_ref -> Provider table from config.toml.
"""

import logging
import os
from typing import Dict, Mapping

from ..core.config import ConfigError, ProviderConfig, Settings, load_provider_configs
from .base import Provider
from .ollama import DEFAULT_OLLAMA_URL, OllamaProvider
from .openai import DEFAULT_OPENAI_URL, OpenAIProvider

logger = logging.getLogger(__name__)

BACKENDS = ("ollama", "openai")
DEFAULT_OPENAI_KEY_ENV = "OPENAI_API_KEY"


def build_provider(config: ProviderConfig) -> Provider:
    """Instantiate the backend described by one ``[providers.<name>]`` table.

    Raises:
        ConfigError: Unknown backend, or the API key variable is unset
    """
    if config.backend == "ollama":
        return OllamaProvider(
            base_url=config.base_url or DEFAULT_OLLAMA_URL,
            model=config.model,
            timeout=config.timeout,
            name=config.name,
        )

    if config.backend == "openai":
        key_env = config.api_key_env or DEFAULT_OPENAI_KEY_ENV
        api_key = os.environ.get(key_env, "")
        if not api_key:
            raise ConfigError(
                f"Provider '{config.name}' needs an API key: environment variable {key_env} is not set"
            )
        return OpenAIProvider(
            api_key=api_key,
            model=config.model,
            base_url=config.base_url or DEFAULT_OPENAI_URL,
            timeout=config.timeout,
            name=config.name,
        )

    raise ConfigError(
        f"Provider '{config.name}' has unknown backend '{config.backend}' "
        f"(expected one of: {', '.join(BACKENDS)})"
    )


def load_provider_registry(settings: Settings) -> Dict[str, Provider]:
    """Build every provider declared in ``settings.config_path``."""
    configs = load_provider_configs(settings.config_path)
    registry = {name: build_provider(cfg) for name, cfg in configs.items()}
    if registry:
        logger.info(f"Loaded {len(registry)} provider(s): {', '.join(sorted(registry))}")
    return registry


async def close_providers(providers: Mapping[str, Provider]) -> None:
    """Release every provider's network resources."""
    for provider in providers.values():
        await provider.aclose()
