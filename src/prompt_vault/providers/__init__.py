# Provider capability: one async operation, complete(text) -> text.

from .base import CallableProvider, Provider, ProviderFailure
from .ollama import OllamaProvider
from .openai import OpenAIProvider
from .registry import build_provider, close_providers, load_provider_registry

__all__ = [
    "Provider",
    "ProviderFailure",
    "CallableProvider",
    "OllamaProvider",
    "OpenAIProvider",
    "build_provider",
    "close_providers",
    "load_provider_registry",
]
