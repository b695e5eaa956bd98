"""
Providers package – auto-imports all concrete providers to trigger
``@register(...)`` / ``@register_embedder(...)`` decorators.
"""

from trustsum.providers.base import CompletionProvider, EmbeddingProvider
from trustsum.providers.factory import (
    EmbedderFactory,
    ProviderFactory,
    register,
    register_embedder,
)

# Import concrete providers so they self-register
from trustsum.providers import (  # noqa: F401
    openai_provider,
    anthropic_provider,
    gemini_provider,
    ollama_provider,
    local_embedder,
)

__all__ = [
    "CompletionProvider",
    "EmbeddingProvider",
    "EmbedderFactory",
    "ProviderFactory",
    "register",
    "register_embedder",
]
