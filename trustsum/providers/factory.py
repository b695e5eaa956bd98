"""
Provider Factory – Registration & Creation
===========================================
Uses module-level registries so each concrete provider can self-register
with a ``@register("name")`` (completion) or ``@register_embedder("name")``
(embedding) decorator.  Entry points call
``ProviderFactory.create("openai")`` without importing concrete classes.
"""

from __future__ import annotations

import logging
from typing import Any, Type

from trustsum.providers.base import CompletionProvider, EmbeddingProvider

logger = logging.getLogger(__name__)

_REGISTRY: dict[str, Type[CompletionProvider]] = {}
_EMBEDDER_REGISTRY: dict[str, Type[EmbeddingProvider]] = {}


def register(name: str):
    """Class decorator that registers a :class:`CompletionProvider` subclass."""

    def decorator(cls: Type[CompletionProvider]):
        cls.name = name
        _REGISTRY[name] = cls
        return cls

    return decorator


def register_embedder(name: str):
    """Class decorator that registers an :class:`EmbeddingProvider` subclass."""

    def decorator(cls: Type[EmbeddingProvider]):
        cls.name = name
        _EMBEDDER_REGISTRY[name] = cls
        return cls

    return decorator


def _split_model_shorthand(name: str) -> tuple[str, str | None]:
    """``"ollama:mistral"`` → ``("ollama", "mistral")``."""
    base, sep, tag = name.partition(":")
    return (base, tag) if sep and tag else (name, None)


class ProviderFactory:
    """Factory for constructing :class:`CompletionProvider` instances by name."""

    @staticmethod
    def available_names() -> list[str]:
        """Return the names of all registered completion providers."""
        return list(_REGISTRY.keys())

    @staticmethod
    def create(name: str, **kwargs: Any) -> CompletionProvider:
        """Instantiate a registered provider.

        Supports the ``<provider>:<model>`` shorthand — e.g.
        ``ProviderFactory.create("ollama:mistral")`` creates an Ollama
        provider targeting the ``mistral`` model.

        Raises
        ------
        KeyError
            If *name* has not been registered.
        """
        base, model = _split_model_shorthand(name)
        if base not in _REGISTRY:
            raise KeyError(
                f"Unknown provider '{name}'. "
                f"Available: {ProviderFactory.available_names()}"
            )
        if model:
            kwargs.setdefault("model", model)
        return _REGISTRY[base](**kwargs)


class EmbedderFactory:
    """Factory for constructing :class:`EmbeddingProvider` instances by name."""

    @staticmethod
    def available_names() -> list[str]:
        return list(_EMBEDDER_REGISTRY.keys())

    @staticmethod
    def create(name: str, **kwargs: Any) -> EmbeddingProvider:
        """Instantiate a registered embedder (same shorthand as providers)."""
        base, model = _split_model_shorthand(name)
        if base not in _EMBEDDER_REGISTRY:
            raise KeyError(
                f"Unknown embedder '{name}'. "
                f"Available: {EmbedderFactory.available_names()}"
            )
        if model:
            kwargs.setdefault("model", model)
        return _EMBEDDER_REGISTRY[base](**kwargs)
