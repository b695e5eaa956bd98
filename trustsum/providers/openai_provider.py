"""
OpenAI Providers – Chat Completions & Embeddings
=================================================
Async wrappers around the ``openai`` Python SDK, for both the public OpenAI
API and Azure OpenAI deployments.
"""

from __future__ import annotations

import os
from typing import Any

import openai

from trustsum.providers.base import CompletionProvider, EmbeddingProvider
from trustsum.providers.factory import register, register_embedder

AZURE_API_VERSION = "2024-06-01"


async def _chat(
    client: openai.AsyncOpenAI, model: str, prompt: str, temperature: float, top_p: float
) -> tuple[str, dict[str, Any]]:
    response = await client.chat.completions.create(
        model=model,
        messages=[{"role": "user", "content": prompt}],
        temperature=temperature,
        top_p=top_p,
    )
    choice = response.choices[0]
    meta = {
        "finish_reason": choice.finish_reason,
        "usage": response.usage.model_dump() if response.usage else {},
        "model": response.model,
    }
    return choice.message.content or "", meta


async def _embedding(client: openai.AsyncOpenAI, model: str, text: str) -> list[float]:
    response = await client.embeddings.create(model=model, input=text)
    return list(response.data[0].embedding)


class _AzureClientMixin:
    """Lazily builds an ``AsyncAzureOpenAI`` client.

    The Azure SDK refuses to construct a client without an endpoint, so the
    client is only created on first use; the provider itself can always be
    instantiated (e.g. for availability checks).
    """

    def _init_azure(self, endpoint: str | None, api_key: str | None) -> None:
        self._endpoint = endpoint or os.getenv("AZURE_OPENAI_ENDPOINT", "")
        self._api_key = api_key or os.getenv("AZURE_OPENAI_API_KEY", "")
        self._azure_client: openai.AsyncAzureOpenAI | None = None

    @property
    def _client(self) -> openai.AsyncAzureOpenAI:
        if self._azure_client is None:
            self._azure_client = openai.AsyncAzureOpenAI(
                azure_endpoint=self._endpoint,
                api_key=self._api_key,
                api_version=os.getenv("AZURE_OPENAI_API_VERSION", AZURE_API_VERSION),
            )
        return self._azure_client

    async def is_available(self) -> bool:
        return bool(self._api_key and self._endpoint)


@register("openai")
class OpenAIProvider(CompletionProvider):
    """Strategy implementation for OpenAI chat models.

    Parameters
    ----------
    api_key : str, optional
        Falls back to the ``OPENAI_API_KEY`` environment variable.
    model : str
        Model identifier (default ``"gpt-4o"``).
    """

    def __init__(self, api_key: str | None = None, model: str = "gpt-4o") -> None:
        self._api_key = api_key or os.getenv("OPENAI_API_KEY", "")
        self._client = openai.AsyncOpenAI(api_key=self._api_key)
        self.model = model

    async def is_available(self) -> bool:
        """Check if a valid API key is configured."""
        return bool(self._api_key and self._api_key.startswith("sk-"))

    async def _call(
        self, prompt: str, temperature: float, top_p: float
    ) -> tuple[str, dict[str, Any]]:
        return await _chat(self._client, self.model, prompt, temperature, top_p)


@register("azure")
class AzureOpenAIProvider(_AzureClientMixin, CompletionProvider):
    """Chat completions against an Azure OpenAI deployment.

    Parameters
    ----------
    endpoint : str, optional
        Falls back to ``AZURE_OPENAI_ENDPOINT``.
    api_key : str, optional
        Falls back to ``AZURE_OPENAI_API_KEY``.
    model : str, optional
        Deployment name; falls back to ``AZURE_OPENAI_CHAT_DEPLOYMENT`` and
        then ``"gpt-4"``.
    """

    def __init__(
        self,
        endpoint: str | None = None,
        api_key: str | None = None,
        model: str | None = None,
    ) -> None:
        self._init_azure(endpoint, api_key)
        self.model = model or os.getenv("AZURE_OPENAI_CHAT_DEPLOYMENT", "gpt-4")

    async def _call(
        self, prompt: str, temperature: float, top_p: float
    ) -> tuple[str, dict[str, Any]]:
        return await _chat(self._client, self.model, prompt, temperature, top_p)


@register_embedder("openai")
class OpenAIEmbedder(EmbeddingProvider):
    """Embeddings from the OpenAI API (default ``text-embedding-ada-002``)."""

    def __init__(self, api_key: str | None = None, model: str = "text-embedding-ada-002") -> None:
        self._api_key = api_key or os.getenv("OPENAI_API_KEY", "")
        self._client = openai.AsyncOpenAI(api_key=self._api_key)
        self.model = model

    async def is_available(self) -> bool:
        return bool(self._api_key and self._api_key.startswith("sk-"))

    async def _embed(self, text: str) -> list[float]:
        return await _embedding(self._client, self.model, text)


@register_embedder("azure")
class AzureOpenAIEmbedder(_AzureClientMixin, EmbeddingProvider):
    """Embeddings from an Azure OpenAI deployment.

    The deployment name falls back to ``AZURE_OPENAI_EMBEDDING_DEPLOYMENT``
    and then ``"text-embedding-ada-002"``.
    """

    def __init__(
        self,
        endpoint: str | None = None,
        api_key: str | None = None,
        model: str | None = None,
    ) -> None:
        self._init_azure(endpoint, api_key)
        self.model = model or os.getenv(
            "AZURE_OPENAI_EMBEDDING_DEPLOYMENT", "text-embedding-ada-002"
        )

    async def _embed(self, text: str) -> list[float]:
        return await _embedding(self._client, self.model, text)
