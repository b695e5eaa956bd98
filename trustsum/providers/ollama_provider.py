"""
Ollama Providers – Local LLMs
==============================
Async wrappers around a locally-running Ollama server via its HTTP API,
for both text generation (``/api/generate``) and embeddings
(``/api/embeddings``).

Any model available in the local Ollama instance can be targeted by tag
(e.g. ``"mistral"``, ``"llama3.1"``, ``"nomic-embed-text"``).
"""

from __future__ import annotations

import logging
import os
from typing import Any

import httpx

from trustsum.providers.base import CompletionProvider, EmbeddingProvider
from trustsum.providers.factory import register, register_embedder

logger = logging.getLogger(__name__)


def _ollama_base_url() -> str:
    """Resolve the Ollama base URL from env or default."""
    return os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")


async def _model_installed(base_url: str, model: str) -> bool:
    """Check if the Ollama server is reachable and *model* is pulled."""
    try:
        async with httpx.AsyncClient(timeout=5) as client:
            resp = await client.get(f"{base_url}/api/tags")
            if resp.status_code != 200:
                return False
            models = resp.json().get("models", [])
    except (httpx.ConnectError, httpx.TimeoutException):
        return False

    available_full = {m.get("name", "") for m in models}
    available_tags = {name.split(":")[0] for name in available_full}
    return model in available_full or model.split(":")[0] in available_tags


@register("ollama")
class OllamaProvider(CompletionProvider):
    """Strategy implementation for a local Ollama instance.

    The provider ``name`` is set to ``ollama:<model>`` so logs and events
    identify which local model produced a completion.

    Parameters
    ----------
    base_url : str, optional
        Ollama HTTP endpoint (default from ``OLLAMA_BASE_URL`` env var or
        ``http://localhost:11434``).
    model : str
        Model tag to use (default ``"llama3.1"``).
    timeout : float
        Request timeout in seconds (default ``300``).  Large local models
        can take several minutes to summarise a long document.
    """

    def __init__(
        self,
        base_url: str | None = None,
        model: str = "llama3.1",
        timeout: float = 300.0,
    ) -> None:
        self._base_url = base_url or _ollama_base_url()
        self.model = model
        self._timeout = timeout
        self.name = f"ollama:{model}"

    async def _call(
        self, prompt: str, temperature: float, top_p: float
    ) -> tuple[str, dict[str, Any]]:
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": temperature, "top_p": top_p},
        }
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            resp = await client.post(f"{self._base_url}/api/generate", json=payload)
            resp.raise_for_status()
            data = resp.json()

        text = data.get("response", "")
        meta = {
            "model": data.get("model", self.model),
            "total_duration": data.get("total_duration"),
            "eval_count": data.get("eval_count"),
        }
        return text, meta

    async def is_available(self) -> bool:
        return await _model_installed(self._base_url, self.model)


@register_embedder("ollama")
class OllamaEmbedder(EmbeddingProvider):
    """Embeddings from a local Ollama embedding model.

    Parameters
    ----------
    base_url : str, optional
        Ollama HTTP endpoint.
    model : str
        Embedding model tag (default ``"nomic-embed-text"``).
    timeout : float
        Request timeout in seconds (default ``60``).
    """

    def __init__(
        self,
        base_url: str | None = None,
        model: str = "nomic-embed-text",
        timeout: float = 60.0,
    ) -> None:
        self._base_url = base_url or _ollama_base_url()
        self.model = model
        self._timeout = timeout
        self.name = f"ollama:{model}"

    async def _embed(self, text: str) -> list[float]:
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            resp = await client.post(
                f"{self._base_url}/api/embeddings",
                json={"model": self.model, "prompt": text},
            )
            resp.raise_for_status()
            data = resp.json()
        embedding = data.get("embedding")
        if not embedding:
            raise ValueError(f"Ollama returned no embedding for model '{self.model}'")
        return embedding

    async def is_available(self) -> bool:
        return await _model_installed(self._base_url, self.model)
