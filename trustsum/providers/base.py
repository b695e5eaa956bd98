"""
Model Providers – Strategy Interfaces (Abstract Bases)
======================================================
The pipeline consumes exactly two external capabilities:

* a **completion service** – :class:`CompletionProvider`
* an **embedding service** – :class:`EmbeddingProvider`

Every backend implements one (or both) of these so the orchestrator can
treat them interchangeably (Strategy Pattern).
"""

from __future__ import annotations

import logging
import time
from abc import ABC, abstractmethod
from typing import Any

logger = logging.getLogger(__name__)


class CompletionProvider(ABC):
    """Abstract async text-completion provider.

    Subclasses implement :meth:`_call`, which performs the raw API request.
    The public :meth:`complete` wraps it with latency logging.

    Attributes
    ----------
    name : str
        Canonical provider name used as a key throughout the pipeline.
    model : str
        Model identifier sent to the backend.
    """

    name: str = "base"
    model: str = ""

    @abstractmethod
    async def _call(
        self, prompt: str, temperature: float, top_p: float
    ) -> tuple[str, dict[str, Any]]:
        """Perform the actual API call.

        Returns
        -------
        tuple[str, dict]
            ``(generated_text, metadata_dict)``
        """
        ...

    async def complete(self, prompt: str, temperature: float, top_p: float) -> str:
        """Return the model's completion of *prompt*."""
        t0 = time.perf_counter()
        text, meta = await self._call(prompt, temperature, top_p)
        logger.debug(
            "%s completion: %d chars in %.2fs (%s)",
            self.name, len(text), time.perf_counter() - t0, meta,
        )
        return text

    async def is_available(self) -> bool:
        """Quick health-check – override for providers that may be offline."""
        return True


class EmbeddingProvider(ABC):
    """Abstract async text-embedding provider.

    The vector dimension is fixed by the backing model and treated as opaque
    by the pipeline.
    """

    name: str = "base"
    model: str = ""

    @abstractmethod
    async def _embed(self, text: str) -> list[float]:
        """Perform the actual embedding request."""
        ...

    async def embed(self, text: str) -> list[float]:
        """Return the embedding vector for *text*."""
        t0 = time.perf_counter()
        vector = await self._embed(text)
        logger.debug(
            "%s embedding: dim=%d in %.2fs",
            self.name, len(vector), time.perf_counter() - t0,
        )
        return list(vector)

    async def is_available(self) -> bool:
        return True
