"""
Local Embedder – sentence-transformers
=======================================
Runs a ``sentence-transformers`` model in-process, so consistency scoring
works without any embedding API.  Encoding is CPU/GPU-bound and synchronous,
so it is pushed to a thread executor to keep the event loop free.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any

from trustsum.providers.base import EmbeddingProvider
from trustsum.providers.factory import register_embedder

logger = logging.getLogger(__name__)


@register_embedder("local")
class SentenceTransformerEmbedder(EmbeddingProvider):
    """Embed text with a local ``sentence-transformers`` model.

    Parameters
    ----------
    model : str
        Model to load (default ``"all-MiniLM-L6-v2"``).
    """

    _encoders: dict[str, Any] = {}  # lazy-loaded class-level cache
    _encoders_lock = threading.Lock()

    def __init__(self, model: str = "all-MiniLM-L6-v2") -> None:
        self.model = model

    def _get_encoder(self):
        """Lazy-load the SentenceTransformer model (expensive, ~2 s).

        Concurrent first calls run in executor threads; only one of them
        loads the model.
        """
        encoder = SentenceTransformerEmbedder._encoders.get(self.model)
        if encoder is not None:
            return encoder
        with SentenceTransformerEmbedder._encoders_lock:
            if self.model not in SentenceTransformerEmbedder._encoders:
                from sentence_transformers import SentenceTransformer

                logger.info("Loading sentence-transformers model %s", self.model)
                SentenceTransformerEmbedder._encoders[self.model] = SentenceTransformer(self.model)
            return SentenceTransformerEmbedder._encoders[self.model]

    async def _embed(self, text: str) -> list[float]:
        loop = asyncio.get_running_loop()
        vector = await loop.run_in_executor(
            None,
            lambda: self._get_encoder().encode(
                text, convert_to_numpy=True, show_progress_bar=False
            ),
        )
        return vector.tolist()
