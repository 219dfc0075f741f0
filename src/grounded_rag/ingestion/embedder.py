"""Embedding adapter — one place that turns text into vectors.

:class:`Embedder` wraps any LangChain :class:`Embeddings` implementation
and adds the contract the rest of the system relies on:

* one vector per input, in input order, all of the same dimension;
* batching of large inputs;
* every failure (including timeouts) surfaces as :class:`EmbeddingError`
  and is **not** retried here — retry policy belongs to the caller;
* a fixed ``model_name`` that is stamped on stored chunks and used to
  scope queries, so vectors from different models are never compared.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from grounded_rag.config import settings
from grounded_rag.errors import EmbeddingError

if TYPE_CHECKING:
    from langchain_core.embeddings import Embeddings

logger = logging.getLogger(__name__)


def get_embedding_function(
    provider: str = settings.embedding_provider,
    model_name: str = settings.embedding_model,
) -> Embeddings:
    """Return the configured LangChain embedding function."""
    if provider == "huggingface":
        from langchain_huggingface import HuggingFaceEmbeddings

        return HuggingFaceEmbeddings(
            model_name=model_name,
            encode_kwargs={"normalize_embeddings": True},
        )
    if provider == "openai":
        from langchain_openai import OpenAIEmbeddings

        return OpenAIEmbeddings(
            model=model_name,
            api_key=settings.openai_api_key,
            timeout=settings.request_timeout_seconds,
            max_retries=0,
        )
    raise ValueError(f"Unsupported embedding provider: {provider!r}")


class Embedder:
    """Batching, order-preserving wrapper around an embedding model.

    Parameters
    ----------
    embeddings:
        Any LangChain ``Embeddings`` implementation.
    model_name:
        Identity of the model behind *embeddings*.
    batch_size:
        Maximum number of texts sent per upstream call.
    timeout:
        Seconds allowed per upstream call on the async path.
    """

    def __init__(
        self,
        embeddings: Embeddings,
        *,
        model_name: str,
        batch_size: int = 16,
        timeout: float = 30.0,
    ) -> None:
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self._embeddings = embeddings
        self.model_name = model_name
        self.batch_size = batch_size
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> Embedder:
        return cls(
            get_embedding_function(),
            model_name=settings.embedding_model,
            batch_size=settings.embedding_batch_size,
            timeout=settings.request_timeout_seconds,
        )

    # -- public API -----------------------------------------------------------

    def embed(self, texts: list[str]) -> list[list[float]]:
        """Embed *texts*, returning one vector per input in the same order."""
        vectors: list[list[float]] = []
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start : start + self.batch_size]
            try:
                result = self._embeddings.embed_documents(batch)
            except Exception as exc:
                raise EmbeddingError(f"Embedding call failed: {exc}") from exc
            vectors.extend(self._check_batch(batch, result))
        return self._check_dimensions(vectors)

    def embed_query(self, text: str) -> list[float]:
        """Embed a question through the same path used for stored chunks."""
        return self.embed([text])[0]

    async def aembed(self, texts: list[str]) -> list[list[float]]:
        """Async variant of :meth:`embed`; cancelling the caller cancels the call."""
        vectors: list[list[float]] = []
        for start in range(0, len(texts), self.batch_size):
            batch = texts[start : start + self.batch_size]
            try:
                result = await asyncio.wait_for(
                    self._embeddings.aembed_documents(batch), timeout=self.timeout
                )
            except asyncio.TimeoutError as exc:
                raise EmbeddingError(f"Embedding call timed out after {self.timeout}s") from exc
            except Exception as exc:
                raise EmbeddingError(f"Embedding call failed: {exc}") from exc
            vectors.extend(self._check_batch(batch, result))
        return self._check_dimensions(vectors)

    async def aembed_query(self, text: str) -> list[float]:
        return (await self.aembed([text]))[0]

    # -- internals ------------------------------------------------------------

    @staticmethod
    def _check_batch(batch: list[str], result: list[list[float]]) -> list[list[float]]:
        if len(result) != len(batch):
            raise EmbeddingError(
                f"Embedding service returned {len(result)} vectors for {len(batch)} inputs"
            )
        return [list(map(float, vector)) for vector in result]

    @staticmethod
    def _check_dimensions(vectors: list[list[float]]) -> list[list[float]]:
        dims = {len(v) for v in vectors}
        if len(dims) > 1 or 0 in dims:
            raise EmbeddingError(f"Embedding service returned inconsistent dimensions: {sorted(dims)}")
        if vectors:
            logger.debug("Embedded %d text(s) (dim=%d)", len(vectors), len(vectors[0]))
        return vectors
