"""Bot-scoped semantic retriever with a similarity threshold.

Usage::

    from grounded_rag.retrieval.retriever import Retriever

    retriever = Retriever(store, embedder, default_k=5, score_threshold=0.85)
    result = retriever.retrieve(bot_id, "What is the refund policy?")
    if not result.has_evidence:
        ...  # decline to answer
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from grounded_rag.errors import RetrievalError
from grounded_rag.retrieval.models import MetadataFilter, RetrievalResult, RetrievedChunk

if TYPE_CHECKING:
    from grounded_rag.ingestion.embedder import Embedder
    from grounded_rag.retrieval.base import VectorStoreBase

logger = logging.getLogger(__name__)


class Retriever:
    """Embed a question, query one bot's chunks, rank and filter by similarity.

    Parameters
    ----------
    store:
        Chunk store to query.
    embedder:
        The same embedder used at ingestion time.  Its ``model_name`` is
        added as a filter so chunks embedded by another model are never
        compared with the question vector.
    default_k:
        Number of nearest candidates requested from the store.
    score_threshold:
        Minimum similarity (inclusive) for a candidate to count as evidence.
    """

    def __init__(
        self,
        store: VectorStoreBase,
        embedder: Embedder,
        *,
        default_k: int = 5,
        score_threshold: float = 0.85,
    ) -> None:
        self._store = store
        self._embedder = embedder
        self.default_k = default_k
        self.score_threshold = score_threshold

    # -- public API -----------------------------------------------------------

    def retrieve(
        self,
        bot_id: str,
        question: str,
        *,
        k: int | None = None,
        threshold: float | None = None,
        exclude_document_ids: list[str] | None = None,
    ) -> RetrievalResult:
        """Return the ranked evidence for *question* within *bot_id*'s corpus.

        Chunks of *exclude_document_ids* are filtered out inside the store
        query, so they never take one of the *k* candidate slots.

        Raises
        ------
        EmbeddingError
            When the question cannot be embedded.
        RetrievalError
            When the chunk store query fails.
        """
        embedding = self._embedder.embed_query(question)
        k = k or self.default_k
        try:
            hits = self._store.search(
                embedding, bot_id=bot_id, k=k, filters=self._scope(exclude_document_ids)
            )
        except Exception as exc:
            raise RetrievalError(f"Chunk store query failed: {exc}") from exc
        return self._rank(bot_id, question, hits, threshold)

    async def aretrieve(
        self,
        bot_id: str,
        question: str,
        *,
        k: int | None = None,
        threshold: float | None = None,
        exclude_document_ids: list[str] | None = None,
    ) -> RetrievalResult:
        """Async variant of :meth:`retrieve`."""
        embedding = await self._embedder.aembed_query(question)
        k = k or self.default_k
        try:
            hits = await asyncio.to_thread(
                self._store.search,
                embedding,
                bot_id=bot_id,
                k=k,
                filters=self._scope(exclude_document_ids),
            )
        except Exception as exc:
            raise RetrievalError(f"Chunk store query failed: {exc}") from exc
        return self._rank(bot_id, question, hits, threshold)

    # -- internals ------------------------------------------------------------

    def _scope(self, exclude_document_ids: list[str] | None) -> list[MetadataFilter]:
        filters = [MetadataFilter.equals("embedding_model", self._embedder.model_name)]
        if exclude_document_ids:
            filters.append(
                MetadataFilter(field="document_id", operator="nin", value=list(exclude_document_ids))
            )
        return filters

    def _rank(
        self,
        bot_id: str,
        question: str,
        hits: list[dict[str, Any]],
        threshold: float | None,
    ) -> RetrievalResult:
        threshold = self.score_threshold if threshold is None else threshold

        items: list[RetrievedChunk] = []
        for hit in hits:
            meta = hit.get("metadata", {})
            if meta.get("bot_id") != bot_id:
                # The store ignored the scope predicate; refuse to answer at all.
                raise RetrievalError(
                    f"Chunk store returned chunk {hit.get('id')!r} outside bot {bot_id!r}"
                )
            items.append(
                RetrievedChunk(
                    chunk_id=hit["id"],
                    document_id=meta.get("document_id", ""),
                    bot_id=bot_id,
                    content=hit.get("content", ""),
                    similarity=float(hit.get("score", 0.0)),
                    metadata=meta,
                )
            )

        # sorted() is stable: ties keep the store's nearest-first order.
        ranked = sorted(items, key=lambda item: item.similarity, reverse=True)
        surviving = [item for item in ranked if item.similarity >= threshold]

        logger.info(
            "Retrieved %d candidate(s) for bot %s, %d above threshold %.2f (best=%.3f)",
            len(ranked),
            bot_id,
            len(surviving),
            threshold,
            ranked[0].similarity if ranked else 0.0,
        )
        return RetrievalResult(
            bot_id=bot_id,
            question=question,
            items=surviving,
            candidate_count=len(ranked),
        )
