"""Chroma implementation of the chunk-store abstraction."""

from __future__ import annotations

import logging
from typing import Any

import chromadb

from grounded_rag.config import settings
from grounded_rag.models import Chunk
from grounded_rag.retrieval.base import VectorStoreBase
from grounded_rag.retrieval.models import MetadataFilter

logger = logging.getLogger(__name__)

_OP_MAP = {
    "eq": "$eq",
    "ne": "$ne",
    "gt": "$gt",
    "gte": "$gte",
    "lt": "$lt",
    "lte": "$lte",
    "in": "$in",
    "nin": "$nin",
}


def _build_chroma_where(filters: list[MetadataFilter]) -> dict[str, Any] | None:
    """Convert a list of :class:`MetadataFilter` to Chroma ``where`` syntax."""
    if not filters:
        return None

    clauses: list[dict[str, Any]] = []
    for f in filters:
        chroma_op = _OP_MAP.get(f.operator)
        if chroma_op is None:
            raise ValueError(f"Unsupported filter operator: {f.operator!r}")
        clauses.append({f.field: {chroma_op: f.value}})

    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def _flat_metadata(chunk: Chunk) -> dict[str, Any]:
    # Chroma metadata values must be flat str/int/float/bool
    meta = {k: v for k, v in chunk.metadata.items() if isinstance(v, (str, int, float, bool))}
    meta["document_id"] = chunk.document_id
    meta["bot_id"] = chunk.bot_id
    return meta


def _distance_to_similarity(distance: float) -> float:
    # Cosine space: distance = 1 - cosine similarity.
    return min(1.0, max(0.0, 1.0 - float(distance)))


class ChromaVectorStore(VectorStoreBase):
    """Chroma-backed chunk store using a cosine-space collection.

    Parameters
    ----------
    collection_name:
        Name of the Chroma collection.
    client:
        Pre-built Chroma client (e.g. ``chromadb.EphemeralClient()``).
        When omitted, a persistent client is used if
        ``settings.chroma_persist_path`` is set, otherwise an HTTP client.
    host / port:
        Chroma server address for the HTTP client.
    """

    def __init__(
        self,
        collection_name: str = settings.chroma_collection,
        *,
        client: Any | None = None,
        host: str = settings.chroma_host,
        port: int = settings.chroma_port,
    ) -> None:
        super().__init__(collection_name)
        if client is None:
            if settings.chroma_persist_path:
                client = chromadb.PersistentClient(path=settings.chroma_persist_path)
            else:
                client = chromadb.HttpClient(host=host, port=port)
        self._client = client
        self._collection = self._client.get_or_create_collection(
            collection_name,
            metadata={"hnsw:space": "cosine"},
        )

    # -- VectorStoreBase overrides --------------------------------------------

    def add(self, chunk: Chunk) -> None:
        self._collection.add(
            ids=[chunk.id],
            embeddings=[chunk.embedding],
            documents=[chunk.content],
            metadatas=[_flat_metadata(chunk)],
        )

    def _query(
        self,
        query_embedding: list[float],
        *,
        k: int,
        filters: list[MetadataFilter],
    ) -> list[dict[str, Any]]:
        results = self._collection.query(
            query_embeddings=[query_embedding],
            n_results=k,
            where=_build_chroma_where(filters),
            include=["documents", "metadatas", "distances"],
        )

        hits: list[dict[str, Any]] = []
        ids = results.get("ids", [[]])[0]
        docs = results.get("documents", [[]])[0]
        metas = results.get("metadatas", [[]])[0]
        distances = results.get("distances", [[]])[0]

        for chunk_id, content, meta, dist in zip(ids, docs, metas, distances):
            hits.append(
                {
                    "id": chunk_id,
                    "content": content or "",
                    "score": _distance_to_similarity(dist),
                    "metadata": dict(meta or {}),
                }
            )
        return hits

    def _get(self, *, filters: list[MetadataFilter]) -> list[Chunk]:
        results = self._collection.get(
            where=_build_chroma_where(filters),
            include=["documents", "metadatas", "embeddings"],
        )
        embeddings = results.get("embeddings")
        if embeddings is None:
            embeddings = [[] for _ in results["ids"]]

        chunks = [
            Chunk(
                id=chunk_id,
                document_id=meta["document_id"],
                bot_id=meta["bot_id"],
                content=content,
                embedding=[float(x) for x in embedding],
                metadata=dict(meta),
            )
            for chunk_id, content, meta, embedding in zip(
                results["ids"], results["documents"], results["metadatas"], embeddings
            )
        ]
        chunks.sort(key=lambda c: (c.document_id, c.metadata.get("chunk_index", 0)))
        return chunks

    def delete_document(self, document_id: str) -> None:
        self._collection.delete(where={"document_id": document_id})

    def health_check(self) -> bool:
        try:
            self._client.heartbeat()
            return True
        except Exception:
            logger.warning("Chroma health-check failed", exc_info=True)
            return False
