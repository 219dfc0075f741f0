"""Shared pytest configuration and fixtures.

All fixtures run without Chroma, OpenAI or HuggingFace: embeddings come
from :class:`KeywordEmbeddings` (fixed vectors per keyword, so cosine
similarities are known in advance), chunks live in
:class:`InMemoryVectorStore`, and records in an in-memory SQLite DB.
"""

from __future__ import annotations

import math
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from langchain_core.embeddings import Embeddings
from langchain_core.messages import AIMessage

from grounded_rag.generation.composer import AnswerComposer
from grounded_rag.ingestion.embedder import Embedder
from grounded_rag.ingestion.pipeline import IngestionPipeline
from grounded_rag.models import Bot, Chunk
from grounded_rag.retrieval.base import VectorStoreBase
from grounded_rag.retrieval.models import MetadataFilter
from grounded_rag.retrieval.retriever import Retriever
from grounded_rag.service import RagService
from grounded_rag.storage.db import create_engine_from_url, get_session_factory
from grounded_rag.storage.repository import DocumentRepository

EMBEDDING_MODEL = "fake-keyword-embeddings"

# First matching keyword wins; vectors are unit length.
KEYWORD_VECTORS: dict[str, list[float]] = {
    "refund policy?": [0.91, 0.41461, 0.0],
    "capital of france": [0.4, 0.0, 0.91652],
    "refund": [1.0, 0.0, 0.0],
}
DEFAULT_VECTOR = [0.0, 1.0, 0.0]

ANSWER_HTML = "<p>Refunds are issued within <strong>30 days</strong> of purchase.</p>"


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests requiring external services")


# ── Fakes ──────────────────────────────────────────────────────────────


class KeywordEmbeddings(Embeddings):
    """Deterministic embeddings keyed on the first keyword found in a text."""

    def __init__(self, fail_on: str | None = None) -> None:
        self.calls: list[list[str]] = []
        self.fail_on = fail_on

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        self.calls.append(list(texts))
        if self.fail_on and any(self.fail_on in t for t in texts):
            raise RuntimeError("embedding service unavailable")
        return [self.vector_for(t) for t in texts]

    def embed_query(self, text: str) -> list[float]:
        return self.embed_documents([text])[0]

    @staticmethod
    def vector_for(text: str) -> list[float]:
        lowered = text.lower()
        for keyword, vector in KEYWORD_VECTORS.items():
            if keyword in lowered:
                return list(vector)
        return list(DEFAULT_VECTOR)


def _cosine(a: list[float], b: list[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    return dot / norm if norm else 0.0


class InMemoryVectorStore(VectorStoreBase):
    """Exact cosine search over a list; honours every filter like a real backend."""

    def __init__(self, fail_after: int | None = None) -> None:
        super().__init__("test-collection")
        self.chunks: list[Chunk] = []
        self.fail_after = fail_after
        self.last_filters: list[MetadataFilter] | None = None

    def add(self, chunk: Chunk) -> None:
        if self.fail_after is not None and len(self.chunks) >= self.fail_after:
            raise RuntimeError("chunk store write failed")
        self.chunks.append(chunk)

    def _query(
        self,
        query_embedding: list[float],
        *,
        k: int,
        filters: list[MetadataFilter],
    ) -> list[dict[str, Any]]:
        self.last_filters = filters
        scored = []
        for chunk in self.chunks:
            meta = self._meta(chunk)
            if all(f.matches(meta) for f in filters):
                scored.append((_cosine(query_embedding, chunk.embedding), chunk, meta))
        scored.sort(key=lambda item: item[0], reverse=True)
        return [
            {"id": c.id, "content": c.content, "score": max(0.0, min(1.0, s)), "metadata": meta}
            for s, c, meta in scored[:k]
        ]

    def _get(self, *, filters: list[MetadataFilter]) -> list[Chunk]:
        return [c for c in self.chunks if all(f.matches(self._meta(c)) for f in filters)]

    def delete_document(self, document_id: str) -> None:
        self.chunks = [c for c in self.chunks if c.document_id != document_id]

    def health_check(self) -> bool:
        return True

    @staticmethod
    def _meta(chunk: Chunk) -> dict[str, Any]:
        return {**chunk.metadata, "bot_id": chunk.bot_id, "document_id": chunk.document_id}


def make_llm(answer: str = ANSWER_HTML) -> MagicMock:
    """Chat-model double exposing both ``invoke`` and ``ainvoke``."""
    llm = MagicMock()
    llm.invoke.return_value = AIMessage(content=answer)
    llm.ainvoke = AsyncMock(return_value=AIMessage(content=answer))
    return llm


# ── Fixtures ───────────────────────────────────────────────────────────


@pytest.fixture()
def repository() -> DocumentRepository:
    engine = create_engine_from_url("sqlite://")
    return DocumentRepository(get_session_factory(engine))


@pytest.fixture()
def bot(repository: DocumentRepository) -> Bot:
    return repository.create_bot(Bot(owner_id="alice", name="Support bot"))


@pytest.fixture()
def other_bot(repository: DocumentRepository) -> Bot:
    return repository.create_bot(Bot(owner_id="bob", name="Other bot"))


@pytest.fixture()
def embeddings() -> KeywordEmbeddings:
    return KeywordEmbeddings()


@pytest.fixture()
def embedder(embeddings: KeywordEmbeddings) -> Embedder:
    return Embedder(embeddings, model_name=EMBEDDING_MODEL, batch_size=4, timeout=5.0)


@pytest.fixture()
def store() -> InMemoryVectorStore:
    return InMemoryVectorStore()


@pytest.fixture()
def pipeline(
    repository: DocumentRepository, store: InMemoryVectorStore, embedder: Embedder
) -> IngestionPipeline:
    return IngestionPipeline(repository, store, embedder, chunk_size=1500, chunk_overlap=150)


@pytest.fixture()
def llm() -> MagicMock:
    return make_llm()


@pytest.fixture()
def service(
    repository: DocumentRepository,
    store: InMemoryVectorStore,
    embedder: Embedder,
    pipeline: IngestionPipeline,
    llm: MagicMock,
) -> RagService:
    retriever = Retriever(store, embedder, default_k=5, score_threshold=0.85)
    composer = AnswerComposer(llm, repository.get_names, max_context_chars=6000, timeout=5.0)
    return RagService(repository, store, pipeline, retriever, composer)
