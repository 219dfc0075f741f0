"""
Retrieval — bot-scoped vector search and evidence filtering.

This module wraps the chunk store behind a clean interface so that the
answering layer never needs to know which DB is backing retrieval.

Public surface
--------------
- :class:`Retriever` — embeds a question and returns ranked evidence.
- :class:`VectorStoreBase` — abstract backend (subclass for pgvector, etc.).
- :class:`ChromaVectorStore` — default Chroma backend.
- :class:`RetrievedChunk`, :class:`RetrievalResult`, :class:`MetadataFilter` — data models.
"""

from grounded_rag.retrieval.base import VectorStoreBase
from grounded_rag.retrieval.models import MetadataFilter, RetrievalResult, RetrievedChunk
from grounded_rag.retrieval.retriever import Retriever

__all__ = [
    "ChromaVectorStore",
    "MetadataFilter",
    "RetrievalResult",
    "RetrievedChunk",
    "Retriever",
    "VectorStoreBase",
]


def __getattr__(name: str):  # noqa: ANN001
    """Lazy-import ChromaVectorStore to avoid pulling in chromadb at import time."""
    if name == "ChromaVectorStore":
        from grounded_rag.retrieval.chroma_store import ChromaVectorStore

        return ChromaVectorStore
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
