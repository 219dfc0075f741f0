"""Abstract base class for chunk-store backends.

Adding a new backend (pgvector, Qdrant …) only requires subclassing
:class:`VectorStoreBase` and implementing the abstract methods.  The
public :meth:`VectorStoreBase.search` is not meant to be overridden:
it is the single place that turns a bot id into a mandatory filter
predicate, so no backend can be queried across bots by accident.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from grounded_rag.models import Chunk
from grounded_rag.retrieval.models import MetadataFilter


class VectorStoreBase(ABC):
    """Backend-agnostic chunk-store interface.

    Parameters
    ----------
    collection_name:
        Logical name of the collection / index / namespace.
    """

    def __init__(self, collection_name: str) -> None:
        self.collection_name = collection_name

    # -- bot-scoped entry points ----------------------------------------------

    def search(
        self,
        query_embedding: list[float],
        *,
        bot_id: str,
        k: int = 5,
        filters: list[MetadataFilter] | None = None,
    ) -> list[dict[str, Any]]:
        """Return the top-*k* chunks of *bot_id* nearest to *query_embedding*.

        Each result dict contains:

        * ``"id"`` – chunk identifier
        * ``"content"`` – the chunk text
        * ``"score"`` – similarity in ``[0, 1]`` (higher = more similar)
        * ``"metadata"`` – chunk metadata, always including ``bot_id``
          and ``document_id``

        Results are ordered by the backend, nearest first.
        """
        scoped = [_bot_scope(bot_id), *(filters or [])]
        return self._query(query_embedding, k=k, filters=scoped)

    def list_chunks(
        self,
        *,
        bot_id: str,
        filters: list[MetadataFilter] | None = None,
    ) -> list[Chunk]:
        """Return every stored chunk of *bot_id* matching *filters*."""
        scoped = [_bot_scope(bot_id), *(filters or [])]
        return self._get(filters=scoped)

    # -- required overrides ---------------------------------------------------

    @abstractmethod
    def add(self, chunk: Chunk) -> None:
        """Persist a single chunk (one write per chunk)."""
        ...

    @abstractmethod
    def _query(
        self,
        query_embedding: list[float],
        *,
        k: int,
        filters: list[MetadataFilter],
    ) -> list[dict[str, Any]]:
        """Backend nearest-neighbour query; *filters* always include the bot scope."""
        ...

    @abstractmethod
    def _get(self, *, filters: list[MetadataFilter]) -> list[Chunk]:
        ...

    @abstractmethod
    def delete_document(self, document_id: str) -> None:
        """Delete every chunk owned by *document_id*."""
        ...

    @abstractmethod
    def health_check(self) -> bool:
        """Return ``True`` when the backend is reachable and ready."""
        ...


def _bot_scope(bot_id: str) -> MetadataFilter:
    if not bot_id:
        raise ValueError("bot_id is required for every chunk-store read")
    return MetadataFilter.equals("bot_id", bot_id)
