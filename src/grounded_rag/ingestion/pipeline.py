"""Ingestion pipeline — extract → chunk → embed → store, per document.

State machine per document::

    pending ──▶ processing ──▶ completed
                     │
                     └──────▶ error

:meth:`IngestionPipeline.process` always leaves the document in a
terminal state: known failures (:class:`ExtractionError`,
:class:`EmbeddingError`, :class:`ChunkStoreError`) are recorded on the
document, unexpected ones are recorded and then re-raised.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from grounded_rag.errors import (
    ChunkStoreError,
    EmbeddingError,
    InvalidInputError,
    InvalidTransitionError,
    RagError,
)
from grounded_rag.ingestion.chunker import TextSpan, split_spans
from grounded_rag.ingestion.extractor import extract_text
from grounded_rag.models import Bot, Chunk, Document, DocumentStatus, MediaType

if TYPE_CHECKING:
    from grounded_rag.ingestion.embedder import Embedder
    from grounded_rag.retrieval.base import VectorStoreBase
    from grounded_rag.storage.repository import DocumentRepository

logger = logging.getLogger(__name__)


class IngestionPipeline:
    """Turn uploaded files into embedded, bot-scoped chunks.

    Parameters
    ----------
    repository:
        Relational store holding document records and their status.
    store:
        Chunk store receiving one write per chunk.
    embedder:
        Embedding adapter; its ``model_name`` is stamped on every chunk.
    chunk_size / chunk_overlap:
        Chunker configuration.
    max_upload_bytes:
        Uploads larger than this are rejected before a record is created.
    purge_chunks_on_error:
        Delete chunks already written when a document fails midway.
    """

    def __init__(
        self,
        repository: DocumentRepository,
        store: VectorStoreBase,
        embedder: Embedder,
        *,
        chunk_size: int = 1500,
        chunk_overlap: int = 150,
        max_upload_bytes: int = 10 * 1024 * 1024,
        purge_chunks_on_error: bool = True,
    ) -> None:
        self._repository = repository
        self._store = store
        self._embedder = embedder
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.max_upload_bytes = max_upload_bytes
        self.purge_chunks_on_error = purge_chunks_on_error

    # -- public API -----------------------------------------------------------

    def ingest(self, bot: Bot, *, filename: str, media_type: str, data: bytes) -> Document:
        """Accept and fully process one file; returns the terminal document."""
        document = self.accept(bot, filename=filename, media_type=media_type, data=data)
        return self.process(document, data)

    def accept(self, bot: Bot, *, filename: str, media_type: str, data: bytes) -> Document:
        """Validate an upload and create its document record in ``processing``.

        Raises
        ------
        UnsupportedTypeError
            When *media_type* is not PDF, plain text or Markdown.
        InvalidInputError
            When the file name is missing or the file is too large. Empty
            files are accepted and complete with zero chunks.
        """
        resolved = MediaType.from_declared(media_type)
        if not filename or not filename.strip():
            raise InvalidInputError("Missing file name")
        if len(data) > self.max_upload_bytes:
            raise InvalidInputError(
                f"File is too large ({len(data)} bytes, limit {self.max_upload_bytes})"
            )

        document = Document(
            bot_id=bot.id,
            owner_id=bot.owner_id,
            name=filename.strip(),
            media_type=resolved,
            size=len(data),
            status=DocumentStatus.PROCESSING,
        )
        logger.info(
            "Accepted %s (%s, %d bytes) for bot %s as document %s",
            document.name,
            resolved.value,
            document.size,
            bot.id,
            document.id,
        )
        return self._repository.create_document(document)

    def process(self, document: Document, data: bytes) -> Document:
        """Run extraction, chunking and embedding for an accepted document.

        Returns the document in its terminal state (``completed`` or
        ``error``).  Only unexpected, non-domain exceptions propagate, and
        only after the document has been marked ``error``.
        """
        if document.status is DocumentStatus.PENDING:
            document = self._repository.transition(document.id, DocumentStatus.PROCESSING)
        elif document.status is not DocumentStatus.PROCESSING:
            raise InvalidTransitionError(
                f"Document {document.id} is {document.status.value}; upload it again to re-ingest"
            )

        try:
            count = self._run(document, data)
            logger.info("Document %s ingested: %d chunk(s)", document.id, count)
            return self._repository.transition(document.id, DocumentStatus.COMPLETED)
        except RagError as exc:
            logger.warning("Ingestion of document %s failed: %s", document.id, exc)
            return self._fail(document, str(exc))
        except Exception as exc:
            logger.exception("Unexpected error while ingesting document %s", document.id)
            self._fail(document, f"Internal error: {type(exc).__name__}")
            raise

    # -- internals ------------------------------------------------------------

    def _run(self, document: Document, data: bytes) -> int:
        text = extract_text(data, document.media_type)
        logger.info("Extracted %d characters from document %s", len(text), document.id)

        spans = split_spans(text, self.chunk_size, self.chunk_overlap)
        logger.info("Split document %s into %d chunk(s)", document.id, len(spans))

        batch_size = self._embedder.batch_size
        for start in range(0, len(spans), batch_size):
            batch = spans[start : start + batch_size]
            try:
                vectors = self._embedder.embed([span.content for span in batch])
            except EmbeddingError as exc:
                raise EmbeddingError(
                    f"Embedding chunks {start}-{start + len(batch) - 1} failed: {exc}"
                ) from exc

            for offset, (span, vector) in enumerate(zip(batch, vectors)):
                self._store_chunk(document, start + offset, span, vector)
            logger.debug("  stored %d / %d chunks", start + len(batch), len(spans))
        return len(spans)

    def _store_chunk(self, document: Document, index: int, span: TextSpan, vector: list[float]) -> None:
        chunk = Chunk(
            document_id=document.id,
            bot_id=document.bot_id,
            content=span.content,
            embedding=vector,
            metadata={
                "chunk_index": index,
                "start_index": span.start,
                "embedding_model": self._embedder.model_name,
            },
        )
        try:
            self._store.add(chunk)
        except Exception as exc:
            raise ChunkStoreError(f"Storing chunk {index} failed: {exc}") from exc

    def _fail(self, document: Document, message: str) -> Document:
        if self.purge_chunks_on_error:
            try:
                self._store.delete_document(document.id)
            except Exception:
                # The document is still marked failed below, so its chunks are never used.
                logger.exception("Could not purge chunks of failed document %s", document.id)
        return self._repository.transition(document.id, DocumentStatus.ERROR, error=message)
