"""Unit tests for the ingestion pipeline and its document lifecycle."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from grounded_rag.errors import InvalidInputError, InvalidTransitionError, UnsupportedTypeError
from grounded_rag.ingestion.embedder import Embedder
from grounded_rag.ingestion.pipeline import IngestionPipeline
from grounded_rag.models import Bot, Document, DocumentStatus, MediaType
from grounded_rag.storage.repository import DocumentRepository

from conftest import EMBEDDING_MODEL, InMemoryVectorStore, KeywordEmbeddings

LONG_TEXT = " ".join(f"Line {i} of the handbook covers topic {i}." for i in range(200))


def _pipeline(
    repository: DocumentRepository,
    store: InMemoryVectorStore,
    embeddings: KeywordEmbeddings | None = None,
    **kwargs,
) -> IngestionPipeline:
    embedder = Embedder(embeddings or KeywordEmbeddings(), model_name=EMBEDDING_MODEL, batch_size=3)
    kwargs.setdefault("chunk_size", 300)
    kwargs.setdefault("chunk_overlap", 30)
    return IngestionPipeline(repository, store, embedder, **kwargs)


class TestAccept:
    def test_unsupported_type_rejected_before_record(
        self, pipeline: IngestionPipeline, repository: DocumentRepository, bot: Bot
    ) -> None:
        with pytest.raises(UnsupportedTypeError):
            pipeline.accept(bot, filename="x.png", media_type="image/png", data=b"\x89PNG")
        assert repository.list_documents(bot.id) == []

    @pytest.mark.parametrize("filename", ["", "   "])
    def test_missing_file_name_rejected(
        self, pipeline: IngestionPipeline, bot: Bot, filename: str
    ) -> None:
        with pytest.raises(InvalidInputError, match="Missing file name"):
            pipeline.accept(bot, filename=filename, media_type="text/plain", data=b"text")

    def test_oversized_upload_rejected(
        self, repository: DocumentRepository, store: InMemoryVectorStore, bot: Bot
    ) -> None:
        pipeline = _pipeline(repository, store, max_upload_bytes=10)
        with pytest.raises(InvalidInputError, match="too large"):
            pipeline.accept(bot, filename="a.txt", media_type="text/plain", data=b"x" * 11)

    def test_record_created_in_processing(self, pipeline: IngestionPipeline, bot: Bot) -> None:
        doc = pipeline.accept(bot, filename="faq.md", media_type="text/markdown", data=b"# FAQ")
        assert doc.status is DocumentStatus.PROCESSING
        assert doc.media_type is MediaType.MARKDOWN
        assert doc.size == 5
        assert doc.bot_id == bot.id


class TestProcess:
    def test_success_writes_every_chunk(
        self, repository: DocumentRepository, store: InMemoryVectorStore, bot: Bot
    ) -> None:
        doc = _pipeline(repository, store).ingest(
            bot, filename="handbook.txt", media_type="text/plain", data=LONG_TEXT.encode()
        )
        assert doc.status is DocumentStatus.COMPLETED
        assert doc.error is None
        assert len(store.chunks) > 1
        assert all(c.document_id == doc.id and c.bot_id == bot.id for c in store.chunks)
        assert all(len(c.content) <= 300 for c in store.chunks)
        assert [c.metadata["chunk_index"] for c in store.chunks] == list(range(len(store.chunks)))
        assert all(c.metadata["embedding_model"] == EMBEDDING_MODEL for c in store.chunks)

    def test_chunk_offsets_point_into_source(
        self, repository: DocumentRepository, store: InMemoryVectorStore, bot: Bot
    ) -> None:
        _pipeline(repository, store).ingest(
            bot, filename="handbook.txt", media_type="text/plain", data=LONG_TEXT.encode()
        )
        for chunk in store.chunks:
            start = chunk.metadata["start_index"]
            assert LONG_TEXT[start : start + len(chunk.content)] == chunk.content

    def test_blank_document_completes_with_zero_chunks(
        self, pipeline: IngestionPipeline, store: InMemoryVectorStore, bot: Bot
    ) -> None:
        doc = pipeline.ingest(bot, filename="blank.txt", media_type="text/plain", data=b"   \n\n ")
        assert doc.status is DocumentStatus.COMPLETED
        assert store.chunks == []

    @pytest.mark.parametrize("media_type", ["text/plain", "text/markdown"])
    def test_zero_byte_text_completes_with_zero_chunks(
        self, pipeline: IngestionPipeline, store: InMemoryVectorStore, bot: Bot, media_type: str
    ) -> None:
        doc = pipeline.ingest(bot, filename="empty.txt", media_type=media_type, data=b"")
        assert doc.status is DocumentStatus.COMPLETED
        assert doc.size == 0
        assert store.chunks == []

    def test_zero_byte_pdf_marks_error(self, pipeline: IngestionPipeline, bot: Bot) -> None:
        doc = pipeline.ingest(bot, filename="empty.pdf", media_type="application/pdf", data=b"")
        assert doc.status is DocumentStatus.ERROR
        assert doc.error

    def test_extraction_failure_marks_error(
        self, pipeline: IngestionPipeline, store: InMemoryVectorStore, bot: Bot
    ) -> None:
        doc = pipeline.ingest(bot, filename="bad.txt", media_type="text/plain", data=b"\xff\xfe\xfa")
        assert doc.status is DocumentStatus.ERROR
        assert "UTF-8" in doc.error
        assert store.chunks == []

    def test_corrupt_pdf_marks_error(self, pipeline: IngestionPipeline, bot: Bot) -> None:
        doc = pipeline.ingest(bot, filename="bad.pdf", media_type="application/pdf", data=b"garbage")
        assert doc.status is DocumentStatus.ERROR
        assert doc.error

    def test_embedding_failure_mid_document_purges_chunks(
        self, repository: DocumentRepository, store: InMemoryVectorStore, bot: Bot
    ) -> None:
        embeddings = KeywordEmbeddings(fail_on="topic 150")
        doc = _pipeline(repository, store, embeddings).ingest(
            bot, filename="handbook.txt", media_type="text/plain", data=LONG_TEXT.encode()
        )
        assert doc.status is DocumentStatus.ERROR
        assert "Embedding chunks" in doc.error
        assert store.chunks == []

    def test_partial_chunks_kept_when_purge_disabled(
        self, repository: DocumentRepository, bot: Bot
    ) -> None:
        store = InMemoryVectorStore(fail_after=2)
        doc = _pipeline(repository, store, purge_chunks_on_error=False).ingest(
            bot, filename="handbook.txt", media_type="text/plain", data=LONG_TEXT.encode()
        )
        assert doc.status is DocumentStatus.ERROR
        assert "Storing chunk 2 failed" in doc.error
        assert len(store.chunks) == 2

    def test_chunk_store_failure_purges_by_default(
        self, repository: DocumentRepository, bot: Bot
    ) -> None:
        store = InMemoryVectorStore(fail_after=2)
        doc = _pipeline(repository, store).ingest(
            bot, filename="handbook.txt", media_type="text/plain", data=LONG_TEXT.encode()
        )
        assert doc.status is DocumentStatus.ERROR
        assert store.chunks == []

    def test_unexpected_error_still_ends_terminal(
        self, pipeline: IngestionPipeline, repository: DocumentRepository, bot: Bot
    ) -> None:
        doc = pipeline.accept(bot, filename="a.txt", media_type="text/plain", data=b"hello")
        with patch(
            "grounded_rag.ingestion.pipeline.split_spans", side_effect=RuntimeError("kaboom")
        ):
            with pytest.raises(RuntimeError, match="kaboom"):
                pipeline.process(doc, b"hello")
        stored = repository.get_document(doc.id)
        assert stored.status is DocumentStatus.ERROR
        assert "RuntimeError" in stored.error

    def test_failed_completion_write_ends_in_error(
        self,
        pipeline: IngestionPipeline,
        repository: DocumentRepository,
        store: InMemoryVectorStore,
        bot: Bot,
    ) -> None:
        doc = pipeline.accept(bot, filename="refunds.txt", media_type="text/plain", data=b"refund text")
        transition = repository.transition

        def fail_on_completed(document_id: str, status: DocumentStatus, **kwargs) -> Document:
            if status is DocumentStatus.COMPLETED:
                raise OperationalError("UPDATE documents", {}, Exception("database is locked"))
            return transition(document_id, status, **kwargs)

        with patch.object(repository, "transition", side_effect=fail_on_completed):
            with pytest.raises(OperationalError):
                pipeline.process(doc, b"refund text")

        stored = repository.get_document(doc.id)
        assert stored.status is DocumentStatus.ERROR
        assert "OperationalError" in stored.error
        assert store.chunks == []

    def test_pending_document_passes_through_processing(
        self, pipeline: IngestionPipeline, repository: DocumentRepository, bot: Bot
    ) -> None:
        pending = repository.create_document(
            Document(
                bot_id=bot.id,
                owner_id=bot.owner_id,
                name="a.txt",
                media_type=MediaType.TEXT,
                size=5,
                status=DocumentStatus.PENDING,
            )
        )
        assert pipeline.process(pending, b"hello").status is DocumentStatus.COMPLETED

    def test_terminal_document_cannot_be_reprocessed(
        self, pipeline: IngestionPipeline, bot: Bot
    ) -> None:
        doc = pipeline.ingest(bot, filename="a.txt", media_type="text/plain", data=b"hello")
        with pytest.raises(InvalidTransitionError):
            pipeline.process(doc, b"hello")

    def test_reingestion_creates_new_document(
        self, pipeline: IngestionPipeline, store: InMemoryVectorStore, bot: Bot
    ) -> None:
        first = pipeline.ingest(bot, filename="a.txt", media_type="text/plain", data=b"hello")
        second = pipeline.ingest(bot, filename="a.txt", media_type="text/plain", data=b"hello")
        assert first.id != second.id
        assert len(store.chunks) == 2
