"""Service layer — the operations exposed to HTTP and CLI callers.

:class:`RagService` owns long-lived handles to the stores and upstream
clients and performs the bot-ownership check before any ingestion,
retrieval or document access.  Callers supply a caller identity that an
external auth provider has already verified.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from grounded_rag.config import settings
from grounded_rag.errors import ChunkStoreError, InvalidInputError, UnauthenticatedError
from grounded_rag.models import Bot, Document

if TYPE_CHECKING:
    from grounded_rag.generation.composer import AnswerComposer
    from grounded_rag.generation.models import Answer
    from grounded_rag.ingestion.pipeline import IngestionPipeline
    from grounded_rag.retrieval.base import VectorStoreBase
    from grounded_rag.retrieval.models import RetrievalResult
    from grounded_rag.retrieval.retriever import Retriever
    from grounded_rag.storage.repository import DocumentRepository

logger = logging.getLogger(__name__)

MAX_QUESTION_CHARS = 4000


class RagService:
    """Facade combining ingestion, retrieval and answering for one deployment."""

    def __init__(
        self,
        repository: DocumentRepository,
        store: VectorStoreBase,
        pipeline: IngestionPipeline,
        retriever: Retriever,
        composer: AnswerComposer,
    ) -> None:
        self.repository = repository
        self.store = store
        self.pipeline = pipeline
        self.retriever = retriever
        self.composer = composer

    @classmethod
    def from_settings(cls) -> RagService:
        """Wire the default stack (SQLAlchemy + Chroma + LangChain clients)."""
        from grounded_rag.generation.composer import AnswerComposer
        from grounded_rag.generation.llm import get_llm
        from grounded_rag.ingestion.embedder import Embedder
        from grounded_rag.ingestion.pipeline import IngestionPipeline
        from grounded_rag.retrieval.chroma_store import ChromaVectorStore
        from grounded_rag.retrieval.retriever import Retriever
        from grounded_rag.storage.db import create_engine_from_url, get_session_factory
        from grounded_rag.storage.repository import DocumentRepository

        repository = DocumentRepository(get_session_factory(create_engine_from_url(settings.database_url)))
        store = ChromaVectorStore()
        embedder = Embedder.from_settings()
        pipeline = IngestionPipeline(
            repository,
            store,
            embedder,
            chunk_size=settings.chunk_size,
            chunk_overlap=settings.chunk_overlap,
            max_upload_bytes=settings.max_upload_bytes,
            purge_chunks_on_error=settings.purge_chunks_on_error,
        )
        retriever = Retriever(
            store,
            embedder,
            default_k=settings.match_count,
            score_threshold=settings.similarity_threshold,
        )
        composer = AnswerComposer(
            get_llm(),
            repository.get_names,
            max_context_chars=settings.max_context_chars,
            timeout=settings.request_timeout_seconds,
        )
        return cls(repository, store, pipeline, retriever, composer)

    # -- bots -----------------------------------------------------------------

    def create_bot(
        self,
        owner_id: str,
        name: str,
        *,
        similarity_threshold: float | None = None,
        match_count: int | None = None,
    ) -> Bot:
        _require_caller(owner_id)
        if not name or not name.strip():
            raise InvalidInputError("Bot name is required")
        bot = Bot(
            owner_id=owner_id,
            name=name.strip(),
            similarity_threshold=similarity_threshold,
            match_count=match_count,
        )
        return self.repository.create_bot(bot)

    def get_bot(self, owner_id: str, bot_id: str) -> Bot:
        _require_caller(owner_id)
        if not bot_id:
            raise InvalidInputError("Missing botId")
        return self.repository.get_owned_bot(bot_id, owner_id)

    def delete_bot(self, owner_id: str, bot_id: str) -> int:
        """Delete a bot, its documents and all their chunks.

        Returns the number of documents removed.
        """
        bot = self.get_bot(owner_id, bot_id)
        documents = self.repository.list_documents(bot.id)
        if any(not d.status.is_terminal for d in documents):
            raise InvalidInputError("Bot has documents still being processed")
        for document in documents:
            try:
                self.store.delete_document(document.id)
            except Exception as exc:
                raise ChunkStoreError(f"Deleting chunks of {document.id} failed: {exc}") from exc
        return self.repository.delete_bot(bot.id)

    # -- ingestion ------------------------------------------------------------

    def accept_upload(
        self, owner_id: str, bot_id: str, *, filename: str, media_type: str, data: bytes
    ) -> Document:
        """Validate an upload and create its ``processing`` document record."""
        bot = self.get_bot(owner_id, bot_id)
        return self.pipeline.accept(bot, filename=filename, media_type=media_type, data=data)

    def process_upload(self, document: Document, data: bytes) -> Document:
        """Finish ingestion of an accepted upload (safe to run in the background)."""
        return self.pipeline.process(document, data)

    def ingest(
        self, owner_id: str, bot_id: str, *, filename: str, media_type: str, data: bytes
    ) -> Document:
        """Accept and process an upload synchronously."""
        document = self.accept_upload(
            owner_id, bot_id, filename=filename, media_type=media_type, data=data
        )
        return self.process_upload(document, data)

    # -- documents ------------------------------------------------------------

    def get_document(self, owner_id: str, document_id: str) -> Document:
        _require_caller(owner_id)
        return self.repository.get_owned_document(document_id, owner_id)

    def list_documents(self, owner_id: str, bot_id: str) -> list[Document]:
        bot = self.get_bot(owner_id, bot_id)
        return self.repository.list_documents(bot.id)

    def delete_document(self, owner_id: str, document_id: str) -> None:
        """Delete a document and every chunk derived from it.

        Chunks go first so a failure never leaves retrievable chunks
        behind a missing document record.
        """
        document = self.get_document(owner_id, document_id)
        if not document.status.is_terminal:
            raise InvalidInputError("Document is still being processed")
        try:
            self.store.delete_document(document.id)
        except Exception as exc:
            raise ChunkStoreError(f"Deleting chunks of {document.id} failed: {exc}") from exc
        self.repository.delete_document(document.id)
        logger.info("Deleted document %s from bot %s", document.id, document.bot_id)

    # -- answering ------------------------------------------------------------

    def ask(self, owner_id: str, bot_id: str, question: str) -> Answer:
        """Answer *question* from *bot_id*'s documents only."""
        question = _clean_question(question)
        bot = self.get_bot(owner_id, bot_id)
        evidence = self.retriever.retrieve(
            bot.id,
            question,
            k=bot.match_count,
            threshold=bot.similarity_threshold,
            exclude_document_ids=self.repository.unusable_ids(bot.id),
        )
        return self.composer.compose(question, self._usable_only(evidence))

    async def aask(self, owner_id: str, bot_id: str, question: str) -> Answer:
        """Async variant of :meth:`ask`; cancellation stops upstream calls."""
        question = _clean_question(question)
        bot = await asyncio.to_thread(self.get_bot, owner_id, bot_id)
        unusable = await asyncio.to_thread(self.repository.unusable_ids, bot.id)
        evidence = await self.retriever.aretrieve(
            bot.id,
            question,
            k=bot.match_count,
            threshold=bot.similarity_threshold,
            exclude_document_ids=unusable,
        )
        evidence = await asyncio.to_thread(self._usable_only, evidence)
        return await self.composer.acompose(question, evidence)

    def _usable_only(self, evidence: RetrievalResult) -> RetrievalResult:
        # Unusable documents are already excluded in the store query; this catches
        # documents that changed status between that query and now.
        if not evidence.has_evidence:
            return evidence
        usable = self.repository.completed_ids(evidence.document_ids)
        items = [item for item in evidence.items if item.document_id in usable]
        if len(items) < len(evidence.items):
            logger.info("Dropped %d chunk(s) from unusable documents", len(evidence.items) - len(items))
        return evidence.model_copy(update={"items": items})


def _require_caller(owner_id: str) -> None:
    if not owner_id:
        raise UnauthenticatedError("No verified caller identity")


def _clean_question(question: str) -> str:
    question = (question or "").strip()
    if not question:
        raise InvalidInputError("Missing question")
    if len(question) > MAX_QUESTION_CHARS:
        raise InvalidInputError(f"Question is too long (limit {MAX_QUESTION_CHARS} characters)")
    return question
