"""Bot and document persistence operations.

Every method runs in its own transaction, so a status change is atomic
per document row and concurrent ingestions of different documents never
share state beyond the database.
"""

from __future__ import annotations

import logging

from sqlalchemy import delete, select
from sqlalchemy.orm import Session, sessionmaker

from grounded_rag.errors import InvalidTransitionError, NotFoundOrNotOwnedError
from grounded_rag.models import Bot, Document, DocumentStatus, MediaType
from grounded_rag.storage.records import BotRecord, DocumentRecord

logger = logging.getLogger(__name__)


def _to_bot(record: BotRecord) -> Bot:
    return Bot(
        id=record.id,
        owner_id=record.owner_id,
        name=record.name,
        similarity_threshold=record.similarity_threshold,
        match_count=record.match_count,
        created_at=record.created_at,
    )


def _to_document(record: DocumentRecord) -> Document:
    return Document(
        id=record.id,
        bot_id=record.bot_id,
        owner_id=record.owner_id,
        name=record.name,
        media_type=MediaType(record.media_type),
        size=record.size,
        status=DocumentStatus(record.status),
        error=record.error,
        created_at=record.created_at,
        updated_at=record.updated_at,
    )


class DocumentRepository:
    """CRUD for :class:`Bot` and :class:`Document` records.

    Parameters
    ----------
    session_factory:
        A SQLAlchemy ``sessionmaker`` (see
        :func:`grounded_rag.storage.db.get_session_factory`).
    """

    def __init__(self, session_factory: sessionmaker) -> None:
        self._session_factory = session_factory

    # -- bots -----------------------------------------------------------------

    def create_bot(self, bot: Bot) -> Bot:
        with self._session_factory() as session, session.begin():
            record = BotRecord(
                id=bot.id,
                owner_id=bot.owner_id,
                name=bot.name,
                similarity_threshold=bot.similarity_threshold,
                match_count=bot.match_count,
                created_at=bot.created_at,
            )
            session.add(record)
        return _to_bot(record)

    def get_owned_bot(self, bot_id: str, owner_id: str) -> Bot:
        """Return the bot only if *owner_id* owns it.

        Raises
        ------
        NotFoundOrNotOwnedError
            When the bot does not exist or belongs to another owner; the
            two cases are deliberately indistinguishable to callers.
        """
        with self._session_factory() as session:
            record = session.get(BotRecord, bot_id)
            if record is None or record.owner_id != owner_id:
                raise NotFoundOrNotOwnedError(
                    f"Bot {bot_id!r} not found for owner {owner_id!r}",
                    public_message="Bot not found",
                )
            return _to_bot(record)

    def delete_bot(self, bot_id: str) -> int:
        """Delete a bot and its document records; returns the documents removed."""
        with self._session_factory() as session, session.begin():
            removed = session.execute(
                delete(DocumentRecord).where(DocumentRecord.bot_id == bot_id)
            ).rowcount
            session.execute(delete(BotRecord).where(BotRecord.id == bot_id))
        logger.info("Deleted bot %s with %d document record(s)", bot_id, removed)
        return removed

    # -- documents ------------------------------------------------------------

    def create_document(self, document: Document) -> Document:
        with self._session_factory() as session, session.begin():
            record = DocumentRecord(
                id=document.id,
                bot_id=document.bot_id,
                owner_id=document.owner_id,
                name=document.name,
                media_type=document.media_type.value,
                size=document.size,
                status=document.status.value,
                error=document.error,
                created_at=document.created_at,
                updated_at=document.updated_at,
            )
            session.add(record)
        logger.debug("Created document %s (%s) in bot %s", document.id, document.status.value, document.bot_id)
        return _to_document(record)

    def get_document(self, document_id: str) -> Document:
        with self._session_factory() as session:
            return _to_document(self._load(session, document_id))

    def get_owned_document(self, document_id: str, owner_id: str) -> Document:
        with self._session_factory() as session:
            record = session.get(DocumentRecord, document_id)
            if record is None or record.owner_id != owner_id:
                raise NotFoundOrNotOwnedError(
                    f"Document {document_id!r} not found for owner {owner_id!r}",
                    public_message="Document not found",
                )
            return _to_document(record)

    def list_documents(self, bot_id: str) -> list[Document]:
        with self._session_factory() as session:
            stmt = (
                select(DocumentRecord)
                .where(DocumentRecord.bot_id == bot_id)
                .order_by(DocumentRecord.created_at, DocumentRecord.id)
            )
            return [_to_document(r) for r in session.scalars(stmt)]

    def get_names(self, document_ids: list[str]) -> dict[str, str]:
        """Map document ids to display names; unknown ids are omitted."""
        if not document_ids:
            return {}
        with self._session_factory() as session:
            stmt = select(DocumentRecord.id, DocumentRecord.name).where(
                DocumentRecord.id.in_(document_ids)
            )
            return {row.id: row.name for row in session.execute(stmt)}

    def completed_ids(self, document_ids: list[str]) -> set[str]:
        """Return the subset of *document_ids* whose ingestion completed."""
        if not document_ids:
            return set()
        with self._session_factory() as session:
            stmt = select(DocumentRecord.id).where(
                DocumentRecord.id.in_(document_ids),
                DocumentRecord.status == DocumentStatus.COMPLETED.value,
            )
            return set(session.scalars(stmt))

    def unusable_ids(self, bot_id: str) -> list[str]:
        """Ids of *bot_id*'s documents that are not ``completed``."""
        with self._session_factory() as session:
            stmt = select(DocumentRecord.id).where(
                DocumentRecord.bot_id == bot_id,
                DocumentRecord.status != DocumentStatus.COMPLETED.value,
            )
            return sorted(session.scalars(stmt))

    def transition(
        self,
        document_id: str,
        status: DocumentStatus,
        *,
        error: str | None = None,
    ) -> Document:
        """Move a document to *status*, enforcing the lifecycle state machine.

        Raises
        ------
        InvalidTransitionError
            When the current status does not allow moving to *status*
            (e.g. resurrecting a ``completed`` or ``error`` document).
        """
        with self._session_factory() as session, session.begin():
            record = self._load(session, document_id, for_update=True)
            current = DocumentStatus(record.status)
            if not current.can_transition_to(status):
                raise InvalidTransitionError(
                    f"Document {document_id} cannot move from {current.value} to {status.value}"
                )
            record.status = status.value
            record.error = error
        logger.info("Document %s: %s -> %s", document_id, current.value, status.value)
        return _to_document(record)

    def delete_document(self, document_id: str) -> None:
        with self._session_factory() as session, session.begin():
            session.delete(self._load(session, document_id))

    # -- internals ------------------------------------------------------------

    @staticmethod
    def _load(session: Session, document_id: str, *, for_update: bool = False) -> DocumentRecord:
        stmt = select(DocumentRecord).where(DocumentRecord.id == document_id)
        if for_update:
            stmt = stmt.with_for_update()
        record = session.scalars(stmt).first()
        if record is None:
            raise NotFoundOrNotOwnedError(
                f"Document {document_id!r} not found", public_message="Document not found"
            )
        return record
