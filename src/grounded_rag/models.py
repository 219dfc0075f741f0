"""Domain entities shared across ingestion, retrieval and storage.

These are the explicit, typed counterparts of the rows kept in the
relational store (:class:`Bot`, :class:`Document`) and in the vector
store (:class:`Chunk`).  Status changes go through
:meth:`DocumentStatus.can_transition_to` so the
``pending → processing → {completed | error}`` machine is checked in
exactly one place.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from grounded_rag.errors import UnsupportedTypeError


def new_id() -> str:
    return uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MediaType(str, Enum):
    """Allow-list of document types the extractor understands."""

    PDF = "pdf"
    TEXT = "text"
    MARKDOWN = "markdown"

    @property
    def mime_type(self) -> str:
        return _MIME_BY_TYPE[self]

    @classmethod
    def from_declared(cls, declared: str) -> MediaType:
        """Resolve a declared MIME type (or short name) against the allow-list.

        Raises
        ------
        UnsupportedTypeError
            When *declared* is not one of PDF, plain text or Markdown.
        """
        key = (declared or "").split(";", 1)[0].strip().lower()
        for media_type, mime in _MIME_BY_TYPE.items():
            if key in (mime, media_type.value):
                return media_type
        raise UnsupportedTypeError(f"Unsupported media type: {declared!r}")


_MIME_BY_TYPE = {
    MediaType.PDF: "application/pdf",
    MediaType.TEXT: "text/plain",
    MediaType.MARKDOWN: "text/markdown",
}


class DocumentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (DocumentStatus.COMPLETED, DocumentStatus.ERROR)

    def can_transition_to(self, target: DocumentStatus) -> bool:
        return target in _TRANSITIONS[self]


_TRANSITIONS: dict[DocumentStatus, frozenset[DocumentStatus]] = {
    DocumentStatus.PENDING: frozenset({DocumentStatus.PROCESSING}),
    DocumentStatus.PROCESSING: frozenset({DocumentStatus.COMPLETED, DocumentStatus.ERROR}),
    DocumentStatus.COMPLETED: frozenset(),
    DocumentStatus.ERROR: frozenset(),
}


class Bot(BaseModel):
    """Scoping unit — every document and chunk belongs to exactly one bot.

    ``similarity_threshold`` and ``match_count`` override the global
    retrieval defaults for this bot when set.
    """

    id: str = Field(default_factory=new_id)
    owner_id: str
    name: str
    similarity_threshold: float | None = Field(default=None, ge=0.0, le=1.0)
    match_count: int | None = Field(default=None, gt=0)
    created_at: datetime = Field(default_factory=utcnow)


class Document(BaseModel):
    """An uploaded source file and its processing state."""

    id: str = Field(default_factory=new_id)
    bot_id: str
    owner_id: str
    name: str
    media_type: MediaType
    size: int = Field(ge=0)
    status: DocumentStatus = DocumentStatus.PENDING
    error: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @property
    def is_usable(self) -> bool:
        """Only fully ingested documents should be treated as evidence."""
        return self.status is DocumentStatus.COMPLETED


class Chunk(BaseModel):
    """A bounded span of a document's text together with its embedding.

    Immutable once written; removed only together with its document.
    """

    model_config = {"frozen": True}

    id: str = Field(default_factory=new_id)
    document_id: str
    bot_id: str
    content: str
    embedding: list[float]
    metadata: dict[str, Any] = Field(default_factory=dict)

    @field_validator("content")
    @classmethod
    def _content_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("chunk content must not be blank")
        return value
