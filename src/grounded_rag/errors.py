"""Error taxonomy shared by ingestion, retrieval and answering.

Every error carries an :class:`ErrorCode` so outer layers (HTTP, CLI)
can translate failures without inspecting exception types, and a
``public_message`` that is safe to show to callers.  The original
exception text stays in ``str(exc)`` for logs.
"""

from __future__ import annotations

from enum import Enum


class ErrorCode(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    NOT_FOUND = "not_found"
    INVALID_INPUT = "invalid_input"
    UPSTREAM_FAILURE = "upstream_failure"
    INTERNAL = "internal"


class RagError(Exception):
    """Base class for all domain errors."""

    code: ErrorCode = ErrorCode.INTERNAL
    default_public_message = "An internal error occurred"

    def __init__(self, message: str = "", *, public_message: str | None = None) -> None:
        super().__init__(message or self.default_public_message)
        self.public_message = public_message or self.default_public_message


# -- caller errors ------------------------------------------------------------


class UnauthenticatedError(RagError):
    code = ErrorCode.UNAUTHENTICATED
    default_public_message = "Unauthorized"


class NotFoundOrNotOwnedError(RagError):
    """The bot or document does not exist, or belongs to someone else."""

    code = ErrorCode.NOT_FOUND
    default_public_message = "Not found"


class InvalidInputError(RagError):
    code = ErrorCode.INVALID_INPUT
    default_public_message = "Invalid input"

    def __init__(self, message: str = "", *, public_message: str | None = None) -> None:
        # Validation messages are written for callers, so expose them as-is.
        super().__init__(message, public_message=public_message or message or None)


class UnsupportedTypeError(InvalidInputError):
    default_public_message = "Invalid file type"


class ExtractionError(InvalidInputError):
    """The file could not be turned into text (corrupt, encrypted, bad encoding)."""

    default_public_message = "Could not extract text from file"


# -- upstream errors ----------------------------------------------------------


class EmbeddingError(RagError):
    code = ErrorCode.UPSTREAM_FAILURE
    default_public_message = "Embedding service failed"


class RetrievalError(RagError):
    code = ErrorCode.UPSTREAM_FAILURE
    default_public_message = "Failed to search knowledge base"


class GenerationError(RagError):
    code = ErrorCode.UPSTREAM_FAILURE
    default_public_message = "Failed to generate an answer"


class ChunkStoreError(RagError):
    code = ErrorCode.UPSTREAM_FAILURE
    default_public_message = "Failed to store document chunks"


# -- internal -----------------------------------------------------------------


class InvalidTransitionError(RagError):
    """A document status change that the state machine forbids."""
