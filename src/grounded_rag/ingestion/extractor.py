"""Text extraction — turn raw uploaded bytes into plain text."""

from __future__ import annotations

import io
import logging

from pypdf import PdfReader
from pypdf.errors import PyPdfError

from grounded_rag.errors import ExtractionError
from grounded_rag.models import MediaType

logger = logging.getLogger(__name__)


def extract_text(data: bytes, media_type: MediaType) -> str:
    """Return the plain text contained in *data*.

    Parameters
    ----------
    data:
        Raw file contents.
    media_type:
        Declared type, already validated against :class:`MediaType`.

    Raises
    ------
    ExtractionError
        When the file is corrupt, encrypted, or not valid UTF-8 text.
    """
    if media_type is MediaType.PDF:
        return extract_pdf(data)
    return decode_text(data)


def extract_pdf(data: bytes) -> str:
    """Extract per-page text and join pages with newlines."""
    try:
        reader = PdfReader(io.BytesIO(data))
        if reader.is_encrypted:
            raise ExtractionError("PDF is encrypted")
        pages = [page.extract_text() or "" for page in reader.pages]
    except ExtractionError:
        raise
    except (PyPdfError, ValueError, KeyError, TypeError, IndexError, AttributeError) as exc:
        raise ExtractionError(f"Could not parse PDF: {exc}") from exc

    logger.debug("Extracted %d PDF page(s)", len(pages))
    return "\n".join(pages)


def decode_text(data: bytes) -> str:
    """Decode plain-text / Markdown bytes, stripping a UTF-8 BOM if present."""
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ExtractionError(f"File is not valid UTF-8 text: {exc.reason}") from exc
