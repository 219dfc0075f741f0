"""Text chunking strategies.

Chunks are produced in two steps:

1. ``RecursiveCharacterTextSplitter`` cuts the text into non-overlapping
   base spans of at most ``chunk_size - chunk_overlap`` characters,
   preferring paragraph, then line, then sentence, then word boundaries.
2. Every span after the first is extended backwards into its
   predecessor by up to ``chunk_overlap`` characters, snapped forward to
   the next word boundary so the overlap never starts mid-word.

Because the overlap is carved out of the size limit, every chunk is at
most ``chunk_size`` characters and every chunk ``i > 0`` starts with a
suffix of chunk ``i - 1``.
"""

from __future__ import annotations

import re
from typing import NamedTuple

from langchain_text_splitters import RecursiveCharacterTextSplitter

from grounded_rag.errors import InvalidInputError

SEPARATORS = ["\n\n", "\n", ". ", " ", ""]

_WHITESPACE = re.compile(r"\s+")


class TextSpan(NamedTuple):
    """A chunk of text and its ``[start, end)`` offsets in the source."""

    content: str
    start: int
    end: int


def split_text(text: str, chunk_size: int = 1500, chunk_overlap: int = 150) -> list[str]:
    """Split *text* into ordered, overlapping chunks.

    Parameters
    ----------
    text:
        Extracted document text.
    chunk_size:
        Maximum number of characters per chunk.
    chunk_overlap:
        Maximum number of characters shared with the previous chunk.

    Returns
    -------
    list[str]
        Chunks in source order; empty when *text* is blank.
    """
    return [span.content for span in split_spans(text, chunk_size, chunk_overlap)]


def split_spans(text: str, chunk_size: int = 1500, chunk_overlap: int = 150) -> list[TextSpan]:
    """Same as :func:`split_text` but keeps the source offsets of each chunk."""
    _validate(chunk_size, chunk_overlap)
    if not text or not text.strip():
        return []

    splitter = RecursiveCharacterTextSplitter(
        chunk_size=chunk_size - chunk_overlap,
        chunk_overlap=0,
        length_function=len,
        separators=SEPARATORS,
        keep_separator="end",
    )

    spans: list[TextSpan] = []
    cursor = 0
    for piece in splitter.split_text(text):
        start = text.find(piece, cursor)
        if start < 0:
            # The splitter only strips whitespace, so this is unreachable
            # unless the library changes its contract.
            raise InvalidInputError("Chunk boundaries could not be located in source text")
        end = start + len(piece)
        cursor = end
        if spans and chunk_overlap:
            start = _overlap_start(text, spans[-1], start, chunk_overlap)
        spans.append(TextSpan(text[start:end], start, end))
    return spans


def _overlap_start(text: str, previous: TextSpan, start: int, chunk_overlap: int) -> int:
    lo = max(previous.start, start - chunk_overlap)
    if lo >= previous.end:
        return start

    if lo > previous.start and not text[lo - 1].isspace():
        match = _WHITESPACE.search(text, lo, previous.end)
        if match is not None and match.end() < previous.end:
            lo = match.end()
    while lo < previous.end and text[lo].isspace():
        lo += 1
    return lo


def _validate(chunk_size: int, chunk_overlap: int) -> None:
    if chunk_size <= 0:
        raise InvalidInputError(f"chunk_size must be positive, got {chunk_size}")
    if not 0 <= chunk_overlap < chunk_size:
        raise InvalidInputError(
            f"chunk_overlap must be in [0, chunk_size), got {chunk_overlap} for chunk_size={chunk_size}"
        )
