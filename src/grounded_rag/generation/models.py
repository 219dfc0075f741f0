"""Answer models returned to callers."""

from __future__ import annotations

from pydantic import BaseModel, Field

UNKNOWN_SOURCE = "Unknown source"


class SourceDetail(BaseModel):
    """One piece of evidence behind an answer."""

    content: str
    similarity: float
    filename: str = UNKNOWN_SOURCE


class Answer(BaseModel):
    """Grounded answer plus the evidence it was built from.

    ``sources`` keeps every chunk (with its own similarity); ``filenames``
    is the de-duplicated list of documents behind them, in ranked order.
    """

    text: str
    sources: list[SourceDetail] = Field(default_factory=list)

    @property
    def filenames(self) -> list[str]:
        return list(dict.fromkeys(source.filename for source in self.sources))

    @property
    def declined(self) -> bool:
        return not self.sources
