"""Domain models for retrieval results."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class MetadataFilter(BaseModel):
    """Declarative metadata filter for vector-store queries.

    Attributes
    ----------
    field:
        The metadata key to filter on (e.g. ``"bot_id"``, ``"document_id"``).
    operator:
        Comparison operator — one of ``eq``, ``ne``, ``gt``, ``gte``,
        ``lt``, ``lte``, ``in``, ``nin``.
    value:
        The value (or list of values for ``in`` / ``nin``) to compare against.
    """

    field: str
    operator: str = "eq"
    value: Any = None

    # -- helpers for common filters ------------------------------------------

    @classmethod
    def equals(cls, field: str, value: Any) -> MetadataFilter:
        return cls(field=field, operator="eq", value=value)

    @classmethod
    def one_of(cls, field: str, values: list[Any]) -> MetadataFilter:
        return cls(field=field, operator="in", value=values)

    def matches(self, metadata: dict[str, Any]) -> bool:
        """Evaluate the filter against a metadata dict (for in-process backends)."""
        actual = metadata.get(self.field)
        op = self.operator
        if op == "eq":
            return actual == self.value
        if op == "ne":
            return actual != self.value
        if op == "in":
            return actual in self.value
        if op == "nin":
            return actual not in self.value
        if actual is None:
            return False
        if op == "gt":
            return actual > self.value
        if op == "gte":
            return actual >= self.value
        if op == "lt":
            return actual < self.value
        if op == "lte":
            return actual <= self.value
        raise ValueError(f"Unsupported filter operator: {op!r}")


class RetrievedChunk(BaseModel):
    """One piece of evidence: a chunk and how similar it is to the question."""

    chunk_id: str
    document_id: str
    bot_id: str
    content: str
    similarity: float
    metadata: dict[str, Any] = Field(default_factory=dict)

    def __str__(self) -> str:  # noqa: D105
        return f"[{self.document_id}@{self.similarity:.3f}] {self.content[:120]}…"


class RetrievalResult(BaseModel):
    """Ranked evidence for one question.

    An empty ``items`` list is the explicit "no evidence" outcome — a
    valid result, not an error.
    """

    bot_id: str
    question: str
    items: list[RetrievedChunk] = Field(default_factory=list)
    candidate_count: int = 0

    @property
    def has_evidence(self) -> bool:
        return bool(self.items)

    @property
    def document_ids(self) -> list[str]:
        """Distinct source document ids, in ranked order."""
        return list(dict.fromkeys(item.document_id for item in self.items))
