"""
Generation — grounded prompt construction and answer composition.

Public API
----------
- :class:`AnswerComposer` — turns ranked evidence into an :class:`Answer`.
- :data:`DECLINE_MESSAGE` — the fixed reply used when no evidence survives.
"""

from grounded_rag.generation.composer import AnswerComposer
from grounded_rag.generation.models import Answer, SourceDetail
from grounded_rag.generation.prompts import DECLINE_MESSAGE

__all__ = ["Answer", "AnswerComposer", "DECLINE_MESSAGE", "SourceDetail"]
