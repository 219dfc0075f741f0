"""Answer composer — turn ranked evidence into a grounded answer.

The composer never calls the generation service without evidence: an
empty :class:`RetrievalResult` short-circuits to the fixed
:data:`DECLINE_MESSAGE` with no sources.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Callable

from grounded_rag.errors import GenerationError, RetrievalError
from grounded_rag.generation.models import UNKNOWN_SOURCE, Answer, SourceDetail
from grounded_rag.generation.prompts import DECLINE_MESSAGE, build_context, build_grounded_prompt

if TYPE_CHECKING:
    from langchain_core.language_models.chat_models import BaseChatModel
    from langchain_core.messages import BaseMessage

    from grounded_rag.retrieval.models import RetrievalResult, RetrievedChunk

logger = logging.getLogger(__name__)

FilenameLookup = Callable[[list[str]], dict[str, str]]


class AnswerComposer:
    """Build the grounded prompt, call the chat model once, attach provenance.

    Parameters
    ----------
    llm:
        Chat model, already configured with a low temperature and an
        output-token limit (see :func:`grounded_rag.generation.llm.get_llm`).
    lookup_filenames:
        Maps document ids to display names; unknown ids may be omitted.
    max_context_chars:
        Upper bound on the context block handed to the model.
    timeout:
        Seconds allowed for the generation call on the async path.
    """

    def __init__(
        self,
        llm: BaseChatModel,
        lookup_filenames: FilenameLookup,
        *,
        max_context_chars: int = 6000,
        timeout: float = 30.0,
    ) -> None:
        self._llm = llm
        self._lookup_filenames = lookup_filenames
        self.max_context_chars = max_context_chars
        self.timeout = timeout

    @staticmethod
    def decline() -> Answer:
        return Answer(text=DECLINE_MESSAGE, sources=[])

    def compose(self, question: str, evidence: RetrievalResult) -> Answer:
        """Answer *question* strictly from *evidence*.

        Raises
        ------
        GenerationError
            When the chat model call fails or returns nothing.
        """
        if not evidence.has_evidence:
            logger.info("No evidence above threshold for bot %s; declining", evidence.bot_id)
            return self.decline()

        used, messages = self._prepare(question, evidence)
        sources = self._sources(used)
        try:
            response = self._llm.invoke(messages)
        except Exception as exc:
            raise GenerationError(f"Chat completion failed: {exc}") from exc
        return Answer(text=_response_text(response), sources=sources)

    async def acompose(self, question: str, evidence: RetrievalResult) -> Answer:
        """Async variant of :meth:`compose`; cancelling the caller cancels the call."""
        if not evidence.has_evidence:
            logger.info("No evidence above threshold for bot %s; declining", evidence.bot_id)
            return self.decline()

        used, messages = self._prepare(question, evidence)
        sources = await asyncio.to_thread(self._sources, used)
        try:
            response = await asyncio.wait_for(self._llm.ainvoke(messages), timeout=self.timeout)
        except asyncio.TimeoutError as exc:
            raise GenerationError(f"Chat completion timed out after {self.timeout}s") from exc
        except Exception as exc:
            raise GenerationError(f"Chat completion failed: {exc}") from exc
        return Answer(text=_response_text(response), sources=sources)

    # -- internals ------------------------------------------------------------

    def _prepare(
        self, question: str, evidence: RetrievalResult
    ) -> tuple[list[RetrievedChunk], list[BaseMessage]]:
        contents = build_context([item.content for item in evidence.items], self.max_context_chars)
        used = evidence.items[: len(contents)]
        if len(used) < len(evidence.items):
            logger.debug("Context limit kept %d of %d passages", len(used), len(evidence.items))
        return used, build_grounded_prompt(question, "\n\n".join(contents))

    def _sources(self, used: list[RetrievedChunk]) -> list[SourceDetail]:
        document_ids = list(dict.fromkeys(item.document_id for item in used))
        try:
            names = self._lookup_filenames(document_ids)
        except Exception as exc:
            raise RetrievalError(f"Source name lookup failed: {exc}") from exc
        return [
            SourceDetail(
                content=item.content,
                similarity=item.similarity,
                filename=names.get(item.document_id, UNKNOWN_SOURCE),
            )
            for item in used
        ]


def _response_text(response: object) -> str:
    content = getattr(response, "content", "")
    if isinstance(content, list):
        content = "".join(part if isinstance(part, str) else part.get("text", "") for part in content)
    if not content or not content.strip():
        raise GenerationError("Chat completion returned an empty answer")
    return content
