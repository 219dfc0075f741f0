"""Prompt templates for grounded answering.

Keeping prompts in one place makes them easy to audit and version.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from langchain_core.messages import HumanMessage, SystemMessage

if TYPE_CHECKING:
    from langchain_core.messages import BaseMessage

DECLINE_MESSAGE = (
    "I apologize, but I don't have enough specific information in my knowledge base "
    "to answer that question accurately. I can only provide information that is "
    "directly contained in my training documents."
)

GROUNDED_ANSWER_SYSTEM = """\
You are a helpful AI assistant that ONLY answers questions based on the provided context.
If the context doesn't contain enough specific information to answer the question
accurately and completely, respond with exactly:
"{decline}"

NEVER make up or infer information that isn't explicitly present in the context.
NEVER use your general knowledge to answer questions.
ONLY use information that is directly provided in the context.

Format your responses using HTML for better readability:
- Use <h2> for main headers
- Use <h3> for subsections
- Use <strong> for emphasis
- Use <ul> and <li> for unordered lists
- Use <ol> and <li> for ordered lists

Here is the context to use for answering the question:

{context}
"""


def build_context(contents: list[str], max_chars: int) -> list[str]:
    """Return the leading *contents* that fit in *max_chars* (joined by blank lines).

    The first passage is always kept, truncated if it alone is too long,
    so a non-empty evidence list never produces an empty context.
    """
    kept: list[str] = []
    used = 0
    for content in contents:
        cost = len(content) + (2 if kept else 0)
        if used + cost > max_chars:
            if not kept:
                kept.append(content[:max_chars])
            break
        kept.append(content)
        used += cost
    return kept


def build_grounded_prompt(question: str, context: str) -> list[BaseMessage]:
    """Build the system + user messages for a grounded answer."""
    return [
        SystemMessage(content=GROUNDED_ANSWER_SYSTEM.format(decline=DECLINE_MESSAGE, context=context)),
        HumanMessage(content=question),
    ]
