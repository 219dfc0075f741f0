"""
Storage — relational persistence for bots and documents (SQLAlchemy).

Chunks live in the vector store (:mod:`grounded_rag.retrieval`); this
package only keeps the records that need transactional status updates.
"""

from grounded_rag.storage.db import Base, create_engine_from_url, get_session_factory
from grounded_rag.storage.repository import DocumentRepository

__all__ = ["Base", "DocumentRepository", "create_engine_from_url", "get_session_factory"]
