"""Grounded RAG — document ingestion and evidence-bound question answering."""

__version__ = "0.1.0"
