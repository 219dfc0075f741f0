"""
Ingestion — text extraction, chunking, and embedding into the chunk store.

This module is responsible for turning one uploaded file into embedded
chunks scoped to a bot, while driving the owning document through its
``pending → processing → {completed | error}`` lifecycle.
"""
