"""Shared configuration loaded from environment / .env file."""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application-wide settings, populated from env vars or .env file."""

    # LLM
    openai_api_key: str = Field(default="", description="OpenAI API key (or dummy value for local vLLM)")
    llm_model_name: str = Field(default="gpt-3.5-turbo", description="Chat model identifier")
    llm_base_url: str = Field(
        default="",
        description=(
            "Base URL for an OpenAI-compatible API. Leave empty to use OpenAI cloud."
        ),
    )
    llm_temperature: float = 0.1
    llm_max_output_tokens: int = 500

    # Embedding
    embedding_provider: str = Field(default="huggingface", description="'huggingface' or 'openai'")
    embedding_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embedding_batch_size: int = 16

    # Vector store
    chroma_host: str = "localhost"
    chroma_port: int = 8000
    chroma_collection: str = "grounded_rag_chunks"
    chroma_persist_path: str = Field(
        default="",
        description="When set, use an embedded persistent Chroma client instead of the HTTP server.",
    )

    # Relational store
    database_url: str = "sqlite:///./grounded_rag.db"

    # Ingestion
    chunk_size: int = 1500
    chunk_overlap: int = 150
    max_upload_bytes: int = 10 * 1024 * 1024
    purge_chunks_on_error: bool = True

    # Retrieval / answering
    match_count: int = 5
    similarity_threshold: float = Field(default=0.85, ge=0.0, le=1.0)
    max_context_chars: int = 6000

    # Upstream calls
    request_timeout_seconds: float = 30.0

    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


# Singleton: import `settings` wherever needed.
settings = Settings()
