"""
Serving — FastAPI application exposing ingestion and grounded answering.

Authentication is delegated to an upstream provider that forwards the
verified caller id in the ``X-User-Id`` header.
"""
