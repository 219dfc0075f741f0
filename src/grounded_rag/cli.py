"""Operator command line: create bots, ingest files, ask questions.

Usage::

    grounded-rag --owner alice create-bot "Support bot"
    grounded-rag --owner alice ingest <bot-id> handbook.pdf
    grounded-rag --owner alice ask <bot-id> "What is the refund policy?"
    grounded-rag serve --port 8000
"""

from __future__ import annotations

import argparse
import json
import logging
import mimetypes
import sys
from pathlib import Path
from typing import Any

from grounded_rag.config import settings
from grounded_rag.errors import RagError
from grounded_rag.service import RagService

logger = logging.getLogger("grounded_rag.cli")

_MIME_BY_SUFFIX = {".md": "text/markdown", ".markdown": "text/markdown"}


def _guess_media_type(path: Path) -> str:
    return _MIME_BY_SUFFIX.get(path.suffix.lower()) or mimetypes.guess_type(path.name)[0] or ""


def _emit(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="grounded-rag", description="Grounded RAG operator CLI")
    parser.add_argument("--owner", default=None, help="Caller identity that owns the bots")
    parser.add_argument("--log-level", default=settings.log_level)
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("create-bot", help="Create a bot")
    p.add_argument("name")
    p.add_argument("--threshold", type=float, default=None, help="Per-bot similarity threshold")
    p.add_argument("--match-count", type=int, default=None, help="Per-bot candidate count")

    p = sub.add_parser("ingest", help="Ingest a PDF, text or Markdown file")
    p.add_argument("bot_id")
    p.add_argument("path", type=Path)
    p.add_argument("--media-type", default=None, help="Override the guessed MIME type")

    p = sub.add_parser("ask", help="Ask a question")
    p.add_argument("bot_id")
    p.add_argument("question")

    p = sub.add_parser("status", help="Show a document's processing status")
    p.add_argument("document_id")

    p = sub.add_parser("list", help="List a bot's documents")
    p.add_argument("bot_id")

    p = sub.add_parser("delete", help="Delete a document and its chunks")
    p.add_argument("document_id")

    p = sub.add_parser("delete-bot", help="Delete a bot with all its documents")
    p.add_argument("bot_id")

    p = sub.add_parser("serve", help="Run the HTTP API")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=8000)
    return parser


def run(args: argparse.Namespace, service: RagService) -> int:
    owner = args.owner
    if args.command == "create-bot":
        bot = service.create_bot(
            owner, args.name, similarity_threshold=args.threshold, match_count=args.match_count
        )
        _emit(bot.model_dump())
    elif args.command == "ingest":
        data = args.path.read_bytes()
        document = service.ingest(
            owner,
            args.bot_id,
            filename=args.path.name,
            media_type=args.media_type or _guess_media_type(args.path),
            data=data,
        )
        _emit(document.model_dump())
        return 0 if document.is_usable else 1
    elif args.command == "ask":
        answer = service.ask(owner, args.bot_id, args.question)
        _emit({"answer": answer.text, "sources": [s.model_dump() for s in answer.sources]})
    elif args.command == "status":
        _emit(service.get_document(owner, args.document_id).model_dump())
    elif args.command == "list":
        _emit([d.model_dump() for d in service.list_documents(owner, args.bot_id)])
    elif args.command == "delete":
        service.delete_document(owner, args.document_id)
        _emit({"deleted": args.document_id})
    elif args.command == "delete-bot":
        removed = service.delete_bot(owner, args.bot_id)
        _emit({"deleted": args.bot_id, "documents": removed})
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "serve":
        import uvicorn

        uvicorn.run(
            "grounded_rag.serving.app:app",
            host=args.host,
            port=args.port,
            log_level=args.log_level.lower(),
        )
        return 0
    if not args.owner:
        parser.error("--owner is required for this command")

    logging.basicConfig(level=args.log_level, format="%(levelname)s %(name)s: %(message)s")
    try:
        return run(args, RagService.from_settings())
    except RagError as exc:
        logger.debug("Command failed", exc_info=True)
        print(f"error ({exc.code.value}): {exc.public_message}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())
