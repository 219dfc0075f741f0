"""FastAPI application exposing the ingestion and ask operations as a REST API."""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import AsyncIterator

from fastapi import BackgroundTasks, Depends, FastAPI, File, Form, Header, Request, UploadFile
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field

from grounded_rag.config import settings
from grounded_rag.errors import ErrorCode, InvalidInputError, RagError, UnauthenticatedError
from grounded_rag.generation.models import SourceDetail
from grounded_rag.models import Document
from grounded_rag.service import RagService

logger = logging.getLogger(__name__)

_STATUS_BY_CODE = {
    ErrorCode.UNAUTHENTICATED: 401,
    ErrorCode.NOT_FOUND: 404,
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.UPSTREAM_FAILURE: 502,
    ErrorCode.INTERNAL: 500,
}


@asynccontextmanager
async def lifespan(_: FastAPI) -> AsyncIterator[None]:
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    yield


app = FastAPI(
    title="Grounded RAG API",
    version="0.1.0",
    description="Upload documents to a bot and ask questions answered only from them.",
    lifespan=lifespan,
)


@lru_cache(maxsize=1)
def get_service() -> RagService:
    """Long-lived service handle shared by every request."""
    return RagService.from_settings()


def get_caller_id(x_user_id: str | None = Header(default=None)) -> str:
    """Caller identity forwarded by the auth provider."""
    if not x_user_id:
        raise UnauthenticatedError("Missing X-User-Id header")
    return x_user_id


# ── Request / Response schemas ────────────────────────────────────────
class CreateBotRequest(BaseModel):
    name: str
    similarity_threshold: float | None = Field(default=None, ge=0.0, le=1.0)
    match_count: int | None = Field(default=None, gt=0)


class BotResponse(BaseModel):
    id: str
    name: str


class IngestResponse(BaseModel):
    document_id: str
    status: str


class DocumentResponse(BaseModel):
    id: str
    bot_id: str
    name: str
    media_type: str
    size: int
    status: str
    error: str | None = None

    @classmethod
    def from_document(cls, document: Document) -> DocumentResponse:
        return cls(
            id=document.id,
            bot_id=document.bot_id,
            name=document.name,
            media_type=document.media_type.value,
            size=document.size,
            status=document.status.value,
            error=document.error,
        )


class AskRequest(BaseModel):
    """Incoming question from the user."""

    model_config = ConfigDict(populate_by_name=True)

    bot_id: str = Field(alias="botId")
    question: str


class AskResponse(BaseModel):
    """Grounded answer with the evidence behind it."""

    answer: str
    sources: list[SourceDetail] = []
    filenames: list[str] = []


# ── Error handling ────────────────────────────────────────────────────
@app.exception_handler(RagError)
async def rag_error_handler(_: Request, exc: RagError) -> JSONResponse:
    status = _STATUS_BY_CODE[exc.code]
    if status >= 500:
        logger.error("%s: %s", type(exc).__name__, exc)
    return JSONResponse({"error": exc.public_message, "code": exc.code.value}, status_code=status)


@app.exception_handler(Exception)
async def unexpected_error_handler(_: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error", exc_info=exc)
    return JSONResponse(
        {"error": "An error occurred", "code": ErrorCode.INTERNAL.value}, status_code=500
    )


# ── Routes ────────────────────────────────────────────────────────────
@app.get("/health")
async def health() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "ok"}


@app.post("/bots", response_model=BotResponse, status_code=201)
async def create_bot(
    request: CreateBotRequest,
    caller_id: str = Depends(get_caller_id),
    service: RagService = Depends(get_service),
) -> BotResponse:
    bot = await asyncio.to_thread(
        service.create_bot,
        caller_id,
        request.name,
        similarity_threshold=request.similarity_threshold,
        match_count=request.match_count,
    )
    return BotResponse(id=bot.id, name=bot.name)


@app.delete("/bots/{bot_id}", status_code=204)
async def delete_bot(
    bot_id: str,
    caller_id: str = Depends(get_caller_id),
    service: RagService = Depends(get_service),
) -> None:
    await asyncio.to_thread(service.delete_bot, caller_id, bot_id)


@app.post("/ingest", response_model=IngestResponse, status_code=202)
async def ingest(
    background_tasks: BackgroundTasks,
    file: UploadFile | None = File(default=None),
    bot_id: str | None = Form(default=None, alias="botId"),
    caller_id: str = Depends(get_caller_id),
    service: RagService = Depends(get_service),
) -> IngestResponse:
    """Accept an upload; extraction and embedding continue in the background."""
    if file is None or not bot_id:
        raise InvalidInputError("Missing file or botId")

    data = await file.read()
    document = await asyncio.to_thread(
        service.accept_upload,
        caller_id,
        bot_id,
        filename=file.filename or "",
        media_type=file.content_type or "",
        data=data,
    )
    background_tasks.add_task(service.process_upload, document, data)
    return IngestResponse(document_id=document.id, status=document.status.value)


@app.post("/ask", response_model=AskResponse)
async def ask(
    request: AskRequest,
    caller_id: str = Depends(get_caller_id),
    service: RagService = Depends(get_service),
) -> AskResponse:
    """Answer a question strictly from the bot's documents."""
    answer = await service.aask(caller_id, request.bot_id, request.question)
    return AskResponse(answer=answer.text, sources=answer.sources, filenames=answer.filenames)


@app.get("/documents/{document_id}", response_model=DocumentResponse)
async def get_document(
    document_id: str,
    caller_id: str = Depends(get_caller_id),
    service: RagService = Depends(get_service),
) -> DocumentResponse:
    document = await asyncio.to_thread(service.get_document, caller_id, document_id)
    return DocumentResponse.from_document(document)


@app.get("/bots/{bot_id}/documents", response_model=list[DocumentResponse])
async def list_documents(
    bot_id: str,
    caller_id: str = Depends(get_caller_id),
    service: RagService = Depends(get_service),
) -> list[DocumentResponse]:
    documents = await asyncio.to_thread(service.list_documents, caller_id, bot_id)
    return [DocumentResponse.from_document(d) for d in documents]


@app.delete("/documents/{document_id}", status_code=204)
async def delete_document(
    document_id: str,
    caller_id: str = Depends(get_caller_id),
    service: RagService = Depends(get_service),
) -> None:
    await asyncio.to_thread(service.delete_document, caller_id, document_id)
