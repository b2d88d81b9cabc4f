from __future__ import annotations

"""FastAPI application entrypoint for the hybrid RAG query service."""

import asyncio
import logging
import time
import uuid
from datetime import datetime, timezone
from pathlib import Path

from fastapi import FastAPI, File, HTTPException, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from hybrid_rag.app.dependencies import get_corpus_store, get_embedder, get_generator, get_pipeline
from hybrid_rag.app.metrics import metrics_middleware, metrics_response, record_query_outcome
from hybrid_rag.app.schemas import (
    AnalyticsResponse,
    CacheStatsResponse,
    ChunkStats,
    DocumentStats,
    EvaluationScores,
    HealthResponse,
    IngestRequest,
    IngestResponse,
    MessageResponse,
    MetricsResponse,
    QueryRequest,
    QueryResponse,
    SourceChunk,
    UploadResponse,
)
from hybrid_rag.app.settings import settings
from hybrid_rag.loaders.pdf import PDFLoaderError, extract_pdf_text
from hybrid_rag.rag.errors import QueryValidationError, TransientServiceError
from hybrid_rag.rag.types import MetricsSnapshot, QueryResult

logger = logging.getLogger(__name__)

app = FastAPI(title="Hybrid RAG Query Service", version="0.1.0")
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _configure_logging() -> None:
    """Configure root logging using environment settings."""
    level_name = settings.log_level.strip().upper()
    level = getattr(logging, level_name, logging.INFO)
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        logging.basicConfig(
            level=level,
            format="%(asctime)s %(levelname)s %(name)s %(message)s",
        )
    logger.setLevel(level)


_configure_logging()


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _elapsed_ms(request: Request) -> float:
    started = getattr(request.state, "started_at", None)
    if started is None:
        return 0.0
    return (time.perf_counter() - started) * 1000


def _error_body(error: str, exc: Exception, request: Request) -> dict[str, object]:
    """Build an error payload; exception detail is only exposed in development."""
    body: dict[str, object] = {"error": error, "responseTime": _elapsed_ms(request)}
    if settings.is_development:
        body["details"] = str(exc)
    return body


def _metrics_payload(snapshot: MetricsSnapshot) -> MetricsResponse:
    return MetricsResponse(
        total_queries=snapshot.total_queries,
        average_response_time=snapshot.average_response_time,
        cache_hit_rate=snapshot.cache_hit_rate,
        error_rate=snapshot.error_rate,
    )


def _query_payload(result: QueryResult) -> QueryResponse:
    evaluation = None
    if result.evaluation is not None:
        evaluation = EvaluationScores(
            answer_relevance=result.evaluation.answer_relevance,
            context_precision=result.evaluation.context_precision,
            faithfulness=result.evaluation.faithfulness,
            timestamp=result.evaluation.timestamp,
        )
    return QueryResponse(
        answer=result.answer,
        sources=[
            SourceChunk(
                chunk_id=source.chunk_id,
                doc_id=source.doc_id,
                chunk_index=source.chunk_index,
                content=source.content,
                vector_score=source.vector_score,
                bm25_score=source.bm25_score,
                hybrid_score=source.hybrid_score,
                query_variation=source.query_variation,
                metadata=source.metadata,
            )
            for source in result.sources
        ],
        query_variations=list(result.query_variations),
        retrieval_method=result.retrieval_method,
        evaluation=evaluation,
        response_time=result.response_time_ms,
        cached=result.cached,
        timestamp=result.timestamp,
    )


async def _read_upload_bytes(upload: UploadFile, max_bytes: int | None) -> bytes:
    """Stream upload bytes with a hard size limit."""
    if not max_bytes or max_bytes <= 0:
        return await upload.read()
    buffer = bytearray()
    while True:
        chunk = await upload.read(65536)
        if not chunk:
            break
        buffer.extend(chunk)
        if len(buffer) > max_bytes:
            raise HTTPException(
                status_code=400,
                detail=f"File exceeds maximum size of {max_bytes} bytes",
            )
    return bytes(buffer)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    """Attach or create a request ID for traceability."""
    request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
    request.state.request_id = request_id
    request.state.started_at = time.perf_counter()
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.middleware("http")
async def record_metrics(request: Request, call_next):
    """Capture request metrics before returning the response."""
    return await metrics_middleware(request, call_next)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(status_code=400, content={"error": message})


@app.exception_handler(QueryValidationError)
async def query_validation_handler(request: Request, exc: QueryValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"error": str(exc)})


@app.exception_handler(TransientServiceError)
async def transient_service_handler(request: Request, exc: TransientServiceError) -> JSONResponse:
    logger.error(
        "service_unavailable",
        extra={
            "request_id": getattr(request.state, "request_id", None),
            "error": type(exc).__name__,
        },
    )
    return JSONResponse(
        status_code=503,
        content=_error_body("Failed to process query", exc, request),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "unhandled_error",
        extra={"request_id": getattr(request.state, "request_id", None)},
    )
    return JSONResponse(
        status_code=500,
        content=_error_body("Internal server error", exc, request),
    )


@app.get("/metrics")
async def metrics():
    """Expose Prometheus-style metrics."""
    return metrics_response()


@app.get("/metrics/summary", response_model=MetricsResponse)
async def metrics_summary() -> MetricsResponse:
    """Return running query aggregates."""
    return _metrics_payload(get_pipeline().get_metrics())


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Probe collaborators and report cache and query aggregates."""
    pipeline = get_pipeline()
    status = "OK"
    embedding_status = "Connected"
    generation_status = "Connected"
    error: str | None = None
    try:
        await asyncio.to_thread(get_embedder().embed, "Health check test")
    except Exception as exc:
        logger.error("embedding_health_failed", extra={"error": type(exc).__name__})
        embedding_status = "Disconnected"
        status = "ERROR"
        error = str(exc)
    try:
        await get_generator().generate("Health check test")
    except Exception as exc:
        logger.error("generation_health_failed", extra={"error": type(exc).__name__})
        generation_status = "Disconnected"
        status = "ERROR"
        error = str(exc) or error
    if error and not settings.is_development:
        error = "collaborator_unavailable"
    corpus = get_corpus_store().health()
    return HealthResponse(
        status=status,
        corpus="Connected" if corpus.get("ok") else "Disconnected",
        embedding=embedding_status,
        generation=generation_status,
        cache=CacheStatsResponse(**pipeline.cache.stats()),
        metrics=_metrics_payload(pipeline.get_metrics()),
        error=error,
        timestamp=_now(),
    )


@app.get("/analytics", response_model=AnalyticsResponse)
async def analytics() -> AnalyticsResponse:
    """Return corpus statistics, query aggregates and cache counters."""
    pipeline = get_pipeline()
    stats = get_corpus_store().stats()
    return AnalyticsResponse(
        documents=DocumentStats(**stats["documents"]),
        chunks=ChunkStats(**stats["chunks"]),
        metrics=_metrics_payload(pipeline.get_metrics()),
        cache_stats=CacheStatsResponse(**pipeline.cache.stats()),
        timestamp=_now(),
    )


@app.post("/admin/clear-cache", response_model=MessageResponse)
async def clear_cache() -> MessageResponse:
    """Flush every cached query result."""
    get_pipeline().invalidate_cache()
    logger.info("cache_cleared")
    return MessageResponse(message="Cache cleared successfully")


@app.post("/ingest", response_model=IngestResponse)
async def ingest(request: IngestRequest) -> IngestResponse:
    """Chunk, embed and store raw text documents."""
    store = get_corpus_store()
    document_ids: list[str] = []
    chunks = 0
    for document in request.documents:
        report = await asyncio.to_thread(store.add_document, document.title, document.content)
        document_ids.append(report.doc_id)
        chunks += report.chunks_created
    return IngestResponse(ingested=len(document_ids), chunks=chunks, document_ids=document_ids)


@app.post("/upload", response_model=UploadResponse)
async def upload(pdf: UploadFile = File(...)) -> UploadResponse:
    """Extract text from an uploaded PDF and ingest it."""
    filename = pdf.filename or "upload.pdf"
    if Path(filename).suffix.lower() != ".pdf" and pdf.content_type != "application/pdf":
        raise HTTPException(status_code=400, detail="Only PDF files are allowed")
    data = await _read_upload_bytes(pdf, settings.upload_max_bytes)
    if not data:
        raise HTTPException(status_code=400, detail="No PDF file provided")
    try:
        text = await asyncio.to_thread(extract_pdf_text, data)
    except PDFLoaderError as exc:
        logger.error("pdf_extraction_failed", extra={"source_name": filename})
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if not text.strip():
        raise HTTPException(status_code=400, detail="No text could be extracted from the PDF")
    report = await asyncio.to_thread(get_corpus_store().add_document, filename, text)
    return UploadResponse(
        message="PDF processed and stored successfully",
        id=report.doc_id,
        chunks_processed=report.chunks_created,
        processing_time=report.processing_time_ms,
        timestamp=_now(),
    )


@app.post("/query", response_model=QueryResponse)
async def query(request: QueryRequest, http_request: Request) -> QueryResponse:
    """Answer a question with hybrid retrieval and generation."""
    request_id = getattr(http_request.state, "request_id", str(uuid.uuid4()))
    logger.info(
        "query_received",
        extra={
            "request_id": request_id,
            "query_length": len(request.question),
            "max_results": request.max_results,
            "include_metadata": request.include_metadata,
        },
    )
    try:
        result = await get_pipeline().query(
            request.question,
            include_metadata=request.include_metadata,
            max_results=request.max_results,
        )
    except QueryValidationError:
        record_query_outcome("invalid")
        raise
    except Exception:
        record_query_outcome("error", _elapsed_ms(http_request))
        raise
    record_query_outcome(
        "cache_hit" if result.cached else "computed", result.response_time_ms
    )
    logger.info(
        "query_completed",
        extra={
            "request_id": request_id,
            "cached": result.cached,
            "sources": len(result.sources),
            "answer_length": len(result.answer),
        },
    )
    return _query_payload(result)
