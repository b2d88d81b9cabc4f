from __future__ import annotations

"""In-memory chunk corpus for local use and small datasets."""

import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone

from hybrid_rag.loaders.chunking import chunk_text
from hybrid_rag.rag.embeddings import EmbeddingError, EmbeddingProvider
from hybrid_rag.rag.types import Chunk

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredDocument:
    doc_id: str
    title: str
    content: str
    uploaded_at: str


@dataclass(frozen=True)
class IngestReport:
    """Outcome of ingesting one document."""
    doc_id: str
    chunks_created: int
    chunks_failed: int
    processing_time_ms: float


@dataclass
class InMemoryCorpusStore:
    """Chunk store that embeds content on ingestion."""
    embedder: EmbeddingProvider
    chunk_size: int = 1000
    documents: list[StoredDocument] = field(default_factory=list)
    chunks: list[Chunk] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)

    def add_document(self, title: str, text: str, doc_id: str | None = None) -> IngestReport:
        """Chunk, embed and store a document; failed chunks are skipped."""
        start = time.perf_counter()
        resolved_id = doc_id or f"doc_{int(time.time() * 1000)}_{uuid.uuid4().hex[:8]}"
        created_at = datetime.now(timezone.utc).isoformat()
        pieces = chunk_text(text, max_chars=self.chunk_size)
        stored: list[Chunk] = []
        failed = 0
        for idx, piece in enumerate(pieces):
            try:
                vector = self.embedder.embed(piece)
            except EmbeddingError as exc:
                failed += 1
                logger.error(
                    "chunk_embedding_failed",
                    extra={"doc_id": resolved_id, "chunk_index": idx, "detail": str(exc)},
                )
                continue
            stored.append(
                Chunk(
                    id=f"{resolved_id}_chunk_{idx}",
                    doc_id=resolved_id,
                    content=piece,
                    chunk_index=idx,
                    embedding=tuple(vector),
                    metadata={"title": title, "created_at": created_at},
                )
            )
        with self._lock:
            self.documents.append(
                StoredDocument(
                    doc_id=resolved_id,
                    title=title,
                    content=text,
                    uploaded_at=created_at,
                )
            )
            self.chunks.extend(stored)
        report = IngestReport(
            doc_id=resolved_id,
            chunks_created=len(stored),
            chunks_failed=failed,
            processing_time_ms=(time.perf_counter() - start) * 1000,
        )
        logger.info(
            "document_ingested",
            extra={
                "doc_id": resolved_id,
                "chunks": report.chunks_created,
                "failed": report.chunks_failed,
            },
        )
        return report

    def list_chunks_with_embedding(self) -> list[Chunk]:
        """Return a snapshot of chunks that carry an embedding."""
        with self._lock:
            return [chunk for chunk in self.chunks if chunk.embedding]

    def stats(self) -> dict[str, dict[str, float | int]]:
        """Return document and chunk statistics."""
        with self._lock:
            documents = list(self.documents)
            chunks = list(self.chunks)
        avg_size = (
            sum(len(doc.content) for doc in documents) / len(documents) if documents else 0.0
        )
        avg_words = sum(chunk.word_count for chunk in chunks) / len(chunks) if chunks else 0.0
        return {
            "documents": {"total_docs": len(documents), "avg_size": avg_size},
            "chunks": {"total_chunks": len(chunks), "avg_word_count": avg_words},
        }

    def health(self) -> dict[str, str | bool]:
        """Return health information for the corpus store."""
        return {
            "backend": "memory",
            "ok": True,
        }
