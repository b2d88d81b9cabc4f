from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class QueryRequest(CamelModel):
    question: str = Field(min_length=3, max_length=500)
    include_metadata: bool = False
    max_results: int = Field(default=5, ge=1, le=20)


class SourceChunk(CamelModel):
    chunk_id: str
    doc_id: str
    chunk_index: int
    content: str
    vector_score: float
    bm25_score: float
    hybrid_score: float
    query_variation: str
    metadata: dict[str, Any] | None = None


class EvaluationScores(CamelModel):
    answer_relevance: float
    context_precision: float
    faithfulness: float
    timestamp: str


class QueryResponse(CamelModel):
    answer: str
    sources: list[SourceChunk]
    query_variations: list[str]
    retrieval_method: str
    evaluation: EvaluationScores | None = None
    response_time: float
    cached: bool = False
    timestamp: str


class MetricsResponse(CamelModel):
    total_queries: int
    average_response_time: float
    cache_hit_rate: float
    error_rate: float


class CacheStatsResponse(CamelModel):
    keys: int
    hits: int
    misses: int


class HealthResponse(CamelModel):
    status: str
    corpus: str
    embedding: str
    generation: str
    cache: CacheStatsResponse
    metrics: MetricsResponse
    error: str | None = None
    timestamp: str


class DocumentStats(CamelModel):
    total_docs: int
    avg_size: float


class ChunkStats(CamelModel):
    total_chunks: int
    avg_word_count: float


class AnalyticsResponse(CamelModel):
    documents: DocumentStats
    chunks: ChunkStats
    metrics: MetricsResponse
    cache_stats: CacheStatsResponse
    timestamp: str


class IngestDocument(CamelModel):
    title: str = Field(default="untitled", min_length=1)
    content: str = Field(min_length=1)


class IngestRequest(CamelModel):
    documents: list[IngestDocument] = Field(min_length=1)


class IngestResponse(CamelModel):
    ingested: int
    chunks: int
    document_ids: list[str]


class UploadResponse(CamelModel):
    message: str
    id: str
    chunks_processed: int
    processing_time: float
    timestamp: str


class MessageResponse(CamelModel):
    message: str
