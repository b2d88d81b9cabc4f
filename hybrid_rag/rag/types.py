from __future__ import annotations

"""Core data types for chunks, ranking and query results."""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class Chunk:
    """Immutable unit of retrievable text."""
    id: str
    doc_id: str
    content: str
    chunk_index: int
    embedding: tuple[float, ...] | None = None
    word_count: int = field(init=False)
    metadata: dict[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "word_count", len(self.content.split()))

    def describe(self) -> dict[str, Any]:
        """Return chunk fields without the embedding vector."""
        return {
            "id": self.id,
            "doc_id": self.doc_id,
            "content": self.content,
            "chunk_index": self.chunk_index,
            "word_count": self.word_count,
            **self.metadata,
        }


@dataclass(frozen=True)
class ExpansionResult:
    """Query variations with the original question first."""
    variations: tuple[str, ...]
    degraded: bool = False


@dataclass(frozen=True)
class ScoredCandidate:
    """Chunk scored against one query variation."""
    chunk: Chunk
    vector_score: float
    bm25_score: float
    hybrid_score: float
    query_variation: str


@dataclass(frozen=True)
class SourceView:
    """Ranked source projected for the response."""
    chunk_id: str
    doc_id: str
    chunk_index: int
    content: str
    vector_score: float
    bm25_score: float
    hybrid_score: float
    query_variation: str
    metadata: dict[str, Any] | None = None


@dataclass(frozen=True)
class Evaluation:
    """Lexical answer-quality scores."""
    answer_relevance: float
    context_precision: float
    faithfulness: float
    timestamp: str


@dataclass(frozen=True)
class QueryResult:
    """Externally visible outcome of a query."""
    answer: str
    sources: tuple[SourceView, ...]
    query_variations: tuple[str, ...]
    evaluation: Evaluation | None
    response_time_ms: float
    timestamp: str
    cached: bool = False
    retrieval_method: str = "hybrid"


@dataclass(frozen=True)
class MetricsSnapshot:
    """Process-wide running aggregates."""
    total_queries: int = 0
    average_response_time: float = 0.0
    cache_hit_rate: float = 0.0
    error_rate: float = 0.0
