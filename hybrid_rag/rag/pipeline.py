from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Protocol, Sequence

from hybrid_rag.rag.cache import RESULT_TTL_SECONDS, ResultCache, SingleFlight, build_cache_key
from hybrid_rag.rag.errors import QueryValidationError
from hybrid_rag.rag.evaluation import Evaluator
from hybrid_rag.rag.expansion import DEFAULT_VARIATIONS, QueryExpander
from hybrid_rag.rag.llm import LLMError, TextGenerator, build_answer_prompt
from hybrid_rag.rag.monitoring import MetricsTracker
from hybrid_rag.rag.ranking import RetrievalRanker, validate_max_results
from hybrid_rag.rag.types import Chunk, MetricsSnapshot, QueryResult, ScoredCandidate, SourceView

logger = logging.getLogger(__name__)

NO_DOCUMENTS_ANSWER = "No documents have been uploaded yet. Please upload a PDF first."
MIN_QUESTION_LENGTH = 3
MAX_QUESTION_LENGTH = 500
SOURCE_PREVIEW_CHARS = 200


class CorpusStore(Protocol):
    def list_chunks_with_embedding(self) -> list[Chunk]:
        ...


def validate_question(question: str) -> str:
    """Reject questions outside the supported length range."""
    if not isinstance(question, str):
        raise QueryValidationError("question must be a string")
    length = len(question.strip())
    if length < MIN_QUESTION_LENGTH:
        raise QueryValidationError(
            f"question must be at least {MIN_QUESTION_LENGTH} characters long"
        )
    if len(question) > MAX_QUESTION_LENGTH:
        raise QueryValidationError(
            f"question must be at most {MAX_QUESTION_LENGTH} characters long"
        )
    return question


def _preview(content: str) -> str:
    if len(content) <= SOURCE_PREVIEW_CHARS:
        return content
    return content[:SOURCE_PREVIEW_CHARS] + "..."


def project_sources(
    candidates: Sequence[ScoredCandidate], include_metadata: bool
) -> tuple[SourceView, ...]:
    """Project ranked candidates into response sources."""
    return tuple(
        SourceView(
            chunk_id=item.chunk.id,
            doc_id=item.chunk.doc_id,
            chunk_index=item.chunk.chunk_index,
            content=_preview(item.chunk.content),
            vector_score=item.vector_score,
            bm25_score=item.bm25_score,
            hybrid_score=item.hybrid_score,
            query_variation=item.query_variation,
            metadata=item.chunk.describe() if include_metadata else None,
        )
        for item in candidates
    )


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class QueryPipeline:
    """Hybrid retrieval pipeline with expansion, caching and evaluation."""
    store: CorpusStore
    generator: TextGenerator
    expander: QueryExpander
    ranker: RetrievalRanker
    evaluator: Evaluator = field(default_factory=Evaluator)
    cache: ResultCache = field(default_factory=ResultCache)
    tracker: MetricsTracker = field(default_factory=MetricsTracker)
    expansion_count: int = DEFAULT_VARIATIONS
    result_ttl: float = RESULT_TTL_SECONDS
    generation_timeout: float | None = None
    context_max_chars: int = 12000
    _inflight: SingleFlight[QueryResult] = field(default_factory=SingleFlight, init=False, repr=False)

    async def query(
        self,
        question: str,
        include_metadata: bool = False,
        max_results: int = 5,
    ) -> QueryResult:
        """Answer a question, serving repeated requests from the cache."""
        validate_question(question)
        validate_max_results(max_results)
        start = time.perf_counter()
        key = build_cache_key(question, max_results, include_metadata)

        cached = self.cache.get(key)
        if cached is not None:
            elapsed = self._elapsed_ms(start)
            self.tracker.record_query(elapsed, cache_hit=True)
            logger.info("query_cache_hit", extra={"cache_key": key})
            return dataclasses.replace(cached, cached=True, response_time_ms=elapsed)

        try:
            result, shared = await self._inflight.run(
                key, lambda: self._compute(key, question, include_metadata, max_results, start)
            )
        except Exception as exc:
            self.tracker.record_query(self._elapsed_ms(start), cache_hit=False, error=True)
            logger.error(
                "query_failed",
                extra={"error": type(exc).__name__, "detail": str(exc)},
            )
            raise
        elapsed = self._elapsed_ms(start)
        self.tracker.record_query(elapsed, cache_hit=shared)
        if shared:
            logger.info("query_shared_inflight", extra={"cache_key": key})
            return dataclasses.replace(result, cached=True, response_time_ms=elapsed)
        return result

    async def _compute(
        self,
        key: str,
        question: str,
        include_metadata: bool,
        max_results: int,
        start: float,
    ) -> QueryResult:
        corpus = await asyncio.to_thread(self.store.list_chunks_with_embedding)
        if not corpus:
            logger.info("query_empty_corpus")
            return QueryResult(
                answer=NO_DOCUMENTS_ANSWER,
                sources=(),
                query_variations=(question,),
                evaluation=None,
                response_time_ms=self._elapsed_ms(start),
                timestamp=_now(),
            )

        expansion = await self.expander.expand(question, self.expansion_count)
        logger.info(
            "query_variations_ready",
            extra={"count": len(expansion.variations), "degraded": expansion.degraded},
        )
        ranked = await self.ranker.rank(corpus, expansion.variations, max_results)
        chunks = [item.chunk for item in ranked]

        prompt = build_answer_prompt(question, chunks, max_chars=self.context_max_chars)
        try:
            answer = await asyncio.wait_for(
                self.generator.generate(prompt), timeout=self.generation_timeout
            )
        except asyncio.TimeoutError as exc:
            raise LLMError("Answer generation timed out") from exc

        evaluation = self.evaluator.evaluate(question, answer, chunks)
        result = QueryResult(
            answer=answer,
            sources=project_sources(ranked, include_metadata),
            query_variations=expansion.variations,
            evaluation=evaluation,
            response_time_ms=self._elapsed_ms(start),
            timestamp=_now(),
        )
        try:
            self.cache.put(key, result, self.result_ttl)
        except Exception as exc:
            logger.error("cache_write_failed", extra={"detail": str(exc)})
        return result

    def get_metrics(self) -> MetricsSnapshot:
        return self.tracker.get_metrics()

    def invalidate_cache(self) -> None:
        self.cache.invalidate_all()
        logger.info("cache_invalidated")

    @staticmethod
    def _elapsed_ms(start: float) -> float:
        return (time.perf_counter() - start) * 1000
