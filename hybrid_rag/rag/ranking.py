from __future__ import annotations

"""Multi-query hybrid ranking over the chunk corpus."""

import asyncio
import logging
from concurrent.futures import Executor
from dataclasses import dataclass
from typing import Sequence

from hybrid_rag.rag.embeddings import EmbeddingError, EmbeddingProvider
from hybrid_rag.rag.errors import QueryValidationError
from hybrid_rag.rag.scoring import bm25_scores, build_bm25_index, cosine_similarity, hybrid_score
from hybrid_rag.rag.types import Chunk, ScoredCandidate

logger = logging.getLogger(__name__)

MIN_RESULTS = 1
MAX_RESULTS = 20


def validate_max_results(max_results: int) -> int:
    """Reject result limits outside the supported range."""
    if isinstance(max_results, bool) or not isinstance(max_results, int):
        raise QueryValidationError("maxResults must be an integer")
    if not MIN_RESULTS <= max_results <= MAX_RESULTS:
        raise QueryValidationError(
            f"maxResults must be between {MIN_RESULTS} and {MAX_RESULTS}"
        )
    return max_results


def score_batch(
    variation: str,
    query_vector: Sequence[float] | None,
    chunks: Sequence[Chunk],
    lexical_scores: Sequence[float],
) -> list[ScoredCandidate]:
    """Score a batch of chunks against one variation, given their BM25 scores."""
    scored: list[ScoredCandidate] = []
    for chunk, lexical in zip(chunks, lexical_scores):
        vector = cosine_similarity(query_vector, chunk.embedding)
        scored.append(
            ScoredCandidate(
                chunk=chunk,
                vector_score=vector,
                bm25_score=lexical,
                hybrid_score=hybrid_score(vector, lexical),
                query_variation=variation,
            )
        )
    return scored


def select_top(candidates: Sequence[ScoredCandidate], max_results: int) -> list[ScoredCandidate]:
    """Keep the best candidate per chunk and return the top results."""
    best: dict[str, ScoredCandidate] = {}
    for candidate in candidates:
        key = candidate.chunk.id
        current = best.get(key)
        if current is None or candidate.hybrid_score > current.hybrid_score:
            best[key] = candidate
    ranked = sorted(best.values(), key=lambda item: item.hybrid_score, reverse=True)
    return ranked[:max_results]


@dataclass
class RetrievalRanker:
    """Fans query variations across the corpus and selects the top chunks."""
    embedder: EmbeddingProvider
    executor: Executor | None = None
    batch_size: int = 64
    embed_timeout: float | None = None

    async def rank(
        self,
        corpus: Sequence[Chunk],
        variations: Sequence[str],
        max_results: int,
    ) -> list[ScoredCandidate]:
        """Rank corpus chunks for the query variations."""
        validate_max_results(max_results)
        if not corpus or not variations:
            return []
        loop = asyncio.get_running_loop()
        index = await loop.run_in_executor(
            self.executor, build_bm25_index, [chunk.content for chunk in corpus]
        )
        vectors = await asyncio.gather(*(self._embed(variation) for variation in variations))
        lexical = await asyncio.gather(
            *(loop.run_in_executor(self.executor, bm25_scores, index, variation) for variation in variations)
        )
        size = max(1, self.batch_size)
        jobs = []
        for variation, vector, scores in zip(variations, vectors, lexical):
            scores = scores or [0.0] * len(corpus)
            for start in range(0, len(corpus), size):
                jobs.append(
                    loop.run_in_executor(
                        self.executor,
                        score_batch,
                        variation,
                        vector,
                        corpus[start : start + size],
                        scores[start : start + size],
                    )
                )
        batches = await asyncio.gather(*jobs)
        candidates = [candidate for batch in batches for candidate in batch]
        top = select_top(candidates, max_results)
        logger.info(
            "retrieval_complete",
            extra={
                "variations": len(variations),
                "corpus_size": len(corpus),
                "candidates": len(candidates),
                "results": len(top),
            },
        )
        return top

    async def _embed(self, text: str) -> list[float]:
        """Embed one query variation off the event loop."""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(self.embedder.embed, text), timeout=self.embed_timeout
            )
        except asyncio.TimeoutError as exc:
            raise EmbeddingError("Embedding request timed out") from exc
