from __future__ import annotations

"""Lexical and semantic scoring primitives for hybrid retrieval."""

import math
import re
from typing import Iterable, Sequence

from rank_bm25 import BM25Okapi

_TOKEN_RE = re.compile(r"[a-z0-9]+")

BM25_K1 = 1.2
BM25_B = 0.75
VECTOR_WEIGHT = 0.7
BM25_WEIGHT = 0.3


def tokenize(text: str) -> list[str]:
    """Split text into lowercase word tokens."""
    return _TOKEN_RE.findall(text.lower())


def cosine_similarity(a: Sequence[float] | None, b: Sequence[float] | None) -> float:
    """Compute cosine similarity, returning 0.0 for absent or mismatched vectors."""
    if not a or not b or len(a) != len(b):
        return 0.0
    try:
        dot = sum(x * y for x, y in zip(a, b))
        norm_a = math.sqrt(sum(x * x for x in a))
        norm_b = math.sqrt(sum(y * y for y in b))
    except TypeError:
        return 0.0
    if norm_a == 0.0 or norm_b == 0.0 or not math.isfinite(dot):
        return 0.0
    return max(-1.0, min(1.0, dot / (norm_a * norm_b)))


def build_bm25_index(texts: Iterable[str]) -> BM25Okapi | None:
    """Index document texts for BM25 (k1=1.2, b=0.75), or None when nothing is indexable.

    ``epsilon=0`` floors the idf of terms present in most documents at zero.
    """
    corpus = [tokenize(text) for text in texts]
    if not any(corpus):
        return None
    return BM25Okapi(corpus, k1=BM25_K1, b=BM25_B, epsilon=0.0)


def bm25_scores(index: BM25Okapi | None, query: str) -> list[float]:
    """Score every indexed document against a query, in corpus order."""
    if index is None:
        return []
    query_tokens = tokenize(query)
    if not query_tokens:
        return [0.0] * index.corpus_size
    return [float(score) for score in index.get_scores(query_tokens)]


def bm25_score_in_corpus(query: str, text: str, corpus: Sequence[str]) -> float:
    """Score one document of ``corpus`` against a query."""
    documents = list(corpus)
    scores = bm25_scores(build_bm25_index(documents), query)
    return scores[documents.index(text)] if scores else 0.0


def hybrid_score(vector_score: float, bm25: float) -> float:
    """Blend semantic and lexical relevance with fixed weights."""
    return VECTOR_WEIGHT * vector_score + BM25_WEIGHT * bm25
