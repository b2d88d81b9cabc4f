from __future__ import annotations

"""Multi-query ranking tests."""

import random
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

import pytest

from hybrid_rag.rag.errors import QueryValidationError
from hybrid_rag.rag.ranking import RetrievalRanker, select_top
from hybrid_rag.rag.scoring import tokenize
from hybrid_rag.rag.types import Chunk, ScoredCandidate

pytestmark = pytest.mark.anyio

_VOCAB = ["cat", "dog", "car", "bird", "fish", "tree"]


@dataclass
class VocabEmbedder:
    dimension: int = len(_VOCAB)
    calls: list[str] = field(default_factory=list)

    def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        tokens = tokenize(text)
        return [float(tokens.count(word)) for word in _VOCAB]


def make_chunk(idx: int, content: str, embedding: list[float] | None = None) -> Chunk:
    vector = embedding if embedding is not None else VocabEmbedder().embed(content)
    return Chunk(
        id=f"doc_1_chunk_{idx}",
        doc_id="doc_1",
        content=content,
        chunk_index=idx,
        embedding=tuple(vector),
    )


def random_corpus(seed: int, size: int) -> list[Chunk]:
    rng = random.Random(seed)
    return [
        make_chunk(idx, " ".join(rng.choice(_VOCAB) for _ in range(rng.randint(1, 8))))
        for idx in range(size)
    ]


@pytest.mark.parametrize("seed", range(4))
async def test_rank_invariants(seed: int) -> None:
    corpus = random_corpus(seed, 30)
    ranker = RetrievalRanker(embedder=VocabEmbedder(), batch_size=7)

    ranked = await ranker.rank(corpus, ["cat", "dog bird", "fish tree car"], max_results=10)

    assert len(ranked) <= 10
    ids = [item.chunk.id for item in ranked]
    assert len(ids) == len(set(ids))
    scores = [item.hybrid_score for item in ranked]
    assert scores == sorted(scores, reverse=True)


async def test_rank_keeps_best_variation_per_chunk() -> None:
    corpus = [make_chunk(0, "cat cat"), make_chunk(1, "dog"), make_chunk(2, "tree")]
    ranker = RetrievalRanker(embedder=VocabEmbedder())

    ranked = await ranker.rank(corpus, ["tree", "cat"], max_results=3)

    by_id = {item.chunk.id: item for item in ranked}
    assert by_id["doc_1_chunk_0"].query_variation == "cat"
    assert by_id["doc_1_chunk_2"].query_variation == "tree"
    assert by_id["doc_1_chunk_0"].vector_score == pytest.approx(1.0)


async def test_rank_embeds_each_variation_once() -> None:
    embedder = VocabEmbedder()
    ranker = RetrievalRanker(embedder=embedder)
    corpus = random_corpus(7, 12)

    await ranker.rank(corpus, ["cat", "dog", "bird"], max_results=5)

    assert sorted(embedder.calls) == ["bird", "cat", "dog"]


async def test_rank_with_executor_matches_inline() -> None:
    corpus = random_corpus(3, 40)
    variations = ["cat dog", "tree"]
    inline = await RetrievalRanker(embedder=VocabEmbedder(), batch_size=5).rank(
        corpus, variations, max_results=20
    )
    with ThreadPoolExecutor(max_workers=3) as executor:
        pooled = await RetrievalRanker(
            embedder=VocabEmbedder(), executor=executor, batch_size=5
        ).rank(corpus, variations, max_results=20)

    assert [item.chunk.id for item in pooled] == [item.chunk.id for item in inline]


async def test_rank_empty_corpus_returns_nothing() -> None:
    embedder = VocabEmbedder()
    ranker = RetrievalRanker(embedder=embedder)

    assert await ranker.rank([], ["cat"], max_results=5) == []
    assert embedder.calls == []


@pytest.mark.parametrize("max_results", [0, 21, -1])
async def test_rank_rejects_out_of_range_limits(max_results: int) -> None:
    ranker = RetrievalRanker(embedder=VocabEmbedder())

    with pytest.raises(QueryValidationError):
        await ranker.rank([make_chunk(0, "cat")], ["cat"], max_results=max_results)


async def test_rank_scores_missing_embedding_as_zero() -> None:
    chunk = Chunk(id="c0", doc_id="d", content="cat", chunk_index=0, embedding=None)
    ranker = RetrievalRanker(embedder=VocabEmbedder())

    ranked = await ranker.rank([chunk], ["cat"], max_results=1)

    assert ranked[0].vector_score == 0.0


def test_select_top_breaks_ties_by_corpus_order() -> None:
    chunks = [make_chunk(idx, "cat") for idx in range(4)]
    candidates = [
        ScoredCandidate(
            chunk=chunk,
            vector_score=0.5,
            bm25_score=0.0,
            hybrid_score=0.35,
            query_variation="cat",
        )
        for chunk in chunks
    ]

    top = select_top(candidates, 3)

    assert [item.chunk.chunk_index for item in top] == [0, 1, 2]


async def test_rank_scores_untokenizable_corpus_lexically_as_zero() -> None:
    corpus = [make_chunk(0, "?!", [1.0, 0, 0, 0, 0, 0]), make_chunk(1, "...", [0, 1.0, 0, 0, 0, 0])]
    ranker = RetrievalRanker(embedder=VocabEmbedder())

    ranked = await ranker.rank(corpus, ["cat"], max_results=2)

    assert [item.chunk.id for item in ranked] == ["doc_1_chunk_0", "doc_1_chunk_1"]
    assert all(item.bm25_score == 0.0 for item in ranked)


async def test_rank_attaches_lexical_score_to_matching_chunk() -> None:
    corpus = [make_chunk(0, "cat sat"), make_chunk(1, "dog ran"), make_chunk(2, "bird flew")]
    ranker = RetrievalRanker(embedder=VocabEmbedder(), batch_size=1)

    ranked = await ranker.rank(corpus, ["cat"], max_results=3)

    by_id = {item.chunk.id: item for item in ranked}
    assert by_id["doc_1_chunk_0"].bm25_score > 0.0
    assert by_id["doc_1_chunk_1"].bm25_score == 0.0
    assert ranked[0].chunk.id == "doc_1_chunk_0"
