from __future__ import annotations

"""Embedding provider tests."""

import math

import pytest

from hybrid_rag.rag.embeddings import (
    EmbeddingConfigError,
    EmbeddingError,
    HashEmbedder,
    OpenAIEmbedder,
    resolve_openai_dimension,
    validate_vector,
)
from hybrid_rag.rag.scoring import cosine_similarity


def test_hash_embedder_is_deterministic_and_normalized() -> None:
    embedder = HashEmbedder(dimension=64)

    first = embedder.embed("Cats are curious pets")
    second = embedder.embed("cats ARE curious pets!")

    assert first == second
    assert len(first) == 64
    assert math.isclose(math.sqrt(sum(value * value for value in first)), 1.0)


def test_hash_embedder_blank_text_is_zero_vector() -> None:
    assert HashEmbedder(dimension=8).embed("  ?! ") == [0.0] * 8


def test_hash_embedder_related_text_scores_higher() -> None:
    embedder = HashEmbedder()
    query = embedder.embed("loyal dogs")

    related = cosine_similarity(query, embedder.embed("dogs are loyal companions"))
    unrelated = cosine_similarity(query, embedder.embed("engine maintenance schedule"))

    assert related > unrelated


def test_validate_vector_rejects_bad_vectors() -> None:
    with pytest.raises(EmbeddingError):
        validate_vector([0.1, 0.2], 3)
    with pytest.raises(EmbeddingError):
        validate_vector([0.1, float("nan")], 2)
    with pytest.raises(EmbeddingError):
        validate_vector([0.1, "x"], 2)
    assert validate_vector([1, 2], 0) == [1.0, 2.0]


def test_resolve_openai_dimension() -> None:
    assert resolve_openai_dimension("text-embedding-3-small", 0) == 1536
    assert resolve_openai_dimension("custom-model", 384) == 384
    with pytest.raises(EmbeddingConfigError):
        resolve_openai_dimension("custom-model", 0)
    with pytest.raises(EmbeddingConfigError):
        resolve_openai_dimension("text-embedding-3-large", 256)


def test_openai_embedder_requires_credentials() -> None:
    with pytest.raises(EmbeddingConfigError):
        OpenAIEmbedder(api_key="", model="text-embedding-3-small")
