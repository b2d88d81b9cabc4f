from __future__ import annotations

"""Embedding services used for chunk ingestion and query variations.

Remote providers are imported lazily so the offline ``HashEmbedder`` works
without any provider SDK installed. Call failures surface as
``EmbeddingError``, which the API maps to a 503.
"""

import hashlib
import math
from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence

from hybrid_rag.rag.errors import TransientServiceError
from hybrid_rag.rag.scoring import tokenize

OPENAI_MODEL_DIMENSIONS = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
}


class EmbeddingError(TransientServiceError):
    """The embedding service failed or returned an unusable vector."""


class EmbeddingConfigError(RuntimeError):
    """Embedding provider settings are incomplete or inconsistent."""


class EmbeddingProvider(Protocol):
    dimension: int

    def embed(self, text: str) -> list[float]:
        ...


def validate_vector(vector: Sequence[Any], dimension: int) -> list[float]:
    """Coerce a provider vector to floats, rejecting wrong sizes and NaN/inf."""
    if dimension > 0 and len(vector) != dimension:
        raise EmbeddingError(f"expected {dimension} dimensions, got {len(vector)}")
    try:
        values = [float(value) for value in vector]
    except (TypeError, ValueError) as exc:
        raise EmbeddingError("embedding contains a non-numeric value") from exc
    if not all(math.isfinite(value) for value in values):
        raise EmbeddingError("embedding contains a non-finite value")
    return values


@dataclass
class HashEmbedder:
    """Bag-of-tokens feature hashing, L2-normalized. Deterministic and offline."""
    dimension: int = 256

    def embed(self, text: str) -> list[float]:
        vector = [0.0] * self.dimension
        for token in tokenize(text):
            bucket = int.from_bytes(hashlib.blake2b(token.encode("utf-8"), digest_size=4).digest(), "big")
            vector[bucket % self.dimension] += 1.0
        norm = math.hypot(*vector)
        if norm:
            vector = [value / norm for value in vector]
        return vector


def resolve_openai_dimension(model: str, configured: int) -> int:
    """Pick the vector size for an OpenAI model, checking it against settings."""
    known = OPENAI_MODEL_DIMENSIONS.get(model)
    if configured <= 0:
        if known is None:
            raise EmbeddingConfigError(
                f"EMBEDDING_DIMENSION must be set for unknown OpenAI model {model!r}"
            )
        return known
    if known is not None and configured != known:
        raise EmbeddingConfigError(f"model {model!r} produces {known} dimensions, not {configured}")
    return configured


@dataclass
class OpenAIEmbedder:
    api_key: str
    model: str
    dimension: int = 0
    _client: Any = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if not self.api_key or not self.model:
            raise EmbeddingConfigError("OPENAI_API_KEY and OPENAI_EMBEDDING_MODEL are required")
        self.dimension = resolve_openai_dimension(self.model, self.dimension)
        try:
            from openai import OpenAI
        except ImportError as exc:
            raise EmbeddingConfigError("install the 'openai' extra to use OpenAI embeddings") from exc
        self._client = OpenAI(api_key=self.api_key)

    def embed(self, text: str) -> list[float]:
        try:
            response = self._client.embeddings.create(model=self.model, input=text)
        except Exception as exc:
            raise EmbeddingError(f"OpenAI embedding request failed: {exc}") from exc
        return validate_vector(response.data[0].embedding, self.dimension)


@dataclass
class GeminiEmbedder:
    """Gemini embeddings; ``text-embedding-004`` produces 768 dimensions."""
    api_key: str
    model: str
    dimension: int
    task_type: str = "retrieval_document"
    _genai: Any = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if not self.api_key or not self.model:
            raise EmbeddingConfigError("GEMINI_API_KEY and GEMINI_EMBEDDING_MODEL are required")
        try:
            import google.generativeai as genai
        except ImportError as exc:
            raise EmbeddingConfigError(
                "install the 'gemini' extra to use Gemini embeddings"
            ) from exc
        genai.configure(api_key=self.api_key)
        self._genai = genai

    def embed(self, text: str) -> list[float]:
        try:
            result = self._genai.embed_content(
                model=self.model, content=text, task_type=self.task_type
            )
        except Exception as exc:
            raise EmbeddingError(f"Gemini embedding request failed: {exc}") from exc
        if isinstance(result, dict):
            embedding = result.get("embedding")
        else:
            embedding = getattr(result, "embedding", None)
        if embedding is None:
            raise EmbeddingError("Gemini response carried no embedding")
        return validate_vector(embedding, self.dimension)
