from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from functools import lru_cache

from hybrid_rag.app.settings import settings
from hybrid_rag.rag.cache import ResultCache
from hybrid_rag.rag.embeddings import (
    EmbeddingConfigError,
    EmbeddingProvider,
    GeminiEmbedder,
    HashEmbedder,
    OpenAIEmbedder,
)
from hybrid_rag.rag.evaluation import Evaluator
from hybrid_rag.rag.expansion import QueryExpander
from hybrid_rag.rag.llm import TextGenerator, build_generator
from hybrid_rag.rag.monitoring import MetricsTracker
from hybrid_rag.rag.pipeline import QueryPipeline
from hybrid_rag.rag.ranking import RetrievalRanker
from hybrid_rag.vectorstore.inmemory import InMemoryCorpusStore


@lru_cache
def get_pipeline() -> QueryPipeline:
    embedder = get_embedder()
    generator = get_generator()
    ranker = RetrievalRanker(
        embedder=embedder,
        executor=get_scoring_executor(),
        batch_size=settings.scoring_batch_size,
        embed_timeout=settings.embedding_timeout,
    )
    return QueryPipeline(
        store=get_corpus_store(),
        generator=generator,
        expander=QueryExpander(generator=generator, timeout=settings.llm_timeout),
        ranker=ranker,
        evaluator=Evaluator(),
        cache=ResultCache(default_ttl=settings.cache_ttl),
        tracker=MetricsTracker(),
        expansion_count=settings.expansion_count,
        result_ttl=settings.result_cache_ttl,
        generation_timeout=settings.llm_timeout,
        context_max_chars=settings.llm_context_max_chars,
    )


def reset_pipeline_cache() -> None:
    get_pipeline.cache_clear()
    get_corpus_store.cache_clear()
    get_embedder.cache_clear()
    get_generator.cache_clear()


@lru_cache
def get_scoring_executor() -> ThreadPoolExecutor:
    return ThreadPoolExecutor(
        max_workers=max(1, settings.scoring_workers),
        thread_name_prefix="scoring",
    )


@lru_cache
def get_corpus_store() -> InMemoryCorpusStore:
    return InMemoryCorpusStore(embedder=get_embedder(), chunk_size=settings.chunk_size)


@lru_cache
def get_embedder() -> EmbeddingProvider:
    return build_embedder()


@lru_cache
def get_generator() -> TextGenerator:
    return build_generator(
        settings.llm_provider,
        api_key_openai=settings.openai_api_key,
        api_key_gemini=settings.gemini_api_key,
        openai_base_url=settings.openai_base_url,
        openai_model=settings.openai_chat_model,
        gemini_model=settings.gemini_chat_model,
        ollama_base_url=settings.ollama_base_url,
        ollama_model=settings.ollama_model,
        temperature=settings.llm_temperature,
        max_tokens=settings.llm_max_tokens,
        timeout=settings.llm_timeout,
    )


def build_embedder() -> EmbeddingProvider:
    provider = settings.embedding_provider.lower().strip()
    if provider == "hash":
        return HashEmbedder(dimension=settings.embedding_dimension)
    if provider == "openai":
        return OpenAIEmbedder(
            api_key=settings.openai_api_key or "",
            model=settings.openai_embedding_model or "",
            dimension=settings.embedding_dimension,
        )
    if provider in {"gemini", "google"}:
        if settings.embedding_dimension <= 0:
            raise EmbeddingConfigError("EMBEDDING_DIMENSION must be set for Gemini embeddings")
        return GeminiEmbedder(
            api_key=settings.gemini_api_key or "",
            model=settings.gemini_embedding_model or "",
            dimension=settings.embedding_dimension,
        )
    raise EmbeddingConfigError(f"Unsupported embedding provider: {provider}")
