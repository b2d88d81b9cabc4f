from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


def _optional_float(name: str) -> float | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    value = float(raw)
    return value if value > 0 else None


@dataclass(frozen=True)
class Settings:
    environment: str = os.getenv("RAG_ENV", "production")
    log_level: str = os.getenv("RAG_LOG_LEVEL", "INFO")
    cache_ttl: float = float(os.getenv("RAG_CACHE_TTL", "3600"))
    result_cache_ttl: float = float(os.getenv("RAG_RESULT_CACHE_TTL", "1800"))
    expansion_count: int = int(os.getenv("RAG_EXPANSION_COUNT", "3"))
    scoring_workers: int = int(os.getenv("RAG_SCORING_WORKERS", "4"))
    scoring_batch_size: int = int(os.getenv("RAG_SCORING_BATCH_SIZE", "64"))
    chunk_size: int = int(os.getenv("RAG_CHUNK_SIZE", "1000"))
    upload_max_bytes: int = int(os.getenv("RAG_UPLOAD_MAX_BYTES", "10485760"))
    metrics_enabled: bool = os.getenv("RAG_METRICS_ENABLED", "true").lower() in {"1", "true", "yes"}
    frontend_url: str = os.getenv("RAG_FRONTEND_URL", "http://localhost:3000")
    embedding_provider: str = os.getenv("EMBEDDING_PROVIDER", "hash")
    embedding_dimension: int = int(os.getenv("EMBEDDING_DIMENSION", "256"))
    embedding_timeout: float | None = _optional_float("EMBEDDING_TIMEOUT")
    openai_api_key: str | None = os.getenv("OPENAI_API_KEY")
    openai_base_url: str = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
    openai_embedding_model: str | None = os.getenv("OPENAI_EMBEDDING_MODEL")
    openai_chat_model: str | None = os.getenv("OPENAI_CHAT_MODEL")
    gemini_api_key: str | None = os.getenv("GEMINI_API_KEY")
    gemini_embedding_model: str | None = os.getenv("GEMINI_EMBEDDING_MODEL", "models/text-embedding-004")
    gemini_chat_model: str | None = os.getenv("GEMINI_CHAT_MODEL", "gemini-1.5-flash")
    llm_provider: str = os.getenv("RAG_LLM_PROVIDER", "extractive")
    llm_temperature: float = float(os.getenv("RAG_LLM_TEMPERATURE", "0.1"))
    llm_max_tokens: int = int(os.getenv("RAG_LLM_MAX_TOKENS", "512"))
    llm_timeout: float = float(os.getenv("RAG_LLM_TIMEOUT", "60"))
    llm_context_max_chars: int = int(os.getenv("RAG_LLM_CONTEXT_MAX_CHARS", "12000"))
    ollama_base_url: str = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")
    ollama_model: str = os.getenv("OLLAMA_MODEL", "llama3.1")

    @property
    def is_development(self) -> bool:
        return self.environment.strip().lower() in {"dev", "development", "local"}


settings = Settings()
