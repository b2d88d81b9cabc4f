from __future__ import annotations

"""Answer prompt and generator selection tests."""

import pytest

from hybrid_rag.rag.llm import (
    ExtractiveGenerator,
    LLMError,
    OllamaGenerator,
    OpenAIGenerator,
    build_answer_prompt,
    build_generator,
    extract_prompt_context,
)
from hybrid_rag.rag.types import Chunk

pytestmark = pytest.mark.anyio

GENERATOR_DEFAULTS = {
    "api_key_openai": None,
    "api_key_gemini": None,
    "openai_base_url": "https://api.openai.com/v1/",
    "openai_model": None,
    "gemini_model": None,
    "ollama_base_url": "http://localhost:11434/",
    "ollama_model": "llama3.1",
    "temperature": 0.1,
    "max_tokens": 256,
    "timeout": 5.0,
}


def chunk(idx: int, content: str) -> Chunk:
    return Chunk(id=f"c{idx}", doc_id="d", content=content, chunk_index=idx)


def test_answer_prompt_layout() -> None:
    prompt = build_answer_prompt("Why do cats purr?", [chunk(0, "Cats purr."), chunk(1, "  ")])

    assert prompt.startswith("Context: Cats purr.\n\nQuestion: Why do cats purr?\n\n")
    assert "based on the context above" in prompt


def test_answer_prompt_respects_context_budget() -> None:
    prompt = build_answer_prompt("q?", [chunk(0, "a" * 30), chunk(1, "b" * 30)], max_chars=40)

    context = extract_prompt_context(prompt)
    assert context.startswith("a" * 30)
    assert len(context.replace("\n", "")) <= 40


def test_extract_prompt_context_ignores_other_prompts() -> None:
    assert extract_prompt_context("Generate 3 different ways to ask") == ""


async def test_extractive_generator_quotes_top_block() -> None:
    generator = ExtractiveGenerator(max_chars=20)
    prompt = build_answer_prompt("q?", [chunk(0, "Cats purr when they are content"), chunk(1, "x")])

    answer = await generator.generate(prompt)

    assert answer == "Based on the provided context: Cats purr when they..."
    assert await generator.generate("Health check test") == ""


def test_build_generator_defaults_to_extractive() -> None:
    assert isinstance(build_generator("", **GENERATOR_DEFAULTS), ExtractiveGenerator)
    assert isinstance(build_generator("Extractive", **GENERATOR_DEFAULTS), ExtractiveGenerator)


def test_build_generator_remote_providers() -> None:
    settings = {**GENERATOR_DEFAULTS, "api_key_openai": "sk-test", "openai_model": "gpt-4o-mini"}

    openai = build_generator("openai", **settings)
    ollama = build_generator("ollama", **settings)

    assert isinstance(openai, OpenAIGenerator)
    assert openai.base_url == "https://api.openai.com/v1"
    assert isinstance(ollama, OllamaGenerator)
    assert ollama.base_url == "http://localhost:11434"


@pytest.mark.parametrize("provider", ["openai", "gemini", "anthropic-local"])
def test_build_generator_rejects_incomplete_config(provider: str) -> None:
    with pytest.raises(LLMError):
        build_generator(provider, **GENERATOR_DEFAULTS)
