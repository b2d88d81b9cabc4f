from __future__ import annotations

"""Generation service: answer prompts plus offline and remote generators."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from hybrid_rag.rag.errors import TransientServiceError
from hybrid_rag.rag.types import Chunk

logger = logging.getLogger(__name__)

CONTEXT_PREFIX = "Context: "
QUESTION_SEPARATOR = "\n\nQuestion: "
ANSWER_INSTRUCTIONS = (
    "Please provide a comprehensive answer based on the context above. "
    "If the context doesn't contain enough information to answer the question, "
    "please say so."
)


class LLMError(TransientServiceError):
    """The generation service failed or returned an unusable response."""


class TextGenerator(Protocol):
    async def generate(self, prompt: str) -> str:
        ...


def build_answer_prompt(question: str, chunks: list[Chunk], max_chars: int = 12000) -> str:
    """Join ranked chunk contents into a context block capped at ``max_chars``."""
    blocks: list[str] = []
    budget = max_chars
    for chunk in chunks:
        text = chunk.content.strip()
        if not text:
            continue
        if budget <= 0:
            break
        blocks.append(text[:budget])
        budget -= len(blocks[-1]) + 2
    context = "\n\n".join(blocks)
    return f"{CONTEXT_PREFIX}{context}{QUESTION_SEPARATOR}{question}\n\n{ANSWER_INSTRUCTIONS}"


def extract_prompt_context(prompt: str) -> str:
    """Return the context block of an answer prompt, or ``""`` for other prompts."""
    if not prompt.startswith(CONTEXT_PREFIX):
        return ""
    context, separator, _ = prompt[len(CONTEXT_PREFIX) :].partition(QUESTION_SEPARATOR)
    return context.strip() if separator else ""


@dataclass
class ExtractiveGenerator:
    """Offline generator that quotes the top-ranked context block.

    Prompts without a context block (query expansion, health probes) get an
    empty answer, so expansion yields no extra variations.
    """
    max_chars: int = 480

    async def generate(self, prompt: str) -> str:
        context = extract_prompt_context(prompt)
        if not context:
            return ""
        lead = context.split("\n\n", 1)[0].strip()
        if len(lead) > self.max_chars:
            lead = lead[: self.max_chars].rsplit(" ", 1)[0] + "..."
        return f"Based on the provided context: {lead}"


async def _post_json(
    url: str, payload: dict[str, Any], timeout: float, headers: dict[str, str] | None = None
) -> dict[str, Any]:
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            response = await client.post(url, json=payload, headers=headers)
            response.raise_for_status()
            return response.json()
    except httpx.HTTPError as exc:
        raise LLMError(f"generation request to {url} failed: {exc}") from exc
    except ValueError as exc:
        raise LLMError(f"generation response from {url} was not JSON") from exc


def _require_text(value: Any, provider: str) -> str:
    if not isinstance(value, str):
        raise LLMError(f"{provider} response carried no text")
    return value.strip()


@dataclass(frozen=True)
class OllamaGenerator:
    base_url: str
    model: str
    temperature: float
    max_tokens: int
    timeout: float

    async def generate(self, prompt: str) -> str:
        data = await _post_json(
            f"{self.base_url}/api/chat",
            {
                "model": self.model,
                "messages": [{"role": "user", "content": prompt}],
                "stream": False,
                "options": {"temperature": self.temperature, "num_predict": self.max_tokens},
            },
            self.timeout,
        )
        return _require_text((data.get("message") or {}).get("content"), "Ollama")


@dataclass(frozen=True)
class OpenAIGenerator:
    """Chat completions over HTTP; works with any OpenAI-compatible base URL."""
    api_key: str
    base_url: str
    model: str
    temperature: float
    max_tokens: int
    timeout: float

    async def generate(self, prompt: str) -> str:
        data = await _post_json(
            f"{self.base_url}/chat/completions",
            {
                "model": self.model,
                "messages": [{"role": "user", "content": prompt}],
                "temperature": self.temperature,
                "max_tokens": self.max_tokens,
            },
            self.timeout,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        choices = data.get("choices") or [{}]
        return _require_text((choices[0].get("message") or {}).get("content"), "OpenAI")


@dataclass(frozen=True)
class GeminiGenerator:
    api_key: str
    model: str
    temperature: float
    max_tokens: int
    timeout: float

    async def generate(self, prompt: str) -> str:
        try:
            import google.generativeai as genai
        except ImportError as exc:
            raise LLMError("install the 'gemini' extra to use Gemini generation") from exc

        def call() -> str:
            genai.configure(api_key=self.api_key)
            response = genai.GenerativeModel(self.model).generate_content(
                prompt,
                generation_config={
                    "temperature": self.temperature,
                    "max_output_tokens": self.max_tokens,
                },
            )
            try:
                return response.text or ""
            except ValueError:
                # response.text raises when the reply was blocked or split into parts
                candidates = getattr(response, "candidates", None) or []
                if not candidates:
                    return ""
                return "".join(getattr(part, "text", "") for part in candidates[0].content.parts)

        try:
            text = await asyncio.wait_for(asyncio.to_thread(call), timeout=self.timeout)
        except Exception as exc:
            raise LLMError(f"Gemini generation failed: {exc}") from exc
        return text.strip()


def build_generator(
    provider: str,
    *,
    api_key_openai: str | None,
    api_key_gemini: str | None,
    openai_base_url: str,
    openai_model: str | None,
    gemini_model: str | None,
    ollama_base_url: str,
    ollama_model: str,
    temperature: float,
    max_tokens: int,
    timeout: float,
) -> TextGenerator:
    """Create the generator named by ``provider`` (extractive when blank)."""
    name = provider.strip().lower()
    tuning = {"temperature": temperature, "max_tokens": max_tokens, "timeout": timeout}
    logger.info("generator_selected", extra={"provider": name or "extractive"})
    if name in {"", "extractive"}:
        return ExtractiveGenerator()
    if name == "openai":
        if not api_key_openai or not openai_model:
            raise LLMError("OPENAI_API_KEY and OPENAI_CHAT_MODEL are required for OpenAI")
        return OpenAIGenerator(
            api_key=api_key_openai,
            base_url=openai_base_url.rstrip("/"),
            model=openai_model,
            **tuning,
        )
    if name in {"gemini", "google"}:
        if not api_key_gemini or not gemini_model:
            raise LLMError("GEMINI_API_KEY and GEMINI_CHAT_MODEL are required for Gemini")
        return GeminiGenerator(api_key=api_key_gemini, model=gemini_model, **tuning)
    if name == "ollama":
        return OllamaGenerator(base_url=ollama_base_url.rstrip("/"), model=ollama_model, **tuning)
    raise LLMError(f"Unsupported LLM provider: {provider}")
