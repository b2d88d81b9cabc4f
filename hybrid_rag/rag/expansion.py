from __future__ import annotations

"""Query expansion into alternative phrasings for multi-query retrieval."""

import asyncio
import logging
import re
from dataclasses import dataclass

from hybrid_rag.rag.llm import TextGenerator
from hybrid_rag.rag.types import ExpansionResult

logger = logging.getLogger(__name__)

DEFAULT_VARIATIONS = 3

_MARKER_RE = re.compile(r"^\s*(?:\d+[.)]|[-*•])(?:\s+|$)")
_QUOTES = "\"'“”"


def build_expansion_prompt(question: str, count: int) -> str:
    """Build the prompt asking for alternative phrasings of a question."""
    return (
        f"Generate {count} different ways to ask the following question. "
        "Each query should capture different aspects or perspectives of the "
        "original question:\n\n"
        f'Original Question: "{question}"\n\n'
        f"Please provide {count} alternative queries, each on a new line:"
    )


def parse_variations(text: str, count: int) -> list[str]:
    """Parse generated lines, stripping enumeration markers and blanks."""
    variations: list[str] = []
    for line in text.splitlines():
        cleaned = _MARKER_RE.sub("", line).strip().strip(_QUOTES).strip()
        if not cleaned:
            continue
        variations.append(cleaned)
        if len(variations) >= count:
            break
    return variations


@dataclass
class QueryExpander:
    """Expands a question via a text generator, degrading to the original."""
    generator: TextGenerator
    timeout: float | None = None

    async def expand(self, question: str, count: int = DEFAULT_VARIATIONS) -> ExpansionResult:
        """Return the original question followed by up to ``count`` alternatives."""
        if count <= 0:
            return ExpansionResult(variations=(question,))
        prompt = build_expansion_prompt(question, count)
        try:
            generated = await asyncio.wait_for(self.generator.generate(prompt), timeout=self.timeout)
        except Exception as exc:
            logger.warning(
                "query_expansion_failed",
                extra={"error": type(exc).__name__, "detail": str(exc)},
            )
            return ExpansionResult(variations=(question,), degraded=True)
        variations = parse_variations(generated, count)
        logger.info(
            "query_expansion_complete",
            extra={"requested": count, "generated": len(variations)},
        )
        return ExpansionResult(variations=(question, *variations))
