from __future__ import annotations

"""Lexical answer-quality evaluation for generated answers.

Jaccard overlap of token sets stands in for semantic similarity. The
``similarity`` hook on :class:`Evaluator` is the replacement point for an
embedding-based metric.
"""

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Sequence

from hybrid_rag.rag.scoring import tokenize
from hybrid_rag.rag.types import Chunk, Evaluation

CONTEXT_PRECISION_THRESHOLD = 0.5
FAITHFULNESS_THRESHOLD = 0.3
NEUTRAL_PRECISION = 0.5

_SENTENCE_RE = re.compile(r"[^.!?]+[.!?]*")


def jaccard(text_a: str, text_b: str) -> float:
    """Return the Jaccard similarity of the token sets of two texts.

    Two term-empty texts are treated as identical (1.0).
    """
    terms_a = set(tokenize(text_a))
    terms_b = set(tokenize(text_b))
    union = terms_a | terms_b
    if not union:
        return 1.0
    return len(terms_a & terms_b) / len(union)


def split_sentences(text: str) -> list[str]:
    """Split text into sentences containing at least one word token."""
    return [
        sentence.strip()
        for sentence in _SENTENCE_RE.findall(text)
        if tokenize(sentence)
    ]


@dataclass
class Evaluator:
    similarity: Callable[[str, str], float] = field(default=jaccard)

    def answer_relevance(self, question: str, answer: str) -> float:
        return self.similarity(question, answer)

    def context_precision(
        self,
        retrieved: Sequence[Chunk],
        reference: Sequence[Chunk] | None = None,
    ) -> float:
        """Fraction of retrieved chunks overlapping a known relevant chunk."""
        if reference is None:
            return NEUTRAL_PRECISION
        if not retrieved:
            return 0.0
        relevant = sum(
            1
            for chunk in retrieved
            if any(
                self.similarity(chunk.content, known.content) > CONTEXT_PRECISION_THRESHOLD
                for known in reference
            )
        )
        return relevant / len(retrieved)

    def faithfulness(self, answer: str, context: str) -> float:
        """Fraction of answer sentences supported by the context."""
        sentences = split_sentences(answer)
        if not sentences:
            return 1.0
        supported = sum(
            1
            for sentence in sentences
            if self.similarity(sentence, context) > FAITHFULNESS_THRESHOLD
        )
        return supported / len(sentences)

    def evaluate(
        self,
        question: str,
        answer: str,
        retrieved: Sequence[Chunk],
        reference: Sequence[Chunk] | None = None,
    ) -> Evaluation:
        """Score an answer against its question and retrieved context."""
        context = "\n".join(chunk.content for chunk in retrieved)
        return Evaluation(
            answer_relevance=self.answer_relevance(question, answer),
            context_precision=self.context_precision(retrieved, reference),
            faithfulness=self.faithfulness(answer, context),
            timestamp=datetime.now(timezone.utc).isoformat(),
        )
