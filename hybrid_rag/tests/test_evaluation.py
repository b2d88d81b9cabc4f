from __future__ import annotations

"""Lexical evaluation metric tests."""

import pytest

from hybrid_rag.rag.evaluation import NEUTRAL_PRECISION, Evaluator, jaccard, split_sentences
from hybrid_rag.rag.types import Chunk


def chunk(idx: int, content: str) -> Chunk:
    return Chunk(id=f"c{idx}", doc_id="d", content=content, chunk_index=idx)


def test_jaccard_values() -> None:
    assert jaccard("cats purr", "cats purr") == 1.0
    assert jaccard("cats purr", "dogs bark") == 0.0
    assert jaccard("cats purr loudly", "cats purr") == pytest.approx(2 / 3)


def test_jaccard_both_empty_is_one() -> None:
    assert jaccard("", "?!") == 1.0
    assert jaccard("", "cats") == 0.0


def test_answer_relevance_uses_overlap() -> None:
    evaluator = Evaluator()

    assert evaluator.answer_relevance("what do cats eat", "cats eat fish") == pytest.approx(2 / 5)


def test_context_precision_neutral_without_reference() -> None:
    evaluator = Evaluator()

    assert evaluator.context_precision([chunk(0, "cats")]) == NEUTRAL_PRECISION


def test_context_precision_fraction() -> None:
    evaluator = Evaluator()
    retrieved = [chunk(0, "cats purr and sleep"), chunk(1, "cars need fuel")]
    reference = [chunk(9, "cats purr and sleep a lot")]

    assert evaluator.context_precision(retrieved, reference) == 0.5
    assert evaluator.context_precision([], reference) == 0.0


def test_faithfulness_counts_supported_sentences() -> None:
    evaluator = Evaluator()
    context = "cats purr when happy"

    score = evaluator.faithfulness("Cats purr when happy. Rockets reach orbit quickly!", context)

    assert score == 0.5


def test_faithfulness_empty_answer_is_fully_faithful() -> None:
    assert Evaluator().faithfulness("", "anything") == 1.0
    assert Evaluator().faithfulness("...", "anything") == 1.0


def test_split_sentences() -> None:
    assert split_sentences("One. Two! Three? ") == ["One.", "Two!", "Three?"]


def test_evaluate_scores_in_unit_range() -> None:
    result = Evaluator().evaluate(
        "Why do cats purr?",
        "Cats purr when they are content.",
        [chunk(0, "Cats purr when they are content or healing.")],
    )

    for value in (result.answer_relevance, result.context_precision, result.faithfulness):
        assert 0.0 <= value <= 1.0
    assert result.faithfulness == 1.0
    assert result.timestamp


def test_custom_similarity_hook() -> None:
    evaluator = Evaluator(similarity=lambda a, b: 1.0)

    assert evaluator.answer_relevance("a", "b") == 1.0
    assert evaluator.faithfulness("One. Two.", "ctx") == 1.0
