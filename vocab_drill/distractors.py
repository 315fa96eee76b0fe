"""Wrong-answer options for multiple-choice questions."""
from __future__ import annotations

import random
from collections.abc import Iterable

from vocab_drill.matcher import normalize
from vocab_drill.models import Direction, VocabularyItem

OPTION_COUNT = 4


def _candidates(items: Iterable[VocabularyItem], direction: Direction, exclude: set[str]) -> list[str]:
    pool: list[str] = []
    for item in items:
        if item.id in exclude:
            continue
        # Definitions are flattened: each one is a separate candidate.
        pool.extend(item.accepted(direction))
    return pool


def build_options(
    correct_answer: str,
    items: Iterable[VocabularyItem],
    direction: Direction,
    exclude: Iterable[str] = (),
    exclude_answers: Iterable[str] = (),
    rng: random.Random | None = None,
    size: int = OPTION_COUNT,
) -> list[str]:
    """Return the shuffled option list for one question.

    The normalized correct answer appears exactly once. Up to ``size - 1``
    distinct normalized answers from the other items fill the rest; when the
    pool is short the list is simply shorter, never padded. Anything in
    *exclude_answers* (the other accepted answers of the same question) never
    appears as a wrong option.
    """
    shuffle = (rng or random).shuffle
    correct = normalize(correct_answer)

    seen = {correct} | {normalize(a) for a in exclude_answers}
    pool: list[str] = []
    for cand in _candidates(items, direction, set(exclude)):
        norm = normalize(cand)
        if not norm or norm in seen:
            continue
        seen.add(norm)
        pool.append(norm)
    shuffle(pool)

    options = [correct] + pool[: max(0, size - 1)]
    shuffle(options)
    return options
