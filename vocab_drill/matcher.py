"""Answer normalization and matching against a vocabulary item's accepted answers."""
from __future__ import annotations

import re
from collections.abc import Iterable

from vocab_drill.models import Direction, VocabularyItem

_WS = re.compile(r"\s+")
_SEPARATORS = re.compile(r"[,;]")


class EmptyAnswerError(ValueError):
    """Raised when an answer has no non-blank input to grade."""


def normalize(text: str) -> str:
    """Trim, collapse whitespace runs to one space and case-fold.

    Idempotent: ``normalize(normalize(x)) == normalize(x)``.
    """
    if not text:
        return ""
    return _WS.sub(" ", text).strip().casefold()


def split_answer(text: str) -> list[str]:
    """Split a free-text field holding several comma/semicolon separated answers."""
    if not text:
        return []
    return _SEPARATORS.split(text)


def clean_inputs(inputs: Iterable[str]) -> list[str]:
    return [i for i in inputs if i and i.strip()]


def join_inputs(inputs: Iterable[str]) -> str:
    """Raw display form of the answer, as stored on a mistake."""
    return ", ".join(i.strip() for i in clean_inputs(inputs))


def accepted_set(direction: Direction, item: VocabularyItem) -> set[str]:
    return {normalize(a) for a in item.accepted(direction) if normalize(a)}


def answer_inputs(direction: Direction, text: str, item: VocabularyItem) -> list[str]:
    """Turn one free-text field into the inputs to grade.

    The whole field counts as a single input when it is itself an accepted
    answer, so headwords and definitions containing commas stay answerable.
    Otherwise it is split on commas and semicolons.
    """
    if normalize(text) in accepted_set(direction, item):
        return [text]
    return split_answer(text)


def matches(direction: Direction, inputs: Iterable[str], item: VocabularyItem) -> bool:
    """Grade *inputs* against *item*.

    Every remaining input must be accepted: a definition of the item when
    drilling headword -> definitions, the headword itself the other way.
    Raises EmptyAnswerError when nothing is left after dropping blanks.
    """
    remaining = [normalize(i) for i in clean_inputs(inputs)]
    if not remaining:
        raise EmptyAnswerError("Answer is empty")

    if direction == Direction.HEADWORD_TO_DEFINITIONS:
        accepted = accepted_set(direction, item)
        return all(r in accepted for r in remaining)

    headword = normalize(item.headword)
    return all(r == headword for r in remaining)
