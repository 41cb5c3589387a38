#!/usr/bin/env python3
"""Answer key handling and grading of detected answers."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from omr_errors import ConfigurationError, IncompleteAnswerKey
from omr_geometry import OPTION_LABELS


Option = Optional[str]
UNSET_MARKERS = ("-", "?", "_", "")


@dataclass(frozen=True)
class GradedAnswer:
    question_number: int  # 1-indexed
    detected: Option
    correct_answer: str
    is_correct: bool

    @property
    def status(self) -> str:
        if self.detected is None:
            return "unanswered"
        return "correct" if self.is_correct else "wrong"


@dataclass(frozen=True)
class GradingReport:
    total_questions: int
    correct_count: int
    wrong_count: int
    unanswered_count: int
    score_percentage: float
    answers: Tuple[GradedAnswer, ...]

    @property
    def detected_answers(self) -> List[Option]:
        return [answer.detected for answer in self.answers]

    def to_dict(self) -> Dict[str, object]:
        return {
            "total_questions": self.total_questions,
            "correct": self.correct_count,
            "wrong": self.wrong_count,
            "unanswered": self.unanswered_count,
            "score_percentage": self.score_percentage,
            "answers": [
                {
                    "question": answer.question_number,
                    "detected": answer.detected,
                    "correct_answer": answer.correct_answer,
                    "is_correct": answer.is_correct,
                    "status": answer.status,
                }
                for answer in self.answers
            ],
        }


def new_answer_key(num_questions: int) -> List[Option]:
    """An answer key with every entry unset."""
    return [None] * num_questions


def resize_answer_key(answer_key: Sequence[Option], num_questions: int) -> List[Option]:
    """Keep the entries both lengths share and leave new questions unset."""

    resized = new_answer_key(num_questions)
    for index in range(min(len(answer_key), num_questions)):
        resized[index] = answer_key[index]
    return resized


def is_answer_key_complete(answer_key: Sequence[Option]) -> bool:
    return bool(answer_key) and all(entry not in (None, "") for entry in answer_key)


def parse_answer_key(text: str) -> List[Option]:
    """Parse "ABCD", "A,B,C,D" or "A B C D"; "-", "?" or "_" leave an entry unset.

    With comma or semicolon separators an empty field ("A,,C") is unset too.
    """

    text = text.strip()
    if "," in text or ";" in text:
        tokens = [token.strip() for token in re.split(r"[,;]", text)]
    elif any(sep in text for sep in " \t\n"):
        tokens = text.split()
    else:
        tokens = list(text)
    return [None if token in UNSET_MARKERS else token.upper() for token in tokens]


def load_answer_key(path) -> List[Option]:
    """Load a key from JSON (a list, or an object with "answers") or plain text."""

    path = Path(path)
    try:
        content = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise ConfigurationError(f"Answer key file not found at {path}") from None
    except UnicodeDecodeError as e:
        raise ConfigurationError(f"Answer key in {path} could not be read: {e}") from e

    if path.suffix.lower() != ".json":
        return parse_answer_key(content)

    try:
        data = json.loads(content)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Answer key in {path} could not be read: {e}") from e
    if isinstance(data, dict):
        data = data.get("answers")
    if not isinstance(data, list):
        raise ConfigurationError(f"Answer key in {path} must be a list of options")
    return [None if entry in (None, *UNSET_MARKERS) else str(entry).upper() for entry in data]


def validate_answer_key(
    answer_key: Sequence[Option],
    num_questions: int,
    option_labels: Sequence[str] = OPTION_LABELS,
) -> None:
    """Raise unless the key has one valid option for each of ``num_questions``."""

    if len(answer_key) != num_questions:
        raise ConfigurationError(
            f"Answer key has {len(answer_key)} entries but the sheet has {num_questions} questions"
        )
    missing = [number for number, entry in enumerate(answer_key, start=1) if entry in (None, "")]
    if missing:
        raise IncompleteAnswerKey(missing)
    for number, entry in enumerate(answer_key, start=1):
        if entry not in option_labels:
            raise ConfigurationError(
                f"Answer key entry {entry!r} for question {number} is not one of "
                f"{', '.join(option_labels)}"
            )


def grade(
    detected_answers: Sequence[Option],
    answer_key: Sequence[Option],
    option_labels: Sequence[str] = OPTION_LABELS,
) -> GradingReport:
    """Compare detected answers with the key, question by question."""

    total = len(detected_answers)
    if total == 0:
        raise ConfigurationError("Nothing to grade: the sheet has no questions")
    validate_answer_key(answer_key, total, option_labels)

    answers: List[GradedAnswer] = []
    correct = wrong = unanswered = 0
    for number, (detected, expected) in enumerate(zip(detected_answers, answer_key), start=1):
        if detected is not None and detected not in option_labels:
            raise ConfigurationError(f"Detected answer {detected!r} for question {number} is not a valid option")

        is_correct = detected is not None and detected == expected
        if detected is None:
            unanswered += 1
        elif is_correct:
            correct += 1
        else:
            wrong += 1
        answers.append(
            GradedAnswer(
                question_number=number,
                detected=detected,
                correct_answer=expected,
                is_correct=is_correct,
            )
        )

    return GradingReport(
        total_questions=total,
        correct_count=correct,
        wrong_count=wrong,
        unanswered_count=unanswered,
        score_percentage=correct / total * 100,
        answers=tuple(answers),
    )
