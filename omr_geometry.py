#!/usr/bin/env python3
"""Sheet geometry shared by the sheet generator and the reader.

Every coordinate the generator draws at is produced here, and the reader
samples pixels at exactly the same coordinates. All values are pixels in
the canonical page coordinate system (origin top-left, y grows downward).
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field, replace
from typing import List, Tuple

from omr_errors import ConfigurationError


# A4 aspect ratio (210mm x 297mm)
PAGE_WIDTH = 2100
PAGE_HEIGHT = 2970

SHEET_MARGIN = 100
HEADER_HEIGHT = 400

DEFAULT_NUM_QUESTIONS = 20
MAX_QUESTIONS = 50  # fits a single A4 page without crowding
QUESTIONS_PER_COLUMN = 25
OPTION_LABELS: Tuple[str, ...] = ("A", "B", "C", "D")

BUBBLE_RADIUS = 30
BUBBLE_SPACING = 120  # horizontal space between bubbles
QUESTION_SPACING = 95  # vertical space between questions

BUBBLE_OFFSET_X = 200  # first bubble, from the column origin
LABEL_OFFSET_X = 50  # question number anchor, from the column origin
OPTION_LABEL_GAP = 40  # option letter baseline below the bubble edge


Point = Tuple[int, int]


@dataclass(frozen=True)
class GeometryConfig:
    """Immutable description of the sheet layout."""

    page_width: int = PAGE_WIDTH
    page_height: int = PAGE_HEIGHT
    margin: int = SHEET_MARGIN
    header_height: int = HEADER_HEIGHT
    num_options: int = len(OPTION_LABELS)
    num_questions: int = DEFAULT_NUM_QUESTIONS
    questions_per_column: int = QUESTIONS_PER_COLUMN
    bubble_radius: int = BUBBLE_RADIUS
    bubble_spacing: int = BUBBLE_SPACING
    question_spacing: int = QUESTION_SPACING
    max_questions: int = MAX_QUESTIONS
    option_labels: Tuple[str, ...] = field(default=OPTION_LABELS)
    bubble_offset: int = BUBBLE_OFFSET_X
    label_offset: int = LABEL_OFFSET_X
    option_label_gap: int = OPTION_LABEL_GAP

    def __post_init__(self) -> None:
        # Accept any sequence of labels but keep the instance hashable.
        object.__setattr__(self, "option_labels", tuple(self.option_labels))
        self._validate()

    @property
    def start_y(self) -> int:
        return self.header_height + self.margin

    @property
    def content_width(self) -> int:
        return self.page_width - 2 * self.margin

    @property
    def num_columns(self) -> int:
        return math.ceil(self.max_questions / self.questions_per_column)

    def column_origin(self, column: int) -> int:
        """Left edge x of a question column."""
        return int(round(self.margin + column * self.content_width / self.num_columns))

    def with_questions(self, num_questions: int) -> "GeometryConfig":
        return replace(self, num_questions=num_questions)

    def _validate(self) -> None:
        if self.questions_per_column < 1:
            raise ConfigurationError(
                f"questions_per_column must be at least 1, got {self.questions_per_column}"
            )
        if self.num_options < 1:
            raise ConfigurationError(f"num_options must be at least 1, got {self.num_options}")
        if len(self.option_labels) != self.num_options:
            raise ConfigurationError(
                f"Expected {self.num_options} option labels, got {len(self.option_labels)}"
            )
        if len(set(self.option_labels)) != len(self.option_labels):
            raise ConfigurationError(f"Option labels must be distinct: {self.option_labels}")
        if self.bubble_radius < 0:
            raise ConfigurationError(f"bubble_radius must not be negative, got {self.bubble_radius}")
        if not 1 <= self.num_questions <= self.max_questions:
            raise ConfigurationError(
                f"Number of questions must be between 1 and {self.max_questions}, "
                f"got {self.num_questions}"
            )

        for bubble in bubble_layout(self):
            left, right = bubble.x - bubble.radius, bubble.x + bubble.radius
            top, bottom = bubble.y - bubble.radius, bubble.y + bubble.radius
            if left < 0 or top < 0 or right > self.page_width or bottom > self.page_height:
                raise ConfigurationError(
                    f"Question {bubble.question_index + 1} option "
                    f"{self.option_labels[bubble.option_index]} at ({bubble.x}, {bubble.y}) "
                    f"does not fit on a {self.page_width}x{self.page_height} page"
                )

        for question_index in range(self.num_questions):
            label_x, label_y = question_label_position(self, question_index)
            _, option_y = option_label_position(self, question_index, 0)
            if label_x < 0 or max(label_y, option_y) > self.page_height:
                raise ConfigurationError(
                    f"Labels of question {question_index + 1} do not fit on the page"
                )


@dataclass(frozen=True)
class BubbleCoordinate:
    """Pixel centre of one option bubble of one question."""

    question_index: int
    option_index: int
    x: int
    y: int
    radius: int

    @property
    def center(self) -> Point:
        return self.x, self.y


def _row_and_column(config: GeometryConfig, question_index: int) -> Tuple[int, int]:
    column = question_index // config.questions_per_column
    row = question_index % config.questions_per_column
    return row, column


def _row_y(config: GeometryConfig, question_index: int) -> int:
    row, _ = _row_and_column(config, question_index)
    return config.start_y + row * config.question_spacing


def bubble_centers(config: GeometryConfig, question_index: int) -> List[Point]:
    """Return the (x, y) centre of every option bubble of a question, left to right."""

    _, column = _row_and_column(config, question_index)
    y = _row_y(config, question_index)
    start_x = config.column_origin(column) + config.bubble_offset
    return [(start_x + option * config.bubble_spacing, y) for option in range(config.num_options)]


def question_label_position(config: GeometryConfig, question_index: int) -> Point:
    """Anchor of the right-aligned "N." label drawn left of a question's bubbles."""

    _, column = _row_and_column(config, question_index)
    y = _row_y(config, question_index)
    return config.column_origin(column) + config.label_offset, y + config.bubble_radius // 2


def option_label_position(config: GeometryConfig, question_index: int, option_index: int) -> Point:
    """Baseline centre of the option letter printed below a bubble."""

    x, y = bubble_centers(config, question_index)[option_index]
    return x, y + config.bubble_radius + config.option_label_gap


def bubble_layout(config: GeometryConfig) -> List[BubbleCoordinate]:
    """Every bubble on the sheet in question order, options left to right."""

    bubbles: List[BubbleCoordinate] = []
    for question_index in range(config.num_questions):
        for option_index, (x, y) in enumerate(bubble_centers(config, question_index)):
            bubbles.append(
                BubbleCoordinate(
                    question_index=question_index,
                    option_index=option_index,
                    x=x,
                    y=y,
                    radius=config.bubble_radius,
                )
            )
    return bubbles


def clamp_question_count(value, config: GeometryConfig | None = None) -> int:
    """Coerce user input for the question count into [1, max_questions].

    Only the leading integer of a string counts, so "12.5" and "12abc" give 12.
    Input without one falls back to 1.
    """

    limit = config.max_questions if config is not None else MAX_QUESTIONS
    if isinstance(value, str):
        match = re.match(r"\s*([+-]?\d+)", value)
        if match is None:
            return 1
        value = match.group(1)
    try:
        count = int(value)
    except (TypeError, ValueError):
        return 1
    return min(limit, max(1, count))

