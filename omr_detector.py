#!/usr/bin/env python3
"""Bubble darkness scoring and the per-question marking decision.

The detector samples the page at the coordinates produced by
``omr_geometry`` and never alters the pixel buffer it is given.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from omr_errors import InputUnavailable
from omr_geometry import GeometryConfig, bubble_centers


# Grayscale value (0-255) below which a pixel counts as ink. The same value
# gates the bubble score a mark must exceed.
DARKNESS_THRESHOLD = 120.0
# A mark must be this many times darker than the mean of the other options.
DOMINANCE_RATIO = 2.5


@dataclass(frozen=True)
class DetectorConfig:
    darkness_threshold: float = DARKNESS_THRESHOLD
    dominance_ratio: float = DOMINANCE_RATIO
    # Two options sharing the exact maximum score resolve to no answer.
    reject_ties: bool = True


@dataclass(frozen=True)
class QuestionDetection:
    """Scores and detected option for one question."""

    question_number: int  # 1-indexed
    scores: Tuple[float, ...]
    answer: Optional[str]


def ensure_pixel_buffer(pixels) -> np.ndarray:
    """Return ``pixels`` as an array view, raising InputUnavailable when unusable."""

    if pixels is None:
        raise InputUnavailable("No image data was provided")
    array = np.asarray(pixels)
    if array.ndim not in (2, 3) or array.size == 0:
        raise InputUnavailable(f"Unsupported pixel buffer shape: {array.shape}")
    if array.ndim == 3 and array.shape[2] not in (1, 3, 4):
        raise InputUnavailable(f"Unsupported number of channels: {array.shape[2]}")
    return array


def bubble_darkness(
    pixels: np.ndarray,
    center_x: int,
    center_y: int,
    radius: int,
    darkness_threshold: float = DARKNESS_THRESHOLD,
    origin: Tuple[int, int] = (0, 0),
) -> float:
    """Fraction of dark pixels inside the bubble's inscribed circle, scaled to 0-255.

    The bounding square spans offsets ``[-radius, radius)`` on both axes.
    ``origin`` is the page coordinate of the buffer's top-left pixel, so a
    cropped buffer can be scored with page coordinates. Circle pixels that
    fall outside the buffer count as blank paper.
    """

    pixels = np.asarray(pixels)
    radius = int(radius)
    offsets = np.arange(-radius, radius)
    dy, dx = np.meshgrid(offsets, offsets, indexing="ij")
    in_circle = dx * dx + dy * dy <= radius * radius
    circle_pixels = int(np.count_nonzero(in_circle))
    if circle_pixels == 0:
        return 0.0

    height, width = pixels.shape[:2]
    xs = int(center_x) - int(origin[0]) + dx
    ys = int(center_y) - int(origin[1]) + dy
    inside = in_circle & (xs >= 0) & (xs < width) & (ys >= 0) & (ys < height)

    values = pixels[ys[inside], xs[inside]]
    if values.ndim == 2:
        gray = values[:, :3].mean(axis=1)
    else:
        gray = values.astype(np.float64)

    dark_pixels = int(np.count_nonzero(gray < darkness_threshold))
    return dark_pixels / circle_pixels * 255.0


def question_darkness(
    pixels: np.ndarray,
    geometry: GeometryConfig,
    question_index: int,
    cfg: Optional[DetectorConfig] = None,
    origin: Tuple[int, int] = (0, 0),
) -> List[float]:
    """Darkness score of every option of one question, left to right."""

    cfg = cfg or DetectorConfig()
    return [
        bubble_darkness(pixels, x, y, geometry.bubble_radius, cfg.darkness_threshold, origin)
        for x, y in bubble_centers(geometry, question_index)
    ]


def decide_answer(
    scores: Sequence[float],
    labels: Sequence[str],
    cfg: Optional[DetectorConfig] = None,
) -> Optional[str]:
    """Pick the clearly marked option, or None for blank and ambiguous questions.

    The darkest option (first one on ties) must exceed the darkness
    threshold and be ``dominance_ratio`` times darker than the mean of
    all the other options.
    """

    cfg = cfg or DetectorConfig()
    if not scores:
        return None

    max_index = 0
    for index, score in enumerate(scores):
        if score > scores[max_index]:
            max_index = index
    max_score = scores[max_index]

    others = [score for index, score in enumerate(scores) if index != max_index]
    avg_others = sum(others) / len(others) if others else 0.0

    if cfg.reject_ties and max_score in others:
        return None

    clearly_marked = max_score > cfg.darkness_threshold and max_score > avg_others * cfg.dominance_ratio
    return labels[max_index] if clearly_marked else None


def detect_sheet(
    pixels,
    geometry: GeometryConfig,
    cfg: Optional[DetectorConfig] = None,
    origin: Tuple[int, int] = (0, 0),
) -> List[QuestionDetection]:
    """Score and decide every question configured on the sheet."""

    cfg = cfg or DetectorConfig()
    buffer = ensure_pixel_buffer(pixels)

    detections: List[QuestionDetection] = []
    for question_index in range(geometry.num_questions):
        scores = question_darkness(buffer, geometry, question_index, cfg, origin)
        detections.append(
            QuestionDetection(
                question_number=question_index + 1,
                scores=tuple(scores),
                answer=decide_answer(scores, geometry.option_labels, cfg),
            )
        )
    return detections


def detect_answers(
    pixels,
    geometry: GeometryConfig,
    cfg: Optional[DetectorConfig] = None,
    origin: Tuple[int, int] = (0, 0),
) -> List[Optional[str]]:
    return [d.answer for d in detect_sheet(pixels, geometry, cfg, origin)]
