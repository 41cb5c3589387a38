#!/usr/bin/env python3
"""OMR sheet reader for scans of generated answer sheets.

This script loads a scanned sheet that already matches the generated page
geometry, scores every bubble, decides the marked answers, grades them
against an answer key and optionally saves an annotated image and a JSON
report.
"""

from __future__ import annotations

import argparse
import json
import sys
from concurrent.futures import Executor, Future
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np

from omr_detector import (
    DARKNESS_THRESHOLD,
    DOMINANCE_RATIO,
    DetectorConfig,
    QuestionDetection,
    detect_sheet,
    ensure_pixel_buffer,
)
from omr_errors import InputUnavailable, OMRError
from omr_geometry import GeometryConfig, bubble_centers
from omr_grader import GradingReport, Option, grade, load_answer_key, parse_answer_key, validate_answer_key


STATUS_COLORS = {
    "correct": (0, 200, 0),  # green
    "wrong": (0, 0, 255),  # red
    "unanswered": (0, 215, 255),  # yellow
}


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Grade a scanned OMR answer sheet")
    parser.add_argument("image", type=Path, help="Path to the scanned OMR sheet image")
    parser.add_argument(
        "--answer-key",
        required=True,
        help='Answer key as letters ("ABCD...", "A,B,C") or a path to a .json/.txt key file',
    )
    parser.add_argument(
        "--questions",
        type=int,
        default=None,
        help="Number of questions on the sheet (defaults to the answer key length)",
    )
    parser.add_argument(
        "--darkness-threshold",
        type=float,
        default=DARKNESS_THRESHOLD,
        help="Grayscale value below which a pixel counts as ink; also the minimum mark score",
    )
    parser.add_argument(
        "--dominance-ratio",
        type=float,
        default=DOMINANCE_RATIO,
        help="How many times darker than the other options a mark must be",
    )
    parser.add_argument(
        "--allow-ties",
        action="store_true",
        help="Resolve an exact tie at the darkest score to the first option instead of no answer",
    )
    parser.add_argument(
        "--output-json",
        type=Path,
        default=None,
        help="Optional path to save the grading report as JSON",
    )
    parser.add_argument(
        "--debug-dir",
        type=Path,
        default=None,
        help="Directory to store intermediate debug images",
    )
    parser.add_argument(
        "--visualize",
        action="store_true",
        help="Save an annotated image with graded selections",
    )
    return parser.parse_args(argv)


def resolve_answer_key(value: str) -> List[Option]:
    path = Path(value)
    if path.suffix.lower() in (".json", ".txt") or path.is_file():
        return load_answer_key(path)
    return parse_answer_key(value)


def load_sheet_image(image_path, geometry: GeometryConfig) -> np.ndarray:
    """Decode a sheet image and scale it onto the canonical page size."""

    image = cv2.imread(str(image_path))
    if image is None:
        raise InputUnavailable(f"Unable to read image: {image_path}")

    page_size = (geometry.page_width, geometry.page_height)
    if (image.shape[1], image.shape[0]) != page_size:
        image = cv2.resize(image, page_size, interpolation=cv2.INTER_AREA)
    return image


def grade_sheet(
    pixels,
    geometry: GeometryConfig,
    answer_key: Sequence[Option],
    cfg: Optional[DetectorConfig] = None,
) -> Tuple[GradingReport, List[QuestionDetection]]:
    """Detect and grade every question; inputs are validated before any scoring."""

    validate_answer_key(answer_key, geometry.num_questions, geometry.option_labels)
    buffer = ensure_pixel_buffer(pixels)

    detections = detect_sheet(buffer, geometry, cfg)
    report = grade([d.answer for d in detections], answer_key, geometry.option_labels)
    return report, detections


def submit_grading(
    executor: Executor,
    pixels,
    geometry: GeometryConfig,
    answer_key: Sequence[Option],
    cfg: Optional[DetectorConfig] = None,
) -> Future:
    """Run grade_sheet on ``executor``; errors are raised from ``Future.result()``."""

    # Snapshot the key so later edits by the caller cannot leak into the run
    return executor.submit(grade_sheet, pixels, geometry, list(answer_key), cfg)


def format_report(report: GradingReport) -> str:
    lines = [
        f"Score: {report.score_percentage:.1f}%",
        f"Correct: {report.correct_count}  Wrong: {report.wrong_count}  "
        f"Unanswered: {report.unanswered_count}",
        "",
        f"{'Q.No':>4}  {'Detected':<8}  {'Correct':<7}  Result",
    ]
    for answer in report.answers:
        lines.append(
            f"{answer.question_number:>4}  {answer.detected or '-':<8}  "
            f"{answer.correct_answer:<7}  {answer.status.capitalize()}"
        )
    return "\n".join(lines)


def visualize_results(
    image: np.ndarray,
    geometry: GeometryConfig,
    report: GradingReport,
    debug_dir: Path,
) -> Path:
    """Save an annotated overlay showing graded selections."""

    overlay = image.copy()
    if overlay.ndim == 2:
        overlay = cv2.cvtColor(overlay, cv2.COLOR_GRAY2BGR)

    radius = geometry.bubble_radius
    for answer in report.answers:
        centers = bubble_centers(geometry, answer.question_number - 1)
        color = STATUS_COLORS[answer.status]
        for option, center in zip(geometry.option_labels, centers):
            if option == answer.detected:
                cv2.circle(overlay, center, radius + 8, color, 6)
            elif option == answer.correct_answer and not answer.is_correct:
                cv2.circle(overlay, center, radius + 8, STATUS_COLORS["correct"], 2)
            elif answer.detected is None:
                cv2.circle(overlay, center, radius + 8, color, 2)

    debug_dir.mkdir(parents=True, exist_ok=True)
    output_path = debug_dir / "annotated_results.png"
    cv2.imwrite(str(output_path), overlay)
    return output_path


def process_sheet(args: argparse.Namespace) -> Tuple[GradingReport, dict]:
    answer_key = resolve_answer_key(args.answer_key)
    num_questions = len(answer_key) if args.questions is None else args.questions
    geometry = GeometryConfig(num_questions=num_questions)
    validate_answer_key(answer_key, geometry.num_questions, geometry.option_labels)

    cfg = DetectorConfig(
        darkness_threshold=args.darkness_threshold,
        dominance_ratio=args.dominance_ratio,
        reject_ties=not args.allow_ties,
    )

    image = load_sheet_image(args.image, geometry)
    report, detections = grade_sheet(image, geometry, answer_key, cfg)

    if args.debug_dir:
        args.debug_dir.mkdir(parents=True, exist_ok=True)
        cv2.imwrite(str(args.debug_dir / "page.jpg"), image)
        if args.visualize:
            path = visualize_results(image, geometry, report, args.debug_dir)
            print(f"Saved annotated image to {path}")

    summary = {
        "image": str(args.image),
        "report": report.to_dict(),
        "scores": {d.question_number: list(d.scores) for d in detections},
        "parameters": {
            "num_questions": geometry.num_questions,
            "darkness_threshold": cfg.darkness_threshold,
            "dominance_ratio": cfg.dominance_ratio,
            "reject_ties": cfg.reject_ties,
        },
    }

    if args.output_json:
        args.output_json.parent.mkdir(parents=True, exist_ok=True)
        with args.output_json.open("w", encoding="utf-8") as f:
            json.dump(summary, f, indent=2)
        print(f"Report saved to {args.output_json}")

    return report, summary


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    try:
        report, summary = process_sheet(args)
    except OMRError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print("Questions graded:", report.total_questions)
    for question, scores in list(summary["scores"].items())[:10]:
        detected = report.answers[question - 1].detected
        print(f"Q{question:02d}: detected={detected}, scores={[round(s, 1) for s in scores]}")
    if len(summary["scores"]) > 10:
        print("... (truncated)")

    print()
    print(format_report(report))
    return 0


if __name__ == "__main__":
    sys.exit(main())
