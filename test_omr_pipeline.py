#!/usr/bin/env python3
"""End-to-end tests for OMR sheet generation, reading and grading."""

from __future__ import annotations

import json
import random
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Dict, List, Optional

import cv2
import numpy as np
import pytest

import omr_reader
from omr_detector import DetectorConfig, detect_sheet
from omr_errors import IncompleteAnswerKey, InputUnavailable
from omr_geometry import GeometryConfig, bubble_centers
from omr_grader import new_answer_key
from omr_sheet_generator import create_omr_sheet_pdf, generate_sheet_id, render_sheet_image


FILL_COLOR = (40, 40, 40)


@dataclass
class SheetData:
    image: np.ndarray
    geometry: GeometryConfig
    expected_answers: List[Optional[str]]


def fill_bubble(image: np.ndarray, geometry: GeometryConfig, question_index: int, option: str) -> None:
    """Shade a bubble the way a pencil mark covers it, slightly past the outline."""

    option_index = geometry.option_labels.index(option)
    center = bubble_centers(geometry, question_index)[option_index]
    cv2.circle(image, center, geometry.bubble_radius + 4, FILL_COLOR, -1)


def generate_random_sheet(num_questions: int = 50, seed: int = 1234) -> SheetData:
    """Render a sheet and mark a random option, or nothing, on every question."""

    rng = random.Random(seed)
    geometry = GeometryConfig(num_questions=num_questions)
    image = render_sheet_image(geometry, sheet_id="OMR-TEST")

    expected: List[Optional[str]] = []
    for question_index in range(num_questions):
        option = rng.choice(list(geometry.option_labels) + [None])
        if option is not None:
            fill_bubble(image, geometry, question_index, option)
        expected.append(option)

    return SheetData(image=image, geometry=geometry, expected_answers=expected)


@pytest.fixture
def reference_sheet() -> SheetData:
    """Q1 marked A, Q2 marked B and C equally, Q3 left blank."""

    geometry = GeometryConfig(num_questions=3)
    image = render_sheet_image(geometry, sheet_id="OMR-REFERENCE")
    fill_bubble(image, geometry, 0, "A")
    fill_bubble(image, geometry, 1, "B")
    fill_bubble(image, geometry, 1, "C")
    return SheetData(image=image, geometry=geometry, expected_answers=["A", None, None])


def test_rendered_sheet_matches_page_geometry():
    geometry = GeometryConfig(num_questions=10)
    image = render_sheet_image(geometry)

    assert image.shape == (geometry.page_height, geometry.page_width, 3)
    assert image.dtype == np.uint8

    # Outlines only: every bubble is far below the marking threshold
    for detection in detect_sheet(image, geometry):
        assert detection.answer is None
        assert max(detection.scores) < 60


def test_reference_scenario(reference_sheet):
    report, detections = omr_reader.grade_sheet(
        reference_sheet.image, reference_sheet.geometry, ["A", "B", "C"]
    )

    assert [d.answer for d in detections] == reference_sheet.expected_answers
    assert detections[0].scores[0] == 255.0
    assert detections[1].scores[1] == detections[1].scores[2] == 255.0
    assert max(detections[2].scores) < 120

    assert report.correct_count == 1
    assert report.wrong_count == 0
    assert report.unanswered_count == 2
    assert round(report.score_percentage, 1) == 33.3


def test_reference_scenario_without_tie_rejection(reference_sheet):
    cfg = DetectorConfig(reject_ties=False)
    report, _ = omr_reader.grade_sheet(
        reference_sheet.image, reference_sheet.geometry, ["A", "B", "C"], cfg
    )

    assert report.detected_answers == ["A", "B", None]
    assert report.correct_count == 2


def test_unset_answer_key_produces_no_report(reference_sheet):
    with pytest.raises(IncompleteAnswerKey):
        omr_reader.grade_sheet(reference_sheet.image, reference_sheet.geometry, new_answer_key(3))


def test_missing_pixels_are_reported(reference_sheet):
    with pytest.raises(InputUnavailable):
        omr_reader.grade_sheet(None, reference_sheet.geometry, ["A", "B", "C"])


def test_random_full_sheet_is_read_back():
    sheet = generate_random_sheet()
    answer_key = [answer or "A" for answer in sheet.expected_answers]

    report, _ = omr_reader.grade_sheet(sheet.image, sheet.geometry, answer_key)

    assert report.detected_answers == sheet.expected_answers
    assert report.unanswered_count == sheet.expected_answers.count(None)
    assert report.wrong_count == 0
    assert report.correct_count + report.unanswered_count == 50


def test_grading_twice_gives_identical_reports():
    sheet = generate_random_sheet(num_questions=12, seed=7)
    key = ["A"] * 12
    before = sheet.image.copy()

    first, _ = omr_reader.grade_sheet(sheet.image, sheet.geometry, key)
    second, _ = omr_reader.grade_sheet(sheet.image, sheet.geometry, key)

    assert first == second
    assert np.array_equal(sheet.image, before)


def test_background_grading(reference_sheet):
    with ThreadPoolExecutor(max_workers=2) as executor:
        ok = omr_reader.submit_grading(
            executor, reference_sheet.image, reference_sheet.geometry, ["A", "B", "C"]
        )
        refused = omr_reader.submit_grading(
            executor, reference_sheet.image, reference_sheet.geometry, [None, None, None]
        )

        report, _ = ok.result(timeout=60)
        assert report.correct_count == 1
        with pytest.raises(IncompleteAnswerKey):
            refused.result(timeout=60)


def test_pdf_generation(tmp_path):
    pdf_path = tmp_path / "sheets" / "omr_sheet.pdf"
    sheet_id = create_omr_sheet_pdf(str(pdf_path), GeometryConfig(num_questions=50), "OMR-42")

    assert sheet_id == "OMR-42"
    assert pdf_path.read_bytes().startswith(b"%PDF")


def test_generated_sheet_ids_are_prefixed():
    assert generate_sheet_id().startswith("OMR-")


def test_format_report(reference_sheet):
    report, _ = omr_reader.grade_sheet(
        reference_sheet.image, reference_sheet.geometry, ["A", "B", "C"]
    )
    text = omr_reader.format_report(report)

    assert "Score: 33.3%" in text
    assert "Correct: 1  Wrong: 0  Unanswered: 2" in text
    assert "Unanswered" in text.splitlines()[-1]


def test_cli_grades_saved_scan(tmp_path, reference_sheet, capsys):
    image_path = tmp_path / "scan.png"
    cv2.imwrite(str(image_path), reference_sheet.image)
    output_json = tmp_path / "out" / "report.json"
    debug_dir = tmp_path / "debug"

    exit_code = omr_reader.main(
        [
            str(image_path),
            "--answer-key",
            "ABC",
            "--output-json",
            str(output_json),
            "--debug-dir",
            str(debug_dir),
            "--visualize",
        ]
    )

    assert exit_code == 0
    with output_json.open("r", encoding="utf-8") as f:
        summary: Dict[str, object] = json.load(f)
    assert summary["report"]["correct"] == 1
    assert summary["report"]["unanswered"] == 2
    assert summary["parameters"]["reject_ties"] is True
    assert (debug_dir / "annotated_results.png").exists()
    assert "Score: 33.3%" in capsys.readouterr().out


def test_cli_rescales_scans_to_page_size(tmp_path, reference_sheet):
    image_path = tmp_path / "scan_large.png"
    large = cv2.resize(reference_sheet.image, None, fx=2, fy=2, interpolation=cv2.INTER_NEAREST)
    cv2.imwrite(str(image_path), large)

    image = omr_reader.load_sheet_image(image_path, reference_sheet.geometry)

    assert image.shape[:2] == (reference_sheet.geometry.page_height, reference_sheet.geometry.page_width)
    report, _ = omr_reader.grade_sheet(image, reference_sheet.geometry, ["A", "B", "C"])
    assert report.detected_answers == ["A", None, None]


def test_cli_reports_errors(tmp_path, capsys):
    missing = tmp_path / "nothing.png"

    assert omr_reader.main([str(missing), "--answer-key", "ABC"]) == 1
    assert "Unable to read image" in capsys.readouterr().err

    assert omr_reader.main([str(missing), "--answer-key", "A-C"]) == 1
    assert "incomplete" in capsys.readouterr().err

    assert omr_reader.main([str(missing), "--answer-key", "ABC", "--questions", "60"]) == 1
    assert "between 1 and 50" in capsys.readouterr().err

    assert omr_reader.main([str(missing), "--answer-key", "A,,C"]) == 1
    assert "incomplete" in capsys.readouterr().err


def test_cli_reports_unreadable_answer_key(tmp_path, capsys):
    key_path = tmp_path / "key.json"
    key_path.write_text("{not json", encoding="utf-8")

    assert omr_reader.main([str(tmp_path / "scan.png"), "--answer-key", str(key_path)]) == 1
    assert "could not be read" in capsys.readouterr().err


def test_answer_key_file_for_cli(tmp_path):
    key_path = tmp_path / "key.json"
    key_path.write_text(json.dumps({"answers": ["A", "B", "C"]}), encoding="utf-8")

    assert omr_reader.resolve_answer_key(str(key_path)) == ["A", "B", "C"]
    assert omr_reader.resolve_answer_key("a,b") == ["A", "B"]
