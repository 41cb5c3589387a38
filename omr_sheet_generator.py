#!/usr/bin/env python3
"""
Render OMR answer sheets from the shared sheet geometry.

Two back ends draw the same layout: a PDF via reportlab for printing and a
raster image via OpenCV in page pixels, which is what the reader scores.
"""

from __future__ import annotations

import argparse
import time
from pathlib import Path
from typing import Optional, Tuple

import cv2
import numpy as np
from reportlab.lib import colors
from reportlab.lib.pagesizes import A4
from reportlab.pdfgen import canvas

from omr_geometry import (
    GeometryConfig,
    bubble_centers,
    clamp_question_count,
    option_label_position,
    question_label_position,
)


LINE_WIDTH = 3
TITLE = "OMR Answer Sheet"
HEADER_FIELDS = ("Name:", "Roll No:", "Subject:", "Date:")
HEADER_FIELD_START = 150  # first field baseline below the margin
HEADER_FIELD_STEP = 70
FIELD_LINE_START = 250  # underline x range, from the margin
FIELD_LINE_END = 800

# Font sizes in page pixels
TITLE_SIZE = 60
FIELD_SIZE = 40
SHEET_ID_SIZE = 30
LABEL_SIZE = 36

BLACK = (0, 0, 0)


def generate_sheet_id() -> str:
    return f"OMR-{int(time.time() * 1000)}"


def _header_field_rows(geometry: GeometryConfig):
    for index, label in enumerate(HEADER_FIELDS):
        yield label, geometry.margin + HEADER_FIELD_START + index * HEADER_FIELD_STEP


# ---------------------------------------------------------------------------
# Raster back end (OpenCV)
# ---------------------------------------------------------------------------


def _font_scale(size_px: int) -> float:
    """Hershey simplex lines take roughly 30px per unit of scale."""
    return size_px / 30.0


def _put_text(
    image: np.ndarray,
    text: str,
    anchor: Tuple[int, int],
    size_px: int,
    align: str = "left",
    thickness: int = 2,
) -> None:
    scale = _font_scale(size_px)
    (text_width, _), _ = cv2.getTextSize(text, cv2.FONT_HERSHEY_SIMPLEX, scale, thickness)
    x, y = anchor
    if align == "right":
        x -= text_width
    elif align == "center":
        x -= text_width // 2
    cv2.putText(image, text, (int(x), int(y)), cv2.FONT_HERSHEY_SIMPLEX, scale, BLACK, thickness)


def render_sheet_image(geometry: GeometryConfig, sheet_id: Optional[str] = None) -> np.ndarray:
    """Draw the answer sheet as a white BGR image of page_height x page_width pixels."""

    sheet_id = sheet_id or generate_sheet_id()
    margin = geometry.margin
    image = np.full((geometry.page_height, geometry.page_width, 3), 255, dtype=np.uint8)

    # Border
    half = margin // 2
    cv2.rectangle(
        image,
        (half, half),
        (geometry.page_width - half, geometry.page_height - half),
        BLACK,
        LINE_WIDTH,
    )

    # Header
    _put_text(image, TITLE, (margin, margin + 60), TITLE_SIZE, thickness=4)
    for label, y in _header_field_rows(geometry):
        _put_text(image, label, (margin, y), FIELD_SIZE)
        cv2.line(
            image,
            (margin + FIELD_LINE_START, y + 10),
            (margin + FIELD_LINE_END, y + 10),
            BLACK,
            LINE_WIDTH,
        )
    _put_text(
        image,
        f"Sheet ID: {sheet_id}",
        (geometry.page_width - margin, margin + 60),
        SHEET_ID_SIZE,
        align="right",
    )

    # Questions
    for question_index in range(geometry.num_questions):
        _put_text(
            image,
            f"{question_index + 1}.",
            question_label_position(geometry, question_index),
            LABEL_SIZE,
            align="right",
            thickness=3,
        )
        for option_index, center in enumerate(bubble_centers(geometry, question_index)):
            cv2.circle(image, center, geometry.bubble_radius, BLACK, LINE_WIDTH)
            _put_text(
                image,
                geometry.option_labels[option_index],
                option_label_position(geometry, question_index, option_index),
                LABEL_SIZE,
                align="center",
                thickness=3,
            )

    return image


# ---------------------------------------------------------------------------
# PDF back end (reportlab)
# ---------------------------------------------------------------------------


def create_omr_sheet_pdf(
    filename="sheets/omr_sheet.pdf",
    geometry: Optional[GeometryConfig] = None,
    sheet_id: Optional[str] = None,
    page_size=A4,
):
    """
    Create an OMR answer sheet PDF.

    The page-pixel geometry is scaled uniformly to the width of ``page_size``
    so the printed sheet keeps the proportions the reader expects.

    Args:
        filename (str): Output PDF filename
        geometry (GeometryConfig): Sheet layout, defaults to the standard sheet
        sheet_id (str): Identifier printed in the header
        page_size (tuple): Page size (width, height) in points
    """
    geometry = geometry or GeometryConfig()
    sheet_id = sheet_id or generate_sheet_id()

    Path(filename).parent.mkdir(parents=True, exist_ok=True)
    c = canvas.Canvas(str(filename), pagesize=page_size)
    width, height = page_size
    scale = width / geometry.page_width

    def to_pdf(x, y):
        # Page pixels have a top-left origin, PDF points a bottom-left one
        return x * scale, height - y * scale

    margin = geometry.margin
    c.setFillColor(colors.black)
    c.setStrokeColor(colors.black)
    c.setLineWidth(LINE_WIDTH * scale)

    # Border
    half = margin / 2
    left, top = to_pdf(half, half)
    right, bottom = to_pdf(geometry.page_width - half, geometry.page_height - half)
    c.rect(left, bottom, right - left, top - bottom, stroke=1, fill=0)

    # Header
    c.setFont("Helvetica-Bold", TITLE_SIZE * scale)
    c.drawString(*to_pdf(margin, margin + 60), TITLE)

    c.setFont("Helvetica", FIELD_SIZE * scale)
    for label, y in _header_field_rows(geometry):
        c.drawString(*to_pdf(margin, y), label)
        c.line(
            *to_pdf(margin + FIELD_LINE_START, y + 10),
            *to_pdf(margin + FIELD_LINE_END, y + 10),
        )

    c.setFont("Courier", SHEET_ID_SIZE * scale)
    c.drawRightString(*to_pdf(geometry.page_width - margin, margin + 60), f"Sheet ID: {sheet_id}")

    # Questions
    c.setFont("Helvetica-Bold", LABEL_SIZE * scale)
    for question_index in range(geometry.num_questions):
        c.drawRightString(
            *to_pdf(*question_label_position(geometry, question_index)),
            f"{question_index + 1}.",
        )
        for option_index, (x, y) in enumerate(bubble_centers(geometry, question_index)):
            c.circle(*to_pdf(x, y), geometry.bubble_radius * scale, stroke=1, fill=0)
            c.drawCentredString(
                *to_pdf(*option_label_position(geometry, question_index, option_index)),
                geometry.option_labels[option_index],
            )

    c.save()
    print(f"PDF created: {filename}")
    return sheet_id


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Generate a printable OMR answer sheet")
    parser.add_argument(
        "--questions",
        default=None,
        help="Number of questions on the sheet (clamped to the page maximum)",
    )
    parser.add_argument(
        "--pdf",
        type=Path,
        default=Path("sheets/omr_sheet.pdf"),
        help="Path of the PDF to write",
    )
    parser.add_argument(
        "--image",
        type=Path,
        default=None,
        help="Optional path to also save the sheet as a raster image",
    )
    parser.add_argument("--sheet-id", default=None, help="Identifier printed on the sheet")
    return parser.parse_args()


def main():
    args = parse_args()
    geometry = GeometryConfig()
    if args.questions is not None:
        geometry = geometry.with_questions(clamp_question_count(args.questions, geometry))

    sheet_id = create_omr_sheet_pdf(str(args.pdf), geometry, args.sheet_id)

    if args.image:
        args.image.parent.mkdir(parents=True, exist_ok=True)
        cv2.imwrite(str(args.image), render_sheet_image(geometry, sheet_id))
        print(f"Image created: {args.image}")


if __name__ == "__main__":
    main()
