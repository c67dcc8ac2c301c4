#!/usr/bin/env python3
"""
Student Document Renderer
=========================================================
Renders a StudentRecord as three document surfaces (tuition statement,
transcript, course schedule) and rasterizes a single surface or the whole
document board to PNG bytes.

Usage:
    python render_documents.py --seed 42
    python render_documents.py --output-dir ./output/documents
"""

from __future__ import annotations

import argparse
import io
import logging
import math
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Union

import matplotlib
matplotlib.use("Agg")  # headless rendering
import matplotlib.pyplot as plt
import pandas as pd
from matplotlib.axes import Axes
from matplotlib.figure import Figure
from matplotlib.gridspec import GridSpec

from generate_student_record import (
    FEE_LABELS,
    GradedCourse,
    StudentRecord,
    StudentRecordGenerator,
    TermStats,
    format_currency,
    format_date,
)

logger = logging.getLogger(__name__)


# ── Theme ─────────────────────────────────────────────────────────────────

THEME_COLORS = {
    "primary": "#501214",      # maroon letterhead
    "secondary": "#2E86AB",    # bright blue
    "accent": "#8C734B",       # gold rule
    "light": "#F1F3F5",        # table header
    "row_alt": "#FBFCFD",
    "border": "#D0D7DE",
    "text": "#2C3E50",
    "label_bg": "#27272A",     # board label tab
}

BASE_DPI = 100
DOCUMENT_SIZE = (8.5, 11.0)   # inches
DEFAULT_GRID_COLUMNS = 2
DEFAULT_GAP_PX = 20

LABEL_CLASS = "doc-label"
WRAP_CLASS = "doc-board--wrap"
BOARD_CLASS_NAME = f"doc-board {WRAP_CLASS} justify-center"


def apply_theme():
    """Apply theme styling to matplotlib."""
    plt.rcParams.update({
        "font.family": "sans-serif",
        "font.sans-serif": ["Helvetica Neue", "Arial", "DejaVu Sans"],
        "font.size": 9,
        "figure.facecolor": "white",
        "savefig.facecolor": "white",
    })


# ── Tables ────────────────────────────────────────────────────────────────

def courses_frame(courses: tuple[GradedCourse, ...] | list[GradedCourse]) -> pd.DataFrame:
    """Transcript rows for one term."""
    return pd.DataFrame(
        [
            {
                "Course": c.code,
                "Title": c.name,
                "Hours": f"{c.credit_hours:.2f}",
                "Grade": c.grade.value,
                "Quality Pts": f"{c.quality_points:.2f}",
            }
            for c in courses
        ],
        columns=["Course", "Title", "Hours", "Grade", "Quality Pts"],
    )


def charges_frame(record: StudentRecord) -> pd.DataFrame:
    t = record.tuition
    rows = [
        ("Tuition", t.base),
        ("Differential Tuition", t.differential),
    ]
    rows.extend((FEE_LABELS.get(name, name), amount) for name, amount in t.fees.items())
    df = pd.DataFrame(rows, columns=["Description", "Amount"])
    df["Amount"] = df["Amount"].map(format_currency)
    return df


def schedule_frame(record: StudentRecord) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "Course": e.code,
                "Title": e.name,
                "Days": e.days,
                "Time": e.time_range,
                "Room": e.room,
                "Instructor": e.instructor,
                "Hrs": f"{e.credit_hours:.2f}",
            }
            for e in record.schedule
        ],
        columns=["Course", "Title", "Days", "Time", "Room", "Instructor", "Hrs"],
    )


def _draw_table(ax: Axes, df: pd.DataFrame, top: float, height: float, col_widths=None):
    """Place a DataFrame as a styled table spanning the axes width."""
    if df.empty:
        ax.text(0.05, top - 0.02, "No records.", fontsize=8, style="italic",
                color=THEME_COLORS["text"], transform=ax.transAxes)
        return
    table = ax.table(
        cellText=df.values.tolist(),
        colLabels=list(df.columns),
        colWidths=col_widths,
        cellLoc="left",
        bbox=[0.05, top - height, 0.9, height],
    )
    table.auto_set_font_size(False)
    table.set_fontsize(7.5)
    for (row, _col), cell in table.get_celld().items():
        cell.set_edgecolor(THEME_COLORS["border"])
        if row == 0:
            cell.set_facecolor(THEME_COLORS["light"])
            cell.set_text_props(fontweight="bold", color=THEME_COLORS["primary"])
        elif row % 2 == 0:
            cell.set_facecolor(THEME_COLORS["row_alt"])


def _letterhead(ax: Axes, record: StudentRecord, title: str):
    ax.text(0.05, 0.96, record.university_name, fontsize=16, fontweight="bold",
            color=THEME_COLORS["primary"], transform=ax.transAxes)
    ax.text(0.05, 0.93, title, fontsize=11, color=THEME_COLORS["text"],
            transform=ax.transAxes)
    ax.plot([0.05, 0.95], [0.92, 0.92], color=THEME_COLORS["accent"],
            linewidth=1.5, transform=ax.transAxes)


def _field_lines(ax: Axes, lines: list[tuple[str, str]], top: float, x: float = 0.05):
    for i, (label, value) in enumerate(lines):
        y = top - i * 0.022
        ax.text(x, y, f"{label}:", fontsize=8, fontweight="bold",
                color=THEME_COLORS["text"], transform=ax.transAxes)
        ax.text(x + 0.17, y, value, fontsize=8, color=THEME_COLORS["text"],
                transform=ax.transAxes)


def _stats_line(ax: Axes, y: float, label: str, stats: TermStats):
    ax.text(
        0.05, y,
        f"{label}   Attempted {stats.attempted_hours:.2f}   Earned {stats.earned_hours:.2f}   "
        f"Quality Pts {stats.quality_points:.2f}   GPA {stats.gpa:.2f}",
        fontsize=8, fontweight="bold", color=THEME_COLORS["primary"],
        transform=ax.transAxes,
    )


# ── Document Renderers ────────────────────────────────────────────────────

def draw_tuition_statement(ax: Axes, record: StudentRecord):
    """Billing statement with itemized charges and amount due."""
    ax.axis("off")
    _letterhead(ax, record, f"Tuition Statement — {record.term}")
    _field_lines(ax, [
        ("Student", record.student_name),
        ("Student ID", record.student_id),
        ("Address", record.address),
        ("Statement Date", format_date(record.statement_date)),
        ("Due Date", format_date(record.due_date)),
    ], top=0.88)
    _draw_table(ax, charges_frame(record), top=0.74, height=0.36, col_widths=[0.7, 0.3])
    ax.text(0.05, 0.33, "Total Charges", fontsize=11, fontweight="bold",
            color=THEME_COLORS["text"], transform=ax.transAxes)
    ax.text(0.95, 0.33, format_currency(record.tuition.total), fontsize=11,
            fontweight="bold", color=THEME_COLORS["primary"], ha="right",
            transform=ax.transAxes)
    ax.text(0.05, 0.29, f"Please remit payment by {format_date(record.due_date)}.",
            fontsize=8, style="italic", color=THEME_COLORS["text"], transform=ax.transAxes)


def draw_transcript(ax: Axes, record: StudentRecord):
    """Unofficial transcript: two terms, term statistics, cumulative line."""
    ax.axis("off")
    _letterhead(ax, record, "Unofficial Academic Transcript")
    _field_lines(ax, [
        ("Student", record.student_name),
        ("Student ID", record.student_id),
        ("Program", record.program),
        ("Major", record.major),
        ("College", record.college),
        ("Issue Date", format_date(record.issue_date)),
    ], top=0.88)

    widths = [0.15, 0.45, 0.12, 0.1, 0.18]
    ax.text(0.05, 0.73, record.term, fontsize=10, fontweight="bold",
            color=THEME_COLORS["text"], transform=ax.transAxes)
    _draw_table(ax, courses_frame(record.current_courses), top=0.72, height=0.18, col_widths=widths)
    _stats_line(ax, 0.515, "Term", record.current_stats)

    ax.text(0.05, 0.47, record.next_term, fontsize=10, fontweight="bold",
            color=THEME_COLORS["text"], transform=ax.transAxes)
    _draw_table(ax, courses_frame(record.next_courses), top=0.46, height=0.18, col_widths=widths)
    _stats_line(ax, 0.255, "Term", record.next_stats)

    ax.plot([0.05, 0.95], [0.235, 0.235], color=THEME_COLORS["accent"],
            linewidth=1, transform=ax.transAxes)
    _stats_line(ax, 0.21, "Cumulative", record.cumulative)


def draw_schedule(ax: Axes, record: StudentRecord):
    """Weekly class schedule for the current term."""
    ax.axis("off")
    _letterhead(ax, record, f"Class Schedule — {record.term}")
    _field_lines(ax, [
        ("Student", record.student_name),
        ("Student ID", record.student_id),
        ("Major", record.major),
        ("Issue Date", format_date(record.issue_date)),
    ], top=0.88)
    _draw_table(
        ax, schedule_frame(record), top=0.76, height=0.22,
        col_widths=[0.11, 0.3, 0.08, 0.14, 0.17, 0.13, 0.07],
    )
    total = sum((e.credit_hours for e in record.schedule), 0)
    ax.text(0.95, 0.51, f"Total Hours: {total:.2f}", fontsize=9, fontweight="bold",
            color=THEME_COLORS["primary"], ha="right", transform=ax.transAxes)


# ── Surfaces & Board ──────────────────────────────────────────────────────

Renderer = Callable[[Axes, StudentRecord], None]


@dataclass
class DocumentSurface:
    """One capturable document bound to a record."""
    name: str
    title: str
    renderer: Renderer
    record: StudentRecord
    figsize: tuple[float, float] = DOCUMENT_SIZE
    classes: frozenset[str] = frozenset({"document"})

    def draw(self, ax: Axes):
        self.renderer(ax, self.record)


@dataclass
class DocumentLabel:
    """Caption tab shown above a surface on the board."""
    text: str
    surface_name: str
    classes: frozenset[str] = frozenset({LABEL_CLASS})


SURFACE_SPECS: list[tuple[str, str, Renderer]] = [
    ("tuition_statement", "Tuition Statement", draw_tuition_statement),
    ("transcript", "Transcript", draw_transcript),
    ("schedule", "Course Schedule", draw_schedule),
]


@dataclass
class DocumentBoard:
    """
    Shared layout container holding every surface.

    ``style`` and ``class_name`` are its mutable presentation state; the
    default classes wrap surfaces into a grid.
    """
    name: str
    surfaces: list[DocumentSurface]
    labels: list[DocumentLabel]
    style: dict[str, str] = field(default_factory=dict)
    class_name: str = BOARD_CLASS_NAME

    @classmethod
    def for_record(cls, record: StudentRecord) -> DocumentBoard:
        surfaces = [
            DocumentSurface(name=name, title=title, renderer=renderer, record=record)
            for name, title, renderer in SURFACE_SPECS
        ]
        labels = [DocumentLabel(text=s.title, surface_name=s.name) for s in surfaces]
        return cls(name="document_board", surfaces=surfaces, labels=labels)

    def surface(self, name: str) -> DocumentSurface:
        for s in self.surfaces:
            if s.name == name:
                return s
        raise KeyError(name)

    def bind(self, record: StudentRecord):
        """Point every surface at a new record."""
        for s in self.surfaces:
            s.record = record


Region = Union[DocumentSurface, DocumentBoard]
Element = Union[DocumentSurface, DocumentLabel]


def is_label(element: Element) -> bool:
    return LABEL_CLASS in element.classes


def _gap_px(board: DocumentBoard) -> int:
    raw = board.style.get("gap")
    if raw is None:
        return DEFAULT_GAP_PX
    match = re.match(r"\s*(\d+(?:\.\d+)?)", raw)
    return int(float(match.group(1))) if match else DEFAULT_GAP_PX


def resolve_layout(board: DocumentBoard) -> tuple[int, int, int]:
    """(rows, columns, gap_px) for the board's current presentation state."""
    n = len(board.surfaces)
    classes = board.class_name.split()
    wrap = WRAP_CLASS in classes or board.style.get("flex-wrap") == "wrap"
    if board.style.get("flex-wrap") == "nowrap" or not wrap:
        if board.style.get("flex-direction", "row").startswith("column"):
            return n, 1, _gap_px(board)
        return 1, n, _gap_px(board)
    cols = min(DEFAULT_GRID_COLUMNS, n)
    return math.ceil(n / cols), cols, _gap_px(board)


# ── Rasterization ─────────────────────────────────────────────────────────

def _compose_surface(surface: DocumentSurface) -> Figure:
    fig = Figure(figsize=surface.figsize)
    ax = fig.add_axes([0, 0, 1, 1])
    surface.draw(ax)
    return fig


def _compose_board(board: DocumentBoard, ignore: Callable[[Element], bool] | None) -> Figure:
    rows, cols, gap = resolve_layout(board)
    width, height = DOCUMENT_SIZE
    gap_in = gap / BASE_DPI
    labels = {
        label.surface_name: label for label in board.labels
        if not (ignore and ignore(label))
    }
    label_in = 0.3 if labels else 0.0

    fig_height = rows * (height + label_in) + (rows - 1) * gap_in
    fig = Figure(figsize=(cols * width + (cols - 1) * gap_in, fig_height))
    gs = GridSpec(
        rows, cols, figure=fig,
        left=0, right=1, bottom=0, top=1 - label_in / fig_height,
        wspace=gap_in / width if cols > 1 else 0,
        hspace=(gap_in + label_in) / height if rows > 1 else 0,
    )
    for idx, surface in enumerate(board.surfaces):
        if ignore and ignore(surface):
            continue
        ax = fig.add_subplot(gs[idx // cols, idx % cols])
        surface.draw(ax)
        label = labels.get(surface.name)
        if label is not None:
            ax.set_title(
                label.text, loc="left", fontsize=10, color="white",
                backgroundcolor=THEME_COLORS["label_bg"], pad=4,
            )
    return fig


def rasterize(
    region: Region,
    *,
    background: str = "#ffffff",
    scale: int = 2,
    ignore: Callable[[Element], bool] | None = None,
) -> bytes:
    """Render a surface or the whole board to PNG bytes."""
    if isinstance(region, DocumentBoard):
        fig = _compose_board(region, ignore)
    elif isinstance(region, DocumentSurface):
        fig = _compose_surface(region)
    else:
        raise TypeError(f"cannot rasterize {type(region).__name__}")

    buf = io.BytesIO()
    fig.savefig(buf, format="png", dpi=BASE_DPI * scale, facecolor=background)
    logger.debug("Rasterized %s at %dx scale (%d bytes)", region.name, scale, buf.tell())
    return buf.getvalue()


# ── CLI ───────────────────────────────────────────────────────────────────

def main():
    parser = argparse.ArgumentParser(description="Student Document Renderer")
    parser.add_argument("--seed", type=int, default=None, help="Random seed")
    parser.add_argument(
        "--output-dir",
        default=os.environ.get("STUDENT_DOCS_OUTPUT_DIR", "./output/documents"),
        help="Directory to save rendered documents",
    )
    parser.add_argument("--scale", type=int, default=2, help="Pixel density multiplier")
    args = parser.parse_args()

    out = Path(args.output_dir)
    out.mkdir(parents=True, exist_ok=True)
    apply_theme()

    record = StudentRecordGenerator(seed=args.seed).generate()
    board = DocumentBoard.for_record(record)

    print("Rendering documents...")
    for surface in board.surfaces:
        path = out / f"{surface.name}.png"
        path.write_bytes(rasterize(surface, scale=args.scale))
        print(f"  {surface.title:25s} -> {path}")

    print(f"\nAll documents saved to: {out}/")


if __name__ == "__main__":
    main()
