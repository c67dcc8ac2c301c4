#!/usr/bin/env python3
"""
Student Document Exporter
====================================
Captures the rendered student documents and saves them either as one
stitched PNG (grid or single row) or as a ZIP archive holding one PNG per
document.

Usage:
    python export_documents.py --mode stitched_row
    python export_documents.py --mode archived --seed 42 --output-dir ./exports

    # Or use environment variables:
    export STUDENT_DOCS_OUTPUT_DIR=./exports
    python export_documents.py --mode stitched_grid
"""

from __future__ import annotations

import argparse
import asyncio
import io
import logging
import os
import sys
import zipfile
from concurrent.futures import ThreadPoolExecutor
from contextlib import contextmanager, nullcontext
from dataclasses import dataclass
from enum import Enum
from functools import partial
from pathlib import Path
from typing import Any, Awaitable, Callable, Iterator, Sequence

from generate_student_record import StudentRecord, StudentRecordGenerator
from render_documents import DocumentBoard, Region, apply_theme, is_label, rasterize

logger = logging.getLogger(__name__)


class ExportMode(str, Enum):
    STITCHED_GRID = "stitched_grid"
    STITCHED_ROW = "stitched_row"
    ARCHIVED = "archived"


class ExportState(str, Enum):
    IDLE = "idle"
    EXPORTING = "exporting"


STITCHED_FILENAME = "Student_Documents_Combined.png"
ARCHIVE_FILENAME = "Student_Documents.zip"

# surface name -> archive entry, in archive order
ARCHIVE_ENTRIES: dict[str, str] = {
    "tuition_statement": "Tuition_Statement.png",
    "transcript": "Transcript.png",
    "schedule": "Schedule.png",
}

# Single-row flow used while capturing the stitched row.
ROW_LAYOUT_STYLE: dict[str, str] = {
    "display": "flex",
    "flex-direction": "row",
    "flex-wrap": "nowrap",
    "gap": "0",
    "width": "max-content",
    "justify-content": "flex-start",
    "align-items": "flex-start",
}

EXPORT_FAILED_NOTICE = "Export failed"
EXPORT_BUSY_NOTICE = "An export is already in progress"

Saver = Callable[[str, bytes], Awaitable[Path]]
Rasterizer = Callable[..., bytes]


# ──────────────────────────────────────────────────────────────────────────────
# ERRORS
# ──────────────────────────────────────────────────────────────────────────────

class ExportError(Exception):
    """Base class for export failures surfaced to the user."""


class CaptureFailedError(ExportError):
    def __init__(self, region: str, reason: str = ""):
        self.region = region
        super().__init__(f"capture of {region!r} failed" + (f": {reason}" if reason else ""))


class SaveFailedError(ExportError):
    pass


class ExportInProgressError(ExportError):
    pass


class ExportCancelledError(ExportError):
    pass


# ──────────────────────────────────────────────────────────────────────────────
# VALUES
# ──────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ExportJob:
    mode: ExportMode
    sources: tuple[Region, ...]


@dataclass(frozen=True)
class ExportArtifact:
    filename: str
    data: bytes
    mode: ExportMode
    entries: tuple[str, ...] = ()


class CancelToken:
    """Cooperative cancellation, checked at each export suspension point."""

    def __init__(self):
        self._cancelled = False

    def cancel(self):
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self, stage: str):
        if self._cancelled:
            raise ExportCancelledError(f"export cancelled before {stage}")


# ──────────────────────────────────────────────────────────────────────────────
# CAPTURE
# ──────────────────────────────────────────────────────────────────────────────

def _region_name(region: Any) -> str:
    if region is None:
        return "<missing>"
    return getattr(region, "name", repr(region))


class CaptureAdapter:
    """
    Async front for the rasterization primitive.

    Rasterization runs on a single worker thread; concurrent captures are
    queued there and resolved in submission order by capture_many().
    """

    def __init__(
        self,
        rasterizer: Rasterizer = rasterize,
        *,
        background: str = "#ffffff",
        scale: int = 2,
    ):
        if scale < 1:
            raise ValueError(f"scale must be >= 1, got {scale}")
        self._rasterizer = rasterizer
        self.background = background
        self.scale = scale
        self._executor: ThreadPoolExecutor | None = None

    def __enter__(self) -> CaptureAdapter:
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        if self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None

    def _pool(self) -> ThreadPoolExecutor:
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="capture")
        return self._executor

    async def capture(self, region: Region, ignore: Callable[[Any], bool] | None = None) -> bytes:
        name = _region_name(region)
        if region is None:
            raise CaptureFailedError(name, "region is not mounted")

        call = partial(
            self._rasterizer, region,
            background=self.background, scale=self.scale, ignore=ignore,
        )
        loop = asyncio.get_running_loop()
        try:
            data = await loop.run_in_executor(self._pool(), call)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            raise CaptureFailedError(name, str(exc)) from exc

        if not data:
            raise CaptureFailedError(name, "rasterizer returned no data")
        logger.debug("Captured %s (%d bytes)", name, len(data))
        return data

    async def capture_many(self, regions: Sequence[Region]) -> list[bytes]:
        """Capture every region; one failure discards the whole batch."""
        tasks = [asyncio.ensure_future(self.capture(r)) for r in regions]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise


# ──────────────────────────────────────────────────────────────────────────────
# LAYOUT OVERRIDE
# ──────────────────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class StyleToken:
    container: Any
    style: dict[str, str]
    class_name: str


class StyleMutationGuard:
    """Temporary presentation override for a shared layout container."""

    def __init__(self):
        self._active: dict[int, StyleToken] = {}

    def is_overridden(self, container: Any) -> bool:
        return id(container) in self._active

    def apply_override(
        self,
        container: Any,
        style: dict[str, str],
        class_name: str = "",
    ) -> StyleToken:
        if self.is_overridden(container):
            raise RuntimeError(f"{_region_name(container)} already carries a layout override")
        token = StyleToken(
            container=container,
            style=dict(container.style),
            class_name=container.class_name,
        )
        container.style = dict(style)
        container.class_name = class_name
        self._active[id(container)] = token
        return token

    def restore(self, token: StyleToken):
        container = token.container
        container.style = dict(token.style)
        container.class_name = token.class_name
        self._active.pop(id(container), None)

    @contextmanager
    def override(
        self,
        container: Any,
        style: dict[str, str],
        class_name: str = "",
    ) -> Iterator[Any]:
        token = self.apply_override(container, style, class_name)
        try:
            yield container
        finally:
            self.restore(token)


# ──────────────────────────────────────────────────────────────────────────────
# ARCHIVE & SAVE
# ──────────────────────────────────────────────────────────────────────────────

def write_archive(entries: Sequence[tuple[str, bytes]]) -> bytes:
    """Pack named buffers into a ZIP, preserving the given order."""
    names = [name for name, _ in entries]
    if len(set(names)) != len(names):
        raise ValueError(f"duplicate archive entries: {names}")
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        for name, data in entries:
            zf.writestr(name, data)
    return buf.getvalue()


class DirectorySaver:
    """Save primitive writing each artifact into one directory."""

    def __init__(self, output_dir: str | Path):
        self.output_dir = Path(output_dir)

    async def __call__(self, filename: str, data: bytes) -> Path:
        return await asyncio.to_thread(self._write, filename, data)

    def _write(self, filename: str, data: bytes) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / filename
        path.write_bytes(data)
        return path


# ──────────────────────────────────────────────────────────────────────────────
# ORCHESTRATOR
# ──────────────────────────────────────────────────────────────────────────────

class ExportOrchestrator:
    """
    Runs one export at a time against a shared DocumentBoard.

    - stitched_grid: capture the board as laid out, labels hidden
    - stitched_row: force a single-row layout, capture with labels hidden, restore
    - archived: capture each surface, zip them, save once

    A request made while another export is running is rejected.
    """

    def __init__(
        self,
        board: DocumentBoard,
        save: Saver,
        *,
        capture: CaptureAdapter | None = None,
        guard: StyleMutationGuard | None = None,
        archive_writer: Callable[[Sequence[tuple[str, bytes]]], bytes] = write_archive,
        on_state_change: Callable[[ExportState], None] | None = None,
    ):
        self.board = board
        self._owns_capture = capture is None
        self.capture = capture or CaptureAdapter()
        self.guard = guard or StyleMutationGuard()
        self._save = save
        self._archive_writer = archive_writer
        self._on_state_change = on_state_change
        self._state = ExportState.IDLE

    def __enter__(self) -> ExportOrchestrator:
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        """Shut down the capture worker if this orchestrator created it."""
        if self._owns_capture:
            self.capture.close()

    @property
    def state(self) -> ExportState:
        return self._state

    @property
    def busy(self) -> bool:
        return self._state is ExportState.EXPORTING

    def _set_state(self, state: ExportState):
        self._state = state
        if self._on_state_change is not None:
            self._on_state_change(state)

    def plan(self, mode: ExportMode | str) -> ExportJob:
        mode = ExportMode(mode)
        if mode is ExportMode.ARCHIVED:
            sources = tuple(self.board.surface(name) for name in ARCHIVE_ENTRIES)
        else:
            sources = (self.board,)
        return ExportJob(mode=mode, sources=sources)

    async def export(self, mode: ExportMode | str, cancel: CancelToken | None = None) -> Path:
        """Run one export job and return where the artifact was saved."""
        if self.busy:
            raise ExportInProgressError(EXPORT_BUSY_NOTICE)
        job = self.plan(mode)
        cancel = cancel or CancelToken()

        self._set_state(ExportState.EXPORTING)
        logger.info("Exporting %s (%d sources)", job.mode.value, len(job.sources))
        try:
            if job.mode is ExportMode.ARCHIVED:
                artifact = await self._export_archived(job, cancel)
            else:
                artifact = await self._export_stitched(job, cancel)
            cancel.raise_if_cancelled("save")
            path = await self._store(artifact)
        except ExportError as exc:
            logger.error("%s export failed: %s", job.mode.value, exc)
            raise
        finally:
            self._set_state(ExportState.IDLE)

        logger.info("Saved %s (%d bytes)", path, len(artifact.data))
        return path

    async def _export_stitched(self, job: ExportJob, cancel: CancelToken) -> ExportArtifact:
        board = job.sources[0]
        cancel.raise_if_cancelled("capture")
        if job.mode is ExportMode.STITCHED_ROW:
            layout = self.guard.override(board, ROW_LAYOUT_STYLE, class_name="")
        else:
            layout = nullcontext()
        with layout:
            data = await self.capture.capture(board, ignore=is_label)
        return ExportArtifact(STITCHED_FILENAME, data, job.mode, (STITCHED_FILENAME,))

    async def _export_archived(self, job: ExportJob, cancel: CancelToken) -> ExportArtifact:
        names = [ARCHIVE_ENTRIES[s.name] for s in job.sources]
        cancel.raise_if_cancelled("capture")
        images = await self.capture.capture_many(job.sources)

        cancel.raise_if_cancelled("archive")
        try:
            data = await asyncio.to_thread(self._archive_writer, list(zip(names, images)))
        except Exception as exc:
            raise SaveFailedError(f"could not assemble {ARCHIVE_FILENAME}: {exc}") from exc
        return ExportArtifact(ARCHIVE_FILENAME, data, job.mode, tuple(names))

    async def _store(self, artifact: ExportArtifact) -> Path:
        try:
            return await self._save(artifact.filename, artifact.data)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            raise SaveFailedError(f"could not save {artifact.filename}: {exc}") from exc


# ──────────────────────────────────────────────────────────────────────────────
# SESSION
# ──────────────────────────────────────────────────────────────────────────────

class DocumentSession:
    """
    Current record, export mode and user-visible notice for one user.

    The session owns every mutation of that state; generation and export
    stay free of globals.
    """

    def __init__(
        self,
        record: StudentRecord,
        save: Saver,
        *,
        mode: ExportMode | str = ExportMode.STITCHED_ROW,
        capture: CaptureAdapter | None = None,
    ):
        self.record = record
        self.mode = ExportMode(mode)
        self.notice: str | None = None
        self.board = DocumentBoard.for_record(record)
        self.orchestrator = ExportOrchestrator(self.board, save, capture=capture)

    @property
    def busy(self) -> bool:
        return self.orchestrator.busy

    def __enter__(self) -> DocumentSession:
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def close(self):
        self.orchestrator.close()

    def _replace_record(self, record: StudentRecord):
        if self.busy:
            raise ExportInProgressError("cannot change the record while exporting")
        self.record = record
        self.board.bind(record)
        self.notice = None

    def regenerate(self, seed: int | None = None) -> StudentRecord:
        self._replace_record(StudentRecordGenerator(seed=seed).generate())
        return self.record

    def edit(self, **fields: Any) -> StudentRecord:
        self._replace_record(self.record.with_overrides(**fields))
        return self.record

    def set_mode(self, mode: ExportMode | str):
        self.mode = ExportMode(mode)

    async def export(self, cancel: CancelToken | None = None) -> Path | None:
        """Export in the selected mode; failures become the session notice."""
        self.notice = None
        try:
            path = await self.orchestrator.export(self.mode, cancel=cancel)
        except ExportInProgressError:
            self.notice = EXPORT_BUSY_NOTICE
            return None
        except ExportError:
            self.notice = EXPORT_FAILED_NOTICE
            return None
        self.notice = f"Saved {path.name}"
        return path


# ──────────────────────────────────────────────────────────────────────────────
# CLI
# ──────────────────────────────────────────────────────────────────────────────

def main():
    parser = argparse.ArgumentParser(description="Export student documents")
    parser.add_argument(
        "--mode", choices=[m.value for m in ExportMode],
        default=ExportMode.STITCHED_ROW.value, help="Export format",
    )
    parser.add_argument(
        "--seed", type=int, default=os.environ.get("STUDENT_DOCS_SEED") or None,
        help="Random seed (or set STUDENT_DOCS_SEED)",
    )
    parser.add_argument(
        "--output-dir",
        default=os.environ.get("STUDENT_DOCS_OUTPUT_DIR", "./output"),
        help="Directory for exported files (or set STUDENT_DOCS_OUTPUT_DIR)",
    )
    parser.add_argument("--scale", type=int, default=2, help="Pixel density multiplier")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    apply_theme()

    record = StudentRecordGenerator(seed=args.seed).generate()
    with CaptureAdapter(scale=args.scale) as capture:
        session = DocumentSession(
            record, DirectorySaver(args.output_dir), mode=args.mode, capture=capture,
        )
        path = asyncio.run(session.export())

    if path is None:
        print(f"ERROR: {session.notice}")
        sys.exit(1)
    print(f"  {session.mode.value} -> {path}")


if __name__ == "__main__":
    main()
