"""Tests for capture, layout override, export orchestration and the session."""

from __future__ import annotations

import asyncio
import io
import threading
import zipfile
from datetime import date
from pathlib import Path

import pytest

from generate_student_record import StudentRecordGenerator
from render_documents import BOARD_CLASS_NAME, DocumentBoard, is_label
from export_documents import (
    ARCHIVE_ENTRIES,
    ARCHIVE_FILENAME,
    EXPORT_BUSY_NOTICE,
    EXPORT_FAILED_NOTICE,
    ROW_LAYOUT_STYLE,
    STITCHED_FILENAME,
    CancelToken,
    CaptureAdapter,
    CaptureFailedError,
    DirectorySaver,
    DocumentSession,
    ExportCancelledError,
    ExportInProgressError,
    ExportMode,
    ExportOrchestrator,
    ExportState,
    SaveFailedError,
    StyleMutationGuard,
    main,
    write_archive,
)

FAKE_PNG = b"\x89PNG\r\n\x1a\nfake"


# ---------------------------------------------------------------------------
# Fixtures & fakes
# ---------------------------------------------------------------------------

@pytest.fixture(scope="module")
def record():
    return StudentRecordGenerator(seed=42, reference_date=date(2025, 3, 14)).generate()


@pytest.fixture
def board(record) -> DocumentBoard:
    return DocumentBoard.for_record(record)


class RecordingRasterizer:
    """Fake rasterizer that remembers the layout it saw at capture time."""

    def __init__(self, fail_on: set[str] | None = None, gate: threading.Event | None = None):
        self.fail_on = fail_on or set()
        self.gate = gate
        self.calls: list[dict] = []

    def __call__(self, region, *, background, scale, ignore=None):
        if self.gate is not None:
            self.gate.wait(5)
        self.calls.append({
            "name": region.name,
            "style": dict(getattr(region, "style", {})),
            "class_name": getattr(region, "class_name", None),
            "ignore": ignore,
        })
        if region.name in self.fail_on:
            raise RuntimeError(f"{region.name} is not capturable")
        return FAKE_PNG + region.name.encode()


class MemorySaver:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.saved: dict[str, bytes] = {}

    async def __call__(self, filename: str, data: bytes) -> Path:
        if self.fail:
            raise OSError("disk full")
        self.saved[filename] = data
        return Path("/virtual") / filename


@pytest.fixture
def rasterizer() -> RecordingRasterizer:
    return RecordingRasterizer()


@pytest.fixture
def capture(rasterizer):
    adapter = CaptureAdapter(rasterizer)
    yield adapter
    adapter.close()


@pytest.fixture
def saver() -> MemorySaver:
    return MemorySaver()


@pytest.fixture
def orchestrator(board, saver, capture) -> ExportOrchestrator:
    return ExportOrchestrator(board, saver, capture=capture)


# ---------------------------------------------------------------------------
# CaptureAdapter
# ---------------------------------------------------------------------------

class TestCaptureAdapter:
    def test_capture_returns_bytes(self, capture, board):
        data = asyncio.run(capture.capture(board.surface("transcript")))
        assert data == FAKE_PNG + b"transcript"

    def test_capture_many_keeps_submission_order(self, capture, board):
        data = asyncio.run(capture.capture_many(board.surfaces))
        assert data == [FAKE_PNG + s.name.encode() for s in board.surfaces]

    def test_failure_carries_region(self, board):
        with CaptureAdapter(RecordingRasterizer(fail_on={"schedule"})) as adapter:
            with pytest.raises(CaptureFailedError) as exc_info:
                asyncio.run(adapter.capture(board.surface("schedule")))
        assert exc_info.value.region == "schedule"
        assert isinstance(exc_info.value.__cause__, RuntimeError)

    def test_missing_region(self, capture):
        with pytest.raises(CaptureFailedError, match="<missing>"):
            asyncio.run(capture.capture(None))

    def test_empty_raster_fails(self, board):
        with CaptureAdapter(lambda region, **kw: b"") as adapter:
            with pytest.raises(CaptureFailedError, match="no data"):
                asyncio.run(adapter.capture(board))

    def test_batch_is_all_or_nothing(self, board):
        with CaptureAdapter(RecordingRasterizer(fail_on={"transcript"})) as adapter:
            with pytest.raises(CaptureFailedError) as exc_info:
                asyncio.run(adapter.capture_many(board.surfaces))
        assert exc_info.value.region == "transcript"

    def test_invalid_scale(self):
        with pytest.raises(ValueError, match="scale"):
            CaptureAdapter(scale=0)


# ---------------------------------------------------------------------------
# StyleMutationGuard
# ---------------------------------------------------------------------------

class TestStyleMutationGuard:
    def test_apply_and_restore(self, board):
        board.style = {"gap": "20px"}
        guard = StyleMutationGuard()
        token = guard.apply_override(board, ROW_LAYOUT_STYLE)
        assert board.style == ROW_LAYOUT_STYLE
        assert board.class_name == ""
        assert guard.is_overridden(board)
        guard.restore(token)
        assert board.style == {"gap": "20px"}
        assert board.class_name == BOARD_CLASS_NAME
        assert not guard.is_overridden(board)

    def test_override_is_a_copy(self, board):
        guard = StyleMutationGuard()
        with guard.override(board, ROW_LAYOUT_STYLE):
            board.style["gap"] = "99px"
        assert ROW_LAYOUT_STYLE["gap"] == "0"

    def test_restored_on_error(self, board):
        guard = StyleMutationGuard()
        with pytest.raises(RuntimeError, match="boom"):
            with guard.override(board, ROW_LAYOUT_STYLE, class_name="temp"):
                raise RuntimeError("boom")
        assert board.style == {}
        assert board.class_name == BOARD_CLASS_NAME
        assert not guard.is_overridden(board)

    def test_nested_override_rejected(self, board):
        guard = StyleMutationGuard()
        with guard.override(board, ROW_LAYOUT_STYLE):
            with pytest.raises(RuntimeError, match="already"):
                guard.apply_override(board, {"display": "grid"})
        assert board.class_name == BOARD_CLASS_NAME


# ---------------------------------------------------------------------------
# Archive & save primitives
# ---------------------------------------------------------------------------

class TestArchive:
    def test_order_preserved(self):
        data = write_archive([("b.png", b"2"), ("a.png", b"1")])
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            assert zf.namelist() == ["b.png", "a.png"]
            assert zf.read("a.png") == b"1"

    def test_duplicate_names_rejected(self):
        with pytest.raises(ValueError, match="duplicate"):
            write_archive([("a.png", b"1"), ("a.png", b"2")])

    def test_directory_saver(self, tmp_path):
        saver = DirectorySaver(tmp_path / "out")
        path = asyncio.run(saver("x.bin", b"abc"))
        assert path == tmp_path / "out" / "x.bin"
        assert path.read_bytes() == b"abc"


# ---------------------------------------------------------------------------
# ExportOrchestrator
# ---------------------------------------------------------------------------

class TestExportModes:
    def test_plan(self, orchestrator, board):
        assert orchestrator.plan("stitched_grid").sources == (board,)
        archived = orchestrator.plan(ExportMode.ARCHIVED)
        assert [s.name for s in archived.sources] == list(ARCHIVE_ENTRIES)

    def test_unknown_mode(self, orchestrator):
        with pytest.raises(ValueError):
            asyncio.run(orchestrator.export("pdf"))
        assert orchestrator.state is ExportState.IDLE

    def test_stitched_grid_captures_as_laid_out(self, orchestrator, rasterizer, saver, board):
        path = asyncio.run(orchestrator.export(ExportMode.STITCHED_GRID))
        assert path.name == STITCHED_FILENAME
        assert saver.saved[STITCHED_FILENAME] == FAKE_PNG + b"document_board"
        call, = rasterizer.calls
        assert call["class_name"] == BOARD_CLASS_NAME
        assert call["ignore"] is is_label
        assert board.class_name == BOARD_CLASS_NAME

    def test_stitched_row_overrides_then_restores(self, orchestrator, rasterizer, saver, board):
        asyncio.run(orchestrator.export(ExportMode.STITCHED_ROW))
        call, = rasterizer.calls
        assert call["style"] == ROW_LAYOUT_STYLE
        assert call["class_name"] == ""
        assert call["ignore"] is is_label
        assert board.style == {}
        assert board.class_name == BOARD_CLASS_NAME
        assert STITCHED_FILENAME in saver.saved

    def test_archived_has_three_named_entries(self, orchestrator, saver):
        path = asyncio.run(orchestrator.export(ExportMode.ARCHIVED))
        assert path.name == ARCHIVE_FILENAME
        with zipfile.ZipFile(io.BytesIO(saver.saved[ARCHIVE_FILENAME])) as zf:
            assert zf.namelist() == ["Tuition_Statement.png", "Transcript.png", "Schedule.png"]
            assert zf.read("Transcript.png") == FAKE_PNG + b"transcript"

    @pytest.mark.parametrize("seed", [0, 1, 2, 3])
    def test_archive_entries_independent_of_record(self, seed, saver, capture):
        record = StudentRecordGenerator(seed=seed).generate()
        orch = ExportOrchestrator(DocumentBoard.for_record(record), saver, capture=capture)
        asyncio.run(orch.export(ExportMode.ARCHIVED))
        with zipfile.ZipFile(io.BytesIO(saver.saved[ARCHIVE_FILENAME])) as zf:
            assert zf.namelist() == list(ARCHIVE_ENTRIES.values())

    def test_state_transitions(self, board, saver, capture):
        states = []
        orch = ExportOrchestrator(board, saver, capture=capture, on_state_change=states.append)
        asyncio.run(orch.export(ExportMode.STITCHED_GRID))
        assert states == [ExportState.EXPORTING, ExportState.IDLE]
        assert orch.busy is False

    def test_close_shuts_down_owned_adapter(self, board, saver):
        orch = ExportOrchestrator(board, saver)
        orch.capture = CaptureAdapter(RecordingRasterizer())
        asyncio.run(orch.export(ExportMode.STITCHED_GRID))
        assert orch.capture._executor is not None
        orch.close()
        assert orch.capture._executor is None

    def test_close_leaves_injected_adapter_running(self, orchestrator, capture):
        asyncio.run(orchestrator.export(ExportMode.STITCHED_GRID))
        orchestrator.close()
        assert capture._executor is not None


class TestExportFailures:
    def test_stitched_row_failure_restores_layout(self, board, saver):
        with CaptureAdapter(RecordingRasterizer(fail_on={"document_board"})) as capture:
            orch = ExportOrchestrator(board, saver, capture=capture)
            with pytest.raises(CaptureFailedError):
                asyncio.run(orch.export(ExportMode.STITCHED_ROW))
        assert board.style == {}
        assert board.class_name == BOARD_CLASS_NAME
        assert not orch.guard.is_overridden(board)
        assert orch.state is ExportState.IDLE
        assert saver.saved == {}

    def test_archived_failure_saves_nothing(self, board, saver):
        with CaptureAdapter(RecordingRasterizer(fail_on={"transcript"})) as capture:
            orch = ExportOrchestrator(board, saver, capture=capture)
            with pytest.raises(CaptureFailedError) as exc_info:
                asyncio.run(orch.export(ExportMode.ARCHIVED))
        assert exc_info.value.region == "transcript"
        assert saver.saved == {}
        assert orch.busy is False

    def test_concurrent_request_rejected_and_layout_untouched(self, board, saver):
        gate = threading.Event()
        rasterizer = RecordingRasterizer(fail_on={"transcript"}, gate=gate)

        async def scenario(orch):
            first = asyncio.create_task(orch.export(ExportMode.ARCHIVED))
            await asyncio.sleep(0)
            assert orch.busy
            with pytest.raises(ExportInProgressError):
                await orch.export(ExportMode.STITCHED_ROW)
            assert board.style == {}
            assert board.class_name == BOARD_CLASS_NAME
            gate.set()
            with pytest.raises(CaptureFailedError):
                await first

        with CaptureAdapter(rasterizer) as capture:
            orch = ExportOrchestrator(board, saver, capture=capture)
            asyncio.run(scenario(orch))

        assert saver.saved == {}
        assert board.class_name == BOARD_CLASS_NAME
        assert orch.state is ExportState.IDLE

    def test_save_failure(self, board, capture):
        orch = ExportOrchestrator(board, MemorySaver(fail=True), capture=capture)
        with pytest.raises(SaveFailedError, match="disk full"):
            asyncio.run(orch.export(ExportMode.STITCHED_GRID))
        assert orch.busy is False

    def test_archive_writer_failure(self, board, saver, capture):
        def broken(entries):
            raise OSError("no space")

        orch = ExportOrchestrator(board, saver, capture=capture, archive_writer=broken)
        with pytest.raises(SaveFailedError, match="no space"):
            asyncio.run(orch.export(ExportMode.ARCHIVED))
        assert saver.saved == {}

    def test_cancelled_before_capture(self, orchestrator, rasterizer, saver):
        token = CancelToken()
        token.cancel()
        with pytest.raises(ExportCancelledError):
            asyncio.run(orchestrator.export(ExportMode.STITCHED_ROW, cancel=token))
        assert rasterizer.calls == []
        assert saver.saved == {}
        assert orchestrator.board.class_name == BOARD_CLASS_NAME

    def test_cancelled_during_capture(self, board, saver):
        token = CancelToken()

        def cancelling(region, **kwargs):
            token.cancel()
            return FAKE_PNG

        with CaptureAdapter(cancelling) as capture:
            orch = ExportOrchestrator(board, saver, capture=capture)
            with pytest.raises(ExportCancelledError, match="archive"):
                asyncio.run(orch.export(ExportMode.ARCHIVED, cancel=token))
        assert saver.saved == {}


# ---------------------------------------------------------------------------
# DocumentSession
# ---------------------------------------------------------------------------

class TestDocumentSession:
    def test_default_mode_is_row(self, record, saver, capture):
        session = DocumentSession(record, saver, capture=capture)
        assert session.mode is ExportMode.STITCHED_ROW

    def test_export_success_notice(self, record, saver, capture):
        session = DocumentSession(record, saver, mode="archived", capture=capture)
        path = asyncio.run(session.export())
        assert path.name == ARCHIVE_FILENAME
        assert session.notice == f"Saved {ARCHIVE_FILENAME}"
        assert session.busy is False

    def test_export_failure_notice(self, record, saver):
        with CaptureAdapter(RecordingRasterizer(fail_on={"schedule"})) as capture:
            session = DocumentSession(record, saver, mode=ExportMode.ARCHIVED, capture=capture)
            assert asyncio.run(session.export()) is None
        assert session.notice == EXPORT_FAILED_NOTICE
        assert saver.saved == {}

    def test_busy_notice(self, record, saver):
        gate = threading.Event()

        async def scenario(session):
            first = asyncio.create_task(session.export())
            await asyncio.sleep(0)
            assert session.busy
            with pytest.raises(ExportInProgressError):
                session.regenerate(seed=1)
            assert await session.export() is None
            assert session.notice == EXPORT_BUSY_NOTICE
            gate.set()
            return await first

        with CaptureAdapter(RecordingRasterizer(gate=gate)) as capture:
            session = DocumentSession(record, saver, capture=capture)
            path = asyncio.run(scenario(session))
        assert path.name == STITCHED_FILENAME

    def test_regenerate_rebinds_board(self, record, saver, capture):
        session = DocumentSession(record, saver, capture=capture)
        fresh = session.regenerate(seed=123)
        assert session.record is fresh
        assert all(s.record is fresh for s in session.board.surfaces)

    def test_edit_applies_overrides(self, record, saver, capture):
        session = DocumentSession(record, saver, capture=capture)
        session.edit(university_name="Test University")
        assert session.board.surface("transcript").record.university_name == "Test University"

    def test_context_manager_closes_owned_capture(self, record, saver):
        with DocumentSession(record, saver) as session:
            session.orchestrator.capture = CaptureAdapter(RecordingRasterizer())
            asyncio.run(session.export())
            adapter = session.orchestrator.capture
            assert adapter._executor is not None
        assert adapter._executor is None

    def test_set_mode(self, record, saver, capture):
        session = DocumentSession(record, saver, capture=capture)
        session.set_mode("stitched_grid")
        assert session.mode is ExportMode.STITCHED_GRID
        with pytest.raises(ValueError):
            session.set_mode("zip")


# ---------------------------------------------------------------------------
# End-to-end with the real rasterizer
# ---------------------------------------------------------------------------

class TestEndToEnd:
    def test_archived_export_to_disk(self, record, tmp_path):
        with CaptureAdapter(scale=1) as capture:
            session = DocumentSession(
                record, DirectorySaver(tmp_path), mode=ExportMode.ARCHIVED, capture=capture,
            )
            path = asyncio.run(session.export())
        assert path == tmp_path / ARCHIVE_FILENAME
        with zipfile.ZipFile(path) as zf:
            assert zf.namelist() == list(ARCHIVE_ENTRIES.values())
            for name in zf.namelist():
                assert zf.read(name).startswith(b"\x89PNG")

    def test_stitched_row_export_to_disk(self, record, tmp_path):
        with CaptureAdapter(scale=1) as capture:
            session = DocumentSession(record, DirectorySaver(tmp_path), capture=capture)
            path = asyncio.run(session.export())
        assert path.read_bytes().startswith(b"\x89PNG")
        assert session.board.class_name == BOARD_CLASS_NAME


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------

class TestCli:
    def test_seed_from_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("STUDENT_DOCS_SEED", "7")
        monkeypatch.setattr(
            "sys.argv",
            ["export-student-documents", "--mode", "archived", "--scale", "1",
             "--output-dir", str(tmp_path)],
        )
        main()
        with zipfile.ZipFile(tmp_path / ARCHIVE_FILENAME) as zf:
            assert zf.namelist() == list(ARCHIVE_ENTRIES.values())

    def test_invalid_environment_seed_is_usage_error(self, monkeypatch, capsys):
        monkeypatch.setenv("STUDENT_DOCS_SEED", "abc")
        monkeypatch.setattr("sys.argv", ["export-student-documents"])
        with pytest.raises(SystemExit) as exc_info:
            main()
        assert exc_info.value.code == 2
        assert "invalid int value" in capsys.readouterr().err
