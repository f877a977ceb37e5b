"""Tests for ReplicationTUI."""

from chunksync.models import Chunk, Phase, ReplicationSummary, RunOutcome, StatusSnapshot
from chunksync.planning import FILES_ONLY_OPTIONS
from chunksync.ui import ReplicationTUI


def make_tui(captured_console):
    console, output = captured_console
    return ReplicationTUI(console=console), output


class TestDisplayPlan:
    def test_plan_table(self, captured_console) -> None:
        tui, output = make_tui(captured_console)
        chunks = [
            Chunk("/data/share/A", "/backup/A", 2048, 3, 1, chunk_id=1),
            Chunk(
                "/data/share", "/backup", 10, 1, 0,
                is_files_only=True, copy_options=FILES_ONLY_OPTIONS, chunk_id=2,
            ),
        ]

        tui.display_plan("share", chunks)

        text = output.getvalue()
        assert "Plan: share" in text
        assert "Chunks: 2" in text
        assert "/data/share/A" in text
        assert "files only" in text
        assert "2.0 KB" in text

    def test_empty_plan(self, captured_console) -> None:
        tui, output = make_tui(captured_console)

        tui.display_plan("share", [], skipped=["/data/share/locked"])

        text = output.getvalue()
        assert "Nothing to copy." in text
        assert "Skipped (not accessible): /data/share/locked" in text


class TestDisplaySummary:
    def test_success_title(self, captured_console) -> None:
        tui, output = make_tui(captured_console)

        tui.display_summary(ReplicationSummary(total_chunks=2, chunks_complete=2))

        assert "Replication Complete" in output.getvalue()

    def test_partial_failure_lists_errors(self, captured_console) -> None:
        tui, output = make_tui(captured_console)
        summary = ReplicationSummary(
            chunks_complete=1,
            chunks_failed=1,
            outcome=RunOutcome.PARTIAL_FAILURE,
            errors=["Chunk 2 failed (/src/b): some items failed to copy"],
        )

        tui.display_summary(summary)

        text = output.getvalue()
        assert "Replication Partially Failed" in text
        assert "Errors (1)" in text
        assert "Chunk 2 failed" in text

    def test_total_failure_and_stopped_titles(self, captured_console) -> None:
        tui, output = make_tui(captured_console)

        tui.display_summary(ReplicationSummary(chunks_failed=3, outcome=RunOutcome.TOTAL_FAILURE))
        tui.display_summary(ReplicationSummary(interrupted=True))

        text = output.getvalue()
        assert "Replication Failed" in text
        assert "Replication Stopped" in text

    def test_error_list_truncated(self, captured_console) -> None:
        tui, output = make_tui(captured_console)

        tui.display_summary(ReplicationSummary(errors=[f"error {i}" for i in range(15)]))

        assert "... and 5 more errors" in output.getvalue()


class TestProgress:
    def test_update_from_snapshot(self, captured_console) -> None:
        tui, _ = make_tui(captured_console)
        progress, update = tui.create_progress_display()
        snapshot = StatusSnapshot(
            phase=Phase.REPLICATING,
            profile_name="share",
            overall_percent=42.0,
            chunks_complete=2,
            chunks_total=5,
            eta_seconds=3700,
        )

        with progress:
            update(snapshot)

        task = progress.tasks[0]
        assert task.completed == 42.0
        assert task.description == "Replicating share"
        assert "chunks 2/5" in task.fields["detail"]
        assert "eta 1h 1m 40s" in task.fields["detail"]

    def test_phase_descriptions(self, captured_console) -> None:
        tui, _ = make_tui(captured_console)

        assert tui._describe_phase(StatusSnapshot(phase=Phase.SCANNING, profile_name="x")) == "Scanning x"
        assert "circuit open" in tui._describe_phase(
            StatusSnapshot(phase=Phase.PAUSED, profile_name="x", circuit_open=True)
        )
        assert "paused" in tui._describe_phase(StatusSnapshot(phase=Phase.PAUSED, profile_name="x"))


class TestFormatting:
    def test_format_size(self, captured_console) -> None:
        tui, _ = make_tui(captured_console)

        assert tui._format_size(512) == "512 B"
        assert tui._format_size(1536) == "1.5 KB"
        assert tui._format_size(10 * 1024 * 1024) == "10.0 MB"
        assert tui._format_size(3 * 1024 ** 3) == "3.0 GB"

    def test_truncate_keeps_tail(self, captured_console) -> None:
        tui, _ = make_tui(captured_console)

        truncated = tui._truncate_name("/very/long/" + "x" * 80 + "/leaf", max_length=20)

        assert len(truncated) == 20
        assert truncated.startswith("...")
        assert truncated.endswith("/leaf")
