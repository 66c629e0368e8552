"""Tests for state jam export."""

import subprocess
import time
from pathlib import Path

import pytest

from fakes import FakeExporter
from jammer.errors import ExportFailed
from jammer.node.export import ExportCoordinator, ExportRecord, NodeExporter
from jammer.node.guard import TerminationRequested


@pytest.fixture
def jams_dir(tmp_path: Path) -> Path:
    return tmp_path / "html" / "jams"


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    path = tmp_path / "nockchain"
    path.mkdir()
    return path


class TestArtifactPath:
    """Tests for deterministic artifact naming."""

    def test_path_from_height(self, jams_dir, data_dir):
        coordinator = ExportCoordinator(jams_dir, data_dir, FakeExporter())
        assert coordinator.artifact_path(12345) == jams_dir / "12345.jam"

    def test_height_zero(self, jams_dir, data_dir):
        coordinator = ExportCoordinator(jams_dir, data_dir, FakeExporter())
        assert coordinator.artifact_path(0).name == "0.jam"

    @pytest.mark.parametrize("height", [-1, 1.5, "12", True, None])
    def test_rejects_invalid_height(self, jams_dir, data_dir, height):
        coordinator = ExportCoordinator(jams_dir, data_dir, FakeExporter())
        with pytest.raises(ValueError):
            coordinator.artifact_path(height)


class TestExportCoordinator:
    """Tests for ExportCoordinator.export."""

    def test_exports_new_height(self, jams_dir, data_dir):
        exporter = FakeExporter()
        coordinator = ExportCoordinator(jams_dir, data_dir, exporter)

        record = coordinator.export(12345)

        assert record.exported is True
        assert record.skipped is False
        assert record.artifact_path == jams_dir / "12345.jam"
        assert record.artifact_path.read_bytes() == b"jam-bytes12345.jam"
        assert exporter.calls == [(data_dir, jams_dir / "12345.jam")]

    def test_creates_jams_dir(self, jams_dir, data_dir):
        assert not jams_dir.exists()
        ExportCoordinator(jams_dir, data_dir, FakeExporter()).export(7)
        assert jams_dir.is_dir()

    def test_existing_artifact_is_not_reexported(self, jams_dir, data_dir):
        """A second export at the same height leaves the file untouched."""
        jams_dir.mkdir(parents=True)
        existing = jams_dir / "500.jam"
        existing.write_bytes(b"original")
        exporter = FakeExporter()

        record = ExportCoordinator(jams_dir, data_dir, exporter).export(500)

        assert record.exported is False
        assert record.skipped is True
        assert existing.read_bytes() == b"original"
        assert exporter.calls == []

    def test_repeat_export_is_idempotent(self, jams_dir, data_dir):
        exporter = FakeExporter()
        coordinator = ExportCoordinator(jams_dir, data_dir, exporter)

        first = coordinator.export(9)
        second = coordinator.export(9)

        assert first.exported and not second.exported
        assert len(exporter.calls) == 1

    def test_export_failure_propagates(self, jams_dir, data_dir):
        exporter = FakeExporter(error=ExportFailed("node crashed"))
        with pytest.raises(ExportFailed, match="node crashed"):
            ExportCoordinator(jams_dir, data_dir, exporter).export(10)

    def test_other_errors_wrapped(self, jams_dir, data_dir):
        exporter = FakeExporter(error=OSError("disk full"))
        with pytest.raises(ExportFailed, match="disk full"):
            ExportCoordinator(jams_dir, data_dir, exporter).export(10)

    def test_partial_artifact_removed(self, jams_dir, data_dir):
        """A half-written file does not survive a failed export."""
        exporter = FakeExporter(error=ExportFailed("killed"), write_before_error=True)
        with pytest.raises(ExportFailed):
            ExportCoordinator(jams_dir, data_dir, exporter).export(11)
        assert not (jams_dir / "11.jam").exists()

    @pytest.mark.parametrize("interruption", [KeyboardInterrupt(), TerminationRequested(15)])
    def test_interrupted_export_leaves_no_artifact(self, jams_dir, data_dir, interruption):
        """An export cut short by Ctrl-C or a signal is redone on the next run."""
        exporter = FakeExporter(error=interruption, write_before_error=True)
        coordinator = ExportCoordinator(jams_dir, data_dir, exporter)

        with pytest.raises(type(interruption)):
            coordinator.export(7)

        assert not (jams_dir / "7.jam").exists()

        exporter.error = None
        record = coordinator.export(7)

        assert record.exported is True
        assert len(exporter.calls) == 2
        assert (jams_dir / "7.jam").read_bytes() == b"jam-bytes7.jam"

    def test_missing_output_is_failure(self, jams_dir, data_dir):
        exporter = FakeExporter(write_file=False)
        with pytest.raises(ExportFailed, match="never appeared"):
            ExportCoordinator(jams_dir, data_dir, exporter).export(12)


class TestExportRecord:
    """Tests for ExportRecord."""

    def test_to_dict(self, tmp_path: Path):
        record = ExportRecord(height=3, artifact_path=tmp_path / "3.jam", exported=True)
        assert record.to_dict() == {
            "height": 3,
            "artifact_path": str(tmp_path / "3.jam"),
            "exported": True,
        }


@pytest.fixture
def node_script(tmp_path: Path):
    """Write an executable stand-in for the node binary; $2 is the target."""

    def make(body: str) -> Path:
        path = tmp_path / "bin" / "nockchain"
        path.parent.mkdir(exist_ok=True)
        path.write_text(f"#!/bin/sh\n{body}\n")
        path.chmod(0o755)
        return path

    return make


def quick_exporter(node_bin: Path, **kwargs) -> NodeExporter:
    kwargs.setdefault("poll_interval", 0.05)
    kwargs.setdefault("settle_time", 0.2)
    return NodeExporter(node_bin, **kwargs)


class TestNodeExporter:
    """Tests for the node binary backend."""

    def test_command(self, tmp_path: Path):
        exporter = NodeExporter(Path("/opt/nockchain"))
        assert exporter.command(tmp_path / "1.jam") == [
            "/opt/nockchain",
            "--export-state-jam",
            str(tmp_path / "1.jam"),
        ]

    def test_command_with_user(self, tmp_path: Path):
        exporter = NodeExporter(Path("/opt/nockchain"), run_as="nock")
        assert exporter.command(tmp_path / "1.jam")[:4] == [
            "sudo",
            "-u",
            "nock",
            "/opt/nockchain",
        ]

    def test_default_deadline_is_fifteen_minutes(self):
        assert NodeExporter(Path("/opt/nockchain")).timeout == 15 * 60

    def test_runs_in_data_dir(self, node_script, data_dir):
        target = data_dir / "x.jam"
        quick_exporter(node_script('pwd > "$2"')).export_state_jam(data_dir, target)
        assert Path(target.read_text().strip()).resolve() == data_dir.resolve()

    def test_node_that_never_exits(self, node_script, data_dir):
        """A node that writes the jam and then hangs is stopped, and the jam kept."""
        target = data_dir / "x.jam"
        node_bin = node_script("printf 'state-jam' > \"$2\"\nexec sleep 30")

        started = time.monotonic()
        quick_exporter(node_bin, timeout=20).export_state_jam(data_dir, target)

        assert time.monotonic() - started < 15
        assert target.read_bytes() == b"state-jam"

    def test_hanging_node_through_coordinator(self, node_script, jams_dir, data_dir):
        """The completed jam is not discarded as a partial artifact."""
        node_bin = node_script("printf 'state-jam' > \"$2\"\nexec sleep 30")
        coordinator = ExportCoordinator(jams_dir, data_dir, quick_exporter(node_bin, timeout=20))

        record = coordinator.export(9)

        assert record.exported is True
        assert (jams_dir / "9.jam").read_bytes() == b"state-jam"

    def test_growing_file_waits_for_settle(self, node_script, data_dir):
        """A file still being written is not accepted until its size holds."""
        target = data_dir / "x.jam"
        node_bin = node_script(
            'for i in 1 2 3 4 5; do printf x >> "$2"; sleep 0.1; done\nexec sleep 30'
        )

        quick_exporter(node_bin, timeout=20, settle_time=0.4).export_state_jam(data_dir, target)

        assert target.read_bytes() == b"xxxxx"

    def test_deadline_with_jam_present(self, node_script, data_dir):
        target = data_dir / "x.jam"
        node_bin = node_script('while :; do printf x >> "$2"; sleep 0.05; done')

        quick_exporter(node_bin, timeout=0.5, settle_time=60).export_state_jam(data_dir, target)

        assert target.stat().st_size > 0

    def test_deadline_without_jam(self, node_script, data_dir):
        node_bin = node_script("exec sleep 30")
        with pytest.raises(ExportFailed, match="never appeared"):
            quick_exporter(node_bin, timeout=0.5).export_state_jam(data_dir, data_dir / "x.jam")

    def test_clean_exit(self, node_script, data_dir):
        target = data_dir / "x.jam"
        quick_exporter(node_script('printf done > "$2"')).export_state_jam(data_dir, target)
        assert target.read_bytes() == b"done"

    def test_nonzero_exit(self, node_script, data_dir):
        with pytest.raises(ExportFailed) as exc_info:
            quick_exporter(node_script("exit 3")).export_state_jam(data_dir, data_dir / "x.jam")
        assert exc_info.value.context["returncode"] == 3

    def test_binary_not_found(self, data_dir):
        with pytest.raises(ExportFailed, match="not found"):
            NodeExporter(Path("/nonexistent/nockchain")).export_state_jam(
                data_dir, data_dir / "x.jam"
            )

    def test_interrupt_stops_child(self, node_script, data_dir):
        """Ctrl-C while waiting still terminates the node process."""
        marker = data_dir / "alive"
        node_bin = node_script(f"touch {marker}\nexec sleep 30")
        seen = []

        def interrupting_sleep(seconds):
            if marker.exists():
                raise KeyboardInterrupt
            time.sleep(seconds)

        original_popen = subprocess.Popen

        def recording_popen(*args, **kwargs):
            process = original_popen(*args, **kwargs)
            seen.append(process)
            return process

        exporter = quick_exporter(node_bin, timeout=20, sleep=interrupting_sleep)
        with pytest.MonkeyPatch.context() as mp:
            mp.setattr(subprocess, "Popen", recording_popen)
            with pytest.raises(KeyboardInterrupt):
                exporter.export_state_jam(data_dir, data_dir / "x.jam")

        assert seen[0].poll() is not None
