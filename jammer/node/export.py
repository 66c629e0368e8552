"""
State jam export.

One artifact per block height at <jams_dir>/<height>.jam. An existing
file is the only record that a height was exported.
"""

from __future__ import annotations

import logging
import subprocess
import time
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from jammer.errors import ExportFailed

logger = logging.getLogger(__name__)

ARTIFACT_SUFFIX = ".jam"

EXPORT_DEADLINE = 15 * 60
EXPORT_POLL_INTERVAL = 0.1
EXPORT_SETTLE_TIME = 2.0
TERMINATE_GRACE = 10.0


class ExportPrimitive(Protocol):
    """
    The node's state export.

    Must only run while the node process for data_dir is stopped.
    """

    def export_state_jam(self, data_dir: Path, target_path: Path) -> None:
        ...


@dataclass(frozen=True)
class ExportRecord:
    """Outcome of an export request."""

    height: int
    artifact_path: Path
    exported: bool

    @property
    def skipped(self) -> bool:
        return not self.exported

    def to_dict(self) -> dict[str, Any]:
        return {
            "height": self.height,
            "artifact_path": str(self.artifact_path),
            "exported": self.exported,
        }


class NodeExporter:
    """
    Runs `<node_bin> --export-state-jam <target>` inside the node data dir.

    The node does not reliably exit after writing the jam, so completion is
    judged by the target file: once it exists and its size has held steady
    for settle_time seconds, the process is terminated. An export that
    exits on its own is judged by its return code.
    """

    def __init__(
        self,
        node_bin: Path,
        run_as: str | None = None,
        timeout: float | None = EXPORT_DEADLINE,
        poll_interval: float = EXPORT_POLL_INTERVAL,
        settle_time: float = EXPORT_SETTLE_TIME,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the exporter.

        Args:
            node_bin: Node executable.
            run_as: Run through `sudo -u run_as` when set.
            timeout: Seconds to wait for the jam file. None waits forever.
            poll_interval: Seconds between checks of the process and file.
            settle_time: Seconds the file size must stay unchanged.
            sleep: Sleep function used between polls.
            clock: Monotonic clock used for the deadline.
        """
        self.node_bin = Path(node_bin)
        self.run_as = run_as
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.settle_time = settle_time
        self._sleep = sleep
        self._clock = clock

    def command(self, target_path: Path) -> list[str]:
        cmd = [str(self.node_bin), "--export-state-jam", str(target_path)]
        if self.run_as:
            cmd = ["sudo", "-u", self.run_as, *cmd]
        return cmd

    def export_state_jam(self, data_dir: Path, target_path: Path) -> None:
        cmd = self.command(target_path)
        logger.debug("Running: %s (cwd=%s)", " ".join(cmd), data_dir)

        try:
            process = subprocess.Popen(cmd, cwd=data_dir, stdin=subprocess.DEVNULL)
        except FileNotFoundError as e:
            raise ExportFailed(
                "Export command not found", command=cmd[0], data_dir=str(data_dir)
            ) from e

        try:
            self._wait_for_artifact(process, Path(target_path))
        finally:
            stop_process(process)

    def _wait_for_artifact(self, process: subprocess.Popen, target: Path) -> None:
        start = self._clock()
        last_size: int | None = None
        stable_since: float | None = None

        while True:
            returncode = process.poll()
            if returncode is not None:
                if returncode != 0:
                    raise ExportFailed(
                        "Export command failed",
                        target=str(target),
                        returncode=returncode,
                    )
                return

            now = self._clock()
            size = target.stat().st_size if target.is_file() else None

            if size is None or size != last_size:
                last_size = size
                stable_since = now
            elif size > 0 and now - stable_since >= self.settle_time:
                logger.debug("Jam file settled at %d bytes: %s", size, target)
                return

            if self.timeout is not None and now - start >= self.timeout:
                if size:
                    logger.warning(
                        "Export deadline reached with jam present, keeping it: %s", target
                    )
                    return
                raise ExportFailed(
                    "Jam file never appeared before the export deadline",
                    target=str(target),
                    timeout=self.timeout,
                )

            self._sleep(self.poll_interval)


def stop_process(process: subprocess.Popen, grace: float = TERMINATE_GRACE) -> None:
    """Terminate a process that is still running, killing it after grace seconds."""
    if process.poll() is not None:
        return

    logger.debug("Stopping export process %d", process.pid)
    process.terminate()
    try:
        process.wait(timeout=grace)
    except subprocess.TimeoutExpired:
        process.kill()
        process.wait()


class ExportCoordinator:
    """Idempotent export of one state jam per height."""

    def __init__(self, jams_dir: Path, node_data_dir: Path, exporter: ExportPrimitive):
        self.jams_dir = Path(jams_dir)
        self.node_data_dir = Path(node_data_dir)
        self.exporter = exporter

    def artifact_path(self, height: int) -> Path:
        """Deterministic artifact location for a height."""
        if isinstance(height, bool) or not isinstance(height, int) or height < 0:
            raise ValueError(f"height must be a non-negative integer, got {height!r}")
        return self.jams_dir / f"{height}{ARTIFACT_SUFFIX}"

    def export(self, height: int) -> ExportRecord:
        """
        Export the state jam for height unless it already exists.

        Assumes the node service is already stopped.

        Args:
            height: Block height to name the artifact after.

        Returns:
            ExportRecord; exported is False when an existing artifact was reused.

        Raises:
            ExportFailed: If the export primitive fails or produces no file.
        """
        path = self.artifact_path(height)

        if path.exists():
            logger.info("Jam already exists: %s (skipping export)", path)
            return ExportRecord(height=height, artifact_path=path, exported=False)

        self.jams_dir.mkdir(parents=True, exist_ok=True)
        logger.info("Exporting state jam to: %s (from %s)", path, self.node_data_dir)

        try:
            self.exporter.export_state_jam(self.node_data_dir, path)
        except ExportFailed:
            self._discard_partial(path)
            raise
        except Exception as e:
            self._discard_partial(path)
            raise ExportFailed(f"Export failed: {e}", target=str(path)) from e
        except BaseException:
            # Ctrl-C or a termination signal mid-export
            self._discard_partial(path)
            raise

        if not path.is_file():
            raise ExportFailed("Jam file never appeared", target=str(path))

        logger.info("Exported: %s", path)
        return ExportRecord(height=height, artifact_path=path, exported=True)

    def _discard_partial(self, path: Path) -> None:
        if path.exists():
            logger.warning("Removing partial artifact left by failed export: %s", path)
            path.unlink()
