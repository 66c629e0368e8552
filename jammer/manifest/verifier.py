"""
Manifest verification against the live filesystem.

Every well-formed line is checked independently; malformed lines are
reported as warnings and do not affect the aggregate status.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from jammer.core.hashing import FileHasher
from jammer.errors import ManifestNotFound, ManifestUnreadable
from jammer.manifest.entry import parse_line

logger = logging.getLogger(__name__)


class EntryStatus(str, Enum):
    """Outcome of checking one manifest entry."""

    OK = "ok"
    FAIL = "fail"
    MISSING = "missing"


class VerificationStatus(str, Enum):
    PASS = "pass"
    FAIL = "fail"


@dataclass(frozen=True)
class EntryResult:
    """Result for one manifest entry."""

    relative_path: str
    status: EntryStatus
    expected: str
    actual: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "relative_path": self.relative_path,
            "status": self.status.value,
            "expected": self.expected,
            "actual": self.actual,
        }


@dataclass(frozen=True)
class ManifestWarning:
    """Non-fatal finding reported during verification."""

    message: str
    line_number: int | None = None
    line: str | None = None


@dataclass
class VerificationReport:
    """Aggregate verification result."""

    manifest_path: str
    entries: list[EntryResult] = field(default_factory=list)
    warnings: list[ManifestWarning] = field(default_factory=list)

    @property
    def status(self) -> VerificationStatus:
        """PASS iff every well-formed entry resolved to OK."""
        if all(e.status == EntryStatus.OK for e in self.entries):
            return VerificationStatus.PASS
        return VerificationStatus.FAIL

    @property
    def passed(self) -> bool:
        return self.status == VerificationStatus.PASS

    def count(self, status: EntryStatus) -> int:
        return sum(1 for e in self.entries if e.status == status)

    def to_dict(self) -> dict[str, Any]:
        return {
            "manifest_path": self.manifest_path,
            "status": self.status.value,
            "entries": [e.to_dict() for e in self.entries],
            "warnings": [w.message for w in self.warnings],
        }


class ManifestVerifier:
    """Re-checks a manifest file against the files it names."""

    def __init__(
        self,
        web_root: Path,
        jams_dir: Path,
        manifest_path: Path,
        hasher: FileHasher,
        node_data_dirname: str = ".data.nockchain",
    ):
        self.web_root = Path(web_root)
        self.jams_dir = Path(jams_dir)
        self.manifest_path = Path(manifest_path)
        self.hasher = hasher
        self.node_data_dirname = node_data_dirname

    def verify(self) -> VerificationReport:
        """
        Verify every entry of the manifest.

        Returns:
            Report with one EntryResult per well-formed line.

        Raises:
            ManifestNotFound: If the manifest file does not exist.
            ManifestUnreadable: If the manifest exists but cannot be read.
        """
        if not self.manifest_path.is_file():
            raise ManifestNotFound("Manifest not found", path=str(self.manifest_path))

        try:
            raw_lines = self.manifest_path.read_bytes().splitlines()
        except OSError as e:
            raise ManifestUnreadable(
                "Manifest could not be read", path=str(self.manifest_path), error=str(e)
            ) from e

        report = VerificationReport(manifest_path=str(self.manifest_path))

        for line_number, raw in enumerate(raw_lines, start=1):
            if not raw.strip(b"\r"):
                continue

            try:
                line = raw.decode("utf-8").rstrip("\r")
                parsed = parse_line(line)
            except UnicodeDecodeError:
                line = raw.decode("utf-8", errors="replace").rstrip("\r")
                parsed = None

            if parsed is None:
                self._warn(
                    report,
                    f"Skipping invalid manifest line {line_number}: {line}",
                    line_number=line_number,
                    line=line,
                )
                continue

            expected, rel = parsed
            report.entries.append(self.check_entry(rel, expected, report))

        exposed = self.jams_dir / self.node_data_dirname
        if exposed.is_dir():
            self._warn(report, f"{exposed} exists (should not be web-exposed)")

        logger.info(
            "Verified %d entries: %d ok, %d failed, %d missing",
            len(report.entries),
            report.count(EntryStatus.OK),
            report.count(EntryStatus.FAIL),
            report.count(EntryStatus.MISSING),
        )
        return report

    def check_entry(
        self,
        relative_path: str,
        expected: str,
        report: VerificationReport | None = None,
    ) -> EntryResult:
        """
        Check one file against its expected digest.

        A file that exists but cannot be read counts as FAIL with no actual
        digest; the read error is added to report's warnings when given.
        """
        expected = expected.lower()
        path = self.web_root / relative_path

        if not path.is_file():
            logger.debug("Missing: %s", relative_path)
            return EntryResult(relative_path, EntryStatus.MISSING, expected)

        try:
            actual = self.hasher.digest(path).lower()
        except OSError as e:
            message = f"Could not read {relative_path}: {e}"
            if report is not None:
                self._warn(report, message)
            else:
                logger.warning(message)
            return EntryResult(relative_path, EntryStatus.FAIL, expected)

        status = EntryStatus.OK if actual == expected else EntryStatus.FAIL
        return EntryResult(relative_path, status, expected, actual)

    def _warn(self, report: VerificationReport, message: str, **kwargs: Any) -> None:
        logger.warning(message)
        report.warnings.append(ManifestWarning(message=message, **kwargs))
