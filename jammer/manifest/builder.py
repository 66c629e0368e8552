"""
Manifest builder.

Regenerates the manifest from scratch over the published file set and
swaps it into place atomically.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from jammer.core.hashing import FileHasher
from jammer.errors import NoFilesFound
from jammer.manifest.entry import Manifest
from jammer.node.export import ARTIFACT_SUFFIX

logger = logging.getLogger(__name__)

MANIFEST_MODE = 0o644


def relative_to_root(path: Path, root: Path) -> str:
    """
    Path of a published file as written in the manifest.

    Files outside the web root keep their absolute path.
    """
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()


def collect_artifacts(jams_dir: Path) -> list[Path]:
    """List *.jam files directly under jams_dir, sorted by name."""
    if not jams_dir.is_dir():
        return []
    return sorted(
        p for p in jams_dir.iterdir() if p.suffix == ARTIFACT_SUFFIX and p.is_file()
    )


class ManifestBuilder:
    """
    Builds the manifest for the published tree.

    The candidate set is the allow-listed top-level files under the web
    root plus every artifact directly under the jams directory.
    """

    def __init__(
        self,
        web_root: Path,
        jams_dir: Path,
        manifest_path: Path,
        hasher: FileHasher,
        published_files: tuple[str, ...] = ("index.html", "privacy.html"),
    ):
        self.web_root = Path(web_root)
        self.jams_dir = Path(jams_dir)
        self.manifest_path = Path(manifest_path)
        self.hasher = hasher
        self.published_files = published_files

    def collect(self) -> dict[str, Path]:
        """
        Gather candidate files.

        Returns:
            Mapping of manifest path to filesystem path, sorted by manifest path.
        """
        candidates: dict[str, Path] = {}

        for name in self.published_files:
            path = self.web_root / name
            if path.is_file():
                candidates[relative_to_root(path, self.web_root)] = path

        for path in collect_artifacts(self.jams_dir):
            candidates[relative_to_root(path, self.web_root)] = path

        return dict(sorted(candidates.items()))

    def compute(self) -> Manifest:
        """
        Hash the candidate set without touching the manifest file.

        Raises:
            NoFilesFound: If there is nothing to certify.
        """
        candidates = self.collect()
        if not candidates:
            raise NoFilesFound(
                "No files found to hash",
                web_root=str(self.web_root),
                jams_dir=str(self.jams_dir),
            )

        digests = {}
        for rel, path in candidates.items():
            digests[rel] = self.hasher.digest(path)
            logger.debug("Hashed %s: %s", rel, digests[rel])

        return Manifest.from_digests(digests)

    def build(self) -> Manifest:
        """
        Regenerate and atomically replace the manifest file.

        An existing manifest is left untouched if hashing fails or the
        candidate set is empty.

        Returns:
            The manifest that was written.
        """
        manifest = self.compute()
        write_manifest_atomic(self.manifest_path, manifest.to_bytes())
        logger.info(
            "Manifest written: %s (%d files, fingerprint %s)",
            self.manifest_path,
            manifest.entry_count,
            manifest.fingerprint,
        )
        return manifest


def write_manifest_atomic(path: Path, content: bytes, mode: int = MANIFEST_MODE) -> None:
    """
    Write content to path via a temp file in the same directory and rename.

    Readers see either the previous file or the complete new one.

    Args:
        path: Destination path.
        content: Bytes to write.
        mode: Permission bits for the final file.
    """
    dir_path = path.parent
    dir_path.mkdir(parents=True, exist_ok=True)

    temp_path = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="wb",
            dir=dir_path,
            prefix=f".{path.name}.",
            suffix=".tmp",
            delete=False,
        ) as f:
            temp_path = Path(f.name)
            f.write(content)
            f.flush()
            os.fsync(f.fileno())

        os.chmod(temp_path, mode)
        os.replace(temp_path, path)
    except BaseException:
        if temp_path is not None and temp_path.exists():
            temp_path.unlink()
        raise
