"""Tests for file digests and fingerprints."""

from pathlib import Path

import pytest

from jammer.core.hashing import (
    DIGEST_HEX_LENGTH,
    FileHasher,
    compute_file_fingerprint,
    compute_fingerprint,
)
from jammer.errors import DependencyMissing

ABC_SHA256 = "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad"
EMPTY_SHA256 = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"


class TestFileHasher:
    """Tests for FileHasher."""

    def test_known_digest(self, tmp_path: Path):
        """Digest should match the SHA-256 test vector."""
        path = tmp_path / "abc.bin"
        path.write_bytes(b"abc")
        assert FileHasher().digest(path) == ABC_SHA256

    def test_empty_file(self, tmp_path: Path):
        """Empty files hash to the empty-input digest."""
        path = tmp_path / "empty"
        path.write_bytes(b"")
        assert FileHasher().digest(path) == EMPTY_SHA256

    def test_digest_is_lowercase_hex(self, tmp_path: Path):
        """Digests are 64 lowercase hex characters."""
        path = tmp_path / "data"
        path.write_bytes(bytes(range(256)) * 10)
        digest = FileHasher().digest(path)
        assert len(digest) == DIGEST_HEX_LENGTH
        assert digest == digest.lower()
        int(digest, 16)

    def test_chunking_does_not_change_digest(self, tmp_path: Path):
        """Chunk size is an implementation detail."""
        path = tmp_path / "big"
        path.write_bytes(b"x" * 200_001)
        assert FileHasher(chunk_size=7).digest(path) == FileHasher().digest(path)

    def test_unknown_algorithm(self):
        """Unavailable algorithms fail up front."""
        with pytest.raises(DependencyMissing):
            FileHasher(algorithm="no-such-hash")

    def test_wrong_digest_size(self):
        """Algorithms that do not yield 64 hex chars are rejected."""
        with pytest.raises(DependencyMissing):
            FileHasher(algorithm="sha1")

    def test_missing_file(self, tmp_path: Path):
        """Hashing a missing file raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            FileHasher().digest(tmp_path / "nope")


class TestFingerprint:
    """Tests for manifest fingerprints."""

    def test_deterministic(self):
        """Same bytes, same fingerprint."""
        assert compute_fingerprint(b"manifest") == compute_fingerprint(b"manifest")

    def test_different_content(self):
        """Different bytes, different fingerprint."""
        assert compute_fingerprint(b"a") != compute_fingerprint(b"b")

    def test_file_matches_bytes(self, tmp_path: Path):
        """Streaming a file gives the same fingerprint as its bytes."""
        path = tmp_path / "SHA256SUMS"
        path.write_bytes(b"line one\nline two\n")
        assert compute_file_fingerprint(path) == compute_fingerprint(path.read_bytes())
