"""
File digests and manifest fingerprints.

Digests certify published files (SHA-256, 64 hex chars). Fingerprints are
short xxhash values used only to tell manifests apart at a glance.
"""

from __future__ import annotations

import hashlib
from pathlib import Path

import xxhash

from jammer.errors import DependencyMissing

DIGEST_HEX_LENGTH = 64
CHUNK_SIZE = 65536


class FileHasher:
    """
    Computes hex digests of file contents.

    The algorithm is checked once at construction so a missing hash
    implementation fails before any command has side effects.
    """

    def __init__(self, algorithm: str = "sha256", chunk_size: int = CHUNK_SIZE):
        if algorithm not in hashlib.algorithms_available:
            raise DependencyMissing(
                "Hash algorithm not available", algorithm=algorithm
            )
        digest_size = hashlib.new(algorithm).digest_size
        if digest_size * 2 != DIGEST_HEX_LENGTH:
            raise DependencyMissing(
                "Hash algorithm must produce a 256-bit digest",
                algorithm=algorithm,
                digest_size=digest_size,
            )

        self.algorithm = algorithm
        self.chunk_size = chunk_size

    def digest(self, path: Path) -> str:
        """
        Compute the lowercase hex digest of a file.

        Args:
            path: File to hash.

        Returns:
            64-character lowercase hex string.
        """
        hasher = hashlib.new(self.algorithm)
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(self.chunk_size), b""):
                hasher.update(chunk)
        return hasher.hexdigest()


def compute_fingerprint(data: bytes) -> str:
    """Short non-cryptographic fingerprint of manifest bytes."""
    return xxhash.xxh64(data).hexdigest()


def compute_file_fingerprint(path: Path) -> str:
    """Fingerprint of a file's contents, streamed."""
    hasher = xxhash.xxh64()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b""):
            hasher.update(chunk)
    return hasher.hexdigest()
