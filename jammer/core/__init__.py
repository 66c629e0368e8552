"""Core utilities: hashing and logging."""

from jammer.core.hashing import FileHasher, compute_fingerprint, compute_file_fingerprint
from jammer.core.log import configure_logging

__all__ = [
    "FileHasher",
    "compute_fingerprint",
    "compute_file_fingerprint",
    "configure_logging",
]
