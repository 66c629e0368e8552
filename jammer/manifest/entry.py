"""
Manifest schema.

A manifest is the sorted list of (digest, relative path) pairs certifying
the published tree, stored in sha256sum's text format:

    <64 hex digest><two spaces><relative path>\\n
"""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict, Field, model_validator

from jammer.core.hashing import compute_fingerprint

# Lines written by this tool always use two spaces; readers accept any
# whitespace run and either digest case, like sha256sum -c.
LINE_PATTERN = re.compile(r"^([a-fA-F0-9]{64})\s+(.+)$")


class ManifestEntry(BaseModel):
    """One certified file."""

    model_config = ConfigDict(frozen=True)

    relative_path: str = Field(min_length=1, description="Path relative to the web root")
    digest: str = Field(pattern=r"^[0-9a-f]{64}$", description="Lowercase hex digest")

    def to_line(self) -> str:
        """Format as a manifest line (without newline)."""
        return f"{self.digest}  {self.relative_path}"


class Manifest(BaseModel):
    """Ordered, path-unique sequence of manifest entries."""

    model_config = ConfigDict(frozen=True)

    entries: tuple[ManifestEntry, ...] = Field(default_factory=tuple)

    @model_validator(mode="after")
    def _check_order(self) -> Manifest:
        paths = [e.relative_path for e in self.entries]
        if len(set(paths)) != len(paths):
            raise ValueError("relative_path must be unique within a manifest")
        if paths != sorted(paths):
            raise ValueError("entries must be sorted by relative_path")
        return self

    @classmethod
    def from_digests(cls, digests: dict[str, str]) -> Manifest:
        """Build a manifest from a {relative_path: digest} mapping."""
        return cls(
            entries=tuple(
                ManifestEntry(relative_path=path, digest=digest.lower())
                for path, digest in sorted(digests.items())
            )
        )

    @property
    def entry_count(self) -> int:
        return len(self.entries)

    @property
    def paths(self) -> list[str]:
        return [e.relative_path for e in self.entries]

    def to_text(self) -> str:
        """Serialize to manifest file content with a trailing newline."""
        return "".join(f"{e.to_line()}\n" for e in self.entries)

    def to_bytes(self) -> bytes:
        return self.to_text().encode("utf-8")

    @property
    def fingerprint(self) -> str:
        """Short fingerprint of the serialized manifest."""
        return compute_fingerprint(self.to_bytes())


def parse_line(line: str) -> tuple[str, str] | None:
    """
    Parse one manifest line.

    Args:
        line: Line text, trailing newline allowed.

    Returns:
        (lowercase digest, relative path), or None if the line is malformed.
    """
    match = LINE_PATTERN.match(line.rstrip("\r\n"))
    if match is None:
        return None
    return match.group(1).lower(), match.group(2)
