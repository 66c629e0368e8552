"""Manifest system: schema, builder and verifier."""

from jammer.manifest.entry import Manifest, ManifestEntry, parse_line
from jammer.manifest.builder import ManifestBuilder, write_manifest_atomic
from jammer.manifest.verifier import (
    EntryResult,
    EntryStatus,
    ManifestVerifier,
    ManifestWarning,
    VerificationReport,
    VerificationStatus,
)

__all__ = [
    "Manifest",
    "ManifestEntry",
    "parse_line",
    "ManifestBuilder",
    "write_manifest_atomic",
    "EntryResult",
    "EntryStatus",
    "ManifestVerifier",
    "ManifestWarning",
    "VerificationReport",
    "VerificationStatus",
]
