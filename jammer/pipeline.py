"""
Command flows.

Wires the tip resolver, lifecycle guard, exporter, manifest builder and
verifier into the three operations exposed by the CLI.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from jammer.config import JammerConfig
from jammer.core.hashing import FileHasher, compute_file_fingerprint
from jammer.errors import JammerError
from jammer.manifest.builder import ManifestBuilder, collect_artifacts
from jammer.manifest.entry import Manifest
from jammer.manifest.verifier import ManifestVerifier, VerificationReport
from jammer.node.export import ExportCoordinator, ExportPrimitive, ExportRecord, NodeExporter
from jammer.node.guard import LifecycleGuard
from jammer.node.rpc import ChainTipResolver, GrpcurlNodeRpc, NodeRpc
from jammer.node.service import ServiceControl, ServiceState, SystemdServiceControl

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class JamResult:
    """Result of the jam flow."""

    height: int
    export: ExportRecord
    manifest: Manifest


@dataclass(frozen=True)
class StatusReport:
    """Snapshot of the published tree and the node service."""

    jams_dir: Path
    artifact_count: int
    newest_height: int | None
    manifest_path: Path
    manifest_fingerprint: str | None
    service_name: str
    service_state: ServiceState | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "jams_dir": str(self.jams_dir),
            "artifact_count": self.artifact_count,
            "newest_height": self.newest_height,
            "manifest_path": str(self.manifest_path),
            "manifest_fingerprint": self.manifest_fingerprint,
            "service_name": self.service_name,
            "service_state": self.service_state.value if self.service_state else None,
        }


@dataclass
class JamPipeline:
    """The assembled components for one invocation."""

    config: JammerConfig
    resolver: ChainTipResolver
    guard: LifecycleGuard
    exporter: ExportCoordinator
    builder: ManifestBuilder
    verifier: ManifestVerifier

    def jam(self) -> JamResult:
        """
        Export the newest state and rebuild the manifest.

        The tip is read before the guard engages, so an unreachable node
        never causes a stop/restart cycle.
        """
        height = self.resolver.query()
        logger.info("Fetched tip block %d while service is still running", height)
        return self.guard.run(self._export_and_build, height)

    def hash(self) -> Manifest:
        """Rebuild the manifest with the service stopped."""
        return self.guard.run(self.builder.build)

    def check(self) -> VerificationReport:
        """Verify the manifest with the service stopped."""
        return self.guard.run(self.verifier.verify)

    def status(self) -> StatusReport:
        """Report on the published tree without touching the service."""
        artifacts = collect_artifacts(self.config.jams_dir)
        heights = [int(p.stem) for p in artifacts if p.stem.isdigit()]

        manifest_path = self.config.manifest_path
        fingerprint = (
            compute_file_fingerprint(manifest_path) if manifest_path.is_file() else None
        )

        try:
            state = self.guard.control.state(self.config.service_name)
        except JammerError as e:
            logger.warning("Could not read service state: %s", e)
            state = None

        return StatusReport(
            jams_dir=self.config.jams_dir,
            artifact_count=len(artifacts),
            newest_height=max(heights) if heights else None,
            manifest_path=manifest_path,
            manifest_fingerprint=fingerprint,
            service_name=self.config.service_name,
            service_state=state,
        )

    def _export_and_build(self, height: int) -> JamResult:
        record = self.exporter.export(height)
        manifest = self.builder.build()
        return JamResult(height=height, export=record, manifest=manifest)


def create_pipeline(
    config: JammerConfig,
    control: ServiceControl | None = None,
    rpc: NodeRpc | None = None,
    export_primitive: ExportPrimitive | None = None,
    hasher: FileHasher | None = None,
    **guard_kwargs: Any,
) -> JamPipeline:
    """
    Assemble a pipeline from configuration.

    Collaborators default to the real systemd, grpcurl and node binary
    backends; pass replacements to run against something else.

    Args:
        config: Runtime configuration.
        control: Service manager backend.
        rpc: Node query backend.
        export_primitive: Node export backend.
        hasher: File hasher.
        **guard_kwargs: Extra LifecycleGuard arguments (sleep, clock).

    Returns:
        Ready-to-run pipeline.

    Raises:
        DependencyMissing: If the hash algorithm is unavailable.
    """
    hasher = hasher or FileHasher()
    control = control or SystemdServiceControl()
    rpc = rpc or GrpcurlNodeRpc(config.node_rpc, timeout=config.rpc_timeout)
    export_primitive = export_primitive or NodeExporter(
        config.node_bin,
        run_as=config.node_user,
        timeout=config.export_timeout,
    )

    guard = LifecycleGuard(
        control,
        config.service_name,
        poll_interval=config.poll_interval,
        transition_timeout=config.transition_timeout,
        lock_file=config.lock_file,
        lock_timeout=config.lock_timeout,
        **guard_kwargs,
    )

    return JamPipeline(
        config=config,
        resolver=ChainTipResolver(rpc),
        guard=guard,
        exporter=ExportCoordinator(config.jams_dir, config.node_data_dir, export_primitive),
        builder=ManifestBuilder(
            config.web_root,
            config.jams_dir,
            config.manifest_path,
            hasher,
            published_files=config.published_files,
        ),
        verifier=ManifestVerifier(
            config.web_root,
            config.jams_dir,
            config.manifest_path,
            hasher,
            node_data_dirname=config.node_data_dirname,
        ),
    )
