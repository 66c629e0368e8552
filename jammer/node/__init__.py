"""Node collaborators: service control, lifecycle guard, chain tip and export."""

from jammer.node.service import ServiceControl, ServiceState, SystemdServiceControl
from jammer.node.guard import LifecycleGuard, StopToken, TerminationRequested
from jammer.node.rpc import ChainTipResolver, GrpcurlNodeRpc, NodeRpc
from jammer.node.export import ExportCoordinator, ExportRecord, NodeExporter

__all__ = [
    "ServiceControl",
    "ServiceState",
    "SystemdServiceControl",
    "LifecycleGuard",
    "StopToken",
    "TerminationRequested",
    "ChainTipResolver",
    "GrpcurlNodeRpc",
    "NodeRpc",
    "ExportCoordinator",
    "ExportRecord",
    "NodeExporter",
]
