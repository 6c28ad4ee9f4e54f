"""Cluster-facing services.

Watches over polled resource snapshots, connectivity failure handling,
interactive sessions, port forwards and file transfers.
"""

from kube_console.services.kubernetes.change_detector import ChangeDetector, SnapshotDiff
from kube_console.services.kubernetes.classifier import ClassifiedFailure, FailureKind, classify
from kube_console.services.kubernetes.failure_coordinator import GlobalFailureCoordinator
from kube_console.services.kubernetes.file_transfer import FileTransferManager
from kube_console.services.kubernetes.port_forward_manager import (
    PortForwardError,
    PortForwardManager,
    PortForwardSession,
    PortInUseError,
)
from kube_console.services.kubernetes.resource_watch import ResourceWatchService
from kube_console.services.kubernetes.session_manager import (
    Session,
    SessionError,
    SessionKind,
    SessionManager,
    SessionNotFoundError,
    SessionState,
    SessionTarget,
    SessionTargetGoneError,
)
from kube_console.services.kubernetes.snapshot_manager import ResourceSnapshotManager
from kube_console.services.kubernetes.watch import (
    WatchEvent,
    WatchKey,
    WatchStreamEngine,
    WatchSubscription,
)

__all__ = [
    "ChangeDetector",
    "ClassifiedFailure",
    "FailureKind",
    "FileTransferManager",
    "GlobalFailureCoordinator",
    "PortForwardError",
    "PortForwardManager",
    "PortForwardSession",
    "PortInUseError",
    "ResourceSnapshotManager",
    "ResourceWatchService",
    "Session",
    "SessionError",
    "SessionKind",
    "SessionManager",
    "SessionNotFoundError",
    "SessionState",
    "SessionTarget",
    "SessionTargetGoneError",
    "SnapshotDiff",
    "WatchEvent",
    "WatchKey",
    "WatchStreamEngine",
    "WatchSubscription",
    "classify",
]
