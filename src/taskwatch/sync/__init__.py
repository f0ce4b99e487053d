"""Real-time progress synchronization for one generation job.

Data flows transport -> session -> normalizer -> controller -> consumer.
Recovery flows session close -> controller -> reconnect policy -> new session.
Sockets and timers are injected so the whole pipeline runs under a fake clock
in tests.
"""

from taskwatch.sync.controller import SyncController
from taskwatch.sync.models import SnapshotDelta, SyncState, SyncView, TaskSnapshot, TaskStatus
from taskwatch.sync.normalizer import MessageNormalizer
from taskwatch.sync.policy import ExponentialBackoffPolicy, FixedDelayPolicy, ReconnectPolicy

__all__ = [
    "ExponentialBackoffPolicy",
    "FixedDelayPolicy",
    "MessageNormalizer",
    "ReconnectPolicy",
    "SnapshotDelta",
    "SyncController",
    "SyncState",
    "SyncView",
    "TaskSnapshot",
    "TaskStatus",
]
