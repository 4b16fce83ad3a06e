# blebridge/runtime/state.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List


class MonitorState(str, Enum):
    IDLE = "idle"
    ENUMERATING = "enumerating"
    DISCOVERING = "discovering"
    STOPPING = "stopping"
    STOPPED = "stopped"


@dataclass(frozen=True)
class WriterStats:
    """
    Forwarding counters; retries counts failed attempts that were rescheduled.
    """
    delivered: int = 0
    dropped: int = 0
    retries: int = 0


@dataclass(frozen=True)
class BridgeStatus:
    """
    A snapshot of the full pipeline status, safe to share across threads.
    """
    monitor: MonitorState
    watched: List[str]
    queue_depth: int
    queue_high_watermark: int
    writer: WriterStats
