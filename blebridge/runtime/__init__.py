# runtime/__init__.py

from .state import BridgeStatus, MonitorState, WriterStats
from .watch_registry import DeviceWatchRegistry
from .ingestion_queue import IngestionQueue
from .forwarding_writer import ForwardingWriter, RetryPolicy
from .device_monitor import DeviceMonitor

__all__ = [
    "BridgeStatus", "MonitorState", "WriterStats",
    "DeviceWatchRegistry",
    "IngestionQueue",
    "ForwardingWriter", "RetryPolicy",
    "DeviceMonitor",
]
