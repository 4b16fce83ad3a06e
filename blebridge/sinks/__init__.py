from .database import DatabaseSink
from .http import HttpSink
from .log import LogSink
from .registry import SinkRegistry

__all__ = ["DatabaseSink", "HttpSink", "LogSink", "SinkRegistry"]
