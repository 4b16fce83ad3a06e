# blebridge/sinks/log.py
from __future__ import annotations

import logging
from typing import Optional

from blebridge.model.reading import Reading


class LogSink:
    """Log decoded readings instead of forwarding them (dry runs)."""

    def __init__(self, *, logger: Optional[logging.Logger] = None):
        self._log = logger or logging.getLogger(__name__)

    def deliver(self, reading: Reading) -> None:
        fields = " ".join(f"{k}={v}" for k, v in reading.measurements().items())
        self._log.info("READING address=%s ts=%s %s", reading.address, reading.timestamp.isoformat(), fields)

    def close(self) -> None:
        return None
