from __future__ import annotations

import logging
from datetime import datetime, timezone

from blebridge.model.reading import Reading
from blebridge.sinks.log import LogSink


def test_logs_reading_fields(caplog):
    ts = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    sink = LogSink()
    with caplog.at_level(logging.INFO):
        sink.deliver(Reading(address="A4:C1:38:0A:0B:0C", timestamp=ts, rssi=-70))
    sink.close()

    msg = caplog.records[-1].getMessage()
    assert msg.startswith("READING address=A4:C1:38:0A:0B:0C")
    assert "rssi=-70" in msg
    assert "battery" not in msg
