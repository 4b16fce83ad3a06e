from __future__ import annotations

import logging
import threading
import time
from datetime import datetime, timezone
from queue import Empty

import pytest

from blebridge.model.reading import Reading
from blebridge.runtime.ingestion_queue import IngestionQueue

TS = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)


def _reading(i: int, address: str = "A4:C1:38:00:00:01") -> Reading:
    return Reading(address=address, timestamp=TS, rssi=-(i % 100), battery_percent=i)


def test_fifo_order():
    q = IngestionQueue()
    for i in range(5):
        q.enqueue(_reading(i))
    q.close()

    assert [r.battery_percent for r in q] == [0, 1, 2, 3, 4]


def test_enqueue_never_drops_large_backlog():
    q = IngestionQueue(backlog_warn_every=0)
    n = 50_000
    t0 = time.monotonic()
    for i in range(n):
        assert q.enqueue(_reading(i)) is True
    elapsed = time.monotonic() - t0

    assert len(q) == n
    assert q.high_watermark == n
    # no per-item blocking: 50k appends are far below a second
    assert elapsed < 5.0


def test_get_blocks_until_item_then_none_after_close():
    q = IngestionQueue()
    got: list = []

    def consumer():
        got.append(q.get(timeout=2.0))
        got.append(q.get(timeout=2.0))

    t = threading.Thread(target=consumer)
    t.start()
    time.sleep(0.02)
    q.enqueue(_reading(1))
    q.close()
    t.join(timeout=2.0)

    assert got[0].battery_percent == 1
    assert got[1] is None
    assert q.drained is True


def test_get_timeout_raises_empty():
    q = IngestionQueue()
    with pytest.raises(Empty):
        q.get(timeout=0.01)


def test_close_keeps_queued_items_for_consumer():
    q = IngestionQueue()
    q.enqueue(_reading(1))
    q.enqueue(_reading(2))
    q.close()
    q.close()

    assert q.closed is True
    assert q.drained is False
    assert q.get().battery_percent == 1
    assert q.get().battery_percent == 2
    assert q.get() is None


def test_enqueue_after_close_is_refused_without_raising(caplog):
    q = IngestionQueue()
    q.close()
    with caplog.at_level(logging.WARNING):
        assert q.enqueue(_reading(1)) is False
    assert len(q) == 0
    assert any("INGEST_QUEUE_CLOSED_DROP" in r.getMessage() for r in caplog.records)


def test_push_front_restores_head():
    q = IngestionQueue()
    q.enqueue(_reading(1))
    q.enqueue(_reading(2))
    head = q.get()
    q.push_front(head)

    assert [r.battery_percent for r in (q.get(), q.get())] == [1, 2]


def test_concurrent_producers_preserve_per_producer_order():
    q = IngestionQueue(backlog_warn_every=0)
    producers = 4
    per_producer = 2_000
    addresses = [f"A4:C1:38:00:00:0{p}" for p in range(producers)]
    start = threading.Barrier(producers)

    def produce(addr: str):
        start.wait()
        for i in range(per_producer):
            q.enqueue(_reading(i % 101, address=addr))

    threads = [threading.Thread(target=produce, args=(a,)) for a in addresses]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5.0)
    q.close()

    seen: dict[str, list[int]] = {a: [] for a in addresses}
    for r in q:
        seen[r.address].append(r.battery_percent)

    for a in addresses:
        assert seen[a] == [i % 101 for i in range(per_producer)]


def test_backlog_warning_every_n_items(caplog):
    q = IngestionQueue(backlog_warn_every=10)
    with caplog.at_level(logging.WARNING):
        for i in range(25):
            q.enqueue(_reading(i))

    backlog = [r for r in caplog.records if "INGEST_QUEUE_BACKLOG" in r.getMessage()]
    assert len(backlog) == 2
