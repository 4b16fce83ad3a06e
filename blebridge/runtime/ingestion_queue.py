# blebridge/runtime/ingestion_queue.py
from __future__ import annotations

import logging
import threading
from collections import deque
from queue import Empty
from typing import Deque, Iterator, Optional

from blebridge.model.reading import Reading


class IngestionQueue:
    """
    Unbounded FIFO hand-off between device callbacks and the forwarding writer.

    - enqueue() never blocks and never drops; capacity is unbounded, so a
      sink outage grows memory instead of stalling the event thread.
    - get() blocks until an item arrives, returns None once the queue is
      closed and drained, and raises queue.Empty on timeout.
    - close() marks end-of-input; items already queued are still delivered.
    """

    def __init__(self, *, backlog_warn_every: int = 1000, logger: Optional[logging.Logger] = None):
        self._log = logger or logging.getLogger(__name__)
        self._items: Deque[Reading] = deque()
        self._cond = threading.Condition(threading.Lock())
        self._closed = False
        self._high_watermark = 0
        self._warn_every = int(backlog_warn_every)

    # ---------------- Producer side ----------------
    def enqueue(self, reading: Reading) -> bool:
        with self._cond:
            if self._closed:
                closed = True
            else:
                closed = False
                self._items.append(reading)
                size = len(self._items)
                if size > self._high_watermark:
                    self._high_watermark = size
                self._cond.notify()

        if closed:
            self._log.warning("INGEST_QUEUE_CLOSED_DROP address=%s", reading.address)
            return False

        if self._warn_every > 0 and size % self._warn_every == 0:
            self._log.warning("INGEST_QUEUE_BACKLOG size=%d", size)
        return True

    def close(self) -> None:
        with self._cond:
            if self._closed:
                return
            self._closed = True
            remaining = len(self._items)
            self._cond.notify_all()
        self._log.info("INGEST_QUEUE_CLOSED remaining=%d", remaining)

    # ---------------- Consumer side ----------------
    def get(self, timeout: Optional[float] = None) -> Optional[Reading]:
        with self._cond:
            if not self._cond.wait_for(lambda: self._items or self._closed, timeout=timeout):
                raise Empty
            if self._items:
                return self._items.popleft()
            return None

    def push_front(self, reading: Reading) -> None:
        """Return an unfinished item to the head of the queue (consumer only)."""
        with self._cond:
            self._items.appendleft(reading)
            self._cond.notify()

    def __iter__(self) -> Iterator[Reading]:
        while True:
            item = self.get()
            if item is None:
                return
            yield item

    # ---------------- State ----------------
    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    @property
    def drained(self) -> bool:
        with self._cond:
            return self._closed and not self._items

    @property
    def high_watermark(self) -> int:
        with self._cond:
            return self._high_watermark

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)
