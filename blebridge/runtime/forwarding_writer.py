# blebridge/runtime/forwarding_writer.py
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from queue import Empty
from typing import Callable, Optional, Tuple, Type

from blebridge.core.errors import SinkUnavailableError
from blebridge.interfaces.reading_sink import ReadingSink
from blebridge.model.reading import Reading
from blebridge.runtime.ingestion_queue import IngestionQueue
from blebridge.runtime.state import WriterStats

# Waits up to delay_s; returns True if the wait was interrupted by shutdown.
Waiter = Callable[[float], bool]


@dataclass(frozen=True)
class RetryPolicy:
    """
    Fixed-interval, unbounded retry.

    There is no maximum attempt count and no dead-letter path: a sink that
    stays down holds the current reading (and the queue behind it) forever.
    """
    backoff_s: float = 60.0
    transient: Tuple[Type[BaseException], ...] = (SinkUnavailableError,)


class ForwardingWriter:
    """
    Single consumer of the IngestionQueue that forwards readings to one sink.

    - transient failure: retry the same reading after backoff_s, forever
    - any other exception: log, drop the reading, continue
    - stop(): interrupts a pending backoff wait; an in-flight deliver() is
      allowed to finish. An interrupted reading goes back to the head of the
      queue instead of being discarded.
    - run() returns once the queue is closed and drained, or after stop()
      once the in-flight reading is settled. Readings not yet taken stay
      queued.
    """

    def __init__(
        self,
        queue: IngestionQueue,
        sink: ReadingSink,
        policy: Optional[RetryPolicy] = None,
        *,
        waiter: Optional[Waiter] = None,
        poll_interval_s: float = 0.1,
        logger: Optional[logging.Logger] = None,
    ):
        self._queue = queue
        self._sink = sink
        self._policy = policy or RetryPolicy()
        self._poll_interval_s = float(poll_interval_s)

        self._log = logger or logging.getLogger(__name__)

        self._stop_event = threading.Event()
        self._waiter: Waiter = waiter or self._stop_event.wait
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

        self._delivered = 0
        self._dropped = 0
        self._retries = 0

    # ---------------- Public API ----------------
    def start(self) -> None:
        with self._lock:
            if self._thread is not None:
                return
            self._thread = threading.Thread(target=self.run, name="forwarding-writer", daemon=True)
            self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()

    def join(self, timeout: Optional[float] = None) -> bool:
        """Wait for the worker thread; returns True once it has exited."""
        with self._lock:
            thread = self._thread
        if thread is None:
            return True
        thread.join(timeout=timeout)
        return not thread.is_alive()

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    def stats(self) -> WriterStats:
        with self._lock:
            return WriterStats(delivered=self._delivered, dropped=self._dropped, retries=self._retries)

    def run(self) -> None:
        self._log.info("FORWARDER_START backoff_s=%.1f", self._policy.backoff_s)

        while True:
            # after stop() nothing new is taken; the rest stays queued
            if self._stop_event.is_set():
                self._log.info("FORWARDER_STOPPED remaining=%d", len(self._queue))
                break

            try:
                reading = self._queue.get(timeout=self._poll_interval_s)
            except Empty:
                continue

            if reading is None:
                self._log.info("FORWARDER_QUEUE_DRAINED")
                break

            if not self.forward(reading):
                # interrupted during backoff; reading was pushed back
                self._log.info("FORWARDER_INTERRUPTED remaining=%d", len(self._queue))
                break

        st = self.stats()
        self._log.info(
            "FORWARDER_END delivered=%d dropped=%d retries=%d",
            st.delivered,
            st.dropped,
            st.retries,
        )

    def forward(self, reading: Reading) -> bool:
        """
        Deliver one reading with the retry policy.

        Returns False only when shutdown interrupted a backoff wait; the
        reading is then back at the head of the queue.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                self._sink.deliver(reading)
            except self._policy.transient as e:
                if self._stop_event.is_set():
                    self._queue.push_front(reading)
                    self._log.warning(
                        "FORWARD_ABANDONED_ON_STOP address=%s attempt=%d err=%s",
                        reading.address,
                        attempt,
                        e,
                    )
                    return False

                with self._lock:
                    self._retries += 1
                self._log.warning(
                    "FORWARD_RETRY attempt=%d delay_s=%.1f address=%s err=%s",
                    attempt,
                    self._policy.backoff_s,
                    reading.address,
                    e,
                )
                if self._waiter(self._policy.backoff_s):
                    self._queue.push_front(reading)
                    return False
                continue
            except Exception:
                with self._lock:
                    self._dropped += 1
                self._log.exception(
                    "FORWARD_DROPPED address=%s timestamp=%s",
                    reading.address,
                    reading.timestamp.isoformat(),
                )
                return True

            with self._lock:
                self._delivered += 1
            if attempt > 1:
                self._log.info("FORWARD_RECOVERED address=%s attempts=%d", reading.address, attempt)
            return True
