# blebridge/app/service.py
from __future__ import annotations

import logging
import threading
from typing import Optional

from blebridge.app.config import BridgeConfig
from blebridge.interfaces.device_broker import DeviceBroker
from blebridge.interfaces.reading_sink import ReadingSink
from blebridge.runtime.device_monitor import DeviceMonitor
from blebridge.runtime.forwarding_writer import ForwardingWriter, RetryPolicy
from blebridge.runtime.ingestion_queue import IngestionQueue
from blebridge.runtime.state import BridgeStatus


class BridgeService:
    """
    App-level wiring of the ingestion pipeline:

      DeviceMonitor -> IngestionQueue -> ForwardingWriter -> sink

    stop() is the single shutdown signal: it stops the monitor (which closes
    the queue) and interrupts the writer's backoff wait. Readings the writer
    did not deliver stay in the queue and are reported as backlog. The sink
    is only closed once the writer thread has exited.
    """

    def __init__(
        self,
        config: BridgeConfig,
        *,
        broker: DeviceBroker,
        sink: ReadingSink,
        logger: Optional[logging.Logger] = None,
    ):
        self._config = config
        self._log = logger or logging.getLogger(__name__)
        self._sink = sink

        self._queue = IngestionQueue(backlog_warn_every=config.forwarding.backlog_warn_every)
        self._monitor = DeviceMonitor(broker, self._queue, config.monitor.addresses)
        self._writer = ForwardingWriter(
            self._queue,
            sink,
            RetryPolicy(backoff_s=config.forwarding.retry_backoff_s),
        )

        self._lock = threading.Lock()
        self._started = False
        self._stopped = False

    @property
    def config(self) -> BridgeConfig:
        return self._config

    @property
    def queue(self) -> IngestionQueue:
        return self._queue

    @property
    def monitor(self) -> DeviceMonitor:
        return self._monitor

    @property
    def writer(self) -> ForwardingWriter:
        return self._writer

    def start(self) -> None:
        with self._lock:
            if self._started:
                return
            self._started = True

        self._log.info(
            "BRIDGE_START sink=%s devices=%d backoff_s=%.1f",
            self._config.sink.kind,
            len(self._config.monitor.addresses),
            self._config.forwarding.retry_backoff_s,
        )
        self._writer.start()
        try:
            self._monitor.start()
        except Exception:
            try:
                self.stop()
            except Exception:
                self._log.exception("BRIDGE_STOP_AFTER_START_FAIL")
            raise

    def stop(self, timeout: Optional[float] = None) -> None:
        with self._lock:
            if self._stopped:
                return
            self._stopped = True

        self._log.info("BRIDGE_STOPPING")

        try:
            self._monitor.shutdown()
        except Exception:
            self._log.exception("MONITOR_SHUTDOWN_ERROR")

        self._writer.stop()
        writer_done = self._writer.join(timeout=timeout)
        if not writer_done:
            self._log.warning("FORWARDER_JOIN_TIMEOUT timeout_s=%s", timeout)

        backlog = len(self._queue)
        if backlog:
            self._log.warning("BRIDGE_BACKLOG_UNSENT count=%d", backlog)

        # a delivery may still be in flight; closing now would fail it
        if writer_done:
            try:
                self._sink.close()
            except Exception:
                self._log.exception("SINK_CLOSE_ERROR")
        else:
            self._log.warning("SINK_CLOSE_SKIPPED reason=writer_running")

        self._log.info("BRIDGE_STOPPED")

    def status(self) -> BridgeStatus:
        return BridgeStatus(
            monitor=self._monitor.state,
            watched=self._monitor.registry.addresses(),
            queue_depth=len(self._queue),
            queue_high_watermark=self._queue.high_watermark,
            writer=self._writer.stats(),
        )

    def __enter__(self) -> "BridgeService":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
