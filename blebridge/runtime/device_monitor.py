# blebridge/runtime/device_monitor.py
from __future__ import annotations

import logging
import threading
from typing import Any, Callable, FrozenSet, Iterable, List, Mapping, Optional

from blebridge.core.errors import DiscoveryError, EnumerationError
from blebridge.interfaces.device_broker import DeviceBroker, DeviceHandle
from blebridge.model.advertisement import decode_changes
from blebridge.model.reading import Reading, normalize_address
from blebridge.runtime.ingestion_queue import IngestionQueue
from blebridge.runtime.state import MonitorState
from blebridge.runtime.watch_registry import DeviceWatchRegistry

Decoder = Callable[..., List[Reading]]


class DeviceMonitor:
    """
    Drives device discovery on a broker and feeds decoded readings into the queue.

    State machine:
      IDLE -> ENUMERATING -> DISCOVERING -> STOPPING -> STOPPED

    Devices are watched when they appear in the allow-list, whether they are
    already known to the broker at start() or found later by discovery.
    Broker failures during start() are fatal and propagate; everything that
    happens on the broker's event thread afterwards is logged and absorbed.
    """

    def __init__(
        self,
        broker: DeviceBroker,
        queue: IngestionQueue,
        allow_list: Iterable[str],
        *,
        registry: Optional[DeviceWatchRegistry] = None,
        decoder: Decoder = decode_changes,
        logger: Optional[logging.Logger] = None,
    ):
        self._broker = broker
        self._queue = queue
        self._allow: FrozenSet[str] = frozenset(normalize_address(a) for a in allow_list)
        self._log = logger or logging.getLogger(__name__)
        self._registry = registry or DeviceWatchRegistry(logger=self._log)
        self._decode = decoder

        self._lock = threading.RLock()
        self._state = MonitorState.IDLE
        self._unsubscribe_found: Optional[Callable[[], None]] = None
        self._discovery_started = False

    # ---------------- State ----------------
    @property
    def state(self) -> MonitorState:
        with self._lock:
            return self._state

    @property
    def registry(self) -> DeviceWatchRegistry:
        return self._registry

    @property
    def allow_list(self) -> FrozenSet[str]:
        return self._allow

    def is_allowed(self, address: str) -> bool:
        try:
            return normalize_address(address) in self._allow
        except ValueError:
            return False

    # ---------------- Lifecycle ----------------
    def start(self) -> None:
        with self._lock:
            if self._state is not MonitorState.IDLE:
                raise RuntimeError(f"DeviceMonitor cannot start from state {self._state.value}")
            self._state = MonitorState.ENUMERATING

        self._log.info("MONITOR_START allow_list=%s", ",".join(sorted(self._allow)))

        try:
            self._enumerate()
            self._begin_discovery()
        except Exception:
            try:
                self.shutdown()
            except Exception:
                self._log.exception("MONITOR_SHUTDOWN_AFTER_START_FAIL")
            raise

    def shutdown(self) -> None:
        """Stop discovery, release all watches and close the queue (idempotent)."""
        with self._lock:
            if self._state in (MonitorState.STOPPING, MonitorState.STOPPED):
                return
            self._state = MonitorState.STOPPING
            unsubscribe, self._unsubscribe_found = self._unsubscribe_found, None
            discovery_started, self._discovery_started = self._discovery_started, False

        self._log.info("MONITOR_STOPPING")

        if unsubscribe is not None:
            try:
                unsubscribe()
            except Exception:
                self._log.exception("DEVICE_FOUND_UNSUBSCRIBE_FAILED")

        if discovery_started:
            try:
                self._broker.stop_discovery()
            except Exception:
                self._log.exception("DISCOVERY_STOP_FAILED")

        self._registry.release_all()
        self._queue.close()

        with self._lock:
            self._state = MonitorState.STOPPED
        self._log.info("MONITOR_STOPPED")

    def __enter__(self) -> "DeviceMonitor":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()

    # ---------------- Startup phases ----------------
    def _enumerate(self) -> None:
        try:
            devices = list(self._broker.enumerate_devices())
        except Exception as e:
            self._log.exception("DEVICE_ENUMERATION_FAILED")
            raise EnumerationError(
                "Could not list known devices.",
                hint=str(e),
                details={"broker": type(self._broker).__name__},
            ) from None

        self._log.info("DEVICES_ENUMERATED count=%d", len(devices))

        for device in devices:
            try:
                self._consider(device, source="enumeration")
            except Exception as e:
                self._log.exception("DEVICE_WATCH_FAILED device=%s", device)
                raise EnumerationError(
                    "Could not watch a known device.",
                    hint=str(e),
                    details={"device": str(device)},
                ) from None

    def _begin_discovery(self) -> None:
        # shutdown() may run on another thread while start() is enumerating;
        # every step below is re-checked and undone if that happened.
        if not self._still_starting():
            return

        try:
            unsubscribe = self._broker.on_device_discovered(self._on_device_found)
            with self._lock:
                keep = self._state is MonitorState.ENUMERATING
                if keep:
                    self._unsubscribe_found = unsubscribe
            if not keep:
                unsubscribe()
                self._log.info("MONITOR_START_ABORTED step=subscribe")
                return

            self._broker.start_discovery()
            with self._lock:
                keep = self._state is MonitorState.ENUMERATING
                if keep:
                    self._discovery_started = True
                    self._state = MonitorState.DISCOVERING
        except Exception as e:
            self._log.exception("DISCOVERY_START_FAILED")
            raise DiscoveryError(
                "Could not start device discovery.",
                hint=str(e),
                details={"broker": type(self._broker).__name__},
            ) from None

        if not keep:
            try:
                self._broker.stop_discovery()
            except Exception:
                self._log.exception("DISCOVERY_STOP_FAILED")
            self._log.info("MONITOR_START_ABORTED step=discovery")
            return

        self._log.info("DISCOVERY_STARTED")

    def _still_starting(self) -> bool:
        with self._lock:
            state = self._state
        if state is MonitorState.ENUMERATING:
            return True
        self._log.info("MONITOR_START_ABORTED state=%s", state.value)
        return False

    # ---------------- Device handling ----------------
    def _consider(self, device: DeviceHandle, *, source: str) -> bool:
        props = self._broker.get_properties(device)
        address = props.address

        if not self.is_allowed(address):
            self._log.debug("DEVICE_IGNORED address=%s source=%s", address, source)
            return False

        canonical = normalize_address(address)
        self._log.debug("DEVICE_MATCHED address=%s name=%s source=%s", canonical, props.name, source)

        def _subscribe():
            return self._broker.watch_property_changes(
                device,
                lambda changed: self._on_properties_changed(canonical, changed),
            )

        return self._registry.try_register(canonical, _subscribe)

    def _on_device_found(self, device: DeviceHandle) -> None:
        if self.state not in (MonitorState.ENUMERATING, MonitorState.DISCOVERING):
            return
        try:
            self._consider(device, source="discovery")
        except Exception:
            self._log.exception("DEVICE_FOUND_HANDLING_FAILED device=%s", device)

    def _on_properties_changed(self, address: str, changed: Mapping[str, Any]) -> None:
        try:
            readings = self._decode(address, changed)
        except Exception:
            self._log.exception("PROPERTIES_DECODE_ERROR address=%s", address)
            return

        for reading in readings:
            self._queue.enqueue(reading)
