# blebridge/broker/bluez.py
"""
DeviceBroker backed by BlueZ over the system D-Bus.

Requires the optional 'bluez' extra (dbus-python + PyGObject). Signal
callbacks are dispatched on a GLib main loop running in a daemon thread;
method calls (enumeration, discovery start/stop) are blocking calls from
the caller's thread.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List, Optional

import dbus
import dbus.mainloop.glib
from gi.repository import GLib

from blebridge.core.errors import BrokerError
from blebridge.interfaces.device_broker import (
    DeviceFoundCallback,
    DeviceProperties,
    PropertyChangeCallback,
)

BLUEZ_SERVICE = "org.bluez"
ADAPTER_IFACE = "org.bluez.Adapter1"
DEVICE_IFACE = "org.bluez.Device1"
PROPERTIES_IFACE = "org.freedesktop.DBus.Properties"
OBJECT_MANAGER_IFACE = "org.freedesktop.DBus.ObjectManager"


def to_python(value: Any) -> Any:
    """Convert dbus-python values to plain Python values (byte arrays -> bytes)."""
    if isinstance(value, dbus.Boolean):
        return bool(value)
    if isinstance(value, (dbus.String, dbus.ObjectPath, dbus.Signature)):
        return str(value)
    if isinstance(value, int):
        return int(value)
    if isinstance(value, float):
        return float(value)
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    if isinstance(value, dbus.Array):
        if value.signature == "y":
            return bytes(int(b) for b in value)
        return [to_python(v) for v in value]
    if isinstance(value, dict):
        return {to_python(k): to_python(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_python(v) for v in value]
    return value


class _SignalWatch:
    """WatchHandle wrapping a dbus-python signal match."""

    def __init__(self, match: Any, path: str):
        self._match = match
        self._path = path
        self._lock = threading.Lock()

    def close(self) -> None:
        with self._lock:
            match, self._match = self._match, None
        if match is not None:
            match.remove()

    def __repr__(self) -> str:
        return f"_SignalWatch(path={self._path!r})"


class BluezBroker:
    """
    BlueZ adapter (e.g. 'hci0') exposed through the DeviceBroker protocol.

    Device handles are D-Bus object paths such as /org/bluez/hci0/dev_A4_C1_38_00_00_01.
    """

    def __init__(self, adapter: str = "hci0", *, bus: Optional[Any] = None, logger: Optional[logging.Logger] = None):
        self._adapter_name = adapter
        self._adapter_path = f"/org/bluez/{adapter}"
        self._log = logger or logging.getLogger(__name__)

        self._bus = bus
        self._loop: Optional[GLib.MainLoop] = None
        self._loop_thread: Optional[threading.Thread] = None

    # ---------------- Lifecycle ----------------
    def open(self) -> None:
        if self._loop_thread is not None:
            return

        dbus.mainloop.glib.threads_init()
        dbus.mainloop.glib.DBusGMainLoop(set_as_default=True)
        try:
            if self._bus is None:
                self._bus = dbus.SystemBus()
            self._bus.get_object(BLUEZ_SERVICE, self._adapter_path)
        except dbus.exceptions.DBusException as e:
            raise BrokerError(
                f"Bluetooth adapter '{self._adapter_name}' not available.",
                hint=e.get_dbus_message() or str(e),
                details={"adapter": self._adapter_name},
            ) from None

        self._loop = GLib.MainLoop()
        self._loop_thread = threading.Thread(target=self._loop.run, name="bluez-mainloop", daemon=True)
        self._loop_thread.start()
        self._log.info("BLUEZ_OPEN adapter=%s", self._adapter_name)

    def close(self) -> None:
        loop, self._loop = self._loop, None
        thread, self._loop_thread = self._loop_thread, None
        if loop is not None:
            loop.quit()
        if thread is not None:
            thread.join(timeout=2.0)
        self._log.info("BLUEZ_CLOSED adapter=%s", self._adapter_name)

    def __enter__(self) -> "BluezBroker":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # ---------------- DeviceBroker ----------------
    def enumerate_devices(self) -> List[str]:
        manager = dbus.Interface(self._require_bus().get_object(BLUEZ_SERVICE, "/"), OBJECT_MANAGER_IFACE)
        objects = manager.GetManagedObjects()
        return sorted(
            str(path)
            for path, interfaces in objects.items()
            if DEVICE_IFACE in interfaces and self._is_own_device(str(path))
        )

    def get_properties(self, device: str) -> DeviceProperties:
        props_iface = dbus.Interface(self._require_bus().get_object(BLUEZ_SERVICE, device), PROPERTIES_IFACE)
        raw: Dict[str, Any] = to_python(props_iface.GetAll(DEVICE_IFACE))
        return DeviceProperties(
            address=str(raw.get("Address", "")),
            name=raw.get("Name"),
            alias=raw.get("Alias"),
            raw=raw,
        )

    def watch_property_changes(self, device: str, callback: PropertyChangeCallback) -> _SignalWatch:
        def _handler(interface: Any, changed: Any, invalidated: Any) -> None:
            if str(interface) != DEVICE_IFACE:
                return
            try:
                callback(to_python(changed))
            except Exception:
                self._log.exception("PROPERTY_CALLBACK_ERROR path=%s", device)

        match = self._require_bus().add_signal_receiver(
            _handler,
            signal_name="PropertiesChanged",
            dbus_interface=PROPERTIES_IFACE,
            bus_name=BLUEZ_SERVICE,
            path=device,
        )
        return _SignalWatch(match, device)

    def on_device_discovered(self, callback: DeviceFoundCallback) -> Callable[[], None]:
        def _handler(path: Any, interfaces: Any) -> None:
            path = str(path)
            if DEVICE_IFACE not in interfaces or not self._is_own_device(path):
                return
            try:
                callback(path)
            except Exception:
                self._log.exception("DEVICE_FOUND_CALLBACK_ERROR path=%s", path)

        match = self._require_bus().add_signal_receiver(
            _handler,
            signal_name="InterfacesAdded",
            dbus_interface=OBJECT_MANAGER_IFACE,
            bus_name=BLUEZ_SERVICE,
        )
        return _SignalWatch(match, "/").close

    def start_discovery(self) -> None:
        self._adapter().StartDiscovery()

    def stop_discovery(self) -> None:
        self._adapter().StopDiscovery()

    # ---------------- Internal ----------------
    def _adapter(self) -> Any:
        return dbus.Interface(self._require_bus().get_object(BLUEZ_SERVICE, self._adapter_path), ADAPTER_IFACE)

    def _is_own_device(self, path: str) -> bool:
        return path.startswith(self._adapter_path + "/")

    def _require_bus(self) -> Any:
        if self._bus is None:
            raise RuntimeError("BluezBroker not opened (bus is None)")
        return self._bus
