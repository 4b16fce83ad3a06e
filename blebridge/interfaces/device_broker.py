# blebridge/interfaces/device_broker.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Hashable, List, Mapping, Optional, Protocol

# Opaque broker-specific device reference (e.g. a D-Bus object path).
DeviceHandle = Hashable

PropertyChangeCallback = Callable[[Mapping[str, Any]], None]  # changed properties
DeviceFoundCallback = Callable[[DeviceHandle], None]


@dataclass(frozen=True)
class DeviceProperties:
    address: str
    name: Optional[str] = None
    alias: Optional[str] = None
    raw: Mapping[str, Any] = field(default_factory=dict)


class WatchHandle(Protocol):
    """Active subscription to one device's property-change stream."""
    def close(self) -> None: ...


class DeviceBroker(Protocol):
    """
    Device discovery / advertisement capability (BlueZ, fakes in tests, ...).

    Callbacks may be invoked from a broker-owned thread.
    """
    def enumerate_devices(self) -> List[DeviceHandle]: ...
    def get_properties(self, device: DeviceHandle) -> DeviceProperties: ...
    def watch_property_changes(self, device: DeviceHandle, callback: PropertyChangeCallback) -> WatchHandle: ...
    def on_device_discovered(self, callback: DeviceFoundCallback) -> Callable[[], None]: ...
    def start_discovery(self) -> None: ...
    def stop_discovery(self) -> None: ...
