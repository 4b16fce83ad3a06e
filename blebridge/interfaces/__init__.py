from .device_broker import DeviceBroker, DeviceHandle, DeviceProperties, WatchHandle
from .reading_sink import ReadingSink

__all__ = ["DeviceBroker", "DeviceHandle", "DeviceProperties", "WatchHandle", "ReadingSink"]
