# blebridge/model/reading.py
from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

_ADDRESS_RE = re.compile(r"^[0-9A-F]{2}([:-][0-9A-F]{2}){5}$")

MEASUREMENT_FIELDS = ("rssi", "temperature_celsius", "humidity_percent", "battery_percent")


def normalize_address(address: str) -> str:
    """Return the canonical upper-case, colon-separated form of a hardware address."""
    if not isinstance(address, str):
        raise ValueError(f"Device address must be a string, got {type(address).__name__}")

    candidate = address.strip().upper()
    if not _ADDRESS_RE.match(candidate):
        raise ValueError(f"Invalid device address '{address}'")
    return candidate.replace("-", ":")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Reading:
    """
    One decoded sensor observation.

    address is normalized on construction, so two readings for
    "a4:c1:38:00:00:01" and "A4-C1-38-00-00-01" carry the same address.
    At least one measurement field must be set.
    """
    address: str
    timestamp: datetime = field(default_factory=utc_now)
    rssi: Optional[int] = None
    temperature_celsius: Optional[float] = None
    humidity_percent: Optional[float] = None
    battery_percent: Optional[int] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "address", normalize_address(self.address))

        if self.timestamp.tzinfo is None:
            raise ValueError("Reading timestamp must be timezone-aware")
        object.__setattr__(self, "timestamp", self.timestamp.astimezone(timezone.utc))

        if all(getattr(self, name) is None for name in MEASUREMENT_FIELDS):
            raise ValueError(f"Reading for {self.address} carries no measurement")

    def measurements(self) -> Dict[str, Any]:
        return {
            name: getattr(self, name)
            for name in MEASUREMENT_FIELDS
            if getattr(self, name) is not None
        }

    def as_row(self) -> Dict[str, Any]:
        """Column mapping for the relational sink (absent fields -> NULL)."""
        return {
            "timestamp": self.timestamp,
            "address": self.address,
            "rssi": self.rssi,
            "temp_c": self.temperature_celsius,
            "humidity": self.humidity_percent,
            "battery": self.battery_percent,
        }

    def as_json(self) -> Dict[str, Any]:
        """Wire shape expected by the collection endpoint."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "address": self.address,
            "receivedSignalStrength": self.rssi,
            "temperatureCelsius": self.temperature_celsius,
            "humidity": self.humidity_percent,
            "battery": self.battery_percent,
        }
