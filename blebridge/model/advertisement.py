# blebridge/model/advertisement.py
"""
Decoding of BLE advertisement property changes into Readings.

The broker hands over the changed properties of one device observation as a
plain mapping (property name -> value). Two property kinds carry data:

  RSSI              signed 16-bit int -> Reading(rssi=...)
  ManufacturerData  {company_id: bytes} -> one Reading per vendor record

Everything else is logged at DEBUG and skipped. decode_changes() never
raises on malformed input.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, List, Mapping, Optional

from blebridge.core.errors import ReadingDecodeError
from .reading import Reading, utc_now

log = logging.getLogger(__name__)

RSSI_PROPERTY = "RSSI"
MANUFACTURER_DATA_PROPERTY = "ManufacturerData"

# Record tag used by the thermo-hygrometers for their combined reading.
VENDOR_RECORD_ID = 0xEC88
VENDOR_PAYLOAD_SIZE = 6

_INT16_MIN = -0x8000
_INT16_MAX = 0x7FFF


class PropertyKind(Enum):
    RSSI = "rssi"
    MANUFACTURER_DATA = "manufacturer_data"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class VendorPayload:
    temperature_celsius: float
    humidity_percent: float
    battery_percent: int


def classify_property(key: str, value: Any) -> PropertyKind:
    if key == RSSI_PROPERTY and _is_int16(value):
        return PropertyKind.RSSI
    if key == MANUFACTURER_DATA_PROPERTY and isinstance(value, Mapping):
        return PropertyKind.MANUFACTURER_DATA
    return PropertyKind.UNKNOWN


def decode_vendor_payload(payload: bytes) -> VendorPayload:
    """
    Decode the 6-byte vendor record.

    Layout:
      [0]     reserved
      [1..3]  big-endian uint24, combined temperature/humidity
      [4]     battery percent
      [5]     reserved

    temperature = combined / 10000.0, humidity = (combined % 1000) / 10.0
    """
    if not isinstance(payload, (bytes, bytearray, memoryview)):
        raise ReadingDecodeError(
            "Vendor payload must be bytes.",
            details={"type": type(payload).__name__},
        )

    data = bytes(payload)
    if len(data) != VENDOR_PAYLOAD_SIZE:
        raise ReadingDecodeError(
            f"Vendor payload length {len(data)} != expected {VENDOR_PAYLOAD_SIZE}",
            details={"payload": data.hex()},
        )

    combined = data[1] << 16 | data[2] << 8 | data[3]
    return VendorPayload(
        temperature_celsius=combined / 10000.0,
        humidity_percent=(combined % 1000) / 10.0,
        battery_percent=data[4],
    )


def decode_changes(
    address: str,
    changed: Mapping[str, Any],
    *,
    timestamp: Optional[datetime] = None,
    logger: Optional[logging.Logger] = None,
) -> List[Reading]:
    """
    Map one property-change set to zero or more Readings.

    All readings produced from the same change set share one timestamp.
    """
    _log = logger or log
    ts = timestamp or utc_now()
    readings: List[Reading] = []

    try:
        items = list(changed.items())
    except Exception:
        _log.warning("ADV_CHANGES_NOT_A_MAPPING address=%s type=%s", address, type(changed).__name__)
        return readings

    for key, value in items:
        kind = classify_property(key, value)

        try:
            if kind is PropertyKind.RSSI:
                _log.debug("ADV_RSSI address=%s rssi=%d", address, value)
                readings.append(Reading(address=address, timestamp=ts, rssi=int(value)))

            elif kind is PropertyKind.MANUFACTURER_DATA:
                readings.extend(_decode_manufacturer_data(address, value, ts, _log))

            else:
                _log.debug("ADV_PROPERTY_IGNORED address=%s key=%s", address, key)

        except (ReadingDecodeError, ValueError) as e:
            _log.warning("ADV_DECODE_FAILED address=%s key=%s err=%s", address, key, e)

    return readings


def _decode_manufacturer_data(
    address: str,
    records: Mapping[Any, Any],
    ts: datetime,
    _log: logging.Logger,
) -> List[Reading]:
    out: List[Reading] = []

    for record_id, raw in records.items():
        if not isinstance(raw, (bytes, bytearray, memoryview)):
            _log.warning(
                "ADV_RECORD_UNRECOGNIZED_TYPE address=%s record_id=%s type=%s",
                address,
                _format_record_id(record_id),
                type(raw).__name__,
            )
            continue

        if record_id != VENDOR_RECORD_ID:
            _log.debug(
                "ADV_RECORD_IGNORED address=%s record_id=%s data=%s",
                address,
                _format_record_id(record_id),
                bytes(raw).hex("-"),
            )
            continue

        try:
            payload = decode_vendor_payload(raw)
        except ReadingDecodeError as e:
            _log.warning("ADV_VENDOR_RECORD_MALFORMED address=%s err=%s", address, e)
            continue

        _log.debug(
            "ADV_VENDOR_RECORD address=%s temp_c=%.4f humidity=%.1f battery=%d",
            address,
            payload.temperature_celsius,
            payload.humidity_percent,
            payload.battery_percent,
        )
        out.append(
            Reading(
                address=address,
                timestamp=ts,
                temperature_celsius=payload.temperature_celsius,
                humidity_percent=payload.humidity_percent,
                battery_percent=payload.battery_percent,
            )
        )

    return out


def _is_int16(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and _INT16_MIN <= value <= _INT16_MAX


def _format_record_id(record_id: Any) -> str:
    if isinstance(record_id, int):
        return f"0x{record_id:04X}"
    return repr(record_id)
