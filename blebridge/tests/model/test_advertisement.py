from __future__ import annotations

import logging
from datetime import datetime, timezone

import pytest

from blebridge.core.errors import ReadingDecodeError
from blebridge.model.advertisement import (
    VENDOR_RECORD_ID,
    PropertyKind,
    classify_property,
    decode_changes,
    decode_vendor_payload,
)

ADDR = "A4:C1:38:0A:0B:0C"
TS = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
DECODER_LOGGER = "blebridge.model.advertisement"


def _decoder_records(caplog):
    return [r for r in caplog.records if r.name == DECODER_LOGGER]


def test_vendor_payload_reference_example():
    p = decode_vendor_payload(bytes([0x00, 0x01, 0x8C, 0x28, 0x3C, 0x00]))
    # combined = 0x018C28 = 101416
    assert p.temperature_celsius == 101416 / 10000.0
    assert p.temperature_celsius == pytest.approx(10.1416)
    assert p.humidity_percent == pytest.approx(41.6)
    assert p.battery_percent == 60


def test_vendor_payload_01_8a_28():
    # combined = 0x018A28 = 100904
    p = decode_vendor_payload(bytes([0x00, 0x01, 0x8A, 0x28, 0x3C, 0x00]))
    assert p.temperature_celsius == pytest.approx(10.0904)
    assert p.humidity_percent == pytest.approx(90.4)
    assert p.battery_percent == 60


@pytest.mark.parametrize(
    "payload",
    [
        bytes([0x00, 0x00, 0x00, 0x00, 0x00, 0x00]),
        bytes([0x00, 0x03, 0x5B, 0x60, 0x64, 0x00]),
        bytes([0xFF, 0xFF, 0xFF, 0xFF, 0xFF, 0xFF]),
        bytes([0x12, 0x04, 0x1E, 0xB1, 0x07, 0x34]),
    ],
)
def test_vendor_payload_matches_bit_layout(payload):
    combined = payload[1] << 16 | payload[2] << 8 | payload[3]
    p = decode_vendor_payload(payload)
    assert p.temperature_celsius == combined / 10000.0
    assert p.humidity_percent == (combined % 1000) / 10.0
    assert p.battery_percent == payload[4]


def test_vendor_payload_reserved_bytes_not_validated():
    a = decode_vendor_payload(bytes([0x00, 0x01, 0x8C, 0x28, 0x3C, 0x00]))
    b = decode_vendor_payload(bytes([0xAB, 0x01, 0x8C, 0x28, 0x3C, 0xCD]))
    assert a == b


@pytest.mark.parametrize("payload", [b"", b"\x00\x01\x8a\x28\x3c", b"\x00\x01\x8a\x28\x3c\x00\x00"])
def test_vendor_payload_wrong_length_raises(payload):
    with pytest.raises(ReadingDecodeError):
        decode_vendor_payload(payload)


def test_classify_property():
    assert classify_property("RSSI", -70) is PropertyKind.RSSI
    assert classify_property("ManufacturerData", {}) is PropertyKind.MANUFACTURER_DATA
    assert classify_property("RSSI", 40000) is PropertyKind.UNKNOWN
    assert classify_property("RSSI", True) is PropertyKind.UNKNOWN
    assert classify_property("RSSI", "-70") is PropertyKind.UNKNOWN
    assert classify_property("TxPower", 4) is PropertyKind.UNKNOWN
    assert classify_property("ManufacturerData", b"\x00") is PropertyKind.UNKNOWN


def test_rssi_yields_rssi_only_reading():
    out = decode_changes(ADDR, {"RSSI": -71}, timestamp=TS)
    assert len(out) == 1
    r = out[0]
    assert r.rssi == -71
    assert r.temperature_celsius is None
    assert r.humidity_percent is None
    assert r.battery_percent is None
    assert r.timestamp == TS
    assert r.address == ADDR


def test_vendor_record_yields_reading():
    changes = {"ManufacturerData": {VENDOR_RECORD_ID: bytes([0x00, 0x01, 0x8C, 0x28, 0x3C, 0x00])}}
    out = decode_changes(ADDR.lower(), changes, timestamp=TS)
    assert len(out) == 1
    r = out[0]
    assert r.address == ADDR
    assert r.rssi is None
    assert r.temperature_celsius == pytest.approx(10.1416)
    assert r.humidity_percent == pytest.approx(41.6)
    assert r.battery_percent == 60


def test_rssi_and_vendor_record_in_one_change_share_timestamp():
    changes = {
        "RSSI": -60,
        "ManufacturerData": {VENDOR_RECORD_ID: bytearray([0x00, 0x01, 0x8C, 0x28, 0x3C, 0x00])},
    }
    out = decode_changes(ADDR, changes)
    assert len(out) == 2
    assert out[0].timestamp == out[1].timestamp
    assert out[0].rssi == -60
    assert out[1].battery_percent == 60


def test_unknown_manufacturer_id_logs_once_and_yields_nothing(caplog):
    caplog.set_level(logging.DEBUG, logger=DECODER_LOGGER)
    out = decode_changes(ADDR, {"ManufacturerData": {0x004C: b"\x02\x15\x00"}}, timestamp=TS)

    assert out == []
    records = _decoder_records(caplog)
    assert len(records) == 1
    assert "0x004C" in records[0].getMessage()


def test_unknown_property_logged_at_debug(caplog):
    caplog.set_level(logging.DEBUG, logger=DECODER_LOGGER)
    out = decode_changes(ADDR, {"Connected": False, "TxPower": 4}, timestamp=TS)

    assert out == []
    records = _decoder_records(caplog)
    assert len(records) == 2
    assert all(r.levelno == logging.DEBUG for r in records)


def test_malformed_inputs_never_raise(caplog):
    caplog.set_level(logging.DEBUG, logger=DECODER_LOGGER)
    changes = {
        "ManufacturerData": {
            VENDOR_RECORD_ID: b"\x00\x01",        # short
            0x0001: [1, 2, 3],                    # not bytes
            "weird": object(),                    # not bytes, odd key
        },
        "RSSI": "loud",
    }
    assert decode_changes(ADDR, changes, timestamp=TS) == []
    assert decode_changes(ADDR, None, timestamp=TS) == []  # type: ignore[arg-type]

    warnings = [r for r in _decoder_records(caplog) if r.levelno == logging.WARNING]
    assert len(warnings) == 4


def test_invalid_address_is_logged_not_raised(caplog):
    caplog.set_level(logging.DEBUG, logger=DECODER_LOGGER)
    assert decode_changes("not-an-address", {"RSSI": -10}, timestamp=TS) == []
    assert any("ADV_DECODE_FAILED" in r.getMessage() for r in _decoder_records(caplog))
