# test_helpers.py
"""Small helpers: hex formatting, duration clamping, timing, live view rows."""
import asyncio
import logging
from datetime import datetime, timezone

import pytest

from app_logger import log_buffer, logger
from continuity_decoder import decode
from controller import TelemetryController, build_view_row
from device_registry import DeviceRegistry
from hex_helper import HexHelper
from models import DeviceRecord, RawAdvertisement
from scanner_config import APPLE_COMPANY_ID, clamp_duration
from timing_decorator import timed

AIRPODS = bytes([0x07, 0x19, 0x01, 0x14, 0x20, 0x55, 0x96, 0x05])


def test_to_hex_string():
    assert HexHelper.to_hex_string(b"\x07\x19\xab") == "0719ab"
    assert HexHelper.to_hex_string(b"\x01\xab", sep=":") == "01:ab"
    assert HexHelper.to_hex_string(b"") == ""


def test_address_formatting():
    assert HexHelper.format_address(0xA1B2C3D4E5F6) == "a1b2c3d4e5f6"
    assert HexHelper.format_address(0x1) == "000000000001"
    assert HexHelper.format_mac(0xA1B2C3D4E5F6) == "A1:B2:C3:D4:E5:F6"


def test_parse_address():
    assert HexHelper.parse_address("A1:B2:C3:D4:E5:F6") == 0xA1B2C3D4E5F6
    assert HexHelper.parse_address("a1-b2-c3-d4-e5-f6") == 0xA1B2C3D4E5F6
    # CoreBluetooth identifiers keep their low 48 bits
    assert HexHelper.parse_address("12345678-9abc-def0-1234-56789abcdef0") == 0x56789ABCDEF0
    with pytest.raises(ValueError):
        HexHelper.parse_address("not an address")


@pytest.mark.parametrize(
    "value, expected",
    [(None, 4), (0, 4), (1, 1), (15, 15), (30, 30), (31, 4), (-3, 4)],
)
def test_clamp_duration(value, expected):
    assert clamp_duration(value) == expected


def test_timed_logs_sync_and_async():
    @timed("sync work")
    def work():
        return 42

    @timed()
    async def async_work():
        await asyncio.sleep(0)
        return 7

    previous = logger.level
    logger.setLevel(logging.DEBUG)
    try:
        assert work() == 42
        assert asyncio.run(async_work()) == 7
    finally:
        logger.setLevel(previous)
    recent = list(log_buffer)[-2:]
    assert "[sync work] took" in recent[0]
    assert "async_work] took" in recent[1]


def test_view_row_for_headset():
    now = datetime(2026, 1, 3, 9, 30, 5, tzinfo=timezone.utc)
    row = build_view_row(DeviceRecord(0xA1B2C3D4E5F6, -52, now, AIRPODS, decode(AIRPODS)))
    assert row == {
        "mac": "A1:B2:C3:D4:E5:F6",
        "rssi": -52,
        "last_seen": "09:30:05",
        "model": "AirPods Pro 2",
        "left": "90%",
        "right": "60%+",
        "case": "50%+",
        "lid": "open",
        "in_ear": "R",
    }


class RecordingView:
    def __init__(self):
        self.rows = {}

    def update_row(self, device_id, data):
        self.rows[device_id] = data


def test_controller_pushes_headsets_to_the_view():
    view = RecordingView()
    controller = TelemetryController(DeviceRegistry(), view)
    now = datetime.now(timezone.utc)

    controller.handle_advertisement(
        RawAdvertisement(0x01, -60, now, {APPLE_COMPANY_ID: AIRPODS}), decode(AIRPODS)
    )
    controller.handle_advertisement(
        RawAdvertisement(0x02, -60, now, {APPLE_COMPANY_ID: b"\x10\x05"}), None
    )

    assert list(view.rows) == ["000000000001"]
    assert view.rows["000000000001"]["model"] == "AirPods Pro 2"
    assert len(controller.registry) == 2
