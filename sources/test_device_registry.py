# test_device_registry.py
import threading
from datetime import datetime, timezone

from continuity_decoder import decode
from device_registry import DeviceRegistry, has_telemetry
from models import RawAdvertisement
from scanner_config import APPLE_COMPANY_ID

FIRST = bytes([0x07, 0x19, 0x01, 0x14, 0x20, 0x55, 0x96, 0x05])
SECOND = bytes([0x07, 0x19, 0x01, 0x14, 0x20, 0x44, 0x88, 0x00])


def raw(address, data=FIRST, rssi=-60):
    return RawAdvertisement(
        address=address,
        rssi=rssi,
        observed_at=datetime.now(timezone.utc),
        manufacturer_data={APPLE_COMPANY_ID: data},
    )


def test_upsert_overwrites_same_address():
    registry = DeviceRegistry()
    assert registry.upsert(0xAA, raw(0xAA, FIRST), decode(FIRST)) is None
    previous = registry.upsert(0xAA, raw(0xAA, SECOND, rssi=-40), decode(SECOND))

    assert previous.telemetry == decode(FIRST)
    records = registry.snapshot()
    assert len(records) == 1
    assert records[0].telemetry == decode(SECOND)
    assert records[0].rssi == -40
    assert records[0].manufacturer_data == SECOND


def test_snapshot_keeps_first_observed_order():
    registry = DeviceRegistry()
    for address in (3, 1, 2):
        registry.upsert(address, raw(address), None)
    registry.upsert(1, raw(1, SECOND), decode(SECOND))

    assert [r.address for r in registry.snapshot()] == [3, 1, 2]


def test_snapshot_is_a_copy():
    registry = DeviceRegistry()
    registry.upsert(1, raw(1), None)
    snap = registry.snapshot()
    registry.upsert(2, raw(2), None)
    assert len(snap) == 1
    assert len(registry) == 2


def test_contains_matching():
    registry = DeviceRegistry()
    assert not registry.contains_matching(has_telemetry)
    registry.upsert(1, raw(1, b"\x10\x05"), decode(b"\x10\x05"))
    assert not registry.contains_matching(has_telemetry)
    registry.upsert(2, raw(2), decode(FIRST))
    assert registry.contains_matching(has_telemetry)
    assert registry.contains_matching(lambda r: r.address == 1)


def test_device_id_is_twelve_lowercase_hex_digits():
    registry = DeviceRegistry()
    registry.upsert(0xA1B2C3, raw(0xA1B2C3), None)
    assert registry.get(0xA1B2C3).device_id == "000000a1b2c3"


def test_concurrent_upserts_do_not_lose_updates():
    registry = DeviceRegistry()
    threads_count, per_thread = 8, 250

    def writer(offset):
        for i in range(per_thread):
            address = offset * per_thread + i
            registry.upsert(address, raw(address), None)
            registry.upsert(address, raw(address, SECOND), decode(SECOND))

    def reader(stop):
        while not stop.is_set():
            for record in registry.snapshot():
                assert record.manufacturer_data in (FIRST, SECOND)

    stop = threading.Event()
    readers = [threading.Thread(target=reader, args=(stop,)) for _ in range(2)]
    writers = [threading.Thread(target=writer, args=(n,)) for n in range(threads_count)]
    for t in readers + writers:
        t.start()
    for t in writers:
        t.join()
    stop.set()
    for t in readers:
        t.join()

    records = registry.snapshot()
    assert len(records) == threads_count * per_thread
    assert len({r.address for r in records}) == threads_count * per_thread
    assert all(r.telemetry == decode(SECOND) for r in records)


def test_clear():
    registry = DeviceRegistry()
    registry.upsert(1, raw(1), None)
    registry.clear()
    assert registry.snapshot() == []
