# test_scan_session.py
import asyncio

import pytest

from advertisement_watcher import AdvertisementWatcher
from controller import TelemetryController
from device_registry import DeviceRegistry
from errors import ScanStartError
from models import WatcherState
from radio import MockRadio
from scan_session import ScanSession
from scanner_config import APPLE_COMPANY_ID, ScanOptions, ScanPolicy

AIRPODS = bytes([0x07, 0x19, 0x01, 0x14, 0x20, 0x55, 0x96, 0x05])
NEARBY = bytes.fromhex("10063b1e4f2d7a18")


def run_session(radio, options, before=None):
    async def scenario():
        registry = DeviceRegistry()
        watcher = AdvertisementWatcher(radio, TelemetryController(registry))
        session = ScanSession(watcher, registry, options)
        if before is not None:
            before(asyncio.get_running_loop())
        result = await session.run()
        return result, watcher

    return asyncio.run(scenario())


def test_early_exit_stops_as_soon_as_airpods_decode():
    radio = MockRadio([(0x01, -50, {APPLE_COMPANY_ID: AIRPODS})])
    result, watcher = run_session(radio, ScanOptions(duration_s=30, policy=ScanPolicy.EARLY_EXIT))

    assert result.found is True
    assert result.elapsed_s < 2.0
    assert len(result.airpods) == 1
    assert watcher.state is WatcherState.DESTROYED
    assert len(radio.stop_calls) == 1


def test_early_exit_picks_up_late_arrivals():
    radio = MockRadio()

    def schedule(loop):
        loop.call_later(0.6, radio.emit, 0x01, -50, {APPLE_COMPANY_ID: AIRPODS})

    result, _ = run_session(radio, ScanOptions(duration_s=10, policy=ScanPolicy.EARLY_EXIT), schedule)
    assert result.found is True
    assert 0.5 <= result.elapsed_s < 2.0


def test_continuous_polls_finely():
    radio = MockRadio([(0x01, -50, {APPLE_COMPANY_ID: AIRPODS})])
    result, _ = run_session(radio, ScanOptions.continuous())

    assert result.found is True
    assert result.elapsed_s < 1.0


def test_early_exit_without_airpods_runs_full_duration():
    radio = MockRadio([(0x02, -70, {APPLE_COMPANY_ID: NEARBY})])
    result, _ = run_session(radio, ScanOptions(duration_s=1, policy=ScanPolicy.EARLY_EXIT))

    assert result.found is False
    assert result.elapsed_s >= 0.95
    assert [r.address for r in result.records] == [0x02]


def test_fixed_duration_waits_even_when_found():
    radio = MockRadio([(0x01, -50, {APPLE_COMPANY_ID: AIRPODS})])
    result, _ = run_session(radio, ScanOptions(duration_s=1, policy=ScanPolicy.FIXED))

    assert result.found is True
    assert result.elapsed_s >= 0.95


def test_start_failure_raises_and_tears_down():
    radio = MockRadio(fail_next_starts=1)
    with pytest.raises(ScanStartError):
        run_session(radio, ScanOptions(duration_s=1))


def test_result_filters():
    radio = MockRadio([
        (0x01, -50, {APPLE_COMPANY_ID: AIRPODS}),
        (0x02, -85, {APPLE_COMPANY_ID: AIRPODS}),
        (0x03, -40, {APPLE_COMPANY_ID: NEARBY}),
    ])
    options = ScanOptions(duration_s=5, policy=ScanPolicy.EARLY_EXIT, min_rssi=-70, airpods_only=True)
    result, _ = run_session(radio, options)

    assert [r.address for r in result.records] == [0x01]
