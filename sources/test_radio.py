# test_radio.py
import asyncio
import time

from bleak.exc import BleakError

from models import StopReason
from radio import BleakRadio, MockRadio, get_radio


class FakeScanner:
    def __init__(self, fail_stop=False):
        self.fail_stop = fail_stop
        self.stopped = False

    async def stop(self):
        if self.fail_stop:
            raise BleakError("adapter gone")
        self.stopped = True


def stalled_handle(scanner):
    reasons = []
    handle = BleakRadio(stall_timeout=0.1).subscribe(lambda *args: None, reasons.append)
    handle._scanner = scanner
    handle._last_seen = time.monotonic() - 1.0
    return handle, reasons


def test_stall_watchdog_reports_stalled():
    scanner = FakeScanner()
    handle, reasons = stalled_handle(scanner)
    asyncio.run(handle._watch_for_stall())
    assert scanner.stopped
    assert reasons == [StopReason.STALLED]


def test_stall_watchdog_reports_error_when_stop_fails():
    handle, reasons = stalled_handle(FakeScanner(fail_stop=True))
    asyncio.run(handle._watch_for_stall())
    assert reasons == [StopReason.ERROR]


def test_get_radio():
    assert isinstance(get_radio(use_mock=True), MockRadio)
    radio = get_radio(adapter="hci1", stall_timeout=5.0)
    assert isinstance(radio, BleakRadio)
    assert (radio.adapter, radio.stall_timeout) == ("hci1", 5.0)
