# radio.py
"""
Radio collaborators for the advertisement watcher.

The watcher only relies on a tiny contract::

    handle = radio.subscribe(on_advertisement, on_stopped)
    await handle.start()      # raises RadioError on failure
    await handle.stop()       # raises RadioError on failure

``on_advertisement(address, rssi, timestamp, manufacturer_data)`` fires once
per received advertisement and ``on_stopped(reason)`` whenever scanning
ceases, including when nobody asked for it.  Both may be called from any
thread.

:class:`BleakRadio` implements the contract on top of ``bleak``;
:class:`MockRadio` replays canned advertisements without hardware.
"""

import asyncio
import time
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Mapping, Optional, Protocol, Tuple

from bleak import BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError

from app_logger import logger, log_debug
from errors import RadioError, RadioUnavailableError
from hex_helper import HexHelper
from models import StopReason

OnAdvertisement = Callable[[int, int, datetime, Mapping[int, bytes]], None]
OnStopped = Callable[[StopReason], None]


class RadioHandle(Protocol):
    async def start(self) -> None:
        ...

    async def stop(self) -> None:
        ...


class RadioBackend(Protocol):
    def subscribe(self, on_advertisement: OnAdvertisement, on_stopped: OnStopped) -> RadioHandle:
        ...


# ----------------------------------------------------------------------
# bleak backed radio
# ----------------------------------------------------------------------
class BleakRadio:
    """
    Factory for bleak scanner handles.

    Parameters
    ----------
    adapter : str, optional
        BlueZ adapter name (``"hci0"``); ignored by the other backends.
    stall_timeout : float, optional
        Bleak has no "scan stopped" event.  When set, a watchdog treats
        *stall_timeout* seconds without a single advertisement as a dropped
        scan: it stops the scanner and reports ``StopReason.STALLED``.
    scanning_mode : str
        ``"active"`` or ``"passive"``.
    """

    def __init__(
        self,
        adapter: Optional[str] = None,
        stall_timeout: Optional[float] = None,
        scanning_mode: str = "active",
    ):
        self.adapter = adapter
        self.stall_timeout = stall_timeout
        self.scanning_mode = scanning_mode

    def subscribe(self, on_advertisement: OnAdvertisement, on_stopped: OnStopped) -> "BleakRadioHandle":
        return BleakRadioHandle(self, on_advertisement, on_stopped)


class BleakRadioHandle:
    def __init__(self, radio: BleakRadio, on_advertisement: OnAdvertisement, on_stopped: OnStopped):
        self._radio = radio
        self._on_advertisement = on_advertisement
        self._on_stopped = on_stopped
        self._scanner: Optional[BleakScanner] = None
        self._watchdog: Optional[asyncio.Task] = None
        self._last_seen = time.monotonic()

    def _make_scanner(self) -> BleakScanner:
        kwargs = {"scanning_mode": self._radio.scanning_mode}
        if self._radio.adapter:
            kwargs["adapter"] = self._radio.adapter
        return BleakScanner(detection_callback=self.detection_callback, **kwargs)

    async def start(self) -> None:
        try:
            if self._scanner is None:
                self._scanner = self._make_scanner()
            await self._scanner.start()
        except (BleakError, OSError) as exc:
            raise RadioUnavailableError(f"BLE scanner start failed: {exc}") from exc

        self._last_seen = time.monotonic()
        if self._radio.stall_timeout:
            self._watchdog = asyncio.get_running_loop().create_task(self._watch_for_stall())

    async def stop(self) -> None:
        self._cancel_watchdog()
        if self._scanner is not None:
            try:
                await self._scanner.stop()
            except (BleakError, OSError) as exc:
                raise RadioError(f"BLE scanner stop failed: {exc}") from exc
        self._on_stopped(StopReason.REQUESTED)

    def _cancel_watchdog(self) -> None:
        if self._watchdog is not None and self._watchdog is not asyncio.current_task():
            self._watchdog.cancel()
        self._watchdog = None

    async def _watch_for_stall(self) -> None:
        timeout = self._radio.stall_timeout
        while True:
            await asyncio.sleep(timeout / 2)
            silent_for = time.monotonic() - self._last_seen
            if silent_for < timeout:
                continue
            logger.warning("No advertisement for %.1f s – treating scan as dropped.", silent_for)
            self._watchdog = None
            reason = StopReason.STALLED
            try:
                await self._scanner.stop()
            except (BleakError, OSError) as exc:
                logger.warning("Stopping stalled scanner failed: %s", exc)
                reason = StopReason.ERROR
            self._on_stopped(reason)
            return

    # ------------------------------------------------------------------
    # Callback required by BleakScanner
    # ------------------------------------------------------------------
    def detection_callback(self, device: BLEDevice, advertisement_data: AdvertisementData) -> None:
        """
        Passed directly to ``BleakScanner``.  Converts bleak's types into the
        plain values of the radio contract.
        """
        self._last_seen = time.monotonic()
        if not advertisement_data.manufacturer_data:
            return
        try:
            address = HexHelper.parse_address(device.address)
        except ValueError:
            log_debug("Ignoring advertisement with unparsable address %r", device.address)
            return
        self._on_advertisement(
            address,
            advertisement_data.rssi,
            datetime.now(timezone.utc),
            dict(advertisement_data.manufacturer_data),
        )


# ----------------------------------------------------------------------
# Hardware‑free radio
# ----------------------------------------------------------------------
MockAdvertisement = Tuple[int, int, Mapping[int, bytes]]   # address, rssi, data


class MockRadio:
    """
    Radio that replays preconfigured advertisements on every start.

    The knobs exist for exercising the watcher's failure handling:
    ``fail_next_starts`` makes that many upcoming ``start()`` calls raise,
    ``confirm_stops`` controls whether ``stop()`` reports back, and
    :meth:`drop` simulates the adapter abandoning the scan.
    """

    def __init__(
        self,
        advertisements: Optional[Iterable[MockAdvertisement]] = None,
        fail_next_starts: int = 0,
        confirm_stops: bool = True,
    ):
        self.advertisements: List[MockAdvertisement] = list(advertisements or [])
        self.fail_next_starts = fail_next_starts
        self.confirm_stops = confirm_stops
        self.running = False
        self.start_calls: List[float] = []    # monotonic time of every attempt
        self.stop_calls: List[float] = []
        self._on_advertisement: Optional[OnAdvertisement] = None
        self._on_stopped: Optional[OnStopped] = None

    def subscribe(self, on_advertisement: OnAdvertisement, on_stopped: OnStopped) -> "MockRadio":
        self._on_advertisement = on_advertisement
        self._on_stopped = on_stopped
        return self

    async def start(self) -> None:
        self.start_calls.append(time.monotonic())
        if self.fail_next_starts > 0:
            self.fail_next_starts -= 1
            raise RadioUnavailableError("mock radio refused to start")
        self.running = True
        for address, rssi, data in self.advertisements:
            self.emit(address, rssi, data)

    async def stop(self) -> None:
        self.stop_calls.append(time.monotonic())
        self.running = False
        if self.confirm_stops:
            self._on_stopped(StopReason.REQUESTED)

    def emit(self, address: int, rssi: int, data: Mapping[int, bytes]) -> None:
        self._on_advertisement(address, rssi, datetime.now(timezone.utc), dict(data))

    def drop(self, reason: StopReason = StopReason.ABORTED) -> None:
        """Stop delivering events without being asked to."""
        self.running = False
        self._on_stopped(reason)


def get_radio(
    use_mock: bool = False,
    advertisements: Optional[Iterable[MockAdvertisement]] = None,
    adapter: Optional[str] = None,
    stall_timeout: Optional[float] = None,
) -> RadioBackend:
    """
    Factory function to get the appropriate radio implementation.

    Args:
        use_mock: If True, return MockRadio; otherwise return BleakRadio
        advertisements: Canned advertisements for MockRadio
        adapter: BlueZ adapter for BleakRadio
        stall_timeout: Watchdog timeout for BleakRadio
    """
    if use_mock:
        return MockRadio(advertisements)
    return BleakRadio(adapter=adapter, stall_timeout=stall_timeout)
