#!/usr/bin/env python3
"""advertisement_watcher.py
Long‑running BLE advertisement watcher.

Owns the radio subscription, keeps only advertisements carrying Apple
manufacturer data, decodes them and hands the result to the
``TelemetryController``.  Radio stacks drop scans now and then, so a stop
that nobody asked for is answered by a restart after a short backoff.

States::

    IDLE ──start()──▶ RUNNING ──stop()──▶ STOPPING ──confirmed──▶ IDLE
                         │                    ▲
                         └──radio stopped─────┘──backoff, start()──▶ RUNNING
    any ──close()──▶ DESTROYED

Radio callbacks may come from a foreign thread.  They are moved onto the
watcher's event loop with ``call_soon_threadsafe``: advertisements through a
bounded queue drained by a single consumer task, stop notifications as a
task that takes ``self._lock`` like every other transition.
"""
import asyncio
from datetime import datetime
from typing import Callable, Mapping, Optional, Set

from app_logger import logger, log_debug
from continuity_decoder import decode
from controller import TelemetryController
from errors import InvalidTransitionError, RadioError
from hex_helper import HexHelper
from models import RawAdvertisement, StopReason, Telemetry, WatcherState
from radio import RadioBackend, RadioHandle
from scanner_config import (
    APPLE_COMPANY_ID,
    EVENT_QUEUE_SIZE,
    RETRY_INTERVAL_S,
    TEARDOWN_TIMEOUT_S,
)

Decoder = Callable[[bytes], Optional[Telemetry]]


class AdvertisementWatcher:
    """
    Parameters
    ----------
    radio : RadioBackend
        Collaborator delivering raw advertisements.
    controller : TelemetryController
        Receives every accepted advertisement with its decoded telemetry.
    company_id : int, optional
        Manufacturer data to keep, Apple (0x004C) by default.
    decoder : callable, optional
        Payload decoder, :func:`continuity_decoder.decode` by default.
    retry_interval : float, optional
        Seconds between the last start attempt and an automatic restart.
    queue_size : int, optional
        Capacity of the event queue; overflowing events are dropped.
    confirm_timeout : float, optional
        How long ``start()`` right after ``stop()`` waits for the radio to
        confirm the stop before starting anyway.
    """

    def __init__(
        self,
        radio: RadioBackend,
        controller: TelemetryController,
        company_id: int = APPLE_COMPANY_ID,
        decoder: Decoder = decode,
        retry_interval: float = RETRY_INTERVAL_S,
        queue_size: int = EVENT_QUEUE_SIZE,
        confirm_timeout: float = TEARDOWN_TIMEOUT_S,
    ):
        self.radio = radio
        self.controller = controller
        self.company_id = company_id
        self.retry_interval = retry_interval
        self.confirm_timeout = confirm_timeout
        self._decoder = decoder

        self._state = WatcherState.IDLE
        self._handle: Optional[RadioHandle] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._lock = asyncio.Lock()
        self._queue: "asyncio.Queue[RawAdvertisement]" = asyncio.Queue(maxsize=queue_size)
        self._consumer: Optional[asyncio.Task] = None
        self._restart_task: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()

        self._stop_requested = asyncio.Event()   # also cancels a pending backoff
        self._confirmed = asyncio.Event()
        self._awaiting_confirmation = False
        self._destroying = False
        self._last_start = 0.0

        self.received = 0
        self.dropped = 0
        self.failed = 0

    @property
    def state(self) -> WatcherState:
        return self._state

    async def __aenter__(self) -> "AdvertisementWatcher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # 1. Lifecycle
    # ------------------------------------------------------------------
    async def start(self) -> bool:
        """
        Subscribe to the radio and start scanning.

        Returns ``False`` when the radio refuses to start, the watcher then
        stays in its previous state.  Raises ``InvalidTransitionError``
        unless the watcher is IDLE or STOPPING.
        """
        self._stop_requested.clear()
        await self._await_confirmation(self.confirm_timeout)
        return await self._start(restarting=False)

    async def _await_confirmation(self, timeout: float) -> None:
        # the confirmation of an earlier stop() must not be mistaken for a drop
        if not self._awaiting_confirmation:
            return
        try:
            await asyncio.wait_for(self._confirmed.wait(), timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "No stop confirmation from the radio within %.1f s – continuing anyway.",
                timeout,
            )

    async def _start(self, restarting: bool) -> bool:
        async with self._lock:
            if restarting:
                if self._stop_requested.is_set():
                    return False
                if self._state is WatcherState.RUNNING:
                    return True

            if self._state not in (WatcherState.IDLE, WatcherState.STOPPING):
                raise InvalidTransitionError("start", self._state)

            self._loop = asyncio.get_running_loop()
            if self._handle is None:
                self._handle = self.radio.subscribe(self._on_advertisement, self._on_stopped)
            self._ensure_consumer()

            # backoff is measured from the last attempt, successful or not
            self._last_start = self._loop.time()
            try:
                await self._handle.start()
            except (RadioError, OSError) as exc:
                logger.error("Start adv watcher failed: %s", exc)
                return False
            except Exception:
                logger.exception("Start adv watcher failed")
                return False

            # a stop that was never confirmed is over once the radio runs again
            self._awaiting_confirmation = False
            self._confirmed.set()
            self._state = WatcherState.RUNNING
            logger.info("Bluetooth AdvWatcher start succeeded.")
            return True

    async def stop(self) -> bool:
        """
        Request the radio to stop.  Cancels a pending automatic restart.

        The watcher is STOPPING until the radio confirms, then IDLE.
        """
        self._stop_requested.set()
        await self._join_restart()

        async with self._lock:
            if self._state is WatcherState.DESTROYED:
                raise InvalidTransitionError("stop", self._state)
            if self._state is WatcherState.IDLE:
                return True
            if self._state is WatcherState.STOPPING:
                if not self._awaiting_confirmation:
                    # backoff was pending, nothing is running
                    self._state = WatcherState.IDLE
                return True

            self._state = WatcherState.STOPPING
            self._awaiting_confirmation = True
            self._confirmed.clear()
            try:
                await self._handle.stop()
            except (RadioError, OSError) as exc:
                logger.error("Stop adv watcher failed: %s", exc)
                self._awaiting_confirmation = False
                self._state = WatcherState.IDLE
                return False

            logger.info("Bluetooth AdvWatcher stop succeeded.")
            return True

    async def close(self, timeout: float = TEARDOWN_TIMEOUT_S) -> None:
        """
        Tear the watcher down: stop, wait at most *timeout* seconds for the
        radio's confirmation, flush queued events and end in DESTROYED.
        """
        if self._state is WatcherState.DESTROYED:
            return

        self._destroying = True
        await self.stop()
        await self._await_confirmation(timeout)

        async with self._lock:
            self._state = WatcherState.DESTROYED
            self._awaiting_confirmation = False

        await self._shutdown_consumer()
        logger.info(
            "AdvWatcher destroyed: %d received, %d dropped, %d failed.",
            self.received, self.dropped, self.failed,
        )

    # ------------------------------------------------------------------
    # 2. Automatic restart
    # ------------------------------------------------------------------
    async def _handle_stopped(self, reason: StopReason) -> None:
        async with self._lock:
            logger.info("BLE advertisement scan stopped (%s).", reason.value)

            if self._awaiting_confirmation:
                self._awaiting_confirmation = False
                self._confirmed.set()
                if self._state is WatcherState.STOPPING:
                    self._state = WatcherState.IDLE
                return

            if self._state is not WatcherState.RUNNING:
                return

            if self._destroying or self._stop_requested.is_set():
                self._state = WatcherState.IDLE
                return

            logger.warning(
                "Scan stopped without a stop request – restarting within %.1f s.",
                self.retry_interval,
            )
            self._state = WatcherState.STOPPING
            self._restart_task = self._loop.create_task(self._restart_loop())

    async def _restart_loop(self) -> None:
        while not self._stop_requested.is_set():
            delay = self._last_start + self.retry_interval - self._loop.time()
            if delay > 0:
                try:
                    await asyncio.wait_for(self._stop_requested.wait(), timeout=delay)
                except asyncio.TimeoutError:
                    pass
                if self._stop_requested.is_set():
                    break

            if await self._start(restarting=True):
                return

        logger.info("Pending AdvWatcher restart cancelled.")

    async def _join_restart(self) -> None:
        # a start() already in flight is allowed to finish
        task, self._restart_task = self._restart_task, None
        if task is not None:
            await task

    # ------------------------------------------------------------------
    # 3. Radio callbacks – any thread
    # ------------------------------------------------------------------
    def _on_advertisement(
        self,
        address: int,
        rssi: int,
        timestamp: datetime,
        manufacturer_data: Mapping[int, bytes],
    ) -> None:
        payload = manufacturer_data.get(self.company_id)
        if payload is None:
            return

        raw = RawAdvertisement(
            address=address,
            rssi=rssi,
            observed_at=timestamp,
            manufacturer_data={self.company_id: bytes(payload)},
        )
        self._call_in_loop(self._offer, raw)

    def _on_stopped(self, reason: StopReason) -> None:
        self._call_in_loop(self._schedule_stopped, reason)

    def _call_in_loop(self, callback, *args) -> None:
        loop = self._loop
        if loop is None or loop.is_closed():
            log_debug("Radio callback after the event loop ended, ignored.")
            return
        try:
            loop.call_soon_threadsafe(callback, *args)
        except RuntimeError:
            log_debug("Radio callback after the event loop ended, ignored.")

    # ------------------------------------------------------------------
    # 4. Event loop side
    # ------------------------------------------------------------------
    def _schedule_stopped(self, reason: StopReason) -> None:
        task = self._loop.create_task(self._handle_stopped(reason))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def _offer(self, raw: RawAdvertisement) -> None:
        if self._state is WatcherState.DESTROYED:
            return
        self.received += 1
        try:
            self._queue.put_nowait(raw)
        except asyncio.QueueFull:
            self.dropped += 1
            log_debug("Event queue full, dropping advertisement from %s",
                      HexHelper.format_address(raw.address))

    def _ensure_consumer(self) -> None:
        if self._consumer is None or self._consumer.done():
            self._consumer = self._loop.create_task(self._consume())

    async def _consume(self) -> None:
        while True:
            raw = await self._queue.get()
            self._process(raw)

    def _process(self, raw: RawAdvertisement) -> None:
        try:
            telemetry = self._decoder(raw.payload(self.company_id))
            self.controller.handle_advertisement(raw, telemetry)
        except Exception:
            self.failed += 1
            logger.exception(
                "Dropping advertisement from %s after an internal error",
                HexHelper.format_address(raw.address),
            )

    async def _shutdown_consumer(self) -> None:
        if self._consumer is not None:
            self._consumer.cancel()
            try:
                await self._consumer
            except asyncio.CancelledError:
                pass
            self._consumer = None

        # events accepted before teardown still reach the registry
        while not self._queue.empty():
            self._process(self._queue.get_nowait())
