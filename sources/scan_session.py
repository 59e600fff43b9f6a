# scan_session.py
"""
One bounded observation window on top of the watcher and the registry.

The session never decodes anything itself: it starts the watcher, polls
``DeviceRegistry.contains_matching(has_telemetry)`` according to the
selected :class:`scanner_config.ScanPolicy`, tears the watcher down and
returns a snapshot.
"""

import asyncio
from dataclasses import dataclass, field
from typing import List

from advertisement_watcher import AdvertisementWatcher
from app_logger import logger
from device_registry import DeviceRegistry, has_telemetry
from errors import ScanStartError
from models import DeviceRecord
from scanner_config import ScanOptions, ScanPolicy, TEARDOWN_TIMEOUT_S
from timing_decorator import timed


@dataclass
class ScanResult:
    records: List[DeviceRecord] = field(default_factory=list)
    found: bool = False               # at least one headset decoded
    elapsed_s: float = 0.0

    @property
    def airpods(self) -> List[DeviceRecord]:
        return [r for r in self.records if r.telemetry is not None]


class ScanSession:
    def __init__(
        self,
        watcher: AdvertisementWatcher,
        registry: DeviceRegistry,
        options: ScanOptions,
        teardown_timeout: float = TEARDOWN_TIMEOUT_S,
    ):
        self.watcher = watcher
        self.registry = registry
        self.options = options
        self.teardown_timeout = teardown_timeout

    @timed("scan session")
    async def run(self) -> ScanResult:
        """
        Listen according to ``self.options``.

        Raises
        ------
        ScanStartError
            If the radio could not be started; no partial result is returned.
        """
        loop = asyncio.get_running_loop()
        started_at = loop.time()

        if not await self.watcher.start():
            await self.watcher.close(self.teardown_timeout)
            raise ScanStartError("Failed to start BLE scan")

        try:
            found = await self._listen()
        finally:
            await self.watcher.close(self.teardown_timeout)

        elapsed = loop.time() - started_at
        return ScanResult(records=self._filter(self.registry.snapshot()), found=found, elapsed_s=elapsed)

    async def _listen(self) -> bool:
        policy = self.options.policy
        duration = self.options.duration_s

        if policy is ScanPolicy.FIXED:
            logger.info("Scanning for %d seconds...", duration)
            await asyncio.sleep(duration)
            return self.registry.contains_matching(has_telemetry)

        if policy is ScanPolicy.CONTINUOUS:
            logger.info("Scanning continuously until AirPods found (max %d seconds)...", duration)
        else:
            logger.info("Scanning for %d seconds, stopping early if AirPods are found...", duration)

        found, waited = await self._poll_until_found(self.options.poll_interval_s, duration)
        if found:
            logger.info("AirPods found after %.1f seconds - stopping scan", waited)
        else:
            logger.info("No AirPods found within %d seconds - stopping scan", duration)
        return found

    async def _poll_until_found(self, interval: float, ceiling: float):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + ceiling
        waited = 0.0
        while True:
            remaining = deadline - loop.time()
            if remaining <= 0:
                return False, waited
            step = min(interval, remaining)
            await asyncio.sleep(step)
            waited += step
            if self.registry.contains_matching(has_telemetry):
                return True, waited

    def _filter(self, records: List[DeviceRecord]) -> List[DeviceRecord]:
        if self.options.min_rssi is not None:
            records = [r for r in records if r.rssi >= self.options.min_rssi]
        if self.options.airpods_only:
            records = [r for r in records if r.telemetry is not None]
        return records
