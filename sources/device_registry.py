# device_registry.py
"""
In‑memory store of every device seen during the process lifetime.
It knows *what* the latest state of each address is, nothing more: one
record per address, last write wins, no history.

The watcher's consumer task writes, the scan session and the live view
read from other contexts, so every operation takes ``self._lock``.
"""

import threading
from typing import Callable, Dict, List, Optional

from models import DeviceRecord, RawAdvertisement, Telemetry
from scanner_config import APPLE_COMPANY_ID


def has_telemetry(record: DeviceRecord) -> bool:
    """Predicate for ``contains_matching``: the device decoded as a headset."""
    return record.telemetry is not None


class DeviceRegistry:
    """
    Thread‑safe map ``address → DeviceRecord``.

    Iteration order is first‑observed order: a dict keeps the position of a
    key when its value is replaced, so overwriting a record does not move it.
    """

    def __init__(self, company_id: int = APPLE_COMPANY_ID):
        self.company_id = company_id
        self._records: Dict[int, DeviceRecord] = {}
        self._lock = threading.Lock()

    def upsert(
        self,
        address: int,
        raw: RawAdvertisement,
        telemetry: Optional[Telemetry],
    ) -> Optional[DeviceRecord]:
        """
        Store the latest advertisement of *address*.

        Returns the record it replaced, or ``None`` for a new address.
        """
        record = DeviceRecord(
            address=address,
            rssi=raw.rssi,
            last_seen=raw.observed_at,
            manufacturer_data=bytes(raw.payload(self.company_id) or b""),
            telemetry=telemetry,
        )
        with self._lock:
            previous = self._records.get(address)
            self._records[address] = record
        return previous

    def get(self, address: int) -> Optional[DeviceRecord]:
        with self._lock:
            return self._records.get(address)

    def snapshot(self) -> List[DeviceRecord]:
        """Point‑in‑time copy, safe to use after the lock is released."""
        with self._lock:
            return list(self._records.values())

    def contains_matching(self, predicate: Callable[[DeviceRecord], bool]) -> bool:
        with self._lock:
            return any(predicate(record) for record in self._records.values())

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
