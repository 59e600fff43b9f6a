# models.py
"""
Dataclasses shared by the decoder, the registry and the report.
All of them are frozen: a record is replaced, never edited in place.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from hex_helper import HexHelper


# ----------------------------------------------------------------------
# Enums
# ----------------------------------------------------------------------
class BroadcastingEar(Enum):
    LEFT = "left"
    RIGHT = "right"


class WatcherState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"
    DESTROYED = "destroyed"


class StopReason(Enum):
    """Why the radio says scanning ceased.  Informational only."""

    REQUESTED = "requested"           # answer to our own stop()
    ABORTED = "aborted"               # adapter/driver dropped the scan
    STALLED = "stalled"               # no advertisement for too long
    ERROR = "error"                   # stopping a stalled scan failed


# ----------------------------------------------------------------------
# Dataclasses
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class RawAdvertisement:
    """One radio event, already filtered on company identifier."""
    address: int                              # 48‑bit device address
    rssi: int                                 # dBm
    observed_at: datetime
    manufacturer_data: Mapping[int, bytes] = field(default_factory=dict)

    def payload(self, company_id: int) -> Optional[bytes]:
        return self.manufacturer_data.get(company_id)


@dataclass(frozen=True)
class Telemetry:
    """Decoded Continuity proximity record – battery values in percent."""
    model: str
    model_id: int                             # 16‑bit identifier
    model_id_hex: str                         # "0x2014"
    left_battery: Optional[int]               # None → unknown / disconnected
    right_battery: Optional[int]
    case_battery: Optional[int]
    left_charging: bool = False
    right_charging: bool = False
    case_charging: bool = False
    left_in_ear: bool = False
    right_in_ear: bool = False
    lid_open: bool = False
    broadcasting_ear: BroadcastingEar = BroadcastingEar.RIGHT

    @property
    def both_in_case(self) -> bool:
        return not self.left_in_ear and not self.right_in_ear

    def to_dict(self) -> Dict[str, Any]:
        """Shape of the ``airpods_data`` object in the JSON report."""
        return {
            "model": self.model,
            "model_id": self.model_id_hex,
            "left_battery": self.left_battery,
            "right_battery": self.right_battery,
            "case_battery": self.case_battery,
            "left_charging": self.left_charging,
            "right_charging": self.right_charging,
            "case_charging": self.case_charging,
            "left_in_ear": self.left_in_ear,
            "right_in_ear": self.right_in_ear,
            "both_in_case": self.both_in_case,
            "lid_open": self.lid_open,
            "broadcasting_ear": self.broadcasting_ear.value,
        }


@dataclass(frozen=True)
class DeviceRecord:
    """Latest state of one address, owned by the DeviceRegistry."""
    address: int
    rssi: int
    last_seen: datetime
    manufacturer_data: bytes                  # Apple payload only
    telemetry: Optional[Telemetry] = None

    @property
    def device_id(self) -> str:
        return HexHelper.format_address(self.address)

    @property
    def has_telemetry(self) -> bool:
        return self.telemetry is not None
