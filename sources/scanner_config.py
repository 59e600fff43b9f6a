# scanner_config.py
"""
Configuration for the AirPods battery scanner.

Everything tunable lives here as a module constant, the CLI only overrides
what the user asks for.  ``ScanOptions`` bundles the values a single
:class:`scan_session.ScanSession` needs.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

# ----------------------------------------------------------------------
# Protocol constants
# ----------------------------------------------------------------------
APPLE_COMPANY_ID = 0x004C             # Bluetooth SIG company identifier (76)
SCANNER_VERSION = "5.0"

# ----------------------------------------------------------------------
# Scan durations (seconds)
# ----------------------------------------------------------------------
DEFAULT_DURATION_S = 4
MIN_DURATION_S = 1
MAX_DURATION_S = 30
FAST_DURATION_S = 2
QUICK_DURATION_S = 3
CONTINUOUS_CEILING_S = 30             # safety net for --continuous

EARLY_EXIT_POLL_S = 0.5
CONTINUOUS_POLL_S = 0.2

# ----------------------------------------------------------------------
# Watcher tuning
# ----------------------------------------------------------------------
RETRY_INTERVAL_S = 3.0                # backoff measured from the last start
TEARDOWN_TIMEOUT_S = 1.0              # max wait for the stop confirmation
EVENT_QUEUE_SIZE = 256
STALL_TIMEOUT_S: Optional[float] = None   # bleak watchdog, off by default


class ScanPolicy(Enum):
    """How long a scan session keeps listening."""

    FIXED = "fixed"                   # sleep for the whole duration
    EARLY_EXIT = "early_exit"         # stop as soon as a headset decodes
    CONTINUOUS = "continuous"         # fine polling up to the ceiling


def clamp_duration(value: Optional[int], default: int = DEFAULT_DURATION_S) -> int:
    """
    Return *value* if it lies in ``[MIN_DURATION_S, MAX_DURATION_S]``,
    otherwise *default*.  Out of range input is not an error.
    """
    if value is None or not MIN_DURATION_S <= value <= MAX_DURATION_S:
        return default
    return value


@dataclass
class ScanOptions:
    duration_s: int = DEFAULT_DURATION_S
    policy: ScanPolicy = ScanPolicy.FIXED
    min_rssi: Optional[int] = None    # drop devices weaker than this (dBm)
    airpods_only: bool = False        # keep only records with telemetry

    @property
    def poll_interval_s(self) -> float:
        if self.policy is ScanPolicy.CONTINUOUS:
            return CONTINUOUS_POLL_S
        return EARLY_EXIT_POLL_S

    @classmethod
    def fast(cls) -> "ScanOptions":
        return cls(duration_s=FAST_DURATION_S, policy=ScanPolicy.EARLY_EXIT)

    @classmethod
    def quick(cls) -> "ScanOptions":
        return cls(duration_s=QUICK_DURATION_S, policy=ScanPolicy.EARLY_EXIT)

    @classmethod
    def continuous(cls) -> "ScanOptions":
        return cls(duration_s=CONTINUOUS_CEILING_S, policy=ScanPolicy.CONTINUOUS)
