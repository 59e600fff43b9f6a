# controller.py
"""
Glue between the advertisement watcher, the device registry and the
optional live view.  The watcher hands over every decoded advertisement,
the controller stores it and tells the view which row changed.  The view
only needs to expose an ``update_row(device_id, dict)`` method.
"""

from typing import Any, Dict, Optional

from device_registry import DeviceRegistry
from hex_helper import HexHelper
from models import DeviceRecord, RawAdvertisement, Telemetry

from app_logger import logger


def _percent(value: Optional[int]) -> str:
    return "--" if value is None else f"{value}%"


def build_view_row(record: DeviceRecord) -> Dict[str, Any]:
    """Row the curses view expects for one registry record."""
    row: Dict[str, Any] = {
        "mac": HexHelper.format_mac(record.address),
        "rssi": record.rssi,
        "last_seen": record.last_seen.strftime("%H:%M:%S"),
    }
    telemetry = record.telemetry
    if telemetry is None:
        return row

    row.update(
        model=telemetry.model,
        left=_percent(telemetry.left_battery) + ("+" if telemetry.left_charging else ""),
        right=_percent(telemetry.right_battery) + ("+" if telemetry.right_charging else ""),
        case=_percent(telemetry.case_battery) + ("+" if telemetry.case_charging else ""),
        lid="open" if telemetry.lid_open else "closed",
        in_ear="".join(
            side for side, flag in (("L", telemetry.left_in_ear), ("R", telemetry.right_in_ear)) if flag
        ) or "case",
    )
    return row


class TelemetryController:
    def __init__(self, registry: DeviceRegistry, view=None):
        self.registry = registry
        self.view = view

    def handle_advertisement(self, raw: RawAdvertisement, telemetry: Optional[Telemetry]) -> None:
        previous = self.registry.upsert(raw.address, raw, telemetry)
        record = self.registry.get(raw.address)
        device_id = HexHelper.format_address(raw.address)

        # log only when something the user cares about changed
        if telemetry is not None:
            if previous is None or previous.telemetry != telemetry:
                logger.info(
                    "AirPods detected: %s (%s) from %s – L=%s R=%s C=%s, rssi=%d",
                    telemetry.model,
                    telemetry.model_id_hex,
                    device_id,
                    _percent(telemetry.left_battery),
                    _percent(telemetry.right_battery),
                    _percent(telemetry.case_battery),
                    raw.rssi,
                )
        elif previous is None:
            payload = raw.payload(self.registry.company_id) or b""
            logger.info("Apple device detected: %s %s", device_id, HexHelper.to_hex_string(payload))

        if self.view is not None and record is not None and record.has_telemetry:
            self.view.update_row(device_id, build_view_row(record))
