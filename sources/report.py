# report.py
"""
Builds the report printed on stdout from a registry snapshot.

The JSON layout is consumed by other tools and must not change shape:
``scanner_version``, ``scan_timestamp``, ``total_devices``, ``devices``,
``airpods_count``, ``status`` and either ``note`` or ``error``.
"""

import json
import time
from typing import Any, Dict, Iterable, List, Optional

from hex_helper import HexHelper
from models import DeviceRecord
from scanner_config import SCANNER_VERSION
from timing_decorator import timed

NOTE = "Standalone AirPods Battery CLI v5.0 - Real BLE advertisement capture"


def device_to_dict(record: DeviceRecord) -> Dict[str, Any]:
    return {
        "device_id": record.device_id,
        "address": str(record.address),
        "rssi": record.rssi,
        "manufacturer_data_hex": HexHelper.to_hex_string(record.manufacturer_data),
        "airpods_data": record.telemetry.to_dict() if record.telemetry else None,
    }


@timed("build report")
def build_report(records: Iterable[DeviceRecord], scan_timestamp: Optional[int] = None) -> Dict[str, Any]:
    devices: List[Dict[str, Any]] = [device_to_dict(r) for r in records]
    if scan_timestamp is None:
        scan_timestamp = int(time.time())
    return {
        "scanner_version": SCANNER_VERSION,
        "scan_timestamp": str(scan_timestamp),
        "total_devices": len(devices),
        "devices": devices,
        "airpods_count": sum(1 for d in devices if d["airpods_data"] is not None),
        "status": "success",
        "note": NOTE,
    }


def build_error_report(message: str) -> Dict[str, Any]:
    """Unrecoverable failure: never carries partial device data."""
    return {
        "scanner_version": SCANNER_VERSION,
        "status": "error",
        "error": message,
        "total_devices": 0,
        "devices": [],
        "airpods_count": 0,
    }


def render_json(report: Dict[str, Any]) -> str:
    return json.dumps(report, indent=4)


def _percent(value: Optional[int]) -> str:
    return "n/a" if value is None else f"{value}%"


def render_text(report: Dict[str, Any]) -> str:
    """Human readable summary of the same report."""
    if report["status"] != "success":
        return f"Scan failed: {report.get('error', 'unknown error')}"

    lines = [
        f"AirPods Battery CLI v{report['scanner_version']} – "
        f"{report['total_devices']} Apple device(s), {report['airpods_count']} AirPods"
    ]
    for device in report["devices"]:
        mac = HexHelper.format_mac(int(device["address"]))
        data = device["airpods_data"]
        if data is None:
            lines.append(f"  {mac}  rssi {device['rssi']:>4}  (no AirPods data)")
            continue
        charging = ", ".join(
            part for part, flag in (
                ("left", data["left_charging"]),
                ("right", data["right_charging"]),
                ("case", data["case_charging"]),
            ) if flag
        ) or "none"
        lines.append(f"  {mac}  rssi {device['rssi']:>4}  {data['model']} ({data['model_id']})")
        lines.append(
            f"      left {_percent(data['left_battery'])}  right {_percent(data['right_battery'])}"
            f"  case {_percent(data['case_battery'])}  charging: {charging}"
        )
        lines.append(
            f"      lid {'open' if data['lid_open'] else 'closed'}"
            f"  in ear: left={data['left_in_ear']} right={data['right_in_ear']}"
            f"  both in case={data['both_in_case']}"
        )
    return "\n".join(lines)
