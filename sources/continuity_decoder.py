#!/usr/bin/env python3
"""continuity_decoder.py
Decoder for Apple's Continuity "proximity pairing" advertisement, the
manufacturer data AirPods broadcast while the case is open or the buds
are in use.

The payload handed to :func:`decode` is the manufacturer data of company
``0x004C`` with the company identifier already stripped by the radio
backend, so byte 0 is the Continuity message type.

Byte layout (only the first 8 bytes are interpreted)::

    [0]    message type, 0x07
    [1-2]  length / prefix (ignored)
    [3-4]  model identifier, little‑endian (byte 4 is the high byte)
    [5]    case battery nibble | case, left, right charging bits
    [6]    left battery nibble | right battery nibble
    [7]    lid open, left in‑ear, right in‑ear bits

Battery nibbles count tenths; anything above 10 (0xF in practice) means the
component is not connected and decodes to ``None``.
"""
import struct
from typing import Dict, Optional

from models import BroadcastingEar, Telemetry

# ----------------------------------------------------------------------
# Constants
# ----------------------------------------------------------------------
PROXIMITY_PAIRING_TYPE = 0x07
MIN_PAYLOAD_LEN = 8
PAYLOAD_FORMAT = "<B2xHBBB"           # type, skip 2, model id, status, battery, lid

CASE_CHARGING_BIT = 0x04
LEFT_CHARGING_BIT = 0x02
RIGHT_CHARGING_BIT = 0x01

LID_OPEN_BIT = 0x04
LEFT_IN_EAR_BIT = 0x02
RIGHT_IN_EAR_BIT = 0x01

MAX_BATTERY_NIBBLE = 10
UNKNOWN_MODEL = "Unknown"

# The bytes do not say which bud authored the broadcast.
BROADCASTING_EAR = BroadcastingEar.RIGHT

# Known model identifiers.  New hardware shows up regularly, so this is a
# lookup table rather than an enum – extend it with ``register_model``.
MODEL_NAMES: Dict[int, str] = {
    0x2002: "AirPods",
    0x200F: "AirPods 2",
    0x2013: "AirPods 3",
    0x200E: "AirPods Pro",
    0x2014: "AirPods Pro 2",
    0x2024: "AirPods Pro 2 (USB-C)",
    0x200A: "AirPods Max",
}


def register_model(model_id: int, name: str) -> None:
    """Add or rename an entry of :data:`MODEL_NAMES`."""
    MODEL_NAMES[model_id & 0xFFFF] = name


def model_name(model_id: int) -> str:
    return MODEL_NAMES.get(model_id, UNKNOWN_MODEL)


def _battery(nibble: int) -> Optional[int]:
    if nibble > MAX_BATTERY_NIBBLE:
        return None
    return nibble * 10


def decode(payload: bytes) -> Optional[Telemetry]:
    """
    Decode a Continuity proximity payload.

    Returns ``None`` (not recognized) for payloads shorter than 8 bytes or
    whose first byte is not the proximity pairing type.  Never raises.
    """
    if payload is None or len(payload) < MIN_PAYLOAD_LEN:
        return None

    (
        msg_type,
        model_id,
        status,
        battery,
        lid,
    ) = struct.unpack_from(PAYLOAD_FORMAT, bytes(payload))

    if msg_type != PROXIMITY_PAIRING_TYPE:
        return None

    return Telemetry(
        model=model_name(model_id),
        model_id=model_id,
        model_id_hex=f"0x{model_id:04X}",
        case_battery=_battery(status >> 4),
        left_battery=_battery(battery >> 4),
        right_battery=_battery(battery & 0x0F),
        case_charging=bool(status & CASE_CHARGING_BIT),
        left_charging=bool(status & LEFT_CHARGING_BIT),
        right_charging=bool(status & RIGHT_CHARGING_BIT),
        lid_open=bool(lid & LID_OPEN_BIT),
        left_in_ear=bool(lid & LEFT_IN_EAR_BIT),
        right_in_ear=bool(lid & RIGHT_IN_EAR_BIT),
        broadcasting_ear=BROADCASTING_EAR,
    )
