"""hex_helper.py

Utility class that groups together the small helper functions that deal with
hex formatting of payloads and Bluetooth addresses.

Typical usage
-------------
>>> from hex_helper import HexHelper
>>> HexHelper.to_hex_string(b"\x07\x19")
'0719'
>>> HexHelper.format_address(0xA1B2C3D4E5F6)
'a1b2c3d4e5f6'
"""

import uuid
from typing import Union

ADDRESS_MASK = 0xFFFFFFFFFFFF        # 48‑bit Bluetooth device address


class HexHelper:
    """Helper for hexadecimal conversion of payloads and addresses."""

    # ------------------------------------------------------------------
    # Payload helpers
    # ------------------------------------------------------------------
    @staticmethod
    def to_hex_string(byte_array: Union[bytes, bytearray], sep: str = "") -> str:
        """
        Convert a sequence of bytes to a lowercase hex string.

        Example
        -------
        >>> HexHelper.to_hex_string(b"\x01\xab", sep=":")
        '01:ab'
        """
        return sep.join(f"{c:02x}" for c in byte_array)

    # ------------------------------------------------------------------
    # Address helpers
    # ------------------------------------------------------------------
    @staticmethod
    def format_address(address: int) -> str:
        """Lowercase, zero‑padded 12 digit form used as ``device_id``."""
        return f"{address & ADDRESS_MASK:012x}"

    @staticmethod
    def format_mac(address: int) -> str:
        """Colon separated upper‑case form, ``AA:BB:CC:DD:EE:FF``."""
        digits = f"{address & ADDRESS_MASK:012X}"
        return ":".join(digits[i:i + 2] for i in range(0, 12, 2))

    @staticmethod
    def parse_address(text: str) -> int:
        """
        Turn the address string reported by the BLE backend into a 48‑bit int.

        BlueZ and WinRT report MAC addresses (``AA:BB:CC:DD:EE:FF``).
        CoreBluetooth hides the MAC and reports a per‑host UUID instead; its
        low 48 bits are used so that the same peripheral keeps the same key.

        Raises
        ------
        ValueError
            If *text* is neither a MAC address nor a UUID.
        """
        cleaned = text.strip().replace(":", "").replace("-", "")
        if len(cleaned) == 12:
            return int(cleaned, 16)
        return uuid.UUID(text).int & ADDRESS_MASK
