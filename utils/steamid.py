"""
SteamID utilities.

A SteamID64 is an unsigned 64-bit integer laid out big-endian as:

    [ 8 bit universe | 4 bit account type | 20 bit instance | 32 bit account id ]

Individual public accounts share the constant upper half 0x01100001
(universe 1, account type 1, instance 1), so enumerating account ids maps
directly onto SteamIDs.

Source: https://developer.valvesoftware.com/wiki/SteamID#Format
"""

import struct

STEAM_ID_PREFIX = 0x01100001
MAX_ACCOUNT_ID = 0xFFFFFFFF

_PREFIX_BYTES = bytes([0x01, 0x10, 0x00, 0x01])


def encode(account_id: int) -> str:
    """Convert a 32-bit account id into its SteamID64 decimal string."""
    if not 0 <= account_id <= MAX_ACCOUNT_ID:
        raise ValueError(f"account id out of 32-bit range: {account_id}")

    buf = _PREFIX_BYTES + struct.pack(">I", account_id)
    return str(struct.unpack(">Q", buf)[0])


def decode(steam_id: str | int) -> int:
    """Extract the account id (low 32 bits) from a SteamID64."""
    return int(steam_id) & MAX_ACCOUNT_ID


def account_ids_to_steam_ids(start: int, count: int) -> list[str]:
    """Encode the window [start, start + count), clipped to the 32-bit account space."""
    stop = min(start + count, MAX_ACCOUNT_ID + 1)
    return [encode(account_id) for account_id in range(start, stop)]
