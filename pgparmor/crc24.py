"""
CRC-24 as used by OpenPGP ASCII armor (RFC 4880, section 6.1).
MSB-first table variant; matches the bitwise reference algorithm.
"""

from .constants import CRC24_INIT, CRC24_POLY, CRC24_MASK


def _make_table():
    tbl = []
    for n in range(256):
        c = n << 16
        for _ in range(8):
            c <<= 1
            if c & 0x1000000:
                c ^= CRC24_POLY
        tbl.append(c & CRC24_MASK)
    return tuple(tbl)


_TABLE = _make_table()


def crc24(data: bytes, crc: int = CRC24_INIT) -> int:
    c = crc & CRC24_MASK
    for b in data:
        c = ((c << 8) & CRC24_MASK) ^ _TABLE[((c >> 16) ^ b) & 0xFF]
    return c


def crc24_bytes(data: bytes) -> bytes:
    """Return the 3-byte big-endian checksum of ``data``."""
    return crc24(data).to_bytes(3, "big")
