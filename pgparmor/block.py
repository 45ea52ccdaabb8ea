from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping

from .constants import BLOCK_TYPES, HEADER_SEPARATOR
from .crc24 import crc24_bytes
from .errors import UnsupportedBlockType


def _check_header(key: str, value: str) -> None:
    for what, s in (("key", key), ("value", value)):
        if not isinstance(s, str):
            raise ValueError(f"Header {what} must be a string: {s!r}")
        if not s:
            raise ValueError(f"Header {what} must not be empty")
        if not s.isascii():
            raise ValueError(f"Header {what} must be ASCII: {s!r}")
        if "\n" in s or "\r" in s:
            raise ValueError(f"Header {what} must not contain line breaks: {s!r}")
    if HEADER_SEPARATOR in key:
        raise ValueError(f"Header key must not contain {HEADER_SEPARATOR!r}: {key!r}")


@dataclass(frozen=True)
class Block:
    """One armored unit: block type tag, armor headers and raw contents.

    Blocks are immutable. ``headers`` is copied into a read-only mapping and
    ``contents`` is always normalized to ``bytes``, so a Block never shares a
    mutable buffer with its creator.
    """

    type: str
    contents: bytes = b""
    headers: Mapping[str, str] = field(default_factory=dict, hash=False)

    def __post_init__(self):
        if self.type not in BLOCK_TYPES:
            raise UnsupportedBlockType(self.type)
        headers = dict(self.headers)
        for k, v in headers.items():
            _check_header(k, v)
        object.__setattr__(self, "headers", MappingProxyType(headers))
        try:
            contents = bytes(memoryview(self.contents))
        except TypeError:
            raise TypeError(f"Block contents must be bytes-like, not {type(self.contents).__name__}") from None
        object.__setattr__(self, "contents", contents)

    @property
    def checksum(self) -> bytes:
        return crc24_bytes(self.contents)

    def sorted_headers(self):
        return sorted(self.headers.items())
