from __future__ import annotations

import base64
import io
import os
import tempfile
from typing import BinaryIO, Iterable, List, Optional

from .block import Block
from .constants import (
    BEGIN_PREFIX,
    CHECKSUM_PREFIX,
    DASHES,
    END_PREFIX,
    HEADER_SEPARATOR,
    LINE_TERMINATOR,
    LINE_WIDTH,
)
from .crc24 import crc24_bytes
from .errors import WriteError


def _write(fh: BinaryIO, text: str) -> None:
    try:
        fh.write(text.encode("utf-8"))
    except (OSError, ValueError) as exc:
        raise WriteError(f"armor: write failed: {exc}") from exc


def _body_lines(contents: bytes) -> Iterable[str]:
    encoded = base64.b64encode(contents).decode("ascii")
    # Always emit at least one line: empty contents yield a single empty line,
    # an exact multiple of LINE_WIDTH yields no trailing empty line.
    while True:
        line, encoded = encoded[:LINE_WIDTH], encoded[LINE_WIDTH:]
        yield line
        if not encoded:
            break


def write_block(fh: BinaryIO, block: Block) -> None:
    """Write one armored envelope for ``block`` to a binary sink."""
    _write(fh, f"{BEGIN_PREFIX}{block.type}{DASHES}{LINE_TERMINATOR}")
    for key, value in block.sorted_headers():
        _write(fh, f"{key}{HEADER_SEPARATOR}{value}{LINE_TERMINATOR}")
    _write(fh, LINE_TERMINATOR)
    for line in _body_lines(block.contents):
        _write(fh, line + LINE_TERMINATOR)
    checksum = base64.b64encode(crc24_bytes(block.contents)).decode("ascii")
    _write(fh, f"{CHECKSUM_PREFIX}{checksum}{LINE_TERMINATOR}")
    _write(fh, f"{END_PREFIX}{block.type}{DASHES}{LINE_TERMINATOR}")


def write_blocks(fh: BinaryIO, blocks: Iterable[Block]) -> int:
    n = 0
    for block in blocks:
        write_block(fh, block)
        n += 1
    return n


def armor(*blocks: Block) -> bytes:
    """Armor ``blocks`` in order and return the concatenated envelopes."""
    out = io.BytesIO()
    write_blocks(out, blocks)
    return out.getvalue()


class ArmorWriter:
    """Writes armored blocks to a file path, replacing it only on success.

    Blocks are written to a temporary file next to ``out_path``. ``close()``
    flushes and atomically moves it into place; leaving the ``with`` block on
    an exception discards the temporary file and leaves ``out_path`` untouched.
    """

    def __init__(self, out_path: str):
        self.out_path = out_path
        self.f: Optional[BinaryIO] = None
        self._tmp_path: Optional[str] = None
        self.blocks_written = 0

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None:
            self.close()
        else:
            self.abort()

    def open(self):
        if self.f is not None:
            return
        out_dir = os.path.dirname(os.path.abspath(self.out_path))
        fd, self._tmp_path = tempfile.mkstemp(prefix=".pgparmor-", suffix=".tmp", dir=out_dir)
        self.f = os.fdopen(fd, "wb")

    def add(self, block: Block) -> None:
        if self.f is None:
            raise RuntimeError("ArmorWriter is not open")
        write_block(self.f, block)
        self.blocks_written += 1

    def add_all(self, blocks: Iterable[Block]) -> None:
        for block in blocks:
            self.add(block)

    def close(self):
        if self.f is None:
            return
        try:
            self.f.flush()
            os.fsync(self.f.fileno())
            self.f.close()
            self.f = None
            os.replace(self._tmp_path, self.out_path)
        except OSError as exc:
            self.abort()
            raise WriteError(f"armor: failed to commit {self.out_path}: {exc}") from exc
        self._tmp_path = None

    def abort(self):
        if self.f is not None:
            self.f.close()
            self.f = None
        if self._tmp_path is not None:
            try:
                os.unlink(self._tmp_path)
            except FileNotFoundError:
                pass
            self._tmp_path = None


def write_armored(path: str, blocks: List[Block]) -> int:
    with ArmorWriter(path) as w:
        w.add_all(blocks)
    return w.blocks_written
