from __future__ import annotations

import base64
import binascii
import re
import sys
from typing import Dict, Iterable, Iterator, List, Optional, Union

from .block import Block
from .constants import BLOCK_TYPES, CHECKSUM_PREFIX
from .crc24 import crc24_bytes
from .errors import (
    ChecksumMismatch,
    ClosingTypeMismatch,
    InvalidBase64Body,
    InvalidChecksumEncoding,
    UnsupportedBlockType,
    UnterminatedBlock,
)


# Parser states
SEEKING = 0
HEADERS = 1
BODY = 2

_STATE_NAMES = {SEEKING: "seeking", HEADERS: "headers", BODY: "body"}

# ASCII without CR/LF
_ASCII = r"[\x00-\x09\x0b\x0c\x0e-\x7f]"


class ArmorParser:
    """Line-driven decoder for armored envelopes.

    Feed lines one at a time with :meth:`feed`; a :class:`Block` is returned
    when a footer line completes an envelope whose checksum verifies. Call
    :meth:`finish` once input is exhausted.

    Delimiter lines are searched for anywhere in the line rather than matched
    at column 0, so indented footers such as ``"   -----END PGP MESSAGE-----"``
    are accepted.

    The body uses a one-line lookback: each body line is held in ``_pending``
    and only moved into ``_body`` when another line follows it. When the
    footer arrives, the line still pending is the checksum line.
    """

    BEGIN_RE = re.compile(r"-----BEGIN (PGP [A-Z ]+)-----")
    END_RE = re.compile(r"-----END (PGP [A-Z ]+)-----")
    # Key runs up to the first ": "; the value may contain further separators
    HEADER_RE = re.compile(r"((?:(?!: )" + _ASCII + r")+): (" + _ASCII + r"+)")

    def __init__(self, strict: bool = False):
        self.strict = strict
        self.line_no = 0
        self._reset()

    def _reset(self):
        self.state = SEEKING
        self._type: Optional[str] = None
        self._opened_at = 0
        self._headers: Dict[str, str] = {}
        self._body: List[str] = []
        self._pending = ""

    def feed(self, line: str) -> Optional[Block]:
        self.line_no += 1
        line = line.rstrip("\r\n")
        if self.state == SEEKING:
            m = self.BEGIN_RE.search(line)
            if m is not None:
                tag = m.group(1)
                if tag not in BLOCK_TYPES:
                    raise UnsupportedBlockType(tag)
                self._type = tag
                self._opened_at = self.line_no
                self.state = HEADERS
            return None

        if self.state == HEADERS:
            m = self.HEADER_RE.search(line)
            if m is not None:
                self._headers[m.group(1)] = m.group(2)
            if line == "":
                self.state = BODY
            return None

        m = self.END_RE.search(line)
        if m is None:
            self._body.append(self._pending)
            self._pending = line
            return None
        if m.group(1) != self._type:
            raise ClosingTypeMismatch(self._type, m.group(1))
        block = self._complete()
        self._reset()
        return block

    def _complete(self) -> Block:
        body_text = "".join(self._body)
        try:
            contents = base64.b64decode(body_text, validate=True)
        except binascii.Error as exc:
            raise InvalidBase64Body(f"armor: error decoding base64 body: {exc}") from exc

        checksum_text = self._pending
        if checksum_text.startswith(CHECKSUM_PREFIX):
            checksum_text = checksum_text[len(CHECKSUM_PREFIX):]
        try:
            expected = base64.b64decode(checksum_text, validate=True)
        except binascii.Error as exc:
            raise InvalidChecksumEncoding(f"armor: error decoding checksum: {exc}") from exc

        actual = crc24_bytes(contents)
        if actual != expected:
            raise ChecksumMismatch(expected, actual)
        # Unused padding bits or trailing data decode to the same bytes; the
        # body must be exactly the encoding of what it decodes to.
        if base64.b64encode(contents).decode("ascii") != body_text:
            raise ChecksumMismatch(expected, actual, "body is not the canonical base64 encoding of its contents")
        return Block(type=self._type, contents=contents, headers=self._headers)

    def finish(self) -> None:
        """Handle end of input; an envelope still open is discarded or, when strict, an error."""
        if self.state == SEEKING:
            return
        block_type, opened_at, state = self._type, self._opened_at, self.state
        self._reset()
        if self.strict:
            raise UnterminatedBlock(block_type, opened_at)
        print(
            f"Warning: discarding unterminated {block_type} block opened at line {opened_at} "
            f"(input ended in {_STATE_NAMES[state]})",
            file=sys.stderr,
        )


Source = Union[bytes, bytearray, str, Iterable[str], Iterable[bytes]]


def _iter_lines(source: Source) -> Iterator[str]:
    if isinstance(source, (bytes, bytearray)):
        source = bytes(source).decode("utf-8", errors="replace")
    if isinstance(source, str):
        yield from source.split("\n")
        return
    for line in source:
        if isinstance(line, (bytes, bytearray)):
            line = bytes(line).decode("utf-8", errors="replace")
        yield line


def iter_blocks(source: Source, *, strict: bool = False) -> Iterator[Block]:
    """Yield verified blocks from ``source`` in the order their footers appear.

    ``source`` may be armored ``bytes``/``str``, or any iterable of lines such
    as an open binary or text file.
    """
    parser = ArmorParser(strict=strict)
    for line in _iter_lines(source):
        block = parser.feed(line)
        if block is not None:
            yield block
    parser.finish()


def dearmor(source: Source, *, strict: bool = False) -> List[Block]:
    return list(iter_blocks(source, strict=strict))


def read_armored(path: str, *, strict: bool = False) -> List[Block]:
    with open(path, "rb") as f:
        return dearmor(f, strict=strict)
