from __future__ import annotations

import argparse
import os
import random
import sys
from typing import Dict, List, Optional

from pgparmor.errors import ArmorError
from pgparmor.reader import ArmorParser


_B64_ALPHABET = b"ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/"


def _locate_envelopes(data: bytes) -> List[Dict]:
    """Find byte offsets of body characters and checksum characters per envelope.

    Returns one dict per closed envelope with ``body`` (list of absolute
    offsets of base64 characters, padding excluded) and ``checksum`` (offsets
    of the characters after the leading "=").
    """
    envelopes: List[Dict] = []
    state = "seek"
    body_lines: List[tuple] = []
    pos = 0
    for raw in data.split(b"\n"):
        start = pos
        pos += len(raw) + 1
        line = raw.decode("utf-8", errors="replace").rstrip("\r")
        if state == "seek":
            if ArmorParser.BEGIN_RE.search(line):
                state = "headers"
                body_lines = []
        elif state == "headers":
            if line == "":
                state = "body"
        elif ArmorParser.END_RE.search(line):
            if body_lines:
                cs_start, cs_raw = body_lines.pop()
                skip = 1 if cs_raw.startswith(b"=") else 0
                checksum = [cs_start + i for i in range(skip, len(cs_raw.rstrip(b"\r")))]
            else:
                checksum = []
            body = [
                s + i
                for s, r in body_lines
                for i, ch in enumerate(r.rstrip(b"\r"))
                if ch in _B64_ALPHABET
            ]
            envelopes.append({"body": body, "checksum": checksum})
            state = "seek"
        else:
            body_lines.append((start, raw))
    return envelopes


def _replace_char(path: str, offset: int) -> None:
    """Replace the base64 character at offset with the next alphabet character."""
    with open(path, "r+b") as f:
        f.seek(offset)
        b = f.read(1)
        if not b:
            raise ValueError("Offset beyond end of file")
        idx = _B64_ALPHABET.find(b)
        if idx < 0:
            raise ValueError(f"Byte at offset {offset} is not a base64 character: {b!r}")
        f.seek(offset)
        f.write(_B64_ALPHABET[(idx + 1) % 64:(idx + 1) % 64 + 1])
        f.flush()
        os.fsync(f.fileno())


def _select(path: str, block: int) -> Dict:
    with open(path, "rb") as f:
        envelopes = _locate_envelopes(f.read())
    if block < 0 or block >= len(envelopes):
        raise ValueError(f"Block index out of range (0..{len(envelopes)-1})")
    return envelopes[block]


def cmd_body(args: argparse.Namespace) -> None:
    env = _select(args.armored, args.block)
    if args.within < 0 or args.within >= len(env["body"]):
        raise ValueError(f"--within must be within body length (0..{len(env['body'])-1})")
    off = env["body"][args.within]
    _replace_char(args.armored, off)
    print(f"Replaced 1 body character in block {args.block} at file offset {off}")


def cmd_checksum(args: argparse.Namespace) -> None:
    env = _select(args.armored, args.block)
    if args.within < 0 or args.within >= len(env["checksum"]):
        raise ValueError(f"--within must be within checksum length (0..{len(env['checksum'])-1})")
    off = env["checksum"][args.within]
    _replace_char(args.armored, off)
    print(f"Replaced 1 checksum character in block {args.block} at file offset {off}")


def cmd_random(args: argparse.Namespace) -> None:
    rng = random.Random(args.seed)
    with open(args.armored, "rb") as f:
        envelopes = _locate_envelopes(f.read())
    candidates = [off for env in envelopes for off in env["body"]]
    if not candidates:
        raise ValueError("No armored body characters found")
    flips = 0
    for off in rng.sample(candidates, min(args.count, len(candidates))):
        _replace_char(args.armored, off)
        flips += 1
    print(f"Replaced {flips} body character(s) at random offsets")


def main(argv: Optional[list[str]] = None) -> None:
    ap = argparse.ArgumentParser(prog="pgparmor.corrupt", description="Corrupt armored files for testing")
    sub = ap.add_subparsers(dest="cmd", required=True)

    p_body = sub.add_parser(
        "body",
        help="Replace one base64 character of a block body",
    )
    p_body.add_argument("armored", help="Path to armored file")
    p_body.add_argument("--block", type=int, default=0, help="Envelope index (0-based, default 0)")
    p_body.add_argument("--within", type=int, default=10, help="Base64 character index within the body (default 10)")
    p_body.set_defaults(func=cmd_body)

    p_cs = sub.add_parser("checksum", help="Replace one character of a block checksum line")
    p_cs.add_argument("armored", help="Path to armored file")
    p_cs.add_argument("--block", type=int, default=0, help="Envelope index (0-based, default 0)")
    p_cs.add_argument("--within", type=int, default=0, help="Character index after '=' (default 0)")
    p_cs.set_defaults(func=cmd_checksum)

    p_rand = sub.add_parser("random", help="Replace N random body characters across all envelopes")
    p_rand.add_argument("armored", help="Path to armored file")
    p_rand.add_argument("--count", type=int, default=1, help="Number of replacements (default 1)")
    p_rand.add_argument("--seed", type=int, default=None, help="PRNG seed for reproducibility")
    p_rand.set_defaults(func=cmd_random)

    args = ap.parse_args(argv)
    try:
        args.func(args)
    except (ArmorError, OSError, ValueError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
