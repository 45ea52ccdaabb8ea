from __future__ import annotations

import os
import sys
import argparse
import json as _json
import concurrent.futures as _fut

from typing import List, Iterable, Dict, Any, Optional

from pgparmor.block import Block
from pgparmor.constants import ARMOR_EXTENSIONS, BLOCK_TYPE_SLUGS
from pgparmor.reader import dearmor, read_armored
from pgparmor.writer import ArmorWriter, armor
from pgparmor.errors import (
    ArmorError,
    ChecksumMismatch,
    ClosingTypeMismatch,
    InvalidBase64Body,
    InvalidChecksumEncoding,
)


def _read_input(path: str) -> bytes:
    """Read all bytes from a path, or from stdin when path is "-"."""
    if path == "-":
        return sys.stdin.buffer.read()
    with open(path, "rb") as f:
        return f.read()


def _parse_headers(pairs: Optional[Iterable[str]]) -> Dict[str, str]:
    """Parse KEY=VALUE strings from the command line.

    Args:
        pairs: Raw ``--header`` arguments.

    Returns:
        Mapping of header key to value; later duplicates win.

    Raises:
        ValueError: If an argument has no "=" separator.
    """
    headers: Dict[str, str] = {}
    for p in pairs or []:
        if "=" not in p:
            raise ValueError(f"Header must be KEY=VALUE: {p!r}")
        k, v = p.split("=", 1)
        headers[k.strip()] = v.strip()
    return headers


def _type_slug(block_type: str) -> str:
    return block_type.lower().replace(" ", "-")


def _next_nonconflicting_path(path: str) -> str:
    if not os.path.exists(path) and not os.path.lexists(path):
        return path
    base_dir = os.path.dirname(path)
    name = os.path.basename(path)
    root, ext = os.path.splitext(name)
    i = 1
    while True:
        candidate = os.path.join(base_dir, f"{root} ({i}){ext}")
        if not os.path.exists(candidate) and not os.path.lexists(candidate):
            return candidate
        i += 1


# -------- Verify (exposed callable) --------

def _iter_armored(paths: Iterable[str], recursive: bool) -> Iterable[str]:
    """Yield armored file paths from a list of paths and/or directories.

    Files named explicitly are always yielded; directories contribute only
    files whose extension is in ARMOR_EXTENSIONS.

    Args:
        paths: Paths to scan (files or directories).
        recursive: When True, traverse directories recursively.
    """
    for p in paths:
        if os.path.isdir(p):
            if recursive:
                for root, _dirs, files in os.walk(p):
                    for fn in sorted(files):
                        if fn.lower().endswith(ARMOR_EXTENSIONS):
                            yield os.path.join(root, fn)
            else:
                try:
                    entries = sorted(os.listdir(p))
                except OSError:
                    continue
                for fn in entries:
                    full = os.path.join(p, fn)
                    if fn.lower().endswith(ARMOR_EXTENSIONS) and os.path.isfile(full):
                        yield full
        else:
            yield p


def _verify_one(path: str, strict: bool) -> Dict[str, Any]:
    """Decode a single armored file and report its status."""

    res: Dict[str, Any] = {"path": path, "status": "unknown", "blocks": 0, "types": []}
    try:
        blocks = read_armored(path, strict=strict)
    except ChecksumMismatch as exc:
        res["status"] = "fail"
        res["message"] = str(exc)
        res["hint"] = "Checksum mismatch: the envelope was altered or corrupted in transit."
        return res
    except (ClosingTypeMismatch, InvalidBase64Body, InvalidChecksumEncoding) as exc:
        res["status"] = "fail"
        res["message"] = str(exc)
        res["hint"] = "Envelope framing is malformed; re-export the block from its source."
        return res
    except (ArmorError, OSError, ValueError) as exc:
        res["status"] = "fail"
        res["message"] = str(exc)
        return res

    res["blocks"] = len(blocks)
    res["types"] = [b.type for b in blocks]
    if not blocks:
        res["status"] = "fail"
        res["message"] = "no armored blocks found"
        return res
    res["status"] = "ok"
    return res


def cmd_verify(
    paths: List[str],
    *,
    recursive: bool = False,
    jobs: int = 4,
    strict: bool = False,
    as_json: bool = False,
    quiet: bool = False
) -> bool:
    """Verify the envelopes and checksums of many armored files.

    Args:
        paths: Armored file paths and/or directories to scan.
        recursive: Recurse into directories when True.
        jobs: Maximum parallel workers.
        strict: Treat envelopes left open at end of input as failures.
        as_json: When True, print a JSON result summary.
        quiet: Only print failures and the summary line.

    Returns:
        True when no file failed verification, False otherwise.

    Raises:
        RuntimeError: If no armored files matching the input paths were found.
    """
    paths = list(_iter_armored(paths, recursive))
    if not paths:
        raise RuntimeError("No armored files found")

    results: List[Dict[str, Any]] = []
    with _fut.ThreadPoolExecutor(max_workers=max(1, int(jobs))) as ex:
        for r in ex.map(lambda p: _verify_one(p, strict), paths):
            results.append(r)
    ok = sum(1 for r in results if r.get("status") == "ok")
    failed = sum(1 for r in results if r.get("status") == "fail")
    blocks = sum(r.get("blocks", 0) for r in results)
    if as_json:
        print(_json.dumps({"results": results, "ok": ok, "failed": failed, "blocks": blocks}))
    else:
        for r in results:
            status = r.get("status", "unknown")
            if status == "ok":
                if not quiet:
                    print(f"{status.upper():8s} {r['path']} ({r['blocks']} block(s): {', '.join(r['types'])})")
                continue
            print(f"{status.upper():8s} {r['path']}")
            if r.get("message"):
                print("  " + r["message"])
            if r.get("hint"):
                print("  " + r["hint"])
        print(f"Summary: ok={ok} failed={failed} blocks={blocks}")
    return failed == 0


def cmd_armor(
    input: str,
    *,
    output: Optional[str] = None,
    block_type: str = "message",
    headers: Optional[Dict[str, str]] = None,
    quiet: bool = False
) -> bool:
    """Armor the raw bytes of a file.

    Args:
        input: Path to the binary payload ("-" for stdin).
        output: Destination path; armored text goes to stdout when None.
        block_type: One of the BLOCK_TYPE_SLUGS keys (e.g. "message", "signature").
        headers: Armor headers to emit.
        quiet: Suppress the summary line.
    """
    if block_type not in BLOCK_TYPE_SLUGS:
        raise ValueError(f"Unknown block type: {block_type}")
    block = Block(type=BLOCK_TYPE_SLUGS[block_type], contents=_read_input(input), headers=headers or {})
    if output is None:
        sys.stdout.buffer.write(armor(block))
        sys.stdout.buffer.flush()
        return True
    with ArmorWriter(output) as w:
        w.add(block)
    if not quiet:
        print(f"Armored {len(block.contents)} byte(s) as {block.type} -> {output}")
    return True


def cmd_dearmor(
    input: str,
    *,
    outdir: str = ".",
    exists: str = "rename",
    strict: bool = False,
    quiet: bool = False
) -> bool:
    """Decode every block of an armored file into outdir.

    Block contents are written to ``<outdir>/<n>-<type-slug>.bin`` where n is
    the 1-based position of the block in the input.
    """
    blocks = dearmor(_read_input(input), strict=strict)
    if not blocks:
        raise RuntimeError(f"No armored blocks found in {input}")
    os.makedirs(outdir or ".", exist_ok=True)
    written = 0
    skipped = 0
    renamed = 0
    for i, b in enumerate(blocks, 1):
        name = f"{i}-{_type_slug(b.type)}.bin"
        dst = os.path.join(outdir or ".", name)
        rename_note = None
        if os.path.exists(dst) or os.path.islink(dst):
            if exists == "overwrite":
                if os.path.isdir(dst) and not os.path.islink(dst):
                    raise RuntimeError(f"Cannot overwrite directory with file: {dst}")
            elif exists == "skip":
                print(f"    skipping: {name} (exists)")
                skipped += 1
                continue
            elif exists == "rename":
                dst = _next_nonconflicting_path(dst)
                rename_note = dst
            else:
                raise RuntimeError(f"Destination exists: {dst}")
        with open(dst, "wb") as f:
            f.write(b.contents)
        written += 1
        if not quiet:
            print(f"  dearmoring: {i:>3}/{len(blocks):<3} {b.type} ({len(b.contents)} bytes) -> {name}")
        if rename_note:
            print(f"       note: renamed to {dst}")
            renamed += 1
    print(f"Done: wrote {written}/{len(blocks)} block(s); skipped={skipped} renamed={renamed}")
    return True


def cmd_list(input: str, *, as_json: bool = False, strict: bool = False) -> bool:
    """List the blocks of an armored file.

    Args:
        input: Path to an armored file ("-" for stdin).
        as_json: Print a JSON array instead of tab-separated lines.
        strict: Fail on envelopes left open at end of input.
    """
    blocks = dearmor(_read_input(input), strict=strict)
    if as_json:
        print(_json.dumps([
            {
                "type": b.type,
                "size": len(b.contents),
                "checksum": b.checksum.hex(),
                "headers": dict(b.headers),
            }
            for b in blocks
        ]))
        return True
    for i, b in enumerate(blocks, 1):
        print(f"{i}\t{b.type}\t{len(b.contents)}\t{b.checksum.hex()}")
        for k, v in b.sorted_headers():
            print(f"\t{k}: {v}")
    return True


def main(argv: List[str] | None = None):
    ap = argparse.ArgumentParser(
        prog="pgparmor",
        description="OpenPGP-style ASCII armor tool",
        epilog=(
            "Payloads are treated as opaque bytes; no encryption or signing is performed."
        ),
    )
    sub = ap.add_subparsers(dest="cmd", required=True)

    # armor
    ap_armor = sub.add_parser("armor", help="Armor a binary file")
    ap_armor.add_argument("input", help="Binary input path ('-' for stdin)")
    ap_armor.add_argument("--output", "-o", help="Output path (default: stdout)")
    ap_armor.add_argument(
        "--type",
        dest="block_type",
        choices=sorted(BLOCK_TYPE_SLUGS),
        default="message",
        help="Block type (default: message)",
    )
    ap_armor.add_argument(
        "--header",
        action="append",
        metavar="KEY=VALUE",
        help="Armor header to emit (repeatable)",
    )
    ap_armor.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")

    # dearmor
    ap_dearmor = sub.add_parser("dearmor", help="Decode armored blocks to files")
    ap_dearmor.add_argument("input", help="Armored input path ('-' for stdin)")
    ap_dearmor.add_argument("--outdir", default=".", help="Output directory")
    ap_dearmor.add_argument("--strict", action="store_true", help="Fail on unterminated envelopes")
    ap_dearmor.add_argument("--quiet", help="limit outputs to summaries only", action="store_true")
    ap_dearmor.add_argument(
        "--exists",
        choices=["overwrite", "skip", "rename", "fail"],
        default="rename",
        help=(
            "What to do if a destination file exists: overwrite (truncate/replace), "
            "skip (do not write that block), rename (append ' (n)' before extension), or fail (abort). "
            "Default: rename"
        ),
    )

    ap_list = sub.add_parser("list", help="List armored blocks")
    ap_list.add_argument("input", help="Armored input path ('-' for stdin)")
    ap_list.add_argument("--json", action="store_true", help="Emit JSON")
    ap_list.add_argument("--strict", action="store_true", help="Fail on unterminated envelopes")

    # verify: check many files
    ap_verify = sub.add_parser("verify", help="Verify envelopes and checksums of armored files")
    ap_verify.add_argument("paths", nargs="+", help="Armored file paths or directories")
    ap_verify.add_argument("--recursive", "-r", action="store_true", help="Recurse into directories")
    ap_verify.add_argument("--jobs", "-j", type=int, default=4, help="Parallel jobs (default 4)")
    ap_verify.add_argument("--strict", action="store_true", help="Fail on unterminated envelopes")
    ap_verify.add_argument("--json", action="store_true", help="Emit JSON result summary")
    ap_verify.add_argument("--quiet", help="limit outputs to failures and summary", action="store_true")

    args = ap.parse_args(argv)
    try:
        if args.cmd == "armor":
            cmd_armor(
                args.input,
                output=args.output,
                block_type=args.block_type,
                headers=_parse_headers(args.header),
                quiet=args.quiet,
            )
        elif args.cmd == "dearmor":
            cmd_dearmor(args.input, outdir=args.outdir, exists=args.exists, strict=args.strict, quiet=args.quiet)
        elif args.cmd == "list":
            cmd_list(args.input, as_json=args.json, strict=args.strict)
        elif args.cmd == "verify":
            success = cmd_verify(
                args.paths,
                recursive=args.recursive,
                jobs=args.jobs,
                strict=args.strict,
                as_json=args.json,
                quiet=args.quiet
            )
            sys.exit(0 if success else 1)
        else:
            raise RuntimeError("Unknown command")
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except (ValueError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)
    except (ArmorError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
