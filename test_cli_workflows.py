from __future__ import annotations

import os
import json
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path

from pgparmor.block import Block
from pgparmor.constants import PGP_MESSAGE, PGP_SIGNATURE
from pgparmor.reader import read_armored
from pgparmor.writer import write_armored


REPO_ROOT = Path(__file__).resolve().parent


def _random_bytes(size: int) -> bytes:
    return os.urandom(size)


class CLIIntegrationTests(unittest.TestCase):
    def _run(self, cmd, *, expect: int | None = 0, cwd: Path | None = None, stdin: bytes | None = None):
        env = os.environ.copy()
        existing = env.get("PYTHONPATH", "")
        env["PYTHONPATH"] = str(REPO_ROOT) if not existing else f"{REPO_ROOT}{os.pathsep}{existing}"
        proc = subprocess.run(
            cmd,
            cwd=cwd,
            input=stdin,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            env=env,
        )
        if expect is not None and proc.returncode != expect:
            raise AssertionError(
                f"CLI exited {proc.returncode}, expected {expect}\nCommand: {' '.join(cmd)}\n"
                f"STDOUT:\n{proc.stdout.decode(errors='replace')}\nSTDERR:\n{proc.stderr.decode(errors='replace')}"
            )
        return proc

    def run_cli(self, args, **kwargs):
        return self._run([sys.executable, "-m", "pgparmor.cli"] + list(args), **kwargs)

    def run_corrupt(self, args, **kwargs):
        return self._run([sys.executable, str(REPO_ROOT / "scripts" / "corrupt.py")] + list(args), **kwargs)

    def test_armor_dearmor_roundtrip(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            payload = _random_bytes(1000)
            src = root / "payload.bin"
            src.write_bytes(payload)
            armored = root / "payload.asc"

            proc = self.run_cli([
                "armor", str(src), "-o", str(armored),
                "--type", "signature",
                "--header", "Version=pgparmor 0.1",
                "--header", "Comment=test: fixture",
            ])
            self.assertIn(b"Armored 1000 byte(s) as PGP SIGNATURE", proc.stdout)
            text = armored.read_text()
            self.assertTrue(text.startswith("-----BEGIN PGP SIGNATURE-----\nComment: test: fixture\nVersion: pgparmor 0.1\n\n"))

            self.assertEqual(read_armored(str(armored))[0].contents, payload)

            verify_proc = self.run_cli(["verify", str(armored)])
            self.assertIn(b"OK", verify_proc.stdout)
            self.assertIn(b"Summary: ok=1 failed=0 blocks=1", verify_proc.stdout)

            outdir = root / "out"
            self.run_cli(["dearmor", str(armored), "--outdir", str(outdir)])
            self.assertEqual((outdir / "1-pgp-signature.bin").read_bytes(), payload)

            # Second run renames instead of overwriting
            rename_proc = self.run_cli(["dearmor", str(armored), "--outdir", str(outdir)])
            self.assertIn(b"renamed to", rename_proc.stdout)
            self.assertEqual((outdir / "1-pgp-signature (1).bin").read_bytes(), payload)

            skip_proc = self.run_cli(["dearmor", str(armored), "--outdir", str(outdir), "--exists", "skip"])
            self.assertIn(b"skipping: 1-pgp-signature.bin", skip_proc.stdout)

            fail_proc = self.run_cli(["dearmor", str(armored), "--outdir", str(outdir), "--exists", "fail"], expect=2)
            self.assertIn(b"Destination exists", fail_proc.stderr)

    def test_armor_stdin_to_stdout(self):
        proc = self.run_cli(["armor", "-", "--type", "public-key"], stdin=b"key bytes")
        self.assertTrue(proc.stdout.startswith(b"-----BEGIN PGP PUBLIC KEY-----\n\n"))
        list_proc = self.run_cli(["list", "-", "--json"], stdin=proc.stdout)
        listing = json.loads(list_proc.stdout)
        self.assertEqual(len(listing), 1)
        self.assertEqual(listing[0]["type"], "PGP PUBLIC KEY")
        self.assertEqual(listing[0]["size"], len(b"key bytes"))
        self.assertEqual(listing[0]["checksum"], Block("PGP PUBLIC KEY", b"key bytes").checksum.hex())
        self.assertEqual(listing[0]["headers"], {})

    def test_list_multi_block(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "bundle.asc"
            write_armored(str(path), [
                Block(PGP_MESSAGE, b"first", {"Comment": "one"}),
                Block(PGP_SIGNATURE, b"second"),
            ])
            proc = self.run_cli(["list", str(path)])
            lines = proc.stdout.decode().splitlines()
            self.assertEqual(lines[0].split("\t")[:3], ["1", "PGP MESSAGE", "5"])
            self.assertEqual(lines[1], "\tComment: one")
            self.assertEqual(lines[2].split("\t")[:3], ["2", "PGP SIGNATURE", "6"])

    def test_verify_detects_tampering(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            good = root / "good.asc"
            bad = root / "bad.asc"
            for p in (good, bad):
                write_armored(str(p), [Block(PGP_MESSAGE, _random_bytes(512))])

            self.run_corrupt(["body", str(bad), "--within", "10"])

            proc = self.run_cli(["verify", str(root)], expect=1)
            output = proc.stdout.decode()
            self.assertIn("FAIL", output)
            self.assertIn("checksum does not match", output)
            self.assertIn("Summary: ok=1 failed=1", output)

            json_proc = self.run_cli(["verify", str(root), "--json"], expect=1)
            payload = json.loads(json_proc.stdout)
            self.assertEqual(payload["ok"], 1)
            self.assertEqual(payload["failed"], 1)
            failed = [r for r in payload["results"] if r["status"] == "fail"]
            self.assertEqual(failed[0]["path"], str(bad))

    def test_corrupt_checksum_line(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "sig.asc"
            write_armored(str(path), [Block(PGP_SIGNATURE, b"abc"), Block(PGP_SIGNATURE, b"def")])
            self.run_corrupt(["checksum", str(path), "--block", "1", "--within", "2"])
            proc = self.run_cli(["verify", str(path)], expect=1)
            self.assertIn(b"checksum does not match", proc.stdout)

    def test_verify_recursive(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            nested = root / "nested"
            nested.mkdir()
            write_armored(str(root / "outer.asc"), [Block(PGP_MESSAGE, b"outer")])
            write_armored(str(nested / "inner.sig"), [Block(PGP_SIGNATURE, b"inner")])
            (root / "notes.txt").write_text("not armored")

            proc = self.run_cli(["verify", "."], cwd=root)
            self.assertIn(b"Summary: ok=1", proc.stdout)

            proc_recursive = self.run_cli(["verify", ".", "--recursive"], cwd=root)
            self.assertIn(b"Summary: ok=2", proc_recursive.stdout)

    def test_verify_strict_unterminated(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "cut.asc"
            write_armored(str(path), [Block(PGP_MESSAGE, _random_bytes(200))])
            text = path.read_text()
            path.write_text(text[: text.index("-----END")])

            lenient = self.run_cli(["verify", str(path)], expect=1)
            self.assertIn(b"no armored blocks found", lenient.stdout)
            self.assertIn(b"Warning: discarding unterminated", lenient.stderr)

            strict = self.run_cli(["verify", str(path), "--strict"], expect=1)
            self.assertIn(b"is never closed", strict.stdout)

    def test_errors_exit_2(self):
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp)
            missing = self.run_cli(["list", str(root / "missing.asc")], expect=2)
            self.assertIn(b"Error:", missing.stderr)

            src = root / "p.bin"
            src.write_bytes(b"x")
            bad_header = self.run_cli(["armor", str(src), "--header", "novalue"], expect=2)
            self.assertIn(b"KEY=VALUE", bad_header.stderr)

            mismatched = root / "m.asc"
            write_armored(str(mismatched), [Block(PGP_MESSAGE, b"m")])
            mismatched.write_text(mismatched.read_text().replace("END PGP MESSAGE", "END PGP SIGNATURE"))
            proc = self.run_cli(["dearmor", str(mismatched), "--outdir", str(root / "o")], expect=2)
            self.assertIn(b"closing block type does not match", proc.stderr)


if __name__ == "__main__":
    unittest.main()
