"""
pgparmor: OpenPGP-style ASCII armor for binary blocks.

Features:

- Armor one or more blocks (message, public key, private key, signature) into
  the "-----BEGIN PGP ...-----" textual envelope, with sorted armor headers,
  base64 bodies wrapped at 64 characters and a CRC-24 checksum line.
- Dearmor text streams containing any number of envelopes, verifying the
  delimiter types and the CRC-24 of every block before returning it.
- Atomic file output, and a CLI to armor, dearmor, list and verify files.

Payloads are opaque bytes: encryption, signing and key parsing belong to the
caller.
"""

__version__ = "0.1"

__all__ = [
    "constants",
    "crc24",
    "errors",
    "block",
    "writer",
    "reader",
]

# Programmatic API: pgparmor.writer.armor / pgparmor.reader.dearmor, and the
# CLI functions in pgparmor.cli (cmd_armor/cmd_dearmor) which take normal parameters.
