# Block type tags recognized in BEGIN/END delimiter lines
PGP_MESSAGE = "PGP MESSAGE"
PGP_PUBLIC_KEY = "PGP PUBLIC KEY"
PGP_PRIVATE_KEY = "PGP PRIVATE KEY"
PGP_SIGNATURE = "PGP SIGNATURE"

BLOCK_TYPES = (PGP_MESSAGE, PGP_PUBLIC_KEY, PGP_PRIVATE_KEY, PGP_SIGNATURE)

# CLI names for block types
BLOCK_TYPE_SLUGS = {
    "message": PGP_MESSAGE,
    "public-key": PGP_PUBLIC_KEY,
    "private-key": PGP_PRIVATE_KEY,
    "signature": PGP_SIGNATURE,
}

# Delimiter lines: "-----BEGIN <TYPE>-----" / "-----END <TYPE>-----"
DASHES = "-----"
BEGIN_PREFIX = DASHES + "BEGIN "
END_PREFIX = DASHES + "END "

HEADER_SEPARATOR = ": "
CHECKSUM_PREFIX = "="

# Base64 body line width (characters, excluding the terminator)
LINE_WIDTH = 64
LINE_TERMINATOR = "\n"

# CRC-24/OpenPGP (RFC 4880, section 6.1)
CRC24_INIT = 0xB704CE
CRC24_POLY = 0x1864CFB
CRC24_MASK = 0xFFFFFF
CRC24_LEN = 3

# Extensions scanned for when a directory is passed to `pgparmor verify`
ARMOR_EXTENSIONS = (".asc", ".sig", ".pub", ".key")
