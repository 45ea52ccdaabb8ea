class ArmorError(Exception):
    """Base class for armor codec errors."""


# Envelope framing
class UnsupportedBlockType(ArmorError):
    def __init__(self, tag: str):
        self.tag = tag
        super().__init__(f"armor: unsupported block type: {tag}")


class ClosingTypeMismatch(ArmorError):
    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(f"armor: closing block type does not match: expected {expected}, received {actual}")


class UnterminatedBlock(ArmorError):
    def __init__(self, block_type: str, line_no: int):
        self.block_type = block_type
        self.line_no = line_no
        super().__init__(f"armor: {block_type} block opened at line {line_no} is never closed")


# Body/checksum encoding
class InvalidBase64Body(ArmorError):
    pass


class InvalidChecksumEncoding(ArmorError):
    pass


# Integrity
class ChecksumMismatch(ArmorError):
    def __init__(self, expected: bytes, actual: bytes, detail: str = ""):
        self.expected = expected
        self.actual = actual
        self.detail = detail
        msg = f"armor: checksum does not match: expected {expected.hex()} but got {actual.hex()}"
        if detail:
            msg += f" ({detail})"
        super().__init__(msg)


# Output
class WriteError(ArmorError):
    pass
