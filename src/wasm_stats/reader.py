"""Bounded byte cursor and the primitive encodings of the binary format."""

from .errors import DecodeError
from .types import VALTYPE_ENCODING, ValType


class BinaryReader:
    """A forward-only reader for binary data with position tracking.

    ``base`` is the absolute offset of ``data[0]`` within the module, so
    errors raised from readers over a slice still point into the module.
    A failed read never moves the cursor.
    """

    def __init__(self, data: bytes, base: int = 0) -> None:
        self.data = data
        self.base = base
        self.position = 0

    @property
    def offset(self) -> int:
        """Absolute offset of the cursor within the module."""
        return self.base + self.position

    def read_byte(self) -> int:
        """Read a single byte."""
        if self.position >= len(self.data):
            raise DecodeError("Unexpected end of data", self.offset)
        byte = self.data[self.position]
        self.position += 1
        return byte

    def read_bytes(self, n: int) -> bytes:
        """Read n bytes."""
        if n > self.remaining():
            raise DecodeError(
                f"Unexpected end of data: wanted {n} bytes, {self.remaining()} left",
                self.offset,
            )
        result = bytes(self.data[self.position : self.position + n])
        self.position += n
        return result

    def sub_reader(self, n: int) -> "BinaryReader":
        """Split off a reader over the next n bytes and skip past them."""
        base = self.offset
        return BinaryReader(self.read_bytes(n), base)

    def eof(self) -> bool:
        """Check if at end of data."""
        return self.position >= len(self.data)

    def remaining(self) -> int:
        """Return number of remaining bytes."""
        return len(self.data) - self.position


def decode_unsigned_leb128(reader: BinaryReader, max_bits: int = 32) -> int:
    """Decode an unsigned LEB128 integer of at most ``max_bits`` bits.

    Encodings longer than ``ceil(max_bits / 7)`` bytes and values that do
    not fit in ``max_bits`` are rejected.
    """
    data = reader.data
    start = reader.position
    pos = start
    result = 0
    shift = 0
    for _ in range((max_bits + 6) // 7):
        if pos >= len(data):
            raise DecodeError("Unexpected end of data in LEB128 integer", reader.offset)
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        shift += 7
        if not byte & 0x80:
            if result >> max_bits:
                raise DecodeError(
                    f"LEB128 integer too large for u{max_bits}", reader.offset
                )
            reader.position = pos
            return result
    raise DecodeError(f"LEB128 integer too long for u{max_bits}", reader.offset)


def decode_signed_leb128(reader: BinaryReader, max_bits: int = 32) -> int:
    """Decode a signed LEB128 integer of at most ``max_bits`` bits."""
    data = reader.data
    pos = reader.position
    result = 0
    shift = 0
    for _ in range((max_bits + 6) // 7):
        if pos >= len(data):
            raise DecodeError("Unexpected end of data in LEB128 integer", reader.offset)
        byte = data[pos]
        pos += 1
        result |= (byte & 0x7F) << shift
        shift += 7
        if not byte & 0x80:
            # Sign extend if the sign bit (bit 6 of the last byte) is set
            if byte & 0x40:
                result -= 1 << shift
            limit = 1 << (max_bits - 1)
            if not -limit <= result < limit:
                raise DecodeError(
                    f"LEB128 integer too large for s{max_bits}", reader.offset
                )
            reader.position = pos
            return result
    raise DecodeError(f"LEB128 integer too long for s{max_bits}", reader.offset)


def decode_name(reader: BinaryReader) -> str:
    """Decode a UTF-8 name (length-prefixed byte vector)."""
    start = reader.position
    length = decode_unsigned_leb128(reader)
    try:
        data = reader.read_bytes(length)
    except DecodeError:
        reader.position = start
        raise
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as e:
        reader.position = start
        raise DecodeError(f"Invalid UTF-8 in name: {e}", reader.offset) from e


def decode_valtype(reader: BinaryReader) -> ValType:
    """Decode a value type."""
    byte = reader.read_byte()
    if byte not in VALTYPE_ENCODING:
        reader.position -= 1
        raise DecodeError(f"Unknown value type: 0x{byte:02x}", reader.offset)
    return VALTYPE_ENCODING[byte]
