"""Instruction boundary decoding.

Instructions are decoded only far enough to find where each one ends: the
opcode, the sub-opcode of prefixed instructions, and the immediates. No
validation of the operands is attempted.
"""

import struct
from dataclasses import dataclass
from typing import Iterator

from . import opcodes
from .errors import DecodeError
from .reader import (
    BinaryReader,
    decode_signed_leb128,
    decode_unsigned_leb128,
    decode_valtype,
)
from .types import VALTYPE_ENCODING

# Block type encoding
BLOCK_TYPE_EMPTY = 0x40

# Opcodes that open a block terminated by `end`
BLOCK_OPENERS = frozenset(
    {opcodes.BLOCK, opcodes.LOOP, opcodes.IF, opcodes.TRY, opcodes.TRY_TABLE}
)


@dataclass(frozen=True)
class Instruction:
    """A decoded instruction. ``sub_opcode`` is set for prefixed opcodes."""

    opcode: int
    sub_opcode: int | None = None
    immediates: tuple = ()

    def __repr__(self) -> str:
        if self.sub_opcode is None:
            name = f"0x{self.opcode:02x}"
        else:
            name = f"0x{self.opcode:02x} 0x{self.sub_opcode:02x}"
        if self.immediates:
            return f"{name} {self.immediates}"
        return name


def decode_blocktype(reader: BinaryReader) -> tuple | int:
    """Decode a block type (empty, valtype, or type index)."""
    byte = reader.read_byte()
    if byte == BLOCK_TYPE_EMPTY:
        return ()  # Empty result
    if byte in VALTYPE_ENCODING:
        return (VALTYPE_ENCODING[byte],)  # Single result type
    # Otherwise it's a signed 33-bit type index (for multi-value)
    reader.position -= 1
    index = decode_signed_leb128(reader, 33)
    if index < 0:
        raise DecodeError(f"Invalid block type: {index}", reader.offset)
    return index


def decode_memarg(reader: BinaryReader) -> tuple[int, int, int]:
    """Decode a memory argument as (align, offset, memory index).

    Bit 6 of the alignment field announces an explicit memory index
    (multi-memory); the offset is 64-bit wide for memory64.
    """
    align = decode_unsigned_leb128(reader)
    mem_idx = 0
    if align & 0x40:
        mem_idx = decode_unsigned_leb128(reader)
        align &= ~0x40
    offset = decode_unsigned_leb128(reader, 64)
    return (align, offset, mem_idx)


def _decode_try_table(reader: BinaryReader) -> tuple:
    blocktype = decode_blocktype(reader)
    count = decode_unsigned_leb128(reader)
    catches = []
    for _ in range(count):
        kind = reader.read_byte()
        if kind in (0x00, 0x01):  # catch, catch_ref
            tag = decode_unsigned_leb128(reader)
            catches.append((kind, tag, decode_unsigned_leb128(reader)))
        elif kind in (0x02, 0x03):  # catch_all, catch_all_ref
            catches.append((kind, None, decode_unsigned_leb128(reader)))
        else:
            raise DecodeError(f"Unknown catch clause kind: {kind}", reader.offset - 1)
    return (blocktype, tuple(catches))


def read_immediates(reader: BinaryReader, shape: str) -> tuple:
    """Read the immediates of one instruction according to its shape."""
    if shape == opcodes.IMM_NONE:
        return ()

    if shape == opcodes.IMM_U32:
        return (decode_unsigned_leb128(reader),)

    if shape == opcodes.IMM_MEMARG:
        return decode_memarg(reader)

    if shape == opcodes.IMM_I32:
        return (decode_signed_leb128(reader, 32),)

    if shape == opcodes.IMM_I64:
        return (decode_signed_leb128(reader, 64),)

    if shape == opcodes.IMM_BLOCKTYPE:
        return (decode_blocktype(reader),)

    if shape == opcodes.IMM_U32_PAIR:
        first = decode_unsigned_leb128(reader)
        return (first, decode_unsigned_leb128(reader))

    if shape == opcodes.IMM_F32:
        return struct.unpack("<f", reader.read_bytes(4))

    if shape == opcodes.IMM_F64:
        return struct.unpack("<d", reader.read_bytes(8))

    if shape == opcodes.IMM_BR_TABLE:
        # Vector of labels + default label
        count = decode_unsigned_leb128(reader)
        labels = tuple(decode_unsigned_leb128(reader) for _ in range(count))
        return (labels, decode_unsigned_leb128(reader))

    if shape == opcodes.IMM_SELECT_T:
        count = decode_unsigned_leb128(reader)
        return tuple(decode_valtype(reader) for _ in range(count))

    if shape == opcodes.IMM_HEAPTYPE:
        return (decode_signed_leb128(reader, 33),)

    if shape == opcodes.IMM_BYTE or shape == opcodes.IMM_LANE:
        return (reader.read_byte(),)

    if shape == opcodes.IMM_MEMARG_LANE:
        memarg = decode_memarg(reader)
        return memarg + (reader.read_byte(),)

    if shape == opcodes.IMM_V128:
        return (reader.read_bytes(16),)

    if shape == opcodes.IMM_TRY_TABLE:
        return _decode_try_table(reader)

    raise ValueError(f"Unknown immediate shape: {shape!r}")


def read_instruction(reader: BinaryReader) -> Instruction:
    """Decode a single instruction.

    Opcodes missing from the shape tables are assumed to carry no
    immediates, so unknown instructions never stop the stream by themselves.
    """
    opcode = reader.read_byte()

    if opcode in opcodes.PREFIXES:
        sub_opcode = decode_unsigned_leb128(reader)
        shape = opcodes.PREFIXED_IMMEDIATES.get((opcode, sub_opcode), opcodes.IMM_NONE)
        return Instruction(opcode, sub_opcode, read_immediates(reader, shape))

    shape = opcodes.IMMEDIATES.get(opcode, opcodes.IMM_NONE)
    return Instruction(opcode, None, read_immediates(reader, shape))


def iter_instructions(code: bytes, offset: int = 0) -> Iterator[Instruction]:
    """Stream the instructions of a function body.

    The body must end with `end` exactly at the end of ``code``. That
    terminating `end` belongs to the body's framing and is not yielded.
    """
    reader = BinaryReader(code, offset)
    last = None
    while not reader.eof():
        if last is not None:
            yield last
        last = read_instruction(reader)
    if last is None or last.sub_opcode is not None or last.opcode != opcodes.END:
        raise DecodeError(
            "Unterminated instruction stream: function body does not end with 'end'",
            reader.offset,
        )


def read_expr(reader: BinaryReader) -> int:
    """Skip an expression up to and including its terminating `end`.

    Returns the number of bytes the expression occupies.
    """
    start = reader.position
    depth = 0
    while True:
        instr = read_instruction(reader)
        if instr.sub_opcode is not None:
            continue
        if instr.opcode in BLOCK_OPENERS:
            depth += 1
        elif instr.opcode == opcodes.END:
            if depth == 0:
                return reader.position - start
            depth -= 1
