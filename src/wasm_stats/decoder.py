"""WebAssembly binary format decoder.

Walks the section sequence once and decodes each payload structurally.
Function bodies are framed here but their instructions are left as raw
bytes for the classifier to stream.
"""

import logging

from .errors import DecodeError
from .instructions import read_expr
from .reader import (
    BinaryReader,
    decode_name,
    decode_unsigned_leb128,
    decode_valtype,
)
from .types import (
    EXTERNAL_FUNC,
    EXTERNAL_GLOBAL,
    EXTERNAL_KIND_ENCODING,
    EXTERNAL_MEMORY,
    EXTERNAL_TABLE,
    REFTYPES,
    VALTYPE_FUNCREF,
    CustomSection,
    Data,
    Element,
    Export,
    FuncType,
    FunctionBody,
    Global,
    GlobalType,
    Import,
    Limits,
    MemoryType,
    Module,
    Section,
    SectionKind,
    TableType,
    ValType,
)

logger = logging.getLogger(__name__)

# WASM magic number and version
WASM_MAGIC = b"\x00asm"
WASM_VERSION = 1
PREAMBLE_SIZE = 8

FUNC_TYPE_MARKER = 0x60


def decode_reftype(reader: BinaryReader) -> ValType:
    """Decode a reference type (funcref or externref)."""
    valtype = decode_valtype(reader)
    if valtype not in REFTYPES:
        raise DecodeError(f"Expected a reference type, got {valtype}", reader.offset - 1)
    return valtype


def decode_limits(reader: BinaryReader, flags: int) -> Limits:
    """Decode limits (min, optional max) announced by a flags byte."""
    bits = 64 if flags & 0x04 else 32
    min_val = decode_unsigned_leb128(reader, bits)
    max_val = None
    if flags & 0x01:
        max_val = decode_unsigned_leb128(reader, bits)
    return Limits(min=min_val, max=max_val)


def decode_memory_type(reader: BinaryReader) -> MemoryType:
    """Decode a memory type. Flag 0x02 marks shared, 0x04 marks memory64."""
    flags = reader.read_byte()
    if flags & ~0x07:
        raise DecodeError(f"Invalid memory limits flags: 0x{flags:02x}", reader.offset - 1)
    limits = decode_limits(reader, flags)
    return MemoryType(limits, shared=bool(flags & 0x02), is_64=bool(flags & 0x04))


def decode_table_type(reader: BinaryReader) -> TableType:
    """Decode a table type."""
    element_type = decode_reftype(reader)
    flags = reader.read_byte()
    if flags & ~0x05:
        raise DecodeError(f"Invalid table limits flags: 0x{flags:02x}", reader.offset - 1)
    return TableType(element_type, decode_limits(reader, flags))


def decode_global_type(reader: BinaryReader) -> GlobalType:
    """Decode a global type."""
    valtype = decode_valtype(reader)
    mutability = reader.read_byte()
    if mutability not in (0x00, 0x01):
        raise DecodeError(f"Invalid global mutability: {mutability}", reader.offset - 1)
    return GlobalType(valtype, mutability == 0x01)


def decode_func_type(reader: BinaryReader) -> FuncType:
    """Decode a function type."""
    marker = reader.read_byte()
    if marker != FUNC_TYPE_MARKER:
        raise DecodeError(
            f"Expected function type marker 0x60, got 0x{marker:02x}",
            reader.offset - 1,
        )

    # Parameters
    param_count = decode_unsigned_leb128(reader)
    params = tuple(decode_valtype(reader) for _ in range(param_count))

    # Results
    result_count = decode_unsigned_leb128(reader)
    results = tuple(decode_valtype(reader) for _ in range(result_count))

    return FuncType(params, results)


def decode_type_section(reader: BinaryReader) -> tuple[FuncType, ...]:
    """Decode the type section."""
    count = decode_unsigned_leb128(reader)
    return tuple(decode_func_type(reader) for _ in range(count))


def decode_import_section(reader: BinaryReader) -> tuple[Import, ...]:
    """Decode the import section."""
    count = decode_unsigned_leb128(reader)
    imports = []
    for _ in range(count):
        mod_name = decode_name(reader)
        name = decode_name(reader)
        kind_byte = reader.read_byte()
        kind = EXTERNAL_KIND_ENCODING.get(kind_byte)

        if kind == EXTERNAL_FUNC:
            desc = decode_unsigned_leb128(reader)
        elif kind == EXTERNAL_TABLE:
            desc = decode_table_type(reader)
        elif kind == EXTERNAL_MEMORY:
            desc = decode_memory_type(reader)
        elif kind == EXTERNAL_GLOBAL:
            desc = decode_global_type(reader)
        else:
            raise DecodeError(f"Unknown import kind: {kind_byte}", reader.offset - 1)
        imports.append(Import(mod_name, name, kind, desc))
    return tuple(imports)


def decode_function_section(reader: BinaryReader) -> tuple[int, ...]:
    """Decode the function section (just type indices)."""
    count = decode_unsigned_leb128(reader)
    return tuple(decode_unsigned_leb128(reader) for _ in range(count))


def decode_table_section(reader: BinaryReader) -> tuple[TableType, ...]:
    """Decode the table section."""
    count = decode_unsigned_leb128(reader)
    return tuple(decode_table_type(reader) for _ in range(count))


def decode_memory_section(reader: BinaryReader) -> tuple[MemoryType, ...]:
    """Decode the memory section."""
    count = decode_unsigned_leb128(reader)
    return tuple(decode_memory_type(reader) for _ in range(count))


def decode_global_section(reader: BinaryReader) -> tuple[Global, ...]:
    """Decode the global section."""
    count = decode_unsigned_leb128(reader)
    globals_list = []
    for _ in range(count):
        global_type = decode_global_type(reader)
        init_size = read_expr(reader)
        globals_list.append(Global(global_type, init_size))
    return tuple(globals_list)


def decode_export_section(reader: BinaryReader) -> tuple[Export, ...]:
    """Decode the export section."""
    count = decode_unsigned_leb128(reader)
    exports = []
    for _ in range(count):
        name = decode_name(reader)
        kind_byte = reader.read_byte()
        if kind_byte not in EXTERNAL_KIND_ENCODING:
            raise DecodeError(f"Unknown export kind: {kind_byte}", reader.offset - 1)
        kind = EXTERNAL_KIND_ENCODING[kind_byte]
        index = decode_unsigned_leb128(reader)
        exports.append(Export(name, kind, index))
    return tuple(exports)


def decode_start_section(reader: BinaryReader) -> int:
    """Decode the start section."""
    return decode_unsigned_leb128(reader)


def decode_element_section(reader: BinaryReader) -> tuple[Element, ...]:
    """Decode the element section.

    Element segment flags:
    - 0: Active, table 0, funcref, expr offset, vec(funcidx)
    - 1: Passive, elemkind, vec(funcidx)
    - 2: Active, tableidx, expr offset, elemkind, vec(funcidx)
    - 3: Declarative, elemkind, vec(funcidx)
    - 4: Active, table 0, expr offset, vec(expr)
    - 5: Passive, reftype, vec(expr)
    - 6: Active, tableidx, expr offset, reftype, vec(expr)
    - 7: Declarative, reftype, vec(expr)
    """
    count = decode_unsigned_leb128(reader)
    elements = []
    for _ in range(count):
        flags_offset = reader.offset
        flags = decode_unsigned_leb128(reader)
        if flags > 7:
            raise DecodeError(f"Unsupported element segment flags: {flags}", flags_offset)

        uses_exprs = bool(flags & 0x04)
        table_idx = None
        if flags & 0x01:
            mode = "declarative" if flags & 0x02 else "passive"
        else:
            mode = "active"
            table_idx = decode_unsigned_leb128(reader) if flags & 0x02 else 0
            read_expr(reader)

        element_type = VALTYPE_FUNCREF
        if flags & 0x03:
            if uses_exprs:
                element_type = decode_reftype(reader)
            else:
                elemkind = reader.read_byte()
                if elemkind != 0x00:
                    raise DecodeError(
                        f"Unsupported element kind: {elemkind}", reader.offset - 1
                    )

        item_count = decode_unsigned_leb128(reader)
        for _ in range(item_count):
            if uses_exprs:
                read_expr(reader)
            else:
                decode_unsigned_leb128(reader)
        elements.append(Element(mode, table_idx, element_type, item_count))
    return tuple(elements)


def decode_code_section(reader: BinaryReader) -> tuple[FunctionBody, ...]:
    """Decode the code section into framed, still-encoded function bodies."""
    count = decode_unsigned_leb128(reader)
    bodies = []
    for _ in range(count):
        body_size = decode_unsigned_leb128(reader)
        body_reader = reader.sub_reader(body_size)

        # Local declarations
        local_count = decode_unsigned_leb128(body_reader)
        locals_list = []
        for _ in range(local_count):
            n = decode_unsigned_leb128(body_reader)
            valtype = decode_valtype(body_reader)
            locals_list.append((n, valtype))

        # The rest of the body is the instruction stream
        code_offset = body_reader.offset
        code = body_reader.read_bytes(body_reader.remaining())
        bodies.append(FunctionBody(tuple(locals_list), code, code_offset))
    return tuple(bodies)


def decode_data_section(reader: BinaryReader) -> tuple[Data, ...]:
    """Decode the data section."""
    count = decode_unsigned_leb128(reader)
    segments = []
    for _ in range(count):
        flags_offset = reader.offset
        flags = decode_unsigned_leb128(reader)

        if flags == 0:
            # Active segment for memory 0
            read_expr(reader)
            mode, mem_idx = "active", 0
        elif flags == 1:
            # Passive segment
            mode, mem_idx = "passive", None
        elif flags == 2:
            # Active segment with explicit memory index
            mem_idx = decode_unsigned_leb128(reader)
            read_expr(reader)
            mode = "active"
        else:
            raise DecodeError(f"Unsupported data segment flags: {flags}", flags_offset)

        length = decode_unsigned_leb128(reader)
        segments.append(Data(mode, mem_idx, reader.read_bytes(length)))
    return tuple(segments)


def decode_data_count_section(reader: BinaryReader) -> int:
    """Decode the data count section (bulk memory)."""
    return decode_unsigned_leb128(reader)


def decode_custom_section(reader: BinaryReader) -> CustomSection:
    """Decode a custom section: a name followed by opaque bytes."""
    name = decode_name(reader)
    return CustomSection(name, reader.read_bytes(reader.remaining()))


SECTION_DECODERS = {
    SectionKind.CUSTOM: decode_custom_section,
    SectionKind.TYPE: decode_type_section,
    SectionKind.IMPORT: decode_import_section,
    SectionKind.FUNCTION: decode_function_section,
    SectionKind.TABLE: decode_table_section,
    SectionKind.MEMORY: decode_memory_section,
    SectionKind.GLOBAL: decode_global_section,
    SectionKind.EXPORT: decode_export_section,
    SectionKind.START: decode_start_section,
    SectionKind.ELEMENT: decode_element_section,
    SectionKind.CODE: decode_code_section,
    SectionKind.DATA: decode_data_section,
    SectionKind.DATA_COUNT: decode_data_count_section,
}


def decode_section(reader: BinaryReader) -> Section:
    """Decode a single section; its payload decoder must use every byte."""
    offset = reader.offset
    section_id = reader.read_byte()
    try:
        kind = SectionKind(section_id)
    except ValueError:
        raise DecodeError(f"Unknown section id: {section_id}", offset) from None

    section_size = decode_unsigned_leb128(reader)
    header_size = reader.offset - offset
    if section_size > reader.remaining():
        raise DecodeError(
            f"{kind.name.lower()} section length {section_size} exceeds "
            f"the {reader.remaining()} remaining bytes",
            offset,
        )

    # Create a sub-reader for the section content
    section_reader = reader.sub_reader(section_size)
    payload = SECTION_DECODERS[kind](section_reader)
    if not section_reader.eof():
        raise DecodeError(
            f"{section_reader.remaining()} unconsumed bytes at the end of the "
            f"{kind.name.lower()} section",
            section_reader.offset,
        )
    return Section(kind, offset, header_size, section_size, payload)


def decode_module(data: bytes) -> Module:
    """Decode a WebAssembly module from binary format.

    Args:
        data: The complete module bytes

    Returns:
        Decoded Module object

    Raises:
        DecodeError: If the binary format is invalid
    """
    data = bytes(data)
    reader = BinaryReader(data)

    # Check magic number
    magic = reader.read_bytes(4)
    if magic != WASM_MAGIC:
        raise DecodeError(
            f"Invalid WASM magic number: expected {WASM_MAGIC!r}, got {magic!r}", 0
        )

    # Check version
    version = int.from_bytes(reader.read_bytes(4), "little")
    if version != WASM_VERSION:
        raise DecodeError(f"Unsupported WASM version: {version}", 4)

    sections = []
    payloads = {}
    while not reader.eof():
        section = decode_section(reader)
        if section.kind is not SectionKind.CUSTOM:
            if section.kind in payloads:
                raise DecodeError(
                    f"Duplicate {section.kind.name.lower()} section", section.offset
                )
            payloads[section.kind] = section.payload
        sections.append(section)
        logger.debug(
            "decoded %s section at offset %d (%d bytes)",
            section.kind.name.lower(),
            section.offset,
            section.size,
        )

    func_type_indices = payloads.get(SectionKind.FUNCTION, ())
    bodies = payloads.get(SectionKind.CODE, ())
    if len(bodies) != len(func_type_indices):
        code_sections = [s for s in sections if s.kind is SectionKind.CODE]
        raise DecodeError(
            f"Code section count ({len(bodies)}) != function section count "
            f"({len(func_type_indices)})",
            code_sections[0].offset if code_sections else len(data),
        )

    return Module(
        size=len(data),
        sections=tuple(sections),
        types=payloads.get(SectionKind.TYPE, ()),
        imports=payloads.get(SectionKind.IMPORT, ()),
        func_type_indices=func_type_indices,
        tables=payloads.get(SectionKind.TABLE, ()),
        memories=payloads.get(SectionKind.MEMORY, ()),
        globals=payloads.get(SectionKind.GLOBAL, ()),
        exports=payloads.get(SectionKind.EXPORT, ()),
        start=payloads.get(SectionKind.START),
        elements=payloads.get(SectionKind.ELEMENT, ()),
        bodies=bodies,
        data=payloads.get(SectionKind.DATA, ()),
        data_count=payloads.get(SectionKind.DATA_COUNT),
        custom_sections=tuple(
            s.payload for s in sections if s.kind is SectionKind.CUSTOM
        ),
    )


def decode_producers(section: CustomSection) -> dict[str, tuple[tuple[str, str], ...]]:
    """Decode the content of a ``producers`` custom section.

    Returns a mapping from field name ("language", "processed-by", "sdk")
    to its (name, version) pairs.
    """
    reader = BinaryReader(section.content)
    fields = {}
    field_count = decode_unsigned_leb128(reader)
    for _ in range(field_count):
        field_name = decode_name(reader)
        value_count = decode_unsigned_leb128(reader)
        values = []
        for _ in range(value_count):
            name = decode_name(reader)
            values.append((name, decode_name(reader)))
        fields[field_name] = tuple(values)
    if not reader.eof():
        raise DecodeError(
            f"{reader.remaining()} unconsumed bytes at the end of the producers section",
            reader.offset,
        )
    return fields
