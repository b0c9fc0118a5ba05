"""Tests for the WebAssembly section decoder."""

import logging

import pytest
from wasm_stats.decoder import decode_module, decode_producers
from wasm_stats.errors import DecodeError
from wasm_stats.types import CustomSection, Limits, SectionKind

from wasm_builder import (
    FUNCREF,
    I32,
    I64,
    KIND_FUNC,
    KIND_GLOBAL,
    PREAMBLE,
    SECTION_DATA,
    SECTION_DATA_COUNT,
    SECTION_ELEMENT,
    SECTION_GLOBAL,
    SECTION_MEMORY,
    SECTION_START,
    SECTION_TABLE,
    body,
    code_section,
    custom_section,
    export,
    export_section,
    func_type,
    function_section,
    i32_const,
    import_func,
    import_global,
    import_memory,
    import_section,
    module,
    name,
    section,
    type_section,
    uleb,
    vec,
)


class TestDecodeModule:
    """Test complete module decoding."""

    def test_decode_minimal_module(self):
        # Minimal valid WASM: magic + version + empty
        wasm = bytes(
            [
                0x00,
                0x61,
                0x73,
                0x6D,  # magic: \0asm
                0x01,
                0x00,
                0x00,
                0x00,  # version: 1
            ]
        )
        mod = decode_module(wasm)
        assert mod.size == 8
        assert mod.sections == ()
        assert mod.types == ()
        assert mod.bodies == ()
        assert mod.start is None

    def test_decode_invalid_magic(self):
        wasm = bytes([0x00, 0x00, 0x00, 0x00, 0x01, 0x00, 0x00, 0x00])
        with pytest.raises(DecodeError, match="magic"):
            decode_module(wasm)

    def test_decode_invalid_version(self):
        wasm = bytes([0x00, 0x61, 0x73, 0x6D, 0x02, 0x00, 0x00, 0x00])
        with pytest.raises(DecodeError, match="version"):
            decode_module(wasm)

    def test_decode_truncated_preamble(self):
        with pytest.raises(DecodeError, match="Unexpected end"):
            decode_module(b"\x00asm\x01")

    def test_decode_type_section(self):
        # Module with one function type: (i32, i32) -> i32
        wasm = bytes(
            [
                0x00,
                0x61,
                0x73,
                0x6D,  # magic
                0x01,
                0x00,
                0x00,
                0x00,  # version
                # Type section
                0x01,  # section id: type
                0x07,  # section size: 7 bytes
                0x01,  # number of types: 1
                0x60,  # func type marker
                0x02,  # number of params: 2
                0x7F,  # param 1: i32
                0x7F,  # param 2: i32
                0x01,  # number of results: 1
                0x7F,  # result: i32
            ]
        )
        mod = decode_module(wasm)
        assert len(mod.types) == 1
        assert mod.types[0].params == ("i32", "i32")
        assert mod.types[0].results == ("i32",)

        [sec] = mod.sections
        assert sec.kind is SectionKind.TYPE
        assert sec.offset == 8
        assert sec.header_size == 2
        assert sec.size == 7

    def test_decode_function_and_code_sections(self):
        wasm = module(
            type_section(func_type((I32, I32), (I32,))),
            function_section(0),
            code_section(
                body(b"\x20\x00\x20\x01\x6a\x0b", local_groups=[(2, I64)])
            ),
        )
        mod = decode_module(wasm)
        assert mod.func_type_indices == (0,)
        [func] = mod.bodies
        assert func.locals == ((2, "i64"),)
        # local.get 0, local.get 1, i32.add, end
        assert func.code == b"\x20\x00\x20\x01\x6a\x0b"
        assert wasm[func.offset : func.offset + len(func.code)] == func.code

    def test_decode_imports(self):
        wasm = module(
            type_section(func_type()),
            import_section(
                import_func("env", "f", 0),
                import_global("env", "g", I64, mutable=True),
                import_memory("env", "memory", 2),
            ),
        )
        mod = decode_module(wasm)
        func, glob, mem = mod.imports
        assert (func.module, func.name, func.kind, func.desc) == ("env", "f", "func", 0)
        assert glob.kind == "global"
        assert glob.desc.valtype == "i64"
        assert glob.desc.mutable
        assert mem.kind == "memory"
        assert mem.desc.limits == Limits(2, None)

    def test_decode_export_section(self):
        wasm = module(
            type_section(func_type((I32, I32), (I32,))),
            function_section(0),
            export_section(export("add", KIND_FUNC, 0)),
            code_section(body(b"\x20\x00\x20\x01\x6a\x0b")),
        )
        mod = decode_module(wasm)
        assert len(mod.exports) == 1
        exp = mod.exports[0]
        assert exp.name == "add"
        assert exp.kind == "func"
        assert exp.index == 0

    def test_decode_tables_and_memories(self):
        wasm = module(
            section(SECTION_TABLE, vec([bytes([FUNCREF, 0x01]) + uleb(1) + uleb(10)])),
            section(SECTION_MEMORY, vec([b"\x03" + uleb(1) + uleb(16)])),
        )
        mod = decode_module(wasm)
        assert mod.tables[0].element_type == "funcref"
        assert mod.tables[0].limits == Limits(1, 10)
        [mem] = mod.memories
        assert mem.shared
        assert not mem.is_64
        assert mem.limits == Limits(1, 16)

    def test_decode_memory64_limits(self):
        wasm = module(section(SECTION_MEMORY, vec([b"\x04" + uleb(2**33)])))
        [mem] = decode_module(wasm).memories
        assert mem.is_64
        assert mem.limits.min == 2**33

    def test_decode_globals_record_init_size(self):
        init = i32_const(1024) + b"\x0b"
        wasm = module(section(SECTION_GLOBAL, vec([bytes([I32, 0x01]) + init])))
        [glob] = decode_module(wasm).globals
        assert glob.type.mutable
        assert glob.init_size == len(init)

    def test_decode_start_section(self):
        wasm = module(
            type_section(func_type()),
            function_section(0),
            section(SECTION_START, uleb(0)),
            code_section(body(b"\x0b")),
        )
        assert decode_module(wasm).start == 0

    def test_decode_element_segments(self):
        offset = i32_const(0) + b"\x0b"
        ref_func = b"\xd2\x00\x0b"
        wasm = module(
            type_section(func_type()),
            function_section(0),
            section(
                SECTION_ELEMENT,
                vec(
                    [
                        uleb(0) + offset + vec([uleb(0), uleb(0)]),
                        uleb(1) + b"\x00" + vec([uleb(0)]),
                        uleb(2) + uleb(1) + offset + b"\x00" + vec([uleb(0)]),
                        uleb(3) + b"\x00" + vec([uleb(0)]),
                        uleb(5) + bytes([FUNCREF]) + vec([ref_func, b"\xd0\x70\x0b"]),
                        uleb(6) + uleb(0) + offset + bytes([FUNCREF]) + vec([ref_func]),
                    ]
                ),
            ),
            code_section(body(b"\x0b")),
        )
        elements = decode_module(wasm).elements
        assert [e.mode for e in elements] == [
            "active",
            "passive",
            "active",
            "declarative",
            "passive",
            "active",
        ]
        assert [e.table_idx for e in elements] == [0, None, 1, None, None, 0]
        assert [e.count for e in elements] == [2, 1, 1, 1, 2, 1]

    def test_decode_data_segments(self):
        offset = i32_const(16) + b"\x0b"
        wasm = module(
            section(SECTION_MEMORY, vec([b"\x00" + uleb(1)])),
            section(SECTION_DATA_COUNT, uleb(3)),
            section(
                SECTION_DATA,
                vec(
                    [
                        uleb(0) + offset + vec([b"h", b"i"]),
                        uleb(1) + vec([b"x"]),
                        uleb(2) + uleb(0) + offset + vec([]),
                    ]
                ),
            ),
        )
        mod = decode_module(wasm)
        assert mod.data_count == 3
        assert [d.mode for d in mod.data] == ["active", "passive", "active"]
        assert [d.init for d in mod.data] == [b"hi", b"x", b""]

    def test_decode_custom_sections_in_order(self):
        wasm = module(
            custom_section("name", b"\x00\x01"),
            type_section(func_type()),
            custom_section("producers"),
        )
        mod = decode_module(wasm)
        assert [c.name for c in mod.custom_sections] == ["name", "producers"]
        assert mod.custom_sections[0].content == b"\x00\x01"
        assert mod.custom_section("producers") is not None
        assert mod.custom_section("missing") is None


class TestFramingErrors:
    """Malformed framing must abort decoding."""

    def test_section_length_exceeds_input(self):
        wasm = PREAMBLE + b"\x01\x10\x00"
        with pytest.raises(DecodeError, match="exceeds") as excinfo:
            decode_module(wasm)
        assert excinfo.value.offset == 8

    def test_leftover_bytes_in_section(self):
        # Type section declaring 0 types but carrying an extra byte
        wasm = PREAMBLE + b"\x01\x02\x00\x00"
        with pytest.raises(DecodeError, match="unconsumed") as excinfo:
            decode_module(wasm)
        assert excinfo.value.offset == 11

    def test_payload_shorter_than_declared_content(self):
        # One type declared, but the section ends after the marker
        wasm = PREAMBLE + b"\x01\x02\x01\x60"
        with pytest.raises(DecodeError, match="Unexpected end"):
            decode_module(wasm)

    def test_unknown_section_id(self):
        wasm = PREAMBLE + b"\x0d\x00"
        with pytest.raises(DecodeError, match="Unknown section id: 13"):
            decode_module(wasm)

    def test_duplicate_section(self):
        wasm = module(type_section(), type_section())
        with pytest.raises(DecodeError, match="Duplicate type section"):
            decode_module(wasm)

    def test_duplicate_custom_sections_are_allowed(self):
        wasm = module(custom_section("a"), custom_section("a"))
        assert len(decode_module(wasm).custom_sections) == 2

    def test_function_code_count_mismatch(self):
        wasm = module(
            type_section(func_type()),
            function_section(0, 0),
            code_section(body(b"\x0b")),
        )
        with pytest.raises(DecodeError, match="count"):
            decode_module(wasm)

    def test_function_section_without_code(self):
        wasm = module(type_section(func_type()), function_section(0))
        with pytest.raises(DecodeError, match="count"):
            decode_module(wasm)

    def test_body_size_overrun(self):
        # Body claims 9 bytes inside a 3-byte code section payload
        wasm = module(
            type_section(func_type()),
            function_section(0),
            section(10, b"\x01\x09\x00"),
        )
        with pytest.raises(DecodeError):
            decode_module(wasm)

    def test_unknown_import_kind(self):
        wasm = module(import_section(name("env") + name("x") + b"\x07"))
        with pytest.raises(DecodeError, match="Unknown import kind: 7"):
            decode_module(wasm)

    def test_unknown_export_kind(self):
        wasm = module(export_section(name("x") + b"\x09\x00"))
        with pytest.raises(DecodeError, match="Unknown export kind: 9"):
            decode_module(wasm)

    def test_bad_func_type_marker(self):
        wasm = module(section(1, b"\x01\x61\x00\x00"))
        with pytest.raises(DecodeError, match="marker"):
            decode_module(wasm)

    def test_invalid_section_name_utf8(self):
        wasm = PREAMBLE + section(0, b"\x01\xff")
        with pytest.raises(DecodeError, match="UTF-8"):
            decode_module(wasm)

    def test_oversized_section_length(self):
        wasm = PREAMBLE + b"\x01\x80\x80\x80\x80\x80\x00"
        with pytest.raises(DecodeError, match="too long"):
            decode_module(wasm)


class TestProducers:
    def test_decode_producers(self):
        content = vec(
            [
                name("language") + vec([name("Rust") + name("")]),
                name("processed-by")
                + vec([name("rustc") + name("1.70.0"), name("walrus") + name("0.20")]),
            ]
        )
        fields = decode_producers(CustomSection("producers", content))
        assert fields["language"] == (("Rust", ""),)
        assert fields["processed-by"] == (("rustc", "1.70.0"), ("walrus", "0.20"))

    def test_decode_producers_trailing_bytes(self):
        content = vec([]) + b"\x00"
        with pytest.raises(DecodeError, match="unconsumed"):
            decode_producers(CustomSection("producers", content))


def test_decoder_logs_sections_at_debug(caplog):
    wasm = module(type_section(func_type()), custom_section("name"))
    with caplog.at_level(logging.DEBUG, logger="wasm_stats.decoder"):
        decode_module(wasm)
    messages = [r.getMessage() for r in caplog.records]
    assert "decoded type section at offset 8 (4 bytes)" in messages
    assert any(m.startswith("decoded custom section") for m in messages)
