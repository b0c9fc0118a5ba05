"""Tests for the analyze() entry point and report assembly."""

import json

import pytest
from wasm_stats import DecodeError, Language, analyze
from wasm_stats.externals import ExternalCounts, count_exports, count_imports
from wasm_stats.decoder import decode_module

from wasm_builder import (
    I32,
    I64,
    KIND_FUNC,
    KIND_GLOBAL,
    KIND_MEMORY,
    SECTION_GLOBAL,
    SECTION_MEMORY,
    SECTION_START,
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
    section,
    single_function_module,
    type_section,
    uleb,
    vec,
)

REPORT_KEYS = [
    "funcs",
    "language",
    "instr",
    "size",
    "imports",
    "exports",
    "custom_sections",
    "has_start",
]


def add_module() -> bytes:
    return module(
        type_section(func_type((I32, I32), (I32,))),
        function_section(0),
        export_section(export("add", KIND_FUNC, 0)),
        code_section(body(b"\x20\x00\x20\x01\x6a\x0b")),
    )


def busy_module(functions: int = 6) -> bytes:
    """Several functions mixing categories and proposals."""
    codes = [
        b"\x20\x00\x20\x01\x6a\x0b",
        i32_const(7) + b"\xc0\x1a\x0b",  # i32.extend8_s
        b"\x02\x00\x41\x01\x0b\x1a\x0b",  # block (type 0)
        b"\xfd\x0c" + bytes(16) + b"\x1a\x0b",
        b"\x10\x00\x1a\x0b",
        b"\x41\x00\x41\x00\x41\x00\xfc\x0b\x00\x0b",  # memory.fill
    ]
    bodies = [body(codes[i % len(codes)]) for i in range(functions)]
    return module(
        type_section(func_type((I32, I32), (I32,)), func_type((), (I32, I32))),
        function_section(*([0] * functions)),
        section(SECTION_MEMORY, vec([b"\x00" + uleb(1)])),
        code_section(*bodies),
    )


class TestAnalyze:
    def test_minimal_module(self):
        report = analyze(module())
        assert report.funcs == 0
        assert report.instr.total == 0
        assert report.has_start is False
        assert report.custom_sections == ()
        assert report.imports == ExternalCounts()
        assert report.exports == ExternalCounts()
        assert report.size.total == report.size.descriptors == 8
        assert report.language.language is Language.UNKNOWN

    def test_add_function(self):
        report = analyze(add_module())
        assert report.funcs == 1
        assert report.instr.total == 3
        assert report.instr.categories.local_var == 2
        assert report.instr.categories.other == 1
        assert report.exports.funcs == 1

    def test_imports_only_module(self):
        wasm = module(
            type_section(func_type()),
            import_section(import_func("env", "f", 0), import_memory("env", "memory")),
        )
        report = analyze(wasm)
        assert report.funcs == 0
        assert report.instr.total == 0
        assert report.imports == ExternalCounts(funcs=1, memories=1)

    def test_start_and_custom_sections(self):
        wasm = module(
            custom_section("name"),
            type_section(func_type()),
            function_section(0),
            section(SECTION_START, uleb(0)),
            code_section(body(b"\x0b")),
            custom_section("producers", vec([])),
            custom_section("name"),
        )
        report = analyze(wasm)
        assert report.has_start is True
        assert report.custom_sections == ("name", "producers", "name")

    def test_category_counts_sum_to_total(self):
        report = analyze(busy_module())
        categories = report.instr.categories
        assert sum(vars(categories).values()) == report.instr.total

    def test_instruction_and_module_proposals_combine(self):
        report = analyze(busy_module())
        proposals = report.instr.proposals
        assert proposals.sign_extend == 1
        assert proposals.simd == 1
        assert proposals.bulk == 1
        # one block typed by index plus one multi-result function type
        assert proposals.multi_value == 2

    def test_unknown_opcode_counts_as_other(self):
        report = analyze(single_function_module(b"\xe3\x0b"))
        assert report.instr.total == 1
        assert report.instr.categories.other == 1

    def test_malformed_module_yields_no_report(self):
        wasm = add_module()[:-2]
        with pytest.raises(DecodeError, match="exceeds"):
            analyze(wasm)

    def test_unterminated_body_yields_no_report(self):
        with pytest.raises(DecodeError, match="Unterminated"):
            analyze(single_function_module(b"\x01\x01"))

    @pytest.mark.parametrize("workers", [2, 4])
    def test_report_is_independent_of_workers(self, workers):
        wasm = busy_module(functions=13)
        sequential = json.dumps(analyze(wasm).to_dict())
        parallel = json.dumps(analyze(wasm, workers=workers).to_dict())
        assert parallel == sequential


class TestToDict:
    def test_keys_and_nested_shapes(self):
        data = analyze(add_module()).to_dict()
        assert list(data) == REPORT_KEYS
        assert list(data["instr"]) == ["total", "proposals", "categories"]
        assert list(data["instr"]["proposals"]) == [
            "atomics",
            "ref_types",
            "simd",
            "tail_calls",
            "bulk",
            "multi_value",
            "non_trapping_conv",
            "sign_extend",
            "mutable_externals",
            "bigint_externals",
        ]
        assert list(data["instr"]["categories"]) == [
            "load_store",
            "local_var",
            "global_var",
            "table",
            "memory",
            "control_flow",
            "direct_calls",
            "indirect_calls",
            "constants",
            "wait_notify",
            "other",
        ]
        assert list(data["size"]) == [
            "code",
            "init",
            "externals",
            "types",
            "custom",
            "descriptors",
            "total",
        ]
        assert list(data["imports"]) == ["funcs", "memories", "globals", "tables"]

    def test_is_json_serializable(self):
        data = json.loads(json.dumps(analyze(add_module()).to_dict()))
        assert data["language"] == "Unknown"
        assert data["custom_sections"] == []
        assert data["size"]["total"] == len(add_module())


class TestExternalCounts:
    def test_counts_by_kind(self):
        wasm = module(
            type_section(func_type((I64,), ())),
            import_section(
                import_func("env", "a", 0),
                import_func("env", "b", 0),
                import_global("env", "g", I32),
                import_memory("env", "memory"),
            ),
            section(SECTION_GLOBAL, vec([bytes([I32, 0x00]) + i32_const(0) + b"\x0b"])),
            export_section(
                export("memory", KIND_MEMORY, 0),
                export("g", KIND_GLOBAL, 1),
                export("a", KIND_FUNC, 0),
            ),
        )
        mod = decode_module(wasm)
        assert count_imports(mod) == ExternalCounts(funcs=2, memories=1, globals=1)
        assert count_exports(mod) == ExternalCounts(funcs=1, memories=1, globals=1)
