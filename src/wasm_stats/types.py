"""WebAssembly type definitions for the decoded module structure."""

from dataclasses import dataclass
from enum import Enum
from typing import Any


# Value type constants
VALTYPE_I32 = "i32"
VALTYPE_I64 = "i64"
VALTYPE_F32 = "f32"
VALTYPE_F64 = "f64"
VALTYPE_V128 = "v128"
VALTYPE_FUNCREF = "funcref"
VALTYPE_EXTERNREF = "externref"

# Binary encoding of value types
VALTYPE_ENCODING = {
    0x7F: VALTYPE_I32,
    0x7E: VALTYPE_I64,
    0x7D: VALTYPE_F32,
    0x7C: VALTYPE_F64,
    0x7B: VALTYPE_V128,
    0x70: VALTYPE_FUNCREF,
    0x6F: VALTYPE_EXTERNREF,
}

REFTYPES = frozenset({VALTYPE_FUNCREF, VALTYPE_EXTERNREF})

ValType = str  # One of the VALTYPE_* constants


class SectionKind(Enum):
    """Top-level section kinds, valued by their binary section id."""

    CUSTOM = 0
    TYPE = 1
    IMPORT = 2
    FUNCTION = 3
    TABLE = 4
    MEMORY = 5
    GLOBAL = 6
    EXPORT = 7
    START = 8
    ELEMENT = 9
    CODE = 10
    DATA = 11
    DATA_COUNT = 12


# External kinds
EXTERNAL_FUNC = "func"
EXTERNAL_TABLE = "table"
EXTERNAL_MEMORY = "memory"
EXTERNAL_GLOBAL = "global"

EXTERNAL_KIND_ENCODING = {
    0x00: EXTERNAL_FUNC,
    0x01: EXTERNAL_TABLE,
    0x02: EXTERNAL_MEMORY,
    0x03: EXTERNAL_GLOBAL,
}


@dataclass(frozen=True)
class FuncType:
    """WebAssembly function type (signature)."""

    params: tuple[ValType, ...]
    results: tuple[ValType, ...]

    def __repr__(self) -> str:
        params = ", ".join(self.params)
        results = ", ".join(self.results)
        return f"({params}) -> ({results})"


@dataclass(frozen=True)
class Limits:
    """Memory or table limits."""

    min: int
    max: int | None = None


@dataclass(frozen=True)
class MemoryType:
    """Memory type: limits plus the threads and memory64 flags."""

    limits: Limits
    shared: bool = False
    is_64: bool = False


@dataclass(frozen=True)
class TableType:
    """Table type with element type and limits."""

    element_type: ValType
    limits: Limits


@dataclass(frozen=True)
class GlobalType:
    """Global type with value type and mutability."""

    valtype: ValType
    mutable: bool


@dataclass(frozen=True)
class Import:
    """An import entry."""

    module: str
    name: str
    kind: str  # One of the EXTERNAL_* constants
    desc: Any  # Type index for func, TableType/MemoryType/GlobalType otherwise


@dataclass(frozen=True)
class Export:
    """An export entry."""

    name: str
    kind: str  # One of the EXTERNAL_* constants
    index: int


@dataclass(frozen=True)
class Global:
    """Global variable declaration.

    Only the byte length of the initializer expression is kept; nothing
    downstream evaluates it.
    """

    type: GlobalType
    init_size: int


@dataclass(frozen=True)
class Element:
    """Element segment. ``mode`` is "active", "passive" or "declarative"."""

    mode: str
    table_idx: int | None
    element_type: ValType
    count: int


@dataclass(frozen=True)
class Data:
    """Data segment for memory initialization."""

    mode: str  # "active" or "passive"
    memory_idx: int | None
    init: bytes


@dataclass(frozen=True)
class FunctionBody:
    """A function body from the code section.

    ``code`` is the raw instruction span following the local declarations;
    ``offset`` is its absolute position in the module.
    """

    locals: tuple[tuple[int, ValType], ...]
    code: bytes
    offset: int


@dataclass(frozen=True)
class CustomSection:
    """A custom section: a name and opaque content."""

    name: str
    content: bytes


@dataclass(frozen=True)
class Section:
    """A top-level section as it appears in the module.

    ``offset`` points at the section id byte; ``header_size`` covers the id
    and the length prefix; ``size`` is the declared payload length.
    """

    kind: SectionKind
    offset: int
    header_size: int
    size: int
    payload: Any


@dataclass(frozen=True)
class Module:
    """A decoded WebAssembly module."""

    size: int
    sections: tuple[Section, ...] = ()
    types: tuple[FuncType, ...] = ()
    imports: tuple[Import, ...] = ()
    func_type_indices: tuple[int, ...] = ()
    tables: tuple[TableType, ...] = ()
    memories: tuple[MemoryType, ...] = ()
    globals: tuple[Global, ...] = ()
    exports: tuple[Export, ...] = ()
    start: int | None = None
    elements: tuple[Element, ...] = ()
    bodies: tuple[FunctionBody, ...] = ()
    data: tuple[Data, ...] = ()
    data_count: int | None = None
    custom_sections: tuple[CustomSection, ...] = ()

    def sections_of(self, kind: SectionKind) -> list[Section]:
        """Return the sections of one kind, in stream order."""
        return [section for section in self.sections if section.kind is kind]

    def custom_section(self, name: str) -> CustomSection | None:
        """Return the first custom section with the given name."""
        for section in self.custom_sections:
            if section.name == name:
                return section
        return None
