"""Import and export counts by external kind."""

from dataclasses import dataclass
from typing import Iterable

from .types import (
    EXTERNAL_FUNC,
    EXTERNAL_GLOBAL,
    EXTERNAL_MEMORY,
    EXTERNAL_TABLE,
    Export,
    Import,
    Module,
)


@dataclass(frozen=True)
class ExternalCounts:
    funcs: int = 0
    memories: int = 0
    globals: int = 0
    tables: int = 0


_FIELD_BY_KIND = {
    EXTERNAL_FUNC: "funcs",
    EXTERNAL_MEMORY: "memories",
    EXTERNAL_GLOBAL: "globals",
    EXTERNAL_TABLE: "tables",
}


def count_externals(entries: Iterable[Import | Export]) -> ExternalCounts:
    counts = dict.fromkeys(_FIELD_BY_KIND.values(), 0)
    for entry in entries:
        counts[_FIELD_BY_KIND[entry.kind]] += 1
    return ExternalCounts(**counts)


def count_imports(module: Module) -> ExternalCounts:
    return count_externals(module.imports)


def count_exports(module: Module) -> ExternalCounts:
    return count_externals(module.exports)
