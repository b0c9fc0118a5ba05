"""Byte-size breakdown of a module by section purpose."""

from dataclasses import dataclass

from .decoder import PREAMBLE_SIZE
from .types import Module, SectionKind


@dataclass(frozen=True)
class SizeBreakdown:
    """Module bytes split into buckets that sum to ``total``.

    ``descriptors`` holds everything that only describes the module's
    shape: the preamble, every section header, the function, table,
    memory, start and data count sections, and the global section minus
    its initializer expressions.
    """

    code: int
    init: int
    externals: int
    types: int
    custom: int
    descriptors: int
    total: int


# Section kinds whose whole payload lands in one bucket
_PAYLOAD_BUCKETS = {
    SectionKind.CODE: "code",
    SectionKind.ELEMENT: "init",
    SectionKind.DATA: "init",
    SectionKind.IMPORT: "externals",
    SectionKind.EXPORT: "externals",
    SectionKind.TYPE: "types",
    SectionKind.CUSTOM: "custom",
}


def compute_sizes(module: Module) -> SizeBreakdown:
    """Compute the size breakdown from the recorded section boundaries."""
    buckets = dict.fromkeys(("code", "init", "externals", "types", "custom"), 0)
    descriptors = PREAMBLE_SIZE
    for section in module.sections:
        descriptors += section.header_size
        bucket = _PAYLOAD_BUCKETS.get(section.kind)
        if bucket is not None:
            buckets[bucket] += section.size
        elif section.kind is SectionKind.GLOBAL:
            init = sum(glob.init_size for glob in section.payload)
            buckets["init"] += init
            descriptors += section.size - init
        else:
            descriptors += section.size
    return SizeBreakdown(descriptors=descriptors, total=module.size, **buckets)
