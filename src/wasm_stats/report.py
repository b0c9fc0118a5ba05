"""Report assembly: the single entry point tying the analyses together."""

import dataclasses
import logging
from dataclasses import dataclass

from .classify import Tally, classify_bodies, module_proposals
from .decoder import decode_module
from .externals import ExternalCounts, count_exports, count_imports
from .inference import DEFAULT_REGISTRY, InferenceVerdict, SignalRegistry, infer_language
from .sizes import SizeBreakdown, compute_sizes

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProposalCounts:
    atomics: int = 0
    ref_types: int = 0
    simd: int = 0
    tail_calls: int = 0
    bulk: int = 0
    multi_value: int = 0
    non_trapping_conv: int = 0
    sign_extend: int = 0
    mutable_externals: int = 0
    bigint_externals: int = 0


@dataclass(frozen=True)
class CategoryCounts:
    load_store: int = 0
    local_var: int = 0
    global_var: int = 0
    table: int = 0
    memory: int = 0
    control_flow: int = 0
    direct_calls: int = 0
    indirect_calls: int = 0
    constants: int = 0
    wait_notify: int = 0
    other: int = 0


@dataclass(frozen=True)
class InstructionStats:
    total: int
    proposals: ProposalCounts
    categories: CategoryCounts

    @classmethod
    def from_tally(cls, tally: Tally) -> "InstructionStats":
        return cls(
            total=tally.total,
            proposals=ProposalCounts(**tally.proposal_counts()),
            categories=CategoryCounts(**tally.category_counts()),
        )


@dataclass(frozen=True)
class Report:
    """Statistics for one module. Field names form the output contract."""

    funcs: int
    instr: InstructionStats
    size: SizeBreakdown
    imports: ExternalCounts
    exports: ExternalCounts
    custom_sections: tuple[str, ...]
    has_start: bool
    language: InferenceVerdict

    def to_dict(self) -> dict:
        """Return the report as plain data, ready for JSON rendering."""
        return {
            "funcs": self.funcs,
            "language": self.language.language.value,
            "instr": dataclasses.asdict(self.instr),
            "size": dataclasses.asdict(self.size),
            "imports": dataclasses.asdict(self.imports),
            "exports": dataclasses.asdict(self.exports),
            "custom_sections": list(self.custom_sections),
            "has_start": self.has_start,
        }


def analyze(
    raw_bytes: bytes,
    *,
    workers: int = 1,
    registry: SignalRegistry = DEFAULT_REGISTRY,
) -> Report:
    """Decode a module and compute its statistics.

    Args:
        raw_bytes: The complete module bytes
        workers: Number of processes used to classify function bodies
        registry: Signals used for language inference

    Raises:
        DecodeError: If the module is malformed; no partial report is made
    """
    module = decode_module(raw_bytes)
    tally = classify_bodies(module.bodies, workers) + module_proposals(module)
    logger.debug(
        "classified %d instructions in %d function bodies",
        tally.total,
        len(module.bodies),
    )
    return Report(
        funcs=len(module.bodies),
        instr=InstructionStats.from_tally(tally),
        size=compute_sizes(module),
        imports=count_imports(module),
        exports=count_exports(module),
        custom_sections=tuple(section.name for section in module.custom_sections),
        has_start=module.start is not None,
        language=infer_language(module, registry),
    )
