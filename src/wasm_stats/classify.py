"""Instruction classification and tallying.

Every instruction lands in exactly one ``Category`` and in at most one
``Proposal`` bucket. Both lookups are plain table lookups with an explicit
default, so opcodes nobody has heard of are still counted (as ``other``).

Tallies are NumPy count vectors; merging two tallies is element-wise
addition, which makes the result independent of how function bodies are
split across workers.
"""

import functools
import operator
from collections import Counter
from concurrent.futures import ProcessPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Sequence

import numpy as np

from . import opcodes
from .instructions import BLOCK_OPENERS, Instruction, iter_instructions
from .types import (
    EXTERNAL_FUNC,
    EXTERNAL_GLOBAL,
    VALTYPE_I64,
    FunctionBody,
    Module,
)


class Category(Enum):
    LOAD_STORE = "load_store"
    LOCAL_VAR = "local_var"
    GLOBAL_VAR = "global_var"
    TABLE = "table"
    MEMORY = "memory"
    CONTROL_FLOW = "control_flow"
    DIRECT_CALLS = "direct_calls"
    INDIRECT_CALLS = "indirect_calls"
    CONSTANTS = "constants"
    WAIT_NOTIFY = "wait_notify"
    OTHER = "other"


class Proposal(Enum):
    ATOMICS = "atomics"
    REF_TYPES = "ref_types"
    SIMD = "simd"
    TAIL_CALLS = "tail_calls"
    BULK = "bulk"
    MULTI_VALUE = "multi_value"
    NON_TRAPPING_CONV = "non_trapping_conv"
    SIGN_EXTEND = "sign_extend"
    MUTABLE_EXTERNALS = "mutable_externals"
    BIGINT_EXTERNALS = "bigint_externals"


CATEGORIES = tuple(Category)
PROPOSALS = tuple(Proposal)
_CATEGORY_INDEX = {category: i for i, category in enumerate(CATEGORIES)}
_PROPOSAL_INDEX = {proposal: i for i, proposal in enumerate(PROPOSALS)}


CATEGORY_BY_OPCODE: dict[int, Category] = {
    opcodes.UNREACHABLE: Category.CONTROL_FLOW,
    opcodes.NOP: Category.CONTROL_FLOW,
    opcodes.BLOCK: Category.CONTROL_FLOW,
    opcodes.LOOP: Category.CONTROL_FLOW,
    opcodes.IF: Category.CONTROL_FLOW,
    opcodes.ELSE: Category.CONTROL_FLOW,
    opcodes.END: Category.CONTROL_FLOW,
    opcodes.BR: Category.CONTROL_FLOW,
    opcodes.BR_IF: Category.CONTROL_FLOW,
    opcodes.BR_TABLE: Category.CONTROL_FLOW,
    opcodes.RETURN: Category.CONTROL_FLOW,
    opcodes.DROP: Category.CONTROL_FLOW,
    opcodes.SELECT: Category.CONTROL_FLOW,
    opcodes.SELECT_T: Category.CONTROL_FLOW,
    opcodes.CALL: Category.DIRECT_CALLS,
    opcodes.RETURN_CALL: Category.DIRECT_CALLS,
    opcodes.CALL_INDIRECT: Category.INDIRECT_CALLS,
    opcodes.RETURN_CALL_INDIRECT: Category.INDIRECT_CALLS,
    opcodes.LOCAL_GET: Category.LOCAL_VAR,
    opcodes.LOCAL_SET: Category.LOCAL_VAR,
    opcodes.LOCAL_TEE: Category.LOCAL_VAR,
    opcodes.GLOBAL_GET: Category.GLOBAL_VAR,
    opcodes.GLOBAL_SET: Category.GLOBAL_VAR,
    opcodes.TABLE_GET: Category.TABLE,
    opcodes.TABLE_SET: Category.TABLE,
    opcodes.MEMORY_SIZE: Category.MEMORY,
    opcodes.MEMORY_GROW: Category.MEMORY,
    opcodes.I32_CONST: Category.CONSTANTS,
    opcodes.I64_CONST: Category.CONSTANTS,
    opcodes.F32_CONST: Category.CONSTANTS,
    opcodes.F64_CONST: Category.CONSTANTS,
    opcodes.REF_NULL: Category.CONSTANTS,
    opcodes.REF_FUNC: Category.CONSTANTS,
}
CATEGORY_BY_OPCODE.update(
    (op, Category.LOAD_STORE)
    for op in range(opcodes.FIRST_LOAD_STORE, opcodes.LAST_LOAD_STORE + 1)
)

_MISC, _SIMD, _ATOMIC = opcodes.MISC_PREFIX, opcodes.SIMD_PREFIX, opcodes.ATOMIC_PREFIX

CATEGORY_BY_PREFIXED: dict[tuple[int, int], Category] = {
    (_MISC, opcodes.MEMORY_INIT): Category.MEMORY,
    (_MISC, opcodes.DATA_DROP): Category.MEMORY,
    (_MISC, opcodes.MEMORY_COPY): Category.MEMORY,
    (_MISC, opcodes.MEMORY_FILL): Category.MEMORY,
    (_MISC, opcodes.TABLE_INIT): Category.TABLE,
    (_MISC, opcodes.ELEM_DROP): Category.TABLE,
    (_MISC, opcodes.TABLE_COPY): Category.TABLE,
    (_MISC, opcodes.TABLE_GROW): Category.TABLE,
    (_MISC, opcodes.TABLE_SIZE): Category.TABLE,
    (_MISC, opcodes.TABLE_FILL): Category.TABLE,
    (_SIMD, opcodes.V128_CONST): Category.CONSTANTS,
    (_SIMD, opcodes.V128_LOAD32_ZERO): Category.LOAD_STORE,
    (_SIMD, opcodes.V128_LOAD64_ZERO): Category.LOAD_STORE,
    (_ATOMIC, opcodes.MEMORY_ATOMIC_NOTIFY): Category.WAIT_NOTIFY,
    (_ATOMIC, opcodes.MEMORY_ATOMIC_WAIT32): Category.WAIT_NOTIFY,
    (_ATOMIC, opcodes.MEMORY_ATOMIC_WAIT64): Category.WAIT_NOTIFY,
}
CATEGORY_BY_PREFIXED.update(
    ((_SIMD, sub), Category.LOAD_STORE)
    for sub in range(opcodes.V128_LOAD, opcodes.V128_STORE + 1)
)
CATEGORY_BY_PREFIXED.update(
    ((_SIMD, sub), Category.LOAD_STORE)
    for sub in range(opcodes.V128_LOAD8_LANE, opcodes.V128_STORE64_LANE + 1)
)
CATEGORY_BY_PREFIXED.update(
    ((_ATOMIC, sub), Category.LOAD_STORE)
    for sub in range(opcodes.FIRST_ATOMIC_LOAD, opcodes.LAST_ATOMIC_STORE + 1)
)

PROPOSAL_BY_OPCODE: dict[int, Proposal] = {
    opcodes.RETURN_CALL: Proposal.TAIL_CALLS,
    opcodes.RETURN_CALL_INDIRECT: Proposal.TAIL_CALLS,
    opcodes.REF_NULL: Proposal.REF_TYPES,
    opcodes.REF_IS_NULL: Proposal.REF_TYPES,
    opcodes.REF_FUNC: Proposal.REF_TYPES,
}
# Sign extension is 0xC0..0xC4 only; i64.extend_i32_u (0xAD) is MVP and
# has no proposal, unlike tools that count it here
PROPOSAL_BY_OPCODE.update(
    (op, Proposal.SIGN_EXTEND)
    for op in range(opcodes.I32_EXTEND8_S, opcodes.I64_EXTEND32_S + 1)
)

# Every instruction behind these prefixes belongs to one proposal
PROPOSAL_BY_PREFIX: dict[int, Proposal] = {
    _SIMD: Proposal.SIMD,
    _ATOMIC: Proposal.ATOMICS,
}

PROPOSAL_BY_PREFIXED: dict[tuple[int, int], Proposal] = {
    (_MISC, opcodes.MEMORY_INIT): Proposal.BULK,
    (_MISC, opcodes.DATA_DROP): Proposal.BULK,
    (_MISC, opcodes.MEMORY_COPY): Proposal.BULK,
    (_MISC, opcodes.MEMORY_FILL): Proposal.BULK,
    (_MISC, opcodes.TABLE_INIT): Proposal.BULK,
    (_MISC, opcodes.ELEM_DROP): Proposal.BULK,
    (_MISC, opcodes.TABLE_COPY): Proposal.BULK,
    (_MISC, opcodes.TABLE_FILL): Proposal.BULK,
    (_MISC, opcodes.TABLE_GROW): Proposal.REF_TYPES,
    (_MISC, opcodes.TABLE_SIZE): Proposal.REF_TYPES,
}
PROPOSAL_BY_PREFIXED.update(
    ((_MISC, sub), Proposal.NON_TRAPPING_CONV)
    for sub in range(opcodes.I32_TRUNC_SAT_F32_S, opcodes.I64_TRUNC_SAT_F64_U + 1)
)


def category_of(instr: Instruction) -> Category:
    """Return the single category of an instruction; `other` by default."""
    if instr.sub_opcode is None:
        return CATEGORY_BY_OPCODE.get(instr.opcode, Category.OTHER)
    return CATEGORY_BY_PREFIXED.get((instr.opcode, instr.sub_opcode), Category.OTHER)


def proposal_of(instr: Instruction) -> Proposal | None:
    """Return the feature proposal an instruction belongs to, if any."""
    if instr.sub_opcode is not None:
        proposal = PROPOSAL_BY_PREFIX.get(instr.opcode)
        if proposal is None:
            proposal = PROPOSAL_BY_PREFIXED.get((instr.opcode, instr.sub_opcode))
        return proposal
    # A block type given as a type index is a multi-value signature
    if instr.opcode in BLOCK_OPENERS and isinstance(instr.immediates[0], int):
        return Proposal.MULTI_VALUE
    return PROPOSAL_BY_OPCODE.get(instr.opcode)


@dataclass(frozen=True, eq=False)
class Tally:
    """Per-category and per-proposal instruction counts."""

    categories: np.ndarray
    proposals: np.ndarray

    @classmethod
    def zero(cls) -> "Tally":
        return cls(
            np.zeros(len(CATEGORIES), dtype=np.int64),
            np.zeros(len(PROPOSALS), dtype=np.int64),
        )

    @classmethod
    def from_indices(cls, categories: Sequence[int], proposals: Sequence[int]) -> "Tally":
        return cls(
            np.bincount(
                np.asarray(categories, dtype=np.intp), minlength=len(CATEGORIES)
            ).astype(np.int64),
            np.bincount(
                np.asarray(proposals, dtype=np.intp), minlength=len(PROPOSALS)
            ).astype(np.int64),
        )

    def __add__(self, other: "Tally") -> "Tally":
        return Tally(self.categories + other.categories, self.proposals + other.proposals)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Tally):
            return NotImplemented
        return bool(
            np.array_equal(self.categories, other.categories)
            and np.array_equal(self.proposals, other.proposals)
        )

    @property
    def total(self) -> int:
        """Total instruction count: the sum over all categories."""
        return int(self.categories.sum())

    def count(self, key: Category | Proposal) -> int:
        if isinstance(key, Category):
            return int(self.categories[_CATEGORY_INDEX[key]])
        return int(self.proposals[_PROPOSAL_INDEX[key]])

    def category_counts(self) -> dict[str, int]:
        return {c.value: int(n) for c, n in zip(CATEGORIES, self.categories)}

    def proposal_counts(self) -> dict[str, int]:
        return {p.value: int(n) for p, n in zip(PROPOSALS, self.proposals)}


def classify_body(body: FunctionBody) -> Tally:
    """Stream one function body and tally its instructions."""
    categories = []
    proposals = []
    for instr in iter_instructions(body.code, body.offset):
        categories.append(_CATEGORY_INDEX[category_of(instr)])
        proposal = proposal_of(instr)
        if proposal is not None:
            proposals.append(_PROPOSAL_INDEX[proposal])
    return Tally.from_indices(categories, proposals)


def _classify_chunk(bodies: Sequence[FunctionBody]) -> Tally:
    return functools.reduce(operator.add, map(classify_body, bodies), Tally.zero())


def _split(bodies: Sequence[FunctionBody], parts: int) -> list[Sequence[FunctionBody]]:
    """Split bodies into at most ``parts`` contiguous, non-empty chunks."""
    size, extra = divmod(len(bodies), parts)
    chunks = []
    start = 0
    for i in range(parts):
        end = start + size + (1 if i < extra else 0)
        if end > start:
            chunks.append(bodies[start:end])
        start = end
    return chunks


def classify_bodies(bodies: Sequence[FunctionBody], workers: int = 1) -> Tally:
    """Classify every function body, optionally across a process pool.

    Each worker returns a private tally for its chunk and the partial
    tallies are summed, so the result does not depend on ``workers``.
    """
    if workers < 1:
        raise ValueError(f"workers must be at least 1, got {workers}")
    if workers == 1 or len(bodies) < 2:
        return _classify_chunk(bodies)

    chunks = _split(tuple(bodies), workers)
    with ProcessPoolExecutor(max_workers=len(chunks)) as pool:
        partials = list(pool.map(_classify_chunk, chunks))
    return functools.reduce(operator.add, partials, Tally.zero())


def _external_indices(module: Module, kind: str) -> tuple[list, set[int]]:
    """Return the index space of one external kind and its external indices.

    The index space lists imported entities first, as the format defines.
    """
    if kind == EXTERNAL_FUNC:
        space = [imp.desc for imp in module.imports if imp.kind == EXTERNAL_FUNC]
        space.extend(module.func_type_indices)
    else:
        space = [imp.desc for imp in module.imports if imp.kind == EXTERNAL_GLOBAL]
        space.extend(glob.type for glob in module.globals)
    imported = sum(1 for imp in module.imports if imp.kind == kind)
    external = set(range(imported))
    external.update(
        exp.index
        for exp in module.exports
        if exp.kind == kind and exp.index < len(space)
    )
    return space, external


def module_proposals(module: Module) -> Tally:
    """Count proposal usage visible in the module structure itself.

    Covers multi-value signatures, shared memories, the data count section,
    and mutable or i64-typed globals and functions crossing the module
    boundary (each imported or exported entity is counted once).
    """
    counts = Counter()
    counts[Proposal.MULTI_VALUE] += sum(1 for t in module.types if len(t.results) > 1)
    counts[Proposal.ATOMICS] += sum(1 for m in module.memories if m.shared)
    if module.data_count is not None:
        counts[Proposal.BULK] += 1

    globals_space, external_globals = _external_indices(module, EXTERNAL_GLOBAL)
    for index in sorted(external_globals):
        global_type = globals_space[index]
        if global_type.mutable:
            counts[Proposal.MUTABLE_EXTERNALS] += 1
        if global_type.valtype == VALTYPE_I64:
            counts[Proposal.BIGINT_EXTERNALS] += 1

    funcs_space, external_funcs = _external_indices(module, EXTERNAL_FUNC)
    for index in sorted(external_funcs):
        type_idx = funcs_space[index]
        if type_idx < len(module.types):
            func_type = module.types[type_idx]
            counts[Proposal.BIGINT_EXTERNALS] += sum(
                1 for valtype in func_type.params + func_type.results
                if valtype == VALTYPE_I64
            )

    proposals = np.zeros(len(PROPOSALS), dtype=np.int64)
    for proposal, n in counts.items():
        proposals[_PROPOSAL_INDEX[proposal]] = n
    return Tally(np.zeros(len(CATEGORIES), dtype=np.int64), proposals)
