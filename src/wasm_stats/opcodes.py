"""WebAssembly opcode definitions and immediate operand shapes.

Single-byte opcodes are plain ints. Prefixed instructions (``0xFC`` misc,
``0xFD`` SIMD, ``0xFE`` threads) are identified by the pair
``(prefix, sub_opcode)`` where the sub-opcode is a LEB128 u32. The GC
prefix ``0xFB`` is not decoded as a prefix: GC types are not supported, so
it reads as an unknown single-byte opcode.
"""

# Control instructions
UNREACHABLE = 0x00
NOP = 0x01
BLOCK = 0x02
LOOP = 0x03
IF = 0x04
ELSE = 0x05
TRY = 0x06  # Exception handling (legacy)
CATCH = 0x07
THROW = 0x08
RETHROW = 0x09
THROW_REF = 0x0A
END = 0x0B
BR = 0x0C
BR_IF = 0x0D
BR_TABLE = 0x0E
RETURN = 0x0F
CALL = 0x10
CALL_INDIRECT = 0x11
RETURN_CALL = 0x12  # Tail calls
RETURN_CALL_INDIRECT = 0x13
CALL_REF = 0x14  # Typed function references
RETURN_CALL_REF = 0x15
DELEGATE = 0x18
CATCH_ALL = 0x19

# Parametric instructions
DROP = 0x1A
SELECT = 0x1B
SELECT_T = 0x1C  # typed select (post-MVP)
TRY_TABLE = 0x1F

# Variable instructions
LOCAL_GET = 0x20
LOCAL_SET = 0x21
LOCAL_TEE = 0x22
GLOBAL_GET = 0x23
GLOBAL_SET = 0x24

# Table instructions (reference types)
TABLE_GET = 0x25
TABLE_SET = 0x26

# Memory instructions: i32.load (0x28) through i64.store32 (0x3E)
FIRST_LOAD_STORE = 0x28
LAST_LOAD_STORE = 0x3E
MEMORY_SIZE = 0x3F
MEMORY_GROW = 0x40

# Constants
I32_CONST = 0x41
I64_CONST = 0x42
F32_CONST = 0x43
F64_CONST = 0x44

# Numeric instructions without immediates: i32.eqz (0x45) through
# f64.reinterpret_i64 (0xBF)
FIRST_NUMERIC = 0x45
I32_ADD = 0x6A
I32_SUB = 0x6B
I64_ADD = 0x7C
LAST_NUMERIC = 0xBF

# Sign extension
I32_EXTEND8_S = 0xC0
I32_EXTEND16_S = 0xC1
I64_EXTEND8_S = 0xC2
I64_EXTEND16_S = 0xC3
I64_EXTEND32_S = 0xC4

# Reference instructions
REF_NULL = 0xD0
REF_IS_NULL = 0xD1
REF_FUNC = 0xD2
REF_EQ = 0xD3
REF_AS_NON_NULL = 0xD4
BR_ON_NULL = 0xD5
BR_ON_NON_NULL = 0xD6

# Prefixes. GC_PREFIX is absent from PREFIXES until GC types decode.
GC_PREFIX = 0xFB
MISC_PREFIX = 0xFC
SIMD_PREFIX = 0xFD
ATOMIC_PREFIX = 0xFE

PREFIXES = frozenset({MISC_PREFIX, SIMD_PREFIX, ATOMIC_PREFIX})

# Misc (0xFC) sub-opcodes
I32_TRUNC_SAT_F32_S = 0x00
I64_TRUNC_SAT_F64_U = 0x07
MEMORY_INIT = 0x08
DATA_DROP = 0x09
MEMORY_COPY = 0x0A
MEMORY_FILL = 0x0B
TABLE_INIT = 0x0C
ELEM_DROP = 0x0D
TABLE_COPY = 0x0E
TABLE_GROW = 0x0F
TABLE_SIZE = 0x10
TABLE_FILL = 0x11

# SIMD (0xFD) sub-opcodes
V128_LOAD = 0x00
V128_LOAD64_SPLAT = 0x0A
V128_STORE = 0x0B
V128_CONST = 0x0C
I8X16_SHUFFLE = 0x0D
FIRST_LANE_OP = 0x15  # i8x16.extract_lane_s
LAST_LANE_OP = 0x22  # f64x2.replace_lane
V128_LOAD8_LANE = 0x54
V128_STORE64_LANE = 0x5B
V128_LOAD32_ZERO = 0x5C
V128_LOAD64_ZERO = 0x5D

# Threads (0xFE) sub-opcodes
MEMORY_ATOMIC_NOTIFY = 0x00
MEMORY_ATOMIC_WAIT32 = 0x01
MEMORY_ATOMIC_WAIT64 = 0x02
ATOMIC_FENCE = 0x03
FIRST_ATOMIC_LOAD = 0x10  # i32.atomic.load
LAST_ATOMIC_LOAD = 0x16  # i64.atomic.load32_u
FIRST_ATOMIC_STORE = 0x17  # i32.atomic.store
LAST_ATOMIC_STORE = 0x1D  # i64.atomic.store32
FIRST_ATOMIC_RMW = 0x1E
LAST_ATOMIC_RMW = 0x4E

# Immediate operand shapes
IMM_NONE = "none"
IMM_BYTE = "byte"  # reserved zero byte
IMM_U32 = "u32"
IMM_U32_PAIR = "u32 u32"
IMM_I32 = "i32"
IMM_I64 = "i64"
IMM_F32 = "f32"
IMM_F64 = "f64"
IMM_MEMARG = "memarg"
IMM_MEMARG_LANE = "memarg lane"
IMM_LANE = "lane"
IMM_V128 = "v128"  # 16 raw bytes (v128.const, i8x16.shuffle)
IMM_BLOCKTYPE = "blocktype"
IMM_BR_TABLE = "br_table"
IMM_SELECT_T = "select_t"
IMM_HEAPTYPE = "heaptype"
IMM_TRY_TABLE = "try_table"

# Opcodes whose shape differs from IMM_NONE. Anything absent (including
# opcodes this table has never heard of) is read as having no immediates.
IMMEDIATES: dict[int, str] = {
    BLOCK: IMM_BLOCKTYPE,
    LOOP: IMM_BLOCKTYPE,
    IF: IMM_BLOCKTYPE,
    TRY: IMM_BLOCKTYPE,
    CATCH: IMM_U32,
    THROW: IMM_U32,
    RETHROW: IMM_U32,
    BR: IMM_U32,
    BR_IF: IMM_U32,
    BR_TABLE: IMM_BR_TABLE,
    CALL: IMM_U32,
    CALL_INDIRECT: IMM_U32_PAIR,
    RETURN_CALL: IMM_U32,
    RETURN_CALL_INDIRECT: IMM_U32_PAIR,
    CALL_REF: IMM_U32,
    RETURN_CALL_REF: IMM_U32,
    DELEGATE: IMM_U32,
    SELECT_T: IMM_SELECT_T,
    TRY_TABLE: IMM_TRY_TABLE,
    LOCAL_GET: IMM_U32,
    LOCAL_SET: IMM_U32,
    LOCAL_TEE: IMM_U32,
    GLOBAL_GET: IMM_U32,
    GLOBAL_SET: IMM_U32,
    TABLE_GET: IMM_U32,
    TABLE_SET: IMM_U32,
    MEMORY_SIZE: IMM_U32,
    MEMORY_GROW: IMM_U32,
    I32_CONST: IMM_I32,
    I64_CONST: IMM_I64,
    F32_CONST: IMM_F32,
    F64_CONST: IMM_F64,
    REF_NULL: IMM_HEAPTYPE,
    REF_FUNC: IMM_U32,
    BR_ON_NULL: IMM_U32,
    BR_ON_NON_NULL: IMM_U32,
}
IMMEDIATES.update(
    (op, IMM_MEMARG) for op in range(FIRST_LOAD_STORE, LAST_LOAD_STORE + 1)
)

PREFIXED_IMMEDIATES: dict[tuple[int, int], str] = {
    (MISC_PREFIX, MEMORY_INIT): IMM_U32_PAIR,
    (MISC_PREFIX, DATA_DROP): IMM_U32,
    (MISC_PREFIX, MEMORY_COPY): IMM_U32_PAIR,
    (MISC_PREFIX, MEMORY_FILL): IMM_U32,
    (MISC_PREFIX, TABLE_INIT): IMM_U32_PAIR,
    (MISC_PREFIX, ELEM_DROP): IMM_U32,
    (MISC_PREFIX, TABLE_COPY): IMM_U32_PAIR,
    (MISC_PREFIX, TABLE_GROW): IMM_U32,
    (MISC_PREFIX, TABLE_SIZE): IMM_U32,
    (MISC_PREFIX, TABLE_FILL): IMM_U32,
    (SIMD_PREFIX, V128_CONST): IMM_V128,
    (SIMD_PREFIX, I8X16_SHUFFLE): IMM_V128,
    (SIMD_PREFIX, V128_LOAD32_ZERO): IMM_MEMARG,
    (SIMD_PREFIX, V128_LOAD64_ZERO): IMM_MEMARG,
    (ATOMIC_PREFIX, MEMORY_ATOMIC_NOTIFY): IMM_MEMARG,
    (ATOMIC_PREFIX, MEMORY_ATOMIC_WAIT32): IMM_MEMARG,
    (ATOMIC_PREFIX, MEMORY_ATOMIC_WAIT64): IMM_MEMARG,
    (ATOMIC_PREFIX, ATOMIC_FENCE): IMM_BYTE,
}
PREFIXED_IMMEDIATES.update(
    ((SIMD_PREFIX, sub), IMM_MEMARG) for sub in range(V128_LOAD, V128_STORE + 1)
)
PREFIXED_IMMEDIATES.update(
    ((SIMD_PREFIX, sub), IMM_LANE)
    for sub in range(FIRST_LANE_OP, LAST_LANE_OP + 1)
)
PREFIXED_IMMEDIATES.update(
    ((SIMD_PREFIX, sub), IMM_MEMARG_LANE)
    for sub in range(V128_LOAD8_LANE, V128_STORE64_LANE + 1)
)
PREFIXED_IMMEDIATES.update(
    ((ATOMIC_PREFIX, sub), IMM_MEMARG)
    for sub in range(FIRST_ATOMIC_LOAD, LAST_ATOMIC_RMW + 1)
)
