"""WebAssembly module statistics.

Decodes a WebAssembly binary and reports function and instruction counts,
feature proposal usage, a size breakdown, imports and exports, custom
sections, and a guess at the source language.
"""

from .classify import Category, Proposal, Tally, classify_bodies, classify_body
from .decoder import decode_module
from .errors import DecodeError, WasmError
from .inference import (
    DEFAULT_REGISTRY,
    Evidence,
    InferenceVerdict,
    Language,
    Signal,
    SignalRegistry,
    infer_language,
)
from .reader import BinaryReader, decode_signed_leb128, decode_unsigned_leb128
from .report import Report, analyze
from .sizes import SizeBreakdown, compute_sizes
from .types import FunctionBody, Module, Section, SectionKind

__version__ = "0.1.0"

__all__ = [
    # Main API
    "analyze",
    "Report",
    "decode_module",
    # Analyses
    "classify_body",
    "classify_bodies",
    "compute_sizes",
    "infer_language",
    "Category",
    "Proposal",
    "Tally",
    "SizeBreakdown",
    # Language inference
    "DEFAULT_REGISTRY",
    "Evidence",
    "InferenceVerdict",
    "Language",
    "Signal",
    "SignalRegistry",
    # Decoder internals (for testing)
    "BinaryReader",
    "decode_unsigned_leb128",
    "decode_signed_leb128",
    # Types
    "Module",
    "Section",
    "SectionKind",
    "FunctionBody",
    # Errors
    "WasmError",
    "DecodeError",
]
