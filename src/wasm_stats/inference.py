"""Heuristic source-language inference.

The engine is an ordered list of signals. Each signal is a pure predicate
over the decoded module that, when it fires, proposes a language with a
confidence. The most confident proposal wins; on a tie the signal
registered first wins, so signals are registered from most to least
specific.

Heuristics here are empirical and approximate. New signals can be added to
``DEFAULT_REGISTRY`` (or to a private ``SignalRegistry``) without touching
the existing ones.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterator

from .decoder import decode_producers
from .errors import DecodeError
from .types import Module


class Language(Enum):
    RUST = "Rust"
    EMSCRIPTEN = "Emscripten"
    # Some evidence of Emscripten, but from methods that are not terribly
    # reliable
    LIKELY_EMSCRIPTEN = "LikelyEmscripten"
    ASSEMBLYSCRIPT = "AssemblyScript"
    BLAZOR = "Blazor"
    GO = "Go"
    UNKNOWN = "Unknown"


Predicate = Callable[[Module], bool]


@dataclass(frozen=True)
class Signal:
    name: str
    language: Language
    confidence: float
    rationale: str
    predicate: Predicate


@dataclass(frozen=True)
class Evidence:
    """A fired signal's proposal."""

    signal: str
    language: Language
    confidence: float
    rationale: str


@dataclass(frozen=True)
class InferenceVerdict:
    """The winning language and every fired signal, winner first."""

    language: Language
    trail: tuple[Evidence, ...] = ()


UNKNOWN_VERDICT = InferenceVerdict(Language.UNKNOWN)


class SignalRegistry:
    """An ordered collection of signals."""

    def __init__(self, signals: list[Signal] | None = None) -> None:
        self._signals: list[Signal] = []
        for signal in signals or ():
            self.register(signal)

    def __iter__(self) -> Iterator[Signal]:
        return iter(self._signals)

    def __len__(self) -> int:
        return len(self._signals)

    def register(self, signal: Signal) -> Signal:
        """Append a signal; it ranks below every signal registered before it."""
        if any(existing.name == signal.name for existing in self._signals):
            raise ValueError(f"Signal already registered: {signal.name!r}")
        self._signals.append(signal)
        return signal

    def signal(
        self, name: str, language: Language, confidence: float, rationale: str
    ) -> Callable[[Predicate], Predicate]:
        """Decorator registering a predicate function as a signal."""

        def decorator(predicate: Predicate) -> Predicate:
            self.register(Signal(name, language, confidence, rationale, predicate))
            return predicate

        return decorator

    def copy(self) -> "SignalRegistry":
        return SignalRegistry(list(self._signals))

    def evaluate(self, module: Module) -> InferenceVerdict:
        """Evaluate every signal and resolve the fired ones to a verdict."""
        fired = [
            (position, signal)
            for position, signal in enumerate(self._signals)
            if signal.predicate(module)
        ]
        if not fired:
            return UNKNOWN_VERDICT
        fired.sort(key=lambda item: (-item[1].confidence, item[0]))
        trail = tuple(
            Evidence(signal.name, signal.language, signal.confidence, signal.rationale)
            for _, signal in fired
        )
        return InferenceVerdict(trail[0].language, trail)


DEFAULT_REGISTRY = SignalRegistry()


def infer_language(
    module: Module, registry: SignalRegistry = DEFAULT_REGISTRY
) -> InferenceVerdict:
    """Guess the source language of a module."""
    return registry.evaluate(module)


def _has_import(module: Module, mod_name: str, name: str) -> bool:
    return any(i.module == mod_name and i.name == name for i in module.imports)


def _data_contains(module: Module, needle: bytes) -> bool:
    return any(needle in segment.init for segment in module.data)


@DEFAULT_REGISTRY.signal(
    "blazor-import", Language.BLAZOR, 0.95, "an import name mentions blazor"
)
def _blazor_import(module: Module) -> bool:
    # Blazor runs on an Emscripten-built runtime, so it has to outrank the
    # Emscripten signals
    return any("blazor" in i.name for i in module.imports)


@DEFAULT_REGISTRY.signal(
    "producers-rust",
    Language.RUST,
    0.95,
    "the producers section lists Rust or rustc",
)
def _producers_rust(module: Module) -> bool:
    section = module.custom_section("producers")
    if section is None:
        return False
    try:
        fields = decode_producers(section)
    except DecodeError:
        return False
    languages = {name for name, _ in fields.get("language", ())}
    tools = {name for name, _ in fields.get("processed-by", ())}
    return "Rust" in languages or "rustc" in tools


@DEFAULT_REGISTRY.signal(
    "emscripten-import",
    Language.EMSCRIPTEN,
    0.9,
    "an import name mentions emscripten",
)
def _emscripten_import(module: Module) -> bool:
    return any("emscripten" in i.name for i in module.imports)


@DEFAULT_REGISTRY.signal(
    "emscripten-metadata",
    Language.EMSCRIPTEN,
    0.9,
    "an emscripten_metadata custom section is present",
)
def _emscripten_metadata(module: Module) -> bool:
    return module.custom_section("emscripten_metadata") is not None


@DEFAULT_REGISTRY.signal(
    "go-import", Language.GO, 0.9, "imports come from the go or gojs module"
)
def _go_import(module: Module) -> bool:
    return any(i.module in ("go", "gojs") for i in module.imports)


@DEFAULT_REGISTRY.signal(
    "go-buildid", Language.GO, 0.9, "a go:buildid custom section is present"
)
def _go_buildid(module: Module) -> bool:
    return module.custom_section("go:buildid") is not None


@DEFAULT_REGISTRY.signal(
    "wasm-bindgen",
    Language.RUST,
    0.9,
    "wasm-bindgen glue appears in the imports or exports",
)
def _wasm_bindgen(module: Module) -> bool:
    return any(
        "wbindgen" in i.name
        or "wbg" in i.name
        or i.module in ("wbg", "wbindgen")
        for i in module.imports
    ) or any("wbindgen" in e.name for e in module.exports)


@DEFAULT_REGISTRY.signal(
    "assemblyscript-runtime",
    Language.ASSEMBLYSCRIPT,
    0.8,
    "the AssemblyScript runtime interface is exported",
)
def _assemblyscript_runtime(module: Module) -> bool:
    names = {e.name for e in module.exports}
    return "__rtti_base" in names or {"__new", "__pin"} <= names


@DEFAULT_REGISTRY.signal(
    "assemblyscript-stdlib",
    Language.ASSEMBLYSCRIPT,
    0.75,
    "data contains UTF-16 ~lib/ standard library paths",
)
def _assemblyscript_stdlib(module: Module) -> bool:
    return _data_contains(module, "~lib/".encode("utf-16-le"))


@DEFAULT_REGISTRY.signal(
    "rustc-paths", Language.RUST, 0.7, "data contains /rustc/ source paths"
)
def _rustc_paths(module: Module) -> bool:
    return _data_contains(module, b"/rustc/")


@DEFAULT_REGISTRY.signal(
    "minified-emscripten",
    Language.LIKELY_EMSCRIPTEN,
    0.5,
    "minified a.a/a.b or env.a/env.b imports",
)
def _minified_emscripten(module: Module) -> bool:
    return (_has_import(module, "a", "a") and _has_import(module, "a", "b")) or (
        _has_import(module, "env", "a") and _has_import(module, "env", "b")
    )
