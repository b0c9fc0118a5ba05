"""Exception classes for WebAssembly module analysis."""


class WasmError(Exception):
    """Base class for all wasm_stats errors."""

    pass


class DecodeError(WasmError):
    """Error during binary format decoding.

    Carries the absolute byte offset in the module where decoding failed.
    """

    def __init__(self, message: str, offset: int | None = None) -> None:
        self.message = message
        self.offset = offset
        if offset is not None:
            message = f"{message} (at offset {offset})"
        super().__init__(message)

    def __reduce__(self):
        return (type(self), (self.message, self.offset))
