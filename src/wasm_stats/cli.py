"""Command line interface: print the statistics of a .wasm file as JSON.

Usage:
    wasm-stats module.wasm
    wasm-stats --indent 2 --workers 4 module.wasm
    python -m wasm_stats module.wasm
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from .errors import DecodeError
from .report import analyze


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="wasm-stats",
        description="Report instruction, size and language statistics of a WebAssembly module.",
    )
    parser.add_argument("path", type=Path, help="path to the .wasm file")
    parser.add_argument(
        "--workers",
        type=int,
        default=1,
        help="processes used to classify function bodies (default: 1)",
    )
    parser.add_argument(
        "--indent", type=int, default=None, help="pretty-print the JSON output"
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true", help="log decoding progress to stderr"
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(name)s: %(message)s",
    )

    try:
        data = args.path.read_bytes()
    except OSError as e:
        print(f"Error reading {args.path}: {e}", file=sys.stderr)
        return 1

    try:
        report = analyze(data, workers=args.workers)
    except DecodeError as e:
        print(f"Error decoding {args.path}: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(report.to_dict(), indent=args.indent))
    return 0


if __name__ == "__main__":
    sys.exit(main())
