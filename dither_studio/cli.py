"""Command-line interface for dither_studio.

Dithers still images headlessly; ``--json`` gives structured output for
scripting.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

from dither_studio.core.settings import ALGORITHM_NAMES, Algorithm, Settings
from dither_studio.utils.log import setup_logging

logger = logging.getLogger("dither_studio.cli")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dither-studio",
        description="Apply classic halftoning and dithering algorithms to images.",
    )
    subparsers = parser.add_subparsers(dest="command")

    # --- convert subcommand ---
    convert = subparsers.add_parser(
        "convert",
        help="Dither an image file.",
    )
    convert.add_argument("input", help="Input image file path.")
    convert.add_argument(
        "-o", "--output",
        help="Output file path. Defaults to <input>_dithered.png.",
    )
    convert.add_argument(
        "--settings",
        help="JSON file with a settings object; flags below override it.",
    )
    convert.add_argument(
        "--algorithm",
        choices=[a.value for a in Algorithm],
        help="Dithering algorithm (default: floydSteinberg).",
    )
    convert.add_argument("--threshold", type=int, help="Threshold, 0 to 255 (default: 128).")
    convert.add_argument(
        "--diffusion-factor",
        type=float,
        help="Error diffusion strength, 0 to 1 (default: 0.75).",
    )
    convert.add_argument(
        "--matrix-size",
        type=int,
        help="Ordered matrix size, power of two 2 to 16 (default: 8).",
    )
    convert.add_argument(
        "--color-reduction",
        type=int,
        help="Bits per channel before dithering, 1 to 8 (default: 8).",
    )
    convert.add_argument(
        "--no-serpentine",
        action="store_true",
        help="Scan every row left to right.",
    )
    convert.add_argument("--noise", type=float, help="Noise amount, 0 to 1 (default: 0).")
    convert.add_argument("--passes", type=int, help="Dithering passes, 1 to 4 (default: 1).")
    convert.add_argument(
        "--seed",
        type=int,
        help="Seed for random dithering and noise (default: unseeded).",
    )
    convert.add_argument("--brightness", type=int, default=0, help="-100 to 100 (default: 0).")
    convert.add_argument("--contrast", type=int, default=0, help="-100 to 100 (default: 0).")
    convert.add_argument("--saturation", type=int, default=0, help="-100 to 100 (default: 0).")
    convert.add_argument("--gamma", type=float, default=1.0, help="0.1 to 3.0 (default: 1.0).")
    convert.add_argument("--sharpness", type=int, default=0, help="0 to 100 (default: 0).")
    convert.add_argument(
        "--json",
        action="store_true",
        help="Output structured JSON.",
    )
    convert.add_argument(
        "--debug",
        action="store_true",
        help="Show stack traces on error (with --json).",
    )
    _add_logging_args(convert)

    algorithms = subparsers.add_parser(
        "algorithms",
        help="List available algorithms.",
    )
    algorithms.add_argument("--json", action="store_true", help="Output structured JSON.")

    return parser


def _add_logging_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only log errors.")
    parser.add_argument("--log-file", help="Append log records to this file.")


def _auto_output_path(input_path: Path) -> Path:
    """Generate default output path from input."""
    return input_path.parent / f"{input_path.stem}_dithered.png"


def _json_error(message: str, code: str) -> None:
    """Print JSON error to stderr and exit with code 1."""
    err = {"status": "error", "error": message, "code": code}
    print(json.dumps(err), file=sys.stderr)
    sys.exit(1)


def _fail(args: argparse.Namespace, message: str, code: str) -> None:
    if args.json:
        _json_error(message, code)
    print(f"Error: {message}", file=sys.stderr)
    sys.exit(1)


def settings_from_args(args: argparse.Namespace) -> Settings:
    """Settings from an optional JSON file overlaid with explicit flags."""
    base = Settings()
    if args.settings:
        with open(args.settings, encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"expected a JSON object, got {type(data).__name__}")
        base = Settings.from_dict(data)

    overrides = {
        "algorithm": args.algorithm,
        "threshold": args.threshold,
        "diffusion_factor": args.diffusion_factor,
        "matrix_size": args.matrix_size,
        "color_reduction": args.color_reduction,
        "noise_amount": args.noise,
        "passes": args.passes,
    }
    changes = {k: v for k, v in overrides.items() if v is not None}
    if args.no_serpentine:
        changes["serpentine"] = False
    return base.replace(**changes)


def _run_convert(args: argparse.Namespace) -> None:
    """Run the headless convert pipeline."""
    import numpy as np

    from dither_studio.core.adjust import Adjustments
    from dither_studio.core.buffer import Frame, load_image
    from dither_studio.core.processor import process_frame
    from dither_studio.core.writer import save_image

    if not args.json:
        setup_logging(verbose=args.verbose, quiet=args.quiet, log_file=args.log_file)

    input_path = Path(args.input).resolve()
    if not input_path.exists():
        _fail(args, f"File not found: {input_path}", "FILE_NOT_FOUND")

    try:
        settings = settings_from_args(args)
    except (OSError, ValueError) as e:
        _fail(args, f"Invalid settings file: {e}", "INVALID_SETTINGS")

    try:
        buffer = load_image(input_path)
    except (OSError, ValueError) as e:
        _fail(args, str(e), "INVALID_INPUT")

    output_path = Path(args.output).resolve() if args.output else _auto_output_path(input_path)
    adjustments = Adjustments(
        brightness=args.brightness,
        contrast=args.contrast,
        saturation=args.saturation,
        gamma=args.gamma,
        sharpness=args.sharpness,
    )
    rng = np.random.default_rng(args.seed) if args.seed is not None else None

    logger.info(
        "Dithering %s (%dx%d) with %s",
        input_path.name, buffer.shape[1], buffer.shape[0], ALGORITHM_NAMES[settings.algorithm],
    )
    try:
        result = process_frame(Frame(buffer), settings, adjustments, rng=rng)
        save_image(result.buffer, output_path)
    except Exception as e:
        if args.json:
            if args.debug:
                import traceback
                traceback.print_exc(file=sys.stderr)
            _json_error(str(e), "PROCESSING_ERROR")
        logger.error("Error during processing: %s", e)
        sys.exit(1)

    if args.json:
        print(json.dumps({
            "status": "success",
            "input": str(input_path),
            "output": str(output_path),
            "settings": settings.to_dict(),
            "metadata": {
                "width": result.width,
                "height": result.height,
                "output_format": output_path.suffix.lstrip("."),
            },
        }, indent=2))


def _run_algorithms(args: argparse.Namespace) -> None:
    from dither_studio.core.dispatcher import resolve

    rows = []
    for algorithm in Algorithm:
        engine = resolve(algorithm)
        rows.append({
            "id": algorithm.value,
            "name": ALGORITHM_NAMES[algorithm],
            "engine": engine.name,
            "family": engine.family,
            "parameters": list(engine.parameters),
        })

    if args.json:
        print(json.dumps(rows, indent=2))
        return

    from rich.console import Console
    from rich.table import Table

    table = Table(title="Dithering algorithms")
    for column in ("id", "name", "engine", "parameters"):
        table.add_column(column)
    for row in rows:
        table.add_row(row["id"], row["name"], row["engine"], ", ".join(row["parameters"]))
    Console().print(table)


def main(argv: list[str] | None = None) -> None:
    """Main entry point.

    Routing:
      dither-studio convert <file> [opts]  → dither one image
      dither-studio algorithms             → list algorithms
    """
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.command == "convert":
        _run_convert(args)
    elif args.command == "algorithms":
        _run_algorithms(args)
    else:
        parser.print_help()
        sys.exit(2)
