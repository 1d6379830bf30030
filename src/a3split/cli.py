"""
Command-line interface for a3split.

This file focuses on parsing arguments and dispatching to the real work.
Keeping this separate makes the code easier to read and test.
"""

from __future__ import annotations

import argparse
import subprocess
import sys
from pathlib import Path
from typing import Any, Dict

from . import __version__
from .config import (
    DEFAULT_SPLIT,
    config_from_mapping,
    deep_merge,
    dump_default_split_yaml,
    extract_split_section,
    load_yaml,
    require_bool,
)
from .layout import NUMBERING_SIDES, ORIENTATIONS
from .utils import UserError, default_output_pdf, normalize_path


TOP_LEVEL_EXAMPLES = """Examples:
  python -m a3split split --pdf "scan_a3.pdf" --out_pdf "scan_a4.pdf"
  python -m a3split split --pdf "scan_a3.pdf" --numbering --start_number 3 --numbering_start_index 1
  python -m a3split preview --pdf "scan_a3.pdf" --page 2 --out_png "page2.png" --dual_ratios --even_split_ratio 0.45
"""

SPLIT_EXAMPLES = """Examples:
  python -m a3split split --pdf "scan_a3.pdf" --out_pdf "scan_a4.pdf"
  python -m a3split split --pdf "scan_a3.pdf" --orientation horizontal --split_ratio 0.52
  python -m a3split split --pdf "scan_a3.pdf" --numbering --numbering_side second --dry-run
  python -m a3split split --dump-default-config
  python -m a3split split --pdf "scan_a3.pdf" --config "configs\\split.yaml"
"""

PREVIEW_EXAMPLES = """Examples:
  python -m a3split preview --pdf "scan_a3.pdf" --page 1 --out_png "preview.png"
  python -m a3split preview --pdf "scan_a3.pdf" --page 4 --numbering --dpi 150 --overwrite
"""

SPLIT_KEYS = set(DEFAULT_SPLIT.keys())


def _add_layout_arguments(parser: argparse.ArgumentParser) -> None:
    """Options shared by split and preview; unset flags fall back to config."""

    parser.add_argument(
        "--config",
        default=argparse.SUPPRESS,
        help="Optional YAML config with split settings.",
    )
    parser.add_argument(
        "--orientation",
        choices=list(ORIENTATIONS),
        default=argparse.SUPPRESS,
        help="auto=cut landscape pages left/right and portrait pages top/bottom.",
    )
    parser.add_argument(
        "--split_ratio",
        type=float,
        default=argparse.SUPPRESS,
        help="Fraction of the page given to the first half (default: 0.5).",
    )
    parser.add_argument(
        "--even_split_ratio",
        type=float,
        default=argparse.SUPPRESS,
        help="Ratio for the 2nd, 4th, ... source pages when --dual_ratios is set.",
    )
    parser.add_argument(
        "--dual_ratios",
        action="store_true",
        default=argparse.SUPPRESS,
        help="Use --even_split_ratio on even source pages.",
    )
    parser.add_argument(
        "--numbering",
        action="store_true",
        default=argparse.SUPPRESS,
        help="Stamp page numbers on the output halves.",
    )
    parser.add_argument(
        "--start_number",
        type=int,
        default=argparse.SUPPRESS,
        help="First page number stamped (default: 1).",
    )
    parser.add_argument(
        "--numbering_start_index",
        type=int,
        default=argparse.SUPPRESS,
        help="Zero-based source page index where numbering begins (default: 0).",
    )
    parser.add_argument(
        "--numbering_side",
        choices=list(NUMBERING_SIDES),
        default=argparse.SUPPRESS,
        help="Which half of each source page gets a number (default: both).",
    )
    parser.add_argument(
        "--font_size",
        type=float,
        default=argparse.SUPPRESS,
        help="Page number font size in points (default: 10).",
    )
    parser.add_argument(
        "--bottom_margin",
        type=float,
        default=argparse.SUPPRESS,
        help="Distance from the bottom edge to the number baseline (default: 15).",
    )
    parser.add_argument(
        "--overwrite",
        action="store_true",
        default=argparse.SUPPRESS,
        help="Overwrite existing files.",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        default=argparse.SUPPRESS,
        help="Show actions without writing files.",
    )
    parser.add_argument(
        "--manifest",
        default=argparse.SUPPRESS,
        help="Manifest path (default: output folder\\manifest.json).",
    )


def _build_effective_config(
    args: argparse.Namespace,
) -> tuple[Dict[str, Any], Path | None]:
    """Resolve defaults < YAML config < explicit CLI flags."""

    effective = deep_merge(DEFAULT_SPLIT, {})
    config_path: Path | None = None
    if hasattr(args, "config"):
        config_path = normalize_path(args.config)
        effective = deep_merge(effective, extract_split_section(load_yaml(config_path)))

    raw_args = vars(args)
    cli_overrides = {key: raw_args[key] for key in SPLIT_KEYS if key in raw_args}
    return deep_merge(effective, cli_overrides), config_path


def _verbosity_from_args(args: argparse.Namespace) -> str:
    """Resolve global verbosity mode from top-level flags."""

    if getattr(args, "quiet", False):
        return "quiet"
    if getattr(args, "verbose", False):
        return "verbose"
    return "normal"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="a3-split",
        description="Split scanned A3 PDF pages into A4 halves, with optional page numbers.",
        epilog=TOP_LEVEL_EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--version", action="version", version=__version__)
    verbosity_group = parser.add_mutually_exclusive_group()
    verbosity_group.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress non-error console logs.",
    )
    verbosity_group.add_argument(
        "--verbose",
        action="store_true",
        help="Show debug-level console logs, including progress.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    split_parser = subparsers.add_parser(
        "split",
        help="Split every page of a PDF into two halves.",
        epilog=SPLIT_EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    split_parser.add_argument(
        "--pdf",
        default=argparse.SUPPRESS,
        help="Input PDF path (required unless --dump-default-config).",
    )
    split_parser.add_argument(
        "--out_pdf",
        default=argparse.SUPPRESS,
        help="Output PDF path (default: split_with_numbers_<input name>).",
    )
    split_parser.add_argument(
        "--font_file",
        default=argparse.SUPPRESS,
        help="TrueType/OpenType font for page numbers (default: Helvetica).",
    )
    split_parser.add_argument(
        "--dump-default-config",
        action="store_true",
        default=argparse.SUPPRESS,
        help="Print default split YAML config and exit.",
    )
    _add_layout_arguments(split_parser)

    preview_parser = subparsers.add_parser(
        "preview",
        help="Render one page with the planned cut and page numbers drawn on.",
        epilog=PREVIEW_EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    preview_parser.add_argument("--pdf", required=True, help="Input PDF path.")
    preview_parser.add_argument(
        "--page",
        type=int,
        default=1,
        help="1-based source page to preview; clamped to the document (default: 1).",
    )
    preview_parser.add_argument(
        "--out_png",
        help="Output PNG path (default: <pdf stem>_preview_p<page>.png).",
    )
    preview_parser.add_argument("--dpi", type=int, default=100, help="Render DPI (default: 100).")
    _add_layout_arguments(preview_parser)

    return parser


def _command_string(argv: list[str]) -> str:
    """Reconstruct a command string for the manifest."""

    # list2cmdline produces a Windows-friendly command representation.
    return subprocess.list2cmdline(argv)


def _command_argv_for_manifest(argv: list[str] | None) -> list[str]:
    """Choose argv used to record manifest command faithfully."""

    if argv is None:
        return list(sys.argv)
    return [sys.argv[0], *argv]


def _options_for_manifest(effective: Dict[str, Any], verbosity: str) -> Dict[str, Any]:
    """Build a JSON-friendly options dict."""

    options: Dict[str, Any] = {}
    for key, value in effective.items():
        options[key] = str(value) if isinstance(value, Path) else value
    options["version"] = __version__
    options["verbosity"] = verbosity
    return options


def _manifest_path(effective: Dict[str, Any], out_path: Path) -> Path:
    manifest_value = effective.get("manifest")
    if manifest_value:
        return normalize_path(str(manifest_value))
    return out_path.parent / "manifest.json"


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    try:
        command_string = _command_string(_command_argv_for_manifest(argv))
        verbosity = _verbosity_from_args(args)

        if args.command == "split" and getattr(args, "dump_default_config", False):
            print(dump_default_split_yaml())
            return 0

        if not hasattr(args, "pdf"):
            raise UserError("split requires --pdf unless --dump-default-config is used.")

        effective, config_path = _build_effective_config(args)
        config = config_from_mapping(effective)
        overwrite = require_bool(effective["overwrite"], "config.overwrite")
        dry_run = require_bool(effective["dry_run"], "config.dry_run")
        pdf_path = normalize_path(args.pdf)

        options = _options_for_manifest(effective, verbosity)
        if config_path is not None:
            options["config_path"] = str(config_path)

        if args.command == "split":
            from .split import split_pdf

            out_pdf = (
                normalize_path(args.out_pdf)
                if hasattr(args, "out_pdf")
                else default_output_pdf(pdf_path)
            )
            font_value = effective.get("font_file")
            split_pdf(
                pdf_path=pdf_path,
                out_pdf=out_pdf,
                config=config,
                overwrite=overwrite,
                dry_run=dry_run,
                manifest_path=_manifest_path(effective, out_pdf),
                command_string=command_string,
                options=options,
                font_file=normalize_path(str(font_value)) if font_value else None,
            )
            return 0

        if args.command == "preview":
            from .preview import preview_pdf_page

            out_png = (
                normalize_path(args.out_png)
                if args.out_png
                else pdf_path.with_name(f"{pdf_path.stem}_preview_p{args.page:04d}.png")
            )
            options["page"] = args.page
            options["dpi"] = args.dpi
            preview_pdf_page(
                pdf_path=pdf_path,
                page_number=args.page,
                out_png=out_png,
                config=config,
                dpi=args.dpi,
                overwrite=overwrite,
                dry_run=dry_run,
                manifest_path=_manifest_path(effective, out_png),
                command_string=command_string,
                options=options,
            )
            return 0

        raise UserError("Unknown command. Use --help for usage.")
    except UserError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 2
