#!/usr/bin/env python3
"""
Command-line entry point for the Verovio build pipeline.

Run by the outer build before native compilation. Progress goes to stderr;
link directives go to stdout, one per line. This is the only module that
terminates the process.
"""

import argparse
import logging
import sys
from typing import List, Optional, TextIO

from .config import BuildSettings
from .errors import ConfigurationError, VerovioBuildError
from .linking import emit
from .pipeline import run


LOGGER_NAME = "verovio-build"


def setup_logging(level: str = "INFO", fmt: str = "text", stream: Optional[TextIO] = None) -> logging.Logger:
    """
    Configure the package logger.

    Args:
        level: Log level name
        fmt: "text" or "json"
        stream: Output stream (defaults to stderr)
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))

    if not logger.handlers:
        handler = logging.StreamHandler(stream or sys.stderr)
        if fmt == "json":
            formatter = logging.Formatter(
                '{"timestamp": "%(asctime)s", "level": "%(levelname)s", '
                '"component": "%(name)s", "message": "%(message)s"}'
            )
        else:
            formatter = logging.Formatter("%(asctime)s [%(levelname)s] %(name)s: %(message)s")
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def format_failure(error: VerovioBuildError) -> str:
    """Multi-line, human-actionable description of a fatal failure."""
    lines = ["", "Failed to build Verovio:", "", str(error)]
    steps = error.remediation()
    if steps:
        lines.extend(["", "To resolve this, you can:"])
        lines.extend(f"{i}. {step}" for i, step in enumerate(steps, 1))
    lines.append("")
    return "\n".join(lines)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="verovio-build",
        description="Obtain, compile and cache the Verovio static library",
    )
    parser.add_argument("--manifest-dir", help="Crate manifest directory (default: $CARGO_MANIFEST_DIR)")
    parser.add_argument("--out-dir", help="Per-build output directory (default: $OUT_DIR)")
    parser.add_argument("--target", help="Target triple (default: $TARGET or the host)")
    parser.add_argument("--source-dir", dest="source_override",
                        help="Verovio source directory (default: $VEROVIO_SOURCE_DIR)")
    parser.add_argument("--config", help="YAML configuration file (default: $VEROVIO_BUILD_CONFIG)")
    parser.add_argument("--bundled", action="store_true", help="Compile Verovio from source")
    parser.add_argument("--prebuilt", action="store_true", help="Download a prebuilt library")
    parser.add_argument("--force-rebuild", action="store_true", help="Ignore the cached library")
    parser.add_argument("--offline", action="store_true", help="Never download sources")
    parser.add_argument("--format", choices=("cargo", "json"), default="cargo",
                        help="Directive output format")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose output")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the Verovio build pipeline."""
    args = build_parser().parse_args(argv)

    try:
        settings = BuildSettings.load(
            config_path=args.config,
            manifest_dir=args.manifest_dir,
            out_dir=args.out_dir,
            target=args.target,
            source_override=args.source_override,
            bundled=args.bundled,
            prebuilt=args.prebuilt,
            force_rebuild=args.force_rebuild,
            offline=args.offline,
        )
    except ConfigurationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        sys.exit(1)

    logger = setup_logging("DEBUG" if args.verbose else settings.log_level, settings.log_format)

    try:
        result = run(settings, log=logger)
    except VerovioBuildError as e:
        print(format_failure(e), file=sys.stderr)
        sys.exit(1)

    emit(result.directives, sys.stdout, args.format)
    return 0


if __name__ == "__main__":
    sys.exit(main())
