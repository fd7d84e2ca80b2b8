#!/usr/bin/env python3
"""
Export Project Script.

Load a GCAM project file, print its block tree, and either export the
G-code or convert the project to the other file format.

Usage:
    python -m gcam.scripts.export_project part.gcam
    python -m gcam.scripts.export_project part.gcam -o part.ngc --config shop.yaml
    python -m gcam.scripts.export_project part.gcam --convert part.gcamx
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from gcam.configs import ConfigError, load_config
from gcam.errors import GCamError
from gcam.project import Project
from gcam.utils.logging_config import pop_context, push_context, setup_logging

logger = logging.getLogger(__name__)

GCODE_SUFFIX = ".ngc"


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Export G-code from a GCAM project, or convert it between formats",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="Project files ending in .gcamx are XML; anything else is binary.",
    )
    parser.add_argument(
        "project",
        type=str,
        help="Project file to load (.gcam or .gcamx)",
    )
    parser.add_argument(
        "--output",
        "-o",
        type=str,
        help=f"G-code output path (default: project path with {GCODE_SUFFIX})",
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        help="Project defaults YAML (driver, decimals, line endings)",
    )
    parser.add_argument(
        "--convert",
        type=str,
        metavar="OUT",
        help="Save the project to OUT instead of exporting G-code",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        help="Also write logs to this file",
    )
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level, args.log_file, context={"app": "export"})

    try:
        config = load_config(args.config)
    except (ConfigError, FileNotFoundError) as e:
        print(f"Error loading config: {e}")
        return 1

    source = Path(args.project)
    try:
        project = Project.load(source, config)
    except (GCamError, OSError) as e:
        print(f"Error loading project: {e}")
        return 1

    push_context(project=project.name or source.stem)
    try:
        print(f"Project: {project.name or source.name}")
        for line in project.summary():
            print(f"  {line}")

        if args.convert:
            project.save(args.convert)
            print(f"Converted to {args.convert}")
            if not args.output:
                return 0

        out = Path(args.output) if args.output else source.with_suffix(GCODE_SUFFIX)
        code = project.export(out)
        print(f"Wrote {code.count(chr(10))} lines of G-code to {out}")
    except (GCamError, OSError) as e:
        logger.error("export failed: %s", e)
        print(f"Error: {e}")
        return 1
    finally:
        pop_context(keys=["project"])
    return 0


if __name__ == "__main__":
    sys.exit(main())
