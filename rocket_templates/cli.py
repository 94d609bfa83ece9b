"""
Command line interface.

Usage:
    rokit validate design.json
    rokit analyze design.json [--json]
    rokit export design.json --format pdf -o rocket.pdf
    rokit export design.json --format svg --format dxf -o templates/
    rokit init-config [path]

Common options: -v/--verbose for debug logging, --log-json FILE for a JSON
log file, --config FILE for an explicit .rokit.json.

Exit codes: 0 success, 1 invalid input or failed export, 2 unexpected error.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from rocket_templates.analysis.mass_properties import DesignAnalyzer
from rocket_templates.analysis.materials import MaterialCatalog
from rocket_templates.errors import DesignValidationError, RocketTemplatesError
from rocket_templates.export.pipeline import TemplateExporter
from rocket_templates.logging_config import setup_logging
from rocket_templates.model.design import Design
from rocket_templates.model.serialization import design_from_dict
from rocket_templates.model.validator import validate_design
from rocket_templates.project_config import (
    CONFIG_FILENAME,
    AppConfig,
    create_sample_config,
    load_config,
)

logger = logging.getLogger(__name__)


def _load_design(path: str) -> Design:
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise RocketTemplatesError(f"Cannot read design file {path}: {e}") from e
    return design_from_dict(data)


def _print_issues(error: DesignValidationError) -> None:
    print(str(error))
    for issue in error.issues:
        print(f"  - {issue}")


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

def cmd_validate(args: argparse.Namespace, config: AppConfig) -> int:
    design = _load_design(args.design)
    report = validate_design(design, MaterialCatalog.from_config(config.materials))
    print(report.summary())
    return 0 if report.is_valid else 1


def cmd_analyze(args: argparse.Namespace, config: AppConfig) -> int:
    design = _load_design(args.design)
    catalog = MaterialCatalog.from_config(config.materials)
    validate_design(design, catalog).raise_if_invalid()

    analyzer = DesignAnalyzer(catalog, config.analysis, config.export.samples_per_segment)
    analysis = analyzer.analyze(design)
    if args.json:
        print(json.dumps(analysis.to_dict(), indent=2))
    else:
        print(analysis.summary())
    return 0


def cmd_export(args: argparse.Namespace, config: AppConfig) -> int:
    design = _load_design(args.design)
    formats: List[str] = args.format or ["svg"]
    materials = MaterialCatalog.from_config(config.materials)

    with TemplateExporter(config.export, materials=materials) as exporter:
        if len(formats) == 1:
            template = exporter.export(design, formats[0])
            output = Path(args.output) if args.output else \
                Path(args.design).with_suffix(f".{template.extension}")
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_bytes(template.data)
            print(f"Template saved: {output}")
            return 0

        out_dir = Path(args.output) if args.output else Path(args.design).parent
        out_dir.mkdir(parents=True, exist_ok=True)
        batch = exporter.export_many(design, formats)
        stem = Path(args.design).stem
        for template in batch.templates().values():
            target = out_dir / f"{stem}.{template.extension}"
            target.write_bytes(template.data)
            print(f"Template saved: {target}")
        print(batch.summary())
        return 0 if batch.failed == 0 else 1


def cmd_init_config(args: argparse.Namespace, config: AppConfig) -> int:
    path = create_sample_config(args.path)
    print(f"Config written: {path}")
    return 0


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rokit",
        description="Design validation, analysis and cutting template export "
                    "for paper rocket models.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Debug logging.",
    )
    parser.add_argument(
        "--log-json",
        default=None,
        dest="log_json",
        help="Also write JSON-lines logs to this file.",
    )
    parser.add_argument(
        "--config", "-c",
        default=None,
        help=f"Path to a {CONFIG_FILENAME} configuration file.",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("validate", help="Check a design document against its invariants.")
    p.add_argument("design", help="Design JSON file.")
    p.set_defaults(func=cmd_validate)

    p = sub.add_parser("analyze", help="Mass, stability and performance estimate.")
    p.add_argument("design", help="Design JSON file.")
    p.add_argument("--json", action="store_true", help="Print JSON instead of a summary.")
    p.set_defaults(func=cmd_analyze)

    p = sub.add_parser("export", help="Export cutting templates.")
    p.add_argument("design", help="Design JSON file.")
    p.add_argument(
        "--format", "-f",
        action="append",
        default=None,
        help="Output format: svg, pdf, dxf, cutterA, cutterB (repeatable; default svg).",
    )
    p.add_argument(
        "--output", "-o",
        default=None,
        help="Output file (one format) or directory (several formats).",
    )
    p.set_defaults(func=cmd_export)

    p = sub.add_parser("init-config", help=f"Write a sample {CONFIG_FILENAME}.")
    p.add_argument("path", nargs="?", default=CONFIG_FILENAME, help="Target path.")
    p.set_defaults(func=cmd_init_config)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    setup_logging(
        level=logging.DEBUG if args.verbose else logging.INFO,
        json_file=args.log_json,
        use_colors=sys.stderr.isatty(),
    )

    design_path = getattr(args, "design", None)
    config = load_config(design_path=design_path, explicit_config=args.config)

    try:
        return args.func(args, config)
    except DesignValidationError as exc:
        _print_issues(exc)
        return 1
    except RocketTemplatesError as exc:
        logger.error("%s", exc)
        return 1
    except Exception as exc:
        logger.critical("Unexpected error: %s", exc, exc_info=True)
        return 2


if __name__ == "__main__":
    sys.exit(main())
