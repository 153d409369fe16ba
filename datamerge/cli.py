from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

import pandas as pd

from datamerge import __version__ as TOOL_VERSION
from datamerge.contracts import build_contract, build_run_summary
from datamerge.errors import DuplicateHeaderError, ExportError, PlanError
from datamerge.pipeline import DEFAULT_PREVIEW_ROWS
from datamerge.plan import STARTER_PLAN, apply_plan, load_plan, options_from_plan
from datamerge.session import Session, default_export_name
from datamerge.transform import DUPLICATE_POLICIES

EXIT_SUCCESS = 0
EXIT_COMMAND_ERROR = 1
EXIT_PARSE_FAILED = 2
EXIT_EXPORT_FAILED = 5
EXIT_PARTIAL = 6

OUTPUT_FORMATS = {"xlsx": ".xlsx", "csv": ".csv"}


class CliError(Exception):
    def __init__(self, message: str, code: int = EXIT_COMMAND_ERROR) -> None:
        super().__init__(message)
        self.code = code


class DatamergeArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:
        raise CliError(message, EXIT_COMMAND_ERROR)


def eprint(message: str) -> None:
    print(message, file=sys.stderr)


def emit_human(message: str, *, quiet: bool = False) -> None:
    if not quiet:
        eprint(message)


def json_dumps(payload: Any) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False, default=str)


def classify_backend_exception(exc: Exception) -> int:
    if isinstance(exc, CliError):
        return exc.code
    if isinstance(exc, ExportError):
        return EXIT_EXPORT_FAILED
    if isinstance(exc, (PlanError, DuplicateHeaderError, ValueError)):
        return EXIT_PARSE_FAILED
    return EXIT_COMMAND_ERROR


def add_session_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("inputs", nargs="+", help="Input spreadsheet paths, in consolidation order")
    parser.add_argument("--plan", help="Operator plan (.json) with column edits and options")
    parser.add_argument("--periods", action="store_true", default=None, help="Add PeriodoL/PeriodoA from Fecha_Leg/Fecha_Asig")
    parser.add_argument("--clean-job", dest="clean_job", action="store_true", default=None, help="Keep only the code part of 'Tipo ... Trabajo' values")
    parser.add_argument("--monthfirst", action="store_true", help="Read ambiguous dates like 05/07/2023 as May 7th")
    parser.add_argument("--duplicate-headers", choices=DUPLICATE_POLICIES, help="What to do when two output columns share a header")
    parser.add_argument("--json", action="store_true", help="Write machine JSON to stdout")
    parser.add_argument("-q", "--quiet", action="store_true", help="Minimal human logs")
    parser.add_argument("-v", "--verbose", action="store_true", help="More human logs")


def build_parser() -> argparse.ArgumentParser:
    parser = DatamergeArgumentParser(prog="datamerge", description="Unify columns across spreadsheets and consolidate their rows.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    columns = subparsers.add_parser("columns", help="Show the unified columns for a set of files.")
    add_session_arguments(columns)

    preview = subparsers.add_parser("preview", help="Show the first consolidated rows.")
    add_session_arguments(preview)
    preview.add_argument("--max-rows", dest="max_rows", type=int, default=None, help=f"Rows to show (default {DEFAULT_PREVIEW_ROWS})")

    consolidate = subparsers.add_parser("consolidate", help="Write every consolidated row to a workbook or CSV.")
    add_session_arguments(consolidate)
    consolidate.add_argument("-o", "--output", help="Explicit output path (.xlsx or .csv)")
    consolidate.add_argument("--out", dest="out_dir", help="Output directory for the default file name")
    consolidate.add_argument("--format", choices=sorted(OUTPUT_FORMATS), default="xlsx", help="Output format when --output is not given")
    consolidate.add_argument("--force", action="store_true", help="Overwrite an existing output file")

    config = subparsers.add_parser("config", help="Generate configuration.")
    config_subparsers = config.add_subparsers(dest="config_command", required=True)
    config_init = config_subparsers.add_parser("init", help="Write a starter plan file.")
    config_init.add_argument("--path", default="datamerge-plan.json", help="Plan output path")

    subparsers.add_parser("version", help="Print version")
    return parser


def build_session(args: argparse.Namespace) -> tuple[Session, dict[str, Any], list[str]]:
    missing = [path for path in args.inputs if not Path(path).exists()]
    if missing:
        raise CliError(f"File not found: {', '.join(missing)}", EXIT_COMMAND_ERROR)

    plan: dict[str, Any] = {}
    if args.plan:
        plan = load_plan(Path(args.plan))

    session = Session()
    session.add_files(str(Path(path).resolve()) for path in args.inputs)
    plan_warnings = apply_plan(session, plan) if plan else []

    overrides: dict[str, Any] = {}
    if args.periods is not None:
        overrides["generate_periods"] = True
    if args.clean_job is not None:
        overrides["clean_job_type"] = True
    if args.monthfirst:
        overrides["dayfirst"] = False
    if args.duplicate_headers:
        overrides["duplicate_headers"] = args.duplicate_headers
    if overrides:
        session.options = options_from_plan({"options": overrides}, session.options)

    if not len(session.registry):
        raise CliError("No columns could be read from the given files.", EXIT_PARSE_FAILED)
    return session, plan, plan_warnings


def collect_warnings(session: Session, plan_warnings: list[str]) -> list[str]:
    return [*session.warnings, *plan_warnings, *session.duplicate_header_warnings()]


def emit_warnings(warnings: list[str], *, quiet: bool) -> None:
    if warnings:
        emit_human("Warnings:", quiet=quiet)
        for warning in warnings:
            emit_human(f"- {warning}", quiet=quiet)


def exit_code_for(session: Session) -> int:
    return EXIT_PARTIAL if session.warnings else EXIT_SUCCESS


def run_status(session: Session) -> str:
    return "partial" if session.warnings else "ok"


def render_columns_text(session: Session) -> str:
    lines = [
        "datamerge columns",
        f"Files: {len(session.files)}",
        f"Columns: {len(session.registry)}",
    ]
    for position, column in enumerate(session.registry, start=1):
        marker = "x" if column.is_selected else " "
        lines.append(f"[{marker}] {position}. {column.header_name} ({column.source_info})")
        if column.is_custom:
            lines.append(f"      value: {column.default_value!r}")
        for file_id, original in column.file_mappings.items():
            lines.append(f"      {Path(file_id).name}: {original}")
    return "\n".join(lines) + "\n"


def render_rows_text(rows: list[dict[str, Any]]) -> str:
    if not rows:
        return "(no rows)\n"
    return pd.DataFrame(rows).to_string(index=False) + "\n"


def run_columns(args: argparse.Namespace) -> int:
    try:
        session, _, plan_warnings = build_session(args)
        warnings = collect_warnings(session, plan_warnings)
        if args.json:
            payload = {
                "contract": build_contract("datamerge.columns"),
                "columns": [column.to_dict() for column in session.registry],
                "run_summary": build_run_summary(
                    command="columns",
                    status=run_status(session),
                    input_paths=session.files,
                    metrics={"columns": len(session.registry)},
                    warnings=warnings,
                ),
            }
            print(json_dumps(payload))
        else:
            emit_human(render_columns_text(session).rstrip(), quiet=args.quiet)
            emit_warnings(warnings, quiet=args.quiet)
        return exit_code_for(session)
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_preview(args: argparse.Namespace) -> int:
    try:
        session, plan, plan_warnings = build_session(args)
        max_rows = args.max_rows if args.max_rows is not None else plan.get("max_rows", DEFAULT_PREVIEW_ROWS)
        rows = session.preview(max_rows)
        warnings = collect_warnings(session, plan_warnings)
        if args.json:
            payload = {
                "contract": build_contract("datamerge.preview"),
                "rows": rows,
                "run_summary": build_run_summary(
                    command="preview",
                    status=run_status(session),
                    input_paths=session.files,
                    metrics={"rows": len(rows), "max_rows": max_rows},
                    warnings=warnings,
                ),
            }
            print(json_dumps(payload))
        else:
            if args.verbose:
                emit_human(render_columns_text(session).rstrip(), quiet=args.quiet)
            print(render_rows_text(rows), end="")
            emit_warnings(warnings, quiet=args.quiet)
        return exit_code_for(session)
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def consolidate_output_path(args: argparse.Namespace) -> Path:
    if args.output:
        path = Path(args.output)
    else:
        out_dir = Path(args.out_dir) if args.out_dir else Path.cwd()
        path = out_dir / f"{default_export_name()}{OUTPUT_FORMATS[args.format]}"
    if path.exists() and not args.force:
        raise CliError(f"Refusing to overwrite existing output: {path}", EXIT_COMMAND_ERROR)
    return path


def run_consolidate(args: argparse.Namespace) -> int:
    try:
        output_path = consolidate_output_path(args)
        session, _, plan_warnings = build_session(args)
        if not session.has_work:
            raise CliError("No selected columns to export.", EXIT_COMMAND_ERROR)
        if args.verbose:
            emit_human(render_columns_text(session).rstrip(), quiet=args.quiet)
        row_count = session.export(output_path)
        warnings = collect_warnings(session, plan_warnings)
        if args.json:
            payload = {
                "contract": build_contract("datamerge.consolidate"),
                "run_summary": build_run_summary(
                    command="consolidate",
                    status=run_status(session),
                    input_paths=session.files,
                    output_path=output_path,
                    metrics={"rows": row_count, "columns": len(session.registry.selected())},
                    warnings=warnings,
                ),
            }
            print(json_dumps(payload))
        else:
            emit_human(f"Rows written: {row_count}", quiet=args.quiet)
            emit_human(f"Output: {output_path}", quiet=args.quiet)
            emit_warnings(warnings, quiet=args.quiet)
        return exit_code_for(session)
    except Exception as exc:
        eprint(str(exc))
        return classify_backend_exception(exc)


def run_config_init(args: argparse.Namespace) -> int:
    config_path = Path(args.path)
    if config_path.exists():
        eprint(f"Refusing to overwrite existing config: {config_path}")
        return EXIT_COMMAND_ERROR
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(json_dumps(STARTER_PLAN) + "\n", encoding="utf-8")
    emit_human(f"Config written: {config_path}")
    return EXIT_SUCCESS


def run_version() -> int:
    print(TOOL_VERSION)
    return EXIT_SUCCESS


def main(argv: list[str] | None = None) -> int:
    try:
        parser = build_parser()
        args = parser.parse_args(argv)
        if args.command == "columns":
            return run_columns(args)
        if args.command == "preview":
            return run_preview(args)
        if args.command == "consolidate":
            return run_consolidate(args)
        if args.command == "config":
            if args.config_command == "init":
                return run_config_init(args)
        if args.command == "version":
            return run_version()
        raise CliError(f"Unknown command: {args.command}", EXIT_COMMAND_ERROR)
    except CliError as exc:
        eprint(str(exc))
        return exc.code


if __name__ == "__main__":
    raise SystemExit(main())
