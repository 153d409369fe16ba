from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence

from datamerge.errors import DatamergeError, ExportError
from datamerge.models import UnifiedColumn
from datamerge.transform import PERIOD_HEADERS, TransformOptions, output_headers, transform_row

RowReader = Callable[[str], Iterable[Mapping[str, Any]]]
RowWriter = Callable[..., None]

DEFAULT_PREVIEW_ROWS = 10


def _plan(columns: Sequence[UnifiedColumn], options: TransformOptions) -> tuple[list[UnifiedColumn], list[str]]:
    selected = [column for column in columns if column.is_selected]
    return selected, output_headers(selected, options)


def preview(
    files: Sequence[str],
    columns: Sequence[UnifiedColumn],
    read_rows: RowReader,
    options: Optional[TransformOptions] = None,
    max_rows: int = DEFAULT_PREVIEW_ROWS,
) -> list[dict[str, Any]]:
    """Transform rows in file order until ``max_rows`` rows exist; later files are never read."""
    options = options or TransformOptions()
    selected, headers = _plan(columns, options)
    rows: list[dict[str, Any]] = []
    if max_rows <= 0:
        return rows

    for source_file in files:
        if len(rows) >= max_rows:
            break
        for raw_row in read_rows(source_file):
            rows.append(transform_row(raw_row, source_file, selected, options, headers))
            if len(rows) >= max_rows:
                break
    return rows


def consolidate(
    files: Sequence[str],
    columns: Sequence[UnifiedColumn],
    read_rows: RowReader,
    options: Optional[TransformOptions] = None,
) -> list[dict[str, Any]]:
    options = options or TransformOptions()
    selected, headers = _plan(columns, options)
    rows: list[dict[str, Any]] = []
    for source_file in files:
        for raw_row in read_rows(source_file):
            rows.append(transform_row(raw_row, source_file, selected, options, headers))
    return rows


def export_headers(columns: Sequence[UnifiedColumn], options: TransformOptions) -> list[str]:
    _, headers = _plan(columns, options)
    if options.generate_periods:
        headers = list(PERIOD_HEADERS) + headers
    return list(dict.fromkeys(headers))


def active_headers(columns: Sequence[UnifiedColumn], options: TransformOptions) -> set[str]:
    _, keys = _plan(columns, options)
    headers = {key.lower() for key in keys}
    if options.generate_periods:
        headers.update(name.lower() for name in PERIOD_HEADERS)
    return headers


def display_rows(
    rows: Iterable[Mapping[str, Any]],
    columns: Sequence[UnifiedColumn],
    options: Optional[TransformOptions] = None,
) -> list[dict[str, Any]]:
    """Keep only active headers for on-screen preview and drop rows left with no keys."""
    options = options or TransformOptions()
    active = active_headers(columns, options)
    shown: list[dict[str, Any]] = []
    for row in rows:
        kept = {key: value for key, value in row.items() if str(key).lower() in active}
        if kept:
            shown.append(kept)
    return shown


def export(
    path: Path,
    rows: list[dict[str, Any]],
    write_rows: RowWriter,
    headers: Optional[Sequence[str]] = None,
) -> None:
    try:
        write_rows(Path(path), rows, headers)
    except DatamergeError:
        raise
    except Exception as exc:
        raise ExportError(path, exc) from exc


class ConsolidationPipeline:
    """Binds the row reader and writer so callers only pass files, columns and options."""

    def __init__(self, read_rows: RowReader, write_rows: RowWriter) -> None:
        self.read_rows = read_rows
        self.write_rows = write_rows

    def preview(
        self,
        files: Sequence[str],
        columns: Sequence[UnifiedColumn],
        options: Optional[TransformOptions] = None,
        max_rows: int = DEFAULT_PREVIEW_ROWS,
    ) -> list[dict[str, Any]]:
        return preview(files, list(columns), self.read_rows, options, max_rows)

    def consolidate(
        self,
        files: Sequence[str],
        columns: Sequence[UnifiedColumn],
        options: Optional[TransformOptions] = None,
    ) -> list[dict[str, Any]]:
        return consolidate(files, list(columns), self.read_rows, options)

    def export(self, path: Path, rows: list[dict[str, Any]], headers: Optional[Sequence[str]] = None) -> None:
        export(path, rows, self.write_rows, headers)
