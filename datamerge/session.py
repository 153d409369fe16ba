from __future__ import annotations

import os
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from datamerge.models import UnifiedColumn
from datamerge.pipeline import DEFAULT_PREVIEW_ROWS, ConsolidationPipeline, display_rows, export_headers
from datamerge.registry import ColumnRegistry
from datamerge.resolver import MergeResolver
from datamerge.spreadsheet_io import SpreadsheetIO
from datamerge.transform import TransformOptions, duplicate_headers

EXPORT_NAME_PREFIX = "Consolidado"


def export_stamp(now: Optional[datetime] = None) -> str:
    override = os.environ.get("DATAMERGE_OUTPUT_STAMP")
    if override:
        return override
    return (now or datetime.now()).strftime("%Y%m%d")


def default_export_name(now: Optional[datetime] = None) -> str:
    return f"{EXPORT_NAME_PREFIX}_{export_stamp(now)}"


class Session:
    """
    One operator's in-memory workspace: the loaded files, the unified columns
    and the output flags. Front ends (CLI plan replay, Streamlit console) drive
    it; it never prompts or renders anything itself.
    """

    def __init__(self, io: Optional[SpreadsheetIO] = None, options: Optional[TransformOptions] = None) -> None:
        self.io = io or SpreadsheetIO()
        self.options = options or TransformOptions()
        self.files: list[str] = []
        self.registry = ColumnRegistry()
        self.resolver = MergeResolver(self.registry)
        self.pipeline = ConsolidationPipeline(self.io.read_rows, self.io.write_rows)

    @property
    def columns(self) -> list[UnifiedColumn]:
        return self.registry.snapshot()

    @property
    def warnings(self) -> list[str]:
        return self.io.warnings

    @property
    def has_work(self) -> bool:
        return bool(self.files) and any(column.is_selected for column in self.registry)

    def add_files(self, paths: Iterable["str | Path"]) -> list[str]:
        added: list[str] = []
        for path in paths:
            file_id = str(path)
            if file_id in self.files:
                continue
            self.files.append(file_id)
            added.append(file_id)
        if added:
            self.reload_columns()
        return added

    def reload_columns(self) -> None:
        self.resolver.rebuild(self.files, self.io.list_headers)

    def find_file(self, name: str) -> Optional[str]:
        """Match a loaded file by its full path, falling back to its file name."""
        if name in self.files:
            return name
        matches = [file_id for file_id in self.files if Path(file_id).name == Path(name).name]
        return matches[0] if len(matches) == 1 else None

    def rename(self, column: UnifiedColumn, new_name: str) -> bool:
        new_name = (new_name or "").strip()
        if not new_name or column not in self.registry:
            return False
        column.header_name = new_name
        return True

    def select_all(self) -> None:
        for column in self.registry:
            column.is_selected = True

    def deselect_all(self) -> None:
        for column in self.registry:
            column.is_selected = False

    def clear_all(self) -> None:
        self.files.clear()
        self.io.warnings.clear()
        self.registry.clear()
        self.resolver.target = None
        self.resolver.refresh()

    def duplicate_header_warnings(self) -> list[str]:
        duplicates = duplicate_headers(self.registry.snapshot(), self.options)
        if not duplicates:
            return []
        return [
            f"Duplicate output header '{name}' (policy: {self.options.duplicate_headers})"
            for name in duplicates
        ]

    def preview(self, max_rows: int = DEFAULT_PREVIEW_ROWS) -> list[dict]:
        """Preview rows as shown to the operator, already passed through the display filter."""
        if not self.has_work:
            return []
        columns = self.registry.snapshot()
        rows = self.pipeline.preview(self.files, columns, self.options, max_rows)
        return display_rows(rows, columns, self.options)

    def consolidate(self) -> list[dict]:
        if not self.has_work:
            return []
        return self.pipeline.consolidate(self.files, self.registry.snapshot(), self.options)

    def export(self, path: "str | Path") -> int:
        """Consolidate every file into ``path``; returns the number of rows written."""
        if not self.has_work:
            return 0
        columns = self.registry.snapshot()
        rows = self.pipeline.consolidate(self.files, columns, self.options)
        self.pipeline.export(Path(path), rows, export_headers(columns, self.options))
        return len(rows)
