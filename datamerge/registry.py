from __future__ import annotations

from typing import Callable, Iterable, Iterator, Optional

from datamerge.models import UnifiedColumn

HeaderProvider = Callable[[str], Iterable[str]]


def is_blank_header(header) -> bool:
    return header is None or not str(header).strip()


class ColumnRegistry:
    """Ordered collection of unified columns, rebuilt from source file headers."""

    def __init__(self, columns: Optional[Iterable[UnifiedColumn]] = None) -> None:
        self._columns: list[UnifiedColumn] = list(columns or [])

    def __iter__(self) -> Iterator[UnifiedColumn]:
        return iter(self._columns)

    def __len__(self) -> int:
        return len(self._columns)

    def __getitem__(self, index: int) -> UnifiedColumn:
        return self._columns[index]

    def __contains__(self, column: object) -> bool:
        return any(existing is column for existing in self._columns)

    def index(self, column: UnifiedColumn) -> int:
        for position, existing in enumerate(self._columns):
            if existing is column:
                return position
        return -1

    def insert(self, position: int, column: UnifiedColumn) -> None:
        self._columns.insert(position, column)

    def append(self, column: UnifiedColumn) -> None:
        self._columns.append(column)

    def insert_after(self, anchor: Optional[UnifiedColumn], column: UnifiedColumn) -> None:
        position = self.index(anchor) if anchor is not None else -1
        if position < 0:
            self._columns.append(column)
        else:
            self._columns.insert(position + 1, column)

    def remove(self, column: UnifiedColumn) -> bool:
        position = self.index(column)
        if position < 0:
            return False
        del self._columns[position]
        return True

    def clear(self) -> None:
        self._columns.clear()

    def find_by_header(self, header_name: str) -> Optional[UnifiedColumn]:
        for column in self._columns:
            if column.has_header(header_name):
                return column
        return None

    def owner_of(self, file_id: str, original_header: str) -> Optional[UnifiedColumn]:
        for column in self._columns:
            if column.file_mappings.get(file_id) == original_header:
                return column
        return None

    def selected(self) -> list[UnifiedColumn]:
        return [column for column in self._columns if column.is_selected]

    def snapshot(self) -> list[UnifiedColumn]:
        return list(self._columns)

    def rebuild(self, files: Iterable[str], header_provider: HeaderProvider) -> None:
        """
        Recompute the non-custom columns from each file's headers.

        Custom columns keep their relative order at the front. Headers are
        grouped case-insensitively and the first spelling seen becomes the
        column's ``header_name``. A file whose headers cannot be read
        contributes nothing.
        """
        custom_columns = [column for column in self._columns if column.is_custom]
        by_header: dict[str, UnifiedColumn] = {}

        for file_id in files:
            try:
                headers = list(header_provider(file_id) or [])
            except Exception:
                headers = []
            for header in headers:
                if is_blank_header(header):
                    continue
                header = str(header)
                key = header.lower()
                existing = by_header.get(key)
                if existing is None:
                    by_header[key] = UnifiedColumn.from_source(file_id, header)
                elif file_id not in existing.file_mappings:
                    existing.file_mappings[file_id] = header

        self._columns = custom_columns + list(by_header.values())
