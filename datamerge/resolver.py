from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Optional

from datamerge.models import DEFAULT_CUSTOM_HEADER, UnifiedColumn
from datamerge.registry import ColumnRegistry, HeaderProvider

# (placeholder header, header it must follow), applied in order.
STANDARD_PLACEHOLDERS = (
    ("SUBCATEGORIA", "Barrio_desc"),
    ("FECHA_PAGO", "Medidor"),
    ("USRS_LEGAL", "FECHA_PAGO"),
)


@dataclass(frozen=True)
class MergeFlags:
    is_target: bool = False
    can_merge: bool = False


NO_FLAGS = MergeFlags()


def accepts_merge(target: UnifiedColumn, source: UnifiedColumn) -> bool:
    """A custom target only takes other mapping-free columns; otherwise file sets must be disjoint."""
    if target.is_custom and source.file_mappings:
        return False
    return target.can_merge_with(source)


def recompute_merge_eligibility(
    columns: Iterable[UnifiedColumn],
    target: Optional[UnifiedColumn],
) -> dict[int, MergeFlags]:
    """
    Derive the per-column merge flags for the current target.

    Keys are ``id(column)``. A column can merge into the target when it is not
    the target and accepts_merge() holds.
    """
    flags: dict[int, MergeFlags] = {}
    for column in columns:
        if target is None:
            flags[id(column)] = NO_FLAGS
        elif column is target:
            flags[id(column)] = MergeFlags(is_target=True, can_merge=False)
        else:
            flags[id(column)] = MergeFlags(is_target=False, can_merge=accepts_merge(target, column))
    return flags


class MergeResolver:
    """
    Operator actions that reshape a ColumnRegistry.

    Every action whose preconditions do not hold returns False and leaves the
    registry untouched; nothing here raises for a bad request.
    """

    def __init__(self, registry: Optional[ColumnRegistry] = None) -> None:
        self.registry = registry if registry is not None else ColumnRegistry()
        self.target: Optional[UnifiedColumn] = None
        self.eligibility: dict[int, MergeFlags] = {}
        self.refresh()

    def refresh(self) -> None:
        if self.target is not None and self.target not in self.registry:
            self.target = None
        self.eligibility = recompute_merge_eligibility(self.registry, self.target)

    def flags_for(self, column: UnifiedColumn) -> MergeFlags:
        return self.eligibility.get(id(column), NO_FLAGS)

    def is_target(self, column: UnifiedColumn) -> bool:
        return self.flags_for(column).is_target

    def can_merge_into_target(self, column: UnifiedColumn) -> bool:
        return self.flags_for(column).can_merge

    @property
    def target_info(self) -> str:
        if self.target is not None:
            return f"Destino: {self.target.header_name} (Selecciona columnas para unir)"
        return "Selecciona una columna Destino"

    def rebuild(self, files: Iterable[str], header_provider: HeaderProvider) -> None:
        self.registry.rebuild(files, header_provider)
        self.refresh()

    def set_target(self, column: Optional[UnifiedColumn]) -> bool:
        if column is not None and column not in self.registry:
            return False
        if column is None or column is self.target:
            self.target = None
        else:
            self.target = column
        self.refresh()
        return True

    def merge(self, source: UnifiedColumn, into: Optional[UnifiedColumn] = None) -> bool:
        target = into if into is not None else self.target
        if target is None or source is target:
            return False
        if source not in self.registry or target not in self.registry:
            return False
        if not accepts_merge(target, source):
            return False

        for file_id, original_header in source.file_mappings.items():
            # The target's own mapping for a file always wins.
            target.file_mappings.setdefault(file_id, original_header)
        self.registry.remove(source)
        self.refresh()
        return True

    def detach(self, file_id: str, original_header: str) -> Optional[UnifiedColumn]:
        """
        Split one (file, header) mapping out of the column that owns it.

        The new column lands right after its former parent. A non-custom parent
        left without mappings is removed.
        """
        parent = self.registry.owner_of(file_id, original_header)
        if parent is None:
            return None

        del parent.file_mappings[file_id]
        detached = UnifiedColumn.from_source(file_id, original_header)
        self.registry.insert_after(parent, detached)

        if not parent.file_mappings and not parent.is_custom:
            self.registry.remove(parent)
        self.refresh()
        return detached

    def add_custom(
        self,
        header_name: str = DEFAULT_CUSTOM_HEADER,
        position: int = 0,
        default_value: str = "",
    ) -> UnifiedColumn:
        column = UnifiedColumn.custom(header_name, default_value)
        self.registry.insert(position, column)
        self.refresh()
        return column

    def remove(self, column: UnifiedColumn) -> bool:
        if not self.registry.remove(column):
            return False
        self.refresh()
        return True

    def inject_placeholder(self, header_name: str, after_header_name: str) -> UnifiedColumn:
        existing = self.registry.find_by_header(header_name)
        if existing is not None:
            self.registry.remove(existing)

        column = UnifiedColumn.custom(header_name)
        self.registry.insert_after(self.registry.find_by_header(after_header_name), column)
        self.refresh()
        return column

    def inject_standard_placeholders(self) -> list[UnifiedColumn]:
        return [self.inject_placeholder(name, anchor) for name, anchor in STANDARD_PLACEHOLDERS]
