from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_CUSTOM_HEADER = "New Column"
CUSTOM_SOURCE_LABEL = "Manual"


@dataclass(eq=False)
class UnifiedColumn:
    """
    One column of the consolidated output.

    ``file_mappings`` records, per source file, which original header feeds
    this column. Custom columns have no mappings and always emit
    ``default_value``. Columns compare by identity: two columns with the same
    header are still two different columns.
    """

    header_name: str
    is_selected: bool = True
    is_custom: bool = False
    default_value: str = ""
    file_mappings: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_source(cls, file_id: str, original_header: str) -> "UnifiedColumn":
        return cls(header_name=original_header, file_mappings={file_id: original_header})

    @classmethod
    def custom(cls, header_name: str = DEFAULT_CUSTOM_HEADER, default_value: str = "") -> "UnifiedColumn":
        return cls(header_name=header_name, is_custom=True, default_value=default_value)

    @property
    def source_count(self) -> int:
        return len(self.file_mappings)

    @property
    def source_info(self) -> str:
        if self.is_custom:
            return CUSTOM_SOURCE_LABEL
        return f"{self.source_count} fuente(s)"

    def has_header(self, name: str) -> bool:
        return self.header_name.lower() == (name or "").lower()

    def can_merge_with(self, other: "UnifiedColumn") -> bool:
        # Disjoint file sets only.
        return not (self.file_mappings.keys() & other.file_mappings.keys())

    def to_dict(self) -> dict:
        return {
            "header_name": self.header_name,
            "is_selected": self.is_selected,
            "is_custom": self.is_custom,
            "default_value": self.default_value,
            "file_mappings": dict(self.file_mappings),
            "source_info": self.source_info,
        }
