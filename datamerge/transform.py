"""
transform.py — map one raw source row onto the unified column list.

Public API:
    row = transform_row(raw_row, source_file, columns, options)

Helpers:
    extract_period(value)   — "YYYYMM" from a date-ish value, "" otherwise
    clean_job(value)        — first "-"-separated fragment of a job value
    is_job_column(header)   — header mentions both "Tipo" and "Trabajo"
    output_headers(...)     — resolve output keys under a duplicate-header policy
"""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Mapping, Optional, Sequence

import pandas as pd
from dateutil import parser as dtparser

from datamerge.errors import DuplicateHeaderError
from datamerge.models import UnifiedColumn

PERIOD_SOURCES = (
    ("Fecha_Leg", "PeriodoL"),
    ("Fecha_Asig", "PeriodoA"),
)
PERIOD_HEADERS = tuple(output for _, output in PERIOD_SOURCES)

DUPLICATE_POLICIES = ("last", "suffix", "error")

_EMBEDDED_DATE_RE = re.compile(r"(\d{4}[-/]\d{1,2}[-/]\d{1,2})|(\d{1,2}[-/]\d{1,2}[-/]\d{4})")
_YEAR_FIRST_RE = re.compile(r"^\d{4}[-/.]")
_SHORT_NUMBER_RE = re.compile(r"^\d{1,5}$")
# Fields missing from a parsed text (e.g. the day in "July 2023") come from here.
_PARSE_DEFAULT = datetime(2000, 1, 1)


@dataclass
class TransformOptions:
    generate_periods: bool = False
    clean_job_type: bool = False
    dayfirst: bool = True
    duplicate_headers: str = "last"

    def __post_init__(self) -> None:
        if self.duplicate_headers not in DUPLICATE_POLICIES:
            raise ValueError(
                f"Unknown duplicate-header policy '{self.duplicate_headers}'. "
                f"Use one of: {', '.join(DUPLICATE_POLICIES)}"
            )


def is_missing(value: Any) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def _format_period(value: date) -> str:
    return f"{value.year:04d}{value.month:02d}"


def _parse_date(text: str, dayfirst: bool) -> Optional[datetime]:
    if _SHORT_NUMBER_RE.match(text):
        return None
    try:
        return dtparser.parse(
            text,
            dayfirst=dayfirst and not _YEAR_FIRST_RE.match(text),
            default=_PARSE_DEFAULT,
        )
    except (ValueError, OverflowError):
        return None


def extract_period(value: Any, dayfirst: bool = True) -> str:
    """
    Return the ``YYYYMM`` period of a date-like value.

    Date/datetime instances are formatted directly. Text is parsed as a whole
    first; failing that, the first embedded ``YYYY-MM-DD`` / ``DD/MM/YYYY``
    style fragment is parsed. Anything else yields an empty string. Text that
    starts with a four-digit year is always read year-month-day; ``dayfirst``
    decides the remaining ambiguous cases.
    """
    if is_missing(value):
        return ""
    if isinstance(value, (datetime, date)):
        return _format_period(value)

    text = str(value).strip()
    if not text:
        return ""

    parsed = _parse_date(text, dayfirst)
    if parsed is not None:
        return _format_period(parsed)

    match = _EMBEDDED_DATE_RE.search(text)
    if match:
        parsed = _parse_date(match.group(0), dayfirst)
        if parsed is not None:
            return _format_period(parsed)
    return ""


def clean_job(value: Any) -> str:
    if is_missing(value):
        return ""
    text = str(value)
    if not text.strip():
        return ""
    fragments = [fragment for fragment in text.split("-") if fragment]
    if fragments:
        return fragments[0].strip()
    return text


def is_job_column(header_name: Optional[str]) -> bool:
    if not header_name or not header_name.strip():
        return False
    lowered = header_name.lower()
    return "tipo" in lowered and "trabajo" in lowered


def duplicate_headers(columns: Sequence[UnifiedColumn], options: TransformOptions) -> list[str]:
    names = list(PERIOD_HEADERS) if options.generate_periods else []
    names.extend(column.header_name for column in columns if column.is_selected)
    counts = Counter(names)
    return [name for name, count in counts.items() if count > 1]


def output_headers(columns: Sequence[UnifiedColumn], options: TransformOptions) -> list[str]:
    """
    Output key for each selected column, in order.

    ``last`` keeps duplicate names as they are, so the later column wins the
    cell. ``suffix`` renames later duplicates ``Name_2``, ``Name_3``...
    ``error`` raises DuplicateHeaderError.
    """
    selected = [column for column in columns if column.is_selected]
    names = [column.header_name for column in selected]
    if options.duplicate_headers == "last":
        return names

    duplicates = duplicate_headers(selected, options)
    if not duplicates:
        return names
    if options.duplicate_headers == "error":
        raise DuplicateHeaderError(duplicates)

    taken = set(PERIOD_HEADERS) if options.generate_periods else set()
    taken.update(names)
    seen: set[str] = set(PERIOD_HEADERS) if options.generate_periods else set()
    resolved: list[str] = []
    for name in names:
        if name not in seen:
            seen.add(name)
            resolved.append(name)
            continue
        counter = 2
        while f"{name}_{counter}" in taken:
            counter += 1
        candidate = f"{name}_{counter}"
        taken.add(candidate)
        seen.add(candidate)
        resolved.append(candidate)
    return resolved


def _find_key(row: Mapping[str, Any], wanted: str) -> Optional[str]:
    wanted = wanted.lower()
    for key in row:
        if str(key).lower() == wanted:
            return key
    return None


def transform_row(
    row: Mapping[str, Any],
    source_file: str,
    columns: Sequence[UnifiedColumn],
    options: Optional[TransformOptions] = None,
    headers: Optional[Sequence[str]] = None,
) -> dict[str, Any]:
    """
    Build one output row from a raw source row read from ``source_file``.

    ``headers`` are the precomputed output keys from output_headers(); they
    default to the selected columns' header names.
    """
    options = options or TransformOptions()
    selected = [column for column in columns if column.is_selected]
    if headers is None:
        headers = [column.header_name for column in selected]

    output: dict[str, Any] = {}
    if options.generate_periods:
        for source_key, period_key in PERIOD_SOURCES:
            key = _find_key(row, source_key)
            output[period_key] = extract_period(row[key] if key is not None else None, options.dayfirst)

    for column, header in zip(selected, headers):
        if column.is_custom:
            output[header] = column.default_value
            continue

        value = None
        original_header = column.file_mappings.get(source_file)
        if original_header is not None:
            value = row.get(original_header)
            if is_missing(value):
                value = None

        if value is not None and options.clean_job_type and is_job_column(column.header_name):
            value = clean_job(value)
        output[header] = value if value is not None else ""
    return output
