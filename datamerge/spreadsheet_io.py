"""
spreadsheet_io.py — spreadsheet reader/writer used by the datamerge engine

Supports: .csv .tsv .txt .xlsx .xlsm .xls

Public API:
    io_ = SpreadsheetIO()
    headers = io_.list_headers("path/to/file.xlsx")
    rows    = io_.read_rows("path/to/file.xlsx")
    io_.write_rows(Path("out.xlsx"), rows)

Reading never raises: an unreadable file yields an empty header list or an
empty row list, and a line is added to ``io_.warnings``. Writing raises
ExportError on failure.
"""

from __future__ import annotations

import csv
import io
from collections import Counter
from pathlib import Path
from typing import Any, Optional, Sequence

import chardet
import pandas as pd

from datamerge.errors import ExportError

# ── Format groups ──────────────────────────────────────────────────────────────
TEXT_FORMATS  = {".csv", ".tsv", ".txt"}
EXCEL_FORMATS = {".xlsx", ".xlsm", ".xls"}
ALL_FORMATS   = TEXT_FORMATS | EXCEL_FORMATS
CSV_OUTPUT_FORMATS = {".csv"}

UNNAMED_PREFIX = "Unnamed:"


# ══════════════════════════════════════════════════════════════════════════════
# ENCODING DETECTION
# ══════════════════════════════════════════════════════════════════════════════

def _detect_encoding(raw: bytes) -> str:
    result = chardet.detect(raw)
    return result.get("encoding") or "utf-8"


def _read_text_safely(raw: bytes, preferred_encoding: str) -> str:
    """
    Decode raw bytes line-by-line.

    Strategy per line:
      1. Try UTF-8
      2. Try preferred_encoding (chardet result)
      3. Try latin-1
      4. CP1252 with replace (never crashes)

    Strips a leading BOM and embedded null bytes.
    """
    decoded_lines: list[str] = []
    for raw_line in raw.split(b"\n"):
        decoded: str | None = None
        for enc in ("utf-8", preferred_encoding, "latin-1"):
            if not enc:
                continue
            try:
                decoded = raw_line.decode(enc)
                break
            except (LookupError, UnicodeDecodeError):
                continue
        if decoded is None:
            decoded = raw_line.decode("cp1252", errors="replace")
        decoded_lines.append(decoded.replace("\x00", ""))
    return "\n".join(decoded_lines).lstrip("\ufeff")


# ══════════════════════════════════════════════════════════════════════════════
# DELIMITER DETECTION
# ══════════════════════════════════════════════════════════════════════════════

def _detect_delimiter(text: str) -> str:
    """
    Infer the delimiter from sample lines.

    Uses csv.Sniffer first; falls back to scoring each candidate delimiter by
    column-count consistency and column width.
    """
    sample_lines = [line for line in text.splitlines() if line.strip()][:50]
    sample = "\n".join(sample_lines[:25])

    if sample:
        try:
            return csv.Sniffer().sniff(sample, delimiters=",;\t|").delimiter
        except csv.Error:
            pass

    best_delim = ","
    best_score = float("-inf")
    sample_text = "\n".join(sample_lines)

    for delim in [",", ";", "\t", "|"]:
        rows = [
            row
            for row in csv.reader(io.StringIO(sample_text), delimiter=delim)
            if any(cell.strip() for cell in row)
        ]
        if not rows:
            continue
        widths = Counter(len(row) for row in rows)
        mode_width, mode_count = widths.most_common(1)[0]
        score = (mode_width * 2.0) + (mode_count / len(rows)) * mode_width
        if mode_width == 1:
            score -= 10.0
        if score > best_score:
            best_score = score
            best_delim = delim

    return best_delim


def _validate_txt_table(text: str, delimiter: str) -> None:
    """Reject .txt files that are prose rather than delimited data."""
    sample_lines = [line for line in text.splitlines() if line.strip()][:50]
    rows = [
        row
        for row in csv.reader(io.StringIO("\n".join(sample_lines)), delimiter=delimiter)
        if any(cell.strip() for cell in row)
    ]
    if len(rows) < 2:
        raise ValueError(
            ".txt file does not appear to contain delimited/tabular data "
            "(need at least 2 non-empty rows)"
        )
    if sum(1 for row in rows if len(row) > 1) < 2:
        raise ValueError(
            ".txt file does not appear to contain delimited/tabular data "
            f"(detected delimiter {delimiter!r} but fewer than 2 rows contain multiple fields)"
        )


# ══════════════════════════════════════════════════════════════════════════════
# FORMAT LOADERS
# ══════════════════════════════════════════════════════════════════════════════

def _load_text(path: Path, suffix: str, header_only: bool) -> pd.DataFrame:
    raw = path.read_bytes()
    text = _read_text_safely(raw, _detect_encoding(raw))

    delimiter = "\t" if suffix == ".tsv" else _detect_delimiter(text)
    if suffix == ".txt":
        _validate_txt_table(text, delimiter)

    sep = r"\|" if delimiter == "|" else delimiter
    return pd.read_csv(
        io.StringIO(text),
        dtype=str,
        keep_default_na=False,
        on_bad_lines="skip",
        sep=sep,
        engine="python",
        nrows=0 if header_only else None,
    )


def _load_excel(path: Path, header_only: bool) -> pd.DataFrame:
    # First sheet only; cells keep their native types (dates stay datetimes).
    return pd.read_excel(
        path,
        sheet_name=0,
        dtype=object,
        nrows=0 if header_only else None,
    )


def load_frame(path: "str | Path", header_only: bool = False) -> pd.DataFrame:
    """
    Load the first table of a supported file.

    Raises:
        FileNotFoundError  if the file does not exist.
        ValueError         if the format is unsupported or unreadable.
        ImportError        if .xls support (xlrd) is not installed.
    """
    path = Path(path)
    suffix = path.suffix.lower()

    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")
    if suffix not in ALL_FORMATS:
        supported = ", ".join(sorted(ALL_FORMATS))
        raise ValueError(f"Unsupported format '{suffix}'. Supported: {supported}")

    if suffix in TEXT_FORMATS:
        df = _load_text(path, suffix, header_only)
    else:
        df = _load_excel(path, header_only)
    df.columns = [str(column) for column in df.columns]
    return df


# ══════════════════════════════════════════════════════════════════════════════
# PUBLIC API
# ══════════════════════════════════════════════════════════════════════════════

class SpreadsheetIO:
    def __init__(self) -> None:
        self.warnings: list[str] = []

    def _warn(self, path, exc: Exception) -> None:
        # One line per distinct failure; a file is read again on every preview.
        message = f"Could not read {Path(path).name}: {exc}"
        if message not in self.warnings:
            self.warnings.append(message)

    def list_headers(self, path: "str | Path") -> list[str]:
        try:
            df = load_frame(path, header_only=True)
        except Exception as exc:
            self._warn(path, exc)
            return []
        return ["" if name.startswith(UNNAMED_PREFIX) else name for name in df.columns]

    def read_rows(self, path: "str | Path") -> list[dict[str, Any]]:
        try:
            df = load_frame(path)
        except Exception as exc:
            self._warn(path, exc)
            return []
        df = df.astype(object).where(pd.notna(df), "")
        return df.to_dict(orient="records")

    def write_rows(
        self,
        path: Path,
        rows: list[dict[str, Any]],
        headers: Optional[Sequence[str]] = None,
    ) -> None:
        """
        Write rows to ``path``, replacing any existing file.

        ``.csv`` destinations get UTF-8 delimited text; anything else is
        written as an .xlsx workbook. Column order follows ``headers`` when
        given, otherwise the key order of the rows.
        """
        path = Path(path)
        if headers is None:
            headers = [key for row in rows for key in row]
        df = pd.DataFrame(rows, columns=list(dict.fromkeys(headers)))
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            if path.suffix.lower() in CSV_OUTPUT_FORMATS:
                df.to_csv(path, index=False, encoding="utf-8")
            else:
                df.to_excel(path, index=False, engine="openpyxl")
        except Exception as exc:
            raise ExportError(path, exc) from exc
