from __future__ import annotations

import tempfile
import unittest
from datetime import datetime
from pathlib import Path

import openpyxl
import pandas as pd

from datamerge.errors import ExportError
from datamerge.spreadsheet_io import SpreadsheetIO, load_frame


def write_workbook(path: Path, rows: list[list]) -> Path:
    wb = openpyxl.Workbook()
    ws = wb.active
    for row in rows:
        ws.append(row)
    wb.save(path)
    return path


class SpreadsheetReadTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmpdir.name)
        self.io = SpreadsheetIO()

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_xlsx_headers_and_rows_keep_native_dates(self):
        path = write_workbook(
            self.root / "leg.xlsx",
            [
                ["Name", "Fecha_Leg", "Medidor"],
                ["Bob", datetime(2024, 1, 10), "M-001"],
                ["Eva", None, "M-002"],
            ],
        )

        self.assertEqual(self.io.list_headers(path), ["Name", "Fecha_Leg", "Medidor"])
        rows = self.io.read_rows(path)

        self.assertEqual(len(rows), 2)
        self.assertEqual(rows[0]["Name"], "Bob")
        self.assertIsInstance(rows[0]["Fecha_Leg"], datetime)
        self.assertEqual(rows[0]["Fecha_Leg"].month, 1)
        self.assertEqual(rows[1]["Fecha_Leg"], "")
        self.assertEqual(self.io.warnings, [])

    def test_unnamed_excel_headers_are_reported_blank(self):
        path = write_workbook(self.root / "gap.xlsx", [["A", None, "C"], ["1", "2", "3"]])
        self.assertEqual(self.io.list_headers(path), ["A", "", "C"])

    def test_semicolon_csv_is_detected(self):
        path = self.root / "asig.csv"
        path.write_text("Nombre;FECHA_ASIG;tipo de trabajo\nAna;15/07/2023;400 - Inspección\nRaúl;;500\n", encoding="utf-8")

        self.assertEqual(self.io.list_headers(path), ["Nombre", "FECHA_ASIG", "tipo de trabajo"])
        self.assertEqual(
            self.io.read_rows(path),
            [
                {"Nombre": "Ana", "FECHA_ASIG": "15/07/2023", "tipo de trabajo": "400 - Inspección"},
                {"Nombre": "Raúl", "FECHA_ASIG": "", "tipo de trabajo": "500"},
            ],
        )

    def test_latin1_csv_is_decoded(self):
        path = self.root / "latin.csv"
        path.write_bytes("Nombre,Ciudad\nJosé,Bogotá\nMaría,Cúcuta\n".encode("latin-1"))

        rows = self.io.read_rows(path)

        self.assertEqual(self.io.list_headers(path), ["Nombre", "Ciudad"])
        self.assertEqual(len(rows), 2)
        self.assertTrue(rows[0]["Nombre"].startswith("Jos"))

    def test_tab_delimited_txt_is_accepted(self):
        path = self.root / "export.txt"
        path.write_text("Name\tCity\nBob\tCali\nAna\tPasto\n", encoding="utf-8")
        self.assertEqual(self.io.list_headers(path), ["Name", "City"])

    def test_prose_txt_is_rejected_with_warning(self):
        path = self.root / "notes.txt"
        path.write_text("Estas son notas sueltas y no una tabla.\n", encoding="utf-8")

        self.assertEqual(self.io.list_headers(path), [])
        self.assertEqual(len(self.io.warnings), 1)
        self.assertIn("notes.txt", self.io.warnings[0])

    def test_missing_and_unsupported_files_yield_nothing(self):
        unsupported = self.root / "data.json"
        unsupported.write_text("{}", encoding="utf-8")

        self.assertEqual(self.io.list_headers(self.root / "missing.csv"), [])
        self.assertEqual(self.io.read_rows(self.root / "missing.csv"), [])
        self.assertEqual(self.io.list_headers(unsupported), [])
        self.assertEqual(len(self.io.warnings), 2)

    def test_repeated_reads_of_a_bad_file_warn_once(self):
        path = self.root / "notes.txt"
        path.write_text("Estas son notas sueltas y no una tabla.\n", encoding="utf-8")

        self.io.list_headers(path)
        for _ in range(3):
            self.assertEqual(self.io.read_rows(path), [])

        self.assertEqual(len(self.io.warnings), 1)

    def test_corrupt_workbook_yields_nothing(self):
        path = self.root / "broken.xlsx"
        path.write_bytes(b"this is not a zip archive")

        self.assertEqual(self.io.list_headers(path), [])
        self.assertEqual(self.io.read_rows(path), [])
        self.assertTrue(all("broken.xlsx" in line for line in self.io.warnings))

    def test_load_frame_raises_for_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            load_frame(self.root / "missing.xlsx")


class SpreadsheetWriteTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmpdir.name)
        self.io = SpreadsheetIO()
        self.rows = [
            {"PeriodoL": "202401", "Name": "Bob", "Extra": "ignored"},
            {"PeriodoL": "", "Name": "Ana", "Extra": "ignored"},
        ]

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_write_xlsx_follows_header_order(self):
        path = self.root / "nested" / "Consolidado.xlsx"
        self.io.write_rows(path, self.rows, ["Name", "PeriodoL"])

        wb = openpyxl.load_workbook(path)
        values = list(wb.active.iter_rows(values_only=True))
        self.assertEqual(values[0], ("Name", "PeriodoL"))
        self.assertEqual(values[1], ("Bob", "202401"))
        self.assertEqual(len(values), 3)

    def test_write_csv_as_utf8_and_collapse_repeated_headers(self):
        path = self.root / "out.csv"
        self.io.write_rows(path, [{"Name": "José"}], ["Name", "Name"])

        frame = pd.read_csv(path, encoding="utf-8")
        self.assertEqual(list(frame.columns), ["Name"])
        self.assertEqual(frame.iloc[0]["Name"], "José")

    def test_write_without_headers_uses_row_keys(self):
        path = self.root / "out.csv"
        self.io.write_rows(path, self.rows)

        frame = pd.read_csv(path, dtype=str, keep_default_na=False)
        self.assertEqual(list(frame.columns), ["PeriodoL", "Name", "Extra"])

    def test_write_failure_raises_export_error(self):
        blocked = self.root / "taken.csv"
        blocked.mkdir()

        with self.assertRaises(ExportError) as ctx:
            self.io.write_rows(blocked, self.rows, ["Name"])
        self.assertEqual(Path(ctx.exception.path), blocked)


if __name__ == "__main__":
    unittest.main()
