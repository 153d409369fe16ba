from __future__ import annotations

import os
import tempfile
import unittest
from datetime import datetime
from pathlib import Path
from unittest import mock

import pandas as pd

from datamerge.session import Session, default_export_name, export_stamp
from datamerge.transform import TransformOptions


class SessionTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.root = Path(self.tmpdir.name)
        self.first = self.root / "a.csv"
        self.first.write_text("Name,Fecha_Leg,Notas\nBob,2024-01-10,x\nEva,05/02/2024,y\n", encoding="utf-8")
        self.second = self.root / "b.csv"
        self.second.write_text("Nombre,NOTAS\nAna,z\n", encoding="utf-8")
        self.session = Session()
        self.session.add_files([self.first, self.second])

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_add_files_builds_columns_and_ignores_repeats(self):
        self.assertEqual([c.header_name for c in self.session.columns], ["Name", "Fecha_Leg", "Notas", "Nombre"])
        self.assertEqual(self.session.add_files([self.first]), [])
        self.assertEqual(len(self.session.files), 2)
        notas = self.session.registry.find_by_header("notas")
        self.assertEqual(notas.file_mappings, {str(self.first): "Notas", str(self.second): "NOTAS"})

    def test_find_file_by_path_or_unique_name(self):
        self.assertEqual(self.session.find_file(str(self.second)), str(self.second))
        self.assertEqual(self.session.find_file("b.csv"), str(self.second))
        self.assertIsNone(self.session.find_file("c.csv"))

    def test_rename_rejects_blank_names(self):
        name = self.session.registry.find_by_header("Name")
        self.assertFalse(self.session.rename(name, "   "))
        self.assertTrue(self.session.rename(name, " Cliente "))
        self.assertEqual(name.header_name, "Cliente")

    def test_preview_filters_to_active_headers(self):
        resolver = self.session.resolver
        resolver.set_target(self.session.registry.find_by_header("Name"))
        resolver.merge(self.session.registry.find_by_header("Nombre"))
        self.session.registry.find_by_header("Notas").is_selected = False
        self.session.options = TransformOptions(generate_periods=True)

        rows = self.session.preview(max_rows=3)

        self.assertEqual(
            rows,
            [
                {"PeriodoL": "202401", "PeriodoA": "", "Name": "Bob", "Fecha_Leg": "2024-01-10"},
                {"PeriodoL": "202402", "PeriodoA": "", "Name": "Eva", "Fecha_Leg": "05/02/2024"},
                {"PeriodoL": "", "PeriodoA": "", "Name": "Ana", "Fecha_Leg": ""},
            ],
        )

    def test_nothing_selected_means_no_work(self):
        self.session.deselect_all()
        output = self.root / "out.csv"

        self.assertFalse(self.session.has_work)
        self.assertEqual(self.session.preview(), [])
        self.assertEqual(self.session.export(output), 0)
        self.assertFalse(output.exists())

        self.session.select_all()
        self.assertTrue(self.session.has_work)

    def test_export_writes_every_row_with_period_columns_first(self):
        self.session.options = TransformOptions(generate_periods=True)
        output = self.root / "out" / "Consolidado.csv"

        count = self.session.export(output)

        self.assertEqual(count, 3)
        frame = pd.read_csv(output, dtype=str, keep_default_na=False)
        self.assertEqual(list(frame.columns), ["PeriodoL", "PeriodoA", "Name", "Fecha_Leg", "Notas", "Nombre"])
        self.assertEqual(list(frame["Notas"]), ["x", "y", "z"])

    def test_duplicate_header_warnings_follow_policy(self):
        self.session.rename(self.session.registry.find_by_header("Nombre"), "Name")
        self.assertEqual(
            self.session.duplicate_header_warnings(),
            ["Duplicate output header 'Name' (policy: last)"],
        )

    def test_clear_all_forgets_files_columns_and_target(self):
        self.session.resolver.set_target(self.session.columns[0])
        self.session.clear_all()

        self.assertEqual(self.session.files, [])
        self.assertEqual(self.session.columns, [])
        self.assertIsNone(self.session.resolver.target)

    def test_unreadable_file_is_reported_not_raised(self):
        broken = self.root / "notas.txt"
        broken.write_text("Estas son notas sueltas y no una tabla.\n", encoding="utf-8")
        self.session.add_files([broken])

        self.assertEqual(len(self.session.warnings), 1)
        self.assertEqual(len(self.session.consolidate()), 3)
        self.session.preview()
        self.assertEqual(len(self.session.warnings), 1)

        self.session.clear_all()
        self.assertEqual(self.session.warnings, [])


class ExportNameTests(unittest.TestCase):
    def test_default_name_uses_date_stamp(self):
        with mock.patch.dict(os.environ, {}, clear=False):
            os.environ.pop("DATAMERGE_OUTPUT_STAMP", None)
            self.assertEqual(export_stamp(datetime(2024, 3, 9, 14, 0)), "20240309")
            self.assertEqual(default_export_name(datetime(2024, 3, 9)), "Consolidado_20240309")

    def test_stamp_override_from_environment(self):
        with mock.patch.dict(os.environ, {"DATAMERGE_OUTPUT_STAMP": "FIXED"}):
            self.assertEqual(default_export_name(), "Consolidado_FIXED")


if __name__ == "__main__":
    unittest.main()
