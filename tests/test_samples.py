from __future__ import annotations

import importlib.util
import sys
import tempfile
import unittest
from pathlib import Path

from datamerge.session import Session
from datamerge.transform import TransformOptions

ROOT = Path(__file__).resolve().parents[1]


def load_module(module_path: Path, module_name: str):
    spec = importlib.util.spec_from_file_location(module_name, module_path)
    module = importlib.util.module_from_spec(spec)
    assert spec and spec.loader
    sys.modules[module_name] = module
    spec.loader.exec_module(module)
    return module


SAMPLES = load_module(ROOT / "sample-data" / "generate_samples.py", "datamerge_generate_samples")


class SampleDataTests(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.paths = SAMPLES.build_samples(Path(self.tmpdir.name))
        self.session = Session(options=TransformOptions(generate_periods=True, clean_job_type=True))
        self.session.add_files(self.paths)

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_samples_unify_job_type_and_skip_prose(self):
        job = self.session.registry.find_by_header("tipo de trabajo")
        self.assertEqual(job.header_name, "Tipo de Trabajo")
        self.assertEqual(job.source_count, 2)
        self.assertEqual(len(self.session.warnings), 1)
        self.assertIn("notas.txt", self.session.warnings[0])

    def test_samples_consolidate_with_periods_and_clean_codes(self):
        resolver = self.session.resolver
        resolver.set_target(self.session.registry.find_by_header("Name"))
        resolver.merge(self.session.registry.find_by_header("Nombre"))

        rows = self.session.consolidate()

        self.assertEqual([row["Name"] for row in rows], ["Bob", "Eva", "Luis", "Ana", "Raúl"])
        self.assertEqual([row["PeriodoL"] for row in rows], ["202401", "202402", "202403", "", ""])
        self.assertEqual([row["PeriodoA"] for row in rows], ["", "", "", "202307", ""])
        self.assertEqual([row["Tipo de Trabajo"] for row in rows], ["100", "200", "300", "400", "500"])


if __name__ == "__main__":
    unittest.main()
