#!/usr/bin/env python3
"""
Generates a small set of overlapping source files for trying datamerge.

Run from the repo root:
    python sample-data/generate_samples.py

Files:
  legalizaciones.xlsx
    - "Name", "Fecha_Leg", "Tipo de Trabajo", "Barrio_desc", "Medidor"
    - Fecha_Leg holds real dates, one ISO string and one free-text note
  asignaciones.csv
    - "Nombre", "FECHA_ASIG" (different spelling and case), "tipo de trabajo"
  notas.txt
    - Prose, not a table: datamerge skips it with a warning
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import openpyxl

OUTPUT_DIR = Path(__file__).parent


def build_samples(folder: Path = OUTPUT_DIR) -> list[Path]:
    folder.mkdir(parents=True, exist_ok=True)

    workbook_path = folder / "legalizaciones.xlsx"
    wb = openpyxl.Workbook()
    ws = wb.active
    ws.title = "Legalizaciones"
    ws.append(["Name", "Fecha_Leg", "Tipo de Trabajo", "Barrio_desc", "Medidor"])
    ws.append(["Bob", datetime(2024, 1, 10), "100 - Instalación", "Centro", "M-001"])
    ws.append(["Eva", "2024-02-05", "200 - Reparación", "Norte", "M-002"])
    ws.append(["Luis", "Legalizado el 2024-03-15", "300", "Sur", "M-003"])
    wb.save(workbook_path)

    csv_path = folder / "asignaciones.csv"
    csv_path.write_text(
        "Nombre;FECHA_ASIG;tipo de trabajo\n"
        "Ana;15/07/2023;400 - Inspección\n"
        "Raúl;;500\n",
        encoding="utf-8",
    )

    notes_path = folder / "notas.txt"
    notes_path.write_text("Estas son notas sueltas y no una tabla.\n", encoding="utf-8")
    return [workbook_path, csv_path, notes_path]


if __name__ == "__main__":
    for path in build_samples():
        print(f"Created: {path}")
