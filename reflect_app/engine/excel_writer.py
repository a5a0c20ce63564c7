from __future__ import annotations

import csv
import json
import math
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Sequence

import numpy as np
import pandas as pd
from openpyxl import Workbook

from reflect_app.engine.plugin_api import SpectralTable

__all__ = ["write_workbook", "write_csv", "spectra_rows"]


def _ensure_parent(path: Path) -> None:
    if not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)


def _clean_value(value: Any) -> Any:
    if isinstance(value, np.ndarray):
        value = value.tolist()
    elif isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float):
        if not math.isfinite(value):
            return None
        return value
    if isinstance(value, (list, tuple, set)):
        return json.dumps([_clean_value(v) for v in value])
    if isinstance(value, dict):
        return json.dumps({str(k): _clean_value(v) for k, v in value.items()})
    if isinstance(value, (Path, os.PathLike)):
        value = os.fspath(value)
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    if isinstance(value, str):
        if value and value[0] in "=+-@":
            if not value.startswith("'"):
                return "'" + value
        return value
    return value


def spectra_rows(table: SpectralTable) -> List[List[Any]]:
    """Wide layout: the wavelength first, then one column per series."""

    header: List[Any] = ["wl"] + [_clean_value(name) for name in table.names]
    rows = [header]
    for wl, values in zip(table.wavelength, table.values):
        rows.append([_clean_value(float(wl))] + [_clean_value(float(v)) for v in values])
    return rows


def _summary_rows(summary: pd.DataFrame | Sequence[Dict[str, Any]]) -> List[List[Any]]:
    if isinstance(summary, pd.DataFrame):
        frame = summary.reset_index() if summary.index.name else summary
        records = frame.to_dict(orient="records")
    else:
        records = list(summary)
    if not records:
        return []
    columns: List[str] = []
    for record in records:
        for key in record:
            if key not in columns:
                columns.append(key)
    rows: List[List[Any]] = [list(columns)]
    for record in records:
        rows.append([_clean_value(record.get(col)) for col in columns])
    return rows


def write_workbook(
    path: str | os.PathLike,
    table: SpectralTable,
    summary: pd.DataFrame | Sequence[Dict[str, Any]] | None = None,
    audit: Iterable[str] | None = None,
) -> Path:
    path = Path(path)
    _ensure_parent(path)
    workbook = Workbook()
    sheet = workbook.active
    sheet.title = "Spectra"
    for row in spectra_rows(table):
        sheet.append(row)

    if summary is not None:
        rows = _summary_rows(summary)
        if rows:
            summary_sheet = workbook.create_sheet("Summary")
            for row in rows:
                summary_sheet.append(row)

    if audit is not None:
        audit_sheet = workbook.create_sheet("Audit")
        audit_sheet.append(["entry"])
        for line in audit:
            audit_sheet.append([_clean_value(str(line))])

    workbook.save(path)
    return path


def write_csv(path: str | os.PathLike, table: SpectralTable) -> Path:
    path = Path(path)
    _ensure_parent(path)
    with path.open("w", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle)
        for row in spectra_rows(table):
            writer.writerow(["" if value is None else value for value in row])
    return path
