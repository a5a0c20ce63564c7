"""Readers for spectrometer text exports.

Each reader turns one file into a :class:`Spectrum`.  Readers are tried in
registry order and the first whose :meth:`SpectralFileReader.detect` accepts
the file parses it; the generic delimited reader is the fallback.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Type

import numpy as np

from reflect_app.engine.io_common import parse_numeric_row, sniff_locale
from reflect_app.engine.plugin_api import SpectralFormatError, Spectrum

__all__ = [
    "SpectralFileReader",
    "OceanOpticsReader",
    "JazReader",
    "AvantesReader",
    "DelimitedReader",
    "READERS",
    "parse_metadata_lines",
    "read_spectrum",
    "reader_for",
]

logger = logging.getLogger(__name__)

KEY_ALIASES = {
    "date": "acquired_datetime",
    "user": "operator",
    "spectrometers": "spectrometer",
    "spectrometer": "spectrometer",
    "spectrometer serial number": "spectrometer",
    "integration time (usec)": "integration_time_us",
    "integration time (sec)": "integration_time_s",
    "integration time [msec]": "integration_time_ms",
    "integration time": "integration_time",
    "spectra averaged": "averages",
    "scans to average": "averages",
    "nr of average": "averages",
    "boxcar smoothing": "boxcar_width",
    "boxcar width": "boxcar_width",
    "smoothing pixels": "boxcar_width",
    "processing mode": "mode",
    "number of pixels in processed spectrum": "n_pixels",
    "number of pixels in spectrum": "n_pixels",
    "data measured with spectrometer": "spectrometer",
}

BEGIN_MARKER = ">>>>>begin"
END_MARKER = ">>>>>end"


def parse_metadata_lines(lines: Iterable[str]) -> Dict[str, Any]:
    meta: Dict[str, Any] = {}
    for raw_line in lines:
        line = raw_line.strip().strip("#")
        if not line or line.startswith(">>>>>"):
            continue
        for sep in (":", "="):
            if sep in line:
                left, right = line.split(sep, 1)
                key = left.strip().lower()
                value = right.strip()
                if key:
                    meta[KEY_ALIASES.get(key, key.replace(" ", "_"))] = value
                break
    return meta


def _read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8", errors="ignore")


def _rows_to_arrays(
    rows: Sequence[Sequence[float]], *, x_col: int = 0, y_col: int = -1
) -> Tuple[np.ndarray, np.ndarray]:
    if not rows:
        raise SpectralFormatError("No numeric rows found")
    width = min(len(row) for row in rows)
    table = np.array([row[:width] for row in rows], dtype=float)
    return table[:, x_col], table[:, y_col]


class SpectralFileReader:
    id: str = "base"
    label: str = "Base"
    extensions: Tuple[str, ...] = ()

    def detect(self, path: Path, sample: str) -> bool:
        return False

    def load(self, path: Path, text: str, decimal: Optional[str] = ".") -> Spectrum:
        raise NotImplementedError

    def _finish(self, path: Path, wl: np.ndarray, values: np.ndarray, meta: Dict[str, Any]) -> Spectrum:
        mask = np.isfinite(wl) & np.isfinite(values)
        if not np.any(mask):
            raise SpectralFormatError(f"{path.name}: no finite samples")
        meta = dict(meta)
        meta.setdefault("source_type", self.id)
        meta.setdefault("source_file", str(path))
        meta.setdefault("sample_id", path.stem)
        return Spectrum(wavelength=wl[mask], intensity=values[mask], meta=meta)


def _resolve_decimal(text: str, decimal: Optional[str]) -> str:
    if decimal in {".", ","}:
        return decimal
    return sniff_locale(text[:4000])["decimal"]


class OceanOpticsReader(SpectralFileReader):
    """SpectraSuite / OceanView exports with ``>>>>>Begin`` data markers."""

    id = "ocean_optics"
    label = "Ocean Optics"
    extensions = (".ttt", ".txt", ".procspec", ".ttt2")

    def detect(self, path: Path, sample: str) -> bool:
        lowered = sample.lower()
        return BEGIN_MARKER in lowered and "w\td\tr\ts\tp" not in lowered.replace(" ", "")

    def load(self, path: Path, text: str, decimal: Optional[str] = ".") -> Spectrum:
        decimal = _resolve_decimal(text, decimal)
        lines = text.splitlines()
        begin = next(
            (idx for idx, line in enumerate(lines) if line.strip().lower().startswith(BEGIN_MARKER)),
            None,
        )
        if begin is None:
            raise SpectralFormatError(f"{path.name}: missing begin marker")
        end = next(
            (
                idx
                for idx in range(begin + 1, len(lines))
                if lines[idx].strip().lower().startswith(END_MARKER)
            ),
            len(lines),
        )
        rows = [row for row in (parse_numeric_row(ln, decimal) for ln in lines[begin + 1 : end]) if row]
        wl, values = _rows_to_arrays(rows)
        meta = parse_metadata_lines(lines[:begin])
        return self._finish(path, wl, values, meta)


class JazReader(SpectralFileReader):
    """Jaz exports listing W, D, R, S and P columns; ``P`` is the processed trace."""

    id = "jaz"
    label = "Ocean Optics Jaz"
    extensions = (".jaz", ".jazirrad")

    def detect(self, path: Path, sample: str) -> bool:
        if path.suffix.lower() in self.extensions:
            return True
        compact = sample.lower().replace(" ", "")
        return BEGIN_MARKER in compact and "w\td\tr\ts\tp" in compact

    def load(self, path: Path, text: str, decimal: Optional[str] = ".") -> Spectrum:
        decimal = _resolve_decimal(text, decimal)
        lines = text.splitlines()
        begin = next(
            (idx for idx, line in enumerate(lines) if line.strip().lower().startswith(BEGIN_MARKER)),
            None,
        )
        if begin is None or begin + 1 >= len(lines):
            raise SpectralFormatError(f"{path.name}: missing processed data block")
        header = [item.strip().upper() for item in lines[begin + 1].split("\t") if item.strip()]
        if "W" not in header:
            raise SpectralFormatError(f"{path.name}: Jaz header lacks a W column")
        x_col = header.index("W")
        y_col = header.index("P") if "P" in header else len(header) - 1
        rows: List[List[float]] = []
        for line in lines[begin + 2 :]:
            if line.strip().lower().startswith(END_MARKER):
                break
            row = parse_numeric_row(line, decimal)
            if row and len(row) >= len(header):
                rows.append(row)
        wl, values = _rows_to_arrays(rows, x_col=x_col, y_col=y_col)
        meta = parse_metadata_lines(lines[:begin])
        if path.suffix.lower() == ".jazirrad":
            meta.setdefault("mode", "irradiance")
        return self._finish(path, wl, values, meta)


class AvantesReader(SpectralFileReader):
    """AvaSoft text exports: a short header then wavelength-first rows."""

    id = "avantes"
    label = "Avantes"
    extensions = (".trt", ".ttt", ".rfl", ".abs", ".trm", ".irr")

    def detect(self, path: Path, sample: str) -> bool:
        lowered = sample.lower()
        return "avantes" in lowered or "avasoft" in lowered or (
            path.suffix.lower() in {".trt", ".rfl"} and BEGIN_MARKER not in lowered
        )

    def load(self, path: Path, text: str, decimal: Optional[str] = ".") -> Spectrum:
        decimal = _resolve_decimal(text, decimal)
        lines = text.splitlines()
        rows: List[List[float]] = []
        header_lines: List[str] = []
        for line in lines:
            row = parse_numeric_row(line, decimal)
            if row is None:
                if not rows:
                    header_lines.append(line)
                continue
            rows.append(row)
        wl, values = _rows_to_arrays(rows)
        meta = parse_metadata_lines(header_lines)
        return self._finish(path, wl, values, meta)


class DelimitedReader(SpectralFileReader):
    """Plain two-or-more column tables; non-numeric rows are ignored."""

    id = "delimited"
    label = "Delimited text"
    extensions = (".csv", ".txt", ".dat", ".tsv")

    def detect(self, path: Path, sample: str) -> bool:
        return True

    def load(self, path: Path, text: str, decimal: Optional[str] = ".") -> Spectrum:
        decimal = _resolve_decimal(text, decimal)
        rows = [row for row in (parse_numeric_row(ln, decimal) for ln in text.splitlines()) if row]
        wl, values = _rows_to_arrays(rows)
        return self._finish(path, wl, values, {})


READERS: Tuple[Type[SpectralFileReader], ...] = (
    JazReader,
    OceanOpticsReader,
    AvantesReader,
    DelimitedReader,
)


def reader_for(path: Path | str, sample: str) -> SpectralFileReader:
    path = Path(path)
    for reader_cls in READERS:
        reader = reader_cls()
        if reader.detect(path, sample):
            return reader
    return DelimitedReader()


def read_spectrum(path: Path | str, decimal: Optional[str] = ".") -> Spectrum:
    """Parse ``path`` with the first reader that recognises it."""

    path = Path(path)
    text = _read_text(path)
    reader = reader_for(path, text[:4000])
    logger.debug("Reading %s with %s reader", path, reader.id)
    spectrum = reader.load(path, text, decimal)

    order = np.argsort(spectrum.wavelength, kind="stable")
    wl = spectrum.wavelength[order]
    values = spectrum.intensity[order]
    unique_wl, inverse, counts = np.unique(wl, return_inverse=True, return_counts=True)
    if unique_wl.size != wl.size:
        merged = np.zeros_like(unique_wl, dtype=float)
        np.add.at(merged, inverse, values)
        wl, values = unique_wl, merged / counts
    return Spectrum(wavelength=wl, intensity=values, meta=spectrum.meta)
