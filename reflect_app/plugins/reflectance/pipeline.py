"""Reflectance conversion and preprocessing helpers."""

from __future__ import annotations

import logging
import re
import warnings
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from reflect_app.engine.plugin_api import SpectralTable, Spectrum

__all__ = [
    "PROCESSING_OPTIONS",
    "FIXNEG_OPTIONS",
    "as_rspec",
    "combine_spectra",
    "process_spectra",
    "smooth_loess",
    "subset_spectra",
    "merge_spectra",
    "wavelength_grid",
]

logger = logging.getLogger(__name__)

OPTION_ALIASES = {
    "none": "none",
    "smooth": "smooth",
    "min": "min",
    "minimum": "min",
    "max": "max",
    "maximum": "max",
    "both": "both",
    "sum": "sum",
    "bin": "bin",
    "center": "center",
    "centre": "center",
}
PROCESSING_OPTIONS = ("none", "smooth", "min", "max", "both", "sum", "bin", "center")
FIXNEG_OPTIONS = ("none", "addmin", "zero")
WAVELENGTH_NAMES = ("wl", "wavelength", "wavelengths", "lambda", "nm")


def _nan_safe(values: np.ndarray) -> np.ndarray:
    """Interpolate NaNs in ``values`` so that downstream algorithms behave."""

    arr = np.asarray(values, dtype=float)
    if np.all(np.isfinite(arr)):
        return arr

    x = np.arange(arr.size)
    mask = np.isfinite(arr)
    if not np.any(mask):
        return np.zeros_like(arr)

    arr = arr.copy()
    arr[~mask] = np.interp(x[~mask], x[mask], arr[mask])
    return arr


def _coerce_lim(lim: Sequence[float] | None) -> Tuple[float, float] | None:
    if lim is None:
        return None
    if len(lim) != 2:
        raise ValueError("lim must contain exactly two wavelengths")
    lo, hi = float(lim[0]), float(lim[1])
    if lo >= hi:
        raise ValueError("Wavelength limit minimum must be smaller than maximum")
    return lo, hi


def wavelength_grid(lo: float, hi: float) -> np.ndarray:
    """Integer 1 nm grid covering ``[lo, hi]``."""

    start = int(np.ceil(lo - 1e-9))
    stop = int(np.floor(hi + 1e-9))
    if stop < start:
        raise ValueError(f"No whole wavelengths between {lo} and {hi}")
    return np.arange(start, stop + 1, dtype=float)


def _as_frame(data: Any) -> pd.DataFrame:
    if isinstance(data, SpectralTable):
        return data.to_frame()
    if isinstance(data, pd.DataFrame):
        frame = data.copy()
        frame.columns = [str(col) for col in frame.columns]
        return frame
    if isinstance(data, Mapping):
        return pd.DataFrame({str(key): np.asarray(value) for key, value in data.items()})
    arr = np.asarray(data)
    if arr.ndim != 2:
        raise TypeError("Spectral data must be a table, mapping or 2-D array")
    columns = [f"spec{idx}" for idx in range(arr.shape[1])]
    return pd.DataFrame(arr, columns=columns)


def _find_wavelength_column(frame: pd.DataFrame, whichwl: int | str | None) -> str:
    columns = list(frame.columns)
    if whichwl is not None:
        if isinstance(whichwl, (int, np.integer)):
            if not 0 <= int(whichwl) < len(columns):
                raise ValueError(f"Wavelength column index {whichwl} out of range")
            return columns[int(whichwl)]
        if str(whichwl) not in columns:
            raise ValueError(f"Wavelength column '{whichwl}' not found")
        return str(whichwl)

    for col in columns:
        if col.strip().lower() in WAVELENGTH_NAMES:
            return col

    for col in columns:
        values = pd.to_numeric(frame[col], errors="coerce").to_numpy(dtype=float)
        if values.size > 1 and np.all(np.isfinite(values)) and np.all(np.diff(values) > 0):
            logger.info("Using column '%s' as the wavelength axis", col)
            return col
    raise ValueError("No wavelength column found; pass whichwl explicitly")


def as_rspec(
    data: Any,
    whichwl: int | str | None = None,
    interp: bool = True,
    lim: Sequence[float] | None = None,
    exceed_range: bool = True,
) -> SpectralTable:
    """Convert tabular reflectance data into a :class:`SpectralTable`.

    Parameters
    ----------
    data:
        ``pandas.DataFrame``, 2-D array, mapping of columns or an existing
        table.
    whichwl:
        Index or name of the wavelength column.  When omitted a column named
        ``wl``/``wavelength`` or the first strictly increasing column is used.
    interp:
        Interpolate every series onto a 1 nm grid.
    lim:
        Wavelength range ``(lo, hi)``.  Without interpolation rows outside the
        range are dropped.
    exceed_range:
        When ``lim`` extends past the data, hold the edge values constant
        (with a warning) instead of clipping the range to the data.
    """

    frame = _as_frame(data)
    wl_col = _find_wavelength_column(frame, whichwl)
    wl = pd.to_numeric(frame[wl_col], errors="coerce").to_numpy(dtype=float)
    value_cols = [col for col in frame.columns if col != wl_col]
    if not value_cols:
        raise ValueError("Spectral data contains no reflectance columns")
    values = frame[value_cols].apply(pd.to_numeric, errors="coerce").to_numpy(dtype=float)

    finite = np.isfinite(wl)
    wl, values = wl[finite], values[finite]
    if wl.size == 0:
        raise ValueError("Wavelength column contains no finite values")
    order = np.argsort(wl, kind="stable")
    wl, values = wl[order], values[order]
    unique_wl, inverse, counts = np.unique(wl, return_inverse=True, return_counts=True)
    if unique_wl.size != wl.size:
        merged = np.zeros((unique_wl.size, values.shape[1]), dtype=float)
        np.add.at(merged, inverse, values)
        wl, values = unique_wl, merged / counts[:, None]

    lim_pair = _coerce_lim(lim)
    data_lo, data_hi = float(wl[0]), float(wl[-1])
    if lim_pair is not None and (lim_pair[0] < data_lo or lim_pair[1] > data_hi):
        if exceed_range and interp:
            warnings.warn(
                f"Requested wavelength limits {lim_pair} exceed the data range "
                f"({data_lo:g}-{data_hi:g} nm); values outside it are held constant",
                UserWarning,
                stacklevel=2,
            )
        else:
            lim_pair = (max(lim_pair[0], data_lo), min(lim_pair[1], data_hi))
            if lim_pair[0] >= lim_pair[1]:
                raise ValueError("Wavelength limits do not overlap the data")

    meta: Dict[str, Any] = {"wavelength_source": wl_col}
    if interp:
        lo, hi = lim_pair if lim_pair is not None else (data_lo, data_hi)
        grid = wavelength_grid(lo, hi)
        out = np.empty((grid.size, values.shape[1]), dtype=float)
        for idx in range(values.shape[1]):
            column = values[:, idx]
            mask = np.isfinite(column)
            if not np.any(mask):
                out[:, idx] = np.nan
                continue
            out[:, idx] = np.interp(grid, wl[mask], column[mask])
        meta["interpolated"] = True
        wl, values = grid, out
    elif lim_pair is not None:
        keep = (wl >= lim_pair[0]) & (wl <= lim_pair[1])
        if not np.any(keep):
            raise ValueError("No wavelengths fall within the requested limits")
        wl, values = wl[keep], values[keep]

    if isinstance(data, SpectralTable):
        meta = {**data.meta, **meta}
    return SpectralTable(wavelength=wl, values=values, names=value_cols, meta=meta)


def _unique_names(names: Sequence[str]) -> List[str]:
    seen: Dict[str, int] = {}
    result: List[str] = []
    for name in names:
        base = str(name)
        if base not in seen and base not in result:
            seen[base] = 0
            result.append(base)
            continue
        count = seen.get(base, 0) + 1
        candidate = f"{base}.{count}"
        while candidate in result:
            count += 1
            candidate = f"{base}.{count}"
        seen[base] = count
        result.append(candidate)
    return result


def combine_spectra(
    spectra: Sequence[Spectrum],
    lim: Sequence[float],
    names: Sequence[str] | None = None,
) -> SpectralTable:
    """Interpolate individual spectra onto a shared 1 nm grid."""

    if not spectra:
        raise ValueError("No spectra to combine")
    lo, hi = _coerce_lim(lim)  # type: ignore[misc]
    grid = wavelength_grid(lo, hi)
    if names is None:
        names = [str(spec.meta.get("sample_id", f"spec{idx}")) for idx, spec in enumerate(spectra)]
    names = _unique_names(names)

    out = np.empty((grid.size, len(spectra)), dtype=float)
    sources: List[Optional[str]] = []
    for idx, spec in enumerate(spectra):
        wl = np.asarray(spec.wavelength, dtype=float)
        inten = np.asarray(spec.intensity, dtype=float)
        if wl.size and (wl.min() > lo or wl.max() < hi):
            logger.warning(
                "%s covers %.1f-%.1f nm; values beyond it are held constant",
                names[idx],
                float(wl.min()),
                float(wl.max()),
            )
        out[:, idx] = np.interp(grid, wl, inten)
        sources.append(spec.meta.get("source_file"))
    meta = {"sources": sources, "interpolated": True}
    return SpectralTable(wavelength=grid, values=out, names=names, meta=meta)


def smooth_loess(x: np.ndarray, y: np.ndarray, span: float = 0.25, degree: int = 2) -> np.ndarray:
    """Local polynomial regression with tricube weights.

    ``y`` may be 1-D or shaped ``(n, k)``; every column is smoothed with the
    same neighbourhoods.
    """

    if not 0 < span <= 1:
        raise ValueError("span must lie in (0, 1]")
    x = np.asarray(x, dtype=float)
    y = np.asarray(y, dtype=float)
    squeeze = y.ndim == 1
    if squeeze:
        y = y[:, None]
    n = x.size
    if n <= degree + 1:
        return y[:, 0].copy() if squeeze else y.copy()

    k = min(n, max(degree + 2, int(np.ceil(span * n))))
    out = np.empty_like(y, dtype=float)
    for i, x0 in enumerate(x):
        dist = np.abs(x - x0)
        idx = np.argpartition(dist, k - 1)[:k]
        radius = float(dist[idx].max())
        if radius <= 0:
            out[i] = y[i]
            continue
        # widen slightly so the k-th neighbour keeps a tiny positive weight
        weights = np.clip(1.0 - (dist[idx] / (radius * 1.0001)) ** 3, 0.0, None) ** 3
        sqrt_w = np.sqrt(weights)
        design = np.vander(x[idx] - x0, degree + 1, increasing=True) * sqrt_w[:, None]
        coef, *_ = np.linalg.lstsq(design, y[idx] * sqrt_w[:, None], rcond=None)
        out[i] = coef[0]
    return out[:, 0] if squeeze else out


def _normalise_options(opt: str | Sequence[str] | None) -> List[str]:
    if opt is None:
        return []
    items = [opt] if isinstance(opt, str) else list(opt)
    resolved: List[str] = []
    for item in items:
        key = OPTION_ALIASES.get(str(item).strip().lower())
        if key is None:
            raise ValueError(f"Unknown processing option: {item}")
        if key == "both":
            resolved.extend(["min", "max"])
        elif key != "none":
            resolved.append(key)
    return resolved


def process_spectra(
    table: SpectralTable,
    opt: str | Sequence[str] | None = None,
    fixneg: str = "none",
    span: float = 0.25,
    bins: int = 20,
) -> SpectralTable:
    """Smooth, repair, normalise and bin reflectance spectra.

    Steps always run in the order smooth, fixneg, min, max, sum, bin, center
    whatever order ``opt`` lists them in.  Series without a single finite
    value are left NaN and logged.
    """

    options = set(_normalise_options(opt))
    fixneg = str(fixneg or "none").strip().lower()
    if fixneg not in FIXNEG_OPTIONS:
        raise ValueError(f"Unknown negative-value fix: {fixneg}")

    wl = table.wavelength.copy()
    empty = ~np.any(np.isfinite(table.values), axis=0)
    if np.any(empty):
        logger.warning(
            "Spectra without finite values stay NaN: %s",
            ", ".join(name for name, flag in zip(table.names, empty) if flag),
        )
    values = np.column_stack([_nan_safe(table.values[:, idx]) for idx in range(table.n_series)])
    history: List[Dict[str, Any]] = list(table.meta.get("processing") or [])

    if "smooth" in options:
        values = smooth_loess(wl, values, span=float(span))
        history.append({"step": "smooth", "span": float(span)})

    if fixneg == "addmin":
        mins = values.min(axis=0)
        shift = np.where(mins < 0, -mins, 0.0)
        values = values + shift
        history.append({"step": "fixneg", "method": "addmin"})
    elif fixneg == "zero":
        values = np.where(values < 0, 0.0, values)
        history.append({"step": "fixneg", "method": "zero"})

    with np.errstate(divide="ignore", invalid="ignore"):
        if "min" in options:
            values = values - values.min(axis=0)
            history.append({"step": "min"})
        if "max" in options:
            peak = values.max(axis=0)
            if np.any((peak == 0) & ~empty):
                logger.warning("Some spectra have a zero maximum; their scaled values are NaN")
            values = values / peak
            history.append({"step": "max"})
        if "sum" in options:
            total = values.sum(axis=0)
            if np.any((total == 0) & ~empty):
                logger.warning("Some spectra sum to zero; their scaled values are NaN")
            values = values / total
            history.append({"step": "sum"})

    if "bin" in options:
        bins = int(bins)
        if bins < 1:
            raise ValueError("bins must be at least 1")
        if bins > wl.size:
            raise ValueError(f"Cannot bin {wl.size} wavelengths into {bins} bins")
        chunks = np.array_split(np.arange(wl.size), bins)
        wl = np.array([wl[chunk[0]] for chunk in chunks], dtype=float)
        values = np.vstack([values[chunk].mean(axis=0) for chunk in chunks])
        history.append({"step": "bin", "bins": bins})

    if "center" in options:
        values = values - values.mean(axis=0)
        history.append({"step": "center"})

    values[:, empty] = np.nan

    meta = dict(table.meta)
    meta["processing"] = history
    return SpectralTable(wavelength=wl, values=values, names=list(table.names), meta=meta)


def subset_spectra(
    table: SpectralTable,
    pattern: str | None = None,
    names: Sequence[str] | None = None,
    invert: bool = False,
) -> SpectralTable:
    if (pattern is None) == (names is None):
        raise ValueError("Provide exactly one of pattern or names")
    if pattern is not None:
        regex = re.compile(pattern)
        chosen = [name for name in table.names if bool(regex.search(name)) != invert]
    else:
        wanted = {str(name) for name in names or ()}
        unknown = wanted.difference(table.names)
        if unknown:
            raise KeyError(f"Unknown series: {', '.join(sorted(unknown))}")
        chosen = [name for name in table.names if (name in wanted) != invert]
    if not chosen:
        raise ValueError("Selection matched no spectra")
    return table.select(chosen)


def merge_spectra(*tables: SpectralTable) -> SpectralTable:
    """Join tables sharing an identical wavelength axis."""

    if not tables:
        raise ValueError("No tables to merge")
    ref_wl = tables[0].wavelength
    for other in tables[1:]:
        if not np.array_equal(other.wavelength, ref_wl):
            raise ValueError("Tables must share identical wavelengths to be merged")
    names = _unique_names([name for table in tables for name in table.names])
    values = np.hstack([table.values for table in tables])
    meta = dict(tables[0].meta)
    meta["merged_from"] = len(tables)
    return SpectralTable(wavelength=ref_wl.copy(), values=values, names=names, meta=meta)
