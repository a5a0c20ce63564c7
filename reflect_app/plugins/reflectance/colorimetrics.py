"""Colorimetric descriptors of reflectance spectra."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy.signal import peak_widths

from reflect_app.engine.plugin_api import SpectralTable

__all__ = [
    "COLORIMETRIC_VARIABLES",
    "PCAResult",
    "summarise",
    "peak_shape",
    "principal_components",
]

logger = logging.getLogger(__name__)

COLORIMETRIC_VARIABLES = (
    "B1", "B2", "B3",
    "S1U", "S1V", "S1B", "S1G", "S1Y", "S1R",
    "S2", "S3", "S4", "S5", "S6", "S7", "S8", "S9", "S10",
    "H1", "H2", "H3", "H4", "H5",
)

# hue segments (nm); the lower UV/violet bound is replaced by the data minimum
SEGMENTS: Dict[str, Tuple[Optional[float], float]] = {
    "S1U": (None, 400.0),
    "S1V": (None, 415.0),
    "S1B": (400.0, 510.0),
    "S1G": (510.0, 605.0),
    "S1Y": (550.0, 625.0),
    "S1R": (605.0, 700.0),
}


def _restrict(table: SpectralTable, lim: Sequence[float] | None) -> Tuple[np.ndarray, np.ndarray]:
    wl = table.wavelength
    values = table.values
    if lim is not None:
        lo, hi = float(lim[0]), float(lim[1])
        if lo >= hi:
            raise ValueError("Wavelength limit minimum must be smaller than maximum")
        keep = (wl >= lo) & (wl <= hi)
        if np.count_nonzero(keep) < 2:
            raise ValueError("Fewer than two wavelengths fall within the requested limits")
        wl, values = wl[keep], values[keep]
    if wl.size < 2:
        raise ValueError("At least two wavelengths are required")
    return wl, values


def _band_sum(wl: np.ndarray, values: np.ndarray, lo: float, hi: float) -> np.ndarray:
    mask = (wl >= lo) & (wl <= hi)
    return values[mask].sum(axis=0)


def _slopes(wl: np.ndarray, values: np.ndarray) -> np.ndarray:
    return np.diff(values, axis=0) / np.diff(wl)[:, None]


def summarise(
    table: SpectralTable,
    subset: Sequence[str] | None = None,
    lim: Sequence[float] | None = None,
) -> pd.DataFrame:
    """Brightness, chroma and hue variables, one row per spectrum.

    Variables whose wavelength band falls outside the data are ``NaN``.
    """

    if subset is not None:
        unknown = [name for name in subset if name not in COLORIMETRIC_VARIABLES]
        if unknown:
            raise ValueError(f"Unknown colorimetric variables: {', '.join(unknown)}")

    wl, R = _restrict(table, lim)
    lam_min = max(float(wl[0]), 300.0)
    lam_max = min(float(wl[-1]), 700.0)
    n = R.shape[1]
    out: Dict[str, np.ndarray] = {}

    B1 = R.sum(axis=0)
    B2 = R.mean(axis=0)
    B3 = R.max(axis=0)
    Rmin = R.min(axis=0)
    out["B1"], out["B2"], out["B3"] = B1, B2, B3

    peak_idx = np.argmax(R, axis=0)
    H1 = wl[peak_idx]

    missing: List[str] = []
    with np.errstate(divide="ignore", invalid="ignore"):
        for name, (lo, hi) in SEGMENTS.items():
            band_lo = lam_min if lo is None else lo
            if band_lo >= hi or hi > float(wl[-1]) or band_lo < float(wl[0]):
                out[name] = np.full(n, np.nan)
                missing.append(name)
                continue
            out[name] = _band_sum(wl, R, band_lo, hi) / B1

        out["S2"] = B3 / Rmin

        near_peak = np.abs(wl[:, None] - H1[None, :]) <= 50.0
        out["S3"] = np.where(near_peak, R, 0.0).sum(axis=0) / B1

        slopes = _slopes(wl, R)
        neg_idx = np.argmin(slopes, axis=0)
        pos_idx = np.argmax(slopes, axis=0)
        bmaxneg = slopes[neg_idx, np.arange(n)]
        out["S4"] = np.abs(bmaxneg)

        if lam_max - lam_min >= 4:
            edges = np.trunc(np.quantile(np.arange(lam_min, lam_max + 1), [0, 0.25, 0.5, 0.75, 1.0]))
            q_b = _band_sum(wl, R, edges[0], edges[1]) / B1
            q_g = _band_sum(wl, R, edges[1], edges[2]) / B1
            q_y = _band_sum(wl, R, edges[2], edges[3]) / B1
            q_r = _band_sum(wl, R, edges[3], edges[4]) / B1
            out["S5"] = np.sqrt((q_r - q_g) ** 2 + (q_y - q_b) ** 2)
            out["H4"] = np.arctan2(q_y - q_b, q_r - q_g)
        else:
            out["S5"] = np.full(n, np.nan)
            out["H4"] = np.full(n, np.nan)
            missing.extend(["S5", "H4"])

        S6 = B3 - Rmin
        out["S6"] = S6

        r_mid = (B3 + Rmin) / 2.0
        mid_idx = np.argmin(np.abs(R - r_mid[None, :]), axis=0)
        H3 = wl[mid_idx]
        below = wl[:, None] < H3[None, :]
        out["S7"] = (np.where(below, R, 0.0).sum(axis=0) - np.where(below, 0.0, R).sum(axis=0)) / B1

        out["S8"] = S6 / B2

        if float(wl[0]) <= 450.0 and float(wl[-1]) >= 700.0:
            r450 = np.array([np.interp(450.0, wl, R[:, idx]) for idx in range(n)])
            r700 = np.array([np.interp(700.0, wl, R[:, idx]) for idx in range(n)])
            out["S9"] = (r700 - r450) / r700
        else:
            out["S9"] = np.full(n, np.nan)
            missing.append("S9")

        out["S10"] = out["S8"] * np.abs(bmaxneg)

    out["H1"] = H1
    out["H2"] = wl[neg_idx]
    out["H3"] = H3
    out["H5"] = wl[pos_idx]

    if missing:
        logger.warning(
            "Spectral range %.0f-%.0f nm too narrow for %s; values set to NaN",
            float(wl[0]),
            float(wl[-1]),
            ", ".join(missing),
        )

    frame = pd.DataFrame({name: out[name] for name in COLORIMETRIC_VARIABLES}, index=table.names)
    frame.index.name = "spectrum"
    if subset is not None:
        frame = frame[list(subset)]
    return frame


def _half_widths(wl: np.ndarray, y: np.ndarray, peak: int) -> Tuple[Optional[float], Optional[float]]:
    """Wavelengths where ``y`` falls to half way between its minimum and the peak.

    A side on which the curve never drops to half height gives ``None``.
    """

    r_max = float(y[peak])
    r_min = float(y.min())
    if r_max <= r_min:
        return None, None
    half = r_min + (r_max - r_min) / 2.0
    prominence_data = (
        np.array([r_max - r_min], dtype=float),
        np.array([0], dtype=np.intp),
        np.array([y.size - 1], dtype=np.intp),
    )
    _, _, left_ips, right_ips = peak_widths(
        y, np.array([peak], dtype=np.intp), rel_height=0.5, prominence_data=prominence_data
    )
    left_ip, right_ip = float(left_ips[0]), float(right_ips[0])
    index = np.arange(y.size, dtype=float)
    # an interpolation position resting on a point above half height means the search hit the edge
    left = float(np.interp(left_ip, index, wl)) if y[int(np.floor(left_ip))] <= half else None
    right = float(np.interp(right_ip, index, wl)) if y[int(np.ceil(right_ip))] <= half else None
    return left, right


def _minimum_in_range(table: SpectralTable, idx: int, lim: Sequence[float] | None) -> bool:
    if lim is None:
        return True
    wl_min = float(table.wavelength[int(np.nanargmin(table.values[:, idx]))])
    return float(lim[0]) <= wl_min <= float(lim[1])


def peak_shape(table: SpectralTable, lim: Sequence[float] | None = None) -> pd.DataFrame:
    """Peak height, location and width at half maximum per spectrum.

    Half height lies midway between the peak and the minimum within ``lim``.
    When only one side reaches half height, ``FWHM`` is twice that side's
    half width.  ``incl_min`` tells whether the spectrum's overall minimum
    lies inside ``lim``.
    """

    wl, R = _restrict(table, lim)
    rows = []
    for idx, name in enumerate(table.names):
        y = R[:, idx]
        peak = int(np.argmax(y))
        h1 = float(wl[peak])
        left, right = _half_widths(wl, y, peak)
        hwhm_l = h1 - left if left is not None else float("nan")
        hwhm_r = right - h1 if right is not None else float("nan")
        if left is not None and right is not None:
            fwhm = hwhm_l + hwhm_r
        elif left is not None:
            fwhm = 2.0 * hwhm_l
        elif right is not None:
            fwhm = 2.0 * hwhm_r
        else:
            fwhm = float("nan")
        rows.append(
            {
                "spectrum": name,
                "B3": float(y[peak]),
                "H1": h1,
                "FWHM": fwhm,
                "HWHM_l": hwhm_l,
                "HWHM_r": hwhm_r,
                "incl_min": _minimum_in_range(table, idx, lim),
            }
        )
    return pd.DataFrame(rows).set_index("spectrum")


@dataclass
class PCAResult:
    scores: pd.DataFrame
    loadings: pd.DataFrame
    explained_variance_ratio: np.ndarray


def principal_components(table: SpectralTable, n_components: int | None = None) -> PCAResult:
    """PCA of spectra treating wavelengths as variables."""

    X = table.values.T
    if X.shape[0] < 2:
        raise ValueError("PCA requires at least two spectra")
    centred = X - X.mean(axis=0)
    U, S, Vt = np.linalg.svd(centred, full_matrices=False)
    k = S.size if n_components is None else int(n_components)
    if not 1 <= k <= S.size:
        raise ValueError(f"n_components must be between 1 and {S.size}")
    # fix the sign so the largest loading of each component is positive
    signs = np.sign(Vt[np.arange(S.size), np.argmax(np.abs(Vt), axis=1)])
    signs[signs == 0] = 1.0
    U, Vt = U * signs, Vt * signs[:, None]
    total = float(np.sum(S ** 2))
    ratio = (S ** 2) / total if total > 0 else np.zeros_like(S)
    columns = [f"PC{i + 1}" for i in range(k)]
    scores = pd.DataFrame((U * S)[:, :k], index=table.names, columns=columns)
    loadings = pd.DataFrame(Vt[:k].T, index=pd.Index(table.wavelength, name="wl"), columns=columns)
    return PCAResult(scores=scores, loadings=loadings, explained_variance_ratio=ratio[:k])
