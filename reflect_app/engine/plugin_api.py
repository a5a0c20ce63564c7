from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd


class SpectralFormatError(Exception):
    pass


@dataclass
class Spectrum:
    wavelength: np.ndarray          # nm
    intensity: np.ndarray           # reflectance/transmittance/irradiance
    meta: Dict[str, Any]


@dataclass
class SpectralTable:
    """Reflectance series sharing one wavelength axis.

    ``values`` is shaped ``(n_wavelengths, n_series)``; column ``i`` belongs to
    ``names[i]``.  Tabular exports always place the wavelength axis first as
    ``wl``.
    """

    wavelength: np.ndarray
    values: np.ndarray
    names: List[str]
    meta: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.wavelength = np.asarray(self.wavelength, dtype=float).reshape(-1)
        values = np.asarray(self.values, dtype=float)
        if values.ndim == 1:
            values = values.reshape(-1, 1)
        if values.ndim != 2:
            raise ValueError("Spectral values must be a 2-D array")
        if values.shape[0] != self.wavelength.size:
            raise ValueError(
                f"Expected {self.wavelength.size} rows of values, got {values.shape[0]}"
            )
        self.values = values
        self.names = [str(name) for name in self.names]
        if len(self.names) != values.shape[1]:
            raise ValueError("Number of names does not match number of series")
        if len(set(self.names)) != len(self.names):
            raise ValueError("Series names must be unique")
        if self.wavelength.size > 1 and not np.all(np.diff(self.wavelength) > 0):
            raise ValueError("Wavelengths must be strictly increasing")
        if "wl" in self.names:
            raise ValueError("'wl' is reserved for the wavelength column")

    def __len__(self) -> int:
        return self.wavelength.size

    @property
    def n_series(self) -> int:
        return self.values.shape[1]

    def column(self, name: str) -> np.ndarray:
        try:
            idx = self.names.index(name)
        except ValueError:
            raise KeyError(name) from None
        return self.values[:, idx].copy()

    def copy_with(self, **changes: Any) -> "SpectralTable":
        payload = {
            "wavelength": self.wavelength.copy(),
            "values": self.values.copy(),
            "names": list(self.names),
            "meta": dict(self.meta),
        }
        payload.update(changes)
        return SpectralTable(**payload)

    def select(self, names: Sequence[str] | str) -> "SpectralTable":
        """Return the series given by ``names`` or matching a regex string."""

        if isinstance(names, str):
            pattern = re.compile(names)
            chosen = [name for name in self.names if pattern.search(name)]
        else:
            chosen = [str(name) for name in names]
        missing = [name for name in chosen if name not in self.names]
        if missing:
            raise KeyError(f"Unknown series: {', '.join(missing)}")
        if not chosen:
            raise ValueError("Selection matched no spectra")
        indices = [self.names.index(name) for name in chosen]
        return self.copy_with(values=self.values[:, indices], names=chosen)

    def to_frame(self) -> pd.DataFrame:
        frame = pd.DataFrame(self.values, columns=self.names)
        frame.insert(0, "wl", self.wavelength)
        return frame

    @classmethod
    def from_frame(cls, frame: pd.DataFrame, meta: Optional[Dict[str, Any]] = None) -> "SpectralTable":
        if "wl" not in frame.columns:
            raise ValueError("Frame must contain a 'wl' column")
        others = [col for col in frame.columns if col != "wl"]
        return cls(
            wavelength=frame["wl"].to_numpy(dtype=float),
            values=frame[others].to_numpy(dtype=float),
            names=[str(col) for col in others],
            meta=dict(meta or {}),
        )


@dataclass
class RasterImage:
    """Image pixels in ``[0, 1]`` shaped ``(height, width, channels)``."""

    pixels: np.ndarray
    meta: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        pixels = np.asarray(self.pixels, dtype=float)
        if pixels.ndim != 3:
            raise ValueError("Image pixels must be a 3-D (height, width, channel) array")
        if pixels.size and (np.nanmin(pixels) < 0.0 or np.nanmax(pixels) > 1.0):
            raise ValueError("Image values must lie within [0, 1]")
        self.pixels = pixels
        self.meta = dict(self.meta)
        self.meta.setdefault("scale", None)
        self.meta.setdefault("outline", None)
        self.meta.setdefault("source_file", None)
        self.meta.setdefault("name", "img")

    @property
    def shape(self) -> Tuple[int, int, int]:
        return tuple(self.pixels.shape)  # type: ignore[return-value]

    @property
    def name(self) -> str:
        return str(self.meta.get("name"))


@dataclass
class BatchResult:
    processed: List[Any]
    summary: List[Dict[str, Any]]
    figures: Dict[str, bytes]       # PNG bytes
    audit: List[str]
    report_text: Optional[str] = None


class AnalysisPlugin:
    id: str = "base"
    label: str = "Base"
    extensions: Tuple[str, ...] = ()

    def detect(self, paths: Iterable[str]) -> bool:
        return False

    def load(self, paths: Iterable[str], recipe: Dict[str, Any] | None = None) -> List[Any]:
        raise NotImplementedError

    def validate(self, items: List[Any], recipe: Dict[str, Any]) -> List[str]:
        return []

    def preprocess(self, items: List[Any], recipe: Dict[str, Any]) -> List[Any]:
        return items

    def analyze(self, items: List[Any], recipe: Dict[str, Any]) -> Tuple[List[Any], List[Dict[str, Any]]]:
        return items, []

    def export(self, items: List[Any], summary: List[Dict[str, Any]], recipe: Dict[str, Any]) -> BatchResult:
        return BatchResult(processed=items, summary=summary, figures={}, audit=[])
