"""Replicate aggregation for reflectance tables."""

from __future__ import annotations

import logging
import os
from collections import OrderedDict
from typing import Any, Callable, Dict, List, Sequence

import numpy as np

from reflect_app.engine.plugin_api import SpectralTable

__all__ = ["SUMMARY_FUNCTIONS", "aggregate_spectra", "grouping_labels"]

logger = logging.getLogger(__name__)


def _standard_error(block: np.ndarray, axis: int = 1) -> np.ndarray:
    count = block.shape[axis]
    if count < 2:
        return np.full(block.shape[0], np.nan)
    return np.std(block, axis=axis, ddof=1) / np.sqrt(count)


def _sample_sd(block: np.ndarray, axis: int = 1) -> np.ndarray:
    if block.shape[axis] < 2:
        return np.full(block.shape[0], np.nan)
    return np.std(block, axis=axis, ddof=1)


SUMMARY_FUNCTIONS: Dict[str, Callable[..., np.ndarray]] = {
    "mean": np.mean,
    "median": np.median,
    "sd": _sample_sd,
    "se": _standard_error,
    "min": np.min,
    "max": np.max,
    "sum": np.sum,
}


def _resolve_function(func: str | Callable[..., np.ndarray]) -> Callable[..., np.ndarray]:
    if callable(func):
        return func
    key = str(func).strip().lower()
    if key not in SUMMARY_FUNCTIONS:
        raise ValueError(
            f"Unknown summary function '{func}'; expected one of {', '.join(SUMMARY_FUNCTIONS)}"
        )
    return SUMMARY_FUNCTIONS[key]


def _common_prefix(names: Sequence[str]) -> str:
    prefix = os.path.commonprefix(list(names))
    return prefix.rstrip("._- ")


def grouping_labels(table: SpectralTable, by: Any, trim: bool = True) -> List[str]:
    """Return one group label per series of ``table``."""

    n = table.n_series
    if by is None:
        return ["aggregate"] * n

    if isinstance(by, (int, np.integer)) and not isinstance(by, bool):
        size = int(by)
        if size < 1:
            raise ValueError("Group size must be positive")
        if n % size:
            raise ValueError(f"by={size} is not a factor of the number of spectra ({n})")
        labels: List[str] = []
        for start in range(0, n, size):
            members = table.names[start : start + size]
            label = members[0]
            if trim and size > 1:
                label = _common_prefix(members) or members[0]
            # blocks must stay separate groups even when their prefixes collide
            if label in labels:
                label = members[0] if members[0] not in labels else f"{members[0]}.{start // size}"
            labels.extend([label] * size)
        return labels

    if isinstance(by, str):
        raise TypeError("'by' must be a group size, a label sequence or a list of label sequences")

    items = list(by)
    if items and all(
        isinstance(item, (list, tuple, np.ndarray)) and not isinstance(item, str) for item in items
    ):
        for item in items:
            if len(item) != n:
                raise ValueError("Every grouping vector must have one entry per spectrum")
        return [".".join(str(item[idx]) for item in items) for idx in range(n)]

    if len(items) != n:
        raise ValueError(f"Grouping vector has {len(items)} entries for {n} spectra")
    return [str(item) for item in items]


def aggregate_spectra(
    table: SpectralTable,
    by: Any = None,
    func: str | Callable[..., np.ndarray] = "mean",
    trim: bool = True,
) -> SpectralTable:
    """Summarise replicate spectra into per-group spectra.

    ``by`` is ``None`` (one group), an integer block size, a label per
    spectrum, or a list of label vectors combined with ``.``.  Groups appear
    in order of first occurrence.
    """

    reducer = _resolve_function(func)
    labels = grouping_labels(table, by, trim=trim)

    groups: "OrderedDict[str, List[int]]" = OrderedDict()
    for idx, label in enumerate(labels):
        groups.setdefault(label, []).append(idx)

    columns: List[np.ndarray] = []
    for label, members in groups.items():
        block = table.values[:, members]
        reduced = np.asarray(reducer(block, axis=1), dtype=float).reshape(-1)
        if reduced.size != table.wavelength.size:
            raise ValueError(f"Summary function returned {reduced.size} values for group '{label}'")
        columns.append(reduced)
        logger.debug("Aggregated %d spectra into '%s'", len(members), label)

    meta = dict(table.meta)
    meta["aggregated"] = {
        "function": func if isinstance(func, str) else getattr(func, "__name__", "custom"),
        "group_sizes": {label: len(members) for label, members in groups.items()},
        "members": {label: [table.names[i] for i in members] for label, members in groups.items()},
    }
    return SpectralTable(
        wavelength=table.wavelength.copy(),
        values=np.column_stack(columns),
        names=list(groups.keys()),
        meta=meta,
    )
