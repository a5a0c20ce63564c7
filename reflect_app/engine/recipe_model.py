from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict

import yaml

PRESET_DIR = Path(__file__).resolve().parent.parent / "config" / "presets"

_OPTIONS = {"none", "smooth", "min", "minimum", "max", "maximum", "both", "sum", "bin", "center", "centre"}
_FIXNEG = {"none", "addmin", "zero"}
_FUNCS = {"mean", "median", "sd", "se", "min", "max", "sum"}


def _positive(value: Any) -> bool:
    try:
        return float(value) > 0
    except (TypeError, ValueError):
        return False


@dataclass
class Recipe:
    module: str = "reflectance"
    params: Dict[str, Any] = field(default_factory=dict)
    version: str = "0.1.0"

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "Recipe":
        return cls(
            module=str(data.get("module", "reflectance")),
            params=dict(data.get("params") or {}),
            version=str(data.get("version", "0.1.0")),
        )

    def to_mapping(self) -> Dict[str, Any]:
        return {"module": self.module, "version": self.version, "params": dict(self.params)}

    def validate(self) -> list[str]:
        errs = []
        if self.module not in {"reflectance", "image"}:
            errs.append(f"Unknown recipe module '{self.module}'")

        import_cfg = self.params.get("import", {}) or {}
        lim = import_cfg.get("lim")
        if lim is not None:
            try:
                lo, hi = (float(v) for v in lim)
                if lo >= hi:
                    errs.append("Import wavelength limits must be increasing")
            except (TypeError, ValueError):
                errs.append("Import wavelength limits must be two numbers")
        decimal = import_cfg.get("decimal", ".")
        if decimal not in {".", ",", None}:
            errs.append("Decimal separator must be '.', ',' or null")

        proc = self.params.get("processing", {}) or {}
        if self.module == "reflectance":
            opt = proc.get("opt") or []
            opt_items = [opt] if isinstance(opt, str) else list(opt)
            for item in opt_items:
                if str(item).strip().lower() not in _OPTIONS:
                    errs.append(f"Unknown processing option '{item}'")
            if str(proc.get("fixneg", "none")).lower() not in _FIXNEG:
                errs.append("fixneg must be one of none, addmin, zero")
            span = proc.get("span", 0.25)
            try:
                if not 0 < float(span) <= 1:
                    errs.append("Smoothing span must lie in (0, 1]")
            except (TypeError, ValueError):
                errs.append("Smoothing span must be numeric")
            try:
                if int(proc.get("bins", 20)) < 1:
                    errs.append("Number of bins must be at least 1")
            except (TypeError, ValueError):
                errs.append("Number of bins must be an integer")

            agg = self.params.get("aggregate", {}) or {}
            if agg.get("enabled"):
                func = agg.get("func", "mean")
                if str(func).lower() not in _FUNCS:
                    errs.append(f"Unknown aggregation function '{func}'")
                by = agg.get("by")
                if isinstance(by, int) and not isinstance(by, bool) and by < 1:
                    errs.append("Aggregation group size must be positive")

        if self.module == "image":
            rotate = proc.get("rotate")
            if rotate is not None:
                try:
                    float(rotate)
                except (TypeError, ValueError):
                    errs.append("Rotation angle must be numeric")
            resize = proc.get("resize")
            if resize is not None and not _positive(resize):
                errs.append("Resize percentage must be positive")
            scale_points = proc.get("scale_points")
            scale_length = proc.get("scale_length")
            if (scale_points is None) != (scale_length is None):
                errs.append("Scale calibration needs both scale_points and scale_length")
            elif scale_length is not None and not _positive(scale_length):
                errs.append("Scale length must be positive")
            try:
                if int(proc.get("iterations", 1)) < 1:
                    errs.append("Smoothing iterations must be at least 1")
            except (TypeError, ValueError):
                errs.append("Smoothing iterations must be an integer")

            acuity = self.params.get("acuity", {}) or {}
            if acuity.get("enabled"):
                for key, label in (
                    ("obj_dist", "viewing distance"),
                    ("obj_width", "object width"),
                    ("eye_res", "eye resolution"),
                ):
                    if not _positive(acuity.get(key)):
                        errs.append(f"Acuity {label} must be positive")
        return errs


def load_recipe(source: str | Path) -> Recipe:
    """Load a YAML preset by file path or by name from the bundled presets."""

    path = Path(source)
    if not path.suffix:
        path = PRESET_DIR / f"{source}.yaml"
    if not path.exists():
        raise FileNotFoundError(f"Recipe preset not found: {path}")
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Recipe preset {path} must contain a mapping")
    return Recipe.from_mapping(data)
