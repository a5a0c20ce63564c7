from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Tuple

from reflect_app.engine.plugin_api import AnalysisPlugin, BatchResult, SpectralTable
from reflect_app.engine.recipe_model import Recipe
from reflect_app.plugins.reflectance import aggregation, colorimetrics
from reflect_app.plugins.reflectance import pipeline as reflectance_pipeline
from reflect_app.plugins.reflectance.getspec import import_spectra
from reflect_app.plugins.reflectance.io_vendor import READERS, read_spectrum


def _section(recipe: Mapping[str, Any] | None, key: str) -> Dict[str, Any]:
    if not recipe:
        return {}
    value = recipe.get(key)
    return dict(value) if isinstance(value, Mapping) else {}


class ReflectancePlugin(AnalysisPlugin):
    id = "reflectance"
    label = "Reflectance spectra"
    extensions = tuple(sorted({ext for reader in READERS for ext in reader.extensions}))

    def detect(self, paths: Iterable[str]) -> bool:
        return any(Path(p).is_dir() or Path(p).suffix.lower() in self.extensions for p in paths)

    def load(self, paths: Iterable[str], recipe: Dict[str, Any] | None = None) -> List[SpectralTable]:
        cfg = _section(recipe, "import")
        lim = tuple(cfg.get("lim") or (300, 700))
        decimal = cfg.get("decimal", ".")
        tables: List[SpectralTable] = []
        files = []
        for item in paths:
            path = Path(item)
            if path.is_dir():
                tables.append(
                    import_spectra(
                        path,
                        ext=cfg.get("ext", "txt"),
                        lim=lim,
                        decimal=decimal,
                        subdir=bool(cfg.get("subdir", False)),
                        subdir_names=bool(cfg.get("subdir_names", False)),
                        ignore_case=bool(cfg.get("ignore_case", True)),
                        parallel=bool(cfg.get("parallel", False)),
                        workers=cfg.get("workers"),
                    )
                )
            else:
                files.append(path)
        if files:
            spectra = [read_spectrum(path, decimal) for path in files]
            tables.append(
                reflectance_pipeline.combine_spectra(spectra, lim, names=[p.stem for p in files])
            )
        return tables

    def validate(self, items: List[Any], recipe: Dict[str, Any]) -> List[str]:
        errors = Recipe(module=self.id, params=dict(recipe or {})).validate()
        for item in items:
            if not isinstance(item, SpectralTable):
                errors.append(f"Expected spectral tables, got {type(item).__name__}")
                break
        return errors

    def preprocess(self, items: List[SpectralTable], recipe: Dict[str, Any]) -> List[SpectralTable]:
        cfg = _section(recipe, "processing")
        if not cfg:
            return items
        return [
            reflectance_pipeline.process_spectra(
                table,
                opt=cfg.get("opt"),
                fixneg=cfg.get("fixneg", "none"),
                span=float(cfg.get("span", 0.25)),
                bins=int(cfg.get("bins", 20)),
            )
            for table in items
        ]

    def analyze(
        self, items: List[SpectralTable], recipe: Dict[str, Any]
    ) -> Tuple[List[SpectralTable], List[Dict[str, Any]]]:
        agg_cfg = _section(recipe, "aggregate")
        summary_cfg = _section(recipe, "summary")
        processed: List[SpectralTable] = []
        rows: List[Dict[str, Any]] = []
        for table in items:
            if agg_cfg.get("enabled"):
                table = aggregation.aggregate_spectra(
                    table,
                    by=agg_cfg.get("by"),
                    func=agg_cfg.get("func", "mean"),
                    trim=bool(agg_cfg.get("trim", True)),
                )
            processed.append(table)
            if summary_cfg.get("enabled", True):
                frame = colorimetrics.summarise(
                    table, subset=summary_cfg.get("subset"), lim=summary_cfg.get("lim")
                )
                rows.extend(frame.reset_index().to_dict(orient="records"))
        return processed, rows

    def export(
        self, items: List[SpectralTable], summary: List[Dict[str, Any]], recipe: Dict[str, Any]
    ) -> BatchResult:
        audit = []
        for table in items:
            steps = [step.get("step") for step in table.meta.get("processing", [])]
            audit.append(
                f"{table.n_series} spectra over {table.wavelength[0]:g}-{table.wavelength[-1]:g} nm"
                f" processed with: {', '.join(steps) if steps else 'none'}"
            )
            skipped = table.meta.get("skipped_files") or []
            if skipped:
                audit.append(f"Skipped files: {', '.join(skipped)}")
        return BatchResult(processed=items, summary=summary, figures={}, audit=audit)
