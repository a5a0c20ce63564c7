from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Tuple

from reflect_app.engine.plugin_api import AnalysisPlugin, BatchResult, RasterImage
from reflect_app.engine.recipe_model import Recipe
from reflect_app.plugins.image import pipeline as image_pipeline
from reflect_app.plugins.image.acuity import acuity_view
from reflect_app.plugins.image.io_images import IMAGE_EXTENSIONS, import_images


def _section(recipe: Mapping[str, Any] | None, key: str) -> Dict[str, Any]:
    if not recipe:
        return {}
    value = recipe.get(key)
    return dict(value) if isinstance(value, Mapping) else {}


class ImagePlugin(AnalysisPlugin):
    id = "image"
    label = "Colour-pattern images"
    extensions = tuple(f".{ext}" for ext in IMAGE_EXTENSIONS)

    def detect(self, paths: Iterable[str]) -> bool:
        return any(Path(p).suffix.lower() in self.extensions for p in paths)

    def load(self, paths: Iterable[str], recipe: Dict[str, Any] | None = None) -> List[RasterImage]:
        cfg = _section(recipe, "import")
        images: List[RasterImage] = []
        for item in paths:
            loaded = import_images(
                item,
                ext=cfg.get("ext", IMAGE_EXTENSIONS),
                subdir=bool(cfg.get("subdir", False)),
                max_px=cfg.get("max_px"),
                parallel=bool(cfg.get("parallel", False)),
                workers=cfg.get("workers"),
            )
            if isinstance(loaded, RasterImage):
                images.append(loaded)
            else:
                images.extend(loaded)
        return images

    def validate(self, items: List[Any], recipe: Dict[str, Any]) -> List[str]:
        errors = Recipe(module=self.id, params=dict(recipe or {})).validate()
        acuity = _section(recipe, "acuity")
        for item in items:
            if not isinstance(item, RasterImage):
                errors.append(f"Expected raster images, got {type(item).__name__}")
                break
            if acuity.get("enabled") and item.pixels.shape[0] != item.pixels.shape[1]:
                errors.append(f"Acuity modelling requires square images; {item.name} is not")
        return errors

    def preprocess(self, items: List[RasterImage], recipe: Dict[str, Any]) -> List[RasterImage]:
        cfg = _section(recipe, "processing")
        if not cfg:
            return items
        return [
            image_pipeline.process_image(
                image,
                scale_points=cfg.get("scale_points"),
                scale_length=cfg.get("scale_length"),
                outline=cfg.get("outline"),
                smooth=bool(cfg.get("smooth", False)),
                iterations=int(cfg.get("iterations", 1)),
                rotate=cfg.get("rotate"),
                resize=cfg.get("resize"),
            )
            for image in items
        ]

    def analyze(
        self, items: List[RasterImage], recipe: Dict[str, Any]
    ) -> Tuple[List[RasterImage], List[Dict[str, Any]]]:
        acuity = _section(recipe, "acuity")
        processed: List[RasterImage] = []
        rows: List[Dict[str, Any]] = []
        for image in items:
            if acuity.get("enabled"):
                image = acuity_view(
                    image,
                    obj_dist=float(acuity["obj_dist"]),
                    obj_width=float(acuity["obj_width"]),
                    eye_res=float(acuity["eye_res"]),
                )
            processed.append(image)
            height, width = image.pixels.shape[:2]
            outline = image.meta.get("outline")
            rows.append(
                {
                    "name": image.name,
                    "height": height,
                    "width": width,
                    "scale": image.meta.get("scale"),
                    "outline_points": 0 if outline is None else len(outline),
                    "acuity_width_deg": (image.meta.get("acuity") or {}).get("width_deg"),
                }
            )
        return processed, rows

    def export(
        self, items: List[RasterImage], summary: List[Dict[str, Any]], recipe: Dict[str, Any]
    ) -> BatchResult:
        audit = [
            f"{image.name}: {image.pixels.shape[0]}x{image.pixels.shape[1]} px"
            + (" (acuity filtered)" if image.meta.get("acuity") else "")
            for image in items
        ]
        return BatchResult(processed=items, summary=summary, figures={}, audit=audit)
