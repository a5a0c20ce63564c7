"""Geometric processing and calibration of raster images."""

from __future__ import annotations

import logging
from typing import Any, Dict, Sequence

import numpy as np
from scipy import ndimage

from reflect_app.engine.plugin_api import RasterImage

__all__ = [
    "calibrate_scale",
    "chaikin_smooth",
    "process_image",
    "resize_image",
    "rotate_image",
]

logger = logging.getLogger(__name__)


def _as_points(points: Any, *, minimum: int, label: str) -> np.ndarray:
    arr = np.asarray(points, dtype=float)
    if arr.ndim != 2 or arr.shape[1] != 2 or arr.shape[0] < minimum:
        raise ValueError(f"{label} must be an (n >= {minimum}, 2) array of x/y coordinates")
    if not np.all(np.isfinite(arr)):
        raise ValueError(f"{label} contains non-finite coordinates")
    return arr


def calibrate_scale(points: Any, length: float) -> float:
    """Pixels per real-world unit from two points spanning ``length`` units."""

    pts = _as_points(points, minimum=2, label="Scale points")
    if pts.shape[0] != 2:
        raise ValueError("Scale calibration needs exactly two points")
    length = float(length)
    if length <= 0:
        raise ValueError("Scale length must be positive")
    distance = float(np.hypot(*(pts[1] - pts[0])))
    if distance == 0:
        raise ValueError("Scale points must differ")
    return distance / length


def chaikin_smooth(outline: Any, iterations: int = 1) -> np.ndarray:
    """Chaikin corner cutting of a closed polygon.

    Every edge ``p -> q`` is replaced by the points ``3/4 p + 1/4 q`` and
    ``1/4 p + 3/4 q``, doubling the vertex count per iteration.
    """

    pts = _as_points(outline, minimum=3, label="Outline")
    iterations = int(iterations)
    if iterations < 1:
        raise ValueError("iterations must be at least 1")
    for _ in range(iterations):
        nxt = np.roll(pts, -1, axis=0)
        q = 0.75 * pts + 0.25 * nxt
        r = 0.25 * pts + 0.75 * nxt
        pts = np.empty((pts.shape[0] * 2, 2), dtype=float)
        pts[0::2] = q
        pts[1::2] = r
    return pts


def rotate_image(image: RasterImage, angle: float) -> RasterImage:
    """Rotate counter-clockwise by ``angle`` degrees about the image centre.

    The frame size is kept; corners exposed by the rotation repeat the
    nearest edge pixel.
    """

    angle = float(angle)
    pixels = ndimage.rotate(image.pixels, angle, axes=(1, 0), reshape=False, order=1, mode="nearest")
    meta = dict(image.meta)
    outline = meta.get("outline")
    if outline is not None:
        height, width = image.pixels.shape[:2]
        cx, cy = (width - 1) / 2.0, (height - 1) / 2.0
        theta = np.deg2rad(angle)
        pts = np.asarray(outline, dtype=float)
        dx, dy = pts[:, 0] - cx, pts[:, 1] - cy
        # y grows downwards, so a visual counter-clockwise turn subtracts the sine term from y
        meta["outline"] = np.column_stack(
            [cx + dx * np.cos(theta) + dy * np.sin(theta), cy - dx * np.sin(theta) + dy * np.cos(theta)]
        )
    meta["rotation_deg"] = float(meta.get("rotation_deg") or 0.0) + angle
    return RasterImage(pixels=np.clip(pixels, 0.0, 1.0), meta=meta)


def resize_image(image: RasterImage, percent: float) -> RasterImage:
    """Scale both image sides by ``percent`` (50 halves them)."""

    percent = float(percent)
    if percent <= 0:
        raise ValueError("Resize percentage must be positive")
    factor = percent / 100.0
    height, width = image.pixels.shape[:2]
    new_h = max(1, int(round(height * factor)))
    new_w = max(1, int(round(width * factor)))
    zoom = (new_h / height, new_w / width, 1.0)
    pixels = ndimage.zoom(image.pixels, zoom, order=1, mode="nearest")
    meta = dict(image.meta)
    if meta.get("scale") is not None:
        meta["scale"] = float(meta["scale"]) * factor
    if meta.get("outline") is not None:
        meta["outline"] = np.asarray(meta["outline"], dtype=float) * np.array([zoom[1], zoom[0]])
    return RasterImage(pixels=np.clip(pixels, 0.0, 1.0), meta=meta)


def process_image(
    image: RasterImage,
    scale_points: Sequence[Sequence[float]] | None = None,
    scale_length: float | None = None,
    outline: Any = None,
    smooth: bool = False,
    iterations: int = 1,
    rotate: float | None = None,
    resize: float | None = None,
) -> RasterImage:
    """Calibrate, outline, rotate and resize an image.

    Calibration and outline are attached before the geometric transforms so
    both follow the pixels through rotation and resizing.
    """

    if (scale_points is None) != (scale_length is None):
        raise ValueError("scale_points and scale_length must be given together")

    meta: Dict[str, Any] = dict(image.meta)
    if scale_points is not None:
        meta["scale"] = calibrate_scale(scale_points, scale_length)  # type: ignore[arg-type]
        logger.debug("%s: scale set to %.4g px per unit", image.name, meta["scale"])
    if outline is not None:
        pts = _as_points(outline, minimum=3, label="Outline")
        meta["outline"] = chaikin_smooth(pts, iterations) if smooth else pts
    elif smooth and meta.get("outline") is not None:
        meta["outline"] = chaikin_smooth(meta["outline"], iterations)
    elif smooth:
        logger.warning("%s: smoothing requested but the image has no outline", image.name)

    working = RasterImage(pixels=image.pixels.copy(), meta=meta)
    if rotate is not None and float(rotate) % 360 != 0:
        working = rotate_image(working, float(rotate))
    if resize is not None and float(resize) != 100:
        working = resize_image(working, float(resize))
    return working
