"""Raster image import and conversion."""

from __future__ import annotations

import logging
import multiprocessing
import os
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Sequence

import numpy as np
from PIL import Image, UnidentifiedImageError

from reflect_app.engine.io_common import find_files
from reflect_app.engine.plugin_api import RasterImage

__all__ = ["IMAGE_EXTENSIONS", "as_rimg", "import_images", "read_image", "save_image"]

logger = logging.getLogger(__name__)

IMAGE_EXTENSIONS = ("jpg", "jpeg", "png", "bmp", "tif", "tiff")
# single-band modes deeper than 8 bits; converting them to RGB would clip at 255
HIGH_DEPTH_MODES = {"I", "I;16", "I;16B", "I;16L", "I;16N", "F"}


@dataclass(frozen=True)
class ImageTaskResult:
    path: str
    image: RasterImage | None = None
    error: str | None = None


def as_rimg(
    array: Any,
    name: str = "img",
    source_file: str | None = None,
    white_level: float | None = None,
) -> RasterImage:
    """Wrap an array as a :class:`RasterImage` with values in ``[0, 1]``.

    Greyscale input is repeated over three channels and an alpha channel is
    dropped.  Integer data (or floats above 1) is assumed to be 8-bit and
    divided by 255; 16-bit integers are divided by 65535.  ``white_level``
    overrides the guess when the bit depth is known.
    """

    arr = np.asarray(array)
    if arr.dtype == bool:
        arr = arr.astype(float)
    if arr.ndim == 2:
        arr = np.repeat(arr[:, :, None], 3, axis=2)
    elif arr.ndim == 3:
        channels = arr.shape[2]
        if channels == 1:
            arr = np.repeat(arr, 3, axis=2)
        elif channels == 2:
            arr = np.repeat(arr[:, :, :1], 3, axis=2)
        elif channels == 4:
            arr = arr[:, :, :3]
        elif channels != 3:
            raise ValueError(f"Unsupported number of image channels: {channels}")
    else:
        raise ValueError("Image data must be a 2-D or 3-D array")

    if arr.size == 0:
        raise ValueError("Image is empty")
    if white_level is not None:
        if white_level <= 0:
            raise ValueError("white_level must be positive")
        pixels = arr.astype(float) / float(white_level)
    elif np.issubdtype(arr.dtype, np.integer):
        divisor = 65535.0 if arr.max() > 255 else 255.0
        pixels = arr.astype(float) / divisor
    else:
        pixels = arr.astype(float)
        peak = float(np.nanmax(pixels))
        if peak > 1.0:
            if peak > 255.0:
                raise ValueError("Floating point image values exceed 255")
            pixels = pixels / 255.0
    if float(np.nanmin(pixels)) < 0.0:
        raise ValueError("Image values must not be negative")
    return RasterImage(pixels=pixels, meta={"name": name, "source_file": source_file})


def read_image(path: str | os.PathLike, max_px: int | None = None) -> RasterImage:
    path = Path(path)
    with Image.open(path) as img:
        if img.mode not in HIGH_DEPTH_MODES:
            img = img.convert("RGB")
        if max_px and max(img.size) > int(max_px):
            img.thumbnail((int(max_px), int(max_px)))
        white_level = 65535.0 if img.mode.startswith("I") else None
        data = np.array(img)
    return as_rimg(data, name=path.stem, source_file=str(path), white_level=white_level)


def _image_task(path: str, max_px: int | None) -> ImageTaskResult:
    try:
        return ImageTaskResult(path=path, image=read_image(path, max_px))
    except (OSError, ValueError, UnidentifiedImageError) as exc:
        return ImageTaskResult(path=path, error=f"{type(exc).__name__}: {exc}")


def import_images(
    where: str | os.PathLike,
    ext: str | Sequence[str] = IMAGE_EXTENSIONS,
    subdir: bool = False,
    max_px: Optional[int] = None,
    parallel: bool = False,
    workers: int | None = None,
) -> RasterImage | List[RasterImage]:
    """Load one image file, or every image in a directory in path order."""

    path = Path(where)
    if path.is_file():
        return read_image(path, max_px)

    files = find_files(path, ext, subdir=subdir)
    if not files:
        raise FileNotFoundError(f"No images found in {path}")
    logger.info("Importing %d images from %s", len(files), path)

    worker_count = workers if workers and workers > 0 else max(1, min(4, os.cpu_count() or 1))
    results: List[ImageTaskResult | None] = [None for _ in files]
    if parallel and len(files) > 1 and worker_count > 1:
        ctx = multiprocessing.get_context("spawn")
        with ProcessPoolExecutor(mp_context=ctx, max_workers=worker_count) as executor:
            future_map = {
                executor.submit(_image_task, str(file), max_px): idx
                for idx, file in enumerate(files)
            }
            for future in as_completed(future_map):
                idx = future_map[future]
                try:
                    results[idx] = future.result()
                except Exception as exc:
                    logger.exception("Image import task failed for %s", files[idx])
                    results[idx] = ImageTaskResult(
                        path=str(files[idx]), error=f"{type(exc).__name__}: {exc}"
                    )
    else:
        results = [_image_task(str(file), max_px) for file in files]

    images: List[RasterImage] = []
    for file, result in zip(files, results):
        if result is None or result.image is None:
            error = result.error if result is not None else "no result"
            logger.warning("Could not import %s: %s", file, error)
            continue
        images.append(result.image)
    if not images:
        raise ValueError(f"None of the {len(files)} images in {path} could be read")
    return images


def save_image(image: RasterImage, path: str | os.PathLike) -> Path:
    path = Path(path)
    if not path.parent.exists():
        path.parent.mkdir(parents=True, exist_ok=True)
    data = np.clip(np.round(image.pixels * 255.0), 0, 255).astype(np.uint8)
    Image.fromarray(data).save(path)
    return path
