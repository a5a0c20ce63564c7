"""Visual acuity modelling by frequency-domain blurring.

The image is treated as a scene of ``obj_width`` real units seen from
``obj_dist`` units away.  Spatial frequencies are attenuated with the
modulation transfer function ``exp(-3.56 * (eye_res * f) ** 2)``, ``f`` in
cycles per degree and ``eye_res`` the minimum resolvable angle in degrees.
"""

from __future__ import annotations

import logging

import numpy as np

from reflect_app.engine.plugin_api import RasterImage

__all__ = ["acuity_view", "image_width_degrees", "linearise_srgb", "delinearise_srgb", "modulation_transfer"]

logger = logging.getLogger(__name__)

MTF_CONSTANT = 3.56


def linearise_srgb(values: np.ndarray) -> np.ndarray:
    values = np.asarray(values, dtype=float)
    return np.where(values <= 0.04045, values / 12.92, ((values + 0.055) / 1.055) ** 2.4)


def delinearise_srgb(values: np.ndarray) -> np.ndarray:
    values = np.clip(np.asarray(values, dtype=float), 0.0, None)
    return np.where(values <= 0.0031308, values * 12.92, 1.055 * values ** (1.0 / 2.4) - 0.055)


def image_width_degrees(obj_dist: float, obj_width: float) -> float:
    if obj_dist <= 0 or obj_width <= 0:
        raise ValueError("Viewing distance and object width must be positive")
    return float(np.degrees(2.0 * np.arctan(obj_width / (2.0 * obj_dist))))


def modulation_transfer(n_px: int, width_deg: float, eye_res: float) -> np.ndarray:
    """MTF sampled on the ``numpy.fft`` frequency grid of an ``n_px`` square."""

    cycles = np.fft.fftfreq(n_px) * n_px            # cycles per image
    radial = np.hypot(cycles[:, None], cycles[None, :]) / width_deg
    return np.exp(-MTF_CONSTANT * (eye_res * radial) ** 2)


def acuity_view(image: RasterImage, obj_dist: float, obj_width: float, eye_res: float) -> RasterImage:
    """Blur ``image`` as seen by an observer with acuity ``eye_res`` degrees."""

    height, width = image.pixels.shape[:2]
    if height != width:
        raise ValueError(f"Acuity modelling requires a square image, got {height}x{width}")
    obj_dist, obj_width, eye_res = float(obj_dist), float(obj_width), float(eye_res)
    if eye_res <= 0:
        raise ValueError("Eye resolution must be positive")
    width_deg = image_width_degrees(obj_dist, obj_width)

    if width_deg / width > eye_res / 2.0:
        logger.warning(
            "%s: %.3g deg per pixel is too coarse to model an acuity of %.3g deg",
            image.name,
            width_deg / width,
            eye_res,
        )

    mtf = modulation_transfer(width, width_deg, eye_res)
    linear = linearise_srgb(image.pixels)
    blurred = np.empty_like(linear)
    for channel in range(linear.shape[2]):
        spectrum = np.fft.fft2(linear[:, :, channel])
        blurred[:, :, channel] = np.real(np.fft.ifft2(spectrum * mtf))

    pixels = np.clip(delinearise_srgb(blurred), 0.0, 1.0)
    meta = dict(image.meta)
    meta["acuity"] = {
        "obj_dist": obj_dist,
        "obj_width": obj_width,
        "eye_res": eye_res,
        "width_deg": width_deg,
    }
    return RasterImage(pixels=pixels, meta=meta)
