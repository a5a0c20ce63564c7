import logging

import numpy as np
import pytest

from reflect_app.engine.plugin_api import RasterImage
from reflect_app.plugins.image.acuity import (
    acuity_view,
    delinearise_srgb,
    image_width_degrees,
    linearise_srgb,
    modulation_transfer,
)


def _checker(size=64, block=8):
    pattern = np.kron(np.indices((size // block, size // block)).sum(axis=0) % 2, np.ones((block, block)))
    return RasterImage(pixels=np.repeat(pattern[:, :, None], 3, axis=2), meta={"name": "checker"})


def test_acuity_blurs_fine_patterns():
    img = _checker()

    blurred = acuity_view(img, obj_dist=2.0, obj_width=0.05, eye_res=0.2)

    assert blurred.shape == img.shape
    assert blurred.pixels.std() < img.pixels.std()
    assert blurred.pixels.min() >= 0.0 and blurred.pixels.max() <= 1.0
    assert blurred.meta["acuity"]["width_deg"] == pytest.approx(image_width_degrees(2.0, 0.05))
    assert "acuity" not in img.meta


def test_coarser_acuity_blurs_more():
    img = _checker()
    sharp = acuity_view(img, obj_dist=2.0, obj_width=0.05, eye_res=0.1)
    coarse = acuity_view(img, obj_dist=2.0, obj_width=0.05, eye_res=0.3)
    assert coarse.pixels.std() < sharp.pixels.std()


def test_uniform_image_is_unchanged():
    img = RasterImage(pixels=np.full((16, 16, 3), 0.4))
    result = acuity_view(img, obj_dist=1.0, obj_width=0.1, eye_res=0.5)
    assert np.allclose(result.pixels, 0.4, atol=1e-9)


def test_acuity_requires_square_images():
    img = RasterImage(pixels=np.zeros((8, 16, 3)))
    with pytest.raises(ValueError):
        acuity_view(img, obj_dist=1.0, obj_width=0.1, eye_res=0.2)
    with pytest.raises(ValueError):
        acuity_view(_checker(), obj_dist=0.0, obj_width=0.1, eye_res=0.2)


def test_coarse_pixels_are_reported(caplog):
    with caplog.at_level(logging.WARNING, logger="reflect_app.plugins.image.acuity"):
        acuity_view(_checker(size=16, block=4), obj_dist=1.0, obj_width=1.0, eye_res=0.2)
    assert "too coarse" in caplog.text


def test_modulation_transfer_passes_mean_level():
    mtf = modulation_transfer(16, 2.0, 0.2)
    assert mtf.shape == (16, 16)
    assert mtf[0, 0] == 1.0
    assert np.all((mtf > 0) & (mtf <= 1))
    assert np.allclose(mtf, mtf.T)


def test_viewing_geometry():
    assert image_width_degrees(1.0, 2.0) == pytest.approx(90.0)
    with pytest.raises(ValueError):
        image_width_degrees(-1.0, 1.0)


def test_srgb_linearisation_round_trip():
    values = np.linspace(0.0, 1.0, 11)
    assert np.allclose(delinearise_srgb(linearise_srgb(values)), values)
    assert linearise_srgb(np.array([0.5]))[0] == pytest.approx(0.214, abs=1e-3)
