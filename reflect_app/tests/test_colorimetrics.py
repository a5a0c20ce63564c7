import numpy as np
import pytest

from reflect_app.engine.plugin_api import SpectralTable
from reflect_app.plugins.reflectance.colorimetrics import (
    COLORIMETRIC_VARIABLES,
    peak_shape,
    principal_components,
    summarise,
)


def _gaussian_table(lo=300, hi=700, centres=(550.0,), sigma=30.0):
    wl = np.arange(lo, hi + 1, dtype=float)
    values = np.column_stack(
        [5.0 + 50.0 * np.exp(-0.5 * ((wl - c) / sigma) ** 2) for c in centres]
    )
    return SpectralTable(wavelength=wl, values=values, names=[f"g{int(c)}" for c in centres])


def test_summary_contains_every_variable():
    summary = summarise(_gaussian_table())

    assert list(summary.columns) == list(COLORIMETRIC_VARIABLES)
    assert list(summary.index) == ["g550"]
    assert summary.index.name == "spectrum"
    assert summary.notna().all(axis=None)


def test_brightness_and_hue_of_a_gaussian_peak():
    table = _gaussian_table()
    row = summarise(table).loc["g550"]
    refl = table.column("g550")

    assert row["B1"] == pytest.approx(refl.sum())
    assert row["B2"] == pytest.approx(refl.mean())
    assert row["B3"] == pytest.approx(55.0)
    assert row["H1"] == 550.0
    assert abs(row["H2"] - 580.0) <= 1.0
    assert abs(row["H5"] - 520.0) <= 1.0
    assert row["S6"] == pytest.approx(50.0, abs=1e-3)
    assert row["S8"] == pytest.approx(row["S6"] / row["B2"])
    assert row["S1G"] > row["S1B"]


def test_segments_outside_the_data_are_missing(caplog):
    table = _gaussian_table(lo=450, hi=650)

    with caplog.at_level("WARNING"):
        row = summarise(table).iloc[0]

    for name in ("S1U", "S1V", "S1B", "S1R", "S9"):
        assert np.isnan(row[name])
    assert np.isfinite(row["S1G"])
    assert np.isfinite(row["S1Y"])
    assert "too narrow" in caplog.text


def test_summary_subset_and_limits():
    table = _gaussian_table(centres=(450.0, 600.0))

    summary = summarise(table, subset=["B3", "H1"], lim=(400, 700))

    assert list(summary.columns) == ["B3", "H1"]
    assert list(summary["H1"]) == [450.0, 600.0]

    with pytest.raises(ValueError):
        summarise(table, subset=["B9"])
    with pytest.raises(ValueError):
        summarise(table, lim=(700, 400))


def test_peak_shape_of_gaussian():
    shape = peak_shape(_gaussian_table()).loc["g550"]

    assert shape["B3"] == pytest.approx(55.0)
    assert shape["H1"] == 550.0
    assert shape["FWHM"] == pytest.approx(2.3548 * 30.0, abs=0.5)
    assert shape["HWHM_l"] == pytest.approx(shape["HWHM_r"], abs=0.1)
    assert bool(shape["incl_min"]) is True


def test_peak_shape_when_peak_sits_at_the_edge():
    wl = np.arange(300.0, 701.0)
    ramp = (wl - 300.0) / 400.0
    table = SpectralTable(wavelength=wl, values=ramp, names=["ramp"])

    shape = peak_shape(table).loc["ramp"]

    assert shape["H1"] == 700.0
    assert shape["HWHM_l"] == pytest.approx(200.0)
    assert np.isnan(shape["HWHM_r"])
    assert shape["FWHM"] == pytest.approx(400.0)
    assert bool(shape["incl_min"]) is True


def test_incl_min_reports_whether_the_minimum_is_within_limits():
    wl = np.arange(300.0, 701.0)
    refl = 5.0 + 50.0 * np.exp(-0.5 * ((wl - 550.0) / 30.0) ** 2)
    refl[(wl >= 310) & (wl <= 330)] = 1.0
    table = SpectralTable(wavelength=wl, values=refl, names=["dip"])

    assert bool(peak_shape(table, lim=(400, 700)).loc["dip", "incl_min"]) is False
    assert bool(peak_shape(table, lim=(300, 700)).loc["dip", "incl_min"]) is True
    assert bool(peak_shape(table).loc["dip", "incl_min"]) is True

    restricted = peak_shape(table, lim=(400, 700)).loc["dip"]
    assert restricted["FWHM"] == pytest.approx(2.3548 * 30.0, abs=0.5)


def test_flat_spectrum_has_no_width():
    table = SpectralTable(wavelength=np.arange(400.0, 411.0), values=np.full(11, 3.0), names=["flat"])

    shape = peak_shape(table).loc["flat"]

    assert np.isnan(shape["FWHM"])
    assert np.isnan(shape["HWHM_l"]) and np.isnan(shape["HWHM_r"])


def test_principal_components_separate_peak_positions():
    table = _gaussian_table(centres=(450.0, 455.0, 600.0, 605.0))

    pca = principal_components(table)

    assert list(pca.scores.index) == table.names
    assert pca.loadings.shape == (table.wavelength.size, 4)
    assert np.isclose(pca.explained_variance_ratio.sum(), 1.0)
    assert np.all(np.diff(pca.explained_variance_ratio) <= 1e-12)
    first = pca.scores["PC1"]
    assert np.sign(first["g450"]) == np.sign(first["g455"])
    assert np.sign(first["g450"]) != np.sign(first["g600"])
    for column in pca.loadings:
        loading = pca.loadings[column]
        assert loading.loc[loading.abs().idxmax()] > 0

    reduced = principal_components(table, n_components=2)
    assert list(reduced.scores.columns) == ["PC1", "PC2"]


def test_principal_components_need_two_spectra():
    with pytest.raises(ValueError):
        principal_components(_gaussian_table())
