import numpy as np
import pytest

from reflect_app.engine.plugin_api import SpectralTable
from reflect_app.plugins.reflectance.aggregation import aggregate_spectra, grouping_labels


def _replicates():
    wl = np.arange(400.0, 405.0)
    values = np.column_stack([np.full(5, float(i)) for i in range(6)])
    names = ["robin_1", "robin_2", "robin_3", "jay_1", "jay_2", "jay_3"]
    return SpectralTable(wavelength=wl, values=values, names=names)


def test_aggregate_by_block_size_trims_names():
    table = _replicates()

    result = aggregate_spectra(table, by=3)

    assert result.names == ["robin", "jay"]
    assert np.allclose(result.column("robin"), 1.0)
    assert np.allclose(result.column("jay"), 4.0)
    assert result.meta["aggregated"]["group_sizes"] == {"robin": 3, "jay": 3}
    assert result.meta["aggregated"]["members"]["jay"] == ["jay_1", "jay_2", "jay_3"]


def test_aggregate_by_block_size_without_trimming():
    result = aggregate_spectra(_replicates(), by=3, trim=False)
    assert result.names == ["robin_1", "jay_1"]


def test_block_size_must_divide_the_number_of_spectra():
    with pytest.raises(ValueError):
        aggregate_spectra(_replicates(), by=4)
    with pytest.raises(ValueError):
        aggregate_spectra(_replicates(), by=0)


def test_colliding_block_prefixes_stay_separate_groups():
    wl = np.arange(400.0, 403.0)
    table = SpectralTable(wavelength=wl, values=np.ones((3, 4)), names=["s1", "s2", "s3", "s4"])

    labels = grouping_labels(table, 2)

    assert labels == ["s", "s", "s3", "s3"]


def test_aggregate_by_labels_keeps_first_appearance_order():
    table = _replicates()
    labels = ["b", "a", "b", "a", "b", "a"]

    result = aggregate_spectra(table, by=labels, func="median")

    assert result.names == ["b", "a"]
    assert np.allclose(result.column("b"), 2.0)
    assert np.allclose(result.column("a"), 3.0)


def test_aggregate_by_several_label_vectors():
    table = _replicates()
    sex = ["m", "m", "f", "f", "m", "m"]
    site = ["x", "y", "x", "y", "x", "y"]

    result = aggregate_spectra(table, by=[sex, site])

    assert result.names == ["m.x", "m.y", "f.x", "f.y"]
    assert np.allclose(result.column("m.x"), 2.0)
    assert np.allclose(result.column("m.y"), 3.0)


def test_aggregate_everything_into_one_series():
    result = aggregate_spectra(_replicates(), func="max")
    assert result.names == ["aggregate"]
    assert np.allclose(result.column("aggregate"), 5.0)


def test_spread_functions():
    table = _replicates()

    sd = aggregate_spectra(table, by=3, func="sd")
    assert np.allclose(sd.column("robin"), 1.0)

    se = aggregate_spectra(table, by=3, func="se")
    assert np.allclose(se.column("robin"), 1.0 / np.sqrt(3))

    single = aggregate_spectra(table, by=1, func="sd")
    assert np.all(np.isnan(single.values))


def test_invalid_grouping_is_rejected():
    table = _replicates()
    with pytest.raises(TypeError):
        aggregate_spectra(table, by="robin")
    with pytest.raises(ValueError):
        aggregate_spectra(table, by=["a", "b"])
    with pytest.raises(ValueError):
        aggregate_spectra(table, by=[["a"] * 6, ["b"] * 5])
    with pytest.raises(ValueError):
        aggregate_spectra(table, by=3, func="mode")


def test_custom_summary_function():
    result = aggregate_spectra(_replicates(), by=2, func=np.ptp)
    assert np.allclose(result.values, 1.0)
    assert result.meta["aggregated"]["function"] == "ptp"


@pytest.mark.parametrize("func", ["mean", "median", "sd", "se", "max"])
def test_group_results_do_not_depend_on_member_order(func):
    rng = np.random.default_rng(11)
    wl = np.arange(400.0, 420.0)
    values = rng.uniform(2.0, 60.0, size=(wl.size, 7))
    names = [f"spec{i}" for i in range(7)]
    labels = ["wing", "tail", "wing", "crest", "tail", "wing", "tail"]
    table = SpectralTable(wavelength=wl, values=values, names=names)

    order = rng.permutation(7)
    shuffled = SpectralTable(
        wavelength=wl, values=values[:, order], names=[names[i] for i in order]
    )

    reference = aggregate_spectra(table, by=labels, func=func)
    permuted = aggregate_spectra(shuffled, by=[labels[i] for i in order], func=func)

    assert sorted(permuted.names) == sorted(reference.names)
    for name in reference.names:
        assert np.allclose(permuted.column(name), reference.column(name))
