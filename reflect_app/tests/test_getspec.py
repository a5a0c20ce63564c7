import numpy as np
import pytest

from reflect_app.engine.io_common import find_files
from reflect_app.engine.plugin_api import SpectralFormatError
from reflect_app.plugins.reflectance.getspec import import_spectra


def _write_ocean(path, centre, amplitude=60.0, decimal="."):
    wl = np.arange(290.0, 711.0, 0.5)
    refl = 5.0 + amplitude * np.exp(-0.5 * ((wl - centre) / 40.0) ** 2)
    rows = [f"{w:.2f}\t{r:.5f}" for w, r in zip(wl, refl)]
    if decimal == ",":
        rows = [row.replace(".", ",") for row in rows]
    lines = ["Integration Time (usec): 100000", ">>>>>Begin Processed Spectral Data<<<<<"]
    lines += rows
    lines.append(">>>>>End Processed Spectral Data<<<<<")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("\n".join(lines), encoding="utf-8")
    return wl, refl


def test_import_spectra_interpolates_to_whole_nanometres(tmp_path):
    _write_ocean(tmp_path / "b.ttt", 450.0)
    wl, refl = _write_ocean(tmp_path / "a.ttt", 600.0)
    _write_ocean(tmp_path / "c.ttt", 520.0)

    table = import_spectra(tmp_path, ext="ttt", lim=(300, 700))

    assert table.names == ["a", "b", "c"]
    assert table.wavelength[0] == 300.0
    assert table.wavelength[-1] == 700.0
    assert np.all(np.diff(table.wavelength) == 1.0)
    assert np.allclose(table.column("a"), np.interp(table.wavelength, wl, refl), atol=1e-4)
    assert table.meta["skipped_files"] == []
    assert table.meta["source_dir"] == str(tmp_path)


def test_import_spectra_matches_extensions_ignoring_case(tmp_path):
    _write_ocean(tmp_path / "UPPER.TTT", 500.0)
    _write_ocean(tmp_path / "other.jaz.bak", 500.0)

    table = import_spectra(tmp_path, ext=["ttt"], lim=(400, 600))
    assert table.names == ["UPPER"]

    with pytest.raises(FileNotFoundError):
        import_spectra(tmp_path, ext="ttt", lim=(400, 600), ignore_case=False)


def test_import_spectra_from_subdirectories(tmp_path):
    _write_ocean(tmp_path / "x.ttt", 500.0)
    _write_ocean(tmp_path / "sub" / "y.ttt", 550.0)

    top_only = import_spectra(tmp_path, ext="ttt", lim=(400, 600))
    assert top_only.names == ["x"]

    nested = import_spectra(tmp_path, ext="ttt", lim=(400, 600), subdir=True)
    assert nested.names == ["y", "x"]

    labelled = import_spectra(tmp_path, ext="ttt", lim=(400, 600), subdir=True, subdir_names=True)
    assert labelled.names == ["sub/y", "x"]


def test_duplicate_file_stems_get_unique_names(tmp_path):
    _write_ocean(tmp_path / "a" / "s.ttt", 500.0)
    _write_ocean(tmp_path / "b" / "s.ttt", 550.0)

    table = import_spectra(tmp_path, ext="ttt", lim=(400, 600), subdir=True)

    assert table.names == ["s", "s.1"]


def test_import_spectra_skips_unreadable_files(tmp_path):
    _write_ocean(tmp_path / "good.ttt", 500.0)
    (tmp_path / "broken.ttt").write_text("no data in this file\n", encoding="utf-8")

    table = import_spectra(tmp_path, ext="ttt", lim=(400, 600))

    assert table.names == ["good"]
    assert table.meta["skipped_files"] == [str(tmp_path / "broken.ttt")]


def test_import_spectra_fails_when_nothing_is_readable(tmp_path):
    (tmp_path / "broken.ttt").write_text("no data in this file\n", encoding="utf-8")

    with pytest.raises(SpectralFormatError):
        import_spectra(tmp_path, ext="ttt")


def test_import_spectra_without_matching_files(tmp_path):
    with pytest.raises(FileNotFoundError):
        import_spectra(tmp_path, ext="ttt")
    with pytest.raises(FileNotFoundError):
        import_spectra(tmp_path / "missing", ext="ttt")


def test_import_spectra_with_decimal_comma(tmp_path):
    wl, refl = _write_ocean(tmp_path / "euro.ttt", 500.0, decimal=",")

    explicit = import_spectra(tmp_path, ext="ttt", lim=(400, 600), decimal=",")
    sniffed = import_spectra(tmp_path, ext="ttt", lim=(400, 600), decimal=None)

    expected = np.interp(explicit.wavelength, wl, refl)
    assert np.allclose(explicit.column("euro"), expected, atol=1e-4)
    assert np.allclose(sniffed.values, explicit.values)


def test_find_files_requires_an_extension(tmp_path):
    with pytest.raises(ValueError):
        find_files(tmp_path, [])


def test_parallel_import_matches_serial(tmp_path):
    for name, centre in (("d", 610.0), ("b", 450.0), ("a", 600.0), ("c", 520.0)):
        _write_ocean(tmp_path / f"{name}.ttt", centre)
    (tmp_path / "broken.ttt").write_text("no data in this file\n", encoding="utf-8")

    serial = import_spectra(tmp_path, ext="ttt", lim=(300, 700))
    parallel = import_spectra(tmp_path, ext="ttt", lim=(300, 700), parallel=True, workers=2)

    assert parallel.names == serial.names == ["a", "b", "c", "d"]
    assert np.array_equal(parallel.wavelength, serial.wavelength)
    assert np.allclose(parallel.values, serial.values)
    assert parallel.meta["skipped_files"] == serial.meta["skipped_files"]
    assert serial.meta["skipped_files"] == [str(tmp_path / "broken.ttt")]


def test_limits_beyond_the_data_are_logged_once_per_file(tmp_path, caplog):
    _write_ocean(tmp_path / "a.ttt", 500.0)
    _write_ocean(tmp_path / "b.ttt", 550.0)

    with caplog.at_level("WARNING", logger="reflect_app.plugins.reflectance.pipeline"):
        table = import_spectra(tmp_path, ext="ttt", lim=(250, 750))

    held = [rec for rec in caplog.records if "held constant" in rec.getMessage()]
    assert len(held) == 2
    assert {rec.getMessage().split(" ")[0] for rec in held} == {"a", "b"}
    assert table.wavelength[0] == 250.0
    assert np.allclose(table.values[:41], table.values[40])
