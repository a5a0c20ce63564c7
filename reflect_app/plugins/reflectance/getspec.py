"""Batch import of spectrometer files into a :class:`SpectralTable`."""

from __future__ import annotations

import logging
import multiprocessing
import os
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from reflect_app.engine.io_common import find_files
from reflect_app.engine.plugin_api import SpectralFormatError, SpectralTable, Spectrum
from reflect_app.plugins.reflectance.io_vendor import read_spectrum
from reflect_app.plugins.reflectance.pipeline import combine_spectra

__all__ = ["find_files", "import_spectra", "default_parallel_workers"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ImportTaskResult:
    path: str
    spectrum: Spectrum | None = None
    error: str | None = None


def default_parallel_workers() -> int:
    return max(1, min(4, os.cpu_count() or 1))


def _import_task(path: str, decimal: Optional[str]) -> ImportTaskResult:
    try:
        return ImportTaskResult(path=path, spectrum=read_spectrum(path, decimal))
    except (OSError, ValueError, SpectralFormatError) as exc:
        return ImportTaskResult(path=path, error=f"{type(exc).__name__}: {exc}")


def _series_name(path: Path, root: Path, subdir_names: bool) -> str:
    if not subdir_names:
        return path.stem
    relative = path.relative_to(root).with_suffix("")
    return relative.as_posix()


def import_spectra(
    where: str | os.PathLike = ".",
    ext: str | Sequence[str] = "txt",
    lim: Sequence[float] = (300, 700),
    decimal: Optional[str] = ".",
    subdir: bool = False,
    subdir_names: bool = False,
    ignore_case: bool = True,
    parallel: bool = False,
    workers: int | None = None,
) -> SpectralTable:
    """Read every matching file under ``where`` into one table.

    Each spectrum is interpolated to a 1 nm grid spanning ``lim``.  Files
    that cannot be parsed are skipped with a warning.  ``decimal=None``
    sniffs the decimal separator per file.
    """

    root = Path(where)
    files = find_files(root, ext, subdir=subdir, ignore_case=ignore_case)
    if not files:
        raise FileNotFoundError(f"No files with extension {ext!r} found in {root}")
    logger.info("Importing %d files from %s", len(files), root)

    worker_count = workers if workers and workers > 0 else default_parallel_workers()
    results: List[ImportTaskResult | None] = [None for _ in files]
    if parallel and len(files) > 1 and worker_count > 1:
        ctx = multiprocessing.get_context("spawn")
        with ProcessPoolExecutor(mp_context=ctx, max_workers=worker_count) as executor:
            future_map = {
                executor.submit(_import_task, str(path), decimal): idx
                for idx, path in enumerate(files)
            }
            for future in as_completed(future_map):
                idx = future_map[future]
                try:
                    results[idx] = future.result()
                except Exception as exc:
                    logger.exception("Import task failed for %s", files[idx])
                    results[idx] = ImportTaskResult(
                        path=str(files[idx]), error=f"{type(exc).__name__}: {exc}"
                    )
    else:
        results = [_import_task(str(path), decimal) for path in files]

    spectra: List[Spectrum] = []
    names: List[str] = []
    failed: List[str] = []
    for path, result in zip(files, results):
        if result is None or result.spectrum is None:
            error = result.error if result is not None else "no result"
            logger.warning("Could not import %s: %s", path, error)
            failed.append(str(path))
            continue
        spectra.append(result.spectrum)
        names.append(_series_name(path, root, subdir_names))

    if not spectra:
        raise SpectralFormatError(f"None of the {len(files)} files in {root} could be imported")
    if failed:
        logger.warning("Skipped %d of %d files", len(failed), len(files))

    table = combine_spectra(spectra, lim, names=names)
    meta = dict(table.meta)
    meta["skipped_files"] = failed
    meta["source_dir"] = str(root)
    return table.copy_with(meta=meta)
