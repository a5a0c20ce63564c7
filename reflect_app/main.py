"""Run a reflectance or image recipe from the command line."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import Sequence

from reflect_app.engine.excel_writer import write_csv, write_workbook
from reflect_app.engine.pipeline import get_plugin, run_batch
from reflect_app.engine.plugin_api import SpectralFormatError
from reflect_app.engine.recipe_model import load_recipe
from reflect_app.plugins.image.io_images import save_image
from reflect_app.plugins.reflectance.pipeline import merge_spectra

logger = logging.getLogger("reflect_app")


def parse_args(argv: Sequence[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="reflect-app", description=__doc__)
    parser.add_argument("-v", "--verbose", action="store_true", help="Log progress at INFO level.")
    sub = parser.add_subparsers(dest="command", required=True)

    spectra = sub.add_parser("spectra", help="Import, process and summarise spectra.")
    spectra.add_argument("where", help="Directory or file(s) holding spectral exports.", nargs="+")
    spectra.add_argument("--preset", default="reflectance_default", help="Preset name or YAML path.")
    spectra.add_argument("--out", required=True, help="Output .xlsx or .csv file.")
    spectra.add_argument("--ext", nargs="*", help="Override the file extensions to import.")
    spectra.add_argument("--subdir", action="store_true", help="Search sub-directories.")
    spectra.add_argument("--parallel", action="store_true", help="Import files in worker processes.")

    image = sub.add_parser("image", help="Process colour-pattern images.")
    image.add_argument("where", help="Image file or directory of images.")
    image.add_argument("--preset", default="image_default", help="Preset name or YAML path.")
    image.add_argument(
        "--out",
        required=True,
        help="Output image file (e.g. .png), or a directory receiving one .png per image.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(sys.argv[1:] if argv is None else argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        recipe = load_recipe(args.preset)
    except (FileNotFoundError, ValueError) as exc:
        logger.error("%s", exc)
        return 2

    params = dict(recipe.params)
    if args.command == "spectra":
        import_cfg = dict(params.get("import") or {})
        if args.ext:
            import_cfg["ext"] = args.ext
        if args.subdir:
            import_cfg["subdir"] = True
        if args.parallel:
            import_cfg["parallel"] = True
        params["import"] = import_cfg
        plugin = get_plugin("reflectance")
        paths = args.where
    else:
        plugin = get_plugin("image")
        paths = [args.where]

    if recipe.module != plugin.id:
        logger.error("Preset %s is for module '%s', not '%s'", args.preset, recipe.module, plugin.id)
        return 2

    try:
        result = run_batch(plugin, paths, params)
    except (FileNotFoundError, ValueError, SpectralFormatError) as exc:
        logger.error("%s", exc)
        return 2

    out = Path(args.out)
    if args.command == "spectra":
        table = merge_spectra(*result.processed)
        if out.suffix.lower() == ".csv":
            write_csv(out, table)
        else:
            write_workbook(out, table, summary=result.summary, audit=result.audit)
    elif Path(args.where).is_dir():
        for image in result.processed:
            save_image(image, out / f"{image.name}.png")
    else:
        save_image(result.processed[0], out)
    logger.info("Wrote %s", out)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
