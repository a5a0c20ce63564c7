from __future__ import annotations

from pathlib import Path

import yaml

from reflect_app.engine.recipe_model import Recipe

PRESET_DIR = Path(__file__).resolve().parent.parent / "config" / "presets"


def _load(name: str) -> dict:
    with (PRESET_DIR / name).open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle)


def test_reflectance_default_preset_includes_expected_params() -> None:
    preset = _load("reflectance_default.yaml")
    params = preset.get("params", {})

    assert preset["module"] == "reflectance"
    assert params.get("import") == {
        "ext": ["txt", "ttt", "jaz", "procspec"],
        "lim": [300, 700],
        "decimal": ".",
        "subdir": False,
        "subdir_names": False,
        "parallel": False,
    }
    assert params.get("processing") == {
        "opt": ["smooth", "max"],
        "fixneg": "addmin",
        "span": 0.25,
        "bins": 20,
    }
    assert params["aggregate"]["enabled"] is False
    assert params["summary"]["enabled"] is True
    assert Recipe.from_mapping(preset).validate() == []


def test_image_default_preset_includes_expected_params() -> None:
    preset = _load("image_default.yaml")
    params = preset.get("params", {})

    assert preset["module"] == "image"
    assert params.get("acuity") == {
        "enabled": False,
        "obj_dist": 2.0,
        "obj_width": 0.1,
        "eye_res": 0.2,
    }
    assert params["processing"]["iterations"] == 1
    assert Recipe.from_mapping(preset).validate() == []
