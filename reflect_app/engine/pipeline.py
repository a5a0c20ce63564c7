"""Recipe-driven orchestration shared by the analysis plug-ins.

A run validates the recipe against the loaded items, preprocesses them and
then hands them to the plug-in's analysis step.  Spectra and images follow
the same flow; only the plug-in differs.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Mapping, Tuple, Type

from reflect_app.engine.audit import log_step, start_audit
from reflect_app.engine.plugin_api import AnalysisPlugin, BatchResult
from reflect_app.engine.recipe_model import Recipe
from reflect_app.plugins.image.plugin import ImagePlugin
from reflect_app.plugins.reflectance.plugin import ReflectancePlugin

__all__ = ["PLUGINS", "get_plugin", "run_processing", "run_batch"]

logger = logging.getLogger(__name__)

PLUGINS: Dict[str, Type[AnalysisPlugin]] = {
    ReflectancePlugin.id: ReflectancePlugin,
    ImagePlugin.id: ImagePlugin,
}


def get_plugin(module_id: str) -> AnalysisPlugin:
    key = str(module_id or "").strip().lower()
    try:
        return PLUGINS[key]()
    except KeyError:
        raise ValueError(
            f"Unknown analysis module '{module_id}'; expected one of {', '.join(PLUGINS)}"
        ) from None


def _params(recipe: Recipe | Mapping[str, Any] | None) -> Dict[str, Any]:
    if recipe is None:
        return {}
    if isinstance(recipe, Recipe):
        return dict(recipe.params)
    return dict(recipe)


def run_processing(
    plugin: AnalysisPlugin,
    items: Iterable[Any],
    recipe: Recipe | Mapping[str, Any] | None,
) -> Tuple[List[Any], List[Dict[str, Any]]]:
    params = _params(recipe)
    items_list = list(items)
    if not items_list:
        return [], []
    errors = plugin.validate(items_list, params)
    if errors:
        raise ValueError("Invalid recipe: " + "; ".join(errors))
    preprocessed = plugin.preprocess(items_list, params)
    return plugin.analyze(preprocessed, params)


def run_batch(
    plugin: AnalysisPlugin,
    paths: Iterable[str],
    recipe: Recipe | Mapping[str, Any] | None,
) -> BatchResult:
    params = _params(recipe)
    audit = start_audit(plugin.id)
    path_list = [str(p) for p in paths]
    items = plugin.load(path_list, params)
    log_step(audit, f"Loaded {len(items)} item(s) from {len(path_list)} path(s)")
    processed, summary = run_processing(plugin, items, params)
    log_step(audit, f"Processed {len(processed)} item(s); {len(summary)} summary row(s)")
    result = plugin.export(processed, summary, params)
    for line in result.audit:
        log_step(audit, line)
    result.audit = audit
    return result
