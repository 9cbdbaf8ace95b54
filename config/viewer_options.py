"""Options par défaut transmises aux fonctions d'inférence."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any, Dict

RESOURCES_DIR = Path(__file__).resolve().parent / "resources"

DEFAULT_VIEWER_OPTIONS: Dict[str, Any] = {
    "root_url": "",
    "atlas_selected_color_table": "Freesurfer",
    # Budget mémoire indicatif (Mo) au-delà duquel un backend signale une pression mémoire.
    "memory_limit_mb": 4096,
    "colormap_timeout_s": 10.0,
    "debug": False,
}


def default_serving_origin() -> str:
    """Origin used to resolve relative resource paths (colormaps)."""
    return RESOURCES_DIR.as_uri() + "/"


def clone_viewer_options() -> Dict[str, Any]:
    """Return an independent copy of the default options."""
    return copy.deepcopy(DEFAULT_VIEWER_OPTIONS)
