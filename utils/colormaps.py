"""Registre des colormaps nommées (tables intégrées + catalogue ``cmap``)."""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

import numpy as np
from cmap import Colormap as cmap_colormap

logger = logging.getLogger(__name__)

# Control points (RGB 0-255) of the built-in tables, interpolated to 256 entries.
_ACTC_POINTS = np.array(
    [
        [0, 0, 0],
        [0, 0, 136],
        [24, 177, 0],
        [248, 254, 0],
        [255, 0, 0],
    ],
    dtype=np.float32,
)

# Discrete atlas table (index = label value), FreeSurfer-style colours.
_FREESURFER_LABELS = np.array(
    [
        [0, 0, 0],
        [70, 130, 180],
        [245, 245, 245],
        [205, 62, 78],
        [120, 18, 134],
        [196, 58, 250],
        [0, 148, 0],
        [220, 248, 164],
        [230, 148, 34],
        [0, 118, 14],
        [122, 186, 220],
        [236, 13, 176],
        [12, 48, 255],
        [204, 182, 142],
        [42, 204, 164],
        [119, 159, 176],
    ],
    dtype=np.uint8,
)

DEFAULT_CMAP_NAMES = ("viridis", "plasma", "inferno", "magma", "hot", "cool", "jet")


def _interpolate(points: np.ndarray, n: int = 256) -> np.ndarray:
    xs = np.linspace(0, 1, points.shape[0])
    grid = np.linspace(0, 1, n)
    lut = np.array([np.interp(grid, xs, points[:, i]) for i in range(3)]).T
    return np.clip(np.round(lut), 0, 255).astype(np.uint8)


def _discrete(table: np.ndarray, n: int = 256) -> np.ndarray:
    lut = np.zeros((n, 3), dtype=np.uint8)
    count = min(n, table.shape[0])
    lut[:count] = table[:count]
    # Labels au-delà de la table : on recycle les couleurs (hors fond).
    for idx in range(count, n):
        lut[idx] = table[1 + (idx - 1) % (table.shape[0] - 1)]
    return lut


class ColormapRegistry:
    """Names the scene can render, with a 256-entry RGB LUT for each."""

    def __init__(self, extra_names: Iterable[str] = DEFAULT_CMAP_NAMES) -> None:
        self._builtin: Dict[str, np.ndarray] = {
            "gray": _interpolate(np.array([[0, 0, 0], [255, 255, 255]], dtype=np.float32)),
            "actc": _interpolate(_ACTC_POINTS),
            "freesurfer": _discrete(_FREESURFER_LABELS),
        }
        self._extra: List[str] = [name.lower() for name in extra_names if self._cmap_exists(name)]

    def names(self) -> List[str]:
        return list(self._builtin) + [name for name in self._extra if name not in self._builtin]

    def is_recognized(self, name: Optional[str]) -> bool:
        if not name:
            return False
        return str(name) in self.names()

    def lut(self, name: str, n: int = 256) -> np.ndarray:
        """Return a (n, 3) uint8 RGB table for ``name`` (gray when unknown)."""
        key = str(name).lower()
        if key in self._builtin:
            table = self._builtin[key]
            if table.shape[0] == n:
                return table
            return _interpolate(table.astype(np.float32), n)
        if key in self._extra:
            rgba = np.asarray(cmap_colormap(key).lut(n), dtype=np.float32)
            return np.clip(np.round(rgba[:, :3] * 255.0), 0, 255).astype(np.uint8)
        logger.warning("Unknown colormap %r, using gray", name)
        return self._builtin["gray"]

    @staticmethod
    def _cmap_exists(name: str) -> bool:
        try:
            cmap_colormap(name)
        except (ValueError, KeyError):
            logger.debug("Colormap %s absent du catalogue cmap", name)
            return False
        return True
