"""Composition RGB d'une coupe : volume de base + overlay de labels + dessin."""

from __future__ import annotations

from typing import Optional

import numpy as np
from scipy import ndimage

from config.constants import MASK_COLORS_RGB
from models.scene_model import SceneModel
from models.volume import Volume


def slice_count(scene: SceneModel) -> int:
    base = scene.base
    return 0 if base is None else int(base.dims[2])


def _normalize(data: np.ndarray) -> np.ndarray:
    data = data.astype(np.float32)
    vmin, vmax = float(data.min()), float(data.max())
    if vmax <= vmin:
        return np.zeros(data.shape, dtype=np.uint8)
    return np.clip((data - vmin) / (vmax - vmin) * 255.0, 0, 255).astype(np.uint8)


def _slice(volume: Volume, z: int) -> np.ndarray:
    # (x, y, z) -> (rows=y, cols=x)
    return volume.as_array()[:, :, z].T


def _label_lut(scene: SceneModel, overlay: Volume) -> np.ndarray:
    lut = np.zeros((256, 3), dtype=np.uint8)
    if overlay.colormap_label is not None:
        table = overlay.colormap_label.lut()[:256]
        lut[: table.shape[0]] = table
        return lut
    return scene.colormap_registry.lut(overlay.colormap)


def render_slice(scene: SceneModel, z: Optional[int] = None) -> Optional[np.ndarray]:
    """Return a (H, W, 3) uint8 image of slice ``z`` (middle slice by default)."""
    base = scene.base
    if base is None:
        return None
    depth = base.dims[2]
    z = depth // 2 if z is None else max(0, min(depth - 1, int(z)))

    gray = _normalize(_slice(base, z))
    rgb = scene.colormap_registry.lut(base.colormap)[gray].astype(np.float32) * base.opacity

    overlay = scene.overlay
    if overlay is not None and overlay.dims == base.dims:
        labels = _slice(overlay, z).astype(np.intp)
        mask = labels > 0
        if mask.any():
            colors = _label_lut(scene, overlay)[np.clip(labels, 0, 255)].astype(np.float32)
            alpha = overlay.opacity
            rgb[mask] = rgb[mask] * (1.0 - alpha) + colors[mask] * alpha

    drawing = scene.drawing
    if drawing.bitmap is not None and drawing.dims == base.dims:
        pen = drawing.bitmap.reshape(drawing.dims, order="F")[:, :, z].T
        for value in np.unique(pen[pen > 0]):
            color = np.asarray(MASK_COLORS_RGB.get(int(value), [255, 0, 255]), dtype=np.float32)
            hit = pen == value
            rgb[hit] = rgb[hit] * 0.5 + color * 0.5

    return np.ascontiguousarray(np.clip(rgb, 0, 255).astype(np.uint8))


def stroke_indices(
    dims: tuple[int, int, int],
    z: int,
    points: list[tuple[int, int]],
    filled: bool = False,
) -> np.ndarray:
    """Flat (x-fastest) voxel indices hit by a pen stroke on slice ``z``; ``filled`` closes the outline."""
    nx, ny, _ = dims
    mask = np.zeros((nx, ny), dtype=bool)
    outline = list(points) + list(points[:1]) if filled else list(points)
    for x, y in _polyline(outline):
        if 0 <= x < nx and 0 <= y < ny:
            mask[x, y] = True
    if filled and mask.any():
        mask = ndimage.binary_fill_holes(mask)
    xs, ys = np.nonzero(mask)
    return xs + ys * nx + int(z) * nx * ny


def _polyline(points: list[tuple[int, int]]) -> list[tuple[int, int]]:
    """Connect successive mouse samples so a fast drag leaves no gaps."""
    if len(points) < 2:
        return list(points)
    out: list[tuple[int, int]] = []
    for (x0, y0), (x1, y1) in zip(points[:-1], points[1:]):
        steps = max(abs(x1 - x0), abs(y1 - y0), 1)
        for t in np.linspace(0.0, 1.0, steps + 1):
            out.append((int(round(x0 + (x1 - x0) * t)), int(round(y0 + (y1 - y0) * t))))
    return out
