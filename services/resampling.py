"""Conformation d'un volume : réorientation LIA, rééchantillonnage 1 mm, 256³ uint8."""

from __future__ import annotations

import logging
from typing import Sequence

import nibabel as nib
import numpy as np
from scipy import ndimage

from config.constants import CONFORMED_AXCODES, CONFORMED_DIMS
from models.volume import Volume, VolumeHeader

logger = logging.getLogger(__name__)

# vox2ras of a FreeSurfer conformed volume (LIA, 1 mm, centred).
CONFORMED_AFFINE = np.array(
    [
        [-1.0, 0.0, 0.0, 128.0],
        [0.0, 0.0, 1.0, -128.0],
        [0.0, -1.0, 0.0, 128.0],
        [0.0, 0.0, 0.0, 1.0],
    ]
)


def _center_fit(data: np.ndarray, target: Sequence[int]) -> np.ndarray:
    """Crop or zero-pad every axis symmetrically to ``target``."""
    out = np.zeros(tuple(target), dtype=data.dtype)
    src_slices = []
    dst_slices = []
    for size, want in zip(data.shape, target):
        if size >= want:
            start = (size - want) // 2
            src_slices.append(slice(start, start + want))
            dst_slices.append(slice(0, want))
        else:
            start = (want - size) // 2
            src_slices.append(slice(0, size))
            dst_slices.append(slice(start, start + size))
    out[tuple(dst_slices)] = data[tuple(src_slices)]
    return out


def _to_uint8(data: np.ndarray) -> np.ndarray:
    lo = float(np.min(data))
    hi = float(np.percentile(data, 99.9))
    if hi <= lo:
        hi = float(np.max(data))
    if hi <= lo:
        return np.zeros(data.shape, dtype=np.uint8)
    scaled = (np.clip(data, lo, hi) - lo) * (255.0 / (hi - lo))
    return np.round(scaled).astype(np.uint8)


def conform(volume: Volume) -> Volume:
    """
    Return a new volume resampled to the conformed geometry.

    Samples are scaled by the header slope/intercept, reoriented to LIA,
    resampled to 1 mm isotropic (linear), fitted to 256³ and rescaled to uint8.
    """
    data = volume.as_array().astype(np.float32)
    data = data * float(volume.header.scl_slope or 1.0) + float(volume.header.scl_inter)

    src_ornt = nib.orientations.io_orientation(volume.affine)
    dst_ornt = nib.orientations.axcodes2ornt(CONFORMED_AXCODES)
    transform = nib.orientations.ornt_transform(src_ornt, dst_ornt)
    data = nib.orientations.apply_orientation(data, transform)

    zooms = np.sqrt(np.sum(volume.affine[:3, :3] ** 2, axis=0))
    # Les zooms suivent les axes voxel d'origine : on les permute comme les données.
    out_zooms = np.ones(3)
    out_zooms[transform[:, 0].astype(int)] = zooms
    zooms = np.where(out_zooms > 0, out_zooms, 1.0)
    if not np.allclose(zooms, 1.0):
        data = ndimage.zoom(data, zooms, order=1)

    data = _center_fit(data, CONFORMED_DIMS)
    logger.info("Conformed volume %s %s -> %s", volume.name or "<unnamed>", volume.dims, data.shape)
    return Volume.from_array(
        _to_uint8(data),
        affine=CONFORMED_AFFINE.copy(),
        header=VolumeHeader(scl_slope=1.0, scl_inter=0.0, intent_code=volume.header.intent_code),
        name=volume.name,
        colormap=volume.colormap,
        opacity=volume.opacity,
    )
