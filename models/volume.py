from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import nibabel as nib
import numpy as np

from config.constants import NIFTI_UINT8_DATATYPE

_NIFTI_DATATYPE_CODES = {
    np.dtype(np.uint8): NIFTI_UINT8_DATATYPE,
    np.dtype(np.int16): 4,
    np.dtype(np.int32): 8,
    np.dtype(np.float32): 16,
    np.dtype(np.float64): 64,
    np.dtype(np.int8): 256,
    np.dtype(np.uint16): 512,
    np.dtype(np.uint32): 768,
}


def perm_ras_from_affine(affine: np.ndarray) -> Tuple[int, int, int]:
    """
    Map each RAS world axis to the (signed, 1-based) voxel axis that runs along it.

    A FreeSurfer-conformed LIA volume gives (-1, 3, -2).
    """
    ornt = nib.orientations.io_orientation(np.asarray(affine, dtype=np.float64))
    perm = [0, 0, 0]
    for vox_axis, (ras_axis, flip) in enumerate(ornt):
        perm[int(ras_axis)] = int(flip) * (vox_axis + 1)
    return perm[0], perm[1], perm[2]


@dataclass
class VolumeHeader:
    """Subset of the NIfTI header the engine reads or rewrites."""

    scl_slope: float = 1.0
    scl_inter: float = 0.0
    intent_code: int = 0
    datatype_code: int = NIFTI_UINT8_DATATYPE


@dataclass
class ColormapLabel:
    """Categorical colormap: one RGB triple and one display row per label ordinal."""

    R: List[int]
    G: List[int]
    B: List[int]
    labels: List[str]

    def lut(self) -> np.ndarray:
        """Return a (N, 3) uint8 lookup table indexed by label value."""
        n = min(len(self.R), len(self.G), len(self.B))
        return np.stack(
            [np.asarray(self.R[:n]), np.asarray(self.G[:n]), np.asarray(self.B[:n])], axis=1
        ).astype(np.uint8)


@dataclass
class Volume:
    """Grille 3D (x, y, z) avec buffer plat (x varie le plus vite), en-tête et orientation."""

    dims: Tuple[int, int, int]
    img: np.ndarray
    affine: np.ndarray = field(default_factory=lambda: np.eye(4))
    header: VolumeHeader = field(default_factory=VolumeHeader)
    name: str = ""
    colormap: str = "gray"
    colormap_label: Optional[ColormapLabel] = None
    opacity: float = 1.0

    def __post_init__(self) -> None:
        self.dims = tuple(int(d) for d in self.dims)  # type: ignore[assignment]
        self.img = np.asarray(self.img).reshape(-1)
        self.affine = np.asarray(self.affine, dtype=np.float64)
        if self.img.size != self.voxel_count:
            raise ValueError(
                f"Buffer length {self.img.size} does not match dims {self.dims} ({self.voxel_count} voxels)."
            )
        self.header.datatype_code = _NIFTI_DATATYPE_CODES.get(self.img.dtype, self.header.datatype_code)

    @classmethod
    def from_array(cls, data: np.ndarray, affine: Optional[np.ndarray] = None, **kwargs) -> "Volume":
        """Build a volume from a (x, y, z) array."""
        arr = np.asarray(data)
        if arr.ndim != 3:
            raise ValueError(f"Volume 3D attendu, reçu {arr.ndim}D.")
        return cls(
            dims=arr.shape,
            img=arr.ravel(order="F"),
            affine=np.eye(4) if affine is None else affine,
            **kwargs,
        )

    @property
    def voxel_count(self) -> int:
        x, y, z = self.dims
        return int(x) * int(y) * int(z)

    @property
    def perm_ras(self) -> Tuple[int, int, int]:
        return perm_ras_from_affine(self.affine)

    @property
    def nifti_dims(self) -> List[int]:
        """NIfTI-style dim array: [ndim, x, y, z, 1, 1, 1, 1]."""
        return [3, *self.dims, 1, 1, 1, 1]

    def as_array(self) -> np.ndarray:
        """View of the samples as a (x, y, z) array."""
        return self.img.reshape(self.dims, order="F")

    def clone(self) -> "Volume":
        """Deep copy: geometry, header, samples and render attributes."""
        return Volume(
            dims=self.dims,
            img=self.img.copy(),
            affine=self.affine.copy(),
            header=copy.deepcopy(self.header),
            name=self.name,
            colormap=self.colormap,
            colormap_label=copy.deepcopy(self.colormap_label),
            opacity=self.opacity,
        )

    def zero_image(self) -> None:
        self.img = np.zeros_like(self.img)

    def assign_labels(self, buffer: Sequence[int] | np.ndarray | bytes) -> None:
        """Replace the samples with a copy of ``buffer`` read as uint8 label indices."""
        if isinstance(buffer, (bytes, bytearray, memoryview)):
            labels = np.frombuffer(buffer, dtype=np.uint8).copy()
        else:
            labels = np.array(buffer, dtype=np.uint8, copy=True).reshape(-1)
        if labels.size != self.voxel_count:
            raise ValueError(
                f"Label buffer length {labels.size} differs from voxel count {self.voxel_count}."
            )
        self.img = labels
        self.header.datatype_code = NIFTI_UINT8_DATATYPE

    def set_colormap_label(self, colormap_label: ColormapLabel) -> None:
        self.colormap_label = colormap_label

    def to_nifti(self) -> nib.Nifti1Image:
        """Build a nibabel image with the raw samples (scaling stays in ``header``)."""
        image = nib.Nifti1Image(self.as_array(), self.affine)
        image.header.set_data_dtype(self.img.dtype)
        image.header["intent_code"] = int(self.header.intent_code)
        return image
