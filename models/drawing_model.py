from __future__ import annotations

from typing import Optional, Sequence, Tuple

import nibabel as nib
import numpy as np


class DrawingModel:
    """
    Transient drawing bitmap painted on top of the overlay.

    Stores a flat uint8 bitmap aligned with the base volume (x fastest), the
    pen settings and one undo snapshot. No rendering logic.
    """

    def __init__(self) -> None:
        self.bitmap: Optional[np.ndarray] = None
        self.dims: Optional[Tuple[int, int, int]] = None
        self.affine: np.ndarray = np.eye(4)
        self.enabled: bool = False
        self.pen_value: int = 1
        self.pen_filled: bool = False
        self._undo_bitmap: Optional[np.ndarray] = None

    # ------------------------------------------------------------------ #
    # Bitmap lifecycle
    # ------------------------------------------------------------------ #
    def open(self, dims: Sequence[int], affine: Optional[np.ndarray] = None) -> None:
        """Create an empty bitmap if none exists for this geometry."""
        dims = tuple(int(d) for d in dims)
        if self.bitmap is not None and self.dims == dims:
            return
        self.dims = dims  # type: ignore[assignment]
        self.affine = np.eye(4) if affine is None else np.asarray(affine, dtype=np.float64)
        self.bitmap = np.zeros(int(np.prod(dims)), dtype=np.uint8)
        self._undo_bitmap = None

    def close(self) -> None:
        """Drop the bitmap and its undo snapshot."""
        self.bitmap = None
        self._undo_bitmap = None

    @property
    def has_bitmap(self) -> bool:
        return self.bitmap is not None

    # ------------------------------------------------------------------ #
    # Pen
    # ------------------------------------------------------------------ #
    def set_enabled(self, enabled: bool) -> None:
        self.enabled = bool(enabled)

    def set_pen_value(self, value: int, filled: bool) -> None:
        self.pen_value = int(value)
        self.pen_filled = bool(filled)

    def paint(self, voxel_indices: Sequence[int] | np.ndarray) -> None:
        """Apply the current pen value at flat voxel indices (one undoable step)."""
        if self.bitmap is None or not self.enabled:
            return
        indices = np.asarray(voxel_indices, dtype=np.int64).reshape(-1)
        if indices.size == 0:
            return
        self._undo_bitmap = self.bitmap.copy()
        self.bitmap[indices] = self.pen_value

    def undo(self) -> bool:
        """Restore the bitmap as it was before the last stroke."""
        if self.bitmap is None or self._undo_bitmap is None:
            return False
        self.bitmap = self._undo_bitmap
        self._undo_bitmap = None
        return True

    # ------------------------------------------------------------------ #
    # Serialisation
    # ------------------------------------------------------------------ #
    def save_drawing(self) -> bytes:
        """
        Serialise the bitmap as a single-file NIfTI-1 image.

        The voxel payload starts after the 352-byte header region
        (348-byte header + 4-byte extension flag), in x-fastest order.
        """
        if self.bitmap is None or self.dims is None:
            raise ValueError("No drawing bitmap to save.")
        data = self.bitmap.reshape(self.dims, order="F")
        image = nib.Nifti1Image(data, self.affine)
        image.header.set_data_dtype(np.uint8)
        return image.to_bytes()
