"""Applique les corrections manuelles (ajout / retrait / annulation) sur l'overlay."""

from __future__ import annotations

import logging
from enum import IntEnum

import numpy as np

from config.constants import NIFTI_HEADER_BYTES
from models.scene_model import SceneModel
from services.errors import PreconditionError

NO_SEGMENTATION_MESSAGE = "No segmentation open (use the Segmentation pull down)"
NO_DRAWING_MESSAGE = "No drawing (hint: use the Draw pull down to select a pen)"
GEOMETRY_MISMATCH_MESSAGE = "Drawing does not match the segmentation grid, draw again."


class DrawAction(IntEnum):
    UNDO = 0
    APPEND = 1
    REMOVE = 2


def pen_settings(mode: int) -> tuple[bool, int, bool]:
    """Decode a pen selector value into (drawing enabled, pen value, filled)."""
    mode = int(mode)
    if mode < 0:
        return False, 0, False
    return True, mode & 7, mode > 7


class DrawEditService:
    """Reconciles the drawing bitmap with the overlay labels (single foreground label)."""

    def __init__(self) -> None:
        self.logger = logging.getLogger(__name__)

    def apply_edit(self, action: int, scene: SceneModel) -> None:
        action = DrawAction(int(action))
        overlay = scene.overlay
        if overlay is None:
            raise PreconditionError(NO_SEGMENTATION_MESSAGE)
        if not scene.drawing.has_bitmap:
            raise PreconditionError(NO_DRAWING_MESSAGE)

        if action is DrawAction.UNDO:
            scene.draw_undo()
            return

        draw = scene.drawing.save_drawing()
        nvox = overlay.voxel_count
        if scene.drawing.dims != tuple(overlay.dims) or len(draw) < NIFTI_HEADER_BYTES + nvox:
            scene.close_drawing()
            raise PreconditionError(GEOMETRY_MISMATCH_MESSAGE)
        drawn = np.frombuffer(draw, dtype=np.uint8, count=nvox, offset=NIFTI_HEADER_BYTES) > 0
        value = 1 if action is DrawAction.APPEND else 0
        overlay.img[drawn] = value
        self.logger.info(
            "Edit %s appliqué sur %d voxels", action.name.lower(), int(np.count_nonzero(drawn))
        )

        scene.close_drawing()
        scene.update_gl()
        scene.set_drawing_enabled(False)
