"""Vérifie la géométrie du volume de base avant l'inférence."""

from __future__ import annotations

import logging
from typing import Callable, Optional

import numpy as np

from config.constants import CONFORMED_DIMS, CONFORMED_PERM_RAS, CONFORMED_VOXELS
from models.scene_model import SceneModel
from models.volume import Volume
from services.resampling import conform


class ConformanceService:
    """Ensures slot 0 holds a 256³ uint8 LIA volume, resampling it otherwise."""

    def __init__(self, conform_fn: Optional[Callable[[Volume], Volume]] = None) -> None:
        self.logger = logging.getLogger(__name__)
        self._conform = conform_fn or conform

    @staticmethod
    def is_conformant(volume: Volume) -> bool:
        return (
            tuple(volume.dims) == CONFORMED_DIMS
            and volume.img.dtype == np.uint8
            and volume.img.size == CONFORMED_VOXELS
            and tuple(volume.perm_ras) == CONFORMED_PERM_RAS
        )

    def ensure_conformed(self, scene: SceneModel) -> None:
        """Replace the base volume by its conformed version; no-op when already conformant."""
        volume = scene.base
        if volume is None:
            return
        if self.is_conformant(volume):
            return
        self.logger.info(
            "Volume non conforme | dims=%s | dtype=%s | perm_ras=%s",
            volume.dims,
            volume.img.dtype,
            volume.perm_ras,
        )
        conformed = self._conform(volume)
        scene.replace_base(conformed)
