from __future__ import annotations

import logging
from typing import Callable, List, Optional

from config.constants import BASE_SLOT, CLIP_PLANE_OFF, DEFAULT_DRAG_MODE, OVERLAY_SLOT
from models.drawing_model import DrawingModel
from models.volume import Volume
from utils.colormaps import ColormapRegistry


class SceneModel:
    """
    Volumes shown together: slot 0 is the base image, slot 1 the overlay.

    Also owns the drawing bitmap, clip plane, drag mode and the registry of
    named colormaps. Views subscribe to ``add_render_listener`` to be told
    when something needs repainting.
    """

    def __init__(self, colormaps: Optional[ColormapRegistry] = None) -> None:
        self.logger = logging.getLogger(__name__)
        self.volumes: List[Volume] = []
        self.drawing = DrawingModel()
        self.colormap_registry = colormaps or ColormapRegistry()
        self.clip_plane: List[float] = list(CLIP_PLANE_OFF)
        self.drag_mode: int = DEFAULT_DRAG_MODE
        self._render_listeners: List[Callable[[], None]] = []

    # ------------------------------------------------------------------ #
    # Slots
    # ------------------------------------------------------------------ #
    @property
    def base(self) -> Optional[Volume]:
        return self.volumes[BASE_SLOT] if self.volumes else None

    @property
    def overlay(self) -> Optional[Volume]:
        return self.volumes[OVERLAY_SLOT] if len(self.volumes) > OVERLAY_SLOT else None

    def load_base(self, volume: Volume) -> None:
        """Replace everything with a freshly loaded base volume."""
        self.volumes = [volume]
        self.drawing.close()
        self.drawing.set_enabled(False)
        self.update_gl()

    def add_volume(self, volume: Volume) -> None:
        self.volumes.append(volume)
        self.update_gl()

    def remove_volume(self, volume: Volume) -> None:
        for idx, existing in enumerate(self.volumes):
            if existing is volume:
                del self.volumes[idx]
                break
        else:
            raise ValueError("Volume is not part of the scene.")
        self.update_gl()

    def replace_base(self, volume: Volume) -> None:
        """Remove the current base and install ``volume`` in slot 0."""
        current = self.base
        if current is not None:
            self.remove_volume(current)
        self.volumes.insert(BASE_SLOT, volume)
        self._fit_drawing(volume)
        self.update_gl()

    def close_overlays(self) -> None:
        """Remove every volume except the base."""
        while len(self.volumes) > 1:
            self.remove_volume(self.volumes[OVERLAY_SLOT])

    # ------------------------------------------------------------------ #
    # Display state
    # ------------------------------------------------------------------ #
    def set_opacity(self, slot: int, opacity: float) -> None:
        if slot >= len(self.volumes):
            return
        self.volumes[slot].opacity = max(0.0, min(1.0, float(opacity)))
        self.update_gl()

    def set_clip_plane(self, plane: List[float]) -> None:
        self.clip_plane = [float(v) for v in plane]
        self.update_gl()

    def set_drag_mode(self, mode: int) -> None:
        self.drag_mode = int(mode)

    # ------------------------------------------------------------------ #
    # Drawing
    # ------------------------------------------------------------------ #
    def set_drawing_enabled(self, enabled: bool) -> None:
        """Enable the pen; a blank bitmap is created on the base geometry if needed."""
        base = self.base
        if enabled and base is not None:
            self.drawing.open(base.dims, base.affine)
        self.drawing.set_enabled(enabled)

    def set_pen_value(self, value: int, filled: bool) -> None:
        self.drawing.set_pen_value(value, filled)

    def close_drawing(self) -> None:
        self.drawing.close()
        self.update_gl()

    def draw_undo(self) -> None:
        if self.drawing.undo():
            self.update_gl()

    def _fit_drawing(self, volume: Volume) -> None:
        # Bitmap must stay aligned with slot 0; strokes on the old geometry are dropped.
        self.drawing.close()
        if self.drawing.enabled:
            self.drawing.open(volume.dims, volume.affine)

    # ------------------------------------------------------------------ #
    # Render notifications
    # ------------------------------------------------------------------ #
    def add_render_listener(self, listener: Callable[[], None]) -> None:
        self._render_listeners.append(listener)

    def update_gl(self) -> None:
        for listener in list(self._render_listeners):
            try:
                listener()
            except Exception:
                self.logger.exception("Render listener failed")
