from typing import List, Optional, Tuple

from config.constants import (
    DEFAULT_BACKGROUND_OPACITY,
    DEFAULT_DRAG_MODE,
    DEFAULT_LOCATION_LINE,
    DEFAULT_OVERLAY_OPACITY,
    MEMORY_ISSUE,
    MEMORY_OK,
)


class ViewStateModel:
    """
    Stores UI-related state: status lines, progress, memory indicator,
    opacities, pen / draw-action selectors, worker flag, model selection.
    Modèle pur, sans UI ni Qt.
    """

    def __init__(self) -> None:

        # --- Status bar ---
        self.location_lines: List[str] = [DEFAULT_LOCATION_LINE]
        self.progress: int = 0
        self.memory_status: Tuple[str, str] = MEMORY_OK
        self.is_running: bool = False

        # --- Overlay & Display ---
        self.overlay_opacity: int = DEFAULT_OVERLAY_OPACITY
        self.background_opacity: int = DEFAULT_BACKGROUND_OPACITY
        self.clip_plane_enabled: bool = False
        self.drag_mode: int = DEFAULT_DRAG_MODE

        # --- Tools / Interaction ---
        self.pen_mode: int = -1
        self.draw_action: Optional[int] = None

        # --- Inference ---
        self.use_worker: bool = False
        self.selected_model_index: Optional[int] = None
        self.model_warning: str = ""

    # ------------------------------------------------------------------ #
    # Status
    # ------------------------------------------------------------------ #
    def set_location_lines(self, lines: List[str]) -> None:
        self.location_lines = list(lines) if lines else [DEFAULT_LOCATION_LINE]

    def set_progress(self, percent: int) -> None:
        self.progress = max(0, min(100, int(percent)))

    def set_memory_issue(self) -> None:
        self.memory_status = MEMORY_ISSUE

    def set_memory_ok(self) -> None:
        if self.memory_status != MEMORY_OK:
            self.memory_status = MEMORY_OK

    def set_running(self, running: bool) -> None:
        self.is_running = bool(running)

    # ------------------------------------------------------------------ #
    # Display
    # ------------------------------------------------------------------ #
    @staticmethod
    def _clamp_opacity(value: int) -> int:
        return max(0, min(255, int(value)))

    def set_overlay_opacity(self, value: int) -> None:
        self.overlay_opacity = self._clamp_opacity(value)

    def set_background_opacity(self, value: int) -> None:
        self.background_opacity = self._clamp_opacity(value)

    @property
    def overlay_alpha(self) -> float:
        return self.overlay_opacity / 255.0

    @property
    def background_alpha(self) -> float:
        return self.background_opacity / 255.0

    def set_clip_plane_enabled(self, enabled: bool) -> None:
        self.clip_plane_enabled = bool(enabled)

    def set_drag_mode(self, mode: int) -> None:
        self.drag_mode = int(mode)

    # ------------------------------------------------------------------ #
    # Tools
    # ------------------------------------------------------------------ #
    def set_pen_mode(self, mode: int) -> None:
        self.pen_mode = int(mode)

    def set_draw_action(self, action: Optional[int]) -> None:
        self.draw_action = None if action is None else int(action)

    def clear_draw_action(self) -> None:
        self.draw_action = None

    # ------------------------------------------------------------------ #
    # Inference
    # ------------------------------------------------------------------ #
    def set_use_worker(self, enabled: bool) -> None:
        self.use_worker = bool(enabled)

    def set_selected_model(self, index: Optional[int], warning: Optional[str] = None) -> None:
        self.selected_model_index = None if index is None else int(index)
        self.model_warning = warning or ""
