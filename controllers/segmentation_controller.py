"""Controller de la segmentation : relie sélecteurs, dispatcher, éditions et I/O."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Optional

from config.constants import BASE_SLOT, CLIP_PLANE_OFF, CLIP_PLANE_ON, OVERLAY_SLOT
from models.model_catalog import ModelCatalog
from models.scene_model import SceneModel
from models.view_state_model import ViewStateModel
from services.conformance_service import ConformanceService
from services.draw_edit_service import DrawEditService, pen_settings
from services.errors import PreconditionError
from services.inference_dispatcher import InferenceDispatcher
from services.overlay_builder import OverlayBuild, OverlayBuilder
from services.ui_callback_normalizer import UiCallbackNormalizer
from services.volume_io import LOAD_ERROR_MESSAGE, VolumeIO
from services.worker_context import supports_isolated_context
from utils.slice_render import stroke_indices

NO_SEGMENTATION_TO_SAVE = "No segmentation available to save."


class SegmentationController:
    """
    Owns the engine objects and exposes one handler per user interaction.

    No Qt here: the front end passes ``notify`` (blocking message),
    ``invoke`` (run a callable on the UI thread) and ``on_refresh``
    (repaint labels / progress / slice view).
    """

    def __init__(
        self,
        *,
        notify: Callable[[str], None],
        logger: logging.Logger,
        invoke: Optional[Callable[[Callable[[], None]], None]] = None,
        on_refresh: Optional[Callable[[], None]] = None,
        scene: Optional[SceneModel] = None,
        view_state_model: Optional[ViewStateModel] = None,
        catalog: Optional[ModelCatalog] = None,
        volume_io: Optional[VolumeIO] = None,
        use_worker: Optional[bool] = None,
        **dispatcher_kwargs: Any,
    ) -> None:
        self.logger = logger
        self.notify = notify
        self.on_refresh = on_refresh
        self.scene = scene or SceneModel()
        self.view_state_model = view_state_model or ViewStateModel()
        self.catalog = catalog or ModelCatalog.from_config()
        self.volume_io = volume_io or VolumeIO()
        self.draw_edit_service = DrawEditService()

        if use_worker is None:
            use_worker = supports_isolated_context()
        self.view_state_model.set_use_worker(use_worker)

        self.dispatcher = InferenceDispatcher(
            scene=self.scene,
            view_state_model=self.view_state_model,
            catalog=self.catalog,
            conformance_service=ConformanceService(),
            overlay_builder=OverlayBuilder(self.scene, self.view_state_model),
            ui_normalizer=UiCallbackNormalizer(self.view_state_model, notify),
            notify=notify,
            invoke=invoke,
            on_overlay_ready=self._on_overlay_ready,
            on_state_changed=self._refresh,
            logger=logger,
            **dispatcher_kwargs,
        )

    # ------------------------------------------------------------------ #
    # Inference
    # ------------------------------------------------------------------ #
    def on_model_selected(self, index: Any) -> None:
        """Sélection d'un modèle : affiche son avertissement puis lance l'inférence."""
        entry = self.catalog.resolve(index)
        if entry is None:
            self.view_state_model.set_selected_model(None)
            self._refresh()
            return
        self.view_state_model.set_selected_model(int(index), entry.warning)
        self._refresh()
        self.dispatcher.run_segmentation(index)

    def on_worker_toggled(self, enabled: bool) -> None:
        self.view_state_model.set_use_worker(enabled)
        index = self.view_state_model.selected_model_index
        if index is not None:
            self.dispatcher.run_segmentation(index)

    def diagnostics(self) -> Optional[str]:
        """Diagnostics of the last run, or None (after notifying) when there are none."""
        try:
            return self.dispatcher.diagnostics_report()
        except PreconditionError as exc:
            self.notify(str(exc))
            return None

    # ------------------------------------------------------------------ #
    # Drawing
    # ------------------------------------------------------------------ #
    def on_pen_mode_changed(self, mode: int) -> None:
        enabled, value, filled = pen_settings(mode)
        self.view_state_model.set_pen_mode(mode)
        self.scene.set_drawing_enabled(enabled)
        if enabled:
            self.scene.set_pen_value(value, filled)

    def on_pen_stroke(self, z: int, points: list[tuple[int, int]]) -> None:
        """Paint a stroke drawn on slice ``z`` into the drawing bitmap."""
        drawing = self.scene.drawing
        if not drawing.enabled or drawing.dims is None or not points:
            return
        drawing.paint(stroke_indices(drawing.dims, z, points, filled=drawing.pen_filled))
        self.scene.update_gl()

    def on_draw_action(self, action: int) -> None:
        self.view_state_model.set_draw_action(action)
        try:
            if self.dispatcher.is_running:
                raise PreconditionError("Segmentation is running, wait for it to finish before editing.")
            self.draw_edit_service.apply_edit(action, self.scene)
        except PreconditionError as exc:
            self.view_state_model.clear_draw_action()
            self.notify(str(exc))
            self._refresh()
            return
        self.view_state_model.set_pen_mode(-1)
        self.view_state_model.clear_draw_action()
        self._refresh()

    # ------------------------------------------------------------------ #
    # Display
    # ------------------------------------------------------------------ #
    def on_overlay_opacity_changed(self, value: int) -> None:
        self.view_state_model.set_overlay_opacity(value)
        self.scene.set_opacity(OVERLAY_SLOT, self.view_state_model.overlay_alpha)

    def on_background_opacity_changed(self, value: int) -> None:
        self.view_state_model.set_background_opacity(value)
        self.scene.set_opacity(BASE_SLOT, self.view_state_model.background_alpha)

    def on_clip_plane_toggled(self, enabled: bool) -> None:
        self.view_state_model.set_clip_plane_enabled(enabled)
        self.scene.set_clip_plane(CLIP_PLANE_ON if enabled else CLIP_PLANE_OFF)

    def on_drag_mode_changed(self, mode: int) -> None:
        self.view_state_model.set_drag_mode(mode)
        self.scene.set_drag_mode(mode)

    # ------------------------------------------------------------------ #
    # Files
    # ------------------------------------------------------------------ #
    def load_volume(self, path: str | Path) -> bool:
        try:
            volume = self.volume_io.load(path)
        except Exception as exc:
            self.logger.error("Chargement impossible (%s): %s", path, exc)
            self.notify(LOAD_ERROR_MESSAGE)
            return False
        # A run still computing on the previous scan must not land on this one.
        self.dispatcher.shutdown()
        self.scene.load_base(volume)
        self.view_state_model.set_pen_mode(-1)
        self.scene.set_opacity(BASE_SLOT, self.view_state_model.background_alpha)
        self.view_state_model.set_location_lines([Path(path).name])
        self._refresh()
        return True

    def save_segmentation(self, destination: str | Path) -> Optional[str]:
        overlay = self.scene.overlay
        if overlay is None:
            self.notify(NO_SEGMENTATION_TO_SAVE)
            return None
        return self.volume_io.save_volume(overlay, destination)

    def save_scene(self, destination: str | Path) -> str:
        return self.volume_io.save_scene(
            self.scene,
            destination,
            overlayOpacity=self.view_state_model.overlay_opacity,
            backgroundOpacity=self.view_state_model.background_opacity,
        )

    def shutdown(self) -> None:
        self.dispatcher.shutdown()

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    def _on_overlay_ready(self, build: OverlayBuild) -> None:
        self.logger.info("Segmentation prête (%d labels)", len(build.histogram))
        self._refresh()

    def _refresh(self) -> None:
        if self.on_refresh is not None:
            self.on_refresh()
