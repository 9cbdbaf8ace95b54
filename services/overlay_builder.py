from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, List, Mapping, Optional

from config.constants import FALLBACK_COLORMAP, LABEL_INTENT_CODE, OVERLAY_SLOT
from models.model_catalog import ModelEntry
from models.scene_model import SceneModel
from models.view_state_model import ViewStateModel
from models.volume import ColormapLabel, Volume
from services.colormap_loader import ColormapLoader
from services.errors import ColormapError, PreconditionError
from services.label_reconciler import LabelHistogramEntry, label_histogram, reconcile


@dataclass
class OverlayBuild:
    """Overlay volume installed in slot 1 plus the statistics computed on the way."""

    volume: Volume
    histogram: List[LabelHistogramEntry]
    label_rows: List[str] = field(default_factory=list)
    missing_status: str = ""
    colormap_source: str = "named"


class OverlayBuilder:
    """Turns a raw predicted label buffer into a colormapped overlay volume."""

    def __init__(
        self,
        scene: SceneModel,
        view_state_model: ViewStateModel,
        colormap_loader: Optional[ColormapLoader] = None,
    ) -> None:
        self.logger = logging.getLogger(__name__)
        self.scene = scene
        self.view_state_model = view_state_model
        self.colormap_loader = colormap_loader or ColormapLoader()

    def build_overlay(
        self,
        raw_buffer: Any,
        options: Mapping[str, Any],
        model_entry: ModelEntry,
    ) -> OverlayBuild:
        base = self.scene.base
        if base is None:
            raise PreconditionError("No base volume to attach the segmentation to.")

        overlay = base.clone()
        overlay.zero_image()
        overlay.header.scl_inter = 0.0
        overlay.header.scl_slope = 1.0
        overlay.assign_labels(raw_buffer)
        overlay.name = f"{model_entry.model_name} segmentation"
        overlay.colormap_label = None

        histogram = label_histogram(overlay.img)
        build = OverlayBuild(volume=overlay, histogram=histogram)

        if model_entry.colormap_path:
            try:
                cmap = self.colormap_loader.load(model_entry.colormap_path, str(options.get("root_url", "")))
            except ColormapError as exc:
                self.logger.error("Error loading colormap: %s", exc)
                self._apply_named_colormap(overlay, options)
            else:
                rows, missing = reconcile(histogram, cmap.labels)
                overlay.set_colormap_label(ColormapLabel(R=cmap.R, G=cmap.G, B=cmap.B, labels=rows))
                overlay.header.intent_code = LABEL_INTENT_CODE
                build.label_rows = rows
                build.missing_status = missing
                build.colormap_source = "custom"
        else:
            self._apply_named_colormap(overlay, options)

        overlay.opacity = self.view_state_model.overlay_alpha
        self.scene.close_overlays()
        self.scene.add_volume(overlay)
        self.scene.set_opacity(OVERLAY_SLOT, self.view_state_model.overlay_alpha)

        self.logger.info(
            "Overlay installé | dims=%s | labels=%s | colormap=%s",
            overlay.dims,
            [entry.value for entry in histogram],
            overlay.colormap if build.colormap_source == "named" else model_entry.colormap_path,
        )
        return build

    def _apply_named_colormap(self, overlay: Volume, options: Mapping[str, Any]) -> None:
        colormap = str(options.get("atlas_selected_color_table") or "").lower()
        if not self.scene.colormap_registry.is_recognized(colormap):
            colormap = FALLBACK_COLORMAP
        overlay.colormap = colormap
