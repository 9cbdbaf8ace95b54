from __future__ import annotations

import logging
import math
from typing import Callable, Optional

from config.constants import LOCATION_DELIMITER
from models.messages import UiUpdate
from models.view_state_model import ViewStateModel
from services.telemetry_service import TelemetryService


def progress_percent(fraction: float) -> int:
    """Round half up, the way the progress bar expects (0.125 -> 13)."""
    return int(math.floor(fraction * 100.0 + 0.5))


class UiCallbackNormalizer:
    """Applies a ``UiUpdate`` to the view state; returns a new diagnostics snapshot when stats arrive."""

    def __init__(
        self,
        view_state_model: ViewStateModel,
        notify: Callable[[str], None],
        telemetry: Optional[TelemetryService] = None,
    ) -> None:
        self.logger = logging.getLogger(__name__)
        self.view_state_model = view_state_model
        self.notify = notify
        self.telemetry = telemetry or TelemetryService()

    def on_ui(self, update: UiUpdate) -> Optional[str]:
        if update.location_text:
            self.view_state_model.set_location_lines(update.location_text.split(LOCATION_DELIMITER))

        if update.progress is not None:
            if math.isnan(update.progress):
                self.logger.warning("Memory pressure reported by the inference backend")
                self.view_state_model.set_memory_issue()
            elif update.progress >= 0:
                self.view_state_model.set_progress(progress_percent(update.progress))
                self.view_state_model.set_memory_ok()

        if update.modal_message:
            self.notify(update.modal_message)

        if not update.stats:
            return None
        try:
            stats = update.stats_dict()
        except ValueError as exc:
            self.logger.error("Ignoring malformed stats payload: %s", exc)
            return None
        if not stats:
            return None
        return self.telemetry.build_diagnostics(stats)
