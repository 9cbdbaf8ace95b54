"""Messages échangés entre une fonction d'inférence et le dispatcher (canal typé)."""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, field
from typing import Any, Dict, Literal, Optional, Union

import numpy as np

from models.model_catalog import ModelEntry


@dataclass
class UiUpdate:
    """
    Progress / status update emitted by an inference function.

    Every field is optional; ``None`` means "absent, leave as is":
      - location_text: status lines separated by three spaces
      - progress: fraction in [0, 1]; NaN signals memory pressure
      - modal_message: fatal message shown in a blocking dialog
      - stats: telemetry payload (dict or JSON-encoded object)
    """

    location_text: Optional[str] = None
    progress: Optional[float] = None
    modal_message: Optional[str] = None
    stats: Optional[Union[Dict[str, Any], str]] = None
    kind: Literal["ui"] = field(default="ui", init=False)

    @property
    def is_memory_pressure(self) -> bool:
        return self.progress is not None and math.isnan(self.progress)

    def stats_dict(self) -> Dict[str, Any]:
        """Return stats as a dict; a JSON string is decoded, anything empty gives {}."""
        if not self.stats:
            return {}
        if isinstance(self.stats, str):
            decoded = json.loads(self.stats)
            if not isinstance(decoded, dict):
                raise ValueError("Stats payload must encode a JSON object.")
            return decoded
        return dict(self.stats)


@dataclass
class InferenceResult:
    """Terminal success message: the raw predicted labels plus echoed inputs."""

    image: np.ndarray
    options: Dict[str, Any]
    model_entry: ModelEntry
    kind: Literal["result"] = field(default="result", init=False)


@dataclass
class InferenceFailure:
    """Terminal failure message raised inside an isolated context."""

    message: str
    traceback: str = ""
    kind: Literal["error"] = field(default="error", init=False)


ChannelMessage = Union[UiUpdate, InferenceResult, InferenceFailure]
