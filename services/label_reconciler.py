from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Sequence, Tuple

import numpy as np

from config.constants import DIAGNOSTICS_STATUS_OK

logger = logging.getLogger(__name__)

MISMATCH_PREFIX = "Failed to Predict Labels - "


@dataclass(frozen=True)
class LabelHistogramEntry:
    value: int
    count: int


def label_histogram(labels: np.ndarray) -> List[LabelHistogramEntry]:
    """Count voxels per distinct value in one pass over a uint8 buffer."""
    counts = np.bincount(np.asarray(labels, dtype=np.uint8).reshape(-1), minlength=0)
    return [LabelHistogramEntry(int(value), int(count)) for value, count in enumerate(counts) if count > 0]


def reconcile(
    histogram: Sequence[LabelHistogramEntry], label_names: Sequence[str]
) -> Tuple[List[str], str]:
    """
    Pair each expected label (by ordinal) with its voxel count.

    Returns the display rows (``"<label>   <n> mm3"`` or ``"<label>   Missing"``)
    and the missing-label status (``"<label>, "`` per absent label). A length
    mismatch is logged and prefixes the status, reconciliation still goes
    through every label index.
    """
    missing = ""
    if len(histogram) != len(label_names):
        missing = MISMATCH_PREFIX
        logger.error(
            "Mismatch in lengths: histogram has %d items, but labels has %d items.",
            len(histogram),
            len(label_names),
        )
    counts: Dict[int, int] = {entry.value: entry.count for entry in histogram}
    rows: List[str] = []
    for index, label in enumerate(label_names):
        if index in counts:
            rows.append(f"{label}   {counts[index]} mm3")
        else:
            rows.append(f"{label}   Missing")
            missing += f"{label}, "
    return rows, missing


def splice_missing_status(diagnostics: str, missing_status: str) -> str:
    """Replace the generic OK marker by the enumerated missing labels."""
    missing = missing_status.strip()
    if not missing:
        return diagnostics
    return diagnostics.replace(DIAGNOSTICS_STATUS_OK, f"Status: {missing[:-1]}")
