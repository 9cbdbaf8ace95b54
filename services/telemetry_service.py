"""Enrichit les statistiques d'inférence avec l'environnement local (diagnostics)."""

from __future__ import annotations

import logging
import os
import platform
import sys
from typing import Any, Dict, Mapping

import numpy as np
import psutil

from config.constants import DIAGNOSTICS_BANNER

logger = logging.getLogger(__name__)


def _gigabytes(value: float) -> str:
    return f"{value / (1024 ** 3):.1f}"


def local_system_details(stats: Mapping[str, Any]) -> Dict[str, Any]:
    """Return ``stats`` followed by host details (OS, Python, CPU, memory)."""
    details: Dict[str, Any] = dict(stats)
    details["platform"] = platform.platform()
    details["python"] = sys.version.split()[0]
    details["numpy"] = np.__version__
    details["cpuCores"] = os.cpu_count() or 0
    try:
        memory = psutil.virtual_memory()
        details["memoryTotalGB"] = _gigabytes(memory.total)
        details["memoryAvailableGB"] = _gigabytes(memory.available)
        details["processRssGB"] = _gigabytes(psutil.Process().memory_info().rss)
    except (psutil.Error, OSError) as exc:
        logger.warning("Unable to query memory usage: %s", exc)
    return details


def format_diagnostics(details: Mapping[str, Any]) -> str:
    """Banner line followed by one ``key: value`` line per entry."""
    text = DIAGNOSTICS_BANNER
    for key, value in details.items():
        text += f"{key}: {value}\n"
    return text


class TelemetryService:
    """Builds the diagnostics snapshot from an inference stats payload."""

    def build_diagnostics(self, stats: Mapping[str, Any]) -> str:
        return format_diagnostics(local_system_details(stats))
