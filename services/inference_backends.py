"""
Fonctions d'inférence de référence et résolution des backends du catalogue.

Every backend follows the same contract::

    infer(options, model_entry, header, image, on_result, on_ui) -> None

``on_ui`` receives ``UiUpdate`` objects, ``on_result`` exactly one
``InferenceResult``. Backends run identically in-process or inside a worker
process, so they must be importable module-level functions.
"""

from __future__ import annotations

import importlib
import logging
import time
from typing import Any, Callable, Dict, Mapping

import numpy as np

from models.messages import InferenceResult, UiUpdate
from models.model_catalog import ModelEntry

logger = logging.getLogger(__name__)

InferenceFn = Callable[..., None]
ResultCallback = Callable[[InferenceResult], None]
UiCallback = Callable[[UiUpdate], None]


def resolve_inference(model_entry: ModelEntry) -> InferenceFn:
    """Import the ``"module:function"`` target named by the catalog entry."""
    target = model_entry.inference
    module_name, sep, attr = target.partition(":")
    if not sep or not module_name or not attr:
        raise ValueError(f"Invalid inference target {target!r}, expected 'module:function'.")
    module = importlib.import_module(module_name)
    fn = getattr(module, attr, None)
    if not callable(fn):
        raise ValueError(f"Inference target {target!r} is not callable.")
    return fn


def _volume_from(header: Mapping[str, Any], image: np.ndarray) -> np.ndarray:
    dims = header["dims"]
    shape = (int(dims[1]), int(dims[2]), int(dims[3]))
    return np.asarray(image).reshape(shape, order="F")


def _check_memory(options: Mapping[str, Any], image: np.ndarray, on_ui: UiCallback, factor: int = 8) -> None:
    # Estimation grossière : copies float32 intermédiaires.
    needed_mb = image.size * 4 * factor / (1024 ** 2)
    limit_mb = float(options.get("memory_limit_mb") or 0)
    if limit_mb and needed_mb > limit_mb:
        logger.warning("Estimated %.0f MB exceeds the %.0f MB budget", needed_mb, limit_mb)
        on_ui(UiUpdate(progress=float("nan")))


def _stats(model_entry: ModelEntry, started: float, volume: np.ndarray, labels: np.ndarray) -> Dict[str, Any]:
    return {
        "model": model_entry.model_name,
        "inferenceSeconds": round(time.perf_counter() - started, 3),
        "voxels": int(volume.size),
        "labels": int(labels.max()) + 1 if labels.size else 0,
        "Status": "OK",
    }


def otsu_threshold(values: np.ndarray, bins: int = 256) -> float:
    """Threshold maximising the between-class variance of ``values``."""
    hist, edges = np.histogram(values, bins=bins)
    hist = hist.astype(np.float64)
    centers = (edges[:-1] + edges[1:]) / 2.0
    weight_lo = np.cumsum(hist)
    weight_hi = weight_lo[-1] - weight_lo
    cum_mean = np.cumsum(hist * centers)
    mean_lo = np.divide(cum_mean, weight_lo, out=np.zeros_like(cum_mean), where=weight_lo > 0)
    mean_hi = np.divide(
        cum_mean[-1] - cum_mean, weight_hi, out=np.zeros_like(cum_mean), where=weight_hi > 0
    )
    variance = weight_lo * weight_hi * (mean_lo - mean_hi) ** 2
    return float(centers[int(np.argmax(variance))])


def otsu_mask(
    options: Mapping[str, Any],
    model_entry: ModelEntry,
    header: Mapping[str, Any],
    image: np.ndarray,
    on_result: ResultCallback,
    on_ui: UiCallback,
) -> None:
    """Binary foreground mask (labels 0/1) from an Otsu threshold."""
    started = time.perf_counter()
    volume = _volume_from(header, image)
    on_ui(UiUpdate(location_text=f"{model_entry.model_name}   thresholding", progress=0.1))
    _check_memory(options, image, on_ui, factor=2)

    threshold = otsu_threshold(volume.ravel())
    labels = (volume > threshold).astype(np.uint8)
    on_ui(UiUpdate(progress=0.9))

    on_ui(UiUpdate(stats=_stats(model_entry, started, volume, labels)))
    on_result(InferenceResult(image=labels.ravel(order="F"), options=dict(options), model_entry=model_entry))


def quantile_bands(
    options: Mapping[str, Any],
    model_entry: ModelEntry,
    header: Mapping[str, Any],
    image: np.ndarray,
    on_result: ResultCallback,
    on_ui: UiCallback,
) -> None:
    """
    Split non-zero voxels into ``n_classes`` intensity bands (labels 1..n).

    Zero voxels stay label 0.
    """
    n_classes = int(model_entry.inference_args.get("n_classes", 3))
    if n_classes < 1 or n_classes > 254:
        raise ValueError(f"n_classes must be in [1, 254], got {n_classes}")
    started = time.perf_counter()
    volume = _volume_from(header, image)
    on_ui(UiUpdate(location_text=f"{model_entry.model_name}   {n_classes} bands", progress=0.05))
    _check_memory(options, image, on_ui)

    labels = np.zeros(volume.shape, dtype=np.uint8)
    foreground = volume > 0
    values = volume[foreground].astype(np.float32)
    if values.size:
        edges = np.quantile(values, np.linspace(0.0, 1.0, n_classes + 1)[1:-1])
        on_ui(UiUpdate(progress=0.5))
        labels[foreground] = (np.searchsorted(edges, values, side="right") + 1).astype(np.uint8)
    on_ui(UiUpdate(progress=0.95))

    on_ui(UiUpdate(stats=_stats(model_entry, started, volume, labels)))
    on_result(InferenceResult(image=labels.ravel(order="F"), options=dict(options), model_entry=model_entry))
