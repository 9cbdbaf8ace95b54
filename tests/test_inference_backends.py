import math

import numpy as np
import pytest

from config.viewer_options import clone_viewer_options
from models.messages import InferenceFailure, InferenceResult, UiUpdate
from models.model_catalog import ModelEntry
from services.inference_backends import otsu_mask, otsu_threshold, quantile_bands, resolve_inference
from services.inference_worker import worker_main


@pytest.fixture(autouse=True)
def _keep_test_logging(monkeypatch):
    monkeypatch.setattr("services.inference_worker.configure_logging", lambda *a, **k: None)


class ListChannel:
    def __init__(self):
        self.messages = []

    def put(self, message):
        self.messages.append(message)


def _header(shape):
    return {"datatype_code": 2, "dims": [3, *shape, 1, 1, 1, 1]}


def _blob(shape=(16, 12, 10)):
    data = np.zeros(shape, dtype=np.uint8)
    data[4:12, 3:9, 2:8] = 200
    data[6:10, 5:7, 4:6] = 90
    return data


def _run(fn, entry, data, options=None):
    results, updates = [], []
    fn(options or clone_viewer_options(), entry, _header(data.shape), data.ravel(order="F"),
       results.append, updates.append)
    return results, updates


def test_resolve_inference_from_catalog_path():
    entry = ModelEntry(id=1, model_name="m", inference="services.inference_backends:otsu_mask")
    assert resolve_inference(entry) is otsu_mask


@pytest.mark.parametrize("target", ["no_colon", "services.inference_backends:missing", ":x"])
def test_resolve_inference_rejects_bad_targets(target):
    with pytest.raises(ValueError):
        resolve_inference(ModelEntry(id=1, model_name="m", inference=target))


def test_otsu_threshold_separates_modes():
    values = np.concatenate([np.full(100, 10.0), np.full(100, 200.0)])
    assert 10.0 < otsu_threshold(values) < 200.0


def test_otsu_mask_is_binary_and_aligned():
    data = _blob()
    entry = ModelEntry(id=2, model_name="otsu", inference="services.inference_backends:otsu_mask")

    results, updates = _run(otsu_mask, entry, data)

    assert len(results) == 1
    labels = results[0].image.reshape(data.shape, order="F")
    assert set(np.unique(labels)) == {0, 1}
    assert labels[8, 6, 3] == 1
    assert labels[0, 0, 0] == 0
    assert results[0].model_entry is entry
    assert updates[-1].stats["Status"] == "OK"


def test_quantile_bands_label_range():
    data = _blob()
    entry = ModelEntry(id=1, model_name="bands", inference="x:y", inference_args={"n_classes": 2})

    results, _ = _run(quantile_bands, entry, data)

    labels = results[0].image
    assert labels.dtype == np.uint8
    assert set(np.unique(labels)) <= {0, 1, 2}
    assert labels[data.ravel(order="F") == 0].max() == 0


def test_memory_budget_emits_nan_progress():
    data = _blob()
    entry = ModelEntry(id=2, model_name="otsu", inference="x:y")
    options = clone_viewer_options()
    options["memory_limit_mb"] = 0.001

    _, updates = _run(otsu_mask, entry, data, options)

    assert any(u.progress is not None and math.isnan(u.progress) for u in updates)


def test_worker_main_posts_messages_in_order():
    data = _blob()
    entry = ModelEntry(id=2, model_name="otsu", inference="services.inference_backends:otsu_mask")
    channel = ListChannel()

    worker_main(channel, {
        "options": clone_viewer_options(),
        "model_entry": entry,
        "header": _header(data.shape),
        "image": data.ravel(order="F"),
    })

    assert all(isinstance(m, UiUpdate) for m in channel.messages[:-1])
    assert isinstance(channel.messages[-1], InferenceResult)


def test_worker_main_turns_exceptions_into_failures():
    entry = ModelEntry(id=1, model_name="bad", inference="services.inference_backends:quantile_bands",
                       inference_args={"n_classes": 0})
    channel = ListChannel()
    data = _blob()

    worker_main(channel, {
        "options": clone_viewer_options(),
        "model_entry": entry,
        "header": _header(data.shape),
        "image": data.ravel(order="F"),
    })

    failure = channel.messages[-1]
    assert isinstance(failure, InferenceFailure)
    assert "n_classes" in failure.message
    assert "Traceback" in failure.traceback
