from __future__ import annotations

import logging

import numpy as np
import pytest

from models.model_catalog import ModelCatalog, ModelEntry
from models.scene_model import SceneModel
from models.view_state_model import ViewStateModel
from models.volume import Volume
from services.resampling import CONFORMED_AFFINE


def _sphere_volume(shape, radius, affine, dtype=np.uint8) -> Volume:
    x, y, z = np.ogrid[: shape[0], : shape[1], : shape[2]]
    cx, cy, cz = ((np.asarray(shape, dtype=np.float32) - 1) / 2.0).tolist()
    dist = np.sqrt((x - cx) ** 2 + (y - cy) ** 2 + (z - cz) ** 2).astype(np.float32)
    data = np.zeros(shape, dtype=np.float32)
    inside = dist < radius
    data[inside] = 40.0 + 200.0 * (1.0 - dist[inside] / radius)
    return Volume.from_array(data.astype(dtype), affine=affine, name="sphere.nii.gz")


@pytest.fixture(scope="session")
def conformed_template() -> Volume:
    """256³ uint8 LIA volume with a bright sphere in the middle."""
    return _sphere_volume((256, 256, 256), radius=30, affine=CONFORMED_AFFINE.copy())


@pytest.fixture
def conformed_volume(conformed_template) -> Volume:
    return conformed_template.clone()


@pytest.fixture
def small_ras_volume() -> Volume:
    """Non-conformant volume: RAS axes, 2 mm voxels, float samples."""
    affine = np.diag([2.0, 2.0, 2.0, 1.0])
    return _sphere_volume((40, 48, 32), radius=12, affine=affine, dtype=np.float32)


@pytest.fixture
def scene() -> SceneModel:
    return SceneModel()


@pytest.fixture
def loaded_scene(scene, conformed_volume) -> SceneModel:
    scene.load_base(conformed_volume)
    return scene


@pytest.fixture
def view_state() -> ViewStateModel:
    return ViewStateModel()


@pytest.fixture
def catalog() -> ModelCatalog:
    return ModelCatalog.from_config()


@pytest.fixture
def no_colormap_entry(catalog) -> ModelEntry:
    return next(entry for entry in catalog if entry.colormap_path is None)


@pytest.fixture
def notifications():
    """Collects user-facing notifications."""
    return []


@pytest.fixture
def test_logger() -> logging.Logger:
    return logging.getLogger("tests")


class FakeContext:
    """Stands in for a worker process; the test drives its messages."""

    def __init__(self):
        self.payload = None
        self.on_message = None
        self.on_error = None
        self.terminated = False

    def start(self, payload, on_message, on_error):
        self.payload = payload
        self.on_message = on_message
        self.on_error = on_error

    def terminate(self):
        self.terminated = True


@pytest.fixture
def contexts():
    """Every FakeContext handed out by ``context_factory``."""
    return []


@pytest.fixture
def context_factory(contexts):
    def factory():
        ctx = FakeContext()
        contexts.append(ctx)
        return ctx

    return factory
