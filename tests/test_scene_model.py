import numpy as np
import pytest

from config.constants import MEMORY_ISSUE, MEMORY_OK
from models.model_catalog import ModelCatalog
from models.view_state_model import ViewStateModel
from models.volume import Volume
from utils.colormaps import ColormapRegistry
from utils.slice_render import render_slice, stroke_indices


def _volume(shape=(6, 5, 4), value=10):
    return Volume.from_array(np.full(shape, value, dtype=np.uint8))


def test_slots_and_render_notifications(scene):
    calls = []
    scene.add_render_listener(lambda: calls.append(1))
    base, overlay = _volume(), _volume(value=1)

    scene.load_base(base)
    scene.add_volume(overlay)
    assert scene.base is base and scene.overlay is overlay

    scene.close_overlays()
    assert scene.overlay is None
    assert len(calls) >= 3


def test_remove_unknown_volume_raises(scene):
    scene.load_base(_volume())
    with pytest.raises(ValueError):
        scene.remove_volume(_volume())


def test_replace_base_keeps_slot_zero(scene):
    scene.load_base(_volume())
    scene.add_volume(_volume(value=1))
    replacement = _volume(value=3)

    scene.replace_base(replacement)

    assert scene.volumes[0] is replacement
    assert len(scene.volumes) == 2


def test_opacity_is_clamped(scene):
    scene.load_base(_volume())
    scene.set_opacity(0, 3.0)
    assert scene.base.opacity == 1.0
    scene.set_opacity(1, 0.5)


def test_failing_render_listener_is_logged(scene, caplog):
    def broken():
        raise RuntimeError("paint failed")

    scene.add_render_listener(broken)
    scene.update_gl()
    assert "Render listener failed" in caplog.text


def test_drawing_paint_and_single_undo(scene):
    scene.load_base(_volume())
    scene.set_drawing_enabled(True)
    scene.set_pen_value(3, False)

    scene.drawing.paint([0, 1])
    scene.drawing.paint([2])
    scene.draw_undo()
    scene.draw_undo()

    assert scene.drawing.bitmap[:3].tolist() == [3, 3, 0]


def test_paint_ignored_when_disabled(scene):
    scene.load_base(_volume())
    scene.set_drawing_enabled(True)
    scene.drawing.set_enabled(False)
    scene.drawing.paint([0])
    assert scene.drawing.bitmap.max() == 0


def test_render_slice_blends_overlay(scene):
    scene.load_base(Volume.from_array(np.arange(6 * 5 * 4, dtype=np.uint8).reshape(6, 5, 4)))
    labels = np.zeros((6, 5, 4), dtype=np.uint8)
    labels[2, 3, 1] = 1
    overlay = Volume.from_array(labels, colormap="actc", opacity=1.0)
    scene.add_volume(overlay)

    without = render_slice(SceneWithout(scene), 1)
    rgb = render_slice(scene, 1)

    assert rgb.shape == (5, 6, 3)
    assert rgb.dtype == np.uint8
    assert not np.array_equal(rgb[3, 2], without[3, 2])
    np.testing.assert_array_equal(rgb[0, 0], without[0, 0])


class SceneWithout:
    """Read-only view of a scene without its overlay."""

    def __init__(self, scene):
        self.base = scene.base
        self.overlay = None
        self.drawing = scene.drawing
        self.colormap_registry = scene.colormap_registry


def test_render_without_base_is_none(scene):
    assert render_slice(scene) is None


def test_stroke_indices_line_and_fill():
    dims = (10, 10, 3)
    line = stroke_indices(dims, 2, [(1, 1), (4, 1)])
    assert sorted(line.tolist()) == [x + 10 + 200 for x in range(1, 5)]

    square = [(2, 2), (6, 2), (6, 6), (2, 6)]
    filled = stroke_indices(dims, 0, square, filled=True)
    assert (4 + 4 * 10) in filled.tolist()
    assert len(filled) == 25


def test_colormap_registry_builtins():
    registry = ColormapRegistry(extra_names=())
    assert registry.is_recognized("freesurfer")
    assert registry.is_recognized("actc")
    assert not registry.is_recognized("")
    assert registry.lut("gray").shape == (256, 3)
    assert registry.lut("unknown-map")[255].tolist() == [255, 255, 255]


def test_view_state_defaults_and_clamping():
    state = ViewStateModel()
    assert state.overlay_alpha == pytest.approx(128 / 255)
    state.set_overlay_opacity(999)
    assert state.overlay_opacity == 255
    state.set_progress(-5)
    assert state.progress == 0
    state.set_memory_issue()
    assert state.memory_status == MEMORY_ISSUE
    state.set_memory_ok()
    assert state.memory_status == MEMORY_OK


def test_catalog_resolution():
    catalog = ModelCatalog.from_config()
    assert len(catalog) == 4
    assert catalog.resolve("0").model_name == catalog.names()[0]
    assert catalog.resolve(-1) is None
    assert catalog.resolve(len(catalog)) is None
    assert all(entry.inference.startswith("services.inference_backends:") for entry in catalog)
