import numpy as np
import pytest

from config.constants import FALLBACK_COLORMAP, LABEL_INTENT_CODE, OVERLAY_SLOT
from config.viewer_options import clone_viewer_options, default_serving_origin
from models.model_catalog import ModelEntry
from services.errors import ColormapError, PreconditionError
from services.label_reconciler import MISMATCH_PREFIX
from services.overlay_builder import OverlayBuilder


def _options(**overrides):
    options = clone_viewer_options()
    options["root_url"] = default_serving_origin()
    options.update(overrides)
    return options


def _entry(colormap_path=None):
    return ModelEntry(id=9, model_name="test", inference="x:y", colormap_path=colormap_path)


def _labels_like(volume, values=(0, 1, 3)):
    labels = np.zeros(volume.voxel_count, dtype=np.uint8)
    chunk = volume.voxel_count // 10
    for i, value in enumerate(values):
        labels[i * chunk:(i + 1) * chunk] = value
    return labels


class _FailingLoader:
    def load(self, path, root_url=""):
        raise ColormapError("network down")


def test_overlay_copies_base_geometry(loaded_scene, view_state):
    base = loaded_scene.base
    labels = _labels_like(base)

    build = OverlayBuilder(loaded_scene, view_state).build_overlay(labels, _options(), _entry())

    overlay = loaded_scene.volumes[OVERLAY_SLOT]
    assert overlay is build.volume
    assert overlay is not base
    assert overlay.dims == base.dims
    assert overlay.perm_ras == base.perm_ras
    assert overlay.img.size == base.voxel_count
    assert overlay.header.scl_inter == 0.0
    assert overlay.header.scl_slope == 1.0
    np.testing.assert_array_equal(overlay.img, labels)
    assert sum(entry.count for entry in build.histogram) == base.voxel_count


def test_raw_buffer_is_copied(loaded_scene, view_state):
    labels = _labels_like(loaded_scene.base)
    build = OverlayBuilder(loaded_scene, view_state).build_overlay(labels, _options(), _entry())

    labels[:] = 7
    assert build.volume.img.max() == 3


def test_named_colormap_from_atlas_option(loaded_scene, view_state):
    build = OverlayBuilder(loaded_scene, view_state).build_overlay(
        _labels_like(loaded_scene.base), _options(atlas_selected_color_table="FreeSurfer"), _entry()
    )
    assert build.volume.colormap == "freesurfer"
    assert build.volume.opacity == pytest.approx(128 / 255)


def test_unknown_atlas_falls_back(loaded_scene, view_state):
    build = OverlayBuilder(loaded_scene, view_state).build_overlay(
        _labels_like(loaded_scene.base), _options(atlas_selected_color_table="NoSuchTable"), _entry()
    )
    assert build.volume.colormap == FALLBACK_COLORMAP


def test_custom_colormap_reconciles_labels(loaded_scene, view_state):
    build = OverlayBuilder(loaded_scene, view_state).build_overlay(
        _labels_like(loaded_scene.base),
        _options(),
        _entry("./colormaps/colormap_tissue_gwm.json"),
    )

    overlay = build.volume
    assert build.colormap_source == "custom"
    assert overlay.header.intent_code == LABEL_INTENT_CODE
    assert overlay.colormap_label.labels == build.label_rows
    assert build.label_rows[2] == "Gray Matter   Missing"
    assert build.label_rows[1].startswith("CSF   ")
    assert build.label_rows[1].endswith(" mm3")
    assert build.missing_status == MISMATCH_PREFIX + "Gray Matter, "


def test_colormap_failure_uses_recognized_fallback(loaded_scene, view_state):
    builder = OverlayBuilder(loaded_scene, view_state, colormap_loader=_FailingLoader())

    build = builder.build_overlay(
        _labels_like(loaded_scene.base), _options(), _entry("./colormaps/colormap_tissue_gwm.json")
    )

    assert build.colormap_source == "named"
    assert loaded_scene.colormap_registry.is_recognized(build.volume.colormap)
    assert build.volume.colormap_label is None


def test_previous_overlay_is_replaced(loaded_scene, view_state):
    builder = OverlayBuilder(loaded_scene, view_state)
    builder.build_overlay(_labels_like(loaded_scene.base), _options(), _entry())
    builder.build_overlay(_labels_like(loaded_scene.base, (0, 2)), _options(), _entry())

    assert len(loaded_scene.volumes) == 2
    assert loaded_scene.overlay.img.max() == 2


def test_requires_base_volume(scene, view_state):
    with pytest.raises(PreconditionError):
        OverlayBuilder(scene, view_state).build_overlay(b"", _options(), _entry())


def test_length_mismatch_is_rejected(loaded_scene, view_state):
    with pytest.raises(ValueError):
        OverlayBuilder(loaded_scene, view_state).build_overlay(
            np.zeros(10, dtype=np.uint8), _options(), _entry()
        )
