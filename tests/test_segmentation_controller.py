import json

import nibabel as nib
import numpy as np
import pytest

from config.constants import CLIP_PLANE_OFF, CLIP_PLANE_ON, OVERLAY_SLOT
from controllers.segmentation_controller import NO_SEGMENTATION_TO_SAVE, SegmentationController
from models.messages import InferenceResult
from services.draw_edit_service import NO_DRAWING_MESSAGE, NO_SEGMENTATION_MESSAGE, DrawAction
from services.volume_io import LOAD_ERROR_MESSAGE

OTSU_INDEX = 1
EXPERIMENTAL_INDEX = 3


@pytest.fixture
def refreshes():
    return []


@pytest.fixture
def controller(notifications, refreshes, test_logger):
    return SegmentationController(
        notify=notifications.append,
        logger=test_logger,
        on_refresh=lambda: refreshes.append(1),
        use_worker=False,
    )


@pytest.fixture
def nifti_path(tmp_path, conformed_volume):
    path = tmp_path / "t1.nii.gz"
    nib.save(conformed_volume.to_nifti(), str(path))
    return path


def test_end_to_end_without_colormap(controller, nifti_path, notifications):
    assert controller.load_volume(nifti_path)

    controller.on_model_selected(OTSU_INDEX)

    overlay = controller.scene.volumes[OVERLAY_SLOT]
    assert notifications == []
    assert overlay.colormap in ("freesurfer", "actc")
    assert overlay.opacity == pytest.approx(128 / 255)
    assert controller.view_state_model.progress == 100
    assert not controller.view_state_model.is_running


def test_selecting_model_shows_warning(controller, nifti_path):
    controller.load_volume(nifti_path)
    controller.on_model_selected(EXPERIMENTAL_INDEX)

    assert controller.view_state_model.selected_model_index == EXPERIMENTAL_INDEX
    assert "experimental" in controller.view_state_model.model_warning
    assert controller.scene.overlay.colormap_label is not None


def test_worker_toggle_reruns_selected_model(controller, nifti_path):
    runs = []
    controller.load_volume(nifti_path)
    controller.on_model_selected(OTSU_INDEX)
    controller.dispatcher.run_segmentation = runs.append

    controller.on_worker_toggled(False)

    assert runs == [OTSU_INDEX]
    assert controller.view_state_model.use_worker is False


def test_worker_toggle_without_model_does_nothing(controller):
    runs = []
    controller.dispatcher.run_segmentation = runs.append
    controller.on_worker_toggled(True)
    assert runs == []
    assert controller.view_state_model.use_worker is True


def test_diagnostics_copy(controller, nifti_path, notifications):
    assert controller.diagnostics() is None
    assert len(notifications) == 1

    controller.load_volume(nifti_path)
    controller.on_model_selected(OTSU_INDEX)
    report = controller.diagnostics()
    assert report.startswith(":: Diagnostics")
    assert "Status: OK" in report


def test_paint_then_append(controller, nifti_path):
    controller.load_volume(nifti_path)
    controller.on_model_selected(OTSU_INDEX)
    overlay = controller.scene.overlay
    background = int(np.flatnonzero(overlay.img == 0)[0])
    x = background % 256
    y = (background // 256) % 256
    z = background // (256 * 256)

    controller.on_pen_mode_changed(2)
    controller.on_pen_stroke(z, [(x, y)])
    controller.on_draw_action(DrawAction.APPEND)

    assert overlay.img[background] == 1
    assert controller.view_state_model.pen_mode == -1
    assert controller.view_state_model.draw_action is None
    assert not controller.scene.drawing.enabled


def test_draw_action_preconditions(controller, nifti_path, notifications):
    controller.load_volume(nifti_path)
    controller.on_draw_action(DrawAction.APPEND)
    assert notifications[-1] == NO_SEGMENTATION_MESSAGE

    controller.on_model_selected(OTSU_INDEX)
    controller.on_draw_action(DrawAction.REMOVE)
    assert notifications[-1] == NO_DRAWING_MESSAGE
    assert controller.view_state_model.draw_action is None


def test_display_settings(controller, nifti_path):
    controller.load_volume(nifti_path)
    controller.on_model_selected(OTSU_INDEX)

    controller.on_overlay_opacity_changed(255)
    controller.on_background_opacity_changed(51)
    controller.on_clip_plane_toggled(True)
    controller.on_drag_mode_changed(1)

    assert controller.scene.overlay.opacity == pytest.approx(1.0)
    assert controller.scene.base.opacity == pytest.approx(0.2)
    assert controller.scene.clip_plane == [float(v) for v in CLIP_PLANE_ON]
    assert controller.scene.drag_mode == 1

    controller.on_clip_plane_toggled(False)
    assert controller.scene.clip_plane == [float(v) for v in CLIP_PLANE_OFF]


def test_load_error_message(controller, tmp_path, notifications):
    bad = tmp_path / "broken.nii"
    bad.write_bytes(b"not a nifti")

    assert not controller.load_volume(bad)
    assert notifications == [LOAD_ERROR_MESSAGE]
    assert controller.scene.base is None


def test_save_segmentation(controller, nifti_path, tmp_path, notifications):
    assert controller.save_segmentation(tmp_path / "seg") is None
    assert notifications == [NO_SEGMENTATION_TO_SAVE]

    controller.load_volume(nifti_path)
    controller.on_model_selected(OTSU_INDEX)
    saved = controller.save_segmentation(tmp_path / "seg")

    image = nib.load(saved)
    assert saved.endswith(".nii.gz")
    assert image.shape == (256, 256, 256)
    assert image.get_data_dtype() == np.uint8


def test_save_scene(controller, nifti_path, tmp_path):
    controller.load_volume(nifti_path)
    controller.on_model_selected(OTSU_INDEX)

    saved = controller.save_scene(tmp_path / "scene")

    with open(saved, encoding="utf-8") as handle:
        document = json.load(handle)
    assert saved.endswith(".nvd")
    assert len(document["volumes"]) == 2
    assert document["overlayOpacity"] == 128


def test_shutdown_is_safe_when_idle(controller):
    controller.shutdown()
    assert not controller.dispatcher.has_active_context


@pytest.fixture
def worker_controller(notifications, test_logger, context_factory):
    return SegmentationController(
        notify=notifications.append,
        logger=test_logger,
        use_worker=True,
        context_factory=context_factory,
    )


def _otsu_result(controller):
    return InferenceResult(
        image=np.zeros(controller.scene.base.voxel_count, dtype=np.uint8),
        options=controller.dispatcher._build_options(),
        model_entry=controller.catalog.resolve(OTSU_INDEX),
    )


def test_worker_toggle_during_worker_run_does_not_start_second_run(worker_controller, contexts, nifti_path):
    worker_controller.load_volume(nifti_path)
    worker_controller.on_model_selected(OTSU_INDEX)

    worker_controller.on_worker_toggled(False)

    assert len(contexts) == 1
    assert not contexts[0].terminated
    assert worker_controller.scene.overlay is None
    assert worker_controller.dispatcher.is_running


def test_loading_new_scan_cancels_running_worker(worker_controller, contexts, nifti_path, tmp_path, conformed_volume):
    other = tmp_path / "other.nii.gz"
    nib.save(conformed_volume.to_nifti(), str(other))
    worker_controller.load_volume(nifti_path)
    worker_controller.on_model_selected(OTSU_INDEX)
    previous = contexts[0]

    assert worker_controller.load_volume(other)
    previous.on_message(_otsu_result(worker_controller))

    assert previous.terminated
    assert worker_controller.scene.overlay is None
    assert not worker_controller.dispatcher.is_running
    assert not worker_controller.view_state_model.is_running


def test_pen_enabled_before_conform_then_append(controller, tmp_path, small_ras_volume, notifications):
    path = tmp_path / "ras.nii.gz"
    nib.save(small_ras_volume.to_nifti(), str(path))
    controller.load_volume(path)
    controller.on_pen_mode_changed(2)

    controller.on_model_selected(OTSU_INDEX)

    overlay = controller.scene.overlay
    assert controller.scene.drawing.dims == overlay.dims
    background = int(np.flatnonzero(overlay.img == 0)[0])
    x, y, z = background % 256, (background // 256) % 256, background // (256 * 256)
    controller.on_pen_stroke(z, [(x, y)])
    controller.on_draw_action(DrawAction.APPEND)

    assert notifications == []
    assert overlay.img[background] == 1
