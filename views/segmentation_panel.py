"""Panneau de contrôle : modèles, stylo, éditions, affichage et barre d'état."""

from __future__ import annotations

from typing import Iterable, Optional, Sequence, Tuple

from PyQt6.QtCore import Qt, pyqtSignal
from PyQt6.QtWidgets import (
    QCheckBox,
    QComboBox,
    QFormLayout,
    QFrame,
    QLabel,
    QProgressBar,
    QPushButton,
    QSlider,
    QVBoxLayout,
)

from config.constants import (
    DEFAULT_BACKGROUND_OPACITY,
    DEFAULT_DRAG_MODE,
    DEFAULT_OVERLAY_OPACITY,
    DRAG_MODE_OPTIONS,
    DRAW_ACTION_OPTIONS,
    PEN_OPTIONS,
)
from models.view_state_model import ViewStateModel


class SegmentationPanel(QFrame):
    """Docked panel exposing user interactions as signals (view only)."""

    model_selected = pyqtSignal(int)
    worker_toggled = pyqtSignal(bool)
    pen_mode_changed = pyqtSignal(int)
    draw_action_requested = pyqtSignal(int)
    overlay_opacity_changed = pyqtSignal(int)
    background_opacity_changed = pyqtSignal(int)
    clip_plane_toggled = pyqtSignal(bool)
    drag_mode_changed = pyqtSignal(int)
    diagnostics_requested = pyqtSignal()

    def __init__(self, parent=None) -> None:
        super().__init__(parent)

        self._model_combo = QComboBox(self)
        self._worker_checkbox = QCheckBox("Use web worker", self)
        self._pen_combo = QComboBox(self)
        self._draw_combo = QComboBox(self)
        self._overlay_slider = self._opacity_slider(DEFAULT_OVERLAY_OPACITY)
        self._background_slider = self._opacity_slider(DEFAULT_BACKGROUND_OPACITY)
        self._clip_checkbox = QCheckBox("Clip plane", self)
        self._drag_combo = QComboBox(self)
        self._diagnostics_button = QPushButton("Diagnostics", self)
        self._warning_label = QLabel("", self)
        self._warning_label.setWordWrap(True)
        self._warning_label.setStyleSheet("color: #e0a030;")
        self._location_label = QLabel("", self)
        self._location_label.setWordWrap(True)
        self._memory_label = QLabel("", self)
        self._progress_bar = QProgressBar(self)
        self._progress_bar.setRange(0, 100)

        form = QFormLayout()
        form.setLabelAlignment(Qt.AlignmentFlag.AlignLeft | Qt.AlignmentFlag.AlignVCenter)
        form.addRow(QLabel("Segmentation"), self._model_combo)
        form.addRow(QLabel(""), self._worker_checkbox)
        form.addRow(QLabel("Draw"), self._pen_combo)
        form.addRow(QLabel("Edit"), self._draw_combo)
        form.addRow(QLabel("Overlay"), self._overlay_slider)
        form.addRow(QLabel("Background"), self._background_slider)
        form.addRow(QLabel("Drag mode"), self._drag_combo)
        form.addRow(QLabel(""), self._clip_checkbox)

        layout = QVBoxLayout(self)
        layout.setContentsMargins(12, 12, 12, 12)
        layout.addLayout(form)
        layout.addWidget(self._warning_label)
        layout.addStretch(1)
        layout.addWidget(self._location_label)
        layout.addWidget(self._progress_bar)
        layout.addWidget(self._memory_label)
        layout.addWidget(self._diagnostics_button, 0, alignment=Qt.AlignmentFlag.AlignRight)

        self._populate_fixed_choices()
        self._wire_signals()

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def set_models(self, names: Iterable[str], current: Optional[int] = None) -> None:
        """First row is a placeholder; row ``i + 1`` is model ``i``."""
        self._model_combo.blockSignals(True)
        self._model_combo.clear()
        self._model_combo.addItem("Segmentation Models", None)
        for idx, name in enumerate(names):
            self._model_combo.addItem(name, idx)
        self._model_combo.setCurrentIndex(0 if current is None else current + 1)
        self._model_combo.blockSignals(False)

    def sync_from_state(self, state: ViewStateModel) -> None:
        """Reflect the view state (status bar, selectors, warning) without re-emitting."""
        self._location_label.setText("\n".join(state.location_lines))
        self._progress_bar.setValue(state.progress)
        text, color = state.memory_status
        self._memory_label.setText(text)
        self._memory_label.setStyleSheet(f"color: {color};")
        self._warning_label.setText(state.model_warning)
        self._warning_label.setVisible(bool(state.model_warning))
        self._model_combo.setEnabled(not state.is_running)

        self._set_silently(self._worker_checkbox, state.use_worker)
        self._set_silently(self._clip_checkbox, state.clip_plane_enabled)
        self._select_data(self._pen_combo, state.pen_mode)
        self._select_data(self._draw_combo, state.draw_action)
        self._select_data(self._drag_combo, state.drag_mode)

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    def _opacity_slider(self, value: int) -> QSlider:
        slider = QSlider(Qt.Orientation.Horizontal, self)
        slider.setRange(0, 255)
        slider.setValue(value)
        return slider

    def _populate_fixed_choices(self) -> None:
        self._fill(self._pen_combo, PEN_OPTIONS)
        self._draw_combo.addItem("Edit", None)
        self._fill(self._draw_combo, DRAW_ACTION_OPTIONS)
        self._fill(self._drag_combo, [(label, idx) for idx, label in enumerate(DRAG_MODE_OPTIONS)])
        self._select_data(self._drag_combo, DEFAULT_DRAG_MODE)

    def _wire_signals(self) -> None:
        self._model_combo.activated.connect(self._emit_model)
        self._worker_checkbox.toggled.connect(self.worker_toggled.emit)
        self._pen_combo.activated.connect(
            lambda idx: self.pen_mode_changed.emit(int(self._pen_combo.itemData(idx)))
        )
        self._draw_combo.activated.connect(self._emit_draw_action)
        self._overlay_slider.valueChanged.connect(self.overlay_opacity_changed.emit)
        self._background_slider.valueChanged.connect(self.background_opacity_changed.emit)
        self._clip_checkbox.toggled.connect(self.clip_plane_toggled.emit)
        self._drag_combo.activated.connect(
            lambda idx: self.drag_mode_changed.emit(int(self._drag_combo.itemData(idx)))
        )
        self._diagnostics_button.clicked.connect(self.diagnostics_requested)

    def _emit_model(self, row: int) -> None:
        data = self._model_combo.itemData(row)
        if data is not None:
            self.model_selected.emit(int(data))

    def _emit_draw_action(self, row: int) -> None:
        data = self._draw_combo.itemData(row)
        if data is not None:
            self.draw_action_requested.emit(int(data))

    @staticmethod
    def _fill(combo: QComboBox, choices: Sequence[Tuple[str, int]]) -> None:
        for label, value in choices:
            combo.addItem(label, value)

    @staticmethod
    def _select_data(combo: QComboBox, value: Optional[int]) -> None:
        idx = 0 if value is None else combo.findData(value)
        combo.blockSignals(True)
        combo.setCurrentIndex(max(0, idx))
        combo.blockSignals(False)

    @staticmethod
    def _set_silently(checkbox: QCheckBox, checked: bool) -> None:
        checkbox.blockSignals(True)
        checkbox.setChecked(checked)
        checkbox.blockSignals(False)
