"""Vue 2D d'une coupe du volume avec overlay de segmentation et dessin au stylo."""

from __future__ import annotations

from typing import List, Optional, Tuple

from PyQt6.QtCore import QEvent, Qt, pyqtSignal
from PyQt6.QtGui import QImage, QPixmap
from PyQt6.QtWidgets import (
    QFrame,
    QGraphicsPixmapItem,
    QGraphicsScene,
    QGraphicsView,
    QHBoxLayout,
    QLabel,
    QSlider,
    QVBoxLayout,
)

from models.scene_model import SceneModel
from utils.slice_render import render_slice, slice_count


class SliceView(QFrame):
    """Displays one slice of the scene; emits pen strokes as (slice, points)."""

    stroke_finished = pyqtSignal(int, list)

    def __init__(self, parent=None) -> None:
        super().__init__(parent)

        self._scene_model: Optional[SceneModel] = None
        self._stroke: List[Tuple[int, int]] = []
        self._shape: Tuple[int, int] = (0, 0)

        self._graphics = QGraphicsScene(self)
        self._view = QGraphicsView(self._graphics)
        self._view.setHorizontalScrollBarPolicy(Qt.ScrollBarPolicy.ScrollBarAlwaysOff)
        self._view.setVerticalScrollBarPolicy(Qt.ScrollBarPolicy.ScrollBarAlwaysOff)
        self._view.viewport().installEventFilter(self)
        self._pixmap_item = QGraphicsPixmapItem()
        self._graphics.addItem(self._pixmap_item)

        header = QHBoxLayout()
        self._status = QLabel("Aucun volume")
        header.addWidget(self._status, 1)
        self._slice_slider = QSlider(Qt.Orientation.Horizontal)
        self._slice_slider.setEnabled(False)
        self._slice_slider.valueChanged.connect(lambda _v: self.refresh())
        header.addWidget(self._slice_slider, 2)

        layout = QVBoxLayout(self)
        layout.setContentsMargins(5, 5, 5, 5)
        layout.addLayout(header)
        layout.addWidget(self._view, 1)

        self.setStyleSheet("background-color: #181818; color: #cccccc;")

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def set_scene(self, scene: SceneModel) -> None:
        self._scene_model = scene
        scene.add_render_listener(self.refresh)
        self.refresh()

    @property
    def current_slice(self) -> int:
        return int(self._slice_slider.value())

    def refresh(self) -> None:
        scene = self._scene_model
        depth = 0 if scene is None else slice_count(scene)
        if depth == 0:
            self._status.setText("Aucun volume")
            self._slice_slider.setEnabled(False)
            self._pixmap_item.setPixmap(QPixmap())
            return

        if not self._slice_slider.isEnabled() or self._slice_slider.maximum() != depth - 1:
            self._slice_slider.blockSignals(True)
            self._slice_slider.setRange(0, depth - 1)
            self._slice_slider.setValue(depth // 2)
            self._slice_slider.setEnabled(True)
            self._slice_slider.blockSignals(False)

        rgb = render_slice(scene, self.current_slice)
        h, w, _ = rgb.shape
        self._shape = (h, w)
        image = QImage(rgb.data, w, h, w * 3, QImage.Format.Format_RGB888)
        self._pixmap_item.setPixmap(QPixmap.fromImage(image.copy()))
        self._graphics.setSceneRect(0, 0, w, h)
        self._view.fitInView(self._pixmap_item, Qt.AspectRatioMode.KeepAspectRatio)
        self._status.setText(f"Coupe {self.current_slice + 1}/{depth}")

    # ------------------------------------------------------------------ #
    # Events
    # ------------------------------------------------------------------ #
    def eventFilter(self, obj, event) -> bool:
        scene = self._scene_model
        drawing_on = scene is not None and scene.drawing.enabled
        if obj is self._view.viewport() and drawing_on:
            etype = event.type()
            if etype == QEvent.Type.MouseButtonPress and event.button() == Qt.MouseButton.LeftButton:
                self._stroke = []
                self._append_point(event)
                return True
            if etype == QEvent.Type.MouseMove and self._stroke:
                self._append_point(event)
                return True
            if etype == QEvent.Type.MouseButtonRelease and self._stroke:
                points, self._stroke = self._stroke, []
                self.stroke_finished.emit(self.current_slice, points)
                return True
        return super().eventFilter(obj, event)

    def resizeEvent(self, event) -> None:
        super().resizeEvent(event)
        if self._shape != (0, 0):
            self._view.fitInView(self._pixmap_item, Qt.AspectRatioMode.KeepAspectRatio)

    def _append_point(self, event) -> None:
        pos = self._view.mapToScene(event.position().toPoint())
        x, y = int(pos.x()), int(pos.y())
        h, w = self._shape
        if 0 <= x < w and 0 <= y < h:
            self._stroke.append((x, y))
