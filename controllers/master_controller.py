import logging
from typing import Callable, Optional

from PyQt6.QtCore import QEvent, QObject, Qt, pyqtSignal
from PyQt6.QtGui import QAction, QGuiApplication, QKeySequence
from PyQt6.QtWidgets import QDockWidget, QFileDialog, QMainWindow, QMessageBox

from controllers.segmentation_controller import NO_SEGMENTATION_TO_SAVE, SegmentationController
from services.volume_io import is_nifti_path
from views.segmentation_panel import SegmentationPanel
from views.slice_view import SliceView


class _UiInvoker(QObject):
    """Runs callables on the thread owning this object (the GUI thread)."""

    requested = pyqtSignal(object)

    def __init__(self) -> None:
        super().__init__()
        self.requested.connect(self._run, Qt.ConnectionType.QueuedConnection)

    def __call__(self, fn: Callable[[], None]) -> None:
        self.requested.emit(fn)

    @staticmethod
    def _run(fn: Callable[[], None]) -> None:
        fn()


class MasterController:
    """Coordinates the segmentation controller and the Qt views without embedding business logic."""

    def __init__(self, main_window: Optional[QMainWindow] = None, model_index: Optional[int] = None) -> None:
        self.logger = logging.getLogger(__name__)
        self.main_window = main_window or QMainWindow()
        self.main_window.setWindowTitle("Segmentation")
        self.main_window.resize(1100, 800)
        self.main_window.setAcceptDrops(True)
        self.main_window.installEventFilter(_DropFilter(self.main_window, self.open_path))

        self._invoker = _UiInvoker()
        self.segmentation_controller = SegmentationController(
            notify=self._notify,
            logger=self.logger,
            invoke=self._invoker,
            on_refresh=self._refresh_views,
        )
        self.view_state_model = self.segmentation_controller.view_state_model

        self.slice_view = SliceView(self.main_window)
        self.slice_view.set_scene(self.segmentation_controller.scene)
        self.main_window.setCentralWidget(self.slice_view)

        self.segmentation_panel = SegmentationPanel()
        dock = QDockWidget("Outils", self.main_window)
        dock.setWidget(self.segmentation_panel)
        self.main_window.addDockWidget(Qt.DockWidgetArea.RightDockWidgetArea, dock)
        self.segmentation_panel.set_models(self.segmentation_controller.catalog.names())

        self._build_menu()
        self._connect_signals()
        self._refresh_views()
        self._pending_model = model_index

    def _build_menu(self) -> None:
        """Menu Fichier : ouvrir / sauvegarder / quitter."""
        menu = self.main_window.menuBar().addMenu("Fichier")
        entries = [
            ("Ouvrir NIfTI...", QKeySequence.StandardKey.Open, self._on_open_volume),
            ("Sauvegarder la segmentation...", QKeySequence.StandardKey.Save, self._on_save_segmentation),
            ("Sauvegarder la scène...", None, self._on_save_scene),
            ("Quitter", QKeySequence.StandardKey.Quit, self._on_quit),
        ]
        for label, shortcut, handler in entries:
            action = QAction(label, self.main_window)
            if shortcut is not None:
                action.setShortcut(QKeySequence(shortcut))
            action.triggered.connect(handler)
            menu.addAction(action)

    def _connect_signals(self) -> None:
        """Wire view signals to controller handlers."""
        ctrl = self.segmentation_controller
        panel = self.segmentation_panel
        panel.model_selected.connect(ctrl.on_model_selected)
        panel.worker_toggled.connect(ctrl.on_worker_toggled)
        panel.pen_mode_changed.connect(ctrl.on_pen_mode_changed)
        panel.draw_action_requested.connect(ctrl.on_draw_action)
        panel.overlay_opacity_changed.connect(ctrl.on_overlay_opacity_changed)
        panel.background_opacity_changed.connect(ctrl.on_background_opacity_changed)
        panel.clip_plane_toggled.connect(ctrl.on_clip_plane_toggled)
        panel.drag_mode_changed.connect(ctrl.on_drag_mode_changed)
        panel.diagnostics_requested.connect(self._on_diagnostics)
        self.slice_view.stroke_finished.connect(ctrl.on_pen_stroke)

    def run(self) -> None:
        """Launch the main window."""
        self.main_window.show()

    def status_message(self, message: str, timeout_ms: int = 3000) -> None:
        """Display a transient status message."""
        self.main_window.statusBar().showMessage(message, timeout_ms)

    # ------------------------------------------------------------------ #
    # Handlers
    # ------------------------------------------------------------------ #
    def _on_open_volume(self) -> None:
        path, _ = QFileDialog.getOpenFileName(
            self.main_window,
            "Ouvrir un volume NIfTI",
            "",
            "NIfTI (*.nii *.nii.gz);;Tous les fichiers (*)",
        )
        if path:
            self._load(path)

    def open_path(self, path: str) -> None:
        """Open a NIfTI given on the command line or dropped on the window."""
        if not is_nifti_path(path):
            self._notify("Please drop a valid NIfTI file (.nii or .nii.gz)")
            return
        self._load(path)

    def _load(self, path: str) -> None:
        if not self.segmentation_controller.load_volume(path):
            return
        self.status_message(f"Volume chargé : {path}", timeout_ms=5000)
        if self._pending_model is not None:
            index, self._pending_model = self._pending_model, None
            self.segmentation_panel.set_models(self.segmentation_controller.catalog.names(), current=index)
            self.segmentation_controller.on_model_selected(index)

    def _on_save_segmentation(self) -> None:
        if self.segmentation_controller.scene.overlay is None:
            self._notify(NO_SEGMENTATION_TO_SAVE)
            return
        path, _ = QFileDialog.getSaveFileName(
            self.main_window, "Sauvegarder la segmentation", "segmentation.nii.gz", "NIfTI (*.nii *.nii.gz)"
        )
        if not path:
            return
        try:
            saved = self.segmentation_controller.save_segmentation(path)
        except Exception as exc:
            QMessageBox.critical(self.main_window, "Erreur sauvegarde", str(exc))
            return
        if saved:
            self.status_message(f"Segmentation sauvegardée : {saved}", timeout_ms=5000)

    def _on_save_scene(self) -> None:
        path, _ = QFileDialog.getSaveFileName(
            self.main_window, "Sauvegarder la scène", "scene.nvd", "Scène (*.nvd)"
        )
        if not path:
            return
        try:
            saved = self.segmentation_controller.save_scene(path)
        except Exception as exc:
            QMessageBox.critical(self.main_window, "Erreur sauvegarde", str(exc))
            return
        self.status_message(f"Scène sauvegardée : {saved}", timeout_ms=5000)

    def _on_diagnostics(self) -> None:
        report = self.segmentation_controller.diagnostics()
        if report is None:
            return
        QGuiApplication.clipboard().setText(report)
        QMessageBox.information(self.main_window, "Diagnostics", "Diagnostics copied to clipboard\n\n" + report)

    def _on_quit(self) -> None:
        """Quit the application."""
        self.segmentation_controller.shutdown()
        self.main_window.close()

    # ------------------------------------------------------------------ #
    # Internal helpers
    # ------------------------------------------------------------------ #
    def _notify(self, message: str) -> None:
        self.logger.info("Notification: %s", message)
        QMessageBox.warning(self.main_window, "Segmentation", message)

    def _refresh_views(self) -> None:
        """Push the view state into the panel and repaint the slice."""
        self.segmentation_panel.sync_from_state(self.view_state_model)
        self.slice_view.refresh()


class _DropFilter(QObject):
    """Accepts NIfTI files dropped on the main window."""

    def __init__(self, parent: QObject, on_drop: Callable[[str], None]) -> None:
        super().__init__(parent)
        self._on_drop = on_drop

    def eventFilter(self, obj, event) -> bool:
        if event.type() == QEvent.Type.DragEnter and event.mimeData().hasUrls():
            event.acceptProposedAction()
            return True
        if event.type() == QEvent.Type.Drop and event.mimeData().hasUrls():
            urls = event.mimeData().urls()
            if urls:
                self._on_drop(urls[0].toLocalFile())
            event.acceptProposedAction()
            return True
        return super().eventFilter(obj, event)
