"""Lance un modèle de segmentation sur le volume de base (processus isolé ou en direct)."""

from __future__ import annotations

import logging
import re
import threading
from enum import Enum
from typing import Any, Callable, Dict, Optional
from urllib.parse import urlparse, urlunparse

from config.viewer_options import clone_viewer_options, default_serving_origin
from models.messages import ChannelMessage, InferenceFailure, InferenceResult, UiUpdate
from models.model_catalog import ModelCatalog, ModelEntry
from models.scene_model import SceneModel
from models.view_state_model import ViewStateModel
from services.conformance_service import ConformanceService
from services.errors import InferenceError, PreconditionError
from services.inference_backends import resolve_inference
from services.label_reconciler import splice_missing_status
from services.overlay_builder import OverlayBuild, OverlayBuilder
from services.ui_callback_normalizer import UiCallbackNormalizer
from services.worker_context import IsolatedContext

NO_VOLUME_MESSAGE = "Please load an MRI image first before running segmentation."
NO_DIAGNOSTICS_MESSAGE = "No diagnostic string generated: run a model to create diagnostics"

_LOOPBACK_V4 = re.compile(r"^127(?:\.(?:25[0-5]|2[0-4][0-9]|[01]?[0-9][0-9]?)){3}$")


def resolve_root_url(origin: str) -> str:
    """Origin + path, or just ``scheme://host[:port]`` when served from localhost."""
    parsed = urlparse(origin)
    host = parsed.hostname or ""
    if host in ("localhost", "::1") or _LOOPBACK_V4.match(host):
        return f"{parsed.scheme}://{parsed.netloc}"
    return urlunparse((parsed.scheme, parsed.netloc, parsed.path, "", "", ""))


class DispatchState(Enum):
    IDLE = "idle"
    RUNNING = "running"


class InferenceDispatcher:
    """
    Runs one segmentation at a time over the base volume.

    Two interchangeable paths, picked from ``view_state_model.use_worker``:

    - isolated: an ``IsolatedContext`` worker process;
    - in-process: the inference function is called directly and blocks the caller.

    Single-flight over both paths: a request while a run is outstanding
    (worker alive or state RUNNING) is rejected, not queued.

    Both deliver zero or more UI updates then exactly one result, or end with a
    user-visible error and no result. The dispatcher owns the diagnostics
    snapshot and the missing-label status of the last run.
    """

    def __init__(
        self,
        *,
        scene: SceneModel,
        view_state_model: ViewStateModel,
        catalog: ModelCatalog,
        conformance_service: ConformanceService,
        overlay_builder: OverlayBuilder,
        ui_normalizer: UiCallbackNormalizer,
        notify: Callable[[str], None],
        invoke: Optional[Callable[[Callable[[], None]], None]] = None,
        context_factory: Callable[[], IsolatedContext] = IsolatedContext,
        inference_resolver: Callable[[ModelEntry], Callable[..., None]] = resolve_inference,
        serving_origin: Optional[str] = None,
        on_overlay_ready: Optional[Callable[[OverlayBuild], None]] = None,
        on_state_changed: Optional[Callable[[], None]] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self.scene = scene
        self.view_state_model = view_state_model
        self.catalog = catalog
        self.conformance_service = conformance_service
        self.overlay_builder = overlay_builder
        self.ui_normalizer = ui_normalizer
        self.notify = notify
        self._invoke = invoke or (lambda fn: fn())
        self._context_factory = context_factory
        self._resolve_inference = inference_resolver
        self.serving_origin = serving_origin or default_serving_origin()
        self.on_overlay_ready = on_overlay_ready
        self.on_state_changed = on_state_changed

        self._lock = threading.RLock()
        self._state = DispatchState.IDLE
        self._context: Optional[IsolatedContext] = None
        # Bumped by shutdown(); work queued for an older run is dropped.
        self._generation = 0

        self.diagnostics: str = ""
        self.missing_label_status: str = ""
        self.last_build: Optional[OverlayBuild] = None

    # ------------------------------------------------------------------ #
    # State
    # ------------------------------------------------------------------ #
    @property
    def state(self) -> DispatchState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is DispatchState.RUNNING

    @property
    def has_active_context(self) -> bool:
        with self._lock:
            return self._context is not None

    def _set_state(self, state: DispatchState) -> None:
        with self._lock:
            self._state = state
        self._invoke(self._publish_state)

    def _publish_state(self) -> None:
        # UI thread only; reads the latest state so out-of-order delivery is harmless.
        self.view_state_model.set_running(self.is_running)
        if self.on_state_changed is not None:
            self.on_state_changed()

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #
    def run_segmentation(self, model_index: Any) -> None:
        if model_index is None or model_index == "":
            return
        base = self.scene.base
        if base is None:
            self.notify(NO_VOLUME_MESSAGE)
            return
        model_entry = self.catalog.resolve(model_index)
        if model_entry is None:
            self.logger.info("Ignoring unknown model index %r", model_index)
            return

        self.missing_label_status = ""
        self.diagnostics = ""
        self.scene.close_overlays()
        self.conformance_service.ensure_conformed(self.scene)

        options = self._build_options()
        with self._lock:
            busy = self._context is not None or self._state is DispatchState.RUNNING
            if not busy:
                self._state = DispatchState.RUNNING
        if busy:
            # Single-flight across both paths: the outstanding run keeps slot 1.
            self.logger.warning("Unable to start new segmentation: previous call has not completed")
            self._invoke(self._publish_state)
            return
        self._set_state(DispatchState.RUNNING)
        self.view_state_model.set_progress(0)

        if self.view_state_model.use_worker:
            self._run_isolated(options, model_entry)
        else:
            self._run_in_process(options, model_entry)

    def diagnostics_report(self) -> str:
        """Diagnostics text with missing labels spliced in; raises when nothing was generated."""
        text = splice_missing_status(self.diagnostics, self.missing_label_status)
        if not text:
            raise PreconditionError(NO_DIAGNOSTICS_MESSAGE)
        return text

    def shutdown(self) -> None:
        """Kill the active worker, if any, and drop whatever it already queued."""
        with self._lock:
            context = self._context
            was_running = self._state is DispatchState.RUNNING
            self._generation += 1
        if context is not None:
            self._teardown(context)
        if context is not None or was_running:
            self._set_state(DispatchState.IDLE)

    # ------------------------------------------------------------------ #
    # Run preparation
    # ------------------------------------------------------------------ #
    def _build_options(self) -> Dict[str, Any]:
        options = clone_viewer_options()
        options["root_url"] = resolve_root_url(self.serving_origin)
        return options

    def _header_subset(self) -> Dict[str, Any]:
        base = self.scene.base
        return {"datatype_code": base.header.datatype_code, "dims": base.nifti_dims}

    # ------------------------------------------------------------------ #
    # Isolated-context path
    # ------------------------------------------------------------------ #
    def _run_isolated(self, options: Dict[str, Any], model_entry: ModelEntry) -> None:
        with self._lock:
            context = self._context_factory()
            self._context = context
            generation = self._generation

        payload = {
            "options": options,
            "model_entry": model_entry,
            "header": self._header_subset(),
            "image": self.scene.base.img,
        }
        try:
            context.start(
                payload,
                on_message=lambda message: self._on_worker_message(context, generation, message),
                on_error=lambda exc: self._on_worker_error(context, generation, exc),
            )
        except Exception as exc:
            self.logger.exception("Unable to start the worker")
            self._teardown(context)
            self._fail(str(exc))

    def _on_worker_message(self, context: IsolatedContext, generation: int, message: ChannelMessage) -> None:
        # Runs on the listener thread: context teardown happens here, UI work goes through invoke.
        if not self._is_current(context):
            self.logger.debug("Ignoring %s from a finished worker", type(message).__name__)
            return
        if isinstance(message, UiUpdate):
            if message.modal_message:
                self._teardown(context)
                self._set_state(DispatchState.IDLE)
            self._invoke(self._guarded(generation, lambda: self._handle_ui(message)))
        elif isinstance(message, InferenceResult):
            self._teardown(context)
            self._invoke(self._guarded(generation, lambda: self._deliver_result(message)))
        elif isinstance(message, InferenceFailure):
            self.logger.error("Worker error: %s\n%s", message.message, message.traceback)
            self._teardown(context)
            self._set_state(DispatchState.IDLE)
            self._invoke(self._guarded(generation, lambda: self._fail(message.message)))
        else:
            self.logger.warning("Unexpected worker message %r", message)

    def _on_worker_error(self, context: IsolatedContext, generation: int, exc: Exception) -> None:
        if not self._is_current(context):
            return
        self.logger.error("Worker error: %s", exc)
        self._teardown(context)
        self._set_state(DispatchState.IDLE)
        self._invoke(self._guarded(generation, lambda: self._fail(str(exc) or "Unknown error")))

    def _is_current(self, context: IsolatedContext) -> bool:
        with self._lock:
            return self._context is context

    def _guarded(self, generation: int, fn: Callable[[], None]) -> Callable[[], None]:
        def run() -> None:
            if generation != self._generation:
                self.logger.info("Dropping work queued by a cancelled segmentation")
                return
            fn()

        return run

    def _teardown(self, context: IsolatedContext) -> None:
        with self._lock:
            if self._context is context:
                self._context = None
        context.terminate()

    def _deliver_result(self, result: InferenceResult) -> None:
        try:
            self._handle_result(result)
        except Exception as exc:
            self.logger.exception("Unable to build the segmentation overlay")
            self._fail(str(exc))

    # ------------------------------------------------------------------ #
    # In-process path
    # ------------------------------------------------------------------ #
    def _run_in_process(self, options: Dict[str, Any], model_entry: ModelEntry) -> None:
        run = {"closed": False}

        def on_ui(update: UiUpdate) -> None:
            if run["closed"]:
                self.logger.debug("UI update after end of run ignored")
                return
            if update.modal_message:
                run["closed"] = True
                self._set_state(DispatchState.IDLE)
            self._handle_ui(update)

        def on_result(result: InferenceResult) -> None:
            if run["closed"]:
                self.logger.warning("Result after end of run ignored")
                return
            self._handle_result(result)
            run["closed"] = True

        try:
            infer = self._resolve_inference(model_entry)
            infer(options, model_entry, self._header_subset(), self.scene.base.img, on_result, on_ui)
            if not run["closed"]:
                raise InferenceError("Inference finished without a result")
        except Exception as exc:
            if run["closed"]:
                # Already ended by a modal message or a result; one report per run.
                self.logger.exception("Inference error after the run ended")
                return
            self.logger.exception("Inference error")
            run["closed"] = True
            self._fail(str(exc) or exc.__class__.__name__)

    # ------------------------------------------------------------------ #
    # Shared handlers
    # ------------------------------------------------------------------ #
    def _handle_ui(self, update: UiUpdate) -> None:
        diagnostics = self.ui_normalizer.on_ui(update)
        if diagnostics is not None:
            self.diagnostics = diagnostics
        if self.on_state_changed is not None:
            self.on_state_changed()

    def _handle_result(self, result: InferenceResult) -> None:
        build = self.overlay_builder.build_overlay(result.image, result.options, result.model_entry)
        self.missing_label_status = build.missing_status
        self.last_build = build
        self.view_state_model.set_progress(100)
        self._set_state(DispatchState.IDLE)
        if self.on_overlay_ready is not None:
            self.on_overlay_ready(build)

    def _fail(self, message: str) -> None:
        self._set_state(DispatchState.IDLE)
        self.notify(f"Segmentation error: {message or 'Unknown error'}")
