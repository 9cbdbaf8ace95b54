"""Point d'entrée du processus isolé qui exécute une fonction d'inférence."""

from __future__ import annotations

import logging
import traceback
from typing import Any, Dict

from config.logging_config import configure_logging
from models.messages import InferenceFailure, InferenceResult, UiUpdate
from services.inference_backends import resolve_inference


def worker_main(channel: Any, payload: Dict[str, Any]) -> None:
    """
    Run one inference and post its messages on ``channel``.

    ``payload`` carries ``options``, ``model_entry``, ``header`` and ``image``.
    Every exception is turned into an ``InferenceFailure`` message.
    """
    options = payload["options"]
    configure_logging("DEBUG" if options.get("debug") else "INFO")
    logger = logging.getLogger(__name__)
    model_entry = payload["model_entry"]
    state = {"result": False, "modal": False}

    def on_ui(update: UiUpdate) -> None:
        if update.modal_message:
            state["modal"] = True
        channel.put(update)

    def on_result(result: InferenceResult) -> None:
        state["result"] = True
        channel.put(result)

    try:
        infer = resolve_inference(model_entry)
        logger.info("Worker running %s", model_entry.model_name)
        infer(options, model_entry, payload["header"], payload["image"], on_result, on_ui)
    except Exception as exc:
        logger.exception("Inference failed in worker")
        channel.put(InferenceFailure(message=str(exc) or exc.__class__.__name__, traceback=traceback.format_exc()))
        return

    if not state["result"] and not state["modal"]:
        channel.put(InferenceFailure(message="Inference finished without a result"))
