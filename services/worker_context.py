from __future__ import annotations

import logging
import multiprocessing
import os
import queue
import threading
from typing import Any, Callable, Dict, Optional

from models.messages import ChannelMessage
from services.errors import InferenceError
from services.inference_worker import worker_main

logger = logging.getLogger(__name__)

_TERMINAL_KINDS = ("result", "error")


def supports_isolated_context() -> bool:
    """Worker processes are worth it only with spawn support and more than one core."""
    return (os.cpu_count() or 1) > 1 and "spawn" in multiprocessing.get_all_start_methods()


class IsolatedContext:
    """
    One inference in a separate process, read back by a listener thread.

    The process posts tagged messages (ui / result / error) on a queue; the
    listener forwards each one to ``on_message`` and stops after a terminal
    message. ``terminate()`` kills the process (hard cancellation).
    """

    def __init__(
        self,
        name: str = "segmentation-worker",
        target: Callable[..., None] = worker_main,
        poll_interval: float = 0.1,
        start_method: str = "spawn",
    ) -> None:
        self.name = name
        self.target = target
        self.poll_interval = poll_interval
        self._mp = multiprocessing.get_context(start_method)
        self._queue: Any = None
        self._process: Any = None
        self._listener: Optional[threading.Thread] = None
        self._stopped = threading.Event()
        self._on_message: Callable[[ChannelMessage], None] = lambda _msg: None
        self._on_error: Callable[[Exception], None] = lambda _exc: None

    def start(
        self,
        payload: Dict[str, Any],
        on_message: Callable[[ChannelMessage], None],
        on_error: Callable[[Exception], None],
    ) -> None:
        if self._process is not None:
            raise RuntimeError("Isolated context already started.")
        self._on_message = on_message
        self._on_error = on_error
        self._queue = self._mp.Queue()
        self._process = self._mp.Process(
            target=self.target, args=(self._queue, payload), name=self.name, daemon=True
        )
        self._process.start()
        self._listener = threading.Thread(target=self._listen, daemon=True, name=f"{self.name}-listener")
        self._listener.start()
        logger.info("Worker %s started (pid=%s)", self.name, self._process.pid)

    def terminate(self) -> None:
        """Stop listening and kill the process; safe to call from the listener itself."""
        if self._stopped.is_set():
            return
        self._stopped.set()
        process = self._process
        if process is not None and process.is_alive():
            process.terminate()
            process.join(timeout=2.0)
        if self._queue is not None:
            self._queue.cancel_join_thread()
            self._queue.close()
        if self._listener is not None and self._listener is not threading.current_thread():
            self._listener.join(timeout=2.0)
        logger.info("Worker %s terminated", self.name)

    # ------------------------------------------------------------------ #
    # Listener thread
    # ------------------------------------------------------------------ #
    def _next_message(self) -> Optional[ChannelMessage]:
        """Block until a message arrives; None once stopped. Raises when the process died silently."""
        while not self._stopped.is_set():
            try:
                return self._queue.get(timeout=self.poll_interval)
            except queue.Empty:
                if self._process.is_alive():
                    continue
            # Process gone: drain what it may have flushed before exiting.
            try:
                return self._queue.get(timeout=self.poll_interval)
            except queue.Empty:
                raise InferenceError(
                    f"Worker process exited unexpectedly (exit code {self._process.exitcode})"
                ) from None
        return None

    def _listen(self) -> None:
        while True:
            try:
                message = self._next_message()
            except InferenceError as exc:
                if not self._stopped.is_set():
                    self._on_error(exc)
                return
            except (EOFError, OSError, ValueError) as exc:
                # Queue closed underneath us (terminate() from another thread).
                if not self._stopped.is_set():
                    self._on_error(InferenceError(f"Worker channel failed: {exc}"))
                return
            if message is None or self._stopped.is_set():
                return
            self._on_message(message)
            if getattr(message, "kind", None) in _TERMINAL_KINDS:
                return
