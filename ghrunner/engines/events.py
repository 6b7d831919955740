from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable

from ghrunner.engines.base import ContainerEngine, DieEvent, EngineError


logger = logging.getLogger(__name__)

ExitCallback = Callable[[str, str], None]


@dataclass(frozen=True)
class DispatcherConfig:
    reconnect_interval_s: float = 2.0
    ready_timeout_s: float = 5.0


class ExitEventDispatcher:
    """Single reader of an engine's event stream.

    Termination events are routed to the callback registered for the container id.
    A callback fires at most once; events for unknown containers are ignored.
    """

    def __init__(self, engine: ContainerEngine, *, config: DispatcherConfig | None = None) -> None:
        self._engine = engine
        self._config = config or DispatcherConfig()
        self._callbacks: dict[str, ExitCallback] = {}
        self._lock = threading.Lock()
        self._thread: threading.Thread | None = None
        self._stop = threading.Event()
        self._subscribed = threading.Event()
        self._dispatched = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def register(self, container_id: str, callback: ExitCallback) -> None:
        with self._lock:
            self._callbacks[container_id] = callback

    def unregister(self, container_id: str) -> None:
        with self._lock:
            self._callbacks.pop(container_id, None)

    def status_snapshot(self) -> dict[str, Any]:
        with self._lock:
            waiting = len(self._callbacks)
        return {
            "engine": self._engine.kind.value,
            "running": self.running,
            "subscribed": self._subscribed.is_set(),
            "waiting_containers": waiting,
            "dispatched": self._dispatched,
        }

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name=f"ghrunner-{self._engine.kind.value}-events",
            daemon=True,
        )
        self._thread.start()
        if not self._subscribed.wait(timeout=self._config.ready_timeout_s):
            logger.warning("%s event stream not subscribed yet; early exits may be missed", self._engine.kind.value)

    def stop(self, *, timeout_s: float = 5.0) -> None:
        self._stop.set()
        t = self._thread
        if t is None:
            return
        t.join(timeout=timeout_s)

    def dispatch(self, event: DieEvent) -> bool:
        with self._lock:
            callback = self._callbacks.pop(event.container_id, None)
            if callback is None:
                return False
            self._dispatched += 1
        try:
            callback(event.container_id, event.exit_code)
        except Exception:
            logger.exception("Exit handler failed for container %s", event.container_id)
        return True

    def _run_loop(self) -> None:
        while not self._stop.is_set():
            try:
                events = self._engine.die_events()
                self._subscribed.set()
                for event in events:
                    if self._stop.is_set():
                        return
                    self.dispatch(event)
            except EngineError as e:
                if self._stop.is_set():
                    return
                logger.error("Lost %s event stream: %s", self._engine.kind.value, e)
            except Exception:
                # Never let the reader thread die; resubscribe instead.
                if self._stop.is_set():
                    return
                logger.exception("Unexpected failure reading %s events", self._engine.kind.value)
            self._subscribed.clear()
            if not self._stop.is_set():
                logger.warning(
                    "Resubscribing to %s events in %.1fs", self._engine.kind.value, self._config.reconnect_interval_s
                )
            self._stop.wait(self._config.reconnect_interval_s)
