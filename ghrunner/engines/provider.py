from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from ghrunner.engines.base import ContainerEngine, EngineError, EngineKind
from ghrunner.engines.docker_engine import DockerEngine, PodmanEngine
from ghrunner.engines.events import ExitEventDispatcher


logger = logging.getLogger(__name__)

ROOTFUL_PODMAN_SOCKET = "/run/podman/podman.sock"
DOCKER_SOCKET = "/var/run/docker.sock"


def podman_socket_candidates(environ: Mapping[str, str] | None = None) -> list[str]:
    """Podman sockets in preference order: rootless (when a runtime dir is set), then rootful."""
    env = os.environ if environ is None else environ
    runtime_dir = (env.get("XDG_RUNTIME_DIR") or "").strip()
    candidates: list[str] = []
    if runtime_dir:
        candidates.append(os.path.join(runtime_dir, "podman", "podman.sock"))
    candidates.append(ROOTFUL_PODMAN_SOCKET)
    return candidates


def engine_socket_path(
    kind: EngineKind,
    environ: Mapping[str, str] | None = None,
    *,
    exists: Callable[[str], bool] = os.path.exists,
) -> str:
    """Socket to connect to for `kind`: the first podman candidate present on disk."""
    if kind is EngineKind.DOCKER:
        return DOCKER_SOCKET
    candidates = podman_socket_candidates(environ)
    for path in candidates:
        if exists(path):
            return path
    return candidates[0]


def detect_engine_kind(
    environ: Mapping[str, str] | None = None,
    *,
    exists: Callable[[str], bool] = os.path.exists,
) -> EngineKind:
    """Pick the engine whose control socket is present (podman first, then docker)."""
    for kind in (EngineKind.PODMAN, EngineKind.DOCKER):
        if exists(engine_socket_path(kind, environ, exists=exists)):
            return kind
    raise EngineError("No container engine available on this server.")


def open_engine(
    kind: EngineKind,
    environ: Mapping[str, str] | None = None,
    *,
    exists: Callable[[str], bool] = os.path.exists,
) -> ContainerEngine:
    socket = engine_socket_path(kind, environ, exists=exists)
    logger.info("Container engine socket path used: %s", socket)
    if kind is EngineKind.PODMAN:
        return PodmanEngine(socket)
    return DockerEngine(socket)


@dataclass
class _EngineSlot:
    engine: ContainerEngine
    dispatcher: ExitEventDispatcher


class EngineProvider:
    """Lazily opens one shared engine connection (and its exit dispatcher) per kind."""

    def __init__(self, *, factory: Callable[[EngineKind], ContainerEngine] | None = None) -> None:
        self._factory = factory or open_engine
        self._slots: dict[EngineKind, _EngineSlot] = {}
        self._lock = threading.Lock()

    def get(self, kind: EngineKind) -> tuple[ContainerEngine, ExitEventDispatcher]:
        with self._lock:
            slot = self._slots.get(kind)
            if slot is None:
                engine = self._factory(kind)
                dispatcher = ExitEventDispatcher(engine)
                dispatcher.start()
                slot = _EngineSlot(engine=engine, dispatcher=dispatcher)
                self._slots[kind] = slot
            return slot.engine, slot.dispatcher

    def status_snapshot(self) -> dict[str, Any]:
        with self._lock:
            slots = list(self._slots.values())
        return {"engines": [s.dispatcher.status_snapshot() for s in slots]}

    def close(self) -> None:
        with self._lock:
            slots = list(self._slots.values())
            self._slots.clear()
        for slot in slots:
            slot.dispatcher.stop(timeout_s=0.0)
            try:
                slot.engine.close()
            except EngineError as e:
                logger.warning("Failed to close %s engine: %s", slot.engine.kind.value, e)
