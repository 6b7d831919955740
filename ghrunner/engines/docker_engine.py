from __future__ import annotations

import logging
import threading
from typing import Any, Iterator, Mapping, Sequence

import docker
from docker.errors import DockerException
from requests.exceptions import RequestException

from ghrunner.engines.base import ContainerEngine, DieEvent, EngineError, EngineKind


logger = logging.getLogger(__name__)

# The SDK lets transport failures (daemon down or restarting) through as plain
# `requests` errors rather than `DockerException`.
_SDK_ERRORS = (DockerException, RequestException)


class DockerEngine(ContainerEngine):
    """Container engine reached through a Docker-compatible API socket."""

    kind = EngineKind.DOCKER
    # Event attribute carrying the process exit code.
    exit_code_attributes: tuple[str, ...] = ("exitCode",)

    def __init__(self, socket_path: str, *, client: Any | None = None) -> None:
        self.socket_path = socket_path
        self._stream: Any | None = None
        self._stream_lock = threading.Lock()
        if client is not None:
            self._client = client
            return
        try:
            self._client = docker.DockerClient(base_url=f"unix://{socket_path}")
        except _SDK_ERRORS as e:
            raise EngineError(f"Unable to init {self.kind.value} client on {socket_path}: {e}") from e

    def create_container(self, image: str, env: Sequence[str], labels: Mapping[str, str]) -> str:
        try:
            container = self._client.containers.create(image, environment=list(env), labels=dict(labels))
        except _SDK_ERRORS as e:
            raise EngineError(f"Encountered an error when creating container: {e}") from e
        return str(container.id)

    def start_container(self, container_id: str) -> None:
        try:
            self._client.api.start(container_id)
        except _SDK_ERRORS as e:
            raise EngineError(f"Encountered an error when starting container {container_id}: {e}") from e

    def remove_container(self, container_id: str) -> None:
        try:
            self._client.api.remove_container(container_id)
        except _SDK_ERRORS as e:
            raise EngineError(f"Encountered an error when removing container {container_id}: {e}") from e

    def die_events(self) -> Iterator[DieEvent]:
        try:
            stream = self._client.events(decode=True, filters={"type": "container", "event": "die"})
        except _SDK_ERRORS as e:
            raise EngineError(f"Unable to subscribe to {self.kind.value} events: {e}") from e
        with self._stream_lock:
            self._stream = stream
        return self._iter_die_events(stream)

    def _iter_die_events(self, stream: Iterator[Mapping[str, Any]]) -> Iterator[DieEvent]:
        try:
            for raw in stream:
                event = self.parse_die_event(raw)
                if event is not None:
                    yield event
        except _SDK_ERRORS as e:
            raise EngineError(f"{self.kind.value} event stream failed: {e}") from e

    def parse_die_event(self, raw: Mapping[str, Any]) -> DieEvent | None:
        action = raw.get("Action") or raw.get("status")
        if action != "die":
            return None
        actor = raw.get("Actor") or {}
        container_id = str(raw.get("id") or actor.get("ID") or "")
        if not container_id:
            return None
        attributes = actor.get("Attributes") or {}
        exit_code = ""
        for name in self.exit_code_attributes:
            if attributes.get(name) is not None:
                exit_code = str(attributes[name])
                break
        return DieEvent(container_id=container_id, exit_code=exit_code)

    def close(self) -> None:
        with self._stream_lock:
            stream, self._stream = self._stream, None
        if stream is not None:
            stream.close()
        self._client.close()


class PodmanEngine(DockerEngine):
    """Podman through its Docker-compatible service socket."""

    kind = EngineKind.PODMAN
    exit_code_attributes = ("containerExitCode", "exitCode")
