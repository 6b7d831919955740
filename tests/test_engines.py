from __future__ import annotations

import time
from types import SimpleNamespace
from typing import Any

import pytest
from docker.errors import APIError
from requests.exceptions import ConnectionError as TransportError

from ghrunner.engines.base import DieEvent, EngineError, EngineKind
from ghrunner.engines.docker_engine import DockerEngine, PodmanEngine
from ghrunner.engines.events import DispatcherConfig, ExitEventDispatcher
from ghrunner.engines.provider import (
    DOCKER_SOCKET,
    ROOTFUL_PODMAN_SOCKET,
    detect_engine_kind,
    engine_socket_path,
    open_engine,
    podman_socket_candidates,
)

from tests._testkit import FakeEngine


def test_podman_socket_rootful_and_rootless() -> None:
    assert podman_socket_candidates({}) == [ROOTFUL_PODMAN_SOCKET]
    assert podman_socket_candidates({"XDG_RUNTIME_DIR": "/run/user/1000"}) == [
        "/run/user/1000/podman/podman.sock",
        ROOTFUL_PODMAN_SOCKET,
    ]
    assert engine_socket_path(EngineKind.DOCKER, {"XDG_RUNTIME_DIR": "/run/user/1000"}) == DOCKER_SOCKET


def test_podman_socket_prefers_rootless_when_present() -> None:
    env = {"XDG_RUNTIME_DIR": "/run/user/1000"}
    present = {"/run/user/1000/podman/podman.sock", ROOTFUL_PODMAN_SOCKET}
    assert engine_socket_path(EngineKind.PODMAN, env, exists=present.__contains__) == "/run/user/1000/podman/podman.sock"


def test_podman_socket_falls_back_to_rootful_with_runtime_dir_set() -> None:
    env = {"XDG_RUNTIME_DIR": "/run/user/1000"}
    exists = {ROOTFUL_PODMAN_SOCKET}.__contains__
    assert detect_engine_kind(env, exists=exists) is EngineKind.PODMAN
    assert engine_socket_path(EngineKind.PODMAN, env, exists=exists) == ROOTFUL_PODMAN_SOCKET


def test_open_engine_connects_to_the_detected_socket(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("ghrunner.engines.provider.PodmanEngine", lambda socket: SimpleNamespace(socket_path=socket))
    env = {"XDG_RUNTIME_DIR": "/run/user/1000"}
    engine = open_engine(EngineKind.PODMAN, env, exists={ROOTFUL_PODMAN_SOCKET}.__contains__)
    assert engine.socket_path == ROOTFUL_PODMAN_SOCKET


def test_detect_prefers_podman() -> None:
    present = {ROOTFUL_PODMAN_SOCKET, DOCKER_SOCKET}
    assert detect_engine_kind({}, exists=present.__contains__) is EngineKind.PODMAN


def test_detect_rootless_podman() -> None:
    present = {"/run/user/1000/podman/podman.sock"}
    env = {"XDG_RUNTIME_DIR": "/run/user/1000"}
    assert detect_engine_kind(env, exists=present.__contains__) is EngineKind.PODMAN


def test_detect_falls_back_to_docker() -> None:
    assert detect_engine_kind({}, exists={DOCKER_SOCKET}.__contains__) is EngineKind.DOCKER


def test_detect_nothing_available() -> None:
    with pytest.raises(EngineError) as e:
        detect_engine_kind({}, exists=lambda _p: False)
    assert "No container engine available" in str(e.value)


def _die(attrs: dict[str, str], **extra: Any) -> dict[str, Any]:
    event = {"Type": "container", "Action": "die", "status": "die", "id": "abc123", "Actor": {"ID": "abc123", "Attributes": attrs}}
    event.update(extra)
    return event


def test_docker_die_event_exit_code() -> None:
    engine = DockerEngine(DOCKER_SOCKET, client=SimpleNamespace())
    event = engine.parse_die_event(_die({"exitCode": "0", "image": "runner"}))
    assert event is not None
    assert (event.container_id, event.exit_code) == ("abc123", "0")


def test_podman_die_event_exit_code() -> None:
    engine = PodmanEngine(ROOTFUL_PODMAN_SOCKET, client=SimpleNamespace())
    event = engine.parse_die_event(_die({"containerExitCode": "3"}))
    assert event is not None
    assert event.exit_code == "3"


def test_die_event_without_exit_code_and_other_actions() -> None:
    engine = DockerEngine(DOCKER_SOCKET, client=SimpleNamespace())
    event = engine.parse_die_event(_die({}))
    assert event is not None and event.exit_code == ""
    assert engine.parse_die_event(_die({"exitCode": "0"}, Action="start", status="start")) is None


class _RaisingContainers:
    def create(self, image: str, **kwargs: Any) -> Any:
        raise APIError("no such image")


class _RaisingAPI:
    def start(self, container_id: str) -> None:
        raise APIError("cannot start")

    def remove_container(self, container_id: str) -> None:
        raise APIError("cannot remove")


def test_docker_sdk_errors_become_engine_errors() -> None:
    client = SimpleNamespace(containers=_RaisingContainers(), api=_RaisingAPI())
    engine = DockerEngine(DOCKER_SOCKET, client=client)
    with pytest.raises(EngineError):
        engine.create_container("runner", ["A=1"], {"kind": "runner"})
    with pytest.raises(EngineError):
        engine.start_container("abc")
    with pytest.raises(EngineError):
        engine.remove_container("abc")


def test_docker_engine_create_passes_env_and_labels() -> None:
    calls: list[dict[str, Any]] = []

    class _Containers:
        def create(self, image: str, **kwargs: Any) -> Any:
            calls.append({"image": image, **kwargs})
            return SimpleNamespace(id="c-1")

    engine = DockerEngine(DOCKER_SOCKET, client=SimpleNamespace(containers=_Containers()))
    cid = engine.create_container("runner:1", ("A=1", "B=2"), {"kind": "runner", "platform": "github"})
    assert cid == "c-1"
    assert calls == [{"image": "runner:1", "environment": ["A=1", "B=2"], "labels": {"kind": "runner", "platform": "github"}}]


def test_dispatcher_fires_callback_once() -> None:
    engine = FakeEngine()
    dispatcher = ExitEventDispatcher(engine)
    seen: list[tuple[str, str]] = []
    dispatcher.register("c1", lambda cid, code: seen.append((cid, code)))

    assert dispatcher.dispatch(DieEvent("c1", "0")) is True
    assert dispatcher.dispatch(DieEvent("c1", "0")) is False
    assert dispatcher.dispatch(DieEvent("c2", "1")) is False
    assert seen == [("c1", "0")]


def test_dispatcher_survives_failing_callback() -> None:
    engine = FakeEngine()
    dispatcher = ExitEventDispatcher(engine)

    def bad(cid: str, code: str) -> None:
        raise RuntimeError("handler bug")

    dispatcher.register("c1", bad)
    assert dispatcher.dispatch(DieEvent("c1", "0")) is True
    assert dispatcher.status_snapshot()["dispatched"] == 1


class _UnreachableDaemon:
    """Docker SDK client whose socket refuses every connection."""

    def __init__(self) -> None:
        self.containers = self
        self.api = self

    def create(self, image: str, **kwargs: Any) -> Any:
        raise TransportError("connection refused")

    def start(self, container_id: str) -> None:
        raise TransportError("connection refused")

    def remove_container(self, container_id: str) -> None:
        raise TransportError("connection refused")

    def events(self, **kwargs: Any) -> Any:
        raise TransportError("connection refused")


def test_docker_transport_errors_become_engine_errors() -> None:
    engine = DockerEngine(DOCKER_SOCKET, client=_UnreachableDaemon())
    with pytest.raises(EngineError):
        engine.create_container("runner", ["A=1"], {"kind": "runner"})
    with pytest.raises(EngineError):
        engine.start_container("abc")
    with pytest.raises(EngineError):
        engine.remove_container("abc")
    with pytest.raises(EngineError):
        engine.die_events()


def test_docker_event_stream_transport_error_becomes_engine_error() -> None:
    def broken_stream() -> Any:
        yield {"Action": "start", "id": "abc"}
        raise TransportError("connection reset")

    engine = DockerEngine(DOCKER_SOCKET, client=SimpleNamespace(events=lambda **_kw: broken_stream()))
    with pytest.raises(EngineError):
        list(engine.die_events())


def _wait_for(predicate, timeout_s: float = 5.0) -> bool:  # noqa: ANN001
    deadline = time.monotonic() + timeout_s
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


_FAST_RECONNECT = DispatcherConfig(reconnect_interval_s=0.01, ready_timeout_s=2.0)


@pytest.mark.parametrize(
    "error",
    [EngineError("events unavailable"), TransportError("connection refused"), RuntimeError("adapter bug")],
)
def test_dispatcher_resubscribes_after_failed_subscription(error: Exception) -> None:
    engine = FakeEngine()
    engine.subscribe_errors = [error, error]
    dispatcher = ExitEventDispatcher(engine, config=_FAST_RECONNECT)
    seen: list[str] = []
    dispatcher.register("c1", lambda cid, code: seen.append(cid))

    dispatcher.start()
    try:
        engine.emit_die("c1", "0")
        assert _wait_for(lambda: seen == ["c1"])
        assert dispatcher.running is True
        assert engine.subscriptions == 3
    finally:
        dispatcher.stop(timeout_s=0.0)
        engine.close()


def test_dispatcher_resubscribes_after_stream_ends() -> None:
    engine = FakeEngine()
    dispatcher = ExitEventDispatcher(engine, config=_FAST_RECONNECT)
    seen: list[str] = []
    dispatcher.register("c1", lambda cid, code: seen.append(cid))
    dispatcher.register("c2", lambda cid, code: seen.append(cid))

    dispatcher.start()
    try:
        engine.emit_die("c1", "0")
        assert _wait_for(lambda: seen == ["c1"])
        engine.end_stream()
        assert _wait_for(lambda: engine.subscriptions == 2)
        engine.emit_die("c2", "1")
        assert _wait_for(lambda: seen == ["c1", "c2"])
        assert dispatcher.status_snapshot()["subscribed"] is True
    finally:
        dispatcher.stop(timeout_s=0.0)
        engine.close()
