from __future__ import annotations

import logging
import re
import threading
from collections import Counter
from typing import Any

from ghrunner.engines.base import ContainerEngine, EngineError
from ghrunner.engines.provider import EngineProvider
from ghrunner.runtime.types import RUNNER_LABELS, ContainerJob, ContainerState


logger = logging.getLogger(__name__)


_EXIT_CODE = re.compile(r"[+-]?[0-9]+")


def classify_exit(exit_code: str) -> bool:
    """True only for a clean `0` exit; anything else (including garbage) is a failure."""
    if not _EXIT_CODE.fullmatch(exit_code):
        return False
    return int(exit_code) == 0


class ContainerLifecycle:
    """Drives one runner container per job: create -> start -> exit -> remove/retain.

    Successful containers are removed. Failed ones are left in place so their logs
    can be inspected; there is no eviction for them.
    """

    def __init__(self, provider: EngineProvider) -> None:
        self._provider = provider
        self._lock = threading.Lock()
        self._states: dict[str, ContainerState] = {}
        self._create_failures = 0

    def _set_state(self, container_id: str, state: ContainerState) -> None:
        with self._lock:
            if state is ContainerState.REMOVED:
                self._states.pop(container_id, None)
                return
            self._states[container_id] = state

    def state_of(self, container_id: str) -> ContainerState | None:
        with self._lock:
            return self._states.get(container_id)

    def provision(self, job: ContainerJob) -> str:
        engine, dispatcher = self._provider.get(job.engine_kind)

        try:
            container_id = engine.create_container(job.image, job.env, RUNNER_LABELS)
        except EngineError:
            with self._lock:
                self._create_failures += 1
            raise
        self._set_state(container_id, ContainerState.CREATED)

        # Register before starting so an immediate exit is not missed.
        dispatcher.register(container_id, lambda cid, code: self.handle_exit(engine, cid, code))
        try:
            engine.start_container(container_id)
        except EngineError:
            dispatcher.unregister(container_id)
            # Cause unknown: leave the created container for manual inspection.
            self._set_state(container_id, ContainerState.RETAINED)
            raise
        with self._lock:
            # The exit handler may already have run for a very short-lived container.
            if self._states.get(container_id) is ContainerState.CREATED:
                self._states[container_id] = ContainerState.STARTED
        logger.info("Container started with ID: %s", container_id)
        return container_id

    def handle_exit(self, engine: ContainerEngine, container_id: str, exit_code: str) -> None:
        self._set_state(container_id, ContainerState.EXITED)
        if not classify_exit(exit_code):
            logger.error("Container %s terminated with exit code %r", container_id, exit_code)
            logger.error("To find out what happened, please inspect the container logs")
            self._set_state(container_id, ContainerState.RETAINED)
            return

        logger.info("Container %s terminated with exit code %s", container_id, exit_code)
        try:
            engine.remove_container(container_id)
        except EngineError as e:
            logger.error("Failed to remove container %s: %s", container_id, e)
            self._set_state(container_id, ContainerState.RETAINED)
            return
        self._set_state(container_id, ContainerState.REMOVED)

    def status_snapshot(self) -> dict[str, Any]:
        with self._lock:
            counts = Counter(s.value for s in self._states.values())
            create_failures = self._create_failures
        return {
            "containers": {s.value: counts.get(s.value, 0) for s in ContainerState if s is not ContainerState.REMOVED},
            "create_failures": create_failures,
            **self._provider.status_snapshot(),
        }
