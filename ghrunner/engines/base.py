from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Mapping, Sequence


class EngineKind(str, Enum):
    DOCKER = "docker"
    PODMAN = "podman"


class EngineError(RuntimeError):
    """Raised when no engine is reachable or an engine call fails."""


@dataclass(frozen=True)
class DieEvent:
    container_id: str
    exit_code: str


class ContainerEngine(ABC):
    """Minimal container engine surface the lifecycle controller relies on."""

    kind: EngineKind

    @abstractmethod
    def create_container(self, image: str, env: Sequence[str], labels: Mapping[str, str]) -> str:
        """Create (but do not start) a container and return its id."""

    @abstractmethod
    def start_container(self, container_id: str) -> None: ...

    @abstractmethod
    def remove_container(self, container_id: str) -> None: ...

    @abstractmethod
    def die_events(self) -> Iterator[DieEvent]:
        """Subscribe to the engine event stream and return an iterator of termination events.

        The subscription is in place when this returns; iterating blocks on the stream.
        """

    def close(self) -> None:
        return None
