from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from ghrunner.engines.base import EngineKind


RUNNER_LABELS: dict[str, str] = {
    "kind": "runner",
    "platform": "github",
}


@dataclass(frozen=True)
class ContainerJob:
    engine_kind: EngineKind
    image: str
    # KEY=VALUE entries; holds the registration token.
    env: tuple[str, ...] = field(default=(), repr=False)


class ContainerState(str, Enum):
    REQUESTED = "requested"
    CREATED = "created"
    STARTED = "started"
    EXITED = "exited"
    REMOVED = "removed"
    RETAINED = "retained"


def runner_env(*, repo_path: str, registration_token: str) -> tuple[str, ...]:
    return (
        f"GH_RUNNER_REPO_PATH={repo_path}",
        f"GH_RUNNER_TOKEN={registration_token}",
    )
