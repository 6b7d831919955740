from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Mapping

from ghrunner.engines.base import EngineKind


logger = logging.getLogger(__name__)

DEFAULT_PORT = 3000
DEFAULT_API_URL = "https://api.github.com"


class ConfigError(RuntimeError):
    pass


def _as_required_str(value: Any, *, key: str) -> str:
    if value is None:
        raise ConfigError(f"Missing required config key: {key}")
    s = str(value).strip()
    if not s:
        raise ConfigError(f"Invalid {key}: empty string")
    return s


def _as_optional_str(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _as_engine_kind(value: Any, *, key: str) -> EngineKind | None:
    s = _as_optional_str(value).lower()
    if not s:
        return None
    try:
        return EngineKind(s)
    except ValueError as e:
        allowed = ", ".join(k.value for k in EngineKind)
        raise ConfigError(f"Invalid {key}: {s!r} (expected one of: {allowed})") from e


def _as_port(value: Any, *, key: str) -> int:
    s = _as_optional_str(value)
    if not s:
        return DEFAULT_PORT
    try:
        port = int(s)
    except ValueError:
        logger.warning("Cannot convert %s=%r into integer; using default port %d", key, s, DEFAULT_PORT)
        return DEFAULT_PORT
    if port < 1 or port > 65535:
        raise ConfigError(f"Invalid {key}: {port} is not a TCP port")
    return port


def _as_optional_float(value: Any, *, key: str) -> float | None:
    s = _as_optional_str(value)
    if not s:
        return None
    try:
        f = float(s)
    except ValueError as e:
        raise ConfigError(f"Invalid float for {key}: {s!r}") from e
    if f <= 0:
        raise ConfigError(f"Invalid {key}: must be > 0, got {f}")
    return f


def _as_bool(value: Any, *, default: bool) -> bool:
    s = _as_optional_str(value).lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    return default


@dataclass(frozen=True)
class ProvisionerConfig:
    repo_path: str
    repo_access_token: str = field(repr=False)
    container_image: str
    container_engine: EngineKind | None = None
    webhook_secret: str = field(default="", repr=False)
    port: int = DEFAULT_PORT
    api_url: str = DEFAULT_API_URL
    api_timeout_s: float | None = None
    enable_workers: bool = True


def load_config(environ: Mapping[str, str] | None = None) -> ProvisionerConfig:
    """Read and validate the provisioner settings from the environment.

    Raises ConfigError on the first missing or malformed value so the process
    can stop before it starts listening.
    """
    env = os.environ if environ is None else environ

    return ProvisionerConfig(
        repo_path=_as_required_str(env.get("GH_RUNNER_REPO_PATH"), key="GH_RUNNER_REPO_PATH"),
        repo_access_token=_as_required_str(
            env.get("GH_RUNNER_REPO_ACCESS_TOKEN"), key="GH_RUNNER_REPO_ACCESS_TOKEN"
        ),
        container_image=_as_required_str(env.get("GH_RUNNER_CT_IMAGE"), key="GH_RUNNER_CT_IMAGE"),
        container_engine=_as_engine_kind(env.get("CT_ENGINE"), key="CT_ENGINE"),
        webhook_secret=_as_optional_str(env.get("GH_WEBHOOK_SECRET")),
        port=_as_port(env.get("PORT"), key="PORT"),
        api_url=(_as_optional_str(env.get("GH_API_URL")) or DEFAULT_API_URL).rstrip("/"),
        api_timeout_s=_as_optional_float(env.get("GH_API_TIMEOUT_S"), key="GH_API_TIMEOUT_S"),
        enable_workers=_as_bool(env.get("GH_RUNNER_ENABLE_WORKERS"), default=True),
    )
