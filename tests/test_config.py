from __future__ import annotations

import pytest

from ghrunner.config.load_config import DEFAULT_API_URL, ConfigError, load_config
from ghrunner.engines.base import EngineKind


def _env(**extra: str) -> dict[str, str]:
    env = {
        "GH_RUNNER_REPO_PATH": "octo/hello-world",
        "GH_RUNNER_REPO_ACCESS_TOKEN": "ghtoken123",
        "GH_RUNNER_CT_IMAGE": "image:latest",
    }
    env.update(extra)
    return env


def test_load_config_success() -> None:
    cfg = load_config(_env(CT_ENGINE="podman", GH_WEBHOOK_SECRET="webhook<S3cr3t123", PORT="8081"))
    assert cfg.repo_path == "octo/hello-world"
    assert cfg.repo_access_token == "ghtoken123"
    assert cfg.container_image == "image:latest"
    assert cfg.container_engine is EngineKind.PODMAN
    assert cfg.webhook_secret == "webhook<S3cr3t123"
    assert cfg.port == 8081


def test_load_config_optional_fields_default() -> None:
    cfg = load_config(_env())
    assert cfg.container_engine is None
    assert cfg.webhook_secret == ""
    assert cfg.port == 3000
    assert cfg.api_url == DEFAULT_API_URL
    assert cfg.api_timeout_s is None
    assert cfg.enable_workers is True


@pytest.mark.parametrize("missing", ["GH_RUNNER_REPO_PATH", "GH_RUNNER_REPO_ACCESS_TOKEN", "GH_RUNNER_CT_IMAGE"])
def test_load_config_missing_required_key(missing: str) -> None:
    env = _env()
    env.pop(missing)
    with pytest.raises(ConfigError) as e:
        load_config(env)
    assert missing in str(e.value)


def test_load_config_blank_required_key_is_rejected() -> None:
    with pytest.raises(ConfigError):
        load_config(_env(GH_RUNNER_REPO_PATH="   "))


def test_load_config_reads_process_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for k, v in _env(CT_ENGINE="docker").items():
        monkeypatch.setenv(k, v)
    cfg = load_config()
    assert cfg.container_engine is EngineKind.DOCKER


def test_load_config_unknown_engine() -> None:
    with pytest.raises(ConfigError):
        load_config(_env(CT_ENGINE="lxc"))


def test_load_config_bad_port_falls_back_to_default() -> None:
    cfg = load_config(_env(PORT="eighty"))
    assert cfg.port == 3000


def test_load_config_bad_timeout() -> None:
    with pytest.raises(ConfigError):
        load_config(_env(GH_API_TIMEOUT_S="soon"))


def test_load_config_api_url_and_timeout() -> None:
    cfg = load_config(_env(GH_API_URL="https://ghe.example.com/api/v3/", GH_API_TIMEOUT_S="2.5"))
    assert cfg.api_url == "https://ghe.example.com/api/v3"
    assert cfg.api_timeout_s == pytest.approx(2.5)


def test_config_repr_hides_secrets() -> None:
    cfg = load_config(_env(GH_WEBHOOK_SECRET="hush"))
    text = repr(cfg)
    assert "ghtoken123" not in text
    assert "hush" not in text
