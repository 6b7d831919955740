from __future__ import annotations

import logging
from dataclasses import dataclass

from ghrunner.config.load_config import ProvisionerConfig
from ghrunner.engines.provider import EngineProvider
from ghrunner.github.token_cache import RegistrationTokenCache
from ghrunner.runtime.lifecycle import ContainerLifecycle
from ghrunner.runtime.worker import ContainerWorkerPool


logger = logging.getLogger(__name__)


@dataclass
class ProvisionerState:
    """Process-wide collaborators, built once at startup."""

    config: ProvisionerConfig
    token_cache: RegistrationTokenCache
    engines: EngineProvider
    lifecycle: ContainerLifecycle
    pool: ContainerWorkerPool

    def start(self) -> None:
        if self.config.enable_workers:
            self.pool.start()

    def stop(self) -> None:
        self.pool.stop(timeout_s=1.0)
        self.engines.close()


def build_state(
    config: ProvisionerConfig,
    *,
    token_cache: RegistrationTokenCache | None = None,
    engines: EngineProvider | None = None,
) -> ProvisionerState:
    engines = engines or EngineProvider()
    lifecycle = ContainerLifecycle(engines)
    return ProvisionerState(
        config=config,
        token_cache=token_cache or RegistrationTokenCache.for_repository(config),
        engines=engines,
        lifecycle=lifecycle,
        pool=ContainerWorkerPool(lifecycle.provision),
    )


def bootstrap_state(config: ProvisionerConfig) -> ProvisionerState:
    """Build the state and perform the initial token fetch.

    A RegistrationError here is fatal: without a valid token the server cannot
    provision anything.
    """
    state = build_state(config)
    state.token_cache.get_token()
    logger.info("Provisioning runners for %s with image %s", config.repo_path, config.container_image)
    return state
