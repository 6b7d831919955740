from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from ghrunner.api.errors import APIError, api_error_handler, unhandled_error_handler
from ghrunner.config.load_config import load_config
from ghrunner.runtime.state import ProvisionerState, bootstrap_state

from .routers.health import router as health_router
from .routers.webhook import router as webhook_router


logger = logging.getLogger(__name__)


def create_app(*, state: ProvisionerState | None = None) -> FastAPI:
    """Build the webhook server.

    Without an injected `state`, configuration is read from the environment and
    the first registration token is fetched during startup; either failing aborts
    startup before the server listens.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):  # noqa: ANN202
        provisioner = state
        if provisioner is None:
            provisioner = bootstrap_state(load_config())
        provisioner.start()
        app.state.provisioner = provisioner
        try:
            yield
        finally:
            provisioner.stop()

    app = FastAPI(title="GitHub runner provisioner", version="0.1.0", lifespan=lifespan)

    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(webhook_router, tags=["webhook"])
    app.include_router(health_router, tags=["system"])

    return app


app = create_app()
