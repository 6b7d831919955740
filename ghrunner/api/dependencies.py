from __future__ import annotations

from fastapi import Request

from ghrunner.api.errors import APIError
from ghrunner.runtime.state import ProvisionerState


def get_state(request: Request) -> ProvisionerState:
    """FastAPI dependency: the ProvisionerState built by the app lifespan."""
    state = getattr(request.app.state, "provisioner", None)
    if not isinstance(state, ProvisionerState):
        raise APIError(status_code=503, code="unavailable", message="Provisioner is not initialized.")
    return state
