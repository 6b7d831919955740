from __future__ import annotations

import time
from typing import Any

from fastapi import APIRouter, Depends

from ghrunner.api.dependencies import get_state
from ghrunner.runtime.state import ProvisionerState


router = APIRouter()


@router.get("/healthz")
def healthz() -> dict[str, str]:
    return {"status": "ok"}


@router.get("/system/worker")
def system_worker(state: ProvisionerState = Depends(get_state)) -> dict[str, Any]:
    # Runtime observability; `queue.dropped` shows saturation.
    return {
        "ts": time.time(),
        "queue": state.pool.status_snapshot(),
        "lifecycle": state.lifecycle.status_snapshot(),
        "registration_token": state.token_cache.snapshot(),
    }
