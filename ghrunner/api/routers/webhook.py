from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, Depends, Header, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, TypeAdapter, ValidationError

from ghrunner.api.dependencies import get_state
from ghrunner.api.errors import APIError
from ghrunner.engines.base import EngineError, EngineKind
from ghrunner.engines.provider import detect_engine_kind
from ghrunner.github.registration import RegistrationError
from ghrunner.github.signature import SIGNATURE_HEADER, SignatureError, check_webhook_signature
from ghrunner.runtime.state import ProvisionerState
from ghrunner.runtime.types import ContainerJob, runner_env


logger = logging.getLogger(__name__)

router = APIRouter()


class WorkflowJob(BaseModel):
    id: int = 0


class WorkflowJobEvent(BaseModel):
    action: str = ""
    workflow_job: WorkflowJob | None = None

    @property
    def job_id(self) -> int:
        return self.workflow_job.id if self.workflow_job is not None else 0


# A JSON `null` body decodes to no event at all and is acknowledged like any non-queued action.
_EVENT_ADAPTER: TypeAdapter[WorkflowJobEvent | None] = TypeAdapter(WorkflowJobEvent | None)


def _resolve_engine(state: ProvisionerState) -> EngineKind:
    return state.config.container_engine or detect_engine_kind()


def _enqueue_runner(state: ProvisionerState, event: WorkflowJobEvent) -> None:
    """Everything after parsing: failures are logged, never surfaced to the sender."""
    job_id = event.job_id
    logger.info("New job queued: ID=%d", job_id)

    try:
        engine_kind = _resolve_engine(state)
    except EngineError as e:
        logger.error("Job %d not provisioned: %s", job_id, e)
        return
    logger.info("Container engine: %s", engine_kind.value)

    try:
        token = state.token_cache.get_token()
    except RegistrationError as e:
        logger.error("Job %d not provisioned: unable to get runner registration token: %s", job_id, e)
        return

    job = ContainerJob(
        engine_kind=engine_kind,
        image=state.config.container_image,
        env=runner_env(repo_path=state.config.repo_path, registration_token=token),
    )
    state.pool.submit(job)


@router.post("/webhook")
async def github_webhook(
    request: Request,
    signature: str | None = Header(default=None, alias=SIGNATURE_HEADER),
    state: ProvisionerState = Depends(get_state),
) -> dict[str, Any]:
    try:
        body = await request.body()
    except Exception as e:
        raise APIError(status_code=400, code="invalid_argument", message="failed to read body") from e

    try:
        check_webhook_signature(body, signature, state.config.webhook_secret)
    except SignatureError as e:
        raise APIError(status_code=401, code="unauthenticated", message=str(e), details={"reason": e.reason}) from e

    try:
        event = _EVENT_ADAPTER.validate_json(body)
    except ValidationError as e:
        raise APIError(status_code=400, code="invalid_argument", message="bad request") from e

    if event is None or event.action != "queued":
        return {}

    await run_in_threadpool(_enqueue_runner, state, event)
    return {}
