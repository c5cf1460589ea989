"""
Run lifecycle: the status state machine of a workflow run and the service
that creates, reconciles and cancels runs against the engine.

    queued -> running -> completed | failed | cancelled
    queued ------------> completed | failed | cancelled

Terminal states never change again.
"""
from __future__ import annotations

import json
from datetime import datetime
from typing import Any, Dict, Optional

from ..workflow_store import RunStatus, WorkflowRecord, WorkflowRun, WorkflowStore, utcnow
from .engine_client import EngineClient, EngineJob
from .errors import DagflowError, ExternalEngineError, InvalidRunTransitionError, WorkflowNotFoundError
from .io_logger import get_component_logger
from .service_envs import collect_service_envs

logger = get_component_logger("RUN_LIFECYCLE")

CANCEL_REASON = "Cancelled by user"

ALLOWED_TRANSITIONS = {
    RunStatus.QUEUED: {RunStatus.RUNNING, RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED},
    RunStatus.RUNNING: {RunStatus.COMPLETED, RunStatus.FAILED, RunStatus.CANCELLED},
    RunStatus.COMPLETED: set(),
    RunStatus.FAILED: set(),
    RunStatus.CANCELLED: set(),
}


def can_transition(current: RunStatus, target: RunStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[RunStatus(current)]


def transition(run: WorkflowRun, target: RunStatus) -> None:
    current = RunStatus(run.status)
    if not can_transition(current, target):
        raise InvalidRunTransitionError(f"Cannot move run {run.id} from {current.value} to {target.value}")
    run.status = target


def _describe_failure(result: Any) -> str:
    if result is None:
        return "Unknown error"
    if isinstance(result, (dict, list)):
        return json.dumps(result, ensure_ascii=False)
    return str(result)


def apply_job_status(run: WorkflowRun, job: EngineJob, now: Optional[datetime] = None) -> bool:
    """
    Fold one engine job observation into the run record.

    A finished job completes (keeping its result) or fails (keeping its
    result as the error text); a running job moves a queued run to running.
    Returns True when the record changed.
    """
    now = now or utcnow()
    status = RunStatus(run.status)
    if status.is_terminal:
        return False

    if not job.running:
        if job.success:
            transition(run, RunStatus.COMPLETED)
            run.result = job.result
            run.error = None
        else:
            transition(run, RunStatus.FAILED)
            run.result = None
            run.error = _describe_failure(job.result)
        run.completed_at = now
        return True

    if status == RunStatus.QUEUED:
        transition(run, RunStatus.RUNNING)
        run.started_at = now
        return True

    return False


class RunService:
    """Creates runs on the engine and keeps their records in step with it."""

    def __init__(self, store: WorkflowStore, engine_client: Optional[EngineClient] = None):
        self.store = store
        self.engine_client = engine_client

    async def create_run(self, workflow: WorkflowRecord, inputs: Optional[Dict[str, Any]] = None) -> WorkflowRun:
        """
        Start `workflow` with `inputs` and record the run as queued.

        Without an engine the run is stored with no job id and stays queued.
        An engine failure raises ExternalEngineError and nothing is stored.
        A deleted workflow raises WorkflowNotFoundError.
        """
        current = await self.store.get_workflow(workflow.id)
        if current is None:
            raise WorkflowNotFoundError(workflow.id)
        workflow = current
        if not workflow.flow_path:
            raise DagflowError(f"Workflow {workflow.id} has no flow path")

        inputs = dict(inputs or {})
        job_id = None
        if self.engine_client is not None:
            args = {**inputs, "serviceEnvs": collect_service_envs()}
            try:
                job_id = await self.engine_client.run_flow(workflow.flow_path, args)
            except ExternalEngineError as e:
                logger.error("Failed to start flow", data={"flow_path": workflow.flow_path, "error": str(e)})
                raise
        else:
            logger.warning("No engine configured; run stays queued", data={"workflow_id": workflow.id})

        run = await self.store.create_run(workflow.id, inputs, external_job_id=job_id)
        logger.info("Run created", data={"job_id": job_id}, run_id=run.id)
        return run

    async def refresh_run(self, run: WorkflowRun) -> WorkflowRun:
        """Reconcile one active run against its engine job; raises on engine errors."""
        if self.engine_client is None or not run.external_job_id or RunStatus(run.status).is_terminal:
            return run
        job = await self.engine_client.get_job(run.external_job_id)
        if apply_job_status(run, job):
            run = await self.store.save_run(run)
            logger.info(f"Run -> {RunStatus(run.status).value}", run_id=run.id)
        return run

    async def get_run(self, run_id: str, refresh: bool = True) -> WorkflowRun:
        run = await self.store.get_run(run_id)
        if not refresh:
            return run
        try:
            return await self.refresh_run(run)
        except ExternalEngineError as e:
            logger.error("Failed to poll engine job", data={"job_id": run.external_job_id, "error": str(e)}, run_id=run_id)
            return run

    async def cancel_run(self, run_id: str) -> WorkflowRun:
        run = await self.store.get_run(run_id)
        status = RunStatus(run.status)
        if status.is_terminal:
            raise InvalidRunTransitionError(f"Cannot cancel run with status: {status.value}")

        if run.external_job_id and self.engine_client is not None:
            try:
                await self.engine_client.cancel_job(run.external_job_id, CANCEL_REASON)
            except ExternalEngineError as e:
                logger.error("Failed to cancel engine job", data={"job_id": run.external_job_id, "error": str(e)}, run_id=run_id)

        transition(run, RunStatus.CANCELLED)
        run.completed_at = utcnow()
        run = await self.store.save_run(run)
        logger.info("Run cancelled", run_id=run_id)
        return run
