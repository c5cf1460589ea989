import asyncio
from typing import Optional

from ..workflow_store import RunStatus, WorkflowStore
from .constants import get_poll_interval
from .engine_client import EngineClient
from .errors import PollError
from .io_logger import get_component_logger
from .run_lifecycle import apply_job_status

logger = get_component_logger("JOB_POLLER")


class JobPoller:
    """
    Periodically reconciles every queued or running run with its engine job.

    Ticks never overlap: a tick that starts while the previous one is still
    working returns immediately. Runs within a tick are handled one by one.
    """

    def __init__(self, store: WorkflowStore, engine_client: EngineClient, poll_interval: Optional[float] = None):
        self.store = store
        self.engine_client = engine_client
        self.poll_interval = poll_interval if poll_interval is not None else get_poll_interval()
        self.is_polling = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        logger.info(f"Starting (every {self.poll_interval}s)")
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
        logger.info("Stopped")

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval)
            await self.poll_once()

    async def poll_once(self) -> int:
        """Run one reconciliation tick; returns how many runs changed."""
        if self.is_polling:
            return 0
        self.is_polling = True
        changed = 0
        try:
            try:
                active_runs = await self.store.list_active_runs()
            except Exception as e:
                logger.error("Error fetching active runs", data={"error": str(e)})
                return 0

            for run in active_runs:
                if not run.external_job_id:
                    continue
                try:
                    job = await self.engine_client.get_job(run.external_job_id)
                    if apply_job_status(run, job):
                        stored = await self.store.save_run(run)
                        if RunStatus(stored.status) == RunStatus(run.status):
                            changed += 1
                            logger.info(f"Run {run.id} -> {RunStatus(run.status).value}")
                except Exception as e:
                    error = PollError(run.id, e)
                    logger.error(str(error), data={"job_id": run.external_job_id})
            return changed
        finally:
            self.is_polling = False
