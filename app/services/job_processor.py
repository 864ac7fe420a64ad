"""Background processing of queued copy jobs."""

import asyncio
from typing import Any, Dict, Optional, Set
from app.config import settings
from app.exceptions import LockTimeoutError
from app.models.copy_models import JobPayload
from app.services.callback_service import CallbackDispatcher
from app.services.copy_service import FolderCopyService
from app.services.job_queue import JobQueue
from app.utils.logger import setup_logger

logger = setup_logger(__name__)


class JobProcessor:
    """Runs at most one queued job per tick and reports it to the callback URL."""

    def __init__(
        self,
        job_queue: JobQueue,
        copy_service: FolderCopyService,
        dispatcher: CallbackDispatcher,
    ):
        """Initialize the job processor.

        Args:
            job_queue: Queue to take jobs from
            copy_service: Service running the folder copy
            dispatcher: Callback delivery
        """
        self.job_queue = job_queue
        self.copy_service = copy_service
        self.dispatcher = dispatcher

    async def tick(self) -> Optional[str]:
        """Process the oldest queued job, if any.

        A job whose payload has expired is dropped without a callback. The
        payload is removed once the job has run, whether the copy succeeded
        or not, and the callback is sent in both cases.

        Returns:
            ID of the processed job, or None if nothing was processed
        """
        job_id = await self.job_queue.dequeue()
        if job_id is None:
            return None

        payload = self.job_queue.payloads.get(job_id)
        if payload is None:
            logger.debug(f"Job {job_id} has no payload (expired or never stored) - discarding")
            return None

        logger.info(f"Processing job {job_id}")
        try:
            envelope = await self._run_job(payload)
        finally:
            self.job_queue.payloads.remove(job_id)

        await self.dispatcher.deliver(payload.callback_url, envelope)
        logger.info(f"Job {job_id} finished (success={envelope['success']})")
        return job_id

    async def _run_job(self, payload: JobPayload) -> Dict[str, Any]:
        try:
            await self.copy_service.verify_access(
                payload.source_folder_id, payload.destination_folder_id
            )
            result = await self.copy_service.copy_folder_structure(
                payload.source_folder_id,
                payload.destination_folder_id,
                payload.new_folder_name,
                payload.save_json_output,
            )
        except Exception as e:
            logger.error(f"Job {payload.job_id} failed: {e}", exc_info=True)
            return {"success": False, "jobId": payload.job_id, "error": str(e)}

        return {"success": True, "jobId": payload.job_id, "data": result.to_json_dict()}


class JobScheduler:
    """Triggers JobProcessor.tick on a fixed interval.

    Each tick runs as its own task, so a long job does not delay the next
    tick and ticks can overlap.
    """

    def __init__(self, processor: JobProcessor, interval: Optional[float] = None):
        self.processor = processor
        self.interval = interval or settings.job_tick_interval_seconds
        self._loop_task: Optional[asyncio.Task] = None
        self._ticks: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._loop_task is not None and not self._loop_task.done()

    @property
    def active_ticks(self) -> int:
        return len(self._ticks)

    def start(self) -> None:
        if self.running:
            logger.warning("Job scheduler is already running")
            return
        self._loop_task = asyncio.create_task(self._run_loop())
        logger.info(f"Job scheduler started (interval: {self.interval}s)")

    async def stop(self) -> None:
        if self._loop_task is not None:
            self._loop_task.cancel()
            try:
                await self._loop_task
            except asyncio.CancelledError:
                pass
            self._loop_task = None

        if self._ticks:
            logger.warning(f"Interrupting {len(self._ticks)} running job(s) on shutdown")
            for tick in list(self._ticks):
                tick.cancel()
            await asyncio.gather(*self._ticks, return_exceptions=True)
        logger.info("Job scheduler stopped")

    async def _run_loop(self) -> None:
        while True:
            tick = asyncio.create_task(self._run_tick())
            self._ticks.add(tick)
            tick.add_done_callback(self._ticks.discard)
            await asyncio.sleep(self.interval)

    async def _run_tick(self) -> None:
        try:
            await self.processor.tick()
        except LockTimeoutError as e:
            logger.warning(f"Skipping tick: {e}")
        except Exception as e:
            logger.error(f"Job tick failed: {e}", exc_info=True)
