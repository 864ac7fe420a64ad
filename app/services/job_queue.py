"""Durable job queue with lock-guarded enqueue and dequeue."""

import asyncio
import json
import os
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import AsyncIterator, List, Optional
import aiofiles
from cachetools import TTLCache
from app.config import settings
from app.exceptions import LockTimeoutError
from app.models.copy_models import JobPayload
from app.utils.logger import setup_logger

logger = setup_logger(__name__)


class LockManager:
    """Mutual exclusion with a bounded wait."""

    def __init__(self, timeout: Optional[float] = None):
        self.timeout = timeout if timeout is not None else settings.queue_lock_timeout_seconds
        self._lock = asyncio.Lock()

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[None]:
        """Hold the lock for the duration of the block.

        Raises:
            LockTimeoutError: If the lock is not acquired within the timeout
        """
        try:
            await asyncio.wait_for(self._lock.acquire(), timeout=self.timeout)
        except asyncio.TimeoutError:
            raise LockTimeoutError(
                f"Could not acquire queue lock within {self.timeout} seconds"
            ) from None
        try:
            yield
        finally:
            self._lock.release()

    def locked(self) -> bool:
        return self._lock.locked()


class QueueStore:
    """Persists the list of queued job IDs as a JSON file."""

    def __init__(self, path: Optional[str] = None):
        self.path = Path(path or settings.queue_state_path)

    async def read(self) -> List[str]:
        if not self.path.exists():
            return []
        async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
            raw = await f.read()
        if not raw.strip():
            return []
        try:
            job_ids = json.loads(raw)
        except json.JSONDecodeError:
            logger.error(f"Queue file {self.path} is corrupt - starting with an empty queue")
            return []
        return [str(job_id) for job_id in job_ids]

    async def write(self, job_ids: List[str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
            await f.write(json.dumps(job_ids))
        os.replace(tmp_path, self.path)


class PayloadCache:
    """Expiring store for job payloads, keyed by job ID."""

    def __init__(self, ttl: Optional[int] = None, maxsize: Optional[int] = None):
        self._cache: TTLCache = TTLCache(
            maxsize=maxsize or settings.job_cache_max_size,
            ttl=ttl or settings.job_payload_ttl_seconds,
        )

    def put(self, job_id: str, payload: JobPayload) -> None:
        self._cache[job_id] = payload

    def get(self, job_id: str) -> Optional[JobPayload]:
        return self._cache.get(job_id)

    def remove(self, job_id: str) -> None:
        self._cache.pop(job_id, None)

    def __len__(self) -> int:
        return len(self._cache)


class JobQueue:
    """FIFO queue of copy jobs.

    Only job IDs go through the locked queue file; payloads live in the
    expiring cache. A job whose payload expired before it is dequeued is
    dropped by the processor.
    """

    def __init__(self, store: QueueStore, payloads: PayloadCache, lock: LockManager):
        """Initialize the job queue.

        Args:
            store: Durable store for the queued job IDs
            payloads: Expiring store for job payloads
            lock: Lock guarding every queue mutation
        """
        self.store = store
        self.payloads = payloads
        self.lock = lock

    async def submit(
        self,
        source_folder_id: str,
        destination_folder_id: str,
        callback_url: str,
        new_folder_name: Optional[str] = None,
        save_json_output: Optional[bool] = None,
    ) -> str:
        """Store a job payload and queue its ID.

        Returns:
            The new job ID
        """
        job_id = str(uuid.uuid4())
        payload = JobPayload(
            job_id=job_id,
            source_folder_id=source_folder_id,
            destination_folder_id=destination_folder_id,
            new_folder_name=new_folder_name,
            save_json_output=save_json_output,
            callback_url=callback_url,
            submitted_at=datetime.now(),
        )
        self.payloads.put(job_id, payload)
        try:
            await self.enqueue(job_id)
        except Exception:
            self.payloads.remove(job_id)
            raise

        logger.info(f"Queued job {job_id} ({source_folder_id} -> {destination_folder_id})")
        return job_id

    async def enqueue(self, job_id: str) -> None:
        """Append a job ID to the end of the queue."""
        async with self.lock.hold():
            job_ids = await self.store.read()
            job_ids.append(job_id)
            await self.store.write(job_ids)

    async def dequeue(self) -> Optional[str]:
        """Remove and return the oldest job ID, or None if the queue is empty."""
        async with self.lock.hold():
            job_ids = await self.store.read()
            if not job_ids:
                return None
            job_id = job_ids.pop(0)
            await self.store.write(job_ids)
            return job_id

    async def pending_count(self) -> int:
        """Number of job IDs waiting in the queue."""
        return len(await self.store.read())
