"""Construction and lookup of the application's services."""

from typing import Optional
from fastapi import Request
from app.config import Settings, settings as default_settings
from app.services.auth_service import AuthService
from app.services.callback_service import CallbackDispatcher
from app.services.copy_service import FolderCopyService
from app.services.drive_service import DriveService
from app.services.job_processor import JobProcessor, JobScheduler
from app.services.job_queue import JobQueue, LockManager, PayloadCache, QueueStore
from app.services.rate_limiter import RateLimiter
from app.services.report_writer import ReportWriter
from app.utils.logger import setup_logger

logger = setup_logger(__name__)


class ServiceContainer:
    """Holds one instance of every service for the lifetime of the app."""

    def __init__(
        self,
        settings: Settings = default_settings,
        drive: Optional[DriveService] = None,
        dispatcher: Optional[CallbackDispatcher] = None,
    ):
        self.settings = settings
        self.drive = drive or DriveService(settings.drive_id)
        self.auth = AuthService(settings.api_key, settings.folder_id_pattern)
        self.rate_limiter = RateLimiter(
            settings.rate_limit_window_seconds, settings.rate_limit_cache_ttl_seconds
        )
        self.copy_service = FolderCopyService(
            self.drive,
            ReportWriter(self.drive, settings.json_report_filename),
            settings.save_json_report_default,
        )
        self.job_queue = JobQueue(
            store=QueueStore(settings.queue_state_path),
            payloads=PayloadCache(settings.job_payload_ttl_seconds, settings.job_cache_max_size),
            lock=LockManager(settings.queue_lock_timeout_seconds),
        )
        self.dispatcher = dispatcher or CallbackDispatcher(settings.callback_timeout_seconds)
        self.processor = JobProcessor(self.job_queue, self.copy_service, self.dispatcher)
        self.scheduler = JobScheduler(self.processor, settings.job_tick_interval_seconds)

    async def startup(self) -> None:
        if self.settings.enable_job_scheduler:
            self.scheduler.start()
        else:
            logger.info("Job scheduler disabled - queued jobs will not be processed")

    async def shutdown(self) -> None:
        await self.scheduler.stop()


def get_container(request: Request) -> ServiceContainer:
    """FastAPI dependency returning the app's service container."""
    return request.app.state.services
