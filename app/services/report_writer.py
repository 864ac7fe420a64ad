"""Saving the copy result as a JSON report inside the new folder."""

from typing import TYPE_CHECKING, Optional
from app.config import settings
from app.models.copy_models import CopyResult, FileRecord
from app.services.drive_service import DriveService
from app.utils.formatting import utc_now_iso
from app.utils.logger import setup_logger

if TYPE_CHECKING:
    from app.services.copy_service import CopyContext

logger = setup_logger(__name__)

REPORT_MIME_TYPE = "application/json"

# The recorded size only grows between attempts, so a few are enough
MAX_SERIALIZE_ATTEMPTS = 10


class ReportWriter:
    """Writes a copy result into the folder tree the result describes.

    The report lists itself among the copied files, including its own size,
    so it is written in two steps: an empty placeholder file is created to
    learn its ID and link, then the full result is serialized and written
    over it. The serialized size is settled before writing, and the size
    read back from the drive is what ends up in the returned result.
    """

    def __init__(self, drive: DriveService, filename: Optional[str] = None):
        self.drive = drive
        self.filename = filename or settings.json_report_filename

    async def save_report(self, result: CopyResult, context: "CopyContext") -> None:
        """Save the result as a report file in the new main folder.

        Any failure is recorded in result.errors and marks the result as
        unsuccessful.

        Args:
            result: Result of the finished copy run, updated in place
            context: State of the copy run the result was built from
        """
        root = result.folder_structure
        if root is None:
            return

        record: Optional[FileRecord] = None
        try:
            placeholder = await self.drive.create_file(root.id, self.filename, b"", REPORT_MIME_TYPE)
            record = FileRecord(
                name=placeholder.name,
                id=placeholder.id,
                url=placeholder.web_url,
                path=context.path_cache.get(root.id) or root.name,
                folder_id=root.id,
                size=0,
                mime_type=placeholder.mime_type or REPORT_MIME_TYPE,
                created_time=utc_now_iso(placeholder.created_date_time) if placeholder.created_date_time else None,
            )
            root.files[record.name] = record
            context.created_files.append(record)
            result.summary = context.summarize()

            content = self._serialize(result, record, context)
            await self.drive.update_file_content(record.id, content, REPORT_MIME_TYPE)

            persisted = await self.drive.get_file(record.id)
            if persisted.size != record.size:
                logger.warning(
                    f"Report size on drive ({persisted.size}) differs from written size ({record.size})"
                )
            record.size = persisted.size
            result.summary = context.summarize()
            logger.info(f"Saved JSON report '{record.name}' ({record.size} bytes)")

        except Exception as e:
            if record is not None:
                # The placeholder holds no report; keep it out of the result
                if root.files.get(record.name) is record:
                    del root.files[record.name]
                context.created_files = [f for f in context.created_files if f is not record]
                result.summary = context.summarize()
            save_error = f"Failed to save JSON report file: {e}"
            logger.error(save_error)
            result.errors.append(save_error)
            result.success = False

    @staticmethod
    def _serialize(result: CopyResult, record: FileRecord, context: "CopyContext") -> bytes:
        """Serialize the result so that the report's own size matches the content length.

        When the content comes out shorter than the recorded size, trailing
        whitespace fills the gap; JSON parsers ignore it.
        """
        content = b""
        for _ in range(MAX_SERIALIZE_ATTEMPTS):
            content = result.model_dump_json(by_alias=True, indent=2).encode("utf-8")
            if len(content) <= record.size:
                return content + b"\n" * (record.size - len(content))
            record.size = len(content)
            result.summary = context.summarize()
        return content
