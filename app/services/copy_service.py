"""Recursive folder copy (structure first, then files)."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional
from app.config import settings
from app.exceptions import FolderAccessError
from app.models.copy_models import (
    CopyResult,
    CopySummary,
    FileMetadata,
    FileRecord,
    FolderMetadata,
    FolderNode,
    FolderRef,
)
from app.services.drive_service import DriveService
from app.services.name_resolver import get_unique_folder_name
from app.services.report_writer import ReportWriter
from app.utils.formatting import format_bytes, utc_now_iso
from app.utils.logger import setup_logger

logger = setup_logger(__name__)


@dataclass
class CopyContext:
    """State shared by the traversal of one copy run."""

    # New folder ID -> node; holds only folders created by this run
    folder_index: Dict[str, FolderNode] = field(default_factory=dict)
    parent_ids: Dict[str, List[str]] = field(default_factory=dict)
    path_cache: Dict[str, str] = field(default_factory=dict)
    created_files: List[FileRecord] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    root: Optional[FolderNode] = None

    def register_folder(self, node: FolderNode, folder: FolderMetadata) -> None:
        self.folder_index[node.id] = node
        if folder.parent_ids:
            self.parent_ids[node.id] = list(folder.parent_ids)

    def summarize(self) -> CopySummary:
        total_size = sum(f.size for f in self.created_files)
        return CopySummary(
            total_files=len(self.created_files),
            total_size=total_size,
            total_size_human=format_bytes(total_size),
            folder_count=len(self.folder_index),
        )


class FolderCopyService:
    """Copies a folder tree into another folder of the same drive."""

    def __init__(
        self,
        drive: DriveService,
        report_writer: Optional[ReportWriter] = None,
        save_json_default: Optional[bool] = None,
    ):
        """Initialize the copy service.

        Args:
            drive: DriveService instance
            report_writer: Writer for the JSON report (created if not given)
            save_json_default: Whether to save the report when a request does
                not say (defaults to settings.save_json_report_default)
        """
        self.drive = drive
        self.report_writer = report_writer or ReportWriter(drive)
        self.save_json_default = (
            settings.save_json_report_default if save_json_default is None else save_json_default
        )

    async def verify_access(self, source_folder_id: str, destination_folder_id: str) -> None:
        """Check that both folders exist and are accessible.

        Raises:
            FolderAccessError: Naming the folder that could not be reached
        """
        for folder_id, folder_type in (
            (source_folder_id, "Source"),
            (destination_folder_id, "Destination"),
        ):
            try:
                await self.drive.get_folder(folder_id)
            except FolderAccessError:
                raise FolderAccessError(
                    f"{folder_type} folder not found or access denied: {folder_id}"
                ) from None

    async def copy_folder_structure(
        self,
        source_folder_id: str,
        destination_folder_id: str,
        new_folder_name: Optional[str] = None,
        save_json_output: Optional[bool] = None,
    ) -> CopyResult:
        """Copy a folder with all subfolders and files into a destination folder.

        The new main folder is named after new_folder_name or the source
        folder, made unique within the destination. All subfolders are
        created first, then files are copied. A failing subfolder aborts the
        run and leaves the already created folders in place; a failing file
        is recorded in errors and skipped.

        Args:
            source_folder_id: ID of the folder to copy
            destination_folder_id: ID of the folder to copy into
            new_folder_name: Optional name for the new main folder
            save_json_output: Whether to save the result as a JSON file in
                the new folder (defaults to the service default)

        Returns:
            CopyResult describing what was created
        """
        if save_json_output is None:
            save_json_output = self.save_json_default

        timestamp = utc_now_iso()
        context = CopyContext()
        success = True
        destination: Optional[FolderMetadata] = None
        main_folder_name: Optional[str] = None

        try:
            source = await self.drive.get_folder(source_folder_id)
            destination = await self.drive.get_folder(destination_folder_id)

            main_folder_name = await get_unique_folder_name(
                self.drive, destination_folder_id, new_folder_name or source.name
            )
            new_folder = await self.drive.create_folder(destination_folder_id, main_folder_name)
            context.root = self._make_node(new_folder)
            context.register_folder(context.root, new_folder)
            logger.info(f"Created main folder '{main_folder_name}' ({new_folder.id})")

            await self._create_folder_structure(source.id, context.root, context)
            logger.info(f"Folder structure created: {len(context.folder_index)} folders")

            await self._copy_files(source.id, context.root, context)
            logger.info(f"Copied {len(context.created_files)} files")
        except Exception as e:
            success = False
            context.errors.append(str(e))
            logger.error(f"Error in copy_folder_structure: {e}", exc_info=True)

        result = CopyResult(
            success=success,
            timestamp=timestamp,
            destination_root=FolderRef(
                name=destination.name if destination else None,
                id=destination_folder_id,
                url=destination.web_url if destination else None,
            ),
            main_folder=FolderRef(
                name=main_folder_name,
                id=context.root.id if context.root else None,
                url=context.root.url if context.root else None,
            ),
            summary=context.summarize(),
            folder_structure=context.root,
            errors=context.errors,
        )

        if save_json_output and context.root:
            await self.report_writer.save_report(result, context)

        return result

    async def _create_folder_structure(
        self, source_folder_id: str, node: FolderNode, context: CopyContext
    ) -> None:
        """Recursively create the subfolders of a source folder under node.

        Errors propagate to the caller.
        """
        for subfolder in await self.drive.list_folders(source_folder_id):
            if subfolder.id in context.folder_index:
                # Copying a folder into itself: skip the copy being built
                continue
            new_subfolder = await self.drive.create_folder(node.id, subfolder.name)
            sub_node = self._make_node(new_subfolder)
            node.sub_folders[sub_node.name] = sub_node
            context.register_folder(sub_node, new_subfolder)

            await self._create_folder_structure(subfolder.id, sub_node, context)

    async def _copy_files(
        self, source_folder_id: str, node: FolderNode, context: CopyContext
    ) -> None:
        """Recursively copy the files of a source folder into the matching new folders."""
        for source_file in await self.drive.list_files(source_folder_id):
            try:
                new_file = await self.drive.copy_file(source_file.id, node.id, source_file.name)
                record = await self._make_file_record(new_file, node, context)
            except Exception as e:
                message = f"Failed to copy file: {source_file.name} - {e}"
                logger.error(message)
                context.errors.append(message)
                continue

            node.files[record.name] = record
            context.created_files.append(record)

            if len(context.created_files) % 100 == 0:
                logger.info(f"Copied {len(context.created_files)} files so far")

        for subfolder in await self.drive.list_folders(source_folder_id):
            if subfolder.id in context.folder_index:
                continue
            sub_node = node.sub_folders.get(subfolder.name)
            if sub_node is None:
                # Should not happen once the structure phase has succeeded
                message = f"Destination subfolder not found: {subfolder.name}"
                logger.error(message)
                context.errors.append(message)
                continue
            await self._copy_files(subfolder.id, sub_node, context)

    async def _make_file_record(
        self, new_file: FileMetadata, node: FolderNode, context: CopyContext
    ) -> FileRecord:
        return FileRecord(
            name=new_file.name,
            id=new_file.id,
            url=new_file.web_url,
            path=await self.get_folder_path(node.id, context),
            folder_id=node.id,
            size=new_file.size,
            mime_type=new_file.mime_type,
            created_time=utc_now_iso(new_file.created_date_time) if new_file.created_date_time else None,
        )

    async def get_folder_path(self, folder_id: str, context: CopyContext) -> str:
        """Get the path of a new folder within the newly created tree.

        Walks up through parent folders for as long as they were created by
        this run, so the path starts at the new main folder (e.g.
        "New Root/Subfolder/Images"). A folder with several parents follows
        the parent with the smallest ID.

        Args:
            folder_id: ID of a folder created by this run
            context: Copy run state

        Returns:
            Slash-joined folder names, empty if folder_id is not a new folder
        """
        names: List[str] = []
        current_id: Optional[str] = folder_id

        while current_id in context.folder_index:
            cached = context.path_cache.get(current_id)
            if cached is not None:
                names.insert(0, cached)
                break

            names.insert(0, context.folder_index[current_id].name)
            parent_ids = context.parent_ids.get(current_id)
            if parent_ids is None:
                parent_ids = (await self.drive.get_folder(current_id)).parent_ids
                context.parent_ids[current_id] = list(parent_ids)
            if not parent_ids:
                break
            current_id = min(parent_ids)

        path = "/".join(names)
        context.path_cache[folder_id] = path
        return path

    @staticmethod
    def _make_node(folder: FolderMetadata) -> FolderNode:
        return FolderNode(name=folder.name, id=folder.id, url=folder.web_url)
