"""Shared pytest fixtures for all tests."""

import random
from datetime import datetime, timezone
from typing import Dict, List, Optional, Set

import pytest

from app.config import Settings
from app.exceptions import FolderAccessError, StorageError
from app.models.copy_models import FileMetadata, FolderMetadata


class FakeDrive:
    """In-memory drive with the same async interface as DriveService.

    Failures can be injected per file or folder name. With a seed, child
    listings come back in a shuffled order.
    """

    def __init__(self, seed: Optional[int] = None):
        self.folders: Dict[str, dict] = {}
        self.files: Dict[str, dict] = {}
        self._counter = 0
        self._random = random.Random(seed) if seed is not None else None
        self.fail_copy: Set[str] = set()
        self.fail_create_folder: Set[str] = set()
        self.fail_create_file = False
        self.fail_update_file = False

    def _new_id(self, prefix: str) -> str:
        self._counter += 1
        return f"{prefix}{self._counter:04d}"

    def _order(self, items: List) -> List:
        if self._random is not None:
            self._random.shuffle(items)
        return items

    # Setup helpers (synchronous)

    def add_folder(self, name: str, parent_id: Optional[str] = None) -> str:
        folder_id = self._new_id("fld")
        self.folders[folder_id] = {
            "name": name,
            "parent_ids": [parent_id] if parent_id else [],
        }
        return folder_id

    def add_file(
        self, name: str, parent_id: str, content: bytes = b"data", mime_type: str = "text/plain"
    ) -> str:
        file_id = self._new_id("fil")
        self.files[file_id] = {
            "name": name,
            "parent_id": parent_id,
            "content": content,
            "mime_type": mime_type,
            "created": datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc),
        }
        return file_id

    def child_folder_ids(self, parent_id: str) -> List[str]:
        return [fid for fid, f in self.folders.items() if parent_id in f["parent_ids"]]

    def child_file_ids(self, parent_id: str) -> List[str]:
        return [fid for fid, f in self.files.items() if f["parent_id"] == parent_id]

    def find_child_folder(self, parent_id: str, name: str) -> Optional[str]:
        for fid in self.child_folder_ids(parent_id):
            if self.folders[fid]["name"] == name:
                return fid
        return None

    def tree(self, folder_id: str) -> dict:
        """Nested dict of folder and file names, for comparisons."""
        return {
            "folders": {
                self.folders[fid]["name"]: self.tree(fid) for fid in self.child_folder_ids(folder_id)
            },
            "files": sorted(self.files[fid]["name"] for fid in self.child_file_ids(folder_id)),
        }

    # DriveService interface

    def _folder_metadata(self, folder_id: str) -> FolderMetadata:
        folder = self.folders[folder_id]
        return FolderMetadata(
            id=folder_id,
            name=folder["name"],
            web_url=f"https://drive.example.com/folders/{folder_id}",
            parent_ids=list(folder["parent_ids"]),
        )

    def _file_metadata(self, file_id: str) -> FileMetadata:
        f = self.files[file_id]
        return FileMetadata(
            id=file_id,
            name=f["name"],
            web_url=f"https://drive.example.com/files/{file_id}",
            size=len(f["content"]),
            mime_type=f["mime_type"],
            created_date_time=f["created"],
            parent_ids=[f["parent_id"]],
        )

    async def get_folder(self, folder_id: str) -> FolderMetadata:
        if folder_id not in self.folders:
            raise FolderAccessError(f"Folder not found or access denied: {folder_id}")
        return self._folder_metadata(folder_id)

    async def list_folders(self, folder_id: str) -> List[FolderMetadata]:
        return [self._folder_metadata(fid) for fid in self._order(self.child_folder_ids(folder_id))]

    async def list_files(self, folder_id: str) -> List[FileMetadata]:
        return [self._file_metadata(fid) for fid in self._order(self.child_file_ids(folder_id))]

    def _name_taken(self, parent_id: str, name: str) -> bool:
        if self.find_child_folder(parent_id, name) is not None:
            return True
        return any(self.files[fid]["name"] == name for fid in self.child_file_ids(parent_id))

    async def child_exists(self, parent_id: str, name: str) -> bool:
        return self._name_taken(parent_id, name)

    async def create_folder(self, parent_id: str, name: str) -> FolderMetadata:
        if name in self.fail_create_folder:
            raise StorageError(f"Cannot create folder {name}", 500)
        if self._name_taken(parent_id, name):
            raise StorageError(f"Name already exists: {name}", 409)
        return self._folder_metadata(self.add_folder(name, parent_id))

    async def copy_file(self, file_id: str, destination_folder_id: str, name: str) -> FileMetadata:
        if name in self.fail_copy:
            raise StorageError(f"Copy of '{name}' failed: quota exceeded")
        source = self.files[file_id]
        new_id = self.add_file(name, destination_folder_id, source["content"], source["mime_type"])
        return self._file_metadata(new_id)

    async def get_file(self, file_id: str) -> FileMetadata:
        return self._file_metadata(file_id)

    async def create_file(
        self, folder_id: str, name: str, content: bytes, mime_type: str
    ) -> FileMetadata:
        if self.fail_create_file:
            raise StorageError("Upload rejected", 507)
        return self._file_metadata(self.add_file(name, folder_id, content, mime_type))

    async def update_file_content(
        self, file_id: str, content: bytes, mime_type: str
    ) -> FileMetadata:
        if self.fail_update_file:
            raise StorageError("Upload rejected", 507)
        self.files[file_id]["content"] = content
        self.files[file_id]["mime_type"] = mime_type
        return self._file_metadata(file_id)


@pytest.fixture
def drive():
    """Empty fake drive."""
    return FakeDrive()


@pytest.fixture
def drive_factory():
    """Factory for extra fake drives, optionally with shuffled listings."""
    return FakeDrive


@pytest.fixture
def sample_tree(drive):
    """
    Source tree A/{B/{file1}, file2} and an empty destination folder.

    Returns:
        Dict with source_id and destination_id
    """
    library = drive.add_folder("Library")
    source_id = drive.add_folder("A", library)
    b_id = drive.add_folder("B", source_id)
    drive.add_file("file1", b_id, b"first file")
    drive.add_file("file2", source_id, b"second!")
    destination_id = drive.add_folder("Projects", library)
    return {"source_id": source_id, "destination_id": destination_id}


@pytest.fixture
def test_settings(tmp_path):
    """Settings with a temporary queue file and the scheduler disabled."""
    return Settings(
        api_key="test-api-key",
        queue_state_path=str(tmp_path / "queue.json"),
        enable_job_scheduler=False,
        rate_limit_window_seconds=1.0,
        queue_lock_timeout_seconds=1.0,
        save_json_report_default=False,
    )
