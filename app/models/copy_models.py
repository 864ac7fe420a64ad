"""Data models for drive items, copy results and queued jobs."""

from datetime import datetime
from typing import Optional, List, Dict
from pydantic import AliasChoices, BaseModel, Field
from pydantic.alias_generators import to_camel


class FileMetadata(BaseModel):
    """Metadata for a file in the drive."""

    id: str
    name: str
    web_url: Optional[str] = None
    size: int = 0
    mime_type: Optional[str] = None
    created_date_time: Optional[datetime] = None
    parent_ids: List[str] = []


class FolderMetadata(BaseModel):
    """Metadata for a folder in the drive."""

    id: str
    name: str
    web_url: Optional[str] = None
    created_date_time: Optional[datetime] = None
    parent_ids: List[str] = []
    child_count: int = 0


class CamelModel(BaseModel):
    """Base model serialized with camelCase keys."""

    class Config:
        """Pydantic config."""

        alias_generator = to_camel
        populate_by_name = True


class FolderRef(CamelModel):
    """Name, id and link of a single folder."""

    name: Optional[str] = None
    id: Optional[str] = None
    url: Optional[str] = None


class FileRecord(CamelModel):
    """A file created by a copy run."""

    name: str
    id: str
    url: Optional[str] = None
    path: str = ""  # Slash-joined folder names inside the new tree
    folder_id: str
    size: int = 0
    mime_type: Optional[str] = None
    created_time: Optional[str] = None


class FolderNode(CamelModel):
    """A folder created by a copy run and everything placed inside it."""

    name: str
    id: str
    url: Optional[str] = None
    sub_folders: Dict[str, "FolderNode"] = {}
    files: Dict[str, FileRecord] = {}


class CopySummary(CamelModel):
    """Aggregate statistics of a copy run."""

    total_files: int = 0
    total_size: int = 0
    total_size_human: str = "0 Bytes"
    folder_count: int = 0


class CopyResult(CamelModel):
    """Outcome of one copy run, returned to the caller and saved as the report."""

    success: bool = True
    timestamp: str
    destination_root: FolderRef = FolderRef()
    main_folder: FolderRef = FolderRef()
    summary: CopySummary = CopySummary()
    folder_structure: Optional[FolderNode] = None
    errors: List[str] = []

    def to_json_dict(self) -> dict:
        """Return the JSON-ready dict with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


class CopyRequest(CamelModel):
    """Body of a copy request.

    Folder ids are accepted under both the folder and the location naming.
    """

    api_key: Optional[str] = None
    source_folder_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("sourceFolderId", "sourceLocationId", "source_folder_id"),
    )
    destination_folder_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices(
            "destinationFolderId", "destinationLocationId", "destination_folder_id"
        ),
    )
    new_folder_name: Optional[str] = None
    save_json_output: Optional[bool] = None
    callback_url: Optional[str] = None


class JobPayload(CamelModel):
    """Input bundle of one queued copy job."""

    job_id: str
    source_folder_id: str
    destination_folder_id: str
    new_folder_name: Optional[str] = None
    save_json_output: Optional[bool] = None
    callback_url: str
    submitted_at: datetime
