"""Collision-free naming for new folders."""

from datetime import datetime
from typing import Optional
from app.config import settings
from app.services.drive_service import DriveService
from app.utils.logger import setup_logger

logger = setup_logger(__name__)


async def get_unique_folder_name(
    drive: DriveService,
    parent_id: str,
    base_name: str,
    now: Optional[datetime] = None,
) -> str:
    """Return a folder name that no direct child of the parent uses yet.

    If base_name is taken, a timestamp is appended. If that is taken as well,
    a counter is added after the timestamp and increased until a free name
    is found. The check and the later folder creation are not atomic, so a
    concurrent run can still take the name in between; folder creation
    fails on conflict rather than producing a duplicate.

    Args:
        drive: Drive service used to look up existing children
        parent_id: ID of the folder the new folder goes into
        base_name: Desired folder name
        now: Time to format into the name (defaults to the current time)

    Returns:
        A name free at call time, e.g. "Template (19-Oct-2026 14.03.12 - 1)"
    """
    if not await drive.child_exists(parent_id, base_name):
        return base_name

    timestamp = (now or datetime.now()).strftime(settings.collision_timestamp_format)
    name = f"{base_name} ({timestamp})"

    counter = 1
    while await drive.child_exists(parent_id, name):
        name = f"{base_name} ({timestamp} - {counter})"
        counter += 1

    logger.info(f"Folder name '{base_name}' is taken, using '{name}'")
    return name
