"""Tests for the Graph drive client against a mocked transport."""

import json
import time

import httpx
import pytest

from app.config import settings
from app.exceptions import FolderAccessError, StorageError
from app.services.drive_service import DriveService

GRAPH = "https://graph.microsoft.com/v1.0"
DRIVE = "drive1"
MONITOR = "https://monitor.example.com/operations/op1"


def make_service(handler) -> DriveService:
    service = DriveService(drive_id=DRIVE, transport=httpx.MockTransport(handler))
    service.graph_endpoint = GRAPH
    service.token = "test-token"
    service.token_expires_at = time.time() + 3600
    return service


def folder_item(item_id: str, name: str, parent_id: str = "root1") -> dict:
    return {
        "id": item_id,
        "name": name,
        "webUrl": f"https://contoso.sharepoint.com/{name}",
        "createdDateTime": "2026-10-19T12:00:00Z",
        "parentReference": {"id": parent_id},
        "folder": {"childCount": 0},
    }


def file_item(item_id: str, name: str, size: int = 10, parent_id: str = "fld1") -> dict:
    return {
        "id": item_id,
        "name": name,
        "webUrl": f"https://contoso.sharepoint.com/{name}",
        "size": size,
        "createdDateTime": "2026-10-19T12:00:00Z",
        "parentReference": {"id": parent_id},
        "file": {"mimeType": "text/plain"},
    }


@pytest.fixture
def no_sleep(monkeypatch):
    """Make retry backoff and copy polling instant."""

    async def instant(_seconds):
        return None

    monkeypatch.setattr("app.services.drive_service.asyncio.sleep", instant)


class TestReads:
    """Folder lookups and listings."""

    @pytest.mark.asyncio
    async def test_get_folder_sends_token(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=folder_item("fld1", "Reports"))

        folder = await make_service(handler).get_folder("fld1")

        assert folder.id == "fld1"
        assert folder.name == "Reports"
        assert folder.parent_ids == ["root1"]
        assert seen[0].headers["Authorization"] == "Bearer test-token"
        assert seen[0].url.path == f"/v1.0/drives/{DRIVE}/items/fld1"

    @pytest.mark.asyncio
    async def test_missing_folder_raises_access_error(self):
        def handler(request):
            return httpx.Response(404, json={"error": {"message": "Item not found"}})

        with pytest.raises(FolderAccessError):
            await make_service(handler).get_folder("nope")

    @pytest.mark.asyncio
    async def test_file_is_not_a_folder(self):
        def handler(request):
            return httpx.Response(200, json=file_item("fil1", "notes.txt"))

        with pytest.raises(FolderAccessError):
            await make_service(handler).get_folder("fil1")

    @pytest.mark.asyncio
    async def test_listing_follows_next_link_and_splits_items(self):
        next_link = f"{GRAPH}/drives/{DRIVE}/items/fld1/children?$skiptoken=abc"
        urls = []

        def handler(request):
            urls.append(request.url)
            if len(urls) > 4:
                # Stop a runaway loop instead of hanging the test
                return httpx.Response(200, json={"value": []})
            if request.url.params.get("$skiptoken") == "abc":
                return httpx.Response(200, json={"value": [folder_item("fld3", "Second", "fld1")]})
            return httpx.Response(
                200,
                json={
                    "value": [folder_item("fld2", "First", "fld1"), file_item("fil1", "a.txt")],
                    "@odata.nextLink": next_link,
                },
            )

        folders = await make_service(handler).list_folders("fld1")

        assert [f.name for f in folders] == ["First", "Second"]
        assert len(urls) == 2
        assert urls[0].params["$top"] == "999"
        assert urls[1].params["$skiptoken"] == "abc"
        assert "$top" not in urls[1].params

    @pytest.mark.asyncio
    async def test_listing_keeps_files(self):
        def handler(request):
            return httpx.Response(
                200, json={"value": [folder_item("fld2", "First", "fld1"), file_item("fil1", "a.txt")]}
            )

        files = await make_service(handler).list_files("fld1")

        assert [(f.name, f.size, f.mime_type) for f in files] == [("a.txt", 10, "text/plain")]

    @pytest.mark.asyncio
    async def test_child_exists_for_folders_and_files(self):
        def handler(request):
            if request.url.path.endswith(":/Taken"):
                return httpx.Response(200, json={"id": "fld9", "folder": {}})
            if request.url.path.endswith(":/notes.txt"):
                return httpx.Response(200, json={"id": "fil9", "file": {"mimeType": "text/plain"}})
            return httpx.Response(404, json={"error": {"message": "Item not found"}})

        service = make_service(handler)

        assert await service.child_exists("fld1", "Taken") is True
        assert await service.child_exists("fld1", "notes.txt") is True
        assert await service.child_exists("fld1", "Free") is False


class TestWrites:
    """Folder creation, file copy and upload."""

    @pytest.mark.asyncio
    async def test_create_folder_fails_on_conflict(self):
        bodies = []

        def handler(request):
            bodies.append(json.loads(request.content))
            return httpx.Response(201, json=folder_item("fld5", "New", "fld1"))

        folder = await make_service(handler).create_folder("fld1", "New")

        assert folder.id == "fld5"
        assert bodies == [
            {"name": "New", "folder": {}, "@microsoft.graph.conflictBehavior": "fail"}
        ]

    @pytest.mark.asyncio
    async def test_copy_file_polls_monitor(self, monkeypatch, no_sleep):
        monkeypatch.setattr(settings, "copy_poll_interval_seconds", 0)
        polls = []

        def handler(request):
            if request.url.path.endswith("/copy"):
                body = json.loads(request.content)
                assert body == {"parentReference": {"driveId": DRIVE, "id": "fld2"}, "name": "a.txt"}
                return httpx.Response(202, headers={"Location": MONITOR})
            if str(request.url) == MONITOR:
                polls.append(request)
                if len(polls) == 1:
                    return httpx.Response(202, json={"status": "inProgress"})
                return httpx.Response(200, json={"status": "completed", "resourceId": "fil2"})
            return httpx.Response(200, json=file_item("fil2", "a.txt", parent_id="fld2"))

        copied = await make_service(handler).copy_file("fil1", "fld2", "a.txt")

        assert copied.id == "fil2"
        assert copied.parent_ids == ["fld2"]
        assert len(polls) == 2
        assert "Authorization" not in polls[0].headers

    @pytest.mark.asyncio
    async def test_copy_file_follows_monitor_redirect(self):
        def handler(request):
            if request.url.path.endswith("/copy"):
                return httpx.Response(202, headers={"Location": MONITOR})
            if str(request.url) == MONITOR:
                return httpx.Response(
                    303, headers={"Location": f"{GRAPH}/drives/{DRIVE}/items/fil7"}
                )
            return httpx.Response(200, json=file_item("fil7", "a.txt"))

        copied = await make_service(handler).copy_file("fil1", "fld2", "a.txt")

        assert copied.id == "fil7"

    @pytest.mark.asyncio
    async def test_failed_copy_raises(self):
        def handler(request):
            if request.url.path.endswith("/copy"):
                return httpx.Response(202, headers={"Location": MONITOR})
            return httpx.Response(
                200, json={"status": "failed", "error": {"message": "Quota exceeded"}}
            )

        with pytest.raises(StorageError, match="Quota exceeded"):
            await make_service(handler).copy_file("fil1", "fld2", "a.txt")

    @pytest.mark.asyncio
    async def test_create_file_uploads_content(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(201, json=file_item("fil3", "report.json", size=2))

        created = await make_service(handler).create_file(
            "fld1", "report.json", b"{}", "application/json"
        )

        assert created.id == "fil3"
        assert requests[0].method == "PUT"
        assert requests[0].url.path == f"/v1.0/drives/{DRIVE}/items/fld1:/report.json:/content"
        assert requests[0].url.params["@microsoft.graph.conflictBehavior"] == "rename"
        assert requests[0].headers["Content-Type"] == "application/json"
        assert requests[0].content == b"{}"


class TestRetries:
    """Error handling in the request loop."""

    @pytest.mark.asyncio
    async def test_client_error_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(409, json={"error": {"message": "Name already exists"}})

        with pytest.raises(StorageError) as exc_info:
            await make_service(handler).create_folder("fld1", "Taken")

        assert len(calls) == 1
        assert exc_info.value.response_status == 409
        assert "Name already exists" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_server_error_is_retried(self, no_sleep):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) < 3:
                return httpx.Response(503)
            return httpx.Response(200, json=folder_item("fld1", "Reports"))

        folder = await make_service(handler).get_folder("fld1")

        assert folder.name == "Reports"
        assert len(calls) == 3

    @pytest.mark.asyncio
    async def test_throttling_waits_for_retry_after(self, monkeypatch):
        waits = []

        async def record_sleep(seconds):
            waits.append(seconds)

        monkeypatch.setattr("app.services.drive_service.asyncio.sleep", record_sleep)
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(429, headers={"Retry-After": "7"})
            return httpx.Response(200, json=folder_item("fld1", "Reports"))

        await make_service(handler).get_folder("fld1")

        assert waits == [7]

    @pytest.mark.asyncio
    async def test_server_errors_exhaust_retries(self, no_sleep):
        def handler(request):
            return httpx.Response(500)

        with pytest.raises(StorageError) as exc_info:
            await make_service(handler).list_files("fld1")

        assert exc_info.value.response_status == 500
