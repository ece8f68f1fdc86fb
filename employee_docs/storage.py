import logging
import re
from typing import Iterator, Optional, Tuple

import requests

from .config import Settings
from .exceptions import GraphApiError, InvalidInputError, UploadError
from .graph_client import GraphClient
from .schemas import RemoteFolder, UploadResult

logger = logging.getLogger(__name__)

CHUNK_SIZE = 4 * 1024 * 1024  # also the single-PUT threshold

_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9\s]")


def sanitize_folder_name(name: Optional[str]) -> str:
    return _UNSAFE_NAME_CHARS.sub("", name or "").strip()


def content_range(start: int, end: int, total: int) -> str:
    return f"bytes {start}-{end}/{total}"


def iter_chunks(total: int, chunk_size: int = CHUNK_SIZE) -> Iterator[Tuple[int, int]]:
    """Yield inclusive (start, end) byte offsets covering ``total`` bytes in order."""
    start = 0
    while start < total:
        end = min(start + chunk_size, total) - 1
        yield start, end
        start = end + 1


def find_folder(client: GraphClient, parent_id: str, name: str) -> Optional[RemoteFolder]:
    items = client.list_children(parent_id, name)
    folders = [item for item in items if "folder" in item]
    if not folders:
        return None
    # first match wins when several folders share the name
    return RemoteFolder(id=folders[0]["id"], name=folders[0].get("name", name))


def resolve_folder(client: GraphClient, settings: Settings, name: str) -> str:
    folder_name = sanitize_folder_name(name)
    if not folder_name:
        raise InvalidInputError("Invalid employee name")

    try:
        existing = find_folder(client, settings.root_folder_id, folder_name)
        if existing:
            logger.info("Reusing folder %r (%s)", existing.name, existing.id)
            return existing.id
        created = client.create_folder(settings.root_folder_id, folder_name, conflict_behavior="rename")
    except (GraphApiError, requests.RequestException) as e:
        logger.error("Folder resolution for %r failed: %s", folder_name, e)
        raise UploadError(f"Could not create folder for {folder_name}") from e

    logger.info("Created folder %r (%s)", created.get("name", folder_name), created.get("id"))
    return created["id"]


def _put_range(client: GraphClient, upload_url: str, data: bytes, start: int, end: int,
               total: int, content_type: str) -> requests.Response:
    headers = {
        "Content-Length": str(end - start + 1),
        "Content-Range": content_range(start, end, total),
        "Content-Type": content_type,
    }
    return client.put_upload_bytes(upload_url, data, headers)


def upload_bytes(client: GraphClient, upload_url: str, data: bytes, content_type: str,
                 file_name: str) -> None:
    """Send ``data`` to an open upload session.

    Payloads up to CHUNK_SIZE go in one PUT. Larger ones go as sequential
    CHUNK_SIZE ranges; intermediate ranges must be accepted with a 2xx other
    than 201, and only the final range may report 201 Created.
    """
    size = len(data)
    if size <= CHUNK_SIZE:
        resp = _put_range(client, upload_url, data, 0, size - 1, size, content_type)
        if resp.status_code // 100 != 2:
            raise UploadError(f"Upload failed for {file_name}: {resp.status_code} {resp.reason}")
        return

    for start, end in iter_chunks(size):
        is_last = end == size - 1
        resp = _put_range(client, upload_url, data[start:end + 1], start, end, size, content_type)
        accepted = resp.status_code // 100 == 2 and (is_last or resp.status_code != 201)
        if not accepted:
            raise UploadError(
                f"Chunk upload failed for {file_name}: {resp.status_code} {resp.reason}"
            )
        logger.debug("Uploaded %s of %s (%d bytes)", content_range(start, end, size), file_name, size)


def upload_file(client: GraphClient, folder_id: str, file_name: str, data: bytes,
                content_type: str) -> UploadResult:
    try:
        upload_url = client.create_upload_session(folder_id, file_name, conflict_behavior="rename")
        upload_bytes(client, upload_url, data, content_type, file_name)
    except (GraphApiError, requests.RequestException) as e:
        logger.error("Uploading %s failed: %s", file_name, e)
        raise UploadError(f"Upload failed for {file_name}") from e

    logger.info("Uploaded %s (%d bytes)", file_name, len(data))
    return UploadResult(file_name=file_name, success=True)
