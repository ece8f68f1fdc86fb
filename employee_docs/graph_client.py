import logging
import threading
from typing import Callable, List, Optional
from urllib.parse import quote

import msal
import requests

from .config import Settings, get_settings
from .exceptions import GraphApiError, GraphAuthError

logger = logging.getLogger(__name__)

GRAPH_SCOPE = "https://graph.microsoft.com/.default"
GRAPH_BASE = "https://graph.microsoft.com/v1.0"
CONFLICT_KEY = "@microsoft.graph.conflictBehavior"


def _error_message(resp: requests.Response) -> str:
    # Surface Graph's error.message when the body is JSON
    try:
        return resp.json().get("error", {}).get("message") or resp.text
    except ValueError:
        return resp.text or resp.reason


class GraphClient:
    """Minimal Microsoft Graph drive client.

    ``token_provider`` is called for every request, so each call carries a
    token acquired at that moment.
    """

    def __init__(self, token_provider: Callable[[], str], drive_id: str = "me",
                 session: Optional[requests.Session] = None):
        self._token_provider = token_provider
        self._session = session or requests.Session()
        if drive_id == "me":
            self.drive_url = f"{GRAPH_BASE}/me/drive"
        else:
            self.drive_url = f"{GRAPH_BASE}/drives/{drive_id}"

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        headers = kwargs.pop("headers", {})
        headers["Authorization"] = f"Bearer {self._token_provider()}"
        resp = self._session.request(method, self.drive_url + path, headers=headers, **kwargs)
        if resp.status_code // 100 != 2:
            message = _error_message(resp)
            resp.close()
            raise GraphApiError(resp.status_code, message)
        return resp

    def list_children(self, parent_id: str, name: str) -> List[dict]:
        escaped = name.replace("'", "''")
        resp = self._request(
            "GET", f"/items/{parent_id}/children",
            params={"$filter": f"name eq '{escaped}'"},
        )
        return resp.json().get("value", [])

    def create_folder(self, parent_id: str, name: str, conflict_behavior: str = "rename") -> dict:
        body = {"name": name, "folder": {}, CONFLICT_KEY: conflict_behavior}
        return self._request("POST", f"/items/{parent_id}/children", json=body).json()

    def create_upload_session(self, parent_id: str, file_name: str,
                              conflict_behavior: str = "rename") -> str:
        body = {"item": {CONFLICT_KEY: conflict_behavior, "name": file_name}}
        path = f"/items/{parent_id}:/{quote(file_name)}:/createUploadSession"
        data = self._request("POST", path, json=body).json()
        upload_url = data.get("uploadUrl")
        if not upload_url:
            raise GraphApiError(502, "Upload session response has no uploadUrl")
        return upload_url

    def put_upload_bytes(self, upload_url: str, data: bytes, headers: dict) -> requests.Response:
        # Upload URLs are pre-authenticated; sending a bearer token is rejected
        return requests.put(upload_url, data=data, headers=headers)

    def download_content(self, item_id: str) -> bytes:
        resp = self._request("GET", f"/items/{item_id}/content", stream=True)
        try:
            return b"".join(resp.iter_content(chunk_size=64 * 1024))
        finally:
            resp.close()

    def replace_content(self, item_id: str, data: bytes, content_type: str) -> dict:
        resp = self._request(
            "PUT", f"/items/{item_id}/content",
            data=data, headers={"Content-Type": content_type},
        )
        return resp.json()


class CredentialProvider:
    """Builds one GraphClient on first use and hands out the same instance."""

    def __init__(self, settings_factory: Callable[[], Settings] = get_settings):
        self._settings_factory = settings_factory
        self._client: Optional[GraphClient] = None
        self._lock = threading.Lock()

    def get_client(self) -> GraphClient:
        if self._client is None:
            with self._lock:
                if self._client is None:
                    self._client = self._build()
        return self._client

    def _build(self) -> GraphClient:
        settings = self._settings_factory()
        settings.require_credentials()
        app = msal.ConfidentialClientApplication(
            client_id=settings.client_id,
            authority=f"https://login.microsoftonline.com/{settings.tenant_id}",
            client_credential=settings.client_secret,
        )

        def acquire_token() -> str:
            result = app.acquire_token_for_client(scopes=[GRAPH_SCOPE])
            if not result or "access_token" not in result:
                detail = result.get("error_description") if isinstance(result, dict) else None
                raise GraphAuthError(detail or "Unknown auth error")
            return str(result["access_token"])

        logger.info("Graph client initialised for drive %s", settings.drive_id)
        return GraphClient(acquire_token, drive_id=settings.drive_id)


credentials = CredentialProvider()


def get_credentials() -> CredentialProvider:
    return credentials
