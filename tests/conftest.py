import io
import itertools
import re
import threading

import pytest
from fastapi.testclient import TestClient
from openpyxl import load_workbook

from employee_docs.config import Settings, get_settings
from employee_docs.exceptions import GraphApiError
from employee_docs.graph_client import get_credentials
from employee_docs.main import app
from employee_docs.schemas import DocumentFile, Submission

_RANGE = re.compile(r"bytes (\d+)-(\d+)/(\d+)")


class FakeResponse:
    def __init__(self, status_code: int, reason: str = ""):
        self.status_code = status_code
        self.reason = reason or {200: "OK", 201: "Created", 202: "Accepted"}.get(status_code, "Error")


class FakeDrive:
    """In-memory stand-in for GraphClient backed by a dict of drive items."""

    def __init__(self):
        self.items = {}
        self.sessions = {}
        self.calls = []
        self.puts = []
        # optional hook: (put_index, headers) -> status code or None
        self.put_status = None
        self.fail_listing = False
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def add_item(self, parent_id, name, folder=False, content=b""):
        with self._lock:
            item_id = f"item-{next(self._ids)}"
            self.items[item_id] = {
                "id": item_id, "name": name, "parent": parent_id,
                "folder": folder, "content": content,
            }
        return item_id

    def _children(self, parent_id, name):
        return [i for i in self.items.values()
                if i["parent"] == parent_id and i["name"].lower() == name.lower()]

    def _free_name(self, parent_id, name):
        base, dot, ext = name.rpartition(".")
        if not dot:
            base, ext = name, ""
        n = 1
        candidate = name
        while self._children(parent_id, candidate):
            candidate = f"{base} {n}" + (f".{ext}" if ext else "")
            n += 1
        return candidate

    def list_children(self, parent_id, name):
        self.calls.append(("list_children", parent_id, name))
        if self.fail_listing:
            raise GraphApiError(503, "Service unavailable")
        out = []
        for item in self._children(parent_id, name):
            entry = {"id": item["id"], "name": item["name"]}
            if item["folder"]:
                entry["folder"] = {"childCount": 0}
            else:
                entry["file"] = {}
            out.append(entry)
        return out

    def create_folder(self, parent_id, name, conflict_behavior="rename"):
        self.calls.append(("create_folder", parent_id, name, conflict_behavior))
        final = self._free_name(parent_id, name) if conflict_behavior == "rename" else name
        item_id = self.add_item(parent_id, final, folder=True)
        return {"id": item_id, "name": final, "folder": {}}

    def create_upload_session(self, parent_id, file_name, conflict_behavior="rename"):
        self.calls.append(("create_upload_session", parent_id, file_name, conflict_behavior))
        if conflict_behavior == "fail" and self._children(parent_id, file_name):
            raise GraphApiError(409, "The specified item name already exists")
        url = f"https://upload.example.test/session/{len(self.sessions) + 1}"
        self.sessions[url] = {
            "parent": parent_id, "name": file_name,
            "conflict": conflict_behavior, "received": bytearray(),
        }
        return url

    def put_upload_bytes(self, upload_url, data, headers):
        self.calls.append(("put_upload_bytes", upload_url, headers["Content-Range"]))
        self.puts.append({"url": upload_url, "headers": dict(headers), "size": len(data)})
        if self.put_status:
            status = self.put_status(len(self.puts) - 1, headers)
            if status is not None:
                return FakeResponse(status)
        session = self.sessions[upload_url]
        start, end, total = (int(g) for g in _RANGE.match(headers["Content-Range"]).groups())
        assert start == len(session["received"])
        assert end - start + 1 == len(data) == int(headers["Content-Length"])
        session["received"] += data
        if end + 1 < total:
            return FakeResponse(202)
        name = session["name"]
        if session["conflict"] == "rename":
            name = self._free_name(session["parent"], name)
        self.add_item(session["parent"], name, content=bytes(session["received"]))
        return FakeResponse(201)

    def download_content(self, item_id):
        self.calls.append(("download_content", item_id))
        return self.items[item_id]["content"]

    def replace_content(self, item_id, data, content_type):
        self.calls.append(("replace_content", item_id, content_type))
        self.items[item_id]["content"] = data
        return {"id": item_id}

    def files_in(self, parent_id):
        return [i for i in self.items.values() if i["parent"] == parent_id and not i["folder"]]

    def folder_named(self, name):
        for item in self.items.values():
            if item["folder"] and item["name"] == name:
                return item
        return None


class StubCredentials:
    def __init__(self, client):
        self.client = client

    def get_client(self):
        return self.client


@pytest.fixture
def settings():
    return Settings(tenant_id="tenant", client_id="client", client_secret="secret")


@pytest.fixture
def drive():
    return FakeDrive()


@pytest.fixture
def api(drive, settings):
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_credentials] = lambda: StubCredentials(drive)
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def make_submission():
    def _make(name="Jane Doe", files=None, **fields):
        files = files if files is not None else [
            DocumentFile(file_name="id.pdf", size=4, content_type="application/pdf", content=b"%PDF"),
        ]
        return Submission(
            employee_name=name,
            mobile_number=fields.get("mobile_number", "9876543210"),
            date_of_birth=fields.get("date_of_birth", "1990-01-31"),
            uan_number=fields.get("uan_number"),
            email=fields.get("email"),
            address=fields.get("address"),
            files=files,
        )
    return _make


@pytest.fixture
def ledger_rows():
    """Rows of a workbook's first sheet, with empty cells read back as ''."""
    def _rows(content):
        ws = load_workbook(io.BytesIO(content)).worksheets[0]
        return [["" if v is None else v for v in row] for row in ws.iter_rows(values_only=True)]
    return _rows
