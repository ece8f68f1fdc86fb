import io
import logging
from datetime import datetime, timezone
from typing import List, Optional

import requests
from openpyxl import Workbook, load_workbook
from openpyxl.styles import Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from .config import Settings
from .exceptions import GraphApiError, LedgerError
from .graph_client import GraphClient
from .schemas import Submission

logger = logging.getLogger(__name__)

COLUMNS = [
    "Employee Name", "Mobile Number", "Date of Birth", "UAN Number",
    "Email", "Address", "Uploaded Files", "Timestamp",
]
SHEET_NAME = "Employees"
COLUMN_WIDTH = 20
HEADER_FILL = PatternFill(fill_type="solid", fgColor="FFE0E0E0")
XLSX_CONTENT_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def utc_timestamp(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def build_row(submission: Submission, file_names: List[str], timestamp: str) -> List[str]:
    return [
        submission.employee_name,
        submission.mobile_number,
        submission.date_of_birth,
        submission.uan_number or "",
        submission.email or "",
        submission.address or "",
        ", ".join(file_names),
        timestamp,
    ]


def write_header(ws: Worksheet) -> None:
    ws.append(COLUMNS)
    for cell in ws[1]:
        cell.font = Font(bold=True)
        cell.fill = HEADER_FILL


def new_ledger() -> Workbook:
    wb = Workbook()
    wb.active.title = SHEET_NAME
    write_header(wb.active)
    return wb


def load_ledger(content: bytes) -> Workbook:
    try:
        return load_workbook(io.BytesIO(content))
    except Exception as e:
        # openpyxl raises zipfile/KeyError/etc. on corrupt workbooks
        logger.error("Ledger workbook is unreadable: %r", e)
        raise LedgerError("Could not read the employee ledger") from e


def ledger_sheet(wb: Workbook) -> Worksheet:
    """First worksheet of the workbook, created with a header if there is none."""
    if not wb.worksheets:
        ws = wb.create_sheet(SHEET_NAME, 0)
    else:
        ws = wb.worksheets[0]
    if ws.max_row == 1 and ws.max_column == 1 and ws["A1"].value is None:
        write_header(ws)
    return ws


def add_row(wb: Workbook, row: List[str]) -> bytes:
    """Append ``row`` to the ledger sheet and serialize the whole workbook.

    Other sheets and existing cells are written back as loaded.
    """
    try:
        ws = ledger_sheet(wb)
        ws.append(row)
        for idx in range(1, ws.max_column + 1):
            ws.column_dimensions[get_column_letter(idx)].width = COLUMN_WIDTH
        buf = io.BytesIO()
        wb.save(buf)
    except Exception as e:
        # e.g. IllegalCharacterError for control characters in a form field
        logger.error("Could not serialize ledger row: %r", e)
        raise LedgerError("Could not write the employee ledger") from e
    return buf.getvalue()


def find_ledger(client: GraphClient, settings: Settings) -> Optional[str]:
    try:
        items = client.list_children(settings.root_folder_id, settings.ledger_file_name)
    except (GraphApiError, requests.RequestException) as e:
        # an unreachable ledger is treated like a missing one
        logger.warning("Ledger lookup failed, creating a new workbook: %s", e)
        return None
    return items[0]["id"] if items else None


def append_row(client: GraphClient, settings: Settings, submission: Submission,
               file_names: List[str]) -> None:
    """Append one submission to the ledger workbook.

    The whole workbook is downloaded, extended and uploaded again on every
    call. Two overlapping calls can both read the same version, in which case
    the later write drops the other's row.
    """
    ledger_id = find_ledger(client, settings)
    try:
        if ledger_id:
            wb = load_ledger(client.download_content(ledger_id))
        else:
            wb = new_ledger()

        content = add_row(wb, build_row(submission, file_names, utc_timestamp()))

        if ledger_id:
            client.replace_content(ledger_id, content, XLSX_CONTENT_TYPE)
        else:
            upload_url = client.create_upload_session(
                settings.root_folder_id, settings.ledger_file_name, conflict_behavior="fail"
            )
            size = len(content)
            resp = client.put_upload_bytes(upload_url, content, {
                "Content-Length": str(size),
                "Content-Range": f"bytes 0-{size - 1}/{size}",
                "Content-Type": XLSX_CONTENT_TYPE,
            })
            if resp.status_code // 100 != 2:
                raise LedgerError(f"Excel file upload failed: {resp.status_code} {resp.reason}")
    except (GraphApiError, requests.RequestException) as e:
        logger.error("Updating %s failed: %s", settings.ledger_file_name, e)
        raise LedgerError("Could not update the employee ledger") from e

    logger.info("Appended ledger row for %r (%d rows)", submission.employee_name,
                ledger_sheet(wb).max_row)
