import logging

from .config import Settings
from .excel_db import append_row
from .graph_client import GraphClient
from .schemas import Submission, UploadResponse
from .storage import resolve_folder, sanitize_folder_name, upload_file

logger = logging.getLogger(__name__)

SUCCESS_MESSAGE = "Employee data and documents uploaded successfully"


def process_submission(client: GraphClient, settings: Settings, submission: Submission) -> UploadResponse:
    """Store a validated submission: folder, then each document in order, then the ledger row.

    Nothing is rolled back. A failed upload leaves the earlier documents in
    place and a failed ledger write leaves every document in place.
    """
    folder_name = sanitize_folder_name(submission.employee_name)
    folder_id = resolve_folder(client, settings, submission.employee_name)

    uploaded = []
    for doc in submission.files:
        uploaded.append(upload_file(client, folder_id, doc.file_name, doc.content, doc.content_type))

    append_row(client, settings, submission, [r.file_name for r in uploaded])

    logger.info("Stored %d document(s) for %r", len(uploaded), folder_name)
    return UploadResponse(
        message=SUCCESS_MESSAGE,
        folderName=folder_name,
        filesUploaded=len(uploaded),
    )
