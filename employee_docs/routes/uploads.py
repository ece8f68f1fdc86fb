import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile
from starlette.concurrency import run_in_threadpool

from ..config import Settings, get_settings
from ..exceptions import ServiceError
from ..graph_client import CredentialProvider, get_credentials
from ..intake import build_submission, read_upload
from ..orchestrator import process_submission
from ..schemas import ErrorResponse, UploadResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/upload",
    response_model=UploadResponse,
    responses={400: {"model": ErrorResponse}, 500: {"model": ErrorResponse}},
)
async def upload_documents(
    employeeName: Optional[str] = Form(None),
    mobileNumber: Optional[str] = Form(None),
    dateOfBirth: Optional[str] = Form(None),
    uanNumber: Optional[str] = Form(None),
    email: Optional[str] = Form(None),
    address: Optional[str] = Form(None),
    primaryDocSlotA: Optional[List[UploadFile]] = File(None),
    primaryDocSlotB: Optional[List[UploadFile]] = File(None),
    primaryDocSlotC: Optional[List[UploadFile]] = File(None),
    additionalDocs: Optional[List[UploadFile]] = File(None),
    settings: Settings = Depends(get_settings),
    credentials: CredentialProvider = Depends(get_credentials),
):
    uploads = {
        "primaryDocSlotA": primaryDocSlotA,
        "primaryDocSlotB": primaryDocSlotB,
        "primaryDocSlotC": primaryDocSlotC,
        "additionalDocs": additionalDocs,
    }
    slots = {}
    for slot, files in uploads.items():
        slots[slot] = [await read_upload(f) for f in files or []]

    submission = build_submission(
        {
            "employeeName": employeeName,
            "mobileNumber": mobileNumber,
            "dateOfBirth": dateOfBirth,
            "uanNumber": uanNumber,
            "email": email,
            "address": address,
        },
        slots,
    )

    try:
        client = credentials.get_client()
        return await run_in_threadpool(process_submission, client, settings, submission)
    except ServiceError:
        raise
    except Exception as e:
        logger.exception("Upload for %r failed unexpectedly", submission.employee_name)
        raise ServiceError("An error occurred during upload") from e
