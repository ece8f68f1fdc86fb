import os
from typing import Dict, List, Optional

from starlette.datastructures import UploadFile

from .exceptions import ValidationError
from .schemas import DocumentFile, Submission
from .storage import sanitize_folder_name

MAX_FILE_SIZE = 10 * 1024 * 1024
ALLOWED_EXTENSIONS = {".pdf", ".jpg", ".jpeg", ".png"}
ALLOWED_CONTENT_TYPES = {"application/pdf", "image/jpeg", "image/jpg", "image/png"}

# form field -> max files; dict order is upload order
FILE_SLOTS = {
    "primaryDocSlotA": 1,
    "primaryDocSlotB": 1,
    "primaryDocSlotC": 1,
    "additionalDocs": 10,
}

REQUIRED_FIELDS = {
    "employeeName": "Employee Name",
    "mobileNumber": "Mobile Number",
    "dateOfBirth": "Date of Birth",
}


async def read_upload(upload: UploadFile) -> DocumentFile:
    # one byte past the limit is enough to flag oversized files
    content = await upload.read(MAX_FILE_SIZE + 1)
    return DocumentFile(
        file_name=upload.filename or "",
        size=len(content),
        content_type=(upload.content_type or "").lower(),
        content=content,
    )


def check_document(doc: DocumentFile) -> Optional[str]:
    name = doc.file_name or "unnamed file"
    ext = os.path.splitext(doc.file_name)[1].lower()
    if ext not in ALLOWED_EXTENSIONS or doc.content_type not in ALLOWED_CONTENT_TYPES:
        return f"{name}: only PDF and image files are allowed"
    if doc.size > MAX_FILE_SIZE:
        return f"{name}: file exceeds the 10 MB limit"
    if doc.size == 0:
        return f"{name}: file is empty"
    return None


def check_slots(slots: Dict[str, List[DocumentFile]]) -> None:
    problems = []
    for slot, docs in slots.items():
        limit = FILE_SLOTS[slot]
        if len(docs) > limit:
            problems.append(f"{slot}: at most {limit} file(s) allowed")
        problems.extend(p for p in (check_document(d) for d in docs) if p)
    if problems:
        raise ValidationError("Only PDF and image files up to 10 MB are allowed", details=problems)


def collect_files(slots: Dict[str, List[DocumentFile]]) -> List[DocumentFile]:
    files = []
    for slot in FILE_SLOTS:
        files.extend(slots.get(slot) or [])
    return files


def build_submission(fields: Dict[str, Optional[str]],
                     slots: Dict[str, List[DocumentFile]]) -> Submission:
    """Validate a parsed form and return the Submission it describes.

    Checks run in request order: file type/size, required text fields,
    at least one file, then a non-empty sanitized employee name.
    """
    check_slots(slots)

    # presence is judged on the trimmed value; the Submission keeps what was sent
    values = {k: v or "" for k, v in fields.items()}
    missing = [label for key, label in REQUIRED_FIELDS.items() if not values.get(key, "").strip()]
    if missing:
        raise ValidationError(
            "Employee Name, Mobile Number, and Date of Birth are required",
            details=[f"{label} is required" for label in missing],
        )

    files = collect_files(slots)
    if not files:
        raise ValidationError("At least one document must be uploaded")

    if not sanitize_folder_name(values["employeeName"]):
        raise ValidationError("Invalid employee name",
                              details=["Employee Name must contain letters or digits"])

    return Submission(
        employee_name=values["employeeName"],
        mobile_number=values["mobileNumber"],
        date_of_birth=values["dateOfBirth"],
        uan_number=fields.get("uanNumber") or None,
        email=fields.get("email") or None,
        address=fields.get("address") or None,
        files=files,
    )
