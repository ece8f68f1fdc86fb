from pydantic import BaseModel, Field
from typing import List, Optional


class DocumentFile(BaseModel):
    file_name: str
    size: int
    content_type: str
    content: bytes = Field(repr=False)


class Submission(BaseModel):
    employee_name: str
    mobile_number: str
    date_of_birth: str
    uan_number: Optional[str] = None
    email: Optional[str] = None
    address: Optional[str] = None
    files: List[DocumentFile] = Field(default_factory=list)


class RemoteFolder(BaseModel):
    id: str
    name: str


class UploadResult(BaseModel):
    file_name: str
    success: bool = True


class UploadResponse(BaseModel):
    success: bool = True
    message: str
    folderName: str
    filesUploaded: int


class ErrorResponse(BaseModel):
    success: bool = False
    error: str
    details: List[str] = Field(default_factory=list)


class HealthResponse(BaseModel):
    status: str
    message: str
