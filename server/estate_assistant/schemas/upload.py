from __future__ import annotations
from enum import Enum
from typing import List

from pydantic import BaseModel, Field

from estate_assistant.schemas.conversation import FilePart

MAX_UPLOAD_BYTES = 10 * 1024 * 1024

ALLOWED_MEDIA_TYPES = frozenset(
    {
        "application/pdf",
        "image/jpeg",
        "image/png",
        "text/plain",
        "application/msword",
        "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    }
)


class DocumentType(str, Enum):
    PURCHASE_AGREEMENT = "purchase-agreement"
    LEASE = "lease"
    DEED = "deed"
    MORTGAGE = "mortgage"
    INSPECTION = "inspection"
    HOA = "hoa"
    TAX = "tax"
    OTHER = "other"


def is_acceptable_upload(mime_type: str | None, size: int) -> bool:
    return bool(mime_type) and mime_type in ALLOWED_MEDIA_TYPES and 0 <= size <= MAX_UPLOAD_BYTES


class UploadedFile(BaseModel):
    name: str
    mimeType: str
    size: int
    documentType: DocumentType
    text: str
    hasTextContent: bool
    data: str

    def as_part(self) -> FilePart:
        return FilePart(data=self.data, mimeType=self.mimeType, name=self.name)


class UploadResponse(BaseModel):
    files: List[UploadedFile]
    skipped: List[str] = Field(default_factory=list)
    message: str = "Files processed successfully"
