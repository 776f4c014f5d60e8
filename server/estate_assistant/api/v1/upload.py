from __future__ import annotations
import base64
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Request
from starlette.datastructures import UploadFile

from estate_assistant.api.v1.chat import error_response
from estate_assistant.core.auth import Actor, get_optional_actor
from estate_assistant.documents.extraction import extractors
from estate_assistant.schemas.upload import DocumentType, UploadedFile, UploadResponse, is_acceptable_upload
from estate_assistant.store.accounts import AccountStore, DocumentRecord
from estate_assistant.store.deps import get_account_store

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/upload", response_model=UploadResponse)
async def upload_documents(
    request: Request,
    actor: Optional[Actor] = Depends(get_optional_actor),
    accounts: AccountStore = Depends(get_account_store),
):
    """Read uploaded documents and hand them back ready to attach to a message."""
    try:
        form = await request.form()
    except Exception as e:
        logger.info("Unreadable upload form: %s", e)
        return error_response(400, "Invalid form data")

    files = [f for f in form.getlist("files") if isinstance(f, UploadFile)]
    if not files:
        return error_response(400, "No files provided")
    try:
        document_type = DocumentType(str(form.get("documentType") or ""))
    except ValueError:
        return error_response(400, "Invalid document type")

    processed: List[UploadedFile] = []
    skipped: List[str] = []
    try:
        for f in files:
            name = f.filename or "unnamed"
            data = await f.read()
            mime_type = f.content_type or ""
            if not is_acceptable_upload(mime_type, len(data)):
                logger.info("Skipping upload %s type=%s size=%d", name, mime_type, len(data))
                skipped.append(name)
                continue
            extraction = extractors.extract(name, mime_type, data)
            processed.append(
                UploadedFile(
                    name=name,
                    mimeType=mime_type,
                    size=len(data),
                    documentType=document_type,
                    text=extraction.text,
                    hasTextContent=extraction.has_text_content,
                    data=base64.b64encode(data).decode("ascii"),
                )
            )
        if actor is not None and processed:
            await accounts.record_uploads(
                actor.user_id,
                [
                    DocumentRecord(name=p.name, mime_type=p.mimeType, size=p.size, document_type=document_type.value)
                    for p in processed
                ],
            )
    except Exception as e:
        logger.exception("Error processing files: %s", e)
        return error_response(500, "Failed to process files")

    return UploadResponse(files=processed, skipped=skipped)
