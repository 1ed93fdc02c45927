"""Settings endpoints: recipient mapping upload, sender address and history."""

import asyncio

import structlog
from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile
from pydantic import BaseModel, Field

from receipt_mailer.errors import StorageError

from ..auth import verify_worker_token
from ..config import Settings, get_settings
from .common import read_excel_upload

logger = structlog.get_logger(__name__)

router = APIRouter()


class SenderEmailRequest(BaseModel):
    email: str = Field(..., min_length=3, pattern=r"^[^@\s]+@[^@\s]+$")


@router.post("/upload-emails")
async def upload_emails(
    request: Request,
    file: UploadFile = File(...),
    settings: Settings = Depends(get_settings),
    _auth: None = Depends(verify_worker_token),
):
    """Parse the emails sheet and replace the stored recipient mapping."""
    file_name, data = await read_excel_upload(file, settings)
    state = request.app.state

    try:
        path = await asyncio.to_thread(state.mapping_storage.store, file_name, data)
    except OSError as e:
        raise StorageError(
            f"failed to store uploaded emails file: {e}",
            context={'file_name': file_name},
        ) from e

    # ParseError is User-kind for bad sheets, so it maps to 400
    emails = await asyncio.to_thread(state.mapping_parser.parse_recipient_mapping, path)
    if not emails:
        raise HTTPException(status_code=400, detail="emails file contains no entries")

    count = await state.settings_store.upload_emails(emails)
    logger.info("upload_emails.complete", file_name=file_name, count=count)
    return {"message": "file processed successfully", "count": count}


@router.put("/sender-email")
async def set_sender_email(
    body: SenderEmailRequest,
    request: Request,
    _auth: None = Depends(verify_worker_token),
):
    """Set the address receipts are sent from."""
    await request.app.state.settings_store.set_sender_email(body.email)
    return {"message": "sender email updated"}


@router.get("/history")
async def list_history(
    request: Request,
    limit: int = Query(50, ge=1, le=1000),
    _auth: None = Depends(verify_worker_token),
):
    """List processed payers files, newest first."""
    records = await request.app.state.history_store.list_records(limit=limit)
    return {"files": [record.to_dict() for record in records]}
