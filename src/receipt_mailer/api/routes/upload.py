"""POST /upload-payers: run a payers file through the batch pipeline."""

from typing import assert_never

import structlog
from fastapi import APIRouter, Depends, File, Request, UploadFile
from pydantic import BaseModel

from receipt_mailer.errors import DeliveryFailedError, MissingMappingError
from receipt_mailer.pipeline import BatchResult

from ..auth import verify_worker_token
from ..config import Settings, get_settings
from .common import read_excel_upload, request_cancel_token

logger = structlog.get_logger(__name__)

router = APIRouter()


class PayersUploadResponse(BaseModel):
    message: str
    sent_amount: int = 0
    failed_emails: list[str] = []
    missing_payers: list[str] = []
    partial_success: bool = False


def build_response(result: BatchResult) -> PayersUploadResponse:
    """Split partial failures into never-attempted payers and failed recipients."""
    response = PayersUploadResponse(
        message="file processed successfully",
        sent_amount=result.sent_count,
    )
    if result.error is None:
        return response

    response.partial_success = True
    for failure in result.error.unwrap():
        match failure:
            case MissingMappingError():
                response.missing_payers = sorted(failure.entries)
            case DeliveryFailedError():
                response.failed_emails = sorted(failure.entries)
            case _:
                assert_never(failure)
    return response


@router.post("/upload-payers", response_model=PayersUploadResponse)
async def upload_payers(
    request: Request,
    file: UploadFile = File(...),
    settings: Settings = Depends(get_settings),
    _auth: None = Depends(verify_worker_token),
):
    """Generate and send receipts for every payer in the uploaded file."""
    file_name, data = await read_excel_upload(file, settings)

    log = logger.bind(file_name=file_name, size_bytes=len(data))
    log.info("upload_payers.received")

    # Fatal pipeline errors propagate to the ReceiptMailerError handler
    async with request_cancel_token(request) as token:
        result = await request.app.state.pipeline.process_batch(token, file_name, data)

    response = build_response(result)
    log.info(
        "upload_payers.complete",
        sent_amount=response.sent_amount,
        failed=len(response.failed_emails),
        missing=len(response.missing_payers),
        partial_success=response.partial_success,
    )
    return response
