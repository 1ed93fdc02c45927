"""Helpers shared by the upload routes."""

import asyncio
from contextlib import asynccontextmanager

from fastapi import HTTPException, Request, UploadFile

from receipt_mailer.cancellation import CancellationToken

from ..config import Settings

DISCONNECT_POLL_SECONDS = 0.5


async def read_excel_upload(file: UploadFile, settings: Settings) -> tuple[str, bytes]:
    """Validate the extension and size of an uploaded spreadsheet and read it."""
    file_name = file.filename or ""
    if not file_name.lower().endswith(settings.ALLOWED_EXTENSIONS):
        raise HTTPException(
            status_code=400,
            detail="можно загрузить только файлы Excel (.xls, .xlsx, .xlsm)",
        )

    data = await file.read()
    if not data:
        raise HTTPException(status_code=400, detail="file is empty")
    if len(data) > settings.MAX_UPLOAD_BYTES:
        raise HTTPException(status_code=400, detail="слишком большой файл")
    return file_name, data


async def _watch_disconnect(request: Request, token: CancellationToken) -> None:
    while not token.cancelled:
        if await request.is_disconnected():
            token.cancel("client disconnected")
            return
        await asyncio.sleep(DISCONNECT_POLL_SECONDS)


@asynccontextmanager
async def request_cancel_token(request: Request):
    """Yield a token that is cancelled if the client goes away mid-request."""
    token = CancellationToken()
    watcher = asyncio.create_task(_watch_disconnect(request, token))
    try:
        yield token
    finally:
        watcher.cancel()
