# Upload router — multipart intake, then resumable upload to the video provider.
# Created: 2026-10-18

from __future__ import annotations

import logging
from pathlib import Path

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile

from adrelay.api.deps import get_dispatcher, get_uploader
from adrelay.api.v1.schemas.uploads import UploadResponse
from adrelay.errors import ValidationError
from adrelay.proxy.credentials import bearer_token_provider
from adrelay.proxy.dispatcher import ProviderDispatcher
from adrelay.upload.resumable import ResumableUploadOrchestrator, UploadMetadata

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Uploads"])


@router.post("/upload/intake", response_model=UploadResponse)
async def upload_intake(
    request: Request,
    file: UploadFile | None = File(None),
    title: str = Form(""),
    description: str = Form(""),
    privacyStatus: str = Form("private"),
    timeout: float | None = Form(None),
    dispatcher: ProviderDispatcher = Depends(get_dispatcher),
    uploader: ResumableUploadOrchestrator = Depends(get_uploader),
):
    """Stage the uploaded video and push it to the video provider."""
    if file is None or not file.filename:
        raise ValidationError("No video file uploaded")
    if timeout is not None and timeout <= 0:
        raise ValidationError("timeout must be positive")

    metadata = UploadMetadata(
        title=title or Path(file.filename).stem,
        description=description,
        privacy_status=privacyStatus or "private",
    )

    credential = dispatcher.get(uploader.provider).credential
    token_provider = bearer_token_provider(credential, request.headers.get("authorization"))
    # Fail on a missing or revoked credential before touching the disk
    await token_provider()

    async with uploader.temp_files.staged(file.filename, file) as staged:
        result = await uploader.upload(staged, metadata, token_provider, timeout=timeout)

    return UploadResponse(resourceId=result.resource_id, bytesSent=result.bytes_sent)
