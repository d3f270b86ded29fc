# Upload schemas.
# Created: 2026-10-18

from __future__ import annotations

from pydantic import BaseModel


class UploadResponse(BaseModel):
    resourceId: str
    bytesSent: int
