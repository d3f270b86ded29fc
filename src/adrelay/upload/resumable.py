# Resumable Upload — two-phase video upload (session, then byte transfer).
# Created: 2026-10-18
#
# Phase 1 POSTs the metadata and reads the session URL from the Location
# header. Phase 2 streams the staged file from disk in Content-Range chunks.
# After a transient failure the session is probed with ``bytes */<total>`` and
# the transfer resumes from the last byte the provider acknowledged.

from __future__ import annotations

import asyncio
import logging
import re
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any, BinaryIO

import httpx

from adrelay.config import UPLOAD_CHUNK_UNIT
from adrelay.errors import SessionInitiationError, TransferError, ValidationError
from adrelay.upload.staging import StagedFile, TempFileManager

logger = logging.getLogger(__name__)

YOUTUBE_UPLOAD_BASE = "https://www.googleapis.com/upload/youtube/v3"

BINARY_CONTENT_TYPE = "application/octet-stream"
PRIVACY_STATUSES = ("public", "private", "unlisted")

# Block size for streaming a chunk from disk to the socket
STREAM_BLOCK = 64 * 1024

_RANGE_RE = re.compile(r"bytes=(\d+)-(\d+)")

TokenProvider = Callable[[], Awaitable[str]]


class UploadState(str, Enum):
    INITIATED = "initiated"
    TRANSFERRING = "transferring"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass(frozen=True)
class UploadMetadata:
    title: str
    description: str = ""
    privacy_status: str = "private"

    def __post_init__(self) -> None:
        if self.privacy_status not in PRIVACY_STATUSES:
            raise ValidationError(
                f"privacyStatus must be one of {', '.join(PRIVACY_STATUSES)}"
            )

    def to_resource(self) -> dict[str, Any]:
        return {
            "snippet": {"title": self.title, "description": self.description},
            "status": {"privacyStatus": self.privacy_status},
        }


@dataclass
class UploadSession:
    provider: str
    session_url: str
    total_bytes: int
    bytes_sent: int = 0  # acknowledged by the provider
    state: UploadState = UploadState.INITIATED
    requests: int = 0  # transfer PUTs issued, probes excluded


@dataclass(frozen=True)
class UploadResult:
    resource_id: str
    bytes_sent: int
    session: UploadSession
    body: dict[str, Any]


class ResumableUploadOrchestrator:
    """Runs one upload per ``upload()`` call.

    Args:
        temp_files: Staging area; the staged file is released through it.
        chunk_size: Bytes per PUT, aligned down to 256 KiB.
        max_retries: Consecutive transient failures tolerated before giving up.
        backoff_base: First retry delay in seconds, doubled per failure.
    """

    def __init__(
        self,
        temp_files: TempFileManager,
        *,
        provider: str = "youtube",
        upload_base: str = YOUTUBE_UPLOAD_BASE,
        chunk_size: int = 8 * 1024 * 1024,
        max_retries: int = 5,
        http_timeout: float = 30.0,
        backoff_base: float = 0.5,
        backoff_cap: float = 8.0,
        default_timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.temp_files = temp_files
        self.provider = provider
        self.upload_base = upload_base.rstrip("/")
        self.chunk_size = max(UPLOAD_CHUNK_UNIT, chunk_size - chunk_size % UPLOAD_CHUNK_UNIT)
        self.max_retries = max_retries
        self.http_timeout = http_timeout
        self.backoff_base = backoff_base
        self.backoff_cap = backoff_cap
        self.default_timeout = default_timeout
        self._transport = transport

    async def upload(
        self,
        staged: StagedFile,
        metadata: UploadMetadata,
        token_provider: TokenProvider,
        *,
        timeout: float | None = None,
    ) -> UploadResult:
        """Upload ``staged`` and return the provider's resource id.

        ``timeout`` bounds both phases together and falls back to
        ``default_timeout``. The staged file is released on every exit path,
        including cancellation.
        """
        if timeout is None:
            timeout = self.default_timeout
        session: UploadSession | None = None
        try:
            if staged.size_bytes <= 0:
                raise ValidationError("Uploaded file is empty")

            async with httpx.AsyncClient(
                timeout=self.http_timeout, transport=self._transport
            ) as client:
                async with asyncio.timeout(timeout):
                    session = await self._initiate(client, token_provider, staged, metadata)
                    body = await self._transfer(client, token_provider, staged, session)

        except TimeoutError as e:
            if session is None:
                raise SessionInitiationError("Upload session request timed out") from e
            session.state = UploadState.FAILED
            raise TransferError(
                f"Upload timed out after {session.bytes_sent} of {session.total_bytes} bytes"
            ) from e
        except BaseException:
            if session is not None and session.state is not UploadState.COMPLETE:
                session.state = UploadState.FAILED
            raise
        finally:
            self.temp_files.release(staged)

        resource_id = body.get("id")
        if not resource_id:
            raise TransferError("Upload finished but the provider returned no resource id")

        logger.info(
            "Uploaded %s to %s as %s (%d bytes, %d requests)",
            staged.name, self.provider, resource_id, session.bytes_sent, session.requests,
        )
        return UploadResult(
            resource_id=resource_id, bytes_sent=session.bytes_sent, session=session, body=body
        )

    async def _initiate(
        self,
        client: httpx.AsyncClient,
        token_provider: TokenProvider,
        staged: StagedFile,
        metadata: UploadMetadata,
    ) -> UploadSession:
        token = await token_provider()
        try:
            resp = await client.post(
                f"{self.upload_base}/videos",
                params={"uploadType": "resumable", "part": "snippet,status"},
                headers={
                    "Authorization": f"Bearer {token}",
                    "Content-Type": "application/json; charset=UTF-8",
                    "X-Upload-Content-Type": BINARY_CONTENT_TYPE,
                    "X-Upload-Content-Length": str(staged.size_bytes),
                },
                json=metadata.to_resource(),
            )
        except httpx.HTTPError as e:
            logger.warning("Upload session request failed: %s", type(e).__name__)
            raise SessionInitiationError("Could not reach the upload endpoint") from e

        if not resp.is_success:
            logger.debug("Upload session rejected: %s", resp.text[:200])
            raise SessionInitiationError(
                f"Upload session request failed with HTTP {resp.status_code}"
            )

        session_url = resp.headers.get("location")
        if not session_url:
            raise SessionInitiationError("Upload endpoint returned no session URL")

        logger.info(
            "Upload session opened for %s (%.2f MB)",
            staged.name, staged.size_bytes / 1024 / 1024,
        )
        return UploadSession(
            provider=self.provider, session_url=session_url, total_bytes=staged.size_bytes
        )

    async def _transfer(
        self,
        client: httpx.AsyncClient,
        token_provider: TokenProvider,
        staged: StagedFile,
        session: UploadSession,
    ) -> dict[str, Any]:
        session.state = UploadState.TRANSFERRING
        failures = 0

        try:
            fh = staged.path.open("rb")
        except OSError as e:
            raise TransferError("Could not read the staged file") from e

        with fh:
            while True:
                start = session.bytes_sent
                end = min(start + self.chunk_size, session.total_bytes) - 1
                resp: httpx.Response | None
                try:
                    resp = await self._put_chunk(
                        client, await token_provider(), fh, session, start, end
                    )
                except httpx.TransportError as e:
                    logger.warning(
                        "Chunk %d-%d of %s failed: %s", start, end, staged.name, type(e).__name__
                    )
                    resp = None
                except OSError as e:
                    raise TransferError("Could not read the staged file") from e

                outcome = "transient" if resp is None else _classify(resp)
                if outcome == "complete":
                    return self._complete(resp, session)
                if outcome == "fatal":
                    raise TransferError(f"Upload rejected with HTTP {resp.status_code}")
                if outcome == "incomplete":
                    acked = _acknowledged_offset(resp)
                    if start < acked < session.total_bytes:
                        session.bytes_sent = acked
                        failures = 0
                        continue

                failures += 1
                if failures > self.max_retries:
                    raise TransferError(
                        f"Upload failed after {self.max_retries} retries "
                        f"({session.bytes_sent} of {session.total_bytes} bytes acknowledged)"
                    )
                await asyncio.sleep(self._backoff(failures))

                probe = await self._probe(client, await token_provider(), session)
                if probe is None:
                    continue
                probe_outcome = _classify(probe)
                if probe_outcome == "complete":
                    return self._complete(probe, session)
                if probe_outcome == "fatal":
                    raise TransferError(f"Upload session lost (HTTP {probe.status_code})")
                if probe_outcome == "incomplete":
                    session.bytes_sent = min(_acknowledged_offset(probe), session.total_bytes)
                    logger.info(
                        "Resuming %s at byte %d of %d",
                        staged.name, session.bytes_sent, session.total_bytes,
                    )

    async def _put_chunk(
        self,
        client: httpx.AsyncClient,
        token: str,
        fh: BinaryIO,
        session: UploadSession,
        start: int,
        end: int,
    ) -> httpx.Response:
        length = end - start + 1
        session.requests += 1
        return await client.put(
            session.session_url,
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Length": str(length),
                "Content-Type": BINARY_CONTENT_TYPE,
                "Content-Range": f"bytes {start}-{end}/{session.total_bytes}",
            },
            content=_read_range(fh, start, length),
        )

    async def _probe(
        self, client: httpx.AsyncClient, token: str, session: UploadSession
    ) -> httpx.Response | None:
        """Ask the provider how many bytes of the session it holds."""
        try:
            return await client.put(
                session.session_url,
                headers={
                    "Authorization": f"Bearer {token}",
                    "Content-Length": "0",
                    "Content-Range": f"bytes */{session.total_bytes}",
                },
            )
        except httpx.TransportError as e:
            logger.warning("Upload status probe failed: %s", type(e).__name__)
            return None

    def _complete(self, resp: httpx.Response, session: UploadSession) -> dict[str, Any]:
        try:
            body = resp.json()
        except ValueError:
            raise TransferError("Upload finished but the response was not JSON") from None
        session.bytes_sent = session.total_bytes
        session.state = UploadState.COMPLETE
        return body if isinstance(body, dict) else {}

    def _backoff(self, failures: int) -> float:
        return min(self.backoff_cap, self.backoff_base * 2 ** (failures - 1))


def _classify(resp: httpx.Response) -> str:
    if resp.status_code in (200, 201):
        return "complete"
    if resp.status_code == 308:
        return "incomplete"
    if resp.status_code >= 500 or resp.status_code == 429:
        return "transient"
    return "fatal"


def _acknowledged_offset(resp: httpx.Response) -> int:
    """Next byte to send, from a 308 ``Range: bytes=0-<n>`` header."""
    match = _RANGE_RE.search(resp.headers.get("range", ""))
    return int(match.group(2)) + 1 if match else 0


async def _read_range(fh: BinaryIO, start: int, length: int) -> AsyncIterator[bytes]:
    await asyncio.to_thread(fh.seek, start)
    remaining = length
    while remaining > 0:
        block = await asyncio.to_thread(fh.read, min(STREAM_BLOCK, remaining))
        if not block:
            raise OSError("staged file is shorter than its declared size")
        remaining -= len(block)
        yield block
