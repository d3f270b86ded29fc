# Staging area — per-request scratch files for uploads in transit.
# Created: 2026-10-18

from __future__ import annotations

import asyncio
import itertools
import logging
import re
import time
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)

# Read size when copying an incoming upload to disk
COPY_CHUNK = 1024 * 1024

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class AsyncReadable(Protocol):
    async def read(self, size: int = -1) -> bytes: ...


@dataclass
class StagedFile:
    """A file staged for exactly one request."""

    path: Path
    size_bytes: int
    owner_request_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    released: bool = False

    @property
    def name(self) -> str:
        return self.path.name


def _safe_filename(name: str) -> str:
    base = Path(name or "upload.bin").name
    cleaned = _UNSAFE_CHARS.sub("_", base).strip("._")
    return cleaned or "upload.bin"


class TempFileManager:
    """Writes uploads under a scratch directory and deletes them afterwards.

    File names are ``<ns-timestamp>-<seq>_<original name>`` so concurrent
    requests staging the same name never collide. The manager only ever
    deletes files it staged itself; anything else in ``scratch_dir`` is left
    alone.
    """

    def __init__(self, scratch_dir: Path | str):
        self.scratch_dir = Path(scratch_dir)
        self._seq = itertools.count()
        self._live: set[Path] = set()

    def _target_path(self, name: str) -> Path:
        self.scratch_dir.mkdir(parents=True, exist_ok=True)
        return self.scratch_dir / f"{time.time_ns()}-{next(self._seq)}_{_safe_filename(name)}"

    def stage(self, name: str, data: bytes, request_id: str | None = None) -> StagedFile:
        """Write ``data`` to a fresh scratch file."""
        path = self._target_path(name)
        path.write_bytes(data)
        self._live.add(path)
        staged = StagedFile(path=path, size_bytes=len(data))
        if request_id:
            staged.owner_request_id = request_id
        logger.debug("Staged %s (%d bytes)", path.name, staged.size_bytes)
        return staged

    async def stage_stream(
        self, name: str, source: AsyncReadable, request_id: str | None = None
    ) -> StagedFile:
        """Copy an async readable (e.g. an ``UploadFile``) to disk chunk by chunk.

        A partially written file is removed if the copy fails.
        """
        path = self._target_path(name)
        self._live.add(path)
        size = 0
        try:
            with path.open("wb") as fh:
                while chunk := await source.read(COPY_CHUNK):
                    await asyncio.to_thread(fh.write, chunk)
                    size += len(chunk)
        except BaseException:
            self._live.discard(path)
            path.unlink(missing_ok=True)
            raise

        staged = StagedFile(path=path, size_bytes=size)
        if request_id:
            staged.owner_request_id = request_id
        logger.debug("Staged %s (%d bytes)", path.name, size)
        return staged

    def release(self, staged: StagedFile) -> None:
        """Delete a staged file. Releasing twice is a no-op."""
        if staged.released:
            return
        staged.released = True
        self._live.discard(staged.path)
        try:
            staged.path.unlink(missing_ok=True)
            logger.debug("Released %s", staged.path.name)
        except OSError:
            logger.warning("Failed to delete staged file %s", staged.path, exc_info=True)

    @asynccontextmanager
    async def staged(self, name: str, source: AsyncReadable, request_id: str | None = None):
        """Stage ``source`` for the duration of the block, then release it."""
        staged = await self.stage_stream(name, source, request_id)
        try:
            yield staged
        finally:
            self.release(staged)

    def purge(self) -> int:
        """Delete files this manager staged but never released. Returns the count."""
        removed = 0
        for path in list(self._live):
            self._live.discard(path)
            try:
                if path.is_file():
                    path.unlink()
                    removed += 1
            except OSError:
                logger.warning("Failed to delete staged file %s", path, exc_info=True)
        if removed:
            logger.info("Purged %d leftover staged files", removed)
        return removed
