"""Serialization and delivery of captured sessions to the remote collector.

A sealed session is rendered as CSV text and sent as one form-encoded POST:

- ``value``: the full CSV text (header plus one line per row)
- ``fileNum``: the session index as text
- ``fileName``: ``<prefix>_<index>.<ext>``

Delivery is best effort. ``upload()`` returns immediately with an asyncio
task; the task never raises for network or server problems and instead
resolves to an ``UploadResult`` describing what happened. There is exactly
one attempt per session and nothing is kept after it.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

import aiohttp

from .errors import NetworkFailure, ServerRejected, UploadError
from .models import CSV_HEADER, FusedRow

logger = logging.getLogger(__name__)


def serialize_rows(rows: Sequence[FusedRow]) -> str:
    """Render rows as CSV text with the fixed seven-field header."""
    lines = [CSV_HEADER]
    lines.extend(row.to_csv() for row in rows)
    return "\n".join(lines) + "\n"


def build_file_name(prefix: str, session_index: int, ext: str) -> str:
    return f"{prefix}_{session_index}.{ext}"


class UploadStatus(Enum):
    SENT = "sent"  # 2xx response
    SKIPPED = "skipped"  # empty session, no request made
    REJECTED = "rejected"  # non-2xx response
    FAILED = "failed"  # no response at all


@dataclass(frozen=True)
class UploadResult:
    """Outcome of one upload attempt."""

    session_index: int
    file_name: str
    row_count: int
    status: UploadStatus
    http_status: Optional[int] = None
    error: Optional[UploadError] = None

    @property
    def ok(self) -> bool:
        return self.status in (UploadStatus.SENT, UploadStatus.SKIPPED)


class Uploader(ABC):
    """Non-blocking upload capability used by the state machine."""

    @abstractmethod
    def upload(
        self, rows: Sequence[FusedRow], session_index: int
    ) -> "asyncio.Task[UploadResult]":
        """Dispatch a session and return a task resolving to its result."""

    async def drain(self) -> None:
        """Wait for in-flight uploads to finish."""

    async def close(self) -> None:
        """Release transport resources."""


class HttpUploader(Uploader):
    """Form POST uploader built on a shared aiohttp client session.

    Attributes:
        url: Collector endpoint (host:port plus path).
        uploads_sent: Count of 2xx responses.
        upload_failures: Count of rejected and failed uploads.
    """

    def __init__(
        self,
        url: str,
        *,
        file_prefix: str = "gesture",
        file_ext: str = "csv",
        request_timeout: Optional[float] = None,
    ) -> None:
        self.url = url
        self.file_prefix = file_prefix
        self.file_ext = file_ext
        self._timeout = aiohttp.ClientTimeout(total=request_timeout)
        self._session: Optional[aiohttp.ClientSession] = None
        self._in_flight: set[asyncio.Task[UploadResult]] = set()
        self.uploads_sent = 0
        self.upload_failures = 0

    def upload(
        self, rows: Sequence[FusedRow], session_index: int
    ) -> "asyncio.Task[UploadResult]":
        rows = list(rows)
        task = asyncio.get_running_loop().create_task(
            self._send(rows, session_index), name=f"upload-{session_index}"
        )
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return task

    async def _send(self, rows: list[FusedRow], session_index: int) -> UploadResult:
        file_name = build_file_name(self.file_prefix, session_index, self.file_ext)

        if not rows:
            logger.info("Session %d is empty, skipping upload", session_index)
            return UploadResult(
                session_index, file_name, 0, UploadStatus.SKIPPED
            )

        form = {
            "value": serialize_rows(rows),
            "fileNum": str(session_index),
            "fileName": file_name,
        }
        logger.debug("Sending %s (%d rows) to %s", file_name, len(rows), self.url)

        try:
            session = self._get_session()
            async with session.post(self.url, data=form) as response:
                body = await response.text()
                logger.debug(
                    "Response code=%d body=%s", response.status, body[:200]
                )
                status = response.status
        except (aiohttp.ClientError, OSError, asyncio.TimeoutError) as e:
            self.upload_failures += 1
            reason = str(e) or type(e).__name__
            logger.error("Upload of %s failed: %s", file_name, reason)
            return UploadResult(
                session_index,
                file_name,
                len(rows),
                UploadStatus.FAILED,
                error=NetworkFailure(reason),
            )

        if 200 <= status < 300:
            self.uploads_sent += 1
            logger.info("Uploaded %s: %d rows, HTTP %d", file_name, len(rows), status)
            return UploadResult(
                session_index, file_name, len(rows), UploadStatus.SENT, status
            )

        self.upload_failures += 1
        logger.warning("Upload of %s rejected: HTTP %d", file_name, status)
        return UploadResult(
            session_index,
            file_name,
            len(rows),
            UploadStatus.REJECTED,
            status,
            ServerRejected(status),
        )

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
        return self._session

    async def drain(self) -> None:
        if self._in_flight:
            await asyncio.gather(*self._in_flight, return_exceptions=True)

    async def close(self) -> None:
        await self.drain()
        if self._session is not None and not self._session.closed:
            await self._session.close()
        self._session = None
