"""
In-memory registry of upload sessions and their byte progress.

A client asks for an upload id, sends the file with that id in the
``X-Upload-ID`` header and polls the progress on a separate request.

Sessions expire a fixed time (one hour by default) after their last state
transition: initiate, start, complete or fail. Byte updates do not extend a
session. Expired sessions are dropped lazily on access and by the periodic
sweep started with the application.
"""

import asyncio
import logging
import math
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from pdf_service.documents.schemas import UploadProgress
from pdf_service.errors import NotFoundError

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600.0


def compute_percentage(loaded: int, total: int) -> int:
    """``loaded / total`` as a whole percentage, halves rounded up; 0 when total is unknown."""
    if not total or total <= 0:
        return 0
    return int(math.floor(loaded * 100 / total + 0.5))


@dataclass
class _Session:
    progress: UploadProgress
    expires_at: float


class UploadProgressTracker:

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: Dict[str, _Session] = {}

    def _live(self, upload_id: str) -> Optional[_Session]:
        session = self._sessions.get(upload_id)
        if session is not None and session.expires_at <= self._clock():
            del self._sessions[upload_id]
            logger.info(f"Upload session {upload_id} expired")
            return None
        return session

    def _transition(self, upload_id: str, progress: UploadProgress) -> None:
        self._sessions[upload_id] = _Session(progress, self._clock() + self.ttl_seconds)

    def initiate(self) -> str:
        upload_id = str(uuid.uuid4())
        self._transition(upload_id, UploadProgress(status="pending"))
        logger.info(f"📤 Upload initiated: {upload_id}")
        return upload_id

    def start(self, upload_id: str, total_bytes: int) -> None:
        """
        Mark the session as uploading.

        Raises:
            NotFoundError: If the id is unknown or expired; the client has to
                initiate a new upload
        """
        if self._live(upload_id) is None:
            raise NotFoundError("Upload ID not found")
        self._transition(upload_id, UploadProgress(status="uploading", total=total_bytes))

    def update(self, upload_id: str, loaded_bytes: int) -> None:
        # Late or stray updates are dropped, they must never break the upload
        session = self._live(upload_id)
        if session is None or session.progress.status != "uploading":
            return
        session.progress = session.progress.model_copy(update={
            "loaded": loaded_bytes,
            "percentage": compute_percentage(loaded_bytes, session.progress.total),
        })

    def complete(self, upload_id: str) -> None:
        session = self._live(upload_id)
        if session is None:
            return
        progress = session.progress
        self._transition(upload_id, progress.model_copy(update={
            "status": "completed",
            "loaded": progress.total,
            "percentage": 100,
        }))
        logger.info(f"✅ Upload {upload_id} completed ({progress.total} bytes)")

    def fail(self, upload_id: str, message: str) -> None:
        session = self._live(upload_id)
        if session is None:
            return
        self._transition(upload_id, session.progress.model_copy(update={
            "status": "error",
            "error": message,
        }))
        logger.warning(f"Upload {upload_id} failed: {message}")

    def get(self, upload_id: str) -> Optional[UploadProgress]:
        session = self._live(upload_id)
        return session.progress.model_copy() if session is not None else None

    def purge_expired(self) -> int:
        """Drop every expired session; returns how many were removed."""
        now = self._clock()
        expired = [upload_id for upload_id, session in self._sessions.items() if session.expires_at <= now]
        for upload_id in expired:
            del self._sessions[upload_id]
        if expired:
            logger.info(f"Purged {len(expired)} expired upload sessions")
        return len(expired)

    def clear(self) -> None:
        self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)

    async def sweep_forever(self, interval_seconds: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            self.purge_expired()
