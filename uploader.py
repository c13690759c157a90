"""Clip uploader backed by a Google Cloud Storage resumable session.

A session URL is created with ``google-cloud-storage`` and the clip is sent
in ``Content-Range`` chunks over ``requests``. Each acknowledged chunk is
reported as a progress event, so callers see how much of the clip the
server has actually committed.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from typing import Any, Iterator

import requests

from config import CHUNK_GRANULARITY
from errors import PreconditionViolation
from models import Clip, UploadEvent, UploadKind

try:
    from google.cloud import storage
except Exception:  # pragma: no cover
    storage = None  # type: ignore

logger = logging.getLogger(__name__)

RESUME_INCOMPLETE = 308


def _progress(done: int, total: int) -> UploadEvent:
    return UploadEvent(kind=UploadKind.PROGRESS.value, bytes_transferred=done, total_bytes=total)


def _error(message: str, done: int = 0, total: int = 0) -> UploadEvent:
    return UploadEvent(
        kind=UploadKind.ERROR.value,
        bytes_transferred=done,
        total_bytes=total,
        message=message,
    )


def _committed_bytes(response: requests.Response) -> int:
    """Parse the ``Range: bytes=0-N`` header of a 308 reply."""
    value = response.headers.get("Range", "")
    if not value.startswith("bytes="):
        return 0
    try:
        return int(value.split("-", 1)[1]) + 1
    except (IndexError, ValueError):
        return 0


class GcsUploader:
    def __init__(
        self,
        bucket: str,
        object_prefix: str = "videos",
        chunk_size: int = 4 * CHUNK_GRANULARITY,
        request_timeout_s: float = 60.0,
        client: Any = None,
    ) -> None:
        if chunk_size <= 0 or chunk_size % CHUNK_GRANULARITY:
            raise ValueError(f"chunk_size must be a positive multiple of {CHUNK_GRANULARITY}")
        self._bucket_name = bucket
        self._prefix = object_prefix.strip("/")
        self._chunk_size = chunk_size
        self._request_timeout_s = request_timeout_s
        self._client = client
        self._lock = threading.Lock()
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    def object_name(self, clip: Clip) -> str:
        stamp = int(time.time() * 1000)
        name = f"{stamp}-{uuid.uuid4().hex[:8]}.{clip.extension}"
        return f"{self._prefix}/{name}" if self._prefix else name

    def upload(self, clip: Clip) -> Iterator[UploadEvent]:
        """Start uploading ``clip`` and return its event stream.

        The stream yields zero or more progress events and ends with exactly
        one complete or error event. It must be consumed to the end; the
        uploader stays busy until then.
        """
        with self._lock:
            if self._active:
                raise PreconditionViolation("an upload is already in progress")
            self._active = True
        return self._stream(clip)

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _stream(self, clip: Clip) -> Iterator[UploadEvent]:
        try:
            yield from self._transfer(clip)
        finally:
            with self._lock:
                self._active = False

    def _transfer(self, clip: Clip) -> Iterator[UploadEvent]:
        total = clip.size
        if total == 0:
            yield _error("clip is empty")
            return
        if not self._bucket_name:
            yield _error("no storage bucket configured", total=total)
            return

        name = self.object_name(clip)
        try:
            blob = self._bucket().blob(name)
            session_url = blob.create_resumable_upload_session(
                content_type=clip.content_type,
                size=total,
            )
        except Exception as exc:
            logger.error("Upload failed: could not open session for %s: %s", name, exc)
            yield _error(str(exc), total=total)
            return

        yield _progress(0, total)
        offset = 0
        while offset < total:
            chunk = clip.data[offset : offset + self._chunk_size]
            last = offset + len(chunk) - 1
            try:
                response = requests.put(
                    session_url,
                    data=chunk,
                    headers={"Content-Range": f"bytes {offset}-{last}/{total}"},
                    timeout=self._request_timeout_s,
                )
            except requests.RequestException as exc:
                logger.error("Upload failed at byte %d of %s: %s", offset, name, exc)
                yield _error(str(exc), offset, total)
                return

            if response.status_code in (200, 201):
                committed = total
            elif response.status_code == RESUME_INCOMPLETE:
                committed = _committed_bytes(response)
            else:
                message = f"storage responded with HTTP {response.status_code}"
                logger.error("Upload failed for %s: %s", name, message)
                yield _error(message, offset, total)
                return

            if committed <= offset:
                logger.error("Upload stalled at byte %d of %s", offset, name)
                yield _error("upload made no progress", offset, total)
                return
            offset = committed
            yield _progress(offset, total)

        url = blob.public_url
        logger.info("Uploaded %s (%d bytes)", name, total)
        yield UploadEvent(
            kind=UploadKind.COMPLETE.value,
            bytes_transferred=total,
            total_bytes=total,
            url=url,
        )

    def _bucket(self) -> Any:
        if self._client is None:
            if storage is None:
                raise RuntimeError("google-cloud-storage is not installed")
            self._client = storage.Client()
        return self._client.bucket(self._bucket_name)

