"""Camera recorder adapter."""

from __future__ import annotations

import logging
import os
import tempfile
import threading
import time
from pathlib import Path
from typing import Any, Optional

from errors import CaptureUnavailable, PreconditionViolation
from models import Clip

try:
    import cv2
except Exception:  # pragma: no cover
    cv2 = None  # type: ignore

logger = logging.getLogger(__name__)


class _Recording:
    """State owned by one start()/stop() cycle and its worker thread."""

    def __init__(self, capture: Any, writer: Any, path: Path, first_frame: Any) -> None:
        self.capture = capture
        self.writer = writer
        self.path = path
        self.latest_frame = first_frame
        self.frames_written = 1
        self.stop_event = threading.Event()
        self.thread: Optional[threading.Thread] = None
        self.lock = threading.Lock()
        self.finished = False
        self.abandoned = False
        self.release_capture = False

    def hand_off_capture(self) -> bool:
        """Ask a still-running worker to release the camera when it exits."""
        with self.lock:
            if self.finished:
                return False
            self.release_capture = True
            return True


class OpenCVRecorder:
    """Records the live preview stream into a WebM clip.

    The camera stream is attached with ``open()`` (or lazily by ``start()``)
    and stays owned by this adapter until ``release()``. Frames are pulled on
    a worker thread while recording so ``read_preview()`` keeps returning the
    most recent frame. A worker that does not stop within ``join_timeout_s``
    keeps its writer and file; no new recording starts until it has exited.
    """

    def __init__(
        self,
        camera_index: int = 0,
        fps: float = 20.0,
        fourcc: str = "VP80",
        extension: str = "webm",
        content_type: str = "video/webm",
        join_timeout_s: float = 2.0,
    ) -> None:
        self.camera_index = camera_index
        self.fps = fps
        self.fourcc = fourcc
        self.extension = extension
        self.content_type = content_type
        self._join_timeout_s = join_timeout_s
        self._capture: Any = None
        self._lock = threading.Lock()
        self._current: Optional[_Recording] = None
        self._last: Optional[_Recording] = None
        self._stalled: Optional[_Recording] = None

    @property
    def recording(self) -> bool:
        return self._current is not None

    @property
    def is_open(self) -> bool:
        return self._capture is not None

    @property
    def frames_written(self) -> int:
        recording = self._current or self._last
        return recording.frames_written if recording else 0

    def open(self) -> None:
        with self._lock:
            self._open_locked()

    def read_preview(self) -> Any:
        """Return the latest camera frame, or None when nothing is available."""
        with self._lock:
            if self._current is not None:
                return self._current.latest_frame
            if self._capture is None:
                return None
            ok, frame = self._capture.read()
            return frame if ok else None

    def start(self) -> None:
        with self._lock:
            if self._current is not None:
                return
            if self._stalled is not None:
                if not self._stalled.finished:
                    raise CaptureUnavailable("previous recording has not stopped yet")
                self._stalled = None
            self._open_locked()
            ok, frame = self._capture.read()
            if not ok or frame is None:
                raise CaptureUnavailable("camera returned no frames")

            height, width = frame.shape[:2]
            fd, name = tempfile.mkstemp(suffix=f".{self.extension}")
            os.close(fd)
            path = Path(name)
            writer = cv2.VideoWriter(
                str(path),
                cv2.VideoWriter_fourcc(*self.fourcc),
                self.fps,
                (width, height),
            )
            if not writer.isOpened():
                writer.release()
                path.unlink(missing_ok=True)
                raise CaptureUnavailable(f"cannot encode {self.fourcc} video")

            writer.write(frame)
            recording = _Recording(self._capture, writer, path, frame)
            recording.thread = threading.Thread(target=self._worker, args=(recording,), daemon=True)
            self._current = recording
            recording.thread.start()

    def stop(self) -> Clip:
        with self._lock:
            recording = self._current
            if recording is None:
                raise PreconditionViolation("stop() called without a prior start()")
            self._current = None
            self._last = recording
            recording.stop_event.set()
            if recording.thread is not None:
                recording.thread.join(timeout=self._join_timeout_s)
            with recording.lock:
                if not recording.finished:
                    # The worker deletes the file itself once its read returns.
                    recording.abandoned = True
                    self._stalled = recording
                    raise CaptureUnavailable("camera did not stop in time")
            try:
                data = recording.path.read_bytes()
            finally:
                recording.path.unlink(missing_ok=True)
        logger.debug("recorded %d frames (%d bytes)", recording.frames_written, len(data))
        return Clip(data=data, content_type=self.content_type, extension=self.extension)

    def release(self) -> None:
        """Stop any recording and hand the camera back to the system."""
        if self._current is not None:
            try:
                self.stop()
            except CaptureUnavailable as exc:
                logger.warning("Discarding recording failed: %s", exc)
        with self._lock:
            if self._capture is not None:
                stalled = self._stalled
                if stalled is None or not stalled.hand_off_capture():
                    self._capture.release()
                self._capture = None

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _open_locked(self) -> None:
        if self._capture is not None:
            return
        if cv2 is None:
            raise CaptureUnavailable("opencv is not installed")
        capture = cv2.VideoCapture(self.camera_index)
        if not capture.isOpened():
            capture.release()
            raise CaptureUnavailable(f"camera {self.camera_index} could not be opened")
        self._capture = capture

    def _worker(self, recording: _Recording) -> None:
        interval = 1.0 / self.fps if self.fps > 0 else 0.0
        try:
            while not recording.stop_event.is_set():
                ok, frame = recording.capture.read()
                if not ok or frame is None:
                    time.sleep(interval)
                    continue
                recording.latest_frame = frame
                recording.writer.write(frame)
                recording.frames_written += 1
        finally:
            recording.writer.release()
            with recording.lock:
                recording.finished = True
                abandoned = recording.abandoned
                release_capture = recording.release_capture
            if abandoned:
                recording.path.unlink(missing_ok=True)
            if release_capture:
                recording.capture.release()
