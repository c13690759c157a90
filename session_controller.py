"""State-machine based session orchestration."""

from __future__ import annotations

import logging
import threading
from typing import Callable, List, Optional

import vocabulary
from config import AppConfig
from errors import (
    CAPTURE_UNAVAILABLE,
    INFERENCE_FAILED,
    UPLOAD_FAILED,
    CaptureUnavailable,
    InferenceFailed,
    PreconditionViolation,
    TranslatorError,
)
from interfaces import InferenceClient, Recorder, Uploader
from models import (
    Clip,
    InferenceResult,
    Mode,
    SessionSnapshot,
    SessionState,
    UploadEvent,
    UploadKind,
    WordSelection,
)

logger = logging.getLogger(__name__)

StateCallback = Callable[[SessionState, SessionState], None]
ErrorCallback = Callable[[str, str], None]
SnapshotListener = Callable[[SessionSnapshot], None]
Runner = Callable[[Callable[[], None]], None]


def spawn_thread(job: Callable[[], None]) -> None:
    threading.Thread(target=job, daemon=True).start()


class SessionController:
    """Sequences capture or file selection, upload, inference and display.

    Network work runs through ``runner`` (a daemon thread per job by
    default). Every pipeline is tagged with the session id current when it
    started; completions carrying an older id are dropped, so a ``reset()``
    never gets overwritten by work that was already in flight.
    """

    def __init__(
        self,
        recorder: Recorder,
        uploader: Uploader,
        inference: InferenceClient,
        config: AppConfig,
        runner: Optional[Runner] = None,
        on_state_change: Optional[StateCallback] = None,
        on_error: Optional[ErrorCallback] = None,
    ) -> None:
        self._recorder = recorder
        self._uploader = uploader
        self._inference = inference
        self._config = config
        self._runner = runner or spawn_thread
        self._on_state_change = on_state_change
        self._on_error = on_error

        self._lock = threading.RLock()
        self._state = SessionState.IDLE
        self._mode = Mode.TEXT_TO_ANIMATION
        self._session_id = 0
        self._outstanding = 0
        self._clip: Optional[Clip] = None
        self._progress: Optional[float] = None
        self._result: Optional[InferenceResult] = None
        self._word = self._resolve_word(vocabulary.DEFAULT_WORD)
        self._listeners: List[SnapshotListener] = []

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def mode(self) -> Mode:
        return self._mode

    @property
    def session_id(self) -> int:
        return self._session_id

    @property
    def result(self) -> Optional[InferenceResult]:
        return self._result

    @property
    def upload_progress(self) -> Optional[float]:
        return self._progress

    @property
    def word(self) -> WordSelection:
        return self._word

    @property
    def busy(self) -> bool:
        """True while an upload or inference (possibly stale) is outstanding."""
        return self._outstanding > 0

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def snapshot(self) -> SessionSnapshot:
        with self._lock:
            if self._mode == Mode.VIDEO_TO_LABEL:
                display_text = vocabulary.format_result(self._result)
            else:
                display_text = vocabulary.title_case(self._word.text)
            return SessionSnapshot(
                mode=self._mode,
                state=self._state,
                word=self._word,
                clip_content_type=self._clip.content_type if self._clip else None,
                upload_progress=self._progress,
                result=self._result,
                display_text=display_text,
                busy=self.busy,
            )

    # ------------------------------------------------------------------
    # Text to animation
    # ------------------------------------------------------------------

    def select_word(self, text: str) -> WordSelection:
        with self._lock:
            self._require_mode(Mode.TEXT_TO_ANIMATION, "select_word")
            self._word = self._resolve_word(vocabulary.normalize_input(text))
            self._notify()
            return self._word

    # ------------------------------------------------------------------
    # Video to label
    # ------------------------------------------------------------------

    def begin_capture(self) -> None:
        with self._lock:
            self._require_mode(Mode.VIDEO_TO_LABEL, "begin_capture")
            self._require_idle("begin_capture")
            try:
                self._recorder.start()
            except CaptureUnavailable as exc:
                logger.warning("Capture unavailable: %s", exc)
                self._emit_error(exc.code, exc.message)
                raise
            self._transition(SessionState.CAPTURING)

    def end_capture(self) -> None:
        with self._lock:
            if self._state != SessionState.CAPTURING:
                raise PreconditionViolation(f"end_capture() is not valid while {self._state.value}")
            try:
                clip = self._recorder.stop()
            except CaptureUnavailable as exc:
                self._fail(exc.code, exc.message)
                return
            if clip.size == 0:
                self._fail(CAPTURE_UNAVAILABLE, "recording produced no video")
                return
            self._start_upload(clip)

    def select_clip(self, clip: Clip) -> None:
        with self._lock:
            self._require_mode(Mode.VIDEO_TO_LABEL, "select_clip")
            self._require_idle("select_clip")
            if clip.size == 0:
                raise PreconditionViolation("cannot upload an empty clip")
            self._start_upload(clip)

    # ------------------------------------------------------------------
    # Reset / mode
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Abandon the current session.

        A recording in progress is stopped and discarded. Network work in
        flight keeps running but its completion is ignored.
        """
        with self._lock:
            self._session_id += 1
            self._safe_stop_recorder()
            self._clip = None
            self._progress = None
            self._result = None
            if self._state == SessionState.IDLE:
                self._notify()
            else:
                self._transition(SessionState.IDLE)

    def set_mode(self, mode: Mode) -> None:
        with self._lock:
            if mode == self._mode:
                return
            self.reset()
            self._safe_release_recorder()
            self._mode = mode
            self._notify()

    def switch_mode(self) -> Mode:
        with self._lock:
            if self._mode == Mode.TEXT_TO_ANIMATION:
                self.set_mode(Mode.VIDEO_TO_LABEL)
            else:
                self.set_mode(Mode.TEXT_TO_ANIMATION)
            return self._mode

    def close(self) -> None:
        with self._lock:
            self.reset()
            self._safe_release_recorder()

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    def _start_upload(self, clip: Clip) -> None:
        self._session_id += 1
        session_id = self._session_id
        self._clip = clip
        self._result = None
        self._progress = 0.0
        self._outstanding += 1
        self._transition(SessionState.UPLOADING)
        self._runner(lambda: self._run_pipeline(session_id, clip))

    def _run_pipeline(self, session_id: int, clip: Clip) -> None:
        try:
            url = self._run_upload(session_id, clip)
            if url is not None:
                self._run_inference(session_id, url)
        finally:
            with self._lock:
                self._outstanding -= 1
                self._notify()

    def _run_upload(self, session_id: int, clip: Clip) -> Optional[str]:
        url: Optional[str] = None
        events = None
        try:
            events = self._uploader.upload(clip)
            for event in events:
                if event.kind == UploadKind.PROGRESS.value:
                    self._handle_progress(session_id, event)
                elif event.kind == UploadKind.COMPLETE.value:
                    url = event.url
                    break
                elif event.kind == UploadKind.ERROR.value:
                    self._handle_failure(session_id, UPLOAD_FAILED, event.message)
                    return None
        except Exception as exc:
            self._handle_failure(session_id, UPLOAD_FAILED, str(exc) or type(exc).__name__)
            return None
        finally:
            close = getattr(events, "close", None)
            if close is not None:
                close()

        with self._lock:
            if self._is_stale(session_id):
                logger.debug("Dropping upload result of abandoned session %d", session_id)
                return None
            if not url:
                self._fail(UPLOAD_FAILED, "upload ended without a URL")
                return None
            self._progress = None
            self._transition(SessionState.INFERRING)
        return url

    def _run_inference(self, session_id: int, url: str) -> None:
        try:
            raw = self._inference.classify(url)
        except InferenceFailed as exc:
            self._handle_failure(session_id, exc.code, exc.message)
            return
        except Exception as exc:
            self._handle_failure(session_id, INFERENCE_FAILED, str(exc) or type(exc).__name__)
            return

        with self._lock:
            if self._is_stale(session_id):
                logger.debug("Dropping inference result of abandoned session %d", session_id)
                return
            self._result = vocabulary.apply_threshold(
                raw.label, raw.confidence, self._config.confidence_threshold
            )
            self._clip = None
            self._transition(SessionState.IDLE)

    def _handle_progress(self, session_id: int, event: UploadEvent) -> None:
        with self._lock:
            if self._is_stale(session_id):
                return
            percent = event.percent
            if self._progress is not None and percent <= self._progress:
                return
            self._progress = percent
            self._notify()

    def _handle_failure(self, session_id: int, code: str, message: str) -> None:
        with self._lock:
            if self._is_stale(session_id):
                logger.debug("Dropping %s of abandoned session %d: %s", code, session_id, message)
                return
            self._fail(code, message)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _is_stale(self, session_id: int) -> bool:
        return session_id != self._session_id

    def _require_idle(self, operation: str) -> None:
        if self._state != SessionState.IDLE:
            raise PreconditionViolation(f"{operation}() is not valid while {self._state.value}")
        if self._outstanding:
            raise PreconditionViolation(f"{operation}() is not valid while a previous clip is in flight")

    def _require_mode(self, mode: Mode, operation: str) -> None:
        if self._mode != mode:
            raise PreconditionViolation(f"{operation}() requires {mode.value} mode")

    def _resolve_word(self, text: str) -> WordSelection:
        return vocabulary.resolve(
            text, self._config.asset_base_url, self._config.asset_extension
        )

    def _fail(self, code: str, message: str) -> None:
        self._clip = None
        self._progress = None
        self._result = None
        self._transition(SessionState.ERROR)
        self._emit_error(code, message)
        self._transition(SessionState.IDLE)

    def _emit_error(self, code: str, message: str) -> None:
        logger.error("%s: %s", code, message)
        if self._on_error:
            self._on_error(code, message)

    def _safe_stop_recorder(self) -> None:
        if not self._recorder.recording:
            return
        try:
            self._recorder.stop()
        except TranslatorError as exc:
            logger.warning("Discarding recording failed: %s", exc)

    def _safe_release_recorder(self) -> None:
        try:
            self._recorder.release()
        except TranslatorError as exc:
            logger.warning("Releasing camera failed: %s", exc)

    def _transition(self, to_state: SessionState) -> None:
        from_state = self._state
        if from_state == to_state:
            return
        self._state = to_state
        if self._on_state_change:
            self._on_state_change(from_state, to_state)
        self._notify()

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.snapshot()
        for listener in list(self._listeners):
            listener(snapshot)
