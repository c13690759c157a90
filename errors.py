"""Shared error codes, user-facing messages and exception types."""

from __future__ import annotations

CAPTURE_UNAVAILABLE = "CAPTURE_UNAVAILABLE"
UPLOAD_FAILED = "UPLOAD_FAILED"
INFERENCE_FAILED = "INFERENCE_FAILED"
PRECONDITION_VIOLATION = "PRECONDITION_VIOLATION"

ERROR_MESSAGES = {
    CAPTURE_UNAVAILABLE: "No camera stream is available.",
    UPLOAD_FAILED: "Upload failed, please retry.",
    INFERENCE_FAILED: "Could not classify the clip, please retry.",
    PRECONDITION_VIOLATION: "Operation is not valid in the current state.",
}


class TranslatorError(Exception):
    code = ""

    def __init__(self, message: str = "") -> None:
        super().__init__(message or ERROR_MESSAGES.get(self.code, ""))

    @property
    def message(self) -> str:
        return str(self)


class CaptureUnavailable(TranslatorError):
    code = CAPTURE_UNAVAILABLE


class UploadFailed(TranslatorError):
    code = UPLOAD_FAILED


class InferenceFailed(TranslatorError):
    code = INFERENCE_FAILED


class PreconditionViolation(TranslatorError):
    """Raised for calls that are invalid in the current state (caller bug)."""

    code = PRECONDITION_VIOLATION
