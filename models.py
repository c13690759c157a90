"""Core data models for the app."""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Optional


class SessionState(str, Enum):
    IDLE = "IDLE"
    CAPTURING = "CAPTURING"
    UPLOADING = "UPLOADING"
    INFERRING = "INFERRING"
    ERROR = "ERROR"


class Mode(str, Enum):
    TEXT_TO_ANIMATION = "text"
    VIDEO_TO_LABEL = "video"


class UploadKind(str, Enum):
    PROGRESS = "progress"
    COMPLETE = "complete"
    ERROR = "error"


@dataclass(frozen=True)
class Clip:
    data: bytes = field(repr=False)
    content_type: str = "video/webm"
    extension: str = "webm"

    @property
    def size(self) -> int:
        return len(self.data)

    @classmethod
    def from_file(cls, path: Path | str) -> "Clip":
        """Read a clip from disk, guessing the content type from its suffix."""
        path = Path(path)
        content_type, _ = mimetypes.guess_type(path.name)
        extension = path.suffix.lstrip(".").lower() or "webm"
        return cls(
            data=path.read_bytes(),
            content_type=content_type or "video/webm",
            extension=extension,
        )


@dataclass
class UploadEvent:
    kind: str
    bytes_transferred: int = 0
    total_bytes: int = 0
    url: str = ""
    message: str = ""

    @property
    def percent(self) -> float:
        if self.total_bytes <= 0:
            return 100.0 if self.kind == UploadKind.COMPLETE.value else 0.0
        value = self.bytes_transferred / self.total_bytes * 100.0
        return max(0.0, min(100.0, value))


@dataclass(frozen=True)
class InferenceResult:
    label: str
    confidence: float


@dataclass(frozen=True)
class WordSelection:
    text: str
    entry: Optional[str] = None
    asset_url: Optional[str] = None

    @property
    def highlighted(self) -> bool:
        return self.entry is not None


@dataclass(frozen=True)
class SessionSnapshot:
    """Everything a presentation layer needs to draw the current session."""

    mode: Mode
    state: SessionState
    word: WordSelection
    clip_content_type: Optional[str] = None
    upload_progress: Optional[float] = None
    result: Optional[InferenceResult] = None
    display_text: str = ""
    busy: bool = False
