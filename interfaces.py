"""Protocol interfaces used by SessionController."""

from __future__ import annotations

from typing import Iterator, Protocol

from config import AppConfig
from models import Clip, InferenceResult, UploadEvent


class Recorder(Protocol):
    def start(self) -> None: ...

    def stop(self) -> Clip: ...

    def release(self) -> None: ...

    @property
    def recording(self) -> bool: ...


class Uploader(Protocol):
    def upload(self, clip: Clip) -> Iterator[UploadEvent]: ...


class InferenceClient(Protocol):
    def classify(self, url: str) -> InferenceResult: ...


class ConfigStore(Protocol):
    def load(self) -> AppConfig: ...

    def save(self, config: AppConfig) -> None: ...
