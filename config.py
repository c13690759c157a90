"""Application config value and its JSON-backed store."""

from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path

DEFAULT_INFERENCE_URL = "https://louisljz-bisindo-sign-lang-recog.hf.space/predict"
DEFAULT_ASSET_BASE_URL = "https://storage.cloud.google.com/omdena-videos/skeletons-webm"

# GCS resumable uploads require chunks in multiples of 256 KiB.
CHUNK_GRANULARITY = 256 * 1024

# Stored values win; the environment only fills keys missing from the file.
ENV_OVERRIDES = {
    "bucket": "SIGN_TRANSLATOR_BUCKET",
    "inference_url": "SIGN_TRANSLATOR_INFERENCE_URL",
}


@dataclass(frozen=True)
class AppConfig:
    bucket: str = ""
    object_prefix: str = "videos"
    inference_url: str = DEFAULT_INFERENCE_URL
    asset_base_url: str = DEFAULT_ASSET_BASE_URL
    asset_extension: str = "webm"
    confidence_threshold: float = 0.4
    request_timeout_s: float = 60.0
    camera_index: int = 0
    chunk_size: int = 4 * CHUNK_GRANULARITY


class JsonConfigStore:
    def __init__(self, path: Path | None = None) -> None:
        self._path = path or Path.home() / ".config" / "sign_translator" / "config.json"
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> AppConfig:
        """Build an AppConfig from the stored file, env vars and defaults."""
        data = self._read_all()
        known = {f.name for f in fields(AppConfig)}
        values = {name: value for name, value in data.items() if name in known}
        for name, env_var in ENV_OVERRIDES.items():
            if name not in values and os.getenv(env_var):
                values[name] = os.environ[env_var]
        return replace(AppConfig(), **values)

    def save(self, config: AppConfig) -> None:
        self._write_all(asdict(config))

    def update(self, **changes: object) -> AppConfig:
        data = self._read_all()
        for key, value in changes.items():
            if value is None:
                continue
            data[key] = value
        self._write_all(data)
        return self.load()

    def get_bucket(self) -> str:
        return str(self._read_all().get("bucket", ""))

    def set_bucket(self, bucket: str) -> None:
        self.update(bucket=bucket)

    def get_inference_url(self) -> str:
        return str(self._read_all().get("inference_url", DEFAULT_INFERENCE_URL))

    def set_inference_url(self, url: str) -> None:
        self.update(inference_url=url)

    def _read_all(self) -> dict:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (json.JSONDecodeError, OSError):
            return {}
        return data if isinstance(data, dict) else {}

    def _write_all(self, data: dict) -> None:
        self._path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
