"""BISINDO word vocabulary and animation asset lookup."""

from __future__ import annotations

import math
from typing import Optional

from models import InferenceResult, WordSelection

WORDS = (
    "adik",
    "anak",
    "besar",
    "buka",
    "buruk",
    "dengar",
    "gembira",
    "guru",
    "haus",
    "ibu",
    "jalan",
    "keluarga",
    "kertas",
    "kucing",
    "lapar",
    "lihat",
    "maaf",
    "main",
    "makan",
    "marah",
    "minum",
    "nama",
    "orang",
    "panggil",
    "rumah",
    "sedikit",
    "selamat",
    "senyum",
    "teman",
    "tidur",
)

DEFAULT_WORD = "Senyum"
UNKNOWN_LABEL = "Unknown"
WAITING_TEXT = "Waiting..."

_WORD_SET = frozenset(WORDS)


def lookup(word: str) -> Optional[str]:
    """Return the vocabulary entry for ``word`` (case-insensitive) or None."""
    key = word.strip().lower()
    return key if key in _WORD_SET else None


def asset_url(base_url: str, word: str, extension: str = "webm") -> str:
    return f"{base_url.rstrip('/')}/{word.lower()}.{extension}"


def resolve(text: str, base_url: str, extension: str = "webm") -> WordSelection:
    entry = lookup(text)
    if entry is None:
        return WordSelection(text=text)
    return WordSelection(text=text, entry=entry, asset_url=asset_url(base_url, entry, extension))


def normalize_input(text: str) -> str:
    """Typed input containing a space is trimmed, anything else is kept as is."""
    if " " in text:
        return text.strip()
    return text


def title_case(text: str) -> str:
    return " ".join(part[:1].upper() + part[1:].lower() for part in text.split(" "))


def apply_threshold(label: str, confidence: float, threshold: float) -> InferenceResult:
    # Low-confidence predictions keep their score but hide the raw label.
    if confidence > threshold:
        return InferenceResult(label=label, confidence=confidence)
    return InferenceResult(label=UNKNOWN_LABEL, confidence=confidence)


def format_result(result: Optional[InferenceResult]) -> str:
    if result is None or not result.label:
        return WAITING_TEXT
    label = result.label[:1].upper() + result.label[1:]
    percent = int(math.floor(result.confidence * 100 + 0.5))
    return f"{label} ({percent}%)"
