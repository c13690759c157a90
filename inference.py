"""Sign classification client for the remote ``/predict`` endpoint.

Only the durable clip URL is sent; the service fetches the video itself.
"""

from __future__ import annotations

import logging
import math

import requests

from config import DEFAULT_INFERENCE_URL
from errors import InferenceFailed
from models import InferenceResult

logger = logging.getLogger(__name__)


class HttpInferenceClient:
    def __init__(
        self,
        endpoint: str = DEFAULT_INFERENCE_URL,
        request_timeout_s: float = 60.0,
        session: requests.Session | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._request_timeout_s = request_timeout_s
        self._session = session

    def classify(self, url: str) -> InferenceResult:
        if not url:
            raise InferenceFailed("no clip URL to classify")
        post = self._session.post if self._session is not None else requests.post
        try:
            response = post(
                self._endpoint,
                json={"url": url},
                headers={"Accept": "application/json"},
                timeout=self._request_timeout_s,
            )
        except requests.RequestException as exc:
            logger.error("Inference error: %s", exc)
            raise InferenceFailed(f"request failed: {exc}") from exc

        if not response.ok:
            logger.error("Inference failed with HTTP %s", response.status_code)
            raise InferenceFailed(f"endpoint responded with HTTP {response.status_code}")

        try:
            payload = response.json()
        except ValueError as exc:
            raise InferenceFailed("response is not valid JSON") from exc
        return self._parse(payload)

    def _parse(self, payload: object) -> InferenceResult:
        if not isinstance(payload, dict):
            raise InferenceFailed("response is not a JSON object")
        label = payload.get("label")
        confidence = payload.get("confidence")
        if not isinstance(label, str):
            raise InferenceFailed("response has no label")
        if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
            raise InferenceFailed("response has no confidence")
        confidence = float(confidence)
        if math.isnan(confidence) or not 0.0 <= confidence <= 1.0:
            raise InferenceFailed(f"confidence {confidence} is outside [0, 1]")
        return InferenceResult(label=label, confidence=confidence)
