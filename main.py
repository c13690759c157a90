"""Application entrypoint."""

from __future__ import annotations

import argparse
import json
import logging
import math
import sys
import threading
import time
from dataclasses import asdict
from pathlib import Path
from typing import Optional, Sequence

import vocabulary
from config import AppConfig, JsonConfigStore
from errors import CaptureUnavailable
from inference import HttpInferenceClient
from models import Clip, Mode, SessionSnapshot, SessionState
from recorder import OpenCVRecorder
from session_controller import SessionController
from uploader import GcsUploader


class ConsoleApp:
    def __init__(self, config: AppConfig, out=None) -> None:
        self.config = config
        self.out = out or sys.stdout
        self.controller = SessionController(
            recorder=OpenCVRecorder(camera_index=config.camera_index),
            uploader=GcsUploader(
                bucket=config.bucket,
                object_prefix=config.object_prefix,
                chunk_size=config.chunk_size,
                request_timeout_s=config.request_timeout_s,
            ),
            inference=HttpInferenceClient(
                endpoint=config.inference_url,
                request_timeout_s=config.request_timeout_s,
            ),
            config=config,
            on_state_change=self._on_state_change,
            on_error=self._on_error,
        )
        self.controller.subscribe(self._on_snapshot)
        self._finished = threading.Event()
        self._last_percent: Optional[int] = None

    # ------------------------------------------------------------------
    # Callbacks (called from worker threads)
    # ------------------------------------------------------------------

    def _on_state_change(self, from_state: SessionState, to_state: SessionState) -> None:
        if to_state == SessionState.CAPTURING:
            self._print("Recording...")
        elif to_state == SessionState.INFERRING:
            self._print("Inferring...")

    def _on_error(self, code: str, message: str) -> None:
        self._print(f"{code}: {message}")

    def _on_snapshot(self, snapshot: SessionSnapshot) -> None:
        if snapshot.upload_progress:
            percent = int(math.floor(snapshot.upload_progress + 0.5))
            if percent != self._last_percent:
                self._last_percent = percent
                self._print(f"Upload: {percent}%")
        if snapshot.state == SessionState.IDLE and not snapshot.busy:
            self._finished.set()

    def _print(self, text: str) -> None:
        print(text, file=self.out, flush=True)

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def show_word(self, text: str) -> int:
        self.controller.set_mode(Mode.TEXT_TO_ANIMATION)
        selection = self.controller.select_word(text)
        if not selection.highlighted:
            self._print(f"{vocabulary.title_case(selection.text)}: not in vocabulary")
            return 1
        self._print(f"{vocabulary.title_case(selection.text)}: {selection.asset_url}")
        return 0

    def classify_file(self, path: Path) -> int:
        try:
            clip = Clip.from_file(path)
        except OSError as exc:
            self._print(f"Cannot read {path}: {exc.strerror or exc}")
            return 1
        self.controller.set_mode(Mode.VIDEO_TO_LABEL)
        self._finished.clear()
        self.controller.select_clip(clip)
        return self._wait_for_result()

    def record(self, seconds: Optional[float]) -> int:
        self.controller.set_mode(Mode.VIDEO_TO_LABEL)
        try:
            self.controller.begin_capture()
        except CaptureUnavailable:
            return 1
        try:
            if seconds:
                time.sleep(seconds)
            else:
                input("Press Enter to stop recording\n")
        except KeyboardInterrupt:
            self.controller.reset()
            return 130
        self._finished.clear()
        self.controller.end_capture()
        return self._wait_for_result()

    def close(self) -> None:
        self.controller.close()

    def _wait_for_result(self) -> int:
        self._finished.wait()
        snapshot = self.controller.snapshot()
        if snapshot.result is None:
            return 1
        self._print(snapshot.display_text)
        return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Indonesian sign language translator.")
    parser.add_argument("--config", type=Path, default=None, help="config file path")
    parser.add_argument("--verbose", "-v", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("words", help="list the vocabulary")

    word = sub.add_parser("word", help="look up the animation for a word")
    word.add_argument("text")

    classify = sub.add_parser("classify", help="upload and classify a video file")
    classify.add_argument("path", type=Path)

    record = sub.add_parser("record", help="record from the camera and classify")
    record.add_argument("--seconds", type=float, default=None)

    cfg = sub.add_parser("config", help="show or update the stored config")
    cfg.add_argument("--bucket", type=str, default=None)
    cfg.add_argument("--inference-url", type=str, default=None)
    cfg.add_argument("--threshold", type=float, default=None)
    cfg.add_argument("--camera-index", type=int, default=None)
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    store = JsonConfigStore(path=args.config)

    if args.command == "words":
        for word in vocabulary.WORDS:
            print(vocabulary.title_case(word))
        return 0
    if args.command == "config":
        config = store.update(
            bucket=args.bucket,
            inference_url=args.inference_url,
            confidence_threshold=args.threshold,
            camera_index=args.camera_index,
        )
        print(json.dumps(asdict(config), indent=2))
        return 0

    app = ConsoleApp(store.load())
    try:
        if args.command == "word":
            return app.show_word(args.text)
        if args.command == "classify":
            return app.classify_file(args.path)
        return app.record(args.seconds)
    finally:
        app.close()


if __name__ == "__main__":
    raise SystemExit(main())
