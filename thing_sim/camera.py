# thing_sim/camera.py

import os
import threading
from datetime import datetime
from typing import Callable, Optional

import cv2
import numpy as np

from .errors import CaptureError


def write_frame(frame: np.ndarray, path: str) -> None:
    """Encode ``frame`` by the extension of ``path`` and overwrite the file."""
    ext = os.path.splitext(path)[1] or ".jpeg"
    try:
        ok, buf = cv2.imencode(ext, frame)
    except cv2.error as e:
        raise CaptureError(f"failed to encode frame as {ext}: {e}") from e
    if not ok:
        raise CaptureError(f"failed to encode frame as {ext}")

    try:
        if os.path.exists(path):
            os.remove(path)
        with open(path, "xb") as f:
            f.write(buf.tobytes())
    except OSError as e:
        raise CaptureError(f"failed to write {path}: {e}") from e


class Camera:
    """OpenCV capture device, opened on first use."""

    def __init__(self, index: int = 0, logger: Callable[[str], None] = print):
        self._index = index
        self._log = logger
        self._cap: Optional[cv2.VideoCapture] = None
        self._lock = threading.Lock()

    def _ensure_open(self) -> cv2.VideoCapture:
        if self._cap is None:
            cap = cv2.VideoCapture(self._index)
            if not cap.isOpened():
                cap.release()
                raise CaptureError(f"camera {self._index} could not be opened")
            self._cap = cap
            self._log(f"[CAPTURE] Camera {self._index} opened")
        return self._cap

    def capture_frame(self) -> np.ndarray:
        with self._lock:
            cap = self._ensure_open()
            ok, frame = cap.read()
        if not ok or frame is None:
            raise CaptureError(f"camera {self._index} returned no frame")
        return frame

    def write_to_path(self, frame: np.ndarray, path: str) -> None:
        write_frame(frame, path)

    def release(self) -> None:
        with self._lock:
            if self._cap is not None:
                self._cap.release()
                self._cap = None


class SyntheticCamera:
    """Frame generator for hosts without a camera: gradient plus a timestamp."""

    def __init__(self, width: int = 320, height: int = 240):
        self._width = width
        self._height = height
        self._frame_no = 0

    def capture_frame(self) -> np.ndarray:
        self._frame_no += 1
        x = np.linspace(0, 255, self._width, dtype=np.uint8)
        frame = np.zeros((self._height, self._width, 3), dtype=np.uint8)
        frame[:, :, 0] = x
        frame[:, :, 1] = np.roll(x, self._frame_no * 8)
        frame[:, :, 2] = 128
        stamp = datetime.now().strftime("%H:%M:%S")
        cv2.putText(frame, f"#{self._frame_no} {stamp}", (8, 24), cv2.FONT_HERSHEY_SIMPLEX, 0.6, (255, 255, 255), 1)
        return frame

    def write_to_path(self, frame: np.ndarray, path: str) -> None:
        write_frame(frame, path)

    def release(self) -> None:
        pass
