import cv2
import numpy as np
import pytest

from thing_sim.camera import SyntheticCamera, write_frame
from thing_sim.errors import CaptureError


def test_synthetic_frame_shape():
    frame = SyntheticCamera(width=64, height=48).capture_frame()
    assert frame.shape == (48, 64, 3)
    assert frame.dtype == np.uint8


def test_write_frame_overwrites(tmp_path):
    path = tmp_path / "photo.jpeg"
    path.write_bytes(b"stale")
    cam = SyntheticCamera(width=32, height=32)
    cam.write_to_path(cam.capture_frame(), str(path))

    decoded = cv2.imread(str(path))
    assert decoded is not None
    assert decoded.shape == (32, 32, 3)


def test_write_frame_bad_extension(tmp_path):
    frame = np.zeros((8, 8, 3), dtype=np.uint8)
    with pytest.raises((CaptureError, cv2.error)):
        write_frame(frame, str(tmp_path / "photo.notanimage"))


def test_write_frame_empty_frame_is_capture_error(tmp_path):
    with pytest.raises(CaptureError):
        write_frame(np.zeros((0, 0, 3), dtype=np.uint8), str(tmp_path / "photo.jpeg"))
