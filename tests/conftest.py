import threading
import time

import numpy as np
import pytest

from thing_sim.errors import CaptureError
from thing_sim.simulator import Simulator


class FakeSession:
    def __init__(self, device_id="thing-01", desired=None):
        self.device_id = device_id
        self.desired = dict(desired or {})
        self.published = []
        self.reported = []
        self.acked = []
        self.inbox = []
        self.opened = False
        self.closed = False
        self.command_handler = None
        self.config_handler = None
        self.publish_hook = None

    def set_command_handler(self, fn):
        self.command_handler = fn

    def set_config_update_handler(self, fn):
        self.config_handler = fn

    def open(self):
        self.opened = True

    def close(self):
        self.closed = True

    def publish(self, body):
        self.published.append(body)
        if self.publish_hook is not None:
            self.publish_hook(body)

    def receive_next(self, timeout=None):
        if self.inbox:
            return self.inbox.pop(0)
        time.sleep(0.01)
        return None

    def acknowledge(self, message):
        self.acked.append(message)

    def get_desired_config(self):
        return dict(self.desired)

    def report_state(self, props):
        self.reported.append(dict(props))


class FakeCamera:
    def __init__(self, fail_on=()):
        self.frames = 0
        self.written = []
        self._fail_on = set(fail_on)

    def capture_frame(self):
        self.frames += 1
        if self.frames in self._fail_on:
            raise CaptureError("no frame")
        return np.zeros((4, 4, 3), dtype=np.uint8)

    def write_to_path(self, frame, path):
        self.written.append(path)
        with open(path, "wb") as f:
            f.write(b"jpeg")

    def release(self):
        pass


class FakeUploader:
    def __init__(self):
        self.uploads = []
        self.uploaded = threading.Event()

    def upload(self, name, local_path):
        self.uploads.append((name, local_path))
        self.uploaded.set()


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def logs():
    return []


@pytest.fixture
def make_sim(session, logs, tmp_path):
    def _make(**kwargs):
        kwargs.setdefault("logger", logs.append)
        kwargs.setdefault("photo_file_name", str(tmp_path / "photo"))
        return Simulator(session, **kwargs)

    return _make
