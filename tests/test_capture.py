import numpy as np
import pytest

import capture
import logs
from capture import CaptureError, FrameSource, open_capture, parse_source


class FakeCapture:
    def __init__(self, frames):
        self.frames = list(frames)
        self.released = False

    def isOpened(self):
        return not self.released

    def read(self):
        if not self.frames:
            return False, None
        return True, self.frames.pop(0)

    def release(self):
        self.released = True


@pytest.mark.parametrize("source, expected", [
    (0, 0),
    ("1", 1),
    (" 2 ", 2),
    ("http://10.0.0.5:8000/video_feed", "http://10.0.0.5:8000/video_feed"),
])
def test_parse_source(source, expected):
    assert parse_source(source) == expected


def test_open_capture_raises_when_source_missing(monkeypatch):
    fake = FakeCapture([])
    fake.released = True
    monkeypatch.setattr(capture.cv2, "VideoCapture", lambda source: fake)

    with pytest.raises(CaptureError):
        open_capture("3", 640, 640)


def test_connect_backs_off_until_open():
    frame = np.zeros((4, 4, 3), dtype=np.uint8)
    attempts = []
    sleeps = []

    def opener(source, width, height):
        attempts.append((source, width, height))
        if len(attempts) < 4:
            raise CaptureError("busy")
        return FakeCapture([frame])

    source = FrameSource("0", 320, 320, opener=opener, sleep=sleeps.append)

    assert source.read() is frame
    assert attempts[-1] == ("0", 320, 320)
    assert sleeps == [2, 4, 8]
    assert source.retry_delay == 2
    assert len(logs.get_all_logs(level="WARNING")) == 3


def test_backoff_is_capped():
    sleeps = []

    def opener(source, width, height):
        raise CaptureError("gone")

    source = FrameSource(0, 640, 640, opener=opener, sleep=sleeps.append)
    remaining = iter(range(6))

    assert source.read(lambda: next(remaining, None) is not None) is None
    assert max(sleeps) == 30
    assert sleeps[:4] == [2, 4, 8, 16]


def test_read_failure_reconnects():
    first = np.zeros((4, 4, 3), dtype=np.uint8)
    second = np.ones((4, 4, 3), dtype=np.uint8)
    captures = [FakeCapture([first]), FakeCapture([second])]
    sleeps = []

    source = FrameSource(0, 640, 640, opener=lambda *a: captures.pop(0), sleep=sleeps.append)

    assert source.read() is first
    assert source.read() is second
    assert sleeps == [0.5]


def test_release():
    fake = FakeCapture([])
    source = FrameSource(0, 640, 640, opener=lambda *a: fake)
    source.connect()

    source.release()

    assert fake.released
    assert source.capture is None
