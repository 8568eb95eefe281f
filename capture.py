import os
import time

import cv2

import logs

# Longer FFmpeg timeouts for network sources
os.environ.setdefault(
    "OPENCV_FFMPEG_CAPTURE_OPTIONS",
    "timeout|60000000;"
    "rw_timeout|60000000;"
    "rtsp_transport|tcp"
)


class CaptureError(RuntimeError):
    pass


def parse_source(source):
    if isinstance(source, int):
        return source
    source = str(source).strip()
    return int(source) if source.isdigit() else source


def open_capture(source, width, height):
    source = parse_source(source)
    capture = cv2.VideoCapture(source)
    if not capture.isOpened():
        capture.release()
        raise CaptureError(f"VideoCapture failed to open {source!r}")

    capture.set(cv2.CAP_PROP_FRAME_WIDTH, width)
    capture.set(cv2.CAP_PROP_FRAME_HEIGHT, height)
    # Keep latency low: only the newest frame matters
    capture.set(cv2.CAP_PROP_BUFFERSIZE, 1)
    return capture


class FrameSource:
    """Camera or stream reader that reconnects with exponential backoff."""

    def __init__(self, source, width, height, opener=open_capture, sleep=time.sleep,
                 initial_delay=2, max_delay=30):
        self.source = source
        self.width = width
        self.height = height
        self.opener = opener
        self.sleep = sleep
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self.retry_delay = initial_delay
        self.capture = None

    def connect(self, should_continue=lambda: True):
        while should_continue():
            try:
                logs.log("Capture", f"Connecting to video source {self.source!r}...", "INFO")
                self.capture = self.opener(self.source, self.width, self.height)
                logs.log("Capture", "Video source opened", "SUCCESS")
                self.retry_delay = self.initial_delay
                return True
            except CaptureError as e:
                logs.log("Capture", f"Connection failed: {e}. Retrying in {self.retry_delay}s...", "WARNING")
                self.sleep(self.retry_delay)
                self.retry_delay = min(self.retry_delay * 2, self.max_delay)
        return False

    def read(self, should_continue=lambda: True):
        """Return the next frame, or None once ``should_continue`` turns false."""
        while should_continue():
            if self.capture is None or not self.capture.isOpened():
                if not self.connect(should_continue):
                    return None

            ret, frame = self.capture.read()
            if ret:
                return frame

            logs.log("Capture", "Frame read failed. Reconnecting...", "WARNING")
            self.release()
            self.sleep(0.5)
        return None

    def release(self):
        if self.capture is not None:
            self.capture.release()
            self.capture = None
