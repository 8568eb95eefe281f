import os
import threading
import time

import cv2
import mediapipe as mp
import requests
from mediapipe.tasks import python as mp_tasks
from mediapipe.tasks.python import vision

import logs

MODEL_PATHS = {
    "face_landmarker.task": "face_landmarker/face_landmarker/float16/1/face_landmarker.task",
    "hand_landmarker.task": "hand_landmarker/hand_landmarker/float16/1/hand_landmarker.task",
}


class ModelDownloadError(RuntimeError):
    pass


def locate_model(name, model_dir, base_url):
    """Return a local path for model ``name``, fetching it from the CDN once."""
    model_path = os.path.join(model_dir, name)
    if os.path.exists(model_path):
        return model_path

    if name not in MODEL_PATHS:
        raise ModelDownloadError(f"Unknown model '{name}'")

    url = f"{base_url.rstrip('/')}/{MODEL_PATHS[name]}"
    os.makedirs(model_dir, exist_ok=True)
    tmp_path = model_path + ".tmp"
    logs.log("Tracking", f"Downloading {name} from {url}", "INFO")
    try:
        with requests.get(url, stream=True, timeout=60) as response:
            response.raise_for_status()
            with open(tmp_path, "wb") as f:
                for chunk in response.iter_content(chunk_size=1 << 16):
                    f.write(chunk)
        os.replace(tmp_path, model_path)
    except (requests.RequestException, OSError) as e:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise ModelDownloadError(f"Failed to download {name} from {url}: {e}") from e

    logs.log("Tracking", f"Saved {name} to {model_path}", "SUCCESS")
    return model_path


class DetectionThrottle:
    def __init__(self, interval_ms):
        self.interval_ms = interval_ms
        self.last_ms = 0

    def ready(self, now_ms):
        if now_ms - self.last_ms >= self.interval_ms:
            self.last_ms = now_ms
            return True
        return False


class LandmarkSlots:
    """Latest face/hand landmarks, overwritten by each detector callback."""

    def __init__(self):
        self._lock = threading.Lock()
        self.face = None
        self.hands = None

    def on_face_results(self, result, output_image=None, timestamp_ms=None):
        faces = list(result.face_landmarks) if result.face_landmarks else None
        with self._lock:
            changed = len(faces or []) != len(self.face or [])
            self.face = faces
        if changed:
            logs.log("FaceLandmarker", f"Tracking {len(faces or [])} face(s)", "AI")

    def on_hands_results(self, result, output_image=None, timestamp_ms=None):
        hands = list(result.hand_landmarks) if result.hand_landmarks else None
        with self._lock:
            changed = len(hands or []) != len(self.hands or [])
            self.hands = hands
        if changed:
            logs.log("HandLandmarker", f"Tracking {len(hands or [])} hand(s)", "AI")

    def snapshot(self):
        with self._lock:
            return self.face, self.hands

    def clear(self):
        with self._lock:
            self.face = None
            self.hands = None


def create_face_landmarker(config, callback):
    face = config["face"]
    model_path = locate_model("face_landmarker.task", config["model_dir"], config["model_base_url"])
    options = vision.FaceLandmarkerOptions(
        base_options=mp_tasks.BaseOptions(model_asset_path=model_path),
        running_mode=vision.RunningMode.LIVE_STREAM,
        num_faces=face["max_num_faces"],
        min_face_detection_confidence=face["min_detection_confidence"],
        min_face_presence_confidence=face["min_presence_confidence"],
        min_tracking_confidence=face["min_tracking_confidence"],
        result_callback=callback,
    )
    return vision.FaceLandmarker.create_from_options(options)


def create_hand_landmarker(config, callback):
    hands = config["hands"]
    model_path = locate_model("hand_landmarker.task", config["model_dir"], config["model_base_url"])
    options = vision.HandLandmarkerOptions(
        base_options=mp_tasks.BaseOptions(model_asset_path=model_path),
        running_mode=vision.RunningMode.LIVE_STREAM,
        num_hands=hands["max_num_hands"],
        min_hand_detection_confidence=hands["min_detection_confidence"],
        min_hand_presence_confidence=hands["min_presence_confidence"],
        min_tracking_confidence=hands["min_tracking_confidence"],
        result_callback=callback,
    )
    return vision.HandLandmarker.create_from_options(options)


class LandmarkTracker:
    def __init__(self, config, slots=None, face_detector=None, hands_detector=None):
        self.slots = slots if slots is not None else LandmarkSlots()
        self.face_detector = face_detector if face_detector is not None else \
            create_face_landmarker(config, self.slots.on_face_results)
        try:
            self.hands_detector = hands_detector if hands_detector is not None else \
                create_hand_landmarker(config, self.slots.on_hands_results)
        except Exception:
            self.face_detector.close()
            raise
        self._last_timestamp_ms = 0
        logs.log("Tracking", "Face and hand landmarkers ready", "SUCCESS")

    def _next_timestamp_ms(self, timestamp_ms=None):
        # Live-stream detectors reject non-increasing timestamps
        now_ms = int(timestamp_ms if timestamp_ms is not None else time.monotonic() * 1000)
        if now_ms <= self._last_timestamp_ms:
            now_ms = self._last_timestamp_ms + 1
        self._last_timestamp_ms = now_ms
        return now_ms

    def submit(self, frame, timestamp_ms=None):
        ts = self._next_timestamp_ms(timestamp_ms)
        rgb = cv2.cvtColor(frame, cv2.COLOR_BGR2RGB)
        image = mp.Image(image_format=mp.ImageFormat.SRGB, data=rgb)
        self.face_detector.detect_async(image, ts)
        self.hands_detector.detect_async(image, ts)
        return ts

    def close(self):
        self.face_detector.close()
        self.hands_detector.close()
        self.slots.clear()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
