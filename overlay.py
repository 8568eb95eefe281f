import cv2
import numpy as np
from mediapipe.tasks.python.vision.face_landmarker import FaceLandmarksConnections

# Palm outline
SIMPLE_HAND_CONNECTIONS = [
    (0, 5),
    (5, 9),
    (9, 13),
    (13, 17),
    (17, 0),
]

FINGER_CONNECTIONS = [
    (1, 2), (2, 3), (3, 4),  # Thumb
    (5, 6), (6, 7), (7, 8),  # Index
    (9, 10), (10, 11), (11, 12),  # Middle
    (13, 14), (14, 15), (15, 16),  # Ring
    (17, 18), (18, 19), (19, 20),  # Pinky
]

LINE_WIDTH = 2

COLORS = {
    "face_oval": "#1E90FF",  # DodgerBlue
    "lips": "#FF4500",  # OrangeRed
    "eyes": "#32CD32",  # LimeGreen
    "eyebrows": "#FFD700",  # Gold
    "irises": "#FF69B4",  # HotPink
    "palm": "#8A2BE2",  # BlueViolet
    "fingers": "#FFA500",  # Orange
}


def as_pairs(connections):
    """Normalize library Connection objects or tuples to (start, end) tuples."""
    pairs = []
    for connection in connections:
        if hasattr(connection, "start"):
            pairs.append((connection.start, connection.end))
        else:
            start, end = connection
            pairs.append((start, end))
    return pairs


def hex_to_bgr(value: str):
    value = value.strip()
    if len(value) != 7 or not value.startswith("#"):
        raise ValueError(f"Expected a #RRGGBB color, got '{value}'")
    try:
        r, g, b = (int(value[i:i + 2], 16) for i in (1, 3, 5))
    except ValueError:
        raise ValueError(f"Expected a #RRGGBB color, got '{value}'") from None
    return (b, g, r)


# (connections, color, line width) in draw order
FACE_STYLES = [
    (as_pairs(FaceLandmarksConnections.FACE_LANDMARKS_FACE_OVAL), hex_to_bgr(COLORS["face_oval"]), LINE_WIDTH),
    (as_pairs(FaceLandmarksConnections.FACE_LANDMARKS_LIPS), hex_to_bgr(COLORS["lips"]), LINE_WIDTH),
    (as_pairs(FaceLandmarksConnections.FACE_LANDMARKS_LEFT_EYE), hex_to_bgr(COLORS["eyes"]), LINE_WIDTH),
    (as_pairs(FaceLandmarksConnections.FACE_LANDMARKS_RIGHT_EYE), hex_to_bgr(COLORS["eyes"]), LINE_WIDTH),
    (as_pairs(FaceLandmarksConnections.FACE_LANDMARKS_LEFT_EYEBROW), hex_to_bgr(COLORS["eyebrows"]), LINE_WIDTH),
    (as_pairs(FaceLandmarksConnections.FACE_LANDMARKS_RIGHT_EYEBROW), hex_to_bgr(COLORS["eyebrows"]), LINE_WIDTH),
    (as_pairs(FaceLandmarksConnections.FACE_LANDMARKS_LEFT_IRIS), hex_to_bgr(COLORS["irises"]), LINE_WIDTH),
    (as_pairs(FaceLandmarksConnections.FACE_LANDMARKS_RIGHT_IRIS), hex_to_bgr(COLORS["irises"]), LINE_WIDTH),
]

HAND_STYLES = [
    (SIMPLE_HAND_CONNECTIONS, hex_to_bgr(COLORS["palm"]), LINE_WIDTH),
    (FINGER_CONNECTIONS, hex_to_bgr(COLORS["fingers"]), LINE_WIDTH),
]


def draw_connectors(image, landmarks, connections, color, line_width=LINE_WIDTH):
    h, w = image.shape[:2]
    count = len(landmarks)

    for start_idx, end_idx in connections:
        if not (0 <= start_idx < count and 0 <= end_idx < count):
            continue
        start = landmarks[start_idx]
        end = landmarks[end_idx]

        p1 = (int(start.x * w), int(start.y * h))
        p2 = (int(end.x * w), int(end.y * h))

        cv2.line(image, p1, p2, color, line_width)

    return image


def render_frame(frame, face_landmarks=None, hands_landmarks=None, show_live_feed=False):
    """Draw the skeleton overlay and mirror the result.

    The canvas is a copy of ``frame`` when the live feed is shown, black
    otherwise. Lines are drawn in camera coordinates and the finished canvas
    is flipped around the vertical axis, so feed and overlay stay aligned.
    """
    if show_live_feed:
        canvas = frame.copy()
    else:
        canvas = np.zeros_like(frame)

    for landmarks in face_landmarks or []:
        for connections, color, width in FACE_STYLES:
            draw_connectors(canvas, landmarks, connections, color, width)

    for landmarks in hands_landmarks or []:
        for connections, color, width in HAND_STYLES:
            draw_connectors(canvas, landmarks, connections, color, width)

    return cv2.flip(canvas, 1)
