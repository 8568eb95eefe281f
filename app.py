# app.py
import argparse
import os
import threading
import time
from contextlib import asynccontextmanager

import cv2
import numpy as np
import uvicorn
from fastapi import FastAPI, Query, Request
from fastapi.responses import StreamingResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates

import logs
from capture import FrameSource
from config import PROFILES, is_mobile_user_agent, load_config
from overlay import render_frame
from tracking import DetectionThrottle, LandmarkSlots, LandmarkTracker, ModelDownloadError

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
STATIC_DIR = os.path.join(BASE_DIR, "static")
TEMPLATES_DIR = os.path.join(BASE_DIR, "templates")


# === FastAPI with modern lifespan ===
@asynccontextmanager
async def lifespan(app: FastAPI):
    # --- Startup ---
    global tracker, running
    logs.log("App", f"Starting Mirror Landmarks ({config['profile']} profile)...", "INFO")
    running = True
    stop_event.clear()
    try:
        tracker = LandmarkTracker(config, slots=slots)
    except ModelDownloadError as e:
        tracker = None
        logs.log("App", f"Landmark detection disabled: {e}", "ERROR")

    thread = threading.Thread(target=processing_loop, daemon=True)
    thread.start()

    yield  # App runs here

    # --- Shutdown ---
    running = False
    stop_event.set()
    # Detectors are closed only once the loop can no longer submit to them
    thread.join()
    with state_lock:
        current, tracker = tracker, None
    if current is not None:
        current.close()
    logs.log("App", "Shutting down...", "INFO")


app = FastAPI(title="Mirror Landmarks", lifespan=lifespan)

app.mount("/static", StaticFiles(directory=STATIC_DIR), name="static")
templates = Jinja2Templates(directory=TEMPLATES_DIR)

# === Global State ===
config = load_config()
slots = LandmarkSlots()
throttle = DetectionThrottle(config["detection_interval_ms"])
tracker = None
show_live_feed = config["show_live_feed"]
latest_processed_frame = None
running = False
stop_event = threading.Event()
state_lock = threading.Lock()
last_error = None


def configure(new_config):
    global config, throttle, show_live_feed
    config = new_config
    throttle = DetectionThrottle(config["detection_interval_ms"])
    show_live_feed = config["show_live_feed"]


def feed_label(show):
    return "Hide Live Feed" if show else "Show Live Feed"


def process_frame(frame, now_ms=None):
    """Submit ``frame`` for detection when the throttle allows, then render."""
    global last_error
    if now_ms is None:
        now_ms = int(time.monotonic() * 1000)
    current = tracker
    try:
        if current is not None and throttle.ready(now_ms):
            current.submit(frame, now_ms)
        face, hands = slots.snapshot()
        rendered = render_frame(frame, face, hands, show_live_feed)
    except Exception as e:
        # A persistent failure is logged once, not on every frame
        message = f"Frame processing error: {e}"
        if message != last_error:
            logs.log("App", message, "ERROR")
            last_error = message
        return cv2.flip(frame, 1)
    last_error = None
    return rendered


def processing_loop():
    global latest_processed_frame

    source = FrameSource(config["source"], config["camera_width"], config["camera_height"],
                         sleep=stop_event.wait)
    try:
        while running:
            frame = source.read(lambda: running)
            if frame is None:
                break
            latest_processed_frame = process_frame(frame)
    finally:
        source.release()


def encode_jpeg(frame, quality):
    ret, buffer = cv2.imencode('.jpg', frame, [int(cv2.IMWRITE_JPEG_QUALITY), quality])
    if not ret:
        return None
    return (b'--frame\r\n'
            b'Content-Type: image/jpeg\r\n\r\n' + buffer.tobytes() + b'\r\n')


def placeholder_frame(width, height):
    blank = np.zeros((height, width, 3), dtype=np.uint8)
    cv2.putText(blank, "Waiting for video feed...", (width // 10, height // 2),
                cv2.FONT_HERSHEY_SIMPLEX, width / 800, (100, 200, 255), 2)
    return blank


def fit_width(frame, max_width):
    h, w = frame.shape[:2]
    if w <= max_width:
        return frame
    scale = max_width / w
    return cv2.resize(frame, (max_width, int(h * scale)), interpolation=cv2.INTER_AREA)


def generate_processed_frames(mobile=False, max_frames=None):
    sent = 0
    while max_frames is None or sent < max_frames:
        frame = latest_processed_frame
        if frame is None:
            frame = placeholder_frame(config["camera_width"], config["camera_height"])
        if mobile:
            frame = fit_width(frame, PROFILES["mobile"]["camera_width"])

        chunk = encode_jpeg(frame, config["jpeg_quality"])
        if chunk:
            yield chunk
            sent += 1

        time.sleep(0.033)  # ~30 FPS output


# === Routes ===
@app.get("/")
def read_root(request: Request):
    return templates.TemplateResponse(request, "index.html", {
        "label": feed_label(show_live_feed),
        "show_live_feed": show_live_feed,
    })


@app.get("/api/state")
def get_state():
    return {
        "show_live_feed": show_live_feed,
        "label": feed_label(show_live_feed),
        "profile": config["profile"],
        "detection_interval_ms": config["detection_interval_ms"],
        "detection_enabled": tracker is not None,
    }


@app.post("/api/toggle_feed")
def toggle_feed():
    global show_live_feed
    with state_lock:
        show_live_feed = not show_live_feed
        shown = show_live_feed
    logs.log("App", f"Live feed {'shown' if shown else 'hidden'}", "INFO")
    return {"show_live_feed": shown, "label": feed_label(shown)}


@app.get("/api/logs")
def get_logs(limit: int = Query(100, ge=1, le=logs.MAX_LOGS), level: str = None):
    return logs.get_all_logs(limit, level)


@app.get("/video_feed")
def video_feed(request: Request):
    mobile = is_mobile_user_agent(request.headers.get("user-agent"))
    return StreamingResponse(generate_processed_frames(mobile=mobile),
                             media_type="multipart/x-mixed-replace; boundary=frame")


# === Main ===
def main(argv=None):
    parser = argparse.ArgumentParser(description="Mirror Landmarks")
    parser.add_argument("--profile", choices=sorted(PROFILES), default=None,
                        help="Camera size and detection rate preset")
    parser.add_argument("--source", type=str, default=None,
                        help="Camera index or stream URL")
    parser.add_argument("--config", type=str, default=None, help="JSON file overriding defaults")
    parser.add_argument("--host", type=str, default=None)
    parser.add_argument("--port", type=int, default=None)
    parser.add_argument("--show-feed", action="store_true", help="Start with the live feed visible")
    args = parser.parse_args(argv)

    new_config = load_config(args.config, args.profile)
    if args.source is not None:
        new_config["source"] = args.source
    if args.host:
        new_config["host"] = args.host
    if args.port:
        new_config["port"] = args.port
    if args.show_feed:
        new_config["show_live_feed"] = True
    configure(new_config)

    logs.log("App", f"Camera {config['camera_width']}x{config['camera_height']}, "
                    f"detection every {config['detection_interval_ms']}ms", "INFO")
    print(f"\nMirror Landmarks Running → http://localhost:{config['port']}")
    print("Press CTRL+C to stop\n")
    uvicorn.run(app, host=config["host"], port=config["port"])


if __name__ == "__main__":
    main()
