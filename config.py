import json
import os
import re
import copy

current_dir = os.path.dirname(os.path.abspath(__file__))
values_path = os.path.join(current_dir, "values.json")

MOBILE_UA_PATTERN = re.compile(r"Mobi|Android|iPhone", re.IGNORECASE)

# Phones get a smaller square capture and a slower detection rate
PROFILES = {
    "desktop": {
        "camera_width": 640,
        "detection_interval_ms": 50,
    },
    "mobile": {
        "camera_width": 320,
        "detection_interval_ms": 150,
    },
}

DEFAULTS = {
    "profile": "desktop",
    "source": "0",
    "host": "0.0.0.0",
    "port": 5000,
    "show_live_feed": False,
    "jpeg_quality": 80,
    "model_dir": os.path.join(current_dir, "model_cache"),
    "model_base_url": "https://storage.googleapis.com/mediapipe-models",
    "face": {
        "max_num_faces": 1,
        "min_detection_confidence": 0.5,
        "min_presence_confidence": 0.5,
        "min_tracking_confidence": 0.5,
    },
    "hands": {
        "max_num_hands": 2,
        "min_detection_confidence": 0.5,
        "min_presence_confidence": 0.5,
        "min_tracking_confidence": 0.5,
    },
}


def is_mobile_user_agent(user_agent):
    if not user_agent:
        return False
    return MOBILE_UA_PATTERN.search(user_agent) is not None


def load_config(path=None, profile=None):
    """Build the runtime config.

    Defaults, then the profile's camera size and detection interval, then the
    JSON file at ``path`` (or ``values.json`` beside this module when it
    exists). ``profile`` wins over a profile named in the file.
    """
    overrides = {}
    if path and not os.path.exists(path):
        raise FileNotFoundError(f"Config file not found: {path}")
    override_path = path or values_path
    if os.path.exists(override_path):
        with open(override_path, "r") as f:
            overrides = json.load(f)

    name = profile or overrides.get("profile") or DEFAULTS["profile"]
    if name not in PROFILES:
        raise ValueError(f"Unknown profile '{name}', expected one of {sorted(PROFILES)}")

    config = copy.deepcopy(DEFAULTS)
    config.update(PROFILES[name])
    # Detector sections merge key by key
    for section in ("face", "hands"):
        if section not in overrides:
            continue
        if not isinstance(overrides[section], dict):
            raise ValueError(f"Config section '{section}' must be an object")
        config[section].update(overrides.pop(section))
    config.update(overrides)
    config["profile"] = name
    config["camera_height"] = config["camera_width"]
    return config
