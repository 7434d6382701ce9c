# thing_sim/config.py

import os


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        print(f"[CONFIG] invalid {name}={raw!r}; using {default}")
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        print(f"[CONFIG] invalid {name}={raw!r}; using {default}")
        return default


# Session
CONNECTION_STRING = os.getenv("THING_SIM_CONNECTION", "HostName=localhost;DeviceId=thing-01")
MQTT_PORT = _env_int("THING_SIM_MQTT_PORT", 1883)
MQTT_KEEPALIVE_SEC = 30
MQTT_BASE_TOPIC = os.getenv("THING_SIM_MQTT_BASE_TOPIC", "things")
DESIRED_WAIT_SEC = 2.0
RECEIVE_WAIT_SEC = 1.0

# Remote configuration keys
TELEMETRY_CYCLE_KEY = "telemetry-cycle-msec"
DESIRED_RECEIVED_AT_KEY = "DateTimeLastDesiredPropertyChangeReceived"

# Cadence (msec)
TELEMETRY_CYCLE_MSEC = _env_int("THING_SIM_TELEMETRY_CYCLE_MSEC", 5000)
UPDATE_INTERVAL_MSEC = _env_int("THING_SIM_UPDATE_INTERVAL_MSEC", 1000)
CAPTURE_INTERVAL_MSEC = _env_int("THING_SIM_CAPTURE_INTERVAL_MSEC", 10000)

# Room / thing defaults
ROOM_TEMPERATURE_C = _env_float("THING_SIM_ROOM_TEMPERATURE", 24.0)
ROOM_HUMIDITY_PCT = _env_float("THING_SIM_ROOM_HUMIDITY", 50.0)
THING_INITIAL_TEMPERATURE_C = 20.0
TEMPERATURE_STEP_C = 0.5
HUMIDITY_STEP_PCT = 1.0

# Capture
CAMERA_INDEX = _env_int("THING_SIM_CAMERA_INDEX", 0)
PHOTO_FILE_NAME = "photo"
PHOTO_FILE_PREFIX = os.getenv("THING_SIM_PHOTO_PREFIX", "img")
PHOTO_FILE_EXT = ".jpeg"

# Upload: HTTP container URL if set, else a local directory
UPLOAD_URL = os.getenv("THING_SIM_UPLOAD_URL", "")
UPLOAD_DIR = os.getenv("THING_SIM_UPLOAD_DIR", "uploads")
UPLOAD_TIMEOUT_SEC = 10.0

# Control panel
WEB_HOST = "0.0.0.0"
WEB_PORT = _env_int("THING_SIM_WEB_PORT", 5000)
