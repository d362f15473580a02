# config.py
# -------------------------------
# Centralized configuration.
# Everything comes from environment variables (optionally via a .env file)
# so the same build can point at different upstream feeds per deployment.
# -------------------------------

import os

from dotenv import load_dotenv

load_dotenv()

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _env_bool(name: str, default: str = "true") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    # -------------------------------
    # Upstream feeds
    # POINTTABLE_API gets the match id appended, followed by POINTTABLE_SUFFIX.
    # The suffix is tied to the upstream API version, so keep it configurable.
    # -------------------------------
    UPCOMING_API = os.environ.get("UPCOMING_API", "").strip()
    LIVE_API = os.environ.get("LIVE_API", "").strip()
    POINTTABLE_API = os.environ.get("POINTTABLE_API", "").strip()
    POINTTABLE_SUFFIX = os.environ.get("POINTTABLE_SUFFIX", "_table?json=1")

    REQUEST_TIMEOUT = float(os.environ.get("REQUEST_TIMEOUT", "15"))

    # Snapshot files live here, one JSON file per key
    STORE_DIR = os.environ.get("STORE_DIR", os.path.join(os.getcwd(), "store"))

    PORT = int(os.environ.get("PORT", "5050"))

    # -------------------------------
    # Scheduler cadence
    # UPCOMING_DAILY_AT is local wall-clock time, HH:MM.
    # -------------------------------
    SCHEDULER_ENABLED = _env_bool("SCHEDULER_ENABLED")
    UPCOMING_DAILY_AT = os.environ.get("UPCOMING_DAILY_AT", "00:10")
    LIVE_INTERVAL_SECONDS = float(os.environ.get("LIVE_INTERVAL_SECONDS", "10"))
    POINTTABLE_INTERVAL_SECONDS = float(os.environ.get("POINTTABLE_INTERVAL_SECONDS", "1800"))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()
