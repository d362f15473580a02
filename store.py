# store.py
# -------------------------------
# Snapshot store: the latest payload per logical key, one JSON file per key.
#
# Keys:
#   "upcoming"             -> upcoming.json
#   "live"                 -> live.json
#   "pointtable:<matchId>" -> pointtable_<matchId>.json
#
# Each file holds {"updatedAt": <ISO-8601>, "data": <payload>}.
# Writes go through a temp file + os.replace so readers never see half a file.
# -------------------------------

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

UPCOMING_KEY = "upcoming"
LIVE_KEY = "live"
POINTTABLE_PREFIX = "pointtable:"

MATCH_ID_RE = re.compile(r"[A-Za-z0-9_-]+")


def pointtable_key(match_id: str) -> str:
    return f"{POINTTABLE_PREFIX}{match_id}"


def is_valid_match_id(match_id: Optional[str]) -> bool:
    return bool(match_id) and bool(MATCH_ID_RE.fullmatch(str(match_id)))


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(ts: datetime) -> str:
    """ISO-8601 in UTC with milliseconds and a trailing Z, e.g. 2025-03-21T16:00:00.000Z"""
    return ts.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: str) -> datetime:
    ts = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


@dataclass(frozen=True)
class Snapshot:
    """The latest cached payload for one key."""
    key: str
    updated_at: str
    data: Any

    def to_dict(self) -> Dict[str, Any]:
        return {"updatedAt": self.updated_at, "data": self.data}


class SnapshotStore:
    """File-per-key store for the most recent successful fetch of each resource."""

    def __init__(self, directory: str, clock=utc_now):
        self.directory = os.path.abspath(directory)
        self._clock = clock
        self._write_lock = threading.Lock()

    # ---------- Paths ----------

    def path_for(self, key: str) -> str:
        if key in (UPCOMING_KEY, LIVE_KEY):
            name = key
        elif key.startswith(POINTTABLE_PREFIX):
            match_id = key[len(POINTTABLE_PREFIX):]
            if not is_valid_match_id(match_id):
                raise ValueError(f"Invalid match id in key: {key!r}")
            name = f"pointtable_{match_id}"
        else:
            raise ValueError(f"Unknown snapshot key: {key!r}")
        return os.path.join(self.directory, f"{name}.json")

    @staticmethod
    def _key_for_filename(filename: str) -> Optional[str]:
        stem, ext = os.path.splitext(filename)
        if ext != ".json":
            return None
        if stem in (UPCOMING_KEY, LIVE_KEY):
            return stem
        if stem.startswith("pointtable_"):
            match_id = stem[len("pointtable_"):]
            if is_valid_match_id(match_id):
                return pointtable_key(match_id)
        return None

    # ---------- Writes ----------

    def _next_timestamp(self, key: str) -> datetime:
        # Never hand out an updatedAt older than the one already on disk for this key.
        now = self._clock()
        previous = self.read(key)
        if previous is not None:
            try:
                last = parse_timestamp(previous.updated_at)
            except ValueError:
                last = None
            if last is not None and now < last:
                now = last
        return now

    def write(self, key: str, data: Any) -> Snapshot:
        """Persist `data` under `key`, replacing whatever was there."""
        path = self.path_for(key)
        with self._write_lock:
            snapshot = Snapshot(key=key, updated_at=format_timestamp(self._next_timestamp(key)), data=data)

            os.makedirs(self.directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=f".{os.path.basename(path)}.", dir=self.directory)
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as tmp_file:
                    try:
                        json.dump(snapshot.to_dict(), tmp_file, indent=2, ensure_ascii=False)
                    except RecursionError as e:
                        raise ValueError(f"Snapshot for {key} is nested too deeply to store") from e
                    tmp_file.flush()
                    os.fsync(tmp_file.fileno())
                os.replace(tmp_path, path)
            finally:
                if os.path.exists(tmp_path):
                    os.remove(tmp_path)

        logger.debug("Wrote snapshot %s -> %s", key, path)
        return snapshot

    # ---------- Reads ----------

    def read(self, key: str) -> Optional[Snapshot]:
        """
        Return the last written Snapshot for `key`, or None when it was never
        written or the file is missing/corrupt.
        """
        path = self.path_for(key)
        try:
            with open(path, "r", encoding="utf-8") as f:
                record = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError, RecursionError) as e:
            logger.warning("Unreadable snapshot for %s (%s): %s", key, path, e)
            return None

        if not isinstance(record, dict) or "data" not in record or not isinstance(record.get("updatedAt"), str):
            logger.warning("Malformed snapshot record for %s (%s)", key, path)
            return None

        return Snapshot(key=key, updated_at=record["updatedAt"], data=record["data"])

    def keys(self) -> List[str]:
        """Logical keys that currently have a file on disk."""
        if not os.path.isdir(self.directory):
            return []
        found = []
        for filename in sorted(os.listdir(self.directory)):
            key = self._key_for_filename(filename)
            if key is not None:
                found.append(key)
        return found
