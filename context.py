# context.py
# -------------------------------
# Everything the fetch jobs, scheduler and routes share: the snapshot store,
# upstream URLs and the HTTP client. Built once from the Flask config in
# create_app() and handed to each component explicitly.
# -------------------------------

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional

import httpx

from providers.scoreboard_api import build_client
from store import SnapshotStore


@dataclass
class ScoreboardContext:
    store: SnapshotStore
    client: httpx.Client
    upcoming_url: str = ""
    live_url: str = ""
    pointtable_url: str = ""
    pointtable_suffix: str = "_table?json=1"
    timeout: float = 15.0

    @classmethod
    def from_config(cls, cfg: Mapping[str, Any], client: Optional[httpx.Client] = None) -> "ScoreboardContext":
        timeout = float(cfg.get("REQUEST_TIMEOUT", 15))
        return cls(
            store=SnapshotStore(cfg["STORE_DIR"]),
            client=client or build_client(timeout),
            upcoming_url=cfg.get("UPCOMING_API", ""),
            live_url=cfg.get("LIVE_API", ""),
            pointtable_url=cfg.get("POINTTABLE_API", ""),
            pointtable_suffix=cfg.get("POINTTABLE_SUFFIX", "_table?json=1"),
            timeout=timeout,
        )

    def pointtable_url_for(self, match_id: str) -> str:
        if not self.pointtable_url:
            return ""
        return f"{self.pointtable_url}{match_id}{self.pointtable_suffix}"

    def close(self) -> None:
        self.client.close()
