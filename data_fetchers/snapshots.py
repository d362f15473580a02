# data_fetchers/snapshots.py
# --------------------------------------------
# Fetch jobs: pull one upstream resource, normalize it, and write it to the
# snapshot store.
# Design goals:
#  - One job per resource: upcoming fixtures, live score, point table per match.
#  - Safe-by-default: a failed fetch is logged and leaves the stored snapshot
#    alone; nothing is raised to the caller unless raise_errors=True.
#  - Normalization is a pure function over a classified Payload, so it can be
#    tested without any HTTP.
# --------------------------------------------

from typing import Any, Callable, Optional
import logging
import xml.etree.ElementTree as ET

from context import ScoreboardContext
from providers.scoreboard_api import (
    JSON,
    XML,
    Payload,
    UpstreamError,
    UpstreamMalformed,
    fetch_payload,
)
from store import LIVE_KEY, UPCOMING_KEY, is_valid_match_id, pointtable_key
from util.xml_convert import xml_to_dict

logger = logging.getLogger(__name__)

# Field in the live-score payload that names the match currently being played
LIVE_MATCH_ID_FIELD = "match_id"

STANDINGS_KEY = "standings"


# ---------- Normalization ----------

def normalize_json(payload: Payload) -> Any:
    """Upcoming/live feeds are served as-is; an XML body here is unexpected."""
    if payload.kind != JSON:
        raise UpstreamMalformed(f"Expected a JSON body, got {payload.kind}")
    return payload.body


def normalize_point_table(payload: Payload) -> Any:
    """
    JSON point tables pass through untouched.
    XML point tables are converted to dicts and, when the document root is
    <standings>, unwrapped so callers get the table rather than the wrapper.
    """
    if payload.kind == JSON:
        return payload.body
    if payload.kind != XML:
        raise UpstreamMalformed(f"Unsupported payload kind: {payload.kind}")

    try:
        parsed = xml_to_dict(payload.body)
    except ET.ParseError as e:
        raise UpstreamMalformed(f"Invalid XML point table: {e}") from e
    except RecursionError as e:
        raise UpstreamMalformed("XML point table is nested too deeply") from e

    if STANDINGS_KEY in parsed:
        return parsed[STANDINGS_KEY]
    return parsed


# ---------- Jobs ----------

def _run_fetch_job(
    ctx: ScoreboardContext,
    *,
    key: str,
    url: str,
    normalize: Callable[[Payload], Any],
    label: str,
    raise_errors: bool = False,
) -> bool:
    """Fetch `url`, normalize, write under `key`. Returns True when a snapshot was written."""
    try:
        payload = fetch_payload(ctx.client, url, ctx.timeout)
        data = normalize(payload)
    except UpstreamError as e:
        logger.warning("%s failed: %s", label, e)
        if raise_errors:
            raise
        return False

    try:
        ctx.store.write(key, data)
    except (OSError, ValueError):
        logger.exception("%s could not be stored", label)
        if raise_errors:
            raise
        return False

    logger.info("%s updated", label)
    return True


def update_upcoming(ctx: ScoreboardContext) -> bool:
    return _run_fetch_job(
        ctx,
        key=UPCOMING_KEY,
        url=ctx.upcoming_url,
        normalize=normalize_json,
        label="Upcoming fixtures",
    )


def update_live(ctx: ScoreboardContext) -> bool:
    return _run_fetch_job(
        ctx,
        key=LIVE_KEY,
        url=ctx.live_url,
        normalize=normalize_json,
        label="Live score",
    )


def update_point_table(ctx: ScoreboardContext, match_id: Optional[str], *, raise_errors: bool = False) -> bool:
    """
    Refresh the point table for one match. Empty match ids are a no-op.
    With raise_errors=True upstream failures propagate (used by the HTTP
    on-demand path so the caller can report them).
    """
    if not match_id:
        return False
    match_id = str(match_id)
    if not is_valid_match_id(match_id):
        logger.warning("Skipping point table for invalid match id %r", match_id)
        return False

    return _run_fetch_job(
        ctx,
        key=pointtable_key(match_id),
        url=ctx.pointtable_url_for(match_id),
        normalize=normalize_point_table,
        label=f"Point table ({match_id})",
        raise_errors=raise_errors,
    )


def live_match_id(ctx: ScoreboardContext) -> Optional[str]:
    """Match id from the current live snapshot, or None if there isn't one."""
    snapshot = ctx.store.read(LIVE_KEY)
    if snapshot is None or not isinstance(snapshot.data, dict):
        return None
    match_id = snapshot.data.get(LIVE_MATCH_ID_FIELD)
    if match_id in (None, ""):
        return None
    return str(match_id)


def update_point_table_from_live(ctx: ScoreboardContext) -> bool:
    """Scheduled tick: refresh the point table of whatever match is live right now."""
    match_id = live_match_id(ctx)
    if match_id is None:
        logger.debug("No live match id; skipping point table refresh")
        return False
    return update_point_table(ctx, match_id)
