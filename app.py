# app.py
# -------------------------------
# Flask application entry point and CLI commands.
# Uses the app-factory pattern.
#
# What this file does:
#   - Creates and configures the Flask app (via create_app).
#   - Builds the shared ScoreboardContext (store, upstream URLs, HTTP client).
#   - Serves the cached snapshots to scoreboard screens.
#   - Fetches a point table on demand when a screen asks for one we don't have.
#   - Wires the fetch jobs into the background scheduler (start_background_jobs).
#   - Registers CLI helpers for one-off fetches and inspecting the store.
# -------------------------------

from __future__ import annotations

import atexit
import json
import logging
from typing import Optional

import click
import httpx
from flask import Flask, current_app, jsonify

from context import ScoreboardContext
from data_fetchers.snapshots import (
    update_live,
    update_point_table,
    update_point_table_from_live,
    update_upcoming,
)
from providers.scoreboard_api import UpstreamError
from scheduler import DailyAt, EveryInterval, Scheduler
from store import LIVE_KEY, UPCOMING_KEY, Snapshot, is_valid_match_id, pointtable_key

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

CONTEXT_EXTENSION = "scoreboard"
SCHEDULER_EXTENSION = "scoreboard_scheduler"

WAITING_FOR_DATA = {"status": "waiting_for_data"}


# ---------- Context helpers ----------

def init_context(app: Flask, client: Optional[httpx.Client] = None) -> ScoreboardContext:
    """
    (Re)build the ScoreboardContext from app.config.
    Call again after app.config.update(...) to pick up new settings; tests
    pass an httpx client with a mock transport here.
    """
    old = app.extensions.get(CONTEXT_EXTENSION)
    ctx = ScoreboardContext.from_config(app.config, client=client)
    app.extensions[CONTEXT_EXTENSION] = ctx
    if old is not None and old.client is not ctx.client:
        old.close()
    return ctx


def get_context(app: Optional[Flask] = None) -> ScoreboardContext:
    app = app or current_app
    return app.extensions[CONTEXT_EXTENSION]


def _snapshot_response(snapshot: Optional[Snapshot]):
    if snapshot is None:
        return jsonify(WAITING_FOR_DATA)
    return jsonify(snapshot.to_dict())


# ---------- App Factory ----------

def create_app() -> Flask:
    """
    Create and configure the Flask app:
      - Loads configuration from config.Config
      - Configures logging
      - Builds the ScoreboardContext
      - Registers routes
      - Registers CLI commands
    The background scheduler is NOT started here; see start_background_jobs().
    """
    app = Flask(__name__)
    app.config.from_object("config.Config")

    logging.basicConfig(
        level=logging._nameToLevel.get(app.config.get("LOG_LEVEL", "INFO"), logging.INFO),
        format=LOG_FORMAT,
    )

    init_context(app)

    # Screens are served from other origins
    @app.after_request
    def allow_any_origin(resp):
        resp.headers["Access-Control-Allow-Origin"] = "*"
        return resp

    # ----- Routes -----

    @app.route("/")
    def index():
        return "Scoreboard proxy running"

    @app.route("/health")
    def health():
        store = get_context().store
        snapshots = {}
        for key in store.keys():
            snapshot = store.read(key)
            if snapshot is not None:
                snapshots[key] = snapshot.updated_at
        return jsonify({"status": "ok", "snapshots": snapshots})

    @app.route("/api/scoreboard/upcoming")
    def upcoming():
        return _snapshot_response(get_context().store.read(UPCOMING_KEY))

    @app.route("/api/scoreboard/live")
    def live():
        return _snapshot_response(get_context().store.read(LIVE_KEY))

    @app.route("/api/scoreboard/pointtable/<matchid>")
    def pointtable(matchid: str):
        """
        Serve the cached point table for `matchid`; if there isn't one yet,
        fetch it now (blocking) and serve whatever that produced.
        """
        if not is_valid_match_id(matchid):
            return jsonify({"error": f"Invalid match id: {matchid!r}"}), 400

        ctx = get_context()
        key = pointtable_key(matchid)

        cached = ctx.store.read(key)
        if cached is not None:
            return jsonify(cached.to_dict())

        try:
            update_point_table(ctx, matchid, raise_errors=True)
        except (UpstreamError, OSError, ValueError) as e:
            return jsonify({"error": str(e)}), 500

        return _snapshot_response(ctx.store.read(key))

    # ----- CLI Commands -----

    @app.cli.command("fetch-upcoming")
    def fetch_upcoming_cmd():
        """Fetch upcoming fixtures once and store the snapshot."""
        ok = update_upcoming(get_context(app))
        click.echo("✅ Upcoming updated" if ok else "❌ Upcoming failed (see log)")

    @app.cli.command("fetch-live")
    def fetch_live_cmd():
        """Fetch the live score once and store the snapshot."""
        ok = update_live(get_context(app))
        click.echo("✅ Live score updated" if ok else "❌ Live score failed (see log)")

    @app.cli.command("fetch-pointtable")
    @click.option("--match-id", "match_id", required=True, help="Upstream match identifier")
    def fetch_pointtable_cmd(match_id: str):
        """
        Fetch the point table for one match and store the snapshot.
        Example:
            flask --app app fetch-pointtable --match-id 42
        """
        ok = update_point_table(get_context(app), match_id)
        if ok:
            click.echo(f"✅ Point table updated ({match_id})")
        else:
            click.echo(f"❌ Point table failed ({match_id}) (see log)")

    @app.cli.command("show-snapshot")
    @click.argument("key")
    def show_snapshot_cmd(key: str):
        """
        Print the stored snapshot for KEY (upcoming, live, pointtable:<matchId>).
        """
        try:
            snapshot = get_context(app).store.read(key)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="KEY")
        if snapshot is None:
            click.echo(f"No snapshot for {key}.")
            return
        click.echo(json.dumps(snapshot.to_dict(), indent=2, ensure_ascii=False))

    @app.cli.command("list-snapshots")
    def list_snapshots_cmd():
        """List stored snapshot keys with their capture time."""
        store = get_context(app).store
        keys = store.keys()
        if not keys:
            click.echo("No snapshots stored yet.")
            return
        for key in keys:
            snapshot = store.read(key)
            updated = snapshot.updated_at if snapshot else "unreadable"
            click.echo(f"{key}\t{updated}")

    return app


# ---------- Background jobs ----------

def build_scheduler(app: Flask) -> Scheduler:
    """Register the three fetch jobs with their cadences from app.config."""
    ctx = get_context(app)
    cfg = app.config

    scheduler = Scheduler()
    scheduler.add_job("upcoming", lambda: update_upcoming(ctx), DailyAt.parse(cfg["UPCOMING_DAILY_AT"]))
    scheduler.add_job("live", lambda: update_live(ctx), EveryInterval(cfg["LIVE_INTERVAL_SECONDS"]))
    scheduler.add_job("pointtable", lambda: update_point_table_from_live(ctx),
                      EveryInterval(cfg["POINTTABLE_INTERVAL_SECONDS"]))
    return scheduler


def start_background_jobs(app: Flask) -> Optional[Scheduler]:
    """
    Start polling the upstream feeds. Every job also runs once right away.
    Returns the running Scheduler, or None when SCHEDULER_ENABLED is off.
    """
    existing = app.extensions.get(SCHEDULER_EXTENSION)
    if existing is not None:
        return existing

    if not app.config.get("SCHEDULER_ENABLED", True):
        logger.info("Scheduler disabled; serving cached snapshots only")
        return None

    scheduler = build_scheduler(app)
    scheduler.start()
    app.extensions[SCHEDULER_EXTENSION] = scheduler

    def _shutdown():
        scheduler.shutdown(wait=False)
        get_context(app).close()

    atexit.register(_shutdown)
    return scheduler


def main() -> None:
    app = create_app()
    start_background_jobs(app)
    port = app.config["PORT"]
    logger.info("Scoreboard proxy listening on port %s", port)
    # debug=False: the reloader would start a second scheduler
    app.run(host="0.0.0.0", port=port, debug=False)


# ---------- Dev Server ----------

if __name__ == "__main__":
    main()
