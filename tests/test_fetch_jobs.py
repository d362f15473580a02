# tests/test_fetch_jobs.py
# --------------------------------------------
# Fetch jobs against a mocked upstream (httpx.MockTransport, no internet).
# Verifies what lands in the store on success, and that failures leave the
# previous snapshot alone.
# --------------------------------------------

import httpx
import pytest

from context import ScoreboardContext
from data_fetchers.snapshots import (
    live_match_id,
    normalize_point_table,
    update_live,
    update_point_table,
    update_point_table_from_live,
    update_upcoming,
)
from providers.scoreboard_api import (
    JSON,
    XML,
    Payload,
    UpstreamMalformed,
    UpstreamUnavailable,
    classify_payload,
)
from store import SnapshotStore, pointtable_key

STANDINGS_XML = (
    '<?xml version="1.0" encoding="UTF-8"?>'
    '<standings><team id="1" name="Lions" points="12"/></standings>'
)


def _ctx(tmp_path, handler, **urls):
    defaults = {
        "upcoming_url": "https://feeds.test/upcoming",
        "live_url": "https://feeds.test/live",
        "pointtable_url": "https://feeds.test/pt/",
    }
    defaults.update(urls)
    return ScoreboardContext(
        store=SnapshotStore(str(tmp_path / "store")),
        client=httpx.Client(transport=httpx.MockTransport(handler)),
        **defaults,
    )


def _json_handler(body, status=200):
    def handler(request):
        return httpx.Response(status, json=body)
    return handler


def _unreachable(request):
    raise httpx.ConnectError("connection refused", request=request)


def _too_slow(request):
    raise httpx.ReadTimeout("slow upstream", request=request)


# ---------- Content negotiation ----------

def test_classify_payload_tags_json_and_xml():
    assert classify_payload(b'{"a": 1}') == Payload(kind=JSON, body={"a": 1})

    xml = classify_payload(b"\xef\xbb\xbf  " + STANDINGS_XML.encode())
    assert xml.kind == XML
    assert xml.body.startswith(b"<?xml")


def test_classify_payload_rejects_garbage():
    with pytest.raises(UpstreamMalformed):
        classify_payload(b"<html>oops</html>")


def test_normalize_point_table_unwraps_standings():
    data = normalize_point_table(Payload(kind=XML, body=STANDINGS_XML))
    assert data == {"team": {"id": "1", "name": "Lions", "points": "12"}}


def test_normalize_point_table_keeps_other_roots():
    data = normalize_point_table(Payload(kind=XML, body="<?xml version='1.0'?><table><row>1</row></table>"))
    assert data == {"table": {"row": "1"}}


def test_normalize_point_table_passes_json_through():
    body = {"standings": [{"team": "Lions"}]}
    assert normalize_point_table(Payload(kind=JSON, body=body)) is body


# ---------- Jobs ----------

def test_upcoming_stores_json_payload_untouched(tmp_path):
    body = {"matches": [{"id": 1}]}
    ctx = _ctx(tmp_path, _json_handler(body))

    assert update_upcoming(ctx) is True
    assert ctx.store.read("upcoming").data == body


def test_successive_writes_have_non_decreasing_timestamps(tmp_path):
    ctx = _ctx(tmp_path, _json_handler({"match_id": "42"}))
    assert update_live(ctx)
    first = ctx.store.read("live").updated_at
    assert update_live(ctx)
    second = ctx.store.read("live").updated_at
    assert second >= first


@pytest.mark.parametrize("handler", [
    _unreachable,
    _json_handler({"error": "boom"}, status=503),
    lambda request: httpx.Response(200, content=b"not json at all"),
    lambda request: httpx.Response(200, content=b"[" * 100000),
    lambda request: httpx.Response(200, content=b"[" * 3000 + b"]" * 3000),
    _too_slow,
])
def test_failed_fetch_leaves_previous_snapshot(tmp_path, handler):
    store = SnapshotStore(str(tmp_path / "store"))
    previous = store.write("live", {"match_id": "7"})

    ctx = _ctx(tmp_path, handler)
    assert update_live(ctx) is False

    assert ctx.store.read("live") == previous


def test_failed_first_fetch_leaves_key_absent(tmp_path):
    ctx = _ctx(tmp_path, _unreachable)
    assert update_upcoming(ctx) is False
    assert ctx.store.read("upcoming") is None


def test_missing_url_is_a_logged_failure(tmp_path):
    calls = []
    ctx = _ctx(tmp_path, lambda r: calls.append(r) or httpx.Response(200, json={}), upcoming_url="")
    assert update_upcoming(ctx) is False
    assert calls == []


def test_xml_is_not_accepted_for_live_scores(tmp_path):
    ctx = _ctx(tmp_path, lambda r: httpx.Response(200, text=STANDINGS_XML))
    assert update_live(ctx) is False
    assert ctx.store.read("live") is None


def test_point_table_builds_url_and_unwraps_xml(tmp_path):
    seen = []

    def handler(request):
        seen.append(str(request.url))
        return httpx.Response(200, text=STANDINGS_XML, headers={"Content-Type": "text/xml"})

    ctx = _ctx(tmp_path, handler)
    assert update_point_table(ctx, "42") is True

    assert seen == ["https://feeds.test/pt/42_table?json=1"]
    assert ctx.store.read(pointtable_key("42")).data == {
        "team": {"id": "1", "name": "Lions", "points": "12"}
    }


def test_point_table_suffix_is_configurable(tmp_path):
    seen = []
    ctx = _ctx(tmp_path, lambda r: seen.append(str(r.url)) or httpx.Response(200, json=[]))
    ctx.pointtable_suffix = "/standings.json"
    update_point_table(ctx, "9")
    assert seen == ["https://feeds.test/pt/9/standings.json"]


def test_point_table_empty_match_id_is_noop(tmp_path):
    calls = []
    ctx = _ctx(tmp_path, lambda r: calls.append(r) or httpx.Response(200, json={}))
    assert update_point_table(ctx, "") is False
    assert update_point_table(ctx, None) is False
    assert calls == []


def test_point_table_raise_errors_surfaces_failure(tmp_path):
    ctx = _ctx(tmp_path, _unreachable)
    with pytest.raises(UpstreamUnavailable):
        update_point_table(ctx, "42", raise_errors=True)
    assert ctx.store.read(pointtable_key("42")) is None


def test_malformed_xml_point_table_is_reported(tmp_path):
    ctx = _ctx(tmp_path, lambda r: httpx.Response(200, text="<?xml version='1.0'?><standings>"))
    with pytest.raises(UpstreamMalformed):
        update_point_table(ctx, "42", raise_errors=True)


def test_deeply_nested_bodies_are_malformed(tmp_path):
    deep_xml = "<?xml version='1.0'?>" + "<a>" * 5000 + "</a>" * 5000
    ctx = _ctx(tmp_path, lambda r: httpx.Response(200, text=deep_xml))
    with pytest.raises(UpstreamMalformed):
        update_point_table(ctx, "42", raise_errors=True)
    assert update_point_table(ctx, "42") is False

    with pytest.raises(UpstreamMalformed):
        classify_payload(b"[" * 100000)

    ctx = _ctx(tmp_path, lambda r: httpx.Response(200, content=b"{\"a\": " * 100000))
    assert update_upcoming(ctx) is False
    assert ctx.store.keys() == []


# ---------- Point table driven by live snapshot ----------

def test_live_match_id_reads_live_snapshot(tmp_path):
    ctx = _ctx(tmp_path, _unreachable)
    assert live_match_id(ctx) is None

    ctx.store.write("live", {"match_id": 42, "score": "1-0"})
    assert live_match_id(ctx) == "42"

    ctx.store.write("live", {"match_id": ""})
    assert live_match_id(ctx) is None

    ctx.store.write("live", ["not", "a", "dict"])
    assert live_match_id(ctx) is None


def test_point_table_tick_without_live_match_is_noop(tmp_path):
    calls = []
    ctx = _ctx(tmp_path, lambda r: calls.append(r) or httpx.Response(200, json={}))
    ctx.store.write("live", {"status": "no match"})

    assert update_point_table_from_live(ctx) is False
    assert calls == []


def test_point_table_tick_follows_live_match(tmp_path):
    seen = []

    def handler(request):
        seen.append(request.url.path)
        return httpx.Response(200, json={"rows": [1, 2]})

    ctx = _ctx(tmp_path, handler)
    ctx.store.write("live", {"match_id": "77"})

    assert update_point_table_from_live(ctx) is True
    assert seen == ["/pt/77_table"]
    assert ctx.store.read(pointtable_key("77")).data == {"rows": [1, 2]}
