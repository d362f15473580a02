# providers/scoreboard_api.py
# Fetch one resource from the upstream sports-data API and classify the body
# as JSON or XML before anything downstream looks at it.
# Errors are raised as UpstreamError subclasses; callers decide whether to
# swallow them (scheduled jobs) or surface them (on-demand fetches).

from __future__ import annotations
import codecs
from dataclasses import dataclass
import json
from typing import Any, Union

import httpx

USER_AGENT = "scoreboard-proxy/1.0"

XML_DECLARATION = "<?xml"

JSON = "json"
XML = "xml"


class UpstreamError(Exception):
    """Base class for anything that went wrong talking to the upstream API."""


class UpstreamUnavailable(UpstreamError):
    """Network error, timeout, non-2xx status or missing URL."""


class UpstreamMalformed(UpstreamError):
    """The upstream answered, but the body could not be understood."""


@dataclass(frozen=True)
class Payload:
    """
    A classified upstream body.
      kind == "json": body is the decoded JSON value
      kind == "xml":  body is the raw document (bytes or str), still unparsed
    """
    kind: str
    body: Any


def classify_payload(content: Union[bytes, str]) -> Payload:
    """
    Decide whether `content` is an XML document or JSON.
    Anything starting with an XML declaration (ignoring a BOM and leading
    whitespace) is XML; everything else must decode as JSON.
    """
    if isinstance(content, bytes):
        if content.startswith(codecs.BOM_UTF8):
            content = content[len(codecs.BOM_UTF8):]
        text = content.decode("utf-8", errors="replace")
    else:
        content = content.lstrip("\ufeff")
        text = content
    if text.lstrip().startswith(XML_DECLARATION):
        # the parser rejects anything in front of the declaration
        return Payload(kind=XML, body=content.lstrip())

    try:
        return Payload(kind=JSON, body=json.loads(text))
    except (ValueError, RecursionError) as e:
        raise UpstreamMalformed(f"Response is neither XML nor valid JSON: {e}") from e


def build_client(timeout: float = 15.0) -> httpx.Client:
    return httpx.Client(
        timeout=timeout,
        follow_redirects=True,
        headers={"User-Agent": USER_AGENT},
    )


def fetch_payload(client: httpx.Client, url: str, timeout: float | None = None) -> Payload:
    """
    GET `url` once and return the classified body.
    Raises UpstreamUnavailable / UpstreamMalformed.
    """
    if not url:
        raise UpstreamUnavailable("No upstream URL configured")

    kwargs = {} if timeout is None else {"timeout": timeout}
    try:
        resp = client.get(url, **kwargs)
        resp.raise_for_status()
    except httpx.TimeoutException as e:
        raise UpstreamUnavailable(f"Timed out fetching {url}") from e
    except httpx.HTTPStatusError as e:
        raise UpstreamUnavailable(
            f"Upstream returned HTTP {e.response.status_code} for {url}") from e
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        raise UpstreamUnavailable(f"Request to {url} failed: {e}") from e

    return classify_payload(resp.content)
