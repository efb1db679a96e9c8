"""
aiohttp web application for the script-free speed test.

Routes::

    GET       /           index page with the start form
    GET/POST  /start      create a session, refresh to the first probe
    GET       /probe      one latency probe (sid, n)
    GET       /download   stream the payload (sid, size, nonce)
    POST      /upload     count an uploaded file or raw body (sid)
    GET       /results    bounded wait, then the summary (sid, format)

The session store, protocol, resolver and settings hang off the
application under ``web.AppKey``s; handlers never reach for globals.
"""
from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Dict, Optional

from aiohttp import BodyPartReader, web

from ui.output import create_result_json, format_text_result
from ui.pages import render_download, render_index, render_probe, render_results, render_start, url_for

from .config import Settings
from .constants import (
    HTML_CONTENT_TYPE,
    NO_STORE_HEADERS,
    PAYLOAD_CONTENT_TYPE,
    SWEEP_INTERVAL,
    UPLOAD_CHUNK_SIZE,
)
from .protocol import MeasurementProtocol, parse_probe_counter, parse_size
from .resolver import ResultsResolver
from .sessions import SessionStore

logger = logging.getLogger(__name__)

SETTINGS_KEY = web.AppKey("settings", Settings)
STORE_KEY = web.AppKey("store", SessionStore)
PROTOCOL_KEY = web.AppKey("protocol", MeasurementProtocol)
RESOLVER_KEY = web.AppKey("resolver", ResultsResolver)

routes = web.RouteTableDef()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def client_host(request: web.Request) -> str:
    """First ``X-Forwarded-For`` hop if present, else the peer address."""
    forwarded = request.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.remote or ""


def _html(text: str, no_store: bool = True) -> web.Response:
    return web.Response(
        text=text,
        content_type=HTML_CONTENT_TYPE,
        charset="utf-8",
        headers=NO_STORE_HEADERS if no_store else None,
    )


async def _multipart_chunks(
    request: web.Request,
    fields: Dict[str, str],
) -> AsyncIterator[bytes]:
    """Yield the bytes of every file part; plain fields land in *fields*.

    A body that claims to be multipart but cannot be parsed is counted as
    a raw body from wherever the parser stopped.
    """
    try:
        reader = await request.multipart()
        async for part in reader:
            if not isinstance(part, BodyPartReader):
                continue
            if part.filename is None:
                if part.name:
                    fields[part.name] = await part.text()
                continue
            while True:
                chunk = await part.read_chunk(UPLOAD_CHUNK_SIZE)
                if not chunk:
                    break
                yield chunk
    except ValueError as exc:
        logger.info("Malformed multipart upload, reading raw body: %s", exc)
        async for chunk in request.content.iter_chunked(UPLOAD_CHUNK_SIZE):
            yield chunk


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------

@routes.get("/")
async def index(request: web.Request) -> web.Response:
    settings = request.app[SETTINGS_KEY]
    return _html(render_index(client_host(request), settings.download_size), no_store=False)


@routes.get("/start")
@routes.post("/start")
async def start(request: web.Request) -> web.Response:
    if request.method == "POST":
        form = await request.post()
        hint = form.get("ip")
    else:
        hint = request.query.get("ip")

    host = hint.strip() if isinstance(hint, str) and hint.strip() else client_host(request)
    session = request.app[PROTOCOL_KEY].start(host)
    return _html(render_start(session.id))


@routes.get("/probe")
async def probe(request: web.Request) -> web.Response:
    sid = request.query.get("sid", "")
    n = parse_probe_counter(request.query.get("n"))
    if not sid or n is None:
        raise web.HTTPBadRequest(text="probe requires sid and n >= 1")

    step = request.app[PROTOCOL_KEY].probe(sid, n)
    if not step.done:
        return _html(render_probe(sid, n, step.next_n))

    # Fresh nonce per test so no cache can answer the download for us.
    nonce = request.app[STORE_KEY].generate_id()
    size = request.app[SETTINGS_KEY].download_size
    return _html(render_download(sid, size, nonce))


@routes.get("/download", allow_head=False)
async def download(request: web.Request) -> web.StreamResponse:
    sid: Optional[str] = request.query.get("sid") or None
    size = parse_size(request.query.get("size"), default=request.app[SETTINGS_KEY].download_size)

    response = web.StreamResponse(headers=NO_STORE_HEADERS)
    response.content_type = PAYLOAD_CONTENT_TYPE
    response.content_length = size
    await response.prepare(request)

    await request.app[PROTOCOL_KEY].stream_download(
        sid, size, response.write, finish=response.write_eof,
    )
    return response


@routes.post("/upload")
async def upload(request: web.Request) -> web.Response:
    protocol = request.app[PROTOCOL_KEY]
    fields: Dict[str, str] = {}

    if request.content_type.startswith("multipart/"):
        chunks = _multipart_chunks(request, fields)
    else:
        chunks = request.content.iter_chunked(UPLOAD_CHUNK_SIZE)
    result = await protocol.measure_upload(chunks)

    sid = fields.get("sid") or request.query.get("sid", "")
    if not sid:
        raise web.HTTPBadRequest(text="upload requires sid")

    protocol.record_upload(sid, result)
    raise web.HTTPSeeOther(url_for("/results", sid=sid))


@routes.get("/results")
async def results(request: web.Request) -> web.Response:
    sid = request.query.get("sid", "")
    if not sid:
        raise web.HTTPBadRequest(text="results require sid")

    summary = await request.app[RESOLVER_KEY].resolve(sid)
    if not summary.client_host:
        summary.client_host = client_host(request)

    fmt = request.query.get("format", "html")
    if fmt == "json":
        return web.json_response(create_result_json(summary), headers=NO_STORE_HEADERS)
    if fmt == "text":
        return web.Response(text=format_text_result(summary), headers=NO_STORE_HEADERS)
    return _html(render_results(summary))


# ---------------------------------------------------------------------------
# Session eviction
# ---------------------------------------------------------------------------

async def _sweep_sessions(store: SessionStore, ttl: float, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        store.evict_idle(ttl)


async def session_sweeper(app: web.Application) -> AsyncIterator[None]:
    """``cleanup_ctx`` hook: run the idle-session sweep while the app is up."""
    ttl = app[SETTINGS_KEY].session_ttl
    task = None
    if ttl > 0:
        interval = min(SWEEP_INTERVAL, ttl)
        task = asyncio.create_task(_sweep_sessions(app[STORE_KEY], ttl, interval))
        logger.debug("Session sweeper started (ttl=%.0fs, every %.0fs)", ttl, interval)

    yield

    if task is not None:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

def create_app(
    settings: Optional[Settings] = None,
    store: Optional[SessionStore] = None,
) -> web.Application:
    settings = settings if settings is not None else Settings()
    store = store if store is not None else SessionStore()

    app = web.Application()
    app[SETTINGS_KEY] = settings
    app[STORE_KEY] = store
    app[PROTOCOL_KEY] = MeasurementProtocol(store, probe_count=settings.probe_count)
    app[RESOLVER_KEY] = ResultsResolver(
        store,
        wait_timeout=settings.wait_timeout,
        poll_interval=settings.poll_interval,
    )
    app.add_routes(routes)
    app.cleanup_ctx.append(session_sweeper)
    return app
