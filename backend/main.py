from __future__ import annotations

import asyncio
import re
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, Callable

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.staticfiles import StaticFiles

from engine.types import FilterQuery
from service.bootstrap import build_context
from service.config import server_host, server_port
from service.context import ServiceContext
from service.errors import IOFailure, NotReady, TileNotFound
from service.logging_setup import get_logger
from telemetry.singleton import get_store, shutdown_store

log = get_logger(__name__)

# `/tiles/3/4/5` and `/tiles/3/4/5.pbf` both address tile 3/4/5.
_TILE_PART = re.compile(r"^(\d+)(?:\.\w+)?$")

router = APIRouter()


def context_or_none(request: Request) -> ServiceContext | None:
    return getattr(request.app.state, "context", None)


def require_context(request: Request) -> ServiceContext:
    ctx = context_or_none(request)
    if ctx is None:
        raise NotReady("Service is still starting")
    return ctx


def _record(
    ctx: ServiceContext,
    endpoint: str,
    t0: float,
    *,
    status: int = 200,
    params: dict[str, Any] | None = None,
    stats: dict[str, Any] | None = None,
) -> None:
    """
    Persist one request event for later analysis. Never fails the request.
    """
    store = ctx.telemetry
    if store is None:
        return
    payload = dict(stats or {})
    payload["timingsMs"] = {"total": round((time.perf_counter() - t0) * 1000.0, 3)}
    try:
        store.record(
            endpoint=endpoint,
            engine=ctx.engine.name,
            dataset=ctx.dataset_id,
            status=status,
            params=params,
            stats=payload,
        )
    except Exception:
        log.exception("Telemetry record failed for %s", endpoint)


@router.get("/metadata")
def get_metadata(ctx: ServiceContext | None = Depends(context_or_none)):
    try:
        if ctx is None:
            raise NotReady("Service is still starting")
        meta = ctx.tiles.get_metadata()
    except NotReady:
        return JSONResponse(status_code=500, content={"error": "Metadata not loaded"})

    info = meta.to_dict()
    info["sourceLayerId"] = meta.source_layer_id(ctx.default_source_layer)
    info["churchData"] = {
        "bounds": info["bounds"],
        "center": info["center"],
        "minzoom": meta.minzoom,
        "maxzoom": meta.maxzoom,
        "attribution": meta.attribution,
    }
    return info


@router.get("/tiles/{z}/{x}/{y}")
def get_tile(z: str, x: str, y: str, ctx: ServiceContext = Depends(require_context)):
    t0 = time.perf_counter()
    params = {"z": z, "x": x, "y": y}
    coord = _tile_coord(z, x, y)
    if coord is None:
        _record(ctx, "/tiles", t0, status=404, params=params, stats={"reason": "malformed"})
        return _tile_not_found()
    try:
        tile = ctx.require_tiles().get_tile(*coord)
    except TileNotFound as e:
        _record(ctx, "/tiles", t0, status=404, params=params, stats={"reason": e.reason})
        return _tile_not_found()

    _record(ctx, "/tiles", t0, params=params, stats={"bytes": len(tile.data)})
    return Response(content=tile.data, headers=tile.headers)


@router.get("/churches")
def list_churches(
    page: str | None = Query(default=None),
    limit: str | None = Query(default=None),
    search: str = Query(default=""),
    ctx: ServiceContext = Depends(require_context),
):
    t0 = time.perf_counter()
    result = ctx.engine.list(page, limit, search)
    _record(
        ctx,
        "/churches",
        t0,
        params={"page": page, "limit": limit, "search": search},
        stats={"returned": len(result.items), "total": result.pagination.total},
    )
    return result.as_dict()


@router.get("/filter")
def filter_churches(
    title: str = Query(default=""),
    jurisdiction: str = Query(default=""),
    rite: str = Query(default=""),
    type: str = Query(default=""),
    country: str = Query(default=""),
    address: str = Query(default=""),
    ctx: ServiceContext = Depends(require_context),
):
    t0 = time.perf_counter()
    query = FilterQuery(
        title=title,
        jurisdiction=jurisdiction,
        rite=rite,
        type=type,
        country=country,
        address=address,
    )
    result = ctx.engine.filter(query)
    _record(
        ctx,
        "/filter",
        t0,
        params=query.terms(),
        stats={"returned": len(result.items), "total": result.pagination.total},
    )
    return result.as_dict()


@router.get("/health")
def health(ctx: ServiceContext | None = Depends(context_or_none)):
    if ctx is None or not ctx.tiles.ready:
        return JSONResponse(status_code=503, content={"status": "starting"})
    return {"status": "degraded" if ctx.degraded else "ok", **ctx.startup_report()}


@router.get("/telemetry/summary")
def telemetry_summary(engine: str | None = None, endpoint: str | None = None):
    store = get_store()
    if store is None:
        return {"enabled": False, "rows": []}
    return {"enabled": True, "rows": store.summary(engine=engine, endpoint=endpoint)}


@router.get("/telemetry/slowest")
def telemetry_slowest(
    engine: str | None = None, endpoint: str | None = None, limit: int = 25
):
    store = get_store()
    if store is None:
        return {"enabled": False, "rows": []}
    return {
        "enabled": True,
        "rows": store.slowest(engine=engine, endpoint=endpoint, limit=limit),
    }


def _tile_not_found() -> Response:
    return Response(status_code=404, content="Tile not found", media_type="text/plain")


def _tile_coord(z: str, x: str, y: str) -> tuple[int, int, int] | None:
    out = []
    for part in (z, x, y):
        m = _TILE_PART.match(part)
        if not m:
            return None
        out.append(int(m.group(1)))
    return out[0], out[1], out[2]


async def _not_ready(request: Request, exc: NotReady) -> JSONResponse:
    return JSONResponse(status_code=503, content={"error": str(exc)})


async def _io_failure(request: Request, exc: IOFailure) -> JSONResponse:
    log.error("I/O failure serving %s: %s", request.url.path, exc)
    return JSONResponse(status_code=500, content={"error": "Storage read failed"})


def _record_startup(ctx: ServiceContext) -> None:
    # Skipped chunks/sources show up here as well as in the logs.
    store = ctx.telemetry
    if store is None:
        return
    try:
        store.record(
            endpoint="startup",
            engine=ctx.engine.name,
            dataset=ctx.dataset_id,
            stats=ctx.startup_report(),
        )
    except Exception:
        log.exception("Telemetry record failed for start-up")


def _mount_static(app: FastAPI, ctx: ServiceContext) -> None:
    if not ctx.static_dir or any(getattr(r, "name", None) == "static" for r in app.routes):
        return
    if not Path(ctx.static_dir).is_dir():
        log.warning("Static directory does not exist, not serving it: %s", ctx.static_dir)
        return
    # Mounted last so API routes keep precedence.
    app.mount("/", StaticFiles(directory=ctx.static_dir, html=True), name="static")


def create_app(
    context: ServiceContext | None = None,
    *,
    build: Callable[[], ServiceContext] = build_context,
) -> FastAPI:
    """
    Application factory.

    With `context` the app serves it immediately; otherwise `build` runs once
    in a worker thread during lifespan start-up, before any request is
    accepted. A start-up IOFailure propagates and the server never starts.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            if app.state.context is None:
                app.state.context = await asyncio.to_thread(build)
                _record_startup(app.state.context)
            _mount_static(app, app.state.context)
            yield
        finally:
            shutdown_store()

    app = FastAPI(title="churchmap", lifespan=lifespan)
    app.state.context = context

    # Public dataset: open CORS.
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["Content-Type", "Authorization"],
    )
    app.add_exception_handler(NotReady, _not_ready)
    app.add_exception_handler(IOFailure, _io_failure)
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=server_host(), port=server_port())
