"""HTTP API and process entry point.

Run with ``python -m synccompare.server [--skip-initial-cache]``.
"""

from __future__ import annotations

import argparse
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

import structlog
import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from synccompare.cache import CacheStore, utc_now
from synccompare.config import Settings
from synccompare.errors import SyncCompareError
from synccompare.formatting import format_bytes, format_duration
from synccompare.logging_setup import configure_logging
from synccompare.models.api import (
    CacheMissOutput,
    CacheStatusOutput,
    CompareInput,
    ErrorOutput,
    HealthCacheStatus,
    HealthOutput,
    LocalCacheStatus,
    LocalEntryStatus,
    LocalHealth,
    LocalRefreshInfo,
    RefreshOutput,
    RemoteCacheStatus,
    RemoteEntryStatus,
    RemoteHealth,
    RemoteRefreshInfo,
    RemoveLocalOutput,
)
from synccompare.state import AppState, build_state

log = structlog.get_logger()

_REQUIRED_FIELDS = {"remotePath", "localPath", "remote_path", "local_path"}


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def _validation_message(errors: list[dict[str, Any]]) -> str:
    for err in errors:
        loc = tuple(err.get("loc", ()))
        if loc == ("body",) or (len(loc) > 1 and loc[1] in _REQUIRED_FIELDS):
            return "Both remotePath and localPath are required"
    if errors:
        return f"Invalid request body: {errors[0].get('msg', 'validation failed')}"
    return "Invalid request body"


def get_state(request: Request) -> AppState:
    return request.app.state.sync


def _entry_rows(store: CacheStore, *, with_count: bool) -> list[Any]:
    rows: list[Any] = []
    for path, entry in store.items():
        fields = {
            "path": path,
            "size": format_bytes(entry.bytes),
            "bytes": entry.bytes,
            "timestamp": entry.timestamp,
            "calculation_duration": format_duration(entry.probe_duration_ms),
            "error": entry.error,
        }
        if with_count:
            rows.append(RemoteEntryStatus(count=entry.count, **fields))
        else:
            rows.append(LocalEntryStatus(**fields))
    return rows


def create_app(state: AppState | None = None, *, run_scheduler: bool = False) -> FastAPI:
    """Build the ASGI app.

    With no ``state`` the app builds its own from ``Settings()`` and runs the
    refresh scheduler for its lifetime.
    """
    if state is None:
        state = build_state(Settings())
        run_scheduler = True

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if run_scheduler:
            state.scheduler.start(run_immediately=state.settings.cache.refresh_on_startup)
        try:
            yield
        finally:
            if run_scheduler:
                await state.scheduler.stop()

    app = FastAPI(title="synccompare", lifespan=lifespan)
    app.state.sync = state

    @app.exception_handler(SyncCompareError)
    async def sync_error_handler(request: Request, exc: SyncCompareError) -> JSONResponse:
        if exc.is_client_error:
            log.info("request_rejected", path=request.url.path, code=exc.code, error=exc.message)
            return _error(status.HTTP_400_BAD_REQUEST, exc.message)
        log.error("request_failed", path=request.url.path, code=exc.code, error=exc.message)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, exc.message)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        message = _validation_message(list(exc.errors()))
        log.info("request_rejected", path=request.url.path, error=message)
        return _error(status.HTTP_400_BAD_REQUEST, message)

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        log.error("request_failed", path=request.url.path, error=str(exc), exc_info=exc)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))

    @app.post("/api/compare")
    async def compare(body: CompareInput, request: Request) -> JSONResponse:
        sync = get_state(request)
        try:
            result = await sync.engine.compare(
                body.remote_path, body.local_path, force_direct=body.force_direct
            )
        except SyncCompareError:
            raise
        except Exception as e:
            log.exception("compare_failed", remote=body.remote_path, path=body.local_path)
            return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, str(e))

        status_code = (
            status.HTTP_404_NOT_FOUND
            if isinstance(result, CacheMissOutput)
            else status.HTTP_200_OK
        )
        return JSONResponse(
            status_code=status_code,
            content=result.model_dump(mode="json", by_alias=True),
        )

    @app.post("/api/cache/refresh", response_model=RefreshOutput)
    async def refresh_cache(request: Request) -> RefreshOutput:
        sync = get_state(request)
        sync.scheduler.trigger_all()
        remote = sync.remote_store.status()
        local = sync.local_store.status()
        return RefreshOutput(
            remote=RemoteRefreshInfo(
                update_started=remote.in_progress,
                started_at=remote.started_at,
                previous_update=remote.last_updated,
            ),
            local=LocalRefreshInfo(
                update_started=local.in_progress,
                started_at=local.started_at,
                previous_update=local.last_updated,
                directories_tracked=len(sync.local_store),
            ),
        )

    @app.get("/api/cache/status", response_model=CacheStatusOutput)
    async def cache_status(request: Request) -> CacheStatusOutput:
        sync = get_state(request)
        remote = sync.remote_store.status()
        local = sync.local_store.status()
        remotes = _entry_rows(sync.remote_store, with_count=True)
        directories = _entry_rows(sync.local_store, with_count=False)
        return CacheStatusOutput(
            remote=RemoteCacheStatus(
                last_updated=remote.last_updated,
                update_in_progress=remote.in_progress,
                update_start_time=remote.started_at,
                remote_count=len(remotes),
                remotes=remotes,
            ),
            local=LocalCacheStatus(
                last_updated=local.last_updated,
                update_in_progress=local.in_progress,
                update_start_time=local.started_at,
                directory_count=len(directories),
                directories=directories,
            ),
        )

    @app.delete(
        "/api/cache/local",
        response_model=RemoveLocalOutput,
        responses={status.HTTP_409_CONFLICT: {"model": ErrorOutput}},
    )
    async def remove_local(path: str, request: Request) -> RemoveLocalOutput | JSONResponse:
        sync = get_state(request)
        if sync.local_store.refresh_in_progress:
            # The running cycle would publish the path back from its working copy
            log.info("local_directory_remove_refused", path=path)
            return _error(
                status.HTTP_409_CONFLICT,
                "Local refresh in progress; retry once it completes",
            )
        removed = sync.local_store.remove(path)
        sync.history.forget(path)
        log.info("local_directory_removed", path=path, removed=removed)
        return RemoveLocalOutput(path=path, removed=removed)

    @app.get("/health", response_model=HealthOutput)
    async def health(request: Request) -> HealthOutput:
        sync = get_state(request)
        return HealthOutput(
            timestamp=utc_now(),
            cache_status=HealthCacheStatus(
                remote=RemoteHealth(
                    last_updated=sync.remote_store.last_updated,
                    remotes_in_cache=len(sync.remote_store),
                ),
                local=LocalHealth(
                    last_updated=sync.local_store.last_updated,
                    directories_in_cache=len(sync.local_store),
                ),
            ),
        )

    return app


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="synccompare", description="Cached rclone remote vs local directory size comparison"
    )
    parser.add_argument(
        "--skip-initial-cache",
        action="store_true",
        help="Do not refresh the caches at startup; wait for the first scheduled run.",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)
    settings = Settings()  # Invalid config raises here, before anything binds
    if args.skip_initial_cache:
        settings.cache = settings.cache.model_copy(update={"refresh_on_startup": False})

    configure_logging(settings.logging)
    log.info(
        "service_starting",
        host=settings.server.host,
        port=settings.server.port,
        refresh_on_startup=settings.cache.refresh_on_startup,
        remote_interval_h=settings.cache.remote_refresh_interval_hours,
        local_interval_h=settings.cache.local_refresh_interval_hours,
        probe_concurrency=settings.cache.probe_concurrency,
    )

    app = create_app(build_state(settings), run_scheduler=True)
    uvicorn.run(app, host=settings.server.host, port=settings.server.port, log_config=None)


if __name__ == "__main__":
    main()
