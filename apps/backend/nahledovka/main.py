from __future__ import annotations

import threading
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from nahledovka.api import (
    routes_cameras,
    routes_health,
    routes_settings,
    routes_stream,
    routes_streams,
)
from nahledovka.config.defaults import APP_RELEASE
from nahledovka.config.migrate import SettingsStore
from nahledovka.config.schema import AppSettings
from nahledovka.storage.db import Database
from nahledovka.storage.repo import CameraRepo
from nahledovka.streaming.supervisor import StreamSupervisor
from nahledovka.streaming.worker import TranscoderOptions
from nahledovka.util.logging import get_logger, setup_logging
from nahledovka.util.paths import ensure_data_tree, resolve_streams_dir

logger = get_logger(__name__)

SHUTDOWN_WAIT_SECONDS = 3.0
DEV_UI_ORIGINS = ["http://localhost:3000", "http://127.0.0.1:3000"]


def _launch_overrides(
    bind: str | None,
    port: int | None,
    ffmpeg_path: str | None,
    streams_dir: str | None,
) -> dict[str, object]:
    overrides: dict[str, object] = {}
    if bind:
        overrides["bind"] = bind
        overrides["allow_lan"] = bind == "0.0.0.0"
    if port:
        overrides["port"] = port
    if ffmpeg_path:
        overrides["ffmpeg_path"] = ffmpeg_path
    if streams_dir:
        overrides["streams_dir"] = streams_dir
    return overrides


def _build_supervisor(settings: AppSettings, data_dir: Path) -> StreamSupervisor:
    options = TranscoderOptions(
        ffmpeg_path=settings.ffmpeg_path,
        hls_time=settings.hls_time,
        hls_list_size=settings.hls_list_size,
    )
    return StreamSupervisor(
        streams_dir=resolve_streams_dir(data_dir, settings.streams_dir),
        options=options,
        url_prefix=settings.stream_url_prefix,
    )


@dataclass
class NahledovkaState:
    settings_store: SettingsStore
    log_level: str
    db: Database
    repo: CameraRepo
    supervisor: StreamSupervisor
    data_dir: Path
    _shutdown_lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False)
    _streams_stopped: bool = field(default=False, init=False, repr=False)
    _closed: bool = field(default=False, init=False, repr=False)

    @classmethod
    def create(
        cls,
        data_dir: str | None = None,
        bind: str | None = None,
        port: int | None = None,
        log_level: str = "info",
        ffmpeg_path: str | None = None,
        streams_dir: str | None = None,
    ) -> "NahledovkaState":
        settings_store = SettingsStore(cli_data_dir=data_dir)
        overrides = _launch_overrides(bind, port, ffmpeg_path, streams_dir)
        if overrides:
            settings_store.update(**overrides)

        settings = settings_store.settings
        data_path = Path(settings.data_dir)
        ensure_data_tree(data_path)
        log_file = setup_logging(log_level, data_path)

        db = Database(data_path / "db" / "nahledovka.db")
        repo = CameraRepo(db)
        supervisor = _build_supervisor(settings, data_path)
        logger.info(
            "nahledovka %s: %d camera(s), streams in %s, log at %s",
            APP_RELEASE,
            repo.count_cameras(),
            supervisor.streams_dir,
            log_file,
        )

        return cls(
            settings_store=settings_store,
            log_level=log_level,
            db=db,
            repo=repo,
            supervisor=supervisor,
            data_dir=data_path,
        )

    def begin_shutdown(self) -> None:
        """Signal every transcoder without waiting; safe from signal handlers and the API."""
        with self._shutdown_lock:
            if self._streams_stopped:
                return
            self._streams_stopped = True
        self.supervisor.stop_all()

    def shutdown(self) -> None:
        self.begin_shutdown()
        with self._shutdown_lock:
            if self._closed:
                return
            self._closed = True
        self.supervisor.wait_for_exit(SHUTDOWN_WAIT_SECONDS)
        self.db.close()
        logger.info("nahledovka stopped")


def create_app(
    data_dir: str | None = None,
    bind: str | None = None,
    port: int | None = None,
    log_level: str = "info",
    ffmpeg_path: str | None = None,
    streams_dir: str | None = None,
) -> FastAPI:
    state = NahledovkaState.create(
        data_dir=data_dir,
        bind=bind,
        port=port,
        log_level=log_level,
        ffmpeg_path=ffmpeg_path,
        streams_dir=streams_dir,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        try:
            yield
        finally:
            app.state.nahledovka.shutdown()

    app = FastAPI(title="Nahledovka", version=APP_RELEASE, lifespan=lifespan)
    app.state.nahledovka = state
    app.add_middleware(
        CORSMiddleware,
        allow_origins=DEV_UI_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for router in (routes_health.router, routes_cameras.router, routes_stream.router, routes_settings.router):
        app.include_router(router, prefix="/api")
    # Registered last: its catch-all path must not shadow the /api routers.
    app.include_router(routes_streams.router, prefix=state.supervisor.url_prefix)
    return app
