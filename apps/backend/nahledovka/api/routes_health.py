from __future__ import annotations

from fastapi import APIRouter, Request

from nahledovka.config.defaults import APP_RELEASE
from nahledovka.streaming.errors import StreamSpawnError
from nahledovka.streaming.worker import resolve_ffmpeg_exe

router = APIRouter(prefix="/health", tags=["health"])


def _ffmpeg_status(configured: str | None) -> dict[str, object]:
    try:
        return {"available": True, "path": resolve_ffmpeg_exe(configured)}
    except StreamSpawnError as exc:
        return {"available": False, "error": str(exc)}


@router.get("")
def get_health(request: Request) -> dict[str, object]:
    state = request.app.state.nahledovka
    settings = state.settings_store.settings
    supervisor = state.supervisor
    return {
        "ok": True,
        "version": APP_RELEASE,
        "bind": settings.bind,
        "port": settings.port,
        "allow_lan": settings.allow_lan,
        "cameras": state.repo.count_cameras(),
        "streams_running": supervisor.running_count(),
        "ffmpeg": _ffmpeg_status(supervisor.options.ffmpeg_path),
        "runtime": supervisor.statuses(),
    }
