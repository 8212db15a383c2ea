from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

from nahledovka.streaming.errors import StreamConfigError, StreamSpawnError
from nahledovka.streaming.naming import WHICH_VALUES, StreamKind, is_stream_output
from nahledovka.util.logging import get_logger
from nahledovka.util.security import validate_camera_id

router = APIRouter(prefix="/stream", tags=["stream"])
logger = get_logger(__name__)

DEBUG_PLAYLIST_LIMIT = 2


class StreamRequest(BaseModel):
    # Left untyped so validate_camera_id sees booleans before pydantic coerces them.
    id: Any
    which: str | None = "both"


@router.post("")
def start_stream(payload: StreamRequest, request: Request) -> dict[str, object]:
    state = request.app.state.nahledovka
    try:
        camera_id = validate_camera_id(payload.id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    which = payload.which if payload.which in WHICH_VALUES else "both"

    camera = state.repo.get_camera(camera_id)
    if not camera:
        raise HTTPException(status_code=404, detail="Camera not found")

    try:
        state.supervisor.ensure(
            camera_id,
            str(camera["name"]),
            str(camera["main_rtsp_url"]),
            str(camera["sub_rtsp_url"]),
            which,
        )
    except StreamConfigError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except StreamSpawnError as exc:
        logger.error("stream start failed for camera %s: %s", camera_id, exc)
        raise HTTPException(status_code=503, detail=str(exc)) from exc

    return {
        "id": camera_id,
        "name": camera["name"],
        "main_stream_url": state.supervisor.url_for(camera_id, StreamKind.MAIN),
        "sub_stream_url": state.supervisor.url_for(camera_id, StreamKind.SUB),
    }


@router.get("/debug")
def stream_debug(request: Request) -> dict[str, object]:
    supervisor = request.app.state.nahledovka.supervisor
    streams_dir = supervisor.streams_dir
    if not streams_dir.is_dir():
        return {"files": [], "content": {}, "runtime": supervisor.statuses()}

    files = sorted(item.name for item in streams_dir.iterdir() if item.is_file())
    playlists = [name for name in files if name.endswith(".m3u8") and is_stream_output(name)]
    content: dict[str, str] = {}
    for name in playlists[:DEBUG_PLAYLIST_LIMIT]:
        try:
            content[name] = (streams_dir / name).read_text(encoding="utf-8")
        except OSError as exc:
            content[name] = f"<unreadable: {exc}>"
    return {"files": files, "content": content, "runtime": supervisor.statuses()}


@router.delete("/{camera_id}")
def stop_stream(camera_id: str, request: Request) -> dict[str, object]:
    state = request.app.state.nahledovka
    try:
        parsed_id = validate_camera_id(camera_id)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    state.supervisor.stop(parsed_id)
    return {"ok": True, "camera_id": parsed_id}
