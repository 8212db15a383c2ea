from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field, field_validator

from nahledovka.streaming.naming import StreamKind
from nahledovka.util.logging import get_logger
from nahledovka.util.security import (
    restore_redacted_password,
    sanitize_rtsp_url,
    validate_camera_id,
    validate_rtsp_url,
)

router = APIRouter(prefix="/cameras", tags=["cameras"])
logger = get_logger(__name__)


class CameraPayload(BaseModel):
    name: str = Field(min_length=1)
    main_rtsp_url: str = Field(min_length=1)
    sub_rtsp_url: str = Field(min_length=1)

    @field_validator("name", "main_rtsp_url", "sub_rtsp_url", mode="before")
    @classmethod
    def strip_text(cls, value: object) -> object:
        return value.strip() if isinstance(value, str) else value


def _camera_view(camera: dict[str, Any], request: Request) -> dict[str, object]:
    supervisor = request.app.state.nahledovka.supervisor
    camera_id = int(camera["id"])
    return {
        "id": camera_id,
        "name": camera["name"],
        "main_rtsp_url": sanitize_rtsp_url(str(camera["main_rtsp_url"])),
        "sub_rtsp_url": sanitize_rtsp_url(str(camera["sub_rtsp_url"])),
        "created_at": camera.get("created_at"),
        "updated_at": camera.get("updated_at"),
        "main_stream_url": supervisor.url_for(camera_id, StreamKind.MAIN),
        "sub_stream_url": supervisor.url_for(camera_id, StreamKind.SUB),
        "running": {
            "main": supervisor.is_running(camera_id, StreamKind.MAIN),
            "sub": supervisor.is_running(camera_id, StreamKind.SUB),
        },
    }


def _parse_camera_id(raw: str) -> int:
    try:
        return validate_camera_id(raw)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


def _resolve_source(submitted: str, stored: str | None = None) -> str:
    try:
        value = validate_rtsp_url(submitted, allow_redacted_password=stored is not None)
        if stored is not None:
            value = restore_redacted_password(value, stored)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return value


@router.get("")
def list_cameras(request: Request) -> dict[str, object]:
    state = request.app.state.nahledovka
    return {"items": [_camera_view(c, request) for c in state.repo.list_cameras()]}


@router.post("")
def create_camera(payload: CameraPayload, request: Request) -> dict[str, object]:
    state = request.app.state.nahledovka
    main_url = _resolve_source(payload.main_rtsp_url)
    sub_url = _resolve_source(payload.sub_rtsp_url)
    camera = state.repo.create_camera(payload.name, main_url, sub_url)
    logger.info("camera created: %s (id: %s)", camera["name"], camera["id"])
    return {"ok": True, "camera": _camera_view(camera, request)}


@router.put("/{camera_id}")
def update_camera(camera_id: str, payload: CameraPayload, request: Request) -> dict[str, object]:
    state = request.app.state.nahledovka
    parsed_id = _parse_camera_id(camera_id)
    existing = state.repo.get_camera(parsed_id)
    if not existing:
        raise HTTPException(status_code=404, detail="Camera not found")

    main_url = _resolve_source(payload.main_rtsp_url, str(existing["main_rtsp_url"]))
    sub_url = _resolve_source(payload.sub_rtsp_url, str(existing["sub_rtsp_url"]))

    # Running transcoders keep the old sources; the next play request restarts them.
    state.supervisor.stop(parsed_id)
    camera = state.repo.update_camera(parsed_id, payload.name, main_url, sub_url)
    if camera is None:
        raise HTTPException(status_code=404, detail="Camera not found")
    logger.info("camera updated: %s (id: %s)", camera["name"], parsed_id)
    return {"ok": True, "camera": _camera_view(camera, request)}


@router.delete("/{camera_id}")
def delete_camera(camera_id: str, request: Request) -> dict[str, object]:
    state = request.app.state.nahledovka
    parsed_id = _parse_camera_id(camera_id)
    state.supervisor.stop(parsed_id)
    if not state.repo.delete_camera(parsed_id):
        raise HTTPException(status_code=404, detail="Camera not found")
    logger.info("camera deleted: %s", parsed_id)
    return {"ok": True, "camera_id": parsed_id}
