from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request, Response
from fastapi.responses import FileResponse

from nahledovka.util.security import resolve_path_within_base

router = APIRouter(tags=["streams"])

STREAM_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, HEAD, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
    "Cache-Control": "no-cache, no-store, must-revalidate",
}

_CONTENT_TYPES = {
    ".m3u8": "application/vnd.apple.mpegurl",
    ".ts": "video/mp2t",
}


def content_type_for(name: str) -> str:
    lowered = name.lower()
    for suffix, media_type in _CONTENT_TYPES.items():
        if lowered.endswith(suffix):
            return media_type
    return "application/octet-stream"


@router.api_route("/{file_path:path}", methods=["GET", "HEAD", "OPTIONS"], response_model=None)
def serve_stream_file(file_path: str, request: Request) -> Response:
    streams_dir = request.app.state.nahledovka.supervisor.streams_dir
    if not file_path:
        raise HTTPException(status_code=404, detail="Stream file not found", headers=STREAM_HEADERS)
    target = resolve_path_within_base(streams_dir, file_path)
    if target is None:
        raise HTTPException(status_code=400, detail="Invalid path", headers=STREAM_HEADERS)
    if not target.is_file():
        # Missing output means the transcoder has not produced it yet.
        raise HTTPException(status_code=404, detail="Stream file not found", headers=STREAM_HEADERS)

    media_type = content_type_for(target.name)
    if request.method in {"HEAD", "OPTIONS"}:
        return Response(status_code=200, media_type=media_type, headers=STREAM_HEADERS)
    return FileResponse(target, media_type=media_type, headers=STREAM_HEADERS)
