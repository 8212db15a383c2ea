from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel

router = APIRouter(prefix="/settings", tags=["settings"])


class RuntimeExitResponse(BaseModel):
    ok: bool
    message: str


@router.get("")
def get_settings(request: Request) -> dict[str, object]:
    state = request.app.state.nahledovka
    settings = state.settings_store.settings
    return {
        "settings": settings.model_dump(mode="json"),
        "data_tree": {
            "db": str(state.db.db_path),
            "streams": str(state.supervisor.streams_dir),
            "logs": str(state.data_dir / "logs"),
        },
    }


@router.post("/exit", response_model=RuntimeExitResponse)
def request_runtime_exit(request: Request) -> RuntimeExitResponse:
    state = request.app.state.nahledovka
    state.begin_shutdown()

    request_exit = getattr(request.app.state, "request_exit", None)
    if callable(request_exit):
        request_exit()
        return RuntimeExitResponse(ok=True, message="Nahledovka shutdown requested.")

    raise HTTPException(status_code=503, detail="Runtime exit is unavailable in this launch mode.")
