from __future__ import annotations


class StreamConfigError(ValueError):
    """Rejected supervisor input; raised before the registry is touched."""


class StreamSpawnError(RuntimeError):
    """The transcoder process could not be launched."""

    def __init__(self, message: str, *, camera_id: int | None = None, kind: str | None = None) -> None:
        super().__init__(message)
        self.camera_id = camera_id
        self.kind = kind
