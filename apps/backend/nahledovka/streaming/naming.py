from __future__ import annotations

from enum import Enum
from pathlib import Path

from nahledovka.config.defaults import DEFAULT_STREAM_URL_PREFIX

from .errors import StreamConfigError

PLAYLIST_EXT = "m3u8"
SEGMENT_EXT = "ts"


class StreamKind(str, Enum):
    MAIN = "main"
    SUB = "sub"


WHICH_VALUES = ("main", "sub", "both")


def stream_basename(camera_id: int, kind: StreamKind | str) -> str:
    return f"cam{int(camera_id)}_{StreamKind(kind).value}"


def stream_filename(camera_id: int, kind: StreamKind | str) -> str:
    return f"{stream_basename(camera_id, kind)}.{PLAYLIST_EXT}"


def stream_path(streams_dir: Path, camera_id: int, kind: StreamKind | str) -> Path:
    return streams_dir / stream_filename(camera_id, kind)


def stream_url(camera_id: int, kind: StreamKind | str, prefix: str = DEFAULT_STREAM_URL_PREFIX) -> str:
    return f"{prefix.rstrip('/')}/{stream_filename(camera_id, kind)}"


def select_kinds(which: str) -> tuple[StreamKind, ...]:
    value = str(which).strip().lower()
    if value == "both":
        return (StreamKind.MAIN, StreamKind.SUB)
    if value == "main":
        return (StreamKind.MAIN,)
    if value == "sub":
        return (StreamKind.SUB,)
    raise StreamConfigError(f"Invalid stream selector: {which!r}")


def is_stream_output(name: str) -> bool:
    """True for playlist and segment file names produced under this scheme."""
    if not name.startswith("cam"):
        return False
    stem, _, ext = name.rpartition(".")
    if ext not in {PLAYLIST_EXT, SEGMENT_EXT}:
        return False
    camera_part, sep, kind_part = stem[3:].partition("_")
    if not sep or not camera_part.isdigit():
        return False
    return any(kind_part.startswith(kind.value) for kind in StreamKind)
