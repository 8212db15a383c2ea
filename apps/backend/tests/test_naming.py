from __future__ import annotations

from pathlib import Path

import pytest

from nahledovka.streaming.errors import StreamConfigError
from nahledovka.streaming.naming import (
    StreamKind,
    is_stream_output,
    select_kinds,
    stream_filename,
    stream_path,
    stream_url,
)


def test_stream_names_follow_camera_and_kind() -> None:
    assert stream_filename(7, StreamKind.MAIN) == "cam7_main.m3u8"
    assert stream_filename(7, "sub") == "cam7_sub.m3u8"
    assert stream_url(7, StreamKind.MAIN) == "/api/streams/cam7_main.m3u8"
    assert stream_url(12, StreamKind.SUB, "/live/") == "/live/cam12_sub.m3u8"


def test_stream_path_is_deterministic(tmp_path) -> None:
    first = stream_path(tmp_path, 3, StreamKind.SUB)
    second = stream_path(tmp_path, 3, StreamKind.SUB)
    assert first == second == tmp_path / "cam3_sub.m3u8"
    assert not first.exists()


def test_stream_url_does_not_touch_filesystem(monkeypatch) -> None:
    def _boom(*_args, **_kwargs):
        raise AssertionError("filesystem touched")

    monkeypatch.setattr(Path, "exists", _boom)
    monkeypatch.setattr(Path, "mkdir", _boom)
    assert stream_url(99, StreamKind.MAIN) == "/api/streams/cam99_main.m3u8"


@pytest.mark.parametrize(
    ("which", "expected"),
    [
        ("both", (StreamKind.MAIN, StreamKind.SUB)),
        ("main", (StreamKind.MAIN,)),
        ("sub", (StreamKind.SUB,)),
        (" Main ", (StreamKind.MAIN,)),
    ],
)
def test_select_kinds(which: str, expected: tuple[StreamKind, ...]) -> None:
    assert select_kinds(which) == expected


@pytest.mark.parametrize("which", ["", "all", "mainsub", "hd"])
def test_select_kinds_rejects_unknown_selector(which: str) -> None:
    with pytest.raises(StreamConfigError):
        select_kinds(which)


@pytest.mark.parametrize(
    "name",
    ["cam1_main.m3u8", "cam1_main0.ts", "cam42_sub.m3u8", "cam42_sub117.ts"],
)
def test_is_stream_output_matches_transcoder_files(name: str) -> None:
    assert is_stream_output(name) is True


@pytest.mark.parametrize(
    "name",
    ["camera.m3u8", "cam_main.m3u8", "camx_main.ts", "cam1_other.m3u8", "cam1_main.mp4", "notes.txt"],
)
def test_is_stream_output_ignores_other_files(name: str) -> None:
    assert is_stream_output(name) is False
