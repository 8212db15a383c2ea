from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from .defaults import (
    APP_VERSION,
    DEFAULT_BIND,
    DEFAULT_HLS_LIST_SIZE,
    DEFAULT_HLS_TIME,
    DEFAULT_PORT,
    DEFAULT_STREAM_URL_PREFIX,
)


class AppSettings(BaseModel):
    version: int = APP_VERSION
    data_dir: str
    bind: str = DEFAULT_BIND
    port: int = DEFAULT_PORT
    allow_lan: bool = False
    ffmpeg_path: str | None = None
    streams_dir: str | None = None
    stream_url_prefix: str = DEFAULT_STREAM_URL_PREFIX
    hls_time: int = Field(default=DEFAULT_HLS_TIME, ge=1, le=10)
    hls_list_size: int = Field(default=DEFAULT_HLS_LIST_SIZE, ge=1, le=20)

    @field_validator("data_dir")
    @classmethod
    def data_dir_not_empty(cls, value: str) -> str:
        if not value.strip():
            msg = "data_dir cannot be empty"
            raise ValueError(msg)
        return value

    @field_validator("stream_url_prefix")
    @classmethod
    def normalize_prefix(cls, value: str) -> str:
        cleaned = "/" + value.strip().strip("/")
        if cleaned == "/":
            msg = "stream_url_prefix cannot be empty"
            raise ValueError(msg)
        return cleaned

    @field_validator("ffmpeg_path", "streams_dir")
    @classmethod
    def blank_to_none(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        return value.strip()
