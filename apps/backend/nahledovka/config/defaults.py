from __future__ import annotations

from pathlib import Path

from nahledovka.util.paths import platform_default_data_dir

APP_VERSION = 1
APP_RELEASE = "0.1.0"
DEFAULT_BIND = "127.0.0.1"
DEFAULT_PORT = 8765
DEFAULT_LOG_LEVEL = "info"
DEFAULT_STREAM_URL_PREFIX = "/api/streams"
DEFAULT_HLS_TIME = 1
DEFAULT_HLS_LIST_SIZE = 2


def default_data_dir() -> Path:
    return platform_default_data_dir()
