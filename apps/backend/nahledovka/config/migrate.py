from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from nahledovka.util.logging import get_logger
from nahledovka.util.paths import bootstrap_config_path, ensure_data_tree, resolve_data_dir

from .defaults import (
    APP_VERSION,
    DEFAULT_HLS_LIST_SIZE,
    DEFAULT_HLS_TIME,
    DEFAULT_STREAM_URL_PREFIX,
    default_data_dir,
)
from .schema import AppSettings

logger = get_logger(__name__)

SETTINGS_FILE = "settings.json"


class SettingsStore:
    """Settings persisted as JSON under ``<data_dir>/config``.

    The chosen data dir is remembered in a bootstrap file outside the tree, so
    a later launch without ``--data-dir`` opens the same camera database.
    """

    def __init__(self, cli_data_dir: str | None = None) -> None:
        self.bootstrap_path = bootstrap_config_path()
        data_dir = self._choose_data_dir(cli_data_dir)
        self._data_tree = ensure_data_tree(data_dir)
        self.settings_path = self._data_tree["config"] / SETTINGS_FILE

        stored = _load_json(self.settings_path)
        migrated = migrate_settings(stored, str(data_dir))
        migrated["data_dir"] = str(data_dir)
        self._settings = AppSettings.model_validate(migrated)
        self.save()
        _dump_json(self.bootstrap_path, {"data_dir": str(data_dir)})

    @property
    def settings(self) -> AppSettings:
        return self._settings

    @property
    def data_tree(self) -> dict[str, Path]:
        return self._data_tree

    def update(self, **changes: Any) -> AppSettings:
        merged = self._settings.model_dump()
        merged.update(changes)
        self._settings = AppSettings.model_validate(merged)
        self.save()
        return self._settings

    def save(self) -> None:
        _dump_json(self.settings_path, self._settings.model_dump(mode="json"))

    def _choose_data_dir(self, cli_data_dir: str | None) -> Path:
        remembered = _load_json(self.bootstrap_path).get("data_dir")
        return resolve_data_dir(cli_data_dir or remembered or str(default_data_dir()))


def _load_json(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError):
        logger.warning("ignoring unreadable settings file: %s", path, exc_info=True)
        return {}
    return payload if isinstance(payload, dict) else {}


def _dump_json(path: Path, payload: dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, ensure_ascii=True, indent=2), encoding="utf-8")


def default_settings(data_dir: str) -> dict[str, Any]:
    return {
        "version": APP_VERSION,
        "data_dir": data_dir,
        "allow_lan": False,
        "ffmpeg_path": None,
        "streams_dir": None,
        "stream_url_prefix": DEFAULT_STREAM_URL_PREFIX,
        "hls_time": DEFAULT_HLS_TIME,
        "hls_list_size": DEFAULT_HLS_LIST_SIZE,
    }


def migrate_settings(raw: dict[str, Any], data_dir: str) -> dict[str, Any]:
    """Fill fields added since ``raw`` was written; keys no longer known are dropped."""
    migrated = default_settings(data_dir)
    migrated.update({key: value for key, value in raw.items() if key in AppSettings.model_fields})
    return migrated
