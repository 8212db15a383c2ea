from __future__ import annotations

import re
from pathlib import Path
from urllib.parse import SplitResult, urlsplit, urlunsplit

RTSP_PASSWORD_RE = re.compile(r"(rtsps?://[^:@/\s]+:)([^@/\s]+)(@)", re.IGNORECASE)
PASSWORD_PAIR_RE = re.compile(r"(password\s*[=:]\s*)([^\s,;]+)", re.IGNORECASE)
TOKEN_RE = re.compile(r"(token\s*[=:]\s*)([^\s,;]+)", re.IGNORECASE)
RTSP_SCHEMES = frozenset({"rtsp", "rtsps"})
REDACTED = "***"
INVALID_CAMERA_ID = "Invalid camera id"
INVALID_RTSP_SOURCE = "Invalid RTSP source"


def _netloc(parts: SplitResult, username: str | None, password: str | None) -> str:
    host = parts.hostname or ""
    port = f":{parts.port}" if parts.port else ""
    if username is None and password is None:
        return f"{host}{port}"
    return f"{username or ''}:{password or ''}@{host}{port}"


def sanitize_rtsp_url(url: str) -> str:
    """Return ``url`` with its password replaced by ``***``; non-RTSP input is returned as is."""
    try:
        parts = urlsplit(url)
        if parts.scheme.lower() not in RTSP_SCHEMES:
            return url
        if parts.username or parts.password:
            netloc = _netloc(parts, parts.username or "user", REDACTED)
        else:
            netloc = _netloc(parts, None, None)
        return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))
    except ValueError:
        return RTSP_PASSWORD_RE.sub(r"\1***\3", url)


def resolve_path_within_base(base_dir: Path, untrusted_path: str | Path) -> Path | None:
    try:
        resolved_base = base_dir.resolve()
        target = (resolved_base / Path(untrusted_path)).resolve()
    except (OSError, RuntimeError, ValueError):
        return None
    if not target.is_relative_to(resolved_base):
        return None
    return target


def validate_camera_id(camera_id: object) -> int:
    if isinstance(camera_id, bool):
        raise ValueError(INVALID_CAMERA_ID)
    if isinstance(camera_id, int):
        value = camera_id
    else:
        raw = str(camera_id).strip()
        if not raw.isdigit():
            raise ValueError(INVALID_CAMERA_ID)
        value = int(raw)
    if value <= 0:
        raise ValueError(INVALID_CAMERA_ID)
    return value


def validate_rtsp_url(source: str, *, allow_redacted_password: bool = False) -> str:
    value = str(source)
    if not value or any(ch.isspace() for ch in value):
        raise ValueError(INVALID_RTSP_SOURCE)

    parts = urlsplit(value)
    try:
        _ = parts.port
    except ValueError as exc:
        raise ValueError(INVALID_RTSP_SOURCE) from exc

    if (
        parts.scheme.lower() not in RTSP_SCHEMES
        or not parts.hostname
        or parts.fragment
        or "\\" in parts.path
        or (parts.password == REDACTED and not allow_redacted_password)
    ):
        raise ValueError(INVALID_RTSP_SOURCE)
    return value


def restore_redacted_password(submitted: str, stored: str) -> str:
    """Swap a ``***`` password back to the stored one when user, host and port match.

    Listings only ever expose sanitized URLs, so an edit form round-trips the
    redacted form; anything else is taken as the operator's new value.
    """
    new_parts = urlsplit(submitted)
    if new_parts.password != REDACTED:
        return submitted
    old_parts = urlsplit(stored)
    same_target = (
        bool(old_parts.password)
        and new_parts.scheme.lower() == old_parts.scheme.lower()
        and new_parts.username == old_parts.username
        and new_parts.hostname == old_parts.hostname
        and new_parts.port == old_parts.port
    )
    if not same_target:
        raise ValueError(INVALID_RTSP_SOURCE)
    netloc = _netloc(new_parts, new_parts.username, old_parts.password)
    return urlunsplit((new_parts.scheme, netloc, new_parts.path, new_parts.query, new_parts.fragment))


def redact_secrets(text: str) -> str:
    text = RTSP_PASSWORD_RE.sub(r"\1***\3", text)
    text = PASSWORD_PAIR_RE.sub(r"\1***", text)
    text = TOKEN_RE.sub(r"\1***", text)
    return text
