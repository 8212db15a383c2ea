from __future__ import annotations

import os
import shutil
import subprocess
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from nahledovka.config.defaults import DEFAULT_HLS_LIST_SIZE, DEFAULT_HLS_TIME
from nahledovka.util.logging import get_logger
from nahledovka.util.security import sanitize_rtsp_url
from nahledovka.util.time import monotonic

from .errors import StreamSpawnError
from .naming import StreamKind, stream_basename

logger = get_logger(__name__)

_ERROR_MARKERS = ("error", "failed", "invalid", "refused", "timed out")


@dataclass(frozen=True)
class TranscoderOptions:
    ffmpeg_path: str | None = None
    hls_time: int = DEFAULT_HLS_TIME
    hls_list_size: int = DEFAULT_HLS_LIST_SIZE
    rtsp_transport: str = "tcp"


class WorkerState(str, Enum):
    RUNNING = "running"
    EXITED = "exited"
    KILLED = "killed"


def resolve_ffmpeg_exe(configured: str | None = None) -> str:
    candidates = [
        configured,
        os.getenv("FFMPEG_PATH"),
        os.getenv("FFMPEG_EXE"),
        os.getenv("FFMPEG_BINARY"),
    ]
    for raw in candidates:
        if not raw:
            continue
        candidate = str(raw).strip().strip('"')
        if os.path.isdir(candidate):
            name = "ffmpeg.exe" if os.name == "nt" else "ffmpeg"
            candidate = os.path.join(candidate, name)
        if os.path.isfile(candidate):
            return candidate

    exe = shutil.which("ffmpeg") or shutil.which("ffmpeg.exe")
    if exe:
        return exe

    raise StreamSpawnError("FFmpeg not found. Install FFmpeg and add it to PATH, or set ffmpeg_path/FFMPEG_PATH.")


def build_ffmpeg_command(
    exe: str,
    source_url: str,
    output_target: Path,
    options: TranscoderOptions,
) -> list[str]:
    hls_time = max(1, int(options.hls_time))
    return [
        exe,
        "-hide_banner",
        "-nostdin",
        "-loglevel", "warning",
        "-rtsp_transport", options.rtsp_transport,
        # Minimal probing for fast startup.
        "-analyzeduration", "0",
        "-probesize", "256k",
        "-i", source_url,
        "-an",
        "-c:v", "libx264",
        "-preset", "veryfast",
        "-tune", "zerolatency",
        "-sc_threshold", "0",
        "-bf", "0",
        "-force_key_frames", f"expr:gte(t,n_forced*{hls_time})",
        "-f", "hls",
        "-hls_time", str(hls_time),
        "-hls_list_size", str(max(1, int(options.hls_list_size))),
        "-hls_flags", "delete_segments+append_list+omit_endlist+independent_segments",
        "-flush_packets", "1",
        str(output_target),
    ]


class WorkerHandle:
    """One transcoder subprocess pulling ``source_url`` into ``output_target``.

    A handle only exists once the OS has created the process (``spawn`` is the
    starting phase and raises ``StreamSpawnError`` instead of returning a dead
    handle). Afterwards it is running until the process exits on its own or
    ``request_termination`` is called. Handles are never restarted; the
    supervisor replaces them.
    """

    def __init__(
        self,
        camera_id: int,
        kind: StreamKind,
        source_url: str,
        output_target: Path,
        process: subprocess.Popen,
    ) -> None:
        self.camera_id = camera_id
        self.kind = StreamKind(kind)
        self.source_url = source_url
        self.output_target = output_target
        self.process = process
        self.label = stream_basename(camera_id, self.kind)
        self._started_at = monotonic()
        self._kill_requested = False
        self._observer: threading.Thread | None = None

    @classmethod
    def spawn(
        cls,
        camera_id: int,
        kind: StreamKind,
        source_url: str,
        output_target: Path,
        options: TranscoderOptions,
    ) -> WorkerHandle:
        label = stream_basename(camera_id, kind)
        try:
            output_target.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StreamSpawnError(
                f"Cannot prepare stream directory for {label}: {exc}",
                camera_id=camera_id,
                kind=StreamKind(kind).value,
            ) from exc

        try:
            exe = resolve_ffmpeg_exe(options.ffmpeg_path)
        except StreamSpawnError as exc:
            exc.camera_id = camera_id
            exc.kind = StreamKind(kind).value
            raise

        cmd = build_ffmpeg_command(exe, source_url, output_target, options)
        logger.info("starting transcoder %s from %s", label, sanitize_rtsp_url(source_url))
        try:
            process = subprocess.Popen(
                cmd,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
            )
        except (OSError, ValueError) as exc:
            logger.error("transcoder %s failed to launch: %s", label, exc)
            raise StreamSpawnError(
                f"FFmpeg start failed for {label}: {exc}",
                camera_id=camera_id,
                kind=StreamKind(kind).value,
            ) from exc

        try:
            handle = cls(camera_id, kind, source_url, output_target, process)
            handle._start_observer()
        except Exception as exc:
            logger.error("transcoder %s launched but could not be tracked: %s", label, exc)
            try:
                process.terminate()
            except OSError:
                logger.warning("failed to signal untracked transcoder %s (pid %s)", label, process.pid, exc_info=True)
            raise StreamSpawnError(
                f"FFmpeg start failed for {label}: {exc}",
                camera_id=camera_id,
                kind=StreamKind(kind).value,
            ) from exc
        return handle

    @property
    def pid(self) -> int | None:
        return getattr(self.process, "pid", None)

    @property
    def exit_code(self) -> int | None:
        return self.process.poll()

    @property
    def kill_requested(self) -> bool:
        return self._kill_requested

    @property
    def state(self) -> WorkerState:
        if self._kill_requested:
            return WorkerState.KILLED
        if self.process.poll() is not None:
            return WorkerState.EXITED
        return WorkerState.RUNNING

    def is_alive(self) -> bool:
        return self.process.poll() is None

    def request_termination(self) -> None:
        """Signal the process to stop and return without waiting for it."""
        if self._kill_requested:
            return
        self._kill_requested = True
        if self.process.poll() is not None:
            logger.debug("transcoder %s already exited, nothing to terminate", self.label)
            return
        try:
            self.process.terminate()
        except ProcessLookupError:
            logger.debug("transcoder %s vanished before termination", self.label)
        except OSError:
            logger.warning("failed to signal transcoder %s (pid %s)", self.label, self.pid, exc_info=True)
        else:
            logger.info("termination requested for transcoder %s (pid %s)", self.label, self.pid)

    def wait(self, timeout: float | None = None) -> int | None:
        try:
            return self.process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return None

    def snapshot(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "pid": self.pid,
            "state": self.state.value,
            "exit_code": self.exit_code,
            "source": sanitize_rtsp_url(self.source_url),
            "output": self.output_target.name,
            "uptime_seconds": round(monotonic() - self._started_at, 1),
        }

    def _start_observer(self) -> None:
        self._observer = threading.Thread(
            target=self._observe,
            name=f"transcoder-{self.label}",
            daemon=True,
        )
        self._observer.start()

    def _observe(self) -> None:
        stream = self.process.stderr
        if stream is not None:
            try:
                for raw in iter(stream.readline, b""):
                    line = raw.decode("utf-8", errors="replace").strip()
                    if not line:
                        continue
                    if any(marker in line.lower() for marker in _ERROR_MARKERS):
                        logger.error("transcoder %s: %s", self.label, line[-300:])
                    else:
                        logger.debug("transcoder %s: %s", self.label, line[-300:])
            except (OSError, ValueError):
                logger.debug("transcoder %s stderr closed", self.label, exc_info=True)
            finally:
                stream.close()

        code = self.process.wait()
        if self._kill_requested:
            logger.info("transcoder %s exited after termination request (code %s)", self.label, code)
        elif code == 0:
            logger.info("transcoder %s exited (code 0)", self.label)
        else:
            logger.warning("transcoder %s exited unexpectedly with code %s", self.label, code)
