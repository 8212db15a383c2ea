from __future__ import annotations

import time
from collections.abc import Callable
from pathlib import Path
from typing import Any

from nahledovka.config.defaults import DEFAULT_STREAM_URL_PREFIX
from nahledovka.util.logging import get_logger
from nahledovka.util.security import validate_camera_id

from .errors import StreamConfigError, StreamSpawnError
from .naming import StreamKind, is_stream_output, select_kinds, stream_path, stream_url
from .registry import CameraStreamSet, StreamRegistry
from .worker import TranscoderOptions, WorkerHandle

logger = get_logger(__name__)

Spawner = Callable[[int, StreamKind, str, Path, TranscoderOptions], WorkerHandle]


class StreamSupervisor:
    """Keeps the running transcoders in line with the latest requested sources.

    ``ensure`` always replaces the selected workers: the old process is asked
    to terminate and the new one is spawned right away, without waiting for
    the old exit. Every mutating call runs under the registry lock, so two
    requests for the same camera cannot interleave their replacements.
    """

    def __init__(
        self,
        streams_dir: Path,
        options: TranscoderOptions | None = None,
        url_prefix: str = DEFAULT_STREAM_URL_PREFIX,
        registry: StreamRegistry | None = None,
        spawner: Spawner | None = None,
        purge_stale: bool = True,
    ) -> None:
        self.streams_dir = streams_dir
        self.options = options or TranscoderOptions()
        self.url_prefix = url_prefix
        self.registry = registry or StreamRegistry()
        self._spawner: Spawner = spawner or WorkerHandle.spawn
        self._closed = False
        self._stopping: list[WorkerHandle] = []
        if purge_stale:
            self.purge_stale_outputs()

    def ensure(
        self,
        camera_id: int,
        name: str,
        main_url: str,
        sub_url: str,
        which: str = "both",
    ) -> None:
        camera_id, name, main_url, sub_url = self._validate(camera_id, name, main_url, sub_url)
        kinds = select_kinds(which)

        with self.registry.transaction() as registry:
            if self._closed:
                raise StreamSpawnError("Stream supervisor is shutting down", camera_id=camera_id)
            entry = registry.get_or_create(camera_id, name, main_url, sub_url)
            entry.name = name
            entry.main_url = main_url
            entry.sub_url = sub_url
            for kind in kinds:
                self._replace_worker(entry, kind)

        logger.info("ensured streams for %s (id: %s, which: %s)", name, camera_id, which)

    def stop(self, camera_id: int) -> None:
        with self.registry.transaction() as registry:
            entry = registry.pop(camera_id)
            if entry is None:
                return
            self._terminate_all(entry)
        logger.info("stopped streams for %s (id: %s)", entry.name, camera_id)

    def url_for(self, camera_id: int, kind: StreamKind | str) -> str:
        return stream_url(camera_id, kind, self.url_prefix)

    def path_for(self, camera_id: int, kind: StreamKind | str) -> Path:
        return stream_path(self.streams_dir, camera_id, kind)

    def is_running(self, camera_id: int, kind: StreamKind | str) -> bool:
        entry = self.registry.get(camera_id)
        if entry is None:
            return False
        handle = entry.worker(StreamKind(kind))
        return bool(handle is not None and not handle.kill_requested and handle.is_alive())

    @property
    def closed(self) -> bool:
        return self._closed

    def stop_all(self, wait_timeout: float = 0.0) -> None:
        """Terminate every transcoder and refuse further ``ensure`` calls.

        With ``wait_timeout`` of zero this only signals; ``wait_for_exit``
        can collect the processes later.
        """
        with self.registry.transaction() as registry:
            self._closed = True
            entries = registry.drain()
            handles = [handle for entry in entries for handle in entry.workers()]
            for entry in entries:
                self._terminate_all(entry)
            self._stopping.extend(handles)

        if handles:
            logger.info("stopped %d transcoder(s) across %d camera(s)", len(handles), len(entries))
        if wait_timeout > 0:
            self.wait_for_exit(wait_timeout)

    def wait_for_exit(self, timeout: float) -> list[WorkerHandle]:
        """Wait for transcoders stopped by ``stop_all``; returns the survivors."""
        with self.registry.transaction():
            handles = list(self._stopping)

        deadline = time.perf_counter() + max(0.0, timeout)
        survivors: list[WorkerHandle] = []
        for handle in handles:
            handle.wait(timeout=max(0.0, deadline - time.perf_counter()))
            if handle.is_alive():
                logger.warning("transcoder %s did not exit before timeout (pid %s)", handle.label, handle.pid)
                survivors.append(handle)

        with self.registry.transaction():
            self._stopping = [h for h in self._stopping if h not in handles or h in survivors]
        return survivors

    def statuses(self) -> dict[str, dict[str, Any]]:
        out: dict[str, dict[str, Any]] = {}
        for camera_id, entry in self.registry.items():
            main = entry.main_worker
            sub = entry.sub_worker
            out[str(camera_id)] = {
                "camera_id": camera_id,
                "name": entry.name,
                "main": main.snapshot() if main else None,
                "sub": sub.snapshot() if sub else None,
                "main_stream_url": self.url_for(camera_id, StreamKind.MAIN),
                "sub_stream_url": self.url_for(camera_id, StreamKind.SUB),
            }
        return out

    def running_count(self) -> int:
        count = 0
        for _, entry in self.registry.items():
            count += sum(1 for handle in entry.workers() if handle.is_alive() and not handle.kill_requested)
        return count

    def purge_stale_outputs(self) -> int:
        """Remove playlists and segments left behind by a previous run."""
        if not self.streams_dir.is_dir():
            return 0
        removed = 0
        for item in self.streams_dir.iterdir():
            if not item.is_file() or not is_stream_output(item.name):
                continue
            try:
                item.unlink()
                removed += 1
            except OSError:
                logger.warning("could not remove stale stream file: %s", item, exc_info=True)
        if removed:
            logger.info("removed %d stale stream file(s) from %s", removed, self.streams_dir)
        return removed

    def _replace_worker(self, entry: CameraStreamSet, kind: StreamKind) -> None:
        previous = entry.worker(kind)
        if previous is not None:
            self._terminate(previous)
            entry.set_worker(kind, None)

        handle = self._spawner(
            entry.camera_id,
            kind,
            entry.source_url(kind),
            self.path_for(entry.camera_id, kind),
            self.options,
        )
        entry.set_worker(kind, handle)

    def _terminate_all(self, entry: CameraStreamSet) -> None:
        for kind in StreamKind:
            handle = entry.worker(kind)
            if handle is not None:
                self._terminate(handle)
            entry.set_worker(kind, None)

    @staticmethod
    def _terminate(handle: WorkerHandle) -> None:
        try:
            handle.request_termination()
        except Exception:
            logger.warning("termination request failed for transcoder %s", handle.label, exc_info=True)

    @staticmethod
    def _validate(camera_id: object, name: object, main_url: object, sub_url: object) -> tuple[int, str, str, str]:
        try:
            valid_id = validate_camera_id(camera_id)
        except ValueError as exc:
            raise StreamConfigError(str(exc)) from exc

        cleaned: list[str] = []
        for field_name, value in (("name", name), ("main_url", main_url), ("sub_url", sub_url)):
            text = value.strip() if isinstance(value, str) else ""
            if not text:
                raise StreamConfigError(f"Missing {field_name}")
            cleaned.append(text)
        return valid_id, cleaned[0], cleaned[1], cleaned[2]
