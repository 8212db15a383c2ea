from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass

from .naming import StreamKind
from .worker import WorkerHandle


@dataclass
class CameraStreamSet:
    camera_id: int
    name: str
    main_url: str
    sub_url: str
    main_worker: WorkerHandle | None = None
    sub_worker: WorkerHandle | None = None

    def source_url(self, kind: StreamKind) -> str:
        return self.main_url if StreamKind(kind) is StreamKind.MAIN else self.sub_url

    def worker(self, kind: StreamKind) -> WorkerHandle | None:
        return self.main_worker if StreamKind(kind) is StreamKind.MAIN else self.sub_worker

    def set_worker(self, kind: StreamKind, handle: WorkerHandle | None) -> None:
        if StreamKind(kind) is StreamKind.MAIN:
            self.main_worker = handle
        else:
            self.sub_worker = handle

    def workers(self) -> list[WorkerHandle]:
        return [w for w in (self.main_worker, self.sub_worker) if w is not None]


class StreamRegistry:
    """In-memory map of camera id to its stream set.

    Lives as long as the process; nothing is persisted, so every camera is
    considered stopped after a restart. All access goes through one re-entrant
    lock and callers hold ``transaction()`` for multi-step updates.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._entries: dict[int, CameraStreamSet] = {}

    @contextmanager
    def transaction(self) -> Iterator[StreamRegistry]:
        with self._lock:
            yield self

    def get(self, camera_id: int) -> CameraStreamSet | None:
        with self._lock:
            return self._entries.get(camera_id)

    def get_or_create(self, camera_id: int, name: str, main_url: str, sub_url: str) -> CameraStreamSet:
        with self._lock:
            entry = self._entries.get(camera_id)
            if entry is None:
                entry = CameraStreamSet(camera_id=camera_id, name=name, main_url=main_url, sub_url=sub_url)
                self._entries[camera_id] = entry
            return entry

    def pop(self, camera_id: int) -> CameraStreamSet | None:
        with self._lock:
            return self._entries.pop(camera_id, None)

    def drain(self) -> list[CameraStreamSet]:
        with self._lock:
            entries = [self._entries[camera_id] for camera_id in sorted(self._entries)]
            self._entries.clear()
            return entries

    def ids(self) -> list[int]:
        with self._lock:
            return sorted(self._entries)

    def items(self) -> list[tuple[int, CameraStreamSet]]:
        with self._lock:
            return sorted(self._entries.items())

    def __contains__(self, camera_id: object) -> bool:
        with self._lock:
            return camera_id in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
