from __future__ import annotations

from typing import Any

from nahledovka.util.time import now_utc_iso

from .db import Database

_CAMERA_COLUMNS = "id, name, main_rtsp_url, sub_rtsp_url, created_at, updated_at"


class CameraRepo:
    def __init__(self, db: Database) -> None:
        self.db = db

    def list_cameras(self) -> list[dict[str, Any]]:
        rows = self.db.query(f"SELECT {_CAMERA_COLUMNS} FROM cameras ORDER BY id DESC")
        return [dict(row) for row in rows]

    def get_camera(self, camera_id: int) -> dict[str, Any] | None:
        row = self.db.query_one(f"SELECT {_CAMERA_COLUMNS} FROM cameras WHERE id = ?", (camera_id,))
        if not row:
            return None
        return dict(row)

    def create_camera(self, name: str, main_rtsp_url: str, sub_rtsp_url: str) -> dict[str, Any]:
        now_iso = now_utc_iso()
        cur = self.db.execute(
            """
            INSERT INTO cameras (name, main_rtsp_url, sub_rtsp_url, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?)
            """,
            (name, main_rtsp_url, sub_rtsp_url, now_iso, now_iso),
        )
        camera = self.get_camera(int(cur.lastrowid))
        if camera is None:
            raise RuntimeError("Failed to read inserted camera")
        return camera

    def update_camera(
        self,
        camera_id: int,
        name: str,
        main_rtsp_url: str,
        sub_rtsp_url: str,
    ) -> dict[str, Any] | None:
        cur = self.db.execute(
            """
            UPDATE cameras
            SET name = ?, main_rtsp_url = ?, sub_rtsp_url = ?, updated_at = ?
            WHERE id = ?
            """,
            (name, main_rtsp_url, sub_rtsp_url, now_utc_iso(), camera_id),
        )
        if cur.rowcount == 0:
            return None
        return self.get_camera(camera_id)

    def delete_camera(self, camera_id: int) -> bool:
        cur = self.db.execute("DELETE FROM cameras WHERE id = ?", (camera_id,))
        return cur.rowcount > 0

    def count_cameras(self) -> int:
        row = self.db.query_one("SELECT COUNT(*) AS count FROM cameras")
        return int(row["count"]) if row else 0
