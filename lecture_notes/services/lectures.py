import json
import logging
from typing import Any

from lecture_notes.database import get_async_conn
from lecture_notes.errors import LectureNotFound
from lecture_notes.models import (
    UNTITLED_LECTURE,
    FactCheckItem,
    Keypoint,
    Lecture,
    TranscriptResult,
)

logger = logging.getLogger(__name__)

# Writable columns. Values that live in *_json columns are encoded in _encode().
_COLUMNS = {
    "title",
    "status",
    "audio_url",
    "job_id",
    "transcript",
    "user_keypoints",
    "ai_notes",
    "final_notes",
    "notes_edited",
    "fact_checks",
    "error_message",
}

_JSON_COLUMNS = {
    "transcript": "transcript_json",
    "user_keypoints": "user_keypoints_json",
    "fact_checks": "fact_checks_json",
}

# The idempotency guard, expressed as a SQL predicate.
_NOT_COMPLETED_WITH_NOTES = (
    "NOT (status = 'completed' AND final_notes IS NOT NULL AND final_notes != '')"
)


def _encode(field: str, value: Any) -> tuple[str, Any]:
    if field not in _JSON_COLUMNS:
        if field == "notes_edited":
            return field, int(bool(value))
        return field, value
    column = _JSON_COLUMNS[field]
    if value is None:
        return column, None
    if isinstance(value, TranscriptResult):
        return column, json.dumps(value.to_dict())
    return column, json.dumps(
        [v.to_dict() if isinstance(v, FactCheckItem) else _keypoint_dict(v) for v in value]
    )


def _keypoint_dict(value: Keypoint | dict) -> dict:
    if isinstance(value, Keypoint):
        return {"timestamp": value.timestamp, "note": value.note}
    return dict(value)


class LectureStore:
    """Durable get/update of lecture records.

    The pipeline only needs ``get`` and ``update``; every write is a single
    UPDATE statement so there is no read-modify-write inside the store.
    """

    async def create(
        self,
        *,
        title: str | None = None,
        audio_url: str | None = None,
        user_keypoints: list[Keypoint] | None = None,
    ) -> Lecture:
        conn = await get_async_conn()
        try:
            cursor = await conn.execute(
                "INSERT INTO lectures (title, status, audio_url, user_keypoints_json) "
                "VALUES (?, 'recording', ?, ?)",
                (
                    title or UNTITLED_LECTURE,
                    audio_url,
                    json.dumps([_keypoint_dict(k) for k in user_keypoints or []]),
                ),
            )
            await conn.commit()
            lecture_id = cursor.lastrowid
        finally:
            await conn.close()
        return await self.get(lecture_id)

    async def find(self, lecture_id: int) -> Lecture | None:
        conn = await get_async_conn()
        try:
            row = await conn.execute("SELECT * FROM lectures WHERE id = ?", (lecture_id,))
            record = await row.fetchone()
        finally:
            await conn.close()
        return Lecture.from_row(record) if record else None

    async def get(self, lecture_id: int) -> Lecture:
        lecture = await self.find(lecture_id)
        if lecture is None:
            raise LectureNotFound(lecture_id)
        return lecture

    async def find_by_job_id(self, job_id: str) -> Lecture | None:
        conn = await get_async_conn()
        try:
            row = await conn.execute(
                "SELECT * FROM lectures WHERE job_id = ? ORDER BY id DESC LIMIT 1",
                (job_id,),
            )
            record = await row.fetchone()
        finally:
            await conn.close()
        return Lecture.from_row(record) if record else None

    async def update(
        self,
        lecture_id: int,
        *,
        unless_completed_with_notes: bool = False,
        **fields: Any,
    ) -> bool:
        """Write *fields* onto the lecture. Returns False when no row changed.

        With ``unless_completed_with_notes`` the write only applies while the
        lecture is not already completed with non-empty ``final_notes``.
        """
        unknown = set(fields) - _COLUMNS
        if unknown:
            raise ValueError(f"Unknown lecture fields: {sorted(unknown)}")
        if not fields:
            return False

        assignments = []
        params: list[Any] = []
        for name, value in fields.items():
            column, encoded = _encode(name, value)
            assignments.append(f"{column} = ?")
            params.append(encoded)
        assignments.append("updated_at = CURRENT_TIMESTAMP")

        sql = f"UPDATE lectures SET {', '.join(assignments)} WHERE id = ?"
        params.append(lecture_id)
        if unless_completed_with_notes:
            sql += f" AND {_NOT_COMPLETED_WITH_NOTES}"

        conn = await get_async_conn()
        try:
            cursor = await conn.execute(sql, params)
            await conn.commit()
            changed = cursor.rowcount > 0
        finally:
            await conn.close()

        if not changed:
            logger.debug("Update of lecture %s changed no rows", lecture_id)
        return changed
