"""Artificial-insemination records, visible to their owner only."""

from __future__ import annotations

import sqlite3
import uuid
from datetime import date
from pathlib import Path

from ..errors import PersistenceRejected
from ..models import AIBreedingRecord
from .schema import ensure_schema


def _check_fields(animal_tag: str, ai_date: str) -> tuple[str, str]:
    tag = animal_tag.strip()
    if not tag:
        raise ValueError("Animal tag is required")
    try:
        parsed = date.fromisoformat(ai_date.strip())
    except ValueError:
        raise ValueError(f"AI date must be YYYY-MM-DD: {ai_date!r}") from None
    return tag, parsed.isoformat()


def _to_record(row: sqlite3.Row) -> AIBreedingRecord:
    return AIBreedingRecord(
        id=row["id"],
        user_id=row["user_id"],
        animal_tag=row["animal_tag"],
        ai_date=row["ai_date"],
        created_at=row["created_at"],
    )


class AIRecordDB:
    """Manages the ai_records table.

    Unlike receipts, every operation is restricted to the owning user.
    """

    def __init__(self, db_path: str | Path = "~/.config/milktrack/milktrack.db") -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = ensure_schema(self._db_path)
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def save_ai_record(self, owner_id: str, animal_tag: str, ai_date: str) -> str:
        """Insert a record and return its ID."""
        tag, day = _check_fields(animal_tag, ai_date)
        conn = self._get_conn()
        record_id = str(uuid.uuid4())
        try:
            conn.execute(
                """INSERT INTO ai_records (id, user_id, animal_tag, ai_date)
                   VALUES (?, ?, ?, ?)""",
                (record_id, owner_id, tag, day),
            )
            conn.commit()
        except sqlite3.IntegrityError as e:
            conn.rollback()
            raise PersistenceRejected(f"Could not save AI record: {e}") from e
        return record_id

    def list_ai_records(self, owner_id: str) -> list[AIBreedingRecord]:
        """The owner's records, most recent insemination first."""
        conn = self._get_conn()
        rows = conn.execute(
            """SELECT * FROM ai_records WHERE user_id = ?
               ORDER BY ai_date DESC, created_at DESC""",
            (owner_id,),
        ).fetchall()
        return [_to_record(r) for r in rows]

    def update_ai_record(
        self, owner_id: str, record_id: str, animal_tag: str, ai_date: str
    ) -> AIBreedingRecord:
        tag, day = _check_fields(animal_tag, ai_date)
        conn = self._get_conn()
        cur = conn.execute(
            """UPDATE ai_records SET animal_tag = ?, ai_date = ?
               WHERE id = ? AND user_id = ?""",
            (tag, day, record_id, owner_id),
        )
        conn.commit()
        if cur.rowcount == 0:
            raise PersistenceRejected(f"No AI record {record_id} owned by {owner_id}")
        row = conn.execute("SELECT * FROM ai_records WHERE id = ?", (record_id,)).fetchone()
        return _to_record(row)

    def delete_ai_record(self, owner_id: str, record_id: str) -> None:
        conn = self._get_conn()
        cur = conn.execute(
            "DELETE FROM ai_records WHERE id = ? AND user_id = ?",
            (record_id, owner_id),
        )
        conn.commit()
        if cur.rowcount == 0:
            raise PersistenceRejected(f"No AI record {record_id} owned by {owner_id}")
