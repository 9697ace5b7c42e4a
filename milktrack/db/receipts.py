"""Receipt persistence: the store interface and its SQLite implementation."""

from __future__ import annotations

import logging
import sqlite3
import uuid
from abc import ABC, abstractmethod
from dataclasses import replace
from pathlib import Path

from ..errors import PersistenceRejected
from ..models import (
    MANUAL_IMAGE_SENTINEL,
    VALUE_FIELDS,
    CanonicalReceipt,
    NormalizedImage,
)
from ..validate import RecordValidator
from .bucket import ImageBucket, LocalImageBucket
from .profiles import role_of
from .schema import ensure_schema

logger = logging.getLogger(__name__)


class ReceiptStore(ABC):
    """Where confirmed receipts and their photos are persisted.

    Access policy: every user with a profile may read every receipt;
    admins and members may create; only admins may update or delete.
    """

    @abstractmethod
    def save(
        self,
        owner_id: str,
        record: CanonicalReceipt,
        image: NormalizedImage | None = None,
    ) -> str:
        """Upload the photo (if any), insert the row and return its ID.

        Raises:
            ValidationViolation: If the record has out-of-range fields.
            PersistenceRejected: If the write is not authorized or fails.
        """
        ...

    @abstractmethod
    def list_receipts(self, caller_id: str) -> list[CanonicalReceipt]:
        """All receipts of the tenant, newest first."""
        ...

    @abstractmethod
    def get_receipt(self, caller_id: str, receipt_id: str) -> CanonicalReceipt | None: ...

    @abstractmethod
    def update_receipt(
        self, caller_id: str, receipt_id: str, **changes: str | None
    ) -> CanonicalReceipt: ...

    @abstractmethod
    def delete_receipt(self, caller_id: str, receipt_id: str) -> None: ...


class SQLiteReceiptStore(ReceiptStore):
    """Manages the receipts table and the photo bucket."""

    def __init__(
        self,
        db_path: str | Path = "~/.config/milktrack/milktrack.db",
        bucket: ImageBucket | None = None,
        validator: RecordValidator | None = None,
    ) -> None:
        self._db_path = db_path
        self._bucket = bucket or LocalImageBucket()
        self._validator = validator or RecordValidator()
        self._conn: sqlite3.Connection | None = None

    def _get_conn(self) -> sqlite3.Connection:
        if self._conn is None:
            self._conn = ensure_schema(self._db_path)
        return self._conn

    def close(self) -> None:
        if self._conn is not None:
            self._conn.close()
            self._conn = None

    def _require_reader(self, conn: sqlite3.Connection, caller_id: str) -> None:
        if role_of(conn, caller_id) is None:
            raise PersistenceRejected(f"Unknown user: {caller_id}")

    def _require_admin(self, conn: sqlite3.Connection, caller_id: str) -> None:
        role = role_of(conn, caller_id)
        if role is None or not role.can_modify:
            raise PersistenceRejected("Only admins can change or delete receipts")

    def save(
        self,
        owner_id: str,
        record: CanonicalReceipt,
        image: NormalizedImage | None = None,
    ) -> str:
        conn = self._get_conn()
        self._validator.ensure_valid(record)

        role = role_of(conn, owner_id)
        if role is None or not role.can_create:
            raise PersistenceRejected("Only admins and members can upload receipts")

        uploaded_path: str | None = None
        if image is not None:
            uploaded_path = image.storage_name
            try:
                self._bucket.upload(uploaded_path, image.data, image.content_type)
            except (OSError, ValueError) as e:
                raise PersistenceRejected(f"Image upload failed: {e}") from e
            image_url = self._bucket.public_url(uploaded_path)
        else:
            image_url = record.image_url or MANUAL_IMAGE_SENTINEL

        receipt_id = str(uuid.uuid4())
        row = record.to_row()
        row["image_url"] = image_url
        uploaded_by = conn.execute(
            "SELECT COALESCE(full_name, email) AS name FROM profiles WHERE id = ?",
            (owner_id,),
        ).fetchone()["name"]

        columns = ["id", "user_id", "uploaded_by_name", *VALUE_FIELDS, "image_url"]
        params = [receipt_id, owner_id, uploaded_by, *(row[c] for c in VALUE_FIELDS), image_url]
        try:
            conn.execute(
                f"INSERT INTO receipts ({', '.join(columns)}) "
                f"VALUES ({', '.join('?' for _ in columns)})",
                params,
            )
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            if uploaded_path is not None:
                self._bucket.remove(uploaded_path)
            raise PersistenceRejected(f"Could not save receipt: {e}") from e

        logger.info("Saved receipt %s for %s (%s)", receipt_id, owner_id, record.date)
        return receipt_id

    def list_receipts(self, caller_id: str) -> list[CanonicalReceipt]:
        conn = self._get_conn()
        self._require_reader(conn, caller_id)
        rows = conn.execute(
            "SELECT * FROM receipts ORDER BY created_at DESC, rowid DESC"
        ).fetchall()
        return [CanonicalReceipt.from_row(dict(r)) for r in rows]

    def get_receipt(self, caller_id: str, receipt_id: str) -> CanonicalReceipt | None:
        conn = self._get_conn()
        self._require_reader(conn, caller_id)
        row = conn.execute("SELECT * FROM receipts WHERE id = ?", (receipt_id,)).fetchone()
        return CanonicalReceipt.from_row(dict(row)) if row else None

    def update_receipt(
        self, caller_id: str, receipt_id: str, **changes: str | None
    ) -> CanonicalReceipt:
        """Amend stored values. Admin only; the result must still validate."""
        conn = self._get_conn()
        self._require_admin(conn, caller_id)

        unknown = set(changes) - set(VALUE_FIELDS)
        if unknown:
            raise ValueError(f"Unknown receipt field(s): {', '.join(sorted(unknown))}")

        current = self.get_receipt(caller_id, receipt_id)
        if current is None:
            raise PersistenceRejected(f"No such receipt: {receipt_id}")
        if not changes:
            return current
        updated = replace(current, **changes)
        self._validator.ensure_valid(updated)

        assignments = ", ".join(f"{name} = ?" for name in changes)
        try:
            conn.execute(
                f"UPDATE receipts SET {assignments}, "
                "updated_at = strftime('%Y-%m-%dT%H:%M:%fZ', 'now') WHERE id = ?",
                [*changes.values(), receipt_id],
            )
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceRejected(f"Could not update receipt: {e}") from e
        return updated

    def delete_receipt(self, caller_id: str, receipt_id: str) -> None:
        """Physically delete a receipt and its photo. Admin only."""
        conn = self._get_conn()
        self._require_admin(conn, caller_id)

        row = conn.execute(
            "SELECT image_url FROM receipts WHERE id = ?", (receipt_id,)
        ).fetchone()
        if row is None:
            raise PersistenceRejected(f"No such receipt: {receipt_id}")

        conn.execute("DELETE FROM receipts WHERE id = ?", (receipt_id,))
        conn.commit()

        path = self._bucket.path_for_url(row["image_url"])
        if path is not None:
            self._bucket.remove(path)
        logger.info("Deleted receipt %s", receipt_id)
