"""User profiles and their roles."""

from __future__ import annotations

import sqlite3
from pathlib import Path

from ..errors import PersistenceRejected
from ..models import Profile, Role
from .schema import ensure_schema


def role_of(conn: sqlite3.Connection, user_id: str) -> Role | None:
    """Role of a user, or None if the user has no profile."""
    row = conn.execute("SELECT role FROM profiles WHERE id = ?", (user_id,)).fetchone()
    return Role(row["role"]) if row else None


def _to_profile(row: sqlite3.Row) -> Profile:
    return Profile(
        id=row["id"],
        email=row["email"],
        role=Role(row["role"]),
        full_name=row["full_name"],
        phone=row["phone"],
    )


class ProfileDB:
    """Manages the profiles table."""

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

    def ensure_profile(
        self, user_id: str, email: str, full_name: str | None = None
    ) -> Profile:
        """Return the user's profile, creating it as a member on first sign-up."""
        conn = self._get_conn()
        try:
            conn.execute(
                """INSERT INTO profiles (id, email, full_name, role)
                   VALUES (?, ?, ?, 'member')
                   ON CONFLICT(id) DO NOTHING""",
                (user_id, email, full_name),
            )
            conn.commit()
        except sqlite3.IntegrityError as e:
            conn.rollback()
            raise PersistenceRejected(f"Email {email} is already registered") from e
        profile = self.get_profile(user_id)
        assert profile is not None
        return profile

    def get_profile(self, user_id: str) -> Profile | None:
        conn = self._get_conn()
        row = conn.execute("SELECT * FROM profiles WHERE id = ?", (user_id,)).fetchone()
        return _to_profile(row) if row else None

    def list_profiles(self, caller_id: str) -> list[Profile]:
        """Every profile in the tenant; any signed-in user may read them."""
        conn = self._get_conn()
        if role_of(conn, caller_id) is None:
            raise PersistenceRejected(f"Unknown user: {caller_id}")
        rows = conn.execute("SELECT * FROM profiles ORDER BY email").fetchall()
        return [_to_profile(r) for r in rows]

    def update_profile(
        self,
        caller_id: str,
        user_id: str,
        *,
        full_name: str | None = None,
        phone: str | None = None,
    ) -> Profile:
        """Update name/phone. Users may edit their own profile, admins any."""
        conn = self._get_conn()
        caller_role = role_of(conn, caller_id)
        if caller_role is None or (caller_id != user_id and not caller_role.can_modify):
            raise PersistenceRejected("Not allowed to update this profile")

        cur = conn.execute(
            """UPDATE profiles
               SET full_name = COALESCE(?, full_name),
                   phone = COALESCE(?, phone),
                   updated_at = strftime('%Y-%m-%dT%H:%M:%fZ', 'now')
               WHERE id = ?""",
            (full_name, phone, user_id),
        )
        conn.commit()
        if cur.rowcount == 0:
            raise PersistenceRejected(f"Unknown user: {user_id}")
        return self.get_profile(user_id)  # type: ignore[return-value]

    def set_role(self, caller_id: str, user_id: str, role: Role | str) -> Profile:
        """Change a user's role. Admin only."""
        conn = self._get_conn()
        caller_role = role_of(conn, caller_id)
        if caller_role is None or not caller_role.can_modify:
            raise PersistenceRejected("Only admins can change roles")

        try:
            new_role = Role(role)
        except ValueError:
            raise PersistenceRejected(f"Invalid role: {role!r}") from None

        cur = conn.execute(
            """UPDATE profiles
               SET role = ?, updated_at = strftime('%Y-%m-%dT%H:%M:%fZ', 'now')
               WHERE id = ?""",
            (new_role.value, user_id),
        )
        conn.commit()
        if cur.rowcount == 0:
            raise PersistenceRejected(f"Unknown user: {user_id}")
        return self.get_profile(user_id)  # type: ignore[return-value]

    def bootstrap_admin(self, user_id: str) -> Profile:
        """Promote a user to admin when the tenant has no admin yet."""
        conn = self._get_conn()
        row = conn.execute(
            "SELECT COUNT(*) AS n FROM profiles WHERE role = 'admin'"
        ).fetchone()
        if row["n"] > 0:
            raise PersistenceRejected("The tenant already has an admin")
        cur = conn.execute(
            "UPDATE profiles SET role = 'admin' WHERE id = ?", (user_id,)
        )
        conn.commit()
        if cur.rowcount == 0:
            raise PersistenceRejected(f"Unknown user: {user_id}")
        return self.get_profile(user_id)  # type: ignore[return-value]
