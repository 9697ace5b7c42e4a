"""Tests for profiles, roles and AI breeding records."""

import pytest

from milktrack.db import AIRecordDB, ProfileDB
from milktrack.errors import PersistenceRejected
from milktrack.models import Role


@pytest.fixture
def db(tmp_path):
    """Create a temporary ProfileDB."""
    profiles = ProfileDB(db_path=tmp_path / "test.db")
    yield profiles
    profiles.close()


@pytest.fixture
def ai_db(tmp_path, db):
    db.ensure_profile("u1", "one@farm.example")
    db.ensure_profile("u2", "two@farm.example")
    records = AIRecordDB(db_path=tmp_path / "test.db")
    yield records
    records.close()


class TestProfiles:
    def test_signup_creates_member(self, db):
        profile = db.ensure_profile("u1", "one@farm.example", "Asha")
        assert profile.role is Role.MEMBER
        assert profile.display_name == "Asha"

    def test_signup_is_idempotent(self, db):
        db.ensure_profile("u1", "one@farm.example", "Asha")
        db.bootstrap_admin("u1")
        profile = db.ensure_profile("u1", "one@farm.example", "Someone else")
        assert profile.role is Role.ADMIN
        assert profile.full_name == "Asha"

    def test_duplicate_email(self, db):
        db.ensure_profile("u1", "one@farm.example")
        with pytest.raises(PersistenceRejected):
            db.ensure_profile("u2", "one@farm.example")

    def test_display_name_falls_back_to_email(self, db):
        assert db.ensure_profile("u1", "one@farm.example").display_name == "one@farm.example"

    def test_bootstrap_admin_only_once(self, db):
        db.ensure_profile("u1", "one@farm.example")
        db.ensure_profile("u2", "two@farm.example")
        assert db.bootstrap_admin("u1").role is Role.ADMIN
        with pytest.raises(PersistenceRejected):
            db.bootstrap_admin("u2")

    def test_set_role_admin_only(self, db):
        db.ensure_profile("u1", "one@farm.example")
        db.ensure_profile("u2", "two@farm.example")
        with pytest.raises(PersistenceRejected):
            db.set_role("u1", "u2", "admin")

        db.bootstrap_admin("u1")
        assert db.set_role("u1", "u2", "viewer").role is Role.VIEWER

    def test_set_invalid_role(self, db):
        db.ensure_profile("u1", "one@farm.example")
        db.bootstrap_admin("u1")
        with pytest.raises(PersistenceRejected, match="Invalid role"):
            db.set_role("u1", "u1", "owner")

    def test_set_role_unknown_user(self, db):
        db.ensure_profile("u1", "one@farm.example")
        db.bootstrap_admin("u1")
        with pytest.raises(PersistenceRejected):
            db.set_role("u1", "ghost", Role.MEMBER)

    def test_update_own_profile(self, db):
        db.ensure_profile("u1", "one@farm.example")
        profile = db.update_profile("u1", "u1", full_name="Asha", phone="+91 98765 43210")
        assert profile.full_name == "Asha"
        assert profile.phone == "+91 98765 43210"

    def test_update_keeps_unset_values(self, db):
        db.ensure_profile("u1", "one@farm.example", "Asha")
        profile = db.update_profile("u1", "u1", phone="123")
        assert profile.full_name == "Asha"

    def test_member_cannot_update_others(self, db):
        db.ensure_profile("u1", "one@farm.example")
        db.ensure_profile("u2", "two@farm.example")
        with pytest.raises(PersistenceRejected):
            db.update_profile("u1", "u2", full_name="Nope")

    def test_admin_updates_others(self, db):
        db.ensure_profile("u1", "one@farm.example")
        db.ensure_profile("u2", "two@farm.example")
        db.bootstrap_admin("u1")
        assert db.update_profile("u1", "u2", full_name="Ravi").full_name == "Ravi"

    def test_list_profiles(self, db):
        db.ensure_profile("u2", "b@farm.example")
        db.ensure_profile("u1", "a@farm.example")
        assert [p.id for p in db.list_profiles("u2")] == ["u1", "u2"]
        with pytest.raises(PersistenceRejected):
            db.list_profiles("ghost")

    def test_get_missing_profile(self, db):
        assert db.get_profile("ghost") is None


class TestAIRecords:
    def test_save_and_list(self, ai_db):
        first = ai_db.save_ai_record("u1", "C-104", "2024-01-10")
        second = ai_db.save_ai_record("u1", " C-201 ", "2024-02-01")

        records = ai_db.list_ai_records("u1")
        assert [r.id for r in records] == [second, first]
        assert records[0].animal_tag == "C-201"
        assert records[0].ai_date == "2024-02-01"

    def test_records_are_private(self, ai_db):
        ai_db.save_ai_record("u1", "C-104", "2024-01-10")
        assert ai_db.list_ai_records("u2") == []

    def test_tag_required(self, ai_db):
        with pytest.raises(ValueError, match="tag"):
            ai_db.save_ai_record("u1", "  ", "2024-01-10")

    def test_date_format(self, ai_db):
        with pytest.raises(ValueError, match="YYYY-MM-DD"):
            ai_db.save_ai_record("u1", "C-104", "10/01/2024")

    def test_unknown_owner(self, ai_db):
        with pytest.raises(PersistenceRejected):
            ai_db.save_ai_record("ghost", "C-104", "2024-01-10")

    def test_update_own_record(self, ai_db):
        record_id = ai_db.save_ai_record("u1", "C-104", "2024-01-10")
        updated = ai_db.update_ai_record("u1", record_id, "C-105", "2024-01-11")
        assert updated.animal_tag == "C-105"
        assert updated.ai_date == "2024-01-11"

    def test_cannot_touch_others_records(self, ai_db):
        record_id = ai_db.save_ai_record("u1", "C-104", "2024-01-10")
        with pytest.raises(PersistenceRejected):
            ai_db.update_ai_record("u2", record_id, "C-999", "2024-01-10")
        with pytest.raises(PersistenceRejected):
            ai_db.delete_ai_record("u2", record_id)
        assert len(ai_db.list_ai_records("u1")) == 1

    def test_delete_own_record(self, ai_db):
        record_id = ai_db.save_ai_record("u1", "C-104", "2024-01-10")
        ai_db.delete_ai_record("u1", record_id)
        assert ai_db.list_ai_records("u1") == []
