"""Unit tests for databank.platform_rules.user_rules — accounts and grants."""

import pytest

from databank.db.models import AccessGrant, AuditLogEntry, User
from databank.engine import audit as audit_actions
from databank.engine.errors import (
    DuplicateNameError,
    ForbiddenError,
    InvalidInputError,
    NotFoundError,
    StoreUnavailableError,
)
from databank.engine.security import authenticate
from databank.platform_rules import user_rules


def _grant_set(db, user_id):
    session = db()
    try:
        rows = session.query(AccessGrant.folder_id).filter(AccessGrant.user_id == user_id).all()
        return {r.folder_id for r in rows}
    finally:
        session.close()


def _actions(db):
    session = db()
    try:
        return [e.action for e in session.query(AuditLogEntry).order_by(AuditLogEntry.id).all()]
    finally:
        session.close()


class TestCoerceFolderIds:

    def test_mixed_input(self):
        assert user_rules.coerce_folder_ids([1, 1, 2, -5, "abc"]) == [1, 2]

    def test_single_value(self):
        assert user_rules.coerce_folder_ids("4") == [4]
        assert user_rules.coerce_folder_ids(4) == [4]

    def test_none(self):
        assert user_rules.coerce_folder_ids(None) == []

    def test_keeps_first_seen_order(self):
        assert user_rules.coerce_folder_ids(["3", 1, 3, "2"]) == [3, 1, 2]


class TestReplaceGrants:

    def test_dedup_and_invalid_ids(self, db, admin, user, make_folder):
        f1 = make_folder("One")
        f2 = make_folder("Two")
        assert (f1, f2) == (1, 2)
        granted = user_rules.replace_grants(db, user.id, [1, 1, 2, -5, "abc"], admin)
        assert granted == [1, 2]
        assert _grant_set(db, user.id) == {1, 2}

    def test_replaces_previous_set(self, db, admin, user, make_folder, grant):
        a = make_folder("A")
        b = make_folder("B")
        grant(user.id, a)
        user_rules.replace_grants(db, user.id, [b], admin)
        assert _grant_set(db, user.id) == {b}

    def test_empty_list_clears(self, db, admin, user, make_folder, grant):
        grant(user.id, make_folder("A"))
        assert user_rules.replace_grants(db, user.id, [], admin) == []
        assert _grant_set(db, user.id) == set()

    def test_missing_folders_dropped(self, db, admin, user, make_folder):
        a = make_folder("A")
        assert user_rules.replace_grants(db, user.id, [a, 999], admin) == [a]

    def test_admin_target_gets_no_grants(self, db, admin, add_user, make_folder, grant):
        other_admin = add_user("root@example.com", role="admin")
        a = make_folder("A")
        grant(other_admin.id, a)
        assert user_rules.replace_grants(db, other_admin.id, [a], admin) == []
        assert _grant_set(db, other_admin.id) == set()

    def test_unknown_user(self, db, admin):
        with pytest.raises(NotFoundError):
            user_rules.replace_grants(db, 404, [1], admin)

    def test_non_admin_forbidden(self, db, user, searcher):
        with pytest.raises(ForbiddenError):
            user_rules.replace_grants(db, searcher.id, [1], user)

    def test_does_not_touch_other_users(self, db, admin, user, searcher, make_folder, grant):
        a = make_folder("A")
        grant(searcher.id, a)
        user_rules.replace_grants(db, user.id, [], admin)
        assert _grant_set(db, searcher.id) == {a}

    def test_records_audit_entry(self, db, audit, admin, user):
        user_rules.replace_grants(db, user.id, [], admin, audit=audit)
        assert _actions(db) == [audit_actions.UPDATED_GRANTS]

    def test_store_failure(self, failing_db_session, admin):
        with pytest.raises(StoreUnavailableError):
            user_rules.replace_grants(failing_db_session, 2, [1], admin)


class TestCreateUser:

    def test_create(self, db, admin):
        created = user_rules.create_user(
            db, " Carol ", "carol@example.com", "long-enough", "user", admin,
            can_search=True, bcrypt_rounds=4,
        )
        assert created["fullname"] == "Carol"
        assert created["role"] == "user"
        assert created["can_search"] is True
        assert created["can_print"] is False
        assert "password_hash" not in created
        assert authenticate(db, "carol@example.com", "long-enough").id == created["id"]

    def test_missing_fields(self, db, admin):
        with pytest.raises(InvalidInputError, match="All fields required"):
            user_rules.create_user(db, "", "x@example.com", "long-enough", "user", admin)

    def test_short_password(self, db, admin):
        with pytest.raises(InvalidInputError, match="at least 12"):
            user_rules.create_user(
                db, "Dan", "dan@example.com", "short", "user", admin, password_min_length=12
            )

    def test_bad_role(self, db, admin):
        with pytest.raises(InvalidInputError):
            user_rules.create_user(db, "Dan", "dan@example.com", "long-enough", "owner", admin, bcrypt_rounds=4)

    def test_duplicate_email(self, db, admin, user):
        with pytest.raises(DuplicateNameError):
            user_rules.create_user(db, "Alice 2", "alice@example.com", "long-enough", "user", admin, bcrypt_rounds=4)

    def test_non_admin(self, db, user):
        with pytest.raises(ForbiddenError):
            user_rules.create_user(db, "Dan", "dan@example.com", "long-enough", "user", user)

    def test_records_audit_entry(self, db, audit, admin):
        user_rules.create_user(
            db, "Dan", "dan@example.com", "long-enough", "user", admin, bcrypt_rounds=4, audit=audit
        )
        assert _actions(db) == [audit_actions.CREATED_USER]


class TestUpdateUser:

    def test_update_flags_and_grants(self, db, admin, user, make_folder):
        a = make_folder("A")
        b = make_folder("B")
        result = user_rules.update_user(
            db, user.id, admin, role="user", can_search=True, can_print=True, folder_ids=[str(a), b, b]
        )
        assert result["can_search"] is True
        assert result["can_preview"] is False
        assert result["can_print"] is True
        assert result["folder_ids"] == [a, b]
        assert _grant_set(db, user.id) == {a, b}

    def test_omitted_flags_are_cleared(self, db, admin, searcher):
        result = user_rules.update_user(db, searcher.id, admin)
        assert result["can_search"] is False
        assert result["can_preview"] is False

    def test_promote_to_admin_clears_grants(self, db, admin, user, make_folder, grant):
        a = make_folder("A")
        grant(user.id, a)
        result = user_rules.update_user(db, user.id, admin, role="admin", folder_ids=[a])
        assert result["role"] == "admin"
        assert result["folder_ids"] == []
        assert _grant_set(db, user.id) == set()

    def test_cannot_modify_self(self, db, admin):
        with pytest.raises(ForbiddenError):
            user_rules.update_user(db, admin.id, admin, role="user")

    def test_unknown_user(self, db, admin):
        with pytest.raises(NotFoundError):
            user_rules.update_user(db, 999, admin)

    def test_bad_role(self, db, admin, user):
        with pytest.raises(InvalidInputError):
            user_rules.update_user(db, user.id, admin, role="superuser")

    def test_invalid_user_id(self, db, admin):
        with pytest.raises(InvalidInputError):
            user_rules.update_user(db, "abc", admin)

    def test_non_admin(self, db, user, searcher):
        with pytest.raises(ForbiddenError):
            user_rules.update_user(db, searcher.id, user)


class TestDeleteUser:

    def test_delete_removes_account_and_grants(self, db, admin, user, make_folder, grant):
        grant(user.id, make_folder("A"))
        user_rules.delete_user(db, user.id, admin)
        session = db()
        try:
            assert session.get(User, user.id) is None
        finally:
            session.close()
        assert _grant_set(db, user.id) == set()

    def test_files_survive_uploader_deletion(self, db, admin, user, make_folder, make_file):
        from databank.db.models import File

        rid = make_file(make_folder("A"))
        session = db()
        try:
            session.query(File).filter(File.id == rid).update({File.uploaded_by: user.id})
            session.commit()
        finally:
            session.close()

        user_rules.delete_user(db, user.id, admin)
        session = db()
        try:
            assert session.get(File, rid).uploaded_by is None
        finally:
            session.close()

    def test_cannot_delete_self(self, db, admin):
        with pytest.raises(ForbiddenError):
            user_rules.delete_user(db, admin.id, admin)

    def test_cannot_delete_other_admin(self, db, admin, add_user):
        other = add_user("root@example.com", role="admin")
        with pytest.raises(ForbiddenError):
            user_rules.delete_user(db, other.id, admin)

    def test_unknown_user(self, db, admin):
        with pytest.raises(NotFoundError):
            user_rules.delete_user(db, 999, admin)

    def test_records_audit_entry(self, db, audit, admin, user):
        user_rules.delete_user(db, user.id, admin, audit=audit)
        assert _actions(db) == [audit_actions.DELETED_USER]


class TestAdminViews:

    def test_list_users_newest_first(self, db, admin, user, searcher):
        emails = [u["email"] for u in user_rules.list_users(db, admin)]
        assert emails == ["bob@example.com", "alice@example.com", "admin@example.com"]

    def test_list_access_rows(self, db, admin, user, searcher, make_folder, grant):
        a = make_folder("A")
        b = make_folder("B")
        grant(user.id, b)
        grant(user.id, a)
        grant(searcher.id, a)
        assert user_rules.list_access_rows(db, admin) == [
            {"user_id": user.id, "folder_id": a},
            {"user_id": user.id, "folder_id": b},
            {"user_id": searcher.id, "folder_id": a},
        ]

    def test_views_are_admin_only(self, db, user):
        with pytest.raises(ForbiddenError):
            user_rules.list_users(db, user)
        with pytest.raises(ForbiddenError):
            user_rules.list_access_rows(db, user)
