"""Tests for the user directory."""

import sqlite3

import pytest

from lexguard.core.auth.errors import (
    CannotDeactivateSelf,
    CannotDeleteSelf,
    DuplicateUser,
    InvalidRole,
    InvalidUserData,
    LastAdministrator,
    UserNotFound,
    WeakPassword,
)
from lexguard.core.auth.users import UserDirectory
from lexguard.db.store import SqliteAuthStore


PASSWORD = "Str0ng!Pass"


class TestCreate:

    def test_create_normalizes_and_hashes(self, users, hasher):
        user = users.create(
            username="  Alice ", email="Alice@Firm.Example",
            password=PASSWORD, role_id="associate", first_name=" Alice ",
        )
        assert user.username == "alice"
        assert user.email == "alice@firm.example"
        assert user.first_name == "Alice"
        assert user.is_active
        assert user.last_login_at is None
        assert user.password_hash != PASSWORD
        assert hasher.verify(PASSWORD, user.password_hash)

    def test_repr_hides_hash(self, make_user):
        user = make_user("alice", "associate")
        assert user.password_hash not in repr(user)
        assert "password_hash" not in user.to_public_dict()

    def test_duplicate_username_case_insensitive(self, make_user):
        make_user("alice", "associate")
        with pytest.raises(DuplicateUser, match="Username 'alice' already exists"):
            make_user("ALICE", "intern", email="other@firm.example")

    def test_duplicate_email(self, make_user):
        make_user("alice", "associate")
        with pytest.raises(DuplicateUser, match="Email"):
            make_user("bob", "intern", email="ALICE@firm.example")

    def test_unknown_role(self, make_user):
        with pytest.raises(InvalidRole):
            make_user("alice", "janitor")

    def test_weak_password(self, make_user):
        with pytest.raises(WeakPassword) as exc:
            make_user("alice", "associate", password="password")
        assert "Password must contain at least one uppercase letter" in exc.value.violations

    @pytest.mark.parametrize("username,email", [
        ("", "a@firm.example"),
        ("alice", ""),
        ("alice", "not-an-email"),
        ("a", "a@firm.example"),
        ("bad name", "a@firm.example"),
    ])
    def test_invalid_fields(self, users, username, email):
        with pytest.raises(InvalidUserData):
            users.create(username=username, email=email, password=PASSWORD, role_id="intern")

    def test_failed_create_leaves_no_trace(self, users, make_user):
        make_user("alice", "associate")
        with pytest.raises(DuplicateUser):
            make_user("alice", "associate")
        assert len(users) == 1


class TestLookup:

    def test_find_by_username_or_email(self, users, make_user):
        alice = make_user("alice", "associate")
        assert users.find_by_login_identifier("ALICE").id == alice.id
        assert users.find_by_login_identifier(" alice@FIRM.example ").id == alice.id

    def test_find_unknown(self, users):
        with pytest.raises(UserNotFound):
            users.find_by_login_identifier("ghost")
        with pytest.raises(UserNotFound):
            users.find_by_login_identifier("")

    def test_returned_users_are_copies(self, users, make_user):
        alice = make_user("alice", "associate")
        alice.role_id = "founding_partner"
        assert users.get(alice.id).role_id == "associate"

    def test_stats(self, users, make_user, admin):
        make_user("alice", "associate")
        bob = make_user("bob", "intern")
        users.set_active(bob.id, False)

        stats = users.stats()
        assert stats.total == 3
        assert stats.active == 2
        assert stats.by_role["associate"] == 1
        assert stats.by_role["intern"] == 0
        assert stats.by_role["founding_partner"] == 1


class TestEdit:

    def test_edit_fields(self, users, make_user, clock):
        alice = make_user("alice", "associate")
        clock.advance(minutes=5)
        updated = users.edit(alice.id, first_name="Alicia", role_id="partner")
        assert updated.first_name == "Alicia"
        assert updated.role_id == "partner"
        assert updated.updated_at > alice.updated_at

    def test_password_not_editable(self, users, make_user):
        alice = make_user("alice", "associate")
        with pytest.raises(InvalidUserData):
            users.edit(alice.id, password="N3w!Password")
        with pytest.raises(InvalidUserData):
            users.edit(alice.id, password_hash="$argon2id$fake")

    def test_unknown_field(self, users, make_user):
        alice = make_user("alice", "associate")
        with pytest.raises(InvalidUserData, match="created_at"):
            users.edit(alice.id, created_at=None)

    def test_rename_collision(self, users, make_user):
        make_user("alice", "associate")
        bob = make_user("bob", "intern")
        with pytest.raises(DuplicateUser):
            users.edit(bob.id, username="Alice")

    def test_unknown_user(self, users):
        with pytest.raises(UserNotFound):
            users.edit("missing", first_name="X")

    def test_cannot_deactivate_self(self, users, admin):
        with pytest.raises(CannotDeactivateSelf):
            users.set_active(admin.id, False, actor_id=admin.id)

    def test_cannot_demote_last_admin(self, users, admin, make_user):
        make_user("alice", "associate")
        with pytest.raises(LastAdministrator):
            users.edit(admin.id, role_id="associate")

    def test_demote_allowed_with_another_admin(self, users, admin, make_user):
        make_user("paula", "partner")
        assert users.edit(admin.id, role_id="associate").role_id == "associate"

    def test_cannot_deactivate_last_admin(self, users, admin):
        with pytest.raises(LastAdministrator):
            users.set_active(admin.id, False)


class TestPasswords:

    def test_set_password(self, users, hasher, make_user):
        alice = make_user("alice", "associate")
        users.set_password(alice.id, "N3w!Password")
        assert hasher.verify("N3w!Password", users.get(alice.id).password_hash)
        assert not hasher.verify(PASSWORD, users.get(alice.id).password_hash)

    def test_set_weak_password(self, users, make_user):
        alice = make_user("alice", "associate")
        with pytest.raises(WeakPassword):
            users.set_password(alice.id, "short")

    def test_record_login(self, users, make_user, clock):
        alice = make_user("alice", "associate")
        updated = users.record_login(alice.id)
        assert updated.last_login_at == clock.now


class TestDelete:

    def test_delete(self, users, admin, make_user):
        alice = make_user("alice", "associate")
        users.delete(alice.id, admin.id)
        with pytest.raises(UserNotFound):
            users.get(alice.id)

    def test_cannot_delete_self(self, users, admin):
        with pytest.raises(CannotDeleteSelf):
            users.delete(admin.id, admin.id)

    def test_delete_missing(self, users, admin):
        with pytest.raises(UserNotFound):
            users.delete("missing", admin.id)

    def test_cannot_delete_last_admin(self, users, admin, make_user):
        other = make_user("alice", "associate")
        with pytest.raises(LastAdministrator):
            users.delete(admin.id, other.id)


class TestBootstrap:

    def test_default_admin_created_once(self, users, hasher):
        created = users.ensure_default_admin()
        assert created is not None
        user, password = created
        assert user.username == "admin"
        assert user.role_id == "founding_partner"
        assert hasher.strength(password).is_valid
        assert hasher.verify(password, user.password_hash)

        assert users.ensure_default_admin() is None

    def test_no_admin_when_users_exist(self, users, make_user):
        make_user("alice", "associate")
        assert users.ensure_default_admin() is None


class TestPersistence:

    def test_reload_from_store(self, roles, hasher, store, clock):
        first = UserDirectory(roles, hasher, store, clock)
        alice = first.create(
            username="alice", email="alice@firm.example",
            password=PASSWORD, role_id="associate", last_name="Smith",
        )

        second = UserDirectory(roles, hasher, store, clock)
        assert second.load() == 1
        loaded = second.get(alice.id)
        assert loaded.username == "alice"
        assert loaded.last_name == "Smith"
        assert loaded.created_at == alice.created_at
        assert hasher.verify(PASSWORD, loaded.password_hash)


class TestConcurrency:

    def test_concurrent_creates_with_same_username(self, users):
        from concurrent.futures import ThreadPoolExecutor

        def attempt(i):
            try:
                users.create(
                    username="shared", email=f"shared{i}@firm.example",
                    password=PASSWORD, role_id="intern",
                )
                return True
            except DuplicateUser:
                return False

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(attempt, range(8)))

        assert results.count(True) == 1
        assert len(users) == 1


class FailingStore:
    """Store whose writes always fail, as with a locked database file."""

    def load_users(self):
        return []

    def save_users(self, users):
        raise sqlite3.OperationalError("database is locked")


class TestStoreFailure:

    @pytest.fixture
    def directory(self, roles, hasher, clock):
        return UserDirectory(roles, hasher, FailingStore(), clock)

    def test_failed_save_does_not_create(self, directory):
        with pytest.raises(sqlite3.OperationalError):
            directory.create(
                username="ghost", email="ghost@firm.example",
                password=PASSWORD, role_id="intern",
            )
        assert directory.all() == []

    def test_failed_save_on_edit_and_delete(self, roles, hasher, clock, store, monkeypatch):
        directory = UserDirectory(roles, hasher, store, clock)
        admin = directory.create(
            username="founder", email="founder@firm.example",
            password=PASSWORD, role_id="founding_partner",
        )
        alice = directory.create(
            username="alice", email="alice@firm.example",
            password=PASSWORD, role_id="associate",
        )

        def locked(self, users):
            raise sqlite3.OperationalError("database is locked")

        monkeypatch.setattr(SqliteAuthStore, "save_users", locked)

        with pytest.raises(sqlite3.OperationalError):
            directory.edit(alice.id, first_name="Alicia")
        assert directory.get(alice.id).first_name == ""

        with pytest.raises(sqlite3.OperationalError):
            directory.delete(alice.id, admin.id)
        assert len(directory) == 2

        with pytest.raises(sqlite3.OperationalError):
            directory.record_login(alice.id)
        assert directory.get(alice.id).last_login_at is None


def test_stats_snapshot_is_read_only(users, make_user):
    make_user("alice", "associate")
    stats = users.stats()
    with pytest.raises(TypeError):
        stats.by_role["associate"] = 99
    assert stats.by_role["associate"] == 1
