from datetime import timedelta
from uuid import uuid4

import pytest

from gatehouse_api.core.errors import ConstraintViolationError
from gatehouse_api.models.user import User


def _new_user(username: str = "alice", email: str = "alice@example.com") -> User:
    return User(username=username, email=email, first_name="Alice", last_name="Liddell")


def test_create_assigns_defaults_and_hashes_password(credentials, clock):
    user = credentials.create(_new_user(email="  Alice@Example.COM "), "Secret123!")

    assert user.user_id is not None
    assert user.email == "alice@example.com"
    assert user.is_active is True
    assert user.is_email_verified is False
    assert user.failed_login_attempts == 0
    assert user.created_at == clock()
    assert user.password_hash != "Secret123!"

    stored = credentials.get_by_id(user.user_id)
    assert stored is not None
    assert credentials.verify_password(stored, "Secret123!")
    assert not credentials.verify_password(stored, "secret123!")


def test_create_duplicate_raises_constraint_violation(credentials):
    credentials.create(_new_user(), "Secret123!")

    with pytest.raises(ConstraintViolationError) as exc_info:
        credentials.create(_new_user(username="alice2"), "Secret123!")
    assert exc_info.value.operation == "create user"
    assert exc_info.value.cause is not None

    with pytest.raises(ConstraintViolationError):
        credentials.create(_new_user(email="other@example.com"), "Secret123!")


def test_lookups_return_none_when_absent(credentials):
    assert credentials.get_by_id(uuid4()) is None
    assert credentials.get_by_email("nobody@example.com") is None
    assert credentials.get_by_username("nobody") is None
    assert credentials.get_by_login("nobody") is None


def test_get_by_login_matches_email_or_username(credentials):
    user = credentials.create(_new_user(), "Secret123!")

    assert credentials.get_by_login("ALICE@example.com").user_id == user.user_id
    assert credentials.get_by_login("alice").user_id == user.user_id
    # 用户名区分大小写。
    assert credentials.get_by_login("Alice") is None


def test_get_by_login_prefers_email_match(credentials):
    by_username = credentials.create(_new_user(username="bob@example.com", email="first@example.com"), "Secret123!")
    by_email = credentials.create(_new_user(username="bob", email="bob@example.com"), "Secret123!")

    found = credentials.get_by_login("bob@example.com")

    assert found.user_id == by_email.user_id
    assert found.user_id != by_username.user_id


def test_update_rewrites_profile_fields_only(credentials, clock):
    user = credentials.create(_new_user(), "Secret123!")
    original_hash = user.password_hash
    clock.advance(minutes=5)

    user.first_name = "Alicia"
    user.password_hash = "tampered"
    updated = credentials.update(user)

    stored = credentials.get_by_id(user.user_id)
    assert updated is not None
    assert stored.first_name == "Alicia"
    assert stored.password_hash == original_hash
    assert stored.updated_at == clock()
    assert stored.created_at == clock() - timedelta(minutes=5)

    ghost = _new_user(username="ghost", email="ghost@example.com")
    ghost.user_id = uuid4()
    assert credentials.update(ghost) is None


def test_stale_update_keeps_lockout_and_reset_token(credentials, clock):
    user = credentials.create(_new_user(), "Secret123!")
    stale = credentials.get_by_id(user.user_id)
    for _ in range(5):
        credentials.increment_failed_login_attempts(user.user_id)
    assert credentials.set_password_reset_token(user.user_id, "reset-token", clock() + timedelta(hours=24))

    stale.first_name = "Alicia"
    stale.is_active = False
    assert credentials.update(stale) is not None

    stored = credentials.get_by_id(user.user_id)
    assert stored.first_name == "Alicia"
    assert stored.is_active is False
    assert stored.failed_login_attempts == 5
    assert stored.is_locked(clock())
    assert stored.password_reset_token == "reset-token"


def test_update_password_clears_pending_reset_token(credentials, clock):
    user = credentials.create(_new_user(), "Secret123!")
    assert credentials.set_password_reset_token(user.user_id, "reset-token", clock() + timedelta(hours=24))

    assert credentials.update_password(user.user_id, "NewPass456!")

    stored = credentials.get_by_id(user.user_id)
    assert stored.password_reset_token is None
    assert stored.password_reset_expires_at is None
    assert credentials.verify_password(stored, "NewPass456!")
    assert not credentials.verify_password(stored, "Secret123!")
    assert credentials.update_password(uuid4(), "NewPass456!") is False


def test_reset_password_with_token_is_single_use_and_unlocks(credentials, clock):
    user = credentials.create(_new_user(), "Secret123!")
    for _ in range(5):
        credentials.increment_failed_login_attempts(user.user_id)
    credentials.set_password_reset_token(user.user_id, "reset-token", clock() + timedelta(hours=24))

    assert credentials.reset_password_with_token("reset-token", "NewPass456!") == user.user_id
    assert credentials.reset_password_with_token("reset-token", "Other789!") is None

    stored = credentials.get_by_id(user.user_id)
    assert stored.failed_login_attempts == 0
    assert stored.locked_until is None
    assert credentials.verify_password(stored, "NewPass456!")


def test_reset_password_with_expired_token_fails(credentials, clock):
    user = credentials.create(_new_user(), "Secret123!")
    credentials.set_password_reset_token(user.user_id, "reset-token", clock() + timedelta(hours=24))

    clock.advance(hours=24)

    assert credentials.reset_password_with_token("reset-token", "NewPass456!") is None
    assert credentials.verify_password(credentials.get_by_id(user.user_id), "Secret123!")


def test_mark_email_verified_consumes_token(credentials):
    user = _new_user()
    user.email_verification_token = "verify-token"
    user = credentials.create(user, "Secret123!")

    assert credentials.mark_email_verified("verify-token") == user.user_id
    assert credentials.mark_email_verified("verify-token") is None

    stored = credentials.get_by_id(user.user_id)
    assert stored.is_email_verified is True
    assert stored.email_verification_token is None


def test_increment_failed_login_attempts_locks_at_threshold(credentials, clock):
    user = credentials.create(_new_user(), "Secret123!")

    counts = [credentials.increment_failed_login_attempts(user.user_id) for _ in range(4)]
    assert counts == [1, 2, 3, 4]
    assert credentials.get_by_id(user.user_id).locked_until is None

    assert credentials.increment_failed_login_attempts(user.user_id) == 5
    stored = credentials.get_by_id(user.user_id)
    assert stored.locked_until == clock() + timedelta(minutes=30)
    assert stored.is_locked(clock())
    assert not stored.is_locked(clock() + timedelta(minutes=30))

    assert credentials.increment_failed_login_attempts(uuid4()) == 0


def test_lockout_threshold_and_duration_are_configurable(database, hasher, clock):
    from gatehouse_api.stores.credentials import CredentialStore

    store = CredentialStore(database, hasher, clock=clock, lockout_threshold=2, lockout_minutes=5)
    user = store.create(_new_user(), "Secret123!")

    store.increment_failed_login_attempts(user.user_id)
    assert store.get_by_id(user.user_id).locked_until is None
    store.increment_failed_login_attempts(user.user_id)
    assert store.get_by_id(user.user_id).locked_until == clock() + timedelta(minutes=5)


def test_record_login_and_unlock_reset_counters(credentials, clock):
    user = credentials.create(_new_user(), "Secret123!")
    for _ in range(5):
        credentials.increment_failed_login_attempts(user.user_id)

    assert credentials.unlock(user.user_id)
    stored = credentials.get_by_id(user.user_id)
    assert stored.failed_login_attempts == 0
    assert stored.locked_until is None

    credentials.increment_failed_login_attempts(user.user_id)
    clock.advance(minutes=1)
    credentials.record_login(user.user_id)
    stored = credentials.get_by_id(user.user_id)
    assert stored.failed_login_attempts == 0
    assert stored.last_login_at == clock()
    assert credentials.unlock(uuid4()) is False


def test_list_count_and_delete(credentials, clock):
    users = []
    for index in range(3):
        users.append(credentials.create(_new_user(f"user{index}", f"user{index}@example.com"), "Secret123!"))
        clock.advance(seconds=1)

    assert credentials.count() == 3
    assert [u.username for u in credentials.list(offset=0, limit=2)] == ["user2", "user1"]
    assert [u.username for u in credentials.list(offset=2, limit=2)] == ["user0"]

    assert credentials.delete(users[0].user_id)
    assert credentials.delete(users[0].user_id) is False
    assert credentials.count() == 2
