from datetime import timedelta
from uuid import uuid4

import pytest

from gatehouse_api.core.errors import (
    ConstraintViolationError,
    EmailAlreadyExistsError,
    InfrastructureError,
    InvalidCredentialsError,
    InvalidTokenError,
    UserLockedError,
    UserNotFoundError,
    UsernameAlreadyExistsError,
)
from gatehouse_api.core.security import fingerprint_token
from gatehouse_api.models.audit import AuditEventType


@pytest.fixture
def alice(auth_service):
    return auth_service.register("alice", "alice@example.com", "Secret123!", "Alice", "Liddell")


def _event_types(audit_store, user_id):
    return [entry.event_type for entry in audit_store.get_by_user_id(user_id)]


def test_register_creates_active_unverified_user(auth_service, audit_store, alice, clock):
    assert alice.is_active is True
    assert alice.is_email_verified is False
    assert alice.email_verification_token
    assert alice.email_verification_sent_at == clock()
    assert _event_types(audit_store, alice.user_id) == ["register"]


def test_register_rejects_duplicates(auth_service, alice):
    with pytest.raises(EmailAlreadyExistsError):
        auth_service.register("someone-else", "alice@example.com", "Secret123!")
    with pytest.raises(EmailAlreadyExistsError):
        auth_service.register("alice", "ALICE@example.com", "Secret123!")
    with pytest.raises(UsernameAlreadyExistsError):
        auth_service.register("alice", "alice2@example.com", "Secret123!")


def test_register_maps_insert_race_to_conflict(auth_service, credentials, monkeypatch):
    original_create = credentials.create

    def racing_create(user, password):
        # 模拟另一请求在检查之后抢先写入同邮箱账号。
        original_create(type(user)(username="winner", email=user.email), password)
        raise ConstraintViolationError("create user")

    monkeypatch.setattr(credentials, "create", racing_create)

    with pytest.raises(EmailAlreadyExistsError):
        auth_service.register("loser", "race@example.com", "Secret123!")


def test_login_issues_session_and_audits(auth_service, audit_store, alice, clock):
    session = auth_service.login("alice@example.com", "Secret123!", ip_address="10.0.0.1", user_agent="pytest")

    assert session.user_id == alice.user_id
    assert len(session.token) >= 43
    assert session.expires_at == clock() + timedelta(minutes=60)
    assert session.ip_address == "10.0.0.1"

    entry = audit_store.get_by_event_type(AuditEventType.LOGIN)[0]
    assert entry.user_id == alice.user_id
    assert entry.details["successful"] is True
    assert session.token not in str(entry.details)


def test_login_succeeds_when_audit_write_fails(auth_service, audit_store, sessions, alice, monkeypatch, caplog):
    def broken_create(entry):
        raise InfrastructureError("create audit entry")

    monkeypatch.setattr(audit_store, "create", broken_create)

    session = auth_service.login("alice@example.com", "Secret123!")

    assert session.user_id == alice.user_id
    assert sessions.get_by_token(session.token).is_valid
    assert "audit write failed" in caplog.text


def test_login_by_username(auth_service, alice):
    session = auth_service.login("alice", "Secret123!")

    assert session.user_id == alice.user_id


def test_unknown_identity_and_wrong_password_are_indistinguishable(auth_service, audit_store, alice):
    with pytest.raises(InvalidCredentialsError) as unknown:
        auth_service.login("nobody@example.com", "Secret123!")
    with pytest.raises(InvalidCredentialsError) as wrong:
        auth_service.login("alice@example.com", "wrong")

    assert unknown.value.code == wrong.value.code
    assert unknown.value.message == wrong.value.message
    anonymous = [e for e in audit_store.get_by_event_type(AuditEventType.LOGIN_FAILED) if e.user_id is None]
    assert len(anonymous) == 1


def test_inactive_user_cannot_login(auth_service, credentials, alice):
    alice.is_active = False
    credentials.update(alice)

    with pytest.raises(InvalidCredentialsError):
        auth_service.login("alice@example.com", "Secret123!")


def test_lockout_scenario(auth_service, credentials, audit_store, alice, clock):
    for attempt in range(1, 6):
        with pytest.raises(InvalidCredentialsError):
            auth_service.login("alice@example.com", "wrong")
        if attempt < 5:
            clock.advance(seconds=10)
    fifth_failure_at = clock()

    with pytest.raises(UserLockedError) as locked:
        auth_service.login("alice@example.com", "Secret123!")
    assert locked.value.locked_until == fifth_failure_at + timedelta(minutes=30)

    clock.advance(minutes=29, seconds=59)
    with pytest.raises(UserLockedError):
        auth_service.login("alice@example.com", "Secret123!")

    clock.now = fifth_failure_at + timedelta(minutes=31)
    session = auth_service.login("alice@example.com", "Secret123!")

    assert session.expires_at == clock() + timedelta(minutes=60)
    stored = credentials.get_by_id(alice.user_id)
    assert stored.failed_login_attempts == 0
    assert stored.locked_until is None
    assert "account_locked" in _event_types(audit_store, alice.user_id)


def test_lockout_revokes_standing_sessions(auth_service, alice):
    session = auth_service.login("alice", "Secret123!")

    for _ in range(5):
        with pytest.raises(InvalidCredentialsError):
            auth_service.login("alice", "wrong")

    with pytest.raises(InvalidTokenError):
        auth_service.validate_session(session.token)


def test_validate_session_expiry_boundary(auth_service, alice, clock):
    session = auth_service.login("alice", "Secret123!")
    expires_at = session.expires_at

    clock.now = expires_at - timedelta(seconds=1)
    validated = auth_service.validate_session(session.token)
    assert validated.user.user_id == alice.user_id
    assert validated.session.session_id == session.session_id

    clock.now = expires_at + timedelta(seconds=1)
    with pytest.raises(InvalidTokenError):
        auth_service.validate_session(session.token)


def test_validate_session_touches_last_active(auth_service, sessions, alice, clock):
    session = auth_service.login("alice", "Secret123!")
    clock.advance(minutes=5)

    auth_service.validate_session(session.token)

    assert sessions.get_by_id(session.session_id).last_active_at == clock()


def test_validate_session_ignores_touch_failure(auth_service, sessions, alice, monkeypatch):
    session = auth_service.login("alice", "Secret123!")

    def broken_touch(session_id):
        raise InfrastructureError("touch session", RuntimeError("db down"))

    monkeypatch.setattr(sessions, "update_last_active_at", broken_touch)

    assert auth_service.validate_session(session.token).session.session_id == session.session_id


def test_validate_session_rejects_unknown_and_inactive(auth_service, credentials, alice):
    with pytest.raises(InvalidTokenError):
        auth_service.validate_session("not-a-token")

    session = auth_service.login("alice", "Secret123!")
    alice.is_active = False
    credentials.update(alice)
    with pytest.raises(UserNotFoundError):
        auth_service.validate_session(session.token)


def test_logout_is_idempotent(auth_service, audit_store, alice):
    session = auth_service.login("alice", "Secret123!")

    auth_service.logout(session.token)
    auth_service.logout(session.token)
    auth_service.logout("never-issued")

    with pytest.raises(InvalidTokenError):
        auth_service.validate_session(session.token)
    assert _event_types(audit_store, alice.user_id).count("logout") == 1


def test_verify_email(auth_service, credentials, alice):
    assert auth_service.verify_email(alice.email_verification_token) == alice.user_id
    assert credentials.get_by_id(alice.user_id).is_email_verified is True

    with pytest.raises(InvalidTokenError):
        auth_service.verify_email(alice.email_verification_token)


def test_forgot_password_unknown_email_is_silent(auth_service, audit_store):
    assert auth_service.forgot_password("nobody@example.com") is None
    assert audit_store.count() == 0


def test_password_reset_scenario(auth_service, audit_store, alice):
    standing = auth_service.login("alice@example.com", "Secret123!")

    token = auth_service.forgot_password("alice@example.com")
    assert token

    assert auth_service.reset_password(token, "NewPass456!") == alice.user_id

    with pytest.raises(InvalidCredentialsError):
        auth_service.login("alice@example.com", "Secret123!")
    assert auth_service.login("alice@example.com", "NewPass456!").user_id == alice.user_id
    with pytest.raises(InvalidTokenError):
        auth_service.validate_session(standing.token)
    with pytest.raises(InvalidTokenError):
        auth_service.reset_password(token, "Another789!")

    requested = audit_store.get_by_event_type(AuditEventType.PASSWORD_RESET_REQUESTED)[0]
    assert token not in str(requested.details)
    assert requested.details["token_fingerprint"] == fingerprint_token("unit-test-secret", token)


def test_reset_token_expires_after_24_hours(auth_service, alice, clock):
    token = auth_service.forgot_password("alice@example.com")
    clock.advance(hours=24, seconds=1)

    with pytest.raises(InvalidTokenError):
        auth_service.reset_password(token, "NewPass456!")


def test_reset_password_clears_lockout(auth_service, alice):
    for _ in range(5):
        with pytest.raises(InvalidCredentialsError):
            auth_service.login("alice", "wrong")

    token = auth_service.forgot_password("alice@example.com")
    auth_service.reset_password(token, "NewPass456!")

    assert auth_service.login("alice", "NewPass456!").user_id == alice.user_id


def test_change_password(auth_service, alice):
    current = auth_service.login("alice", "Secret123!")
    other = auth_service.login("alice", "Secret123!")

    with pytest.raises(InvalidCredentialsError):
        auth_service.change_password(alice.user_id, "wrong", "NewPass456!")

    auth_service.change_password(
        alice.user_id, "Secret123!", "NewPass456!", current_session_id=current.session_id
    )

    assert auth_service.validate_session(current.token).user.user_id == alice.user_id
    with pytest.raises(InvalidTokenError):
        auth_service.validate_session(other.token)
    assert auth_service.login("alice", "NewPass456!")
    with pytest.raises(UserNotFoundError):
        auth_service.change_password(uuid4(), "Secret123!", "NewPass456!")


def test_list_and_revoke_sessions(auth_service, alice):
    first = auth_service.login("alice", "Secret123!")
    second = auth_service.login("alice", "Secret123!")
    bob = auth_service.register("bob", "bob@example.com", "Secret123!")

    assert {s.session_id for s in auth_service.list_sessions(alice.user_id)} == {
        first.session_id,
        second.session_id,
    }

    with pytest.raises(InvalidTokenError):
        auth_service.revoke_session(bob.user_id, first.session_id)
    auth_service.revoke_session(alice.user_id, first.session_id)

    with pytest.raises(InvalidTokenError):
        auth_service.validate_session(first.token)
    assert auth_service.validate_session(second.token)


def test_audit_trail_and_unlock(auth_service, credentials, alice, clock):
    for _ in range(5):
        clock.advance(seconds=1)
        with pytest.raises(InvalidCredentialsError):
            auth_service.login("alice", "wrong")

    clock.advance(seconds=1)
    auth_service.unlock_user(alice.user_id)
    clock.advance(seconds=1)

    assert credentials.get_by_id(alice.user_id).locked_until is None
    assert auth_service.login("alice", "Secret123!")
    trail = auth_service.audit_trail(alice.user_id, limit=3)
    assert len(trail) == 3
    assert {"login", "account_unlocked"} <= {entry.event_type for entry in trail}
    with pytest.raises(UserNotFoundError):
        auth_service.unlock_user(uuid4())
