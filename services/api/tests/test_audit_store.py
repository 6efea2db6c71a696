from uuid import uuid4

from gatehouse_api.core.errors import InfrastructureError
from gatehouse_api.models.audit import AuditEventType, AuditLogEntry
from gatehouse_api.services.audit import AuditRecorder
from gatehouse_api.stores.audit import MAX_PAGE_SIZE, clamp_page


def _entry(event_type: str, user_id=None, **details) -> AuditLogEntry:
    return AuditLogEntry(user_id=user_id, event_type=event_type, ip_address="10.0.0.1", details=details)


def test_create_assigns_id_and_timestamp(audit_store, clock):
    entry = audit_store.create(AuditLogEntry(event_type=AuditEventType.LOGIN))

    assert entry.log_id is not None
    assert entry.created_at == clock()
    stored = audit_store.get_by_id(entry.log_id)
    assert stored.event_type == "login"
    assert stored.details == {}
    assert audit_store.get_by_id(uuid4()) is None


def test_queries_are_newest_first_and_paginated(audit_store, clock):
    alice, bob = uuid4(), uuid4()
    for index in range(5):
        audit_store.create(_entry(AuditEventType.LOGIN_FAILED, alice, attempt=index))
        clock.advance(seconds=1)
    audit_store.create(_entry(AuditEventType.LOGIN, bob))

    alice_entries = audit_store.get_by_user_id(alice, limit=2)
    assert [e.details["attempt"] for e in alice_entries] == [4, 3]
    assert [e.details["attempt"] for e in audit_store.get_by_user_id(alice, limit=2, offset=4)] == [0]

    assert len(audit_store.get_by_event_type(AuditEventType.LOGIN_FAILED)) == 5
    assert [e.user_id for e in audit_store.get_by_event_type("login")] == [bob]
    assert audit_store.list(limit=1)[0].user_id == bob
    assert audit_store.count() == 6


def test_clamp_page():
    assert clamp_page(None, None) == (50, 0)
    assert clamp_page(0, -3) == (50, 0)
    assert clamp_page(10_000, 7) == (MAX_PAGE_SIZE, 7)


def test_delete_older_than(audit_store, clock):
    audit_store.create(_entry(AuditEventType.LOGIN))
    cutoff = clock.advance(days=1)
    audit_store.create(_entry(AuditEventType.LOGOUT))

    assert audit_store.delete_older_than(cutoff) == 1
    assert [e.event_type for e in audit_store.list()] == ["logout"]


def test_recorder_swallows_store_failures(caplog):
    class BrokenStore:
        def create(self, entry):
            raise InfrastructureError("create audit entry", RuntimeError("db down"))

    recorder = AuditRecorder(BrokenStore())

    assert recorder.record(AuditEventType.LOGIN, user_id=uuid4()) is None
    assert "audit write failed" in caplog.text


def test_recorder_writes_entry(audit_store):
    user_id = uuid4()
    recorder = AuditRecorder(audit_store)

    entry = recorder.record(
        AuditEventType.PASSWORD_CHANGED,
        user_id=user_id,
        ip_address="10.0.0.2",
        user_agent="pytest",
        details={"revoked_sessions": 2},
    )

    assert entry is not None
    stored = audit_store.get_by_id(entry.log_id)
    assert stored.event_type == "password_changed"
    assert stored.details == {"revoked_sessions": 2}
    assert stored.user_agent == "pytest"
    assert stored.created_at == entry.created_at
