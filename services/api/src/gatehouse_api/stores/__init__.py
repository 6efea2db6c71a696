"""持久化存储对象。"""

from gatehouse_api.stores.audit import AuditStore
from gatehouse_api.stores.credentials import CredentialStore
from gatehouse_api.stores.sessions import SessionStore

__all__ = ["AuditStore", "CredentialStore", "SessionStore"]
