"""ORM 模型导出集合。"""

from gatehouse_api.models.audit import AuditEventType, AuditLogEntry
from gatehouse_api.models.base import Base
from gatehouse_api.models.session import AuthSession
from gatehouse_api.models.user import User

__all__ = [
    "AuditEventType",
    "AuditLogEntry",
    "AuthSession",
    "Base",
    "User",
]
