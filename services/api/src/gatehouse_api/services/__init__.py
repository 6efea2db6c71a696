"""服务层能力导出集合。"""

from gatehouse_api.services.audit import AuditRecorder
from gatehouse_api.services.auth import AuthConfig, AuthenticatedSession, AuthService
from gatehouse_api.services.bootstrap import ensure_admin_user

__all__ = [
    "AuditRecorder",
    "AuthConfig",
    "AuthenticatedSession",
    "AuthService",
    "ensure_admin_user",
]
