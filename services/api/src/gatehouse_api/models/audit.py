"""审计日志模型。"""

from datetime import datetime
from enum import StrEnum
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import String, Text, Uuid, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from gatehouse_api.models.base import Base, UTCDateTime


class AuditEventType(StrEnum):
    """安全相关事件类型。"""

    LOGIN = "login"  # 登录成功。
    LOGIN_FAILED = "login_failed"  # 登录失败，未知账号时不关联用户。
    LOGOUT = "logout"
    REGISTER = "register"
    ACCOUNT_LOCKED = "account_locked"  # 连续失败达到阈值。
    ACCOUNT_UNLOCKED = "account_unlocked"
    EMAIL_VERIFIED = "email_verified"
    PASSWORD_RESET_REQUESTED = "password_reset_requested"
    PASSWORD_RESET = "password_reset"
    PASSWORD_CHANGED = "password_changed"
    SESSION_REVOKED = "session_revoked"


class AuditLogEntry(Base):
    """只追加的安全审计记录，写入后不可修改。"""

    __tablename__ = "audit_log"

    log_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    # 主体用户 ID，匿名事件为空。
    user_id: Mapped[UUID | None] = mapped_column(Uuid, index=True)
    # 事件类别，自由字符串，常用值见 AuditEventType。
    event_type: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    ip_address: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    # 结构化事件细节。
    details: Mapped[dict[str, Any] | None] = mapped_column(JSONB)
    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime(), server_default=func.now(), nullable=False, index=True
    )

    def __repr__(self) -> str:
        return f"AuditLogEntry(log_id={self.log_id!s}, event_type={self.event_type!r})"
