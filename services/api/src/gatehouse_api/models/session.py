"""登录会话模型。"""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Boolean, ForeignKey, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from gatehouse_api.models.base import Base, UTCDateTime


class AuthSession(Base):
    """一次登录授予的会话。

    过期时间在创建时确定且不再延长，续期需要签发新会话。
    """

    __tablename__ = "sessions"

    session_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    # 所属用户，用户被删除时会话级联删除。
    user_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.user_id", ondelete="CASCADE"), nullable=False, index=True
    )
    # 不透明会话令牌。
    token: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    ip_address: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    expires_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), server_default=func.now(), nullable=False)
    last_active_at: Mapped[datetime] = mapped_column(UTCDateTime(), server_default=func.now(), nullable=False)
    is_valid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def is_usable(self, now: datetime) -> bool:
        """仅当未失效且当前时间早于过期时间时可用。"""
        return self.is_valid and now < self.expires_at

    def __repr__(self) -> str:
        return f"AuthSession(session_id={self.session_id!s}, user_id={self.user_id!s}, is_valid={self.is_valid})"
