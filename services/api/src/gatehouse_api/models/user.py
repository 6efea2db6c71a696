"""用户与凭据模型。"""

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Boolean, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from gatehouse_api.models.base import Base, TimestampMixin, UTCDateTime


class User(Base, TimestampMixin):
    """用户实体，同时承载本地口令凭据与锁定状态。"""

    __tablename__ = "users"

    # 用户主键。
    user_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    # 登录用户名，全局唯一，区分大小写。
    username: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    # 登录与通知邮箱，全局唯一，统一小写存储。
    email: Mapped[str] = mapped_column(String(256), nullable=False, unique=True)
    # 口令哈希，不存明文，也不对外序列化。
    password_hash: Mapped[str] = mapped_column(String(256), nullable=False)
    first_name: Mapped[str] = mapped_column(String(128), nullable=False, default="")
    last_name: Mapped[str] = mapped_column(String(128), nullable=False, default="")

    # 邮箱验证状态与待验证令牌。
    is_email_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    email_verification_token: Mapped[str | None] = mapped_column(String(128), index=True)
    email_verification_sent_at: Mapped[datetime | None] = mapped_column(UTCDateTime())

    # 找回密码令牌及其过期时间。
    password_reset_token: Mapped[str | None] = mapped_column(String(128), index=True)
    password_reset_expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime())

    # 连续登录失败次数，仅在登录成功或显式解锁时清零。
    failed_login_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    # 锁定截止时间，仅在登录成功或重置密码时清空。
    locked_until: Mapped[datetime | None] = mapped_column(UTCDateTime())
    last_login_at: Mapped[datetime | None] = mapped_column(UTCDateTime())
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    def is_locked(self, now: datetime) -> bool:
        """判断在给定时刻账号是否处于锁定期。"""
        return self.locked_until is not None and now < self.locked_until

    def __repr__(self) -> str:
        return f"User(user_id={self.user_id!s}, username={self.username!r})"
