"""认证接口请求与响应结构。"""

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field

from gatehouse_api.schemas.common import BaseSchema

_EMAIL_PATTERN = r"^[^@\s]+@[^@\s]+\.[^@\s]+$"


class AuthRegisterRequest(BaseModel):
    """注册请求。"""

    # 用户名不允许包含 @，保证“邮箱或用户名”登录解析无歧义。
    username: str = Field(
        min_length=3,
        max_length=128,
        pattern=r"^[^@\s]+$",
        description="登录用户名，区分大小写。",
        examples=["alice"],
    )
    email: str = Field(
        min_length=5,
        max_length=256,
        pattern=_EMAIL_PATTERN,
        description="登录邮箱。",
        examples=["alice@example.com"],
    )
    password: str = Field(min_length=8, max_length=128, description="登录密码。", examples=["Secret123!"])
    first_name: str = Field(default="", max_length=128, description="名。")
    last_name: str = Field(default="", max_length=128, description="姓。")


class AuthLoginRequest(BaseModel):
    """登录请求，identifier 可为邮箱或用户名。"""

    identifier: str = Field(min_length=1, max_length=256, description="邮箱或用户名。", examples=["alice@example.com"])
    password: str = Field(min_length=1, max_length=128, description="登录密码。")


class VerifyEmailRequest(BaseModel):
    token: str = Field(min_length=1, max_length=128, description="邮箱验证令牌。")


class ForgotPasswordRequest(BaseModel):
    email: str = Field(min_length=5, max_length=256, pattern=_EMAIL_PATTERN, description="账号邮箱。")


class ResetPasswordRequest(BaseModel):
    token: str = Field(min_length=1, max_length=128, description="重置密码令牌。")
    new_password: str = Field(min_length=8, max_length=128, description="新密码。")


class ChangePasswordRequest(BaseModel):
    current_password: str = Field(min_length=1, max_length=128, description="当前密码。")
    new_password: str = Field(min_length=8, max_length=128, description="新密码。")


class UserData(BaseSchema):
    """对外用户信息，不含口令哈希、令牌与锁定状态。"""

    user_id: UUID = Field(description="用户 ID。")
    username: str = Field(description="用户名。")
    email: str = Field(description="邮箱。")
    first_name: str = Field(description="名。")
    last_name: str = Field(description="姓。")
    is_email_verified: bool = Field(description="邮箱是否已验证。")
    is_active: bool = Field(description="账号是否启用。")
    last_login_at: datetime | None = Field(default=None, description="最近登录时间（UTC）。")
    created_at: datetime | None = Field(default=None, description="创建时间（UTC）。")


class AuthRegisterData(BaseSchema):
    """注册结果结构。"""

    user: UserData = Field(description="新建用户。")
    email_verification_token: str | None = Field(
        default=None, description="邮箱验证令牌，仅调试模式回显，正式环境由外部通道投递。"
    )


class AuthLoginData(BaseSchema):
    """登录结果结构。"""

    access_token: str = Field(description="不透明会话令牌。")
    token_type: str = Field(default="bearer", description="令牌类型。")
    session_id: UUID = Field(description="会话 ID。")
    user_id: UUID = Field(description="用户 ID。")
    expires_at: datetime = Field(description="会话过期时间（UTC）。")
    expires_in: int = Field(description="距过期剩余秒数。")


class AuthLogoutData(BaseSchema):
    logged_out: bool = Field(description="是否已完成登出。")


class AuthMeData(BaseSchema):
    """当前登录用户与会话。"""

    user: UserData = Field(description="当前用户。")
    session_id: UUID = Field(description="当前会话 ID。")
    session_expires_at: datetime = Field(description="当前会话过期时间（UTC）。")


class VerifyEmailData(BaseSchema):
    user_id: UUID = Field(description="已验证的用户 ID。")
    verified: bool = Field(default=True, description="是否已验证。")


class ForgotPasswordData(BaseSchema):
    """找回密码结果，无论邮箱是否存在均返回 accepted。"""

    accepted: bool = Field(default=True, description="请求已受理。")
    reset_token: str | None = Field(default=None, description="重置令牌，仅调试模式回显。")


class ResetPasswordData(BaseSchema):
    reset: bool = Field(default=True, description="是否已重置。")


class ChangePasswordData(BaseSchema):
    changed: bool = Field(default=True, description="是否已修改。")


class SessionData(BaseSchema):
    """会话信息，不含令牌本身。"""

    session_id: UUID = Field(description="会话 ID。")
    ip_address: str | None = Field(default=None, description="登录来源 IP。")
    user_agent: str | None = Field(default=None, description="登录客户端标识。")
    created_at: datetime = Field(description="创建时间（UTC）。")
    last_active_at: datetime = Field(description="最近活跃时间（UTC）。")
    expires_at: datetime = Field(description="过期时间（UTC）。")
    is_valid: bool = Field(description="是否未被吊销。")
    is_current: bool = Field(default=False, description="是否为当前请求所用会话。")


class SessionRevokeData(BaseSchema):
    session_id: UUID = Field(description="被吊销的会话 ID。")
    revoked: bool = Field(default=True, description="是否已吊销。")


class AuditEntryData(BaseSchema):
    """审计记录。"""

    log_id: UUID = Field(description="记录 ID。")
    user_id: UUID | None = Field(default=None, description="主体用户 ID。")
    event_type: str = Field(description="事件类型。")
    ip_address: str | None = Field(default=None, description="来源 IP。")
    user_agent: str | None = Field(default=None, description="客户端标识。")
    details: dict[str, Any] | None = Field(default=None, description="事件细节。")
    created_at: datetime = Field(description="记录时间（UTC）。")
