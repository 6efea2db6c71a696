"""认证与会话生命周期编排。

AuthService 本身不持有持久状态，只协调凭据、会话、审计三个存储。
领域错误（口令错误、锁定、令牌失效等）均由这里显式抛出；存储层只会抛出基础设施错误。
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from gatehouse_api.core.config import Settings
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
from gatehouse_api.core.security import fingerprint_token, generate_secure_token, utc_now
from gatehouse_api.models.audit import AuditEventType, AuditLogEntry
from gatehouse_api.models.session import AuthSession
from gatehouse_api.models.user import User
from gatehouse_api.services.audit import AuditRecorder
from gatehouse_api.stores.audit import AuditStore
from gatehouse_api.stores.credentials import CredentialStore
from gatehouse_api.stores.sessions import SessionStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuthConfig:
    """认证流程参数。"""

    secret_key: str
    session_ttl_minutes: int = 60
    password_reset_ttl_hours: int = 24

    @classmethod
    def from_settings(cls, settings: Settings) -> AuthConfig:
        return cls(
            secret_key=settings.secret_key,
            session_ttl_minutes=settings.session_ttl_minutes,
            password_reset_ttl_hours=settings.password_reset_ttl_hours,
        )


@dataclass
class AuthenticatedSession:
    """校验通过的会话及其所属用户。"""

    session: AuthSession
    user: User


class AuthService:
    """认证服务。"""

    def __init__(
        self,
        credentials: CredentialStore,
        sessions: SessionStore,
        audit: AuditStore,
        config: AuthConfig,
        *,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.credentials = credentials
        self.sessions = sessions
        self.audit_store = audit
        self.recorder = AuditRecorder(audit)
        self.config = config
        self.clock = clock

    def _fingerprint(self, token: str) -> str:
        return fingerprint_token(self.config.secret_key, token)

    def login(
        self,
        identifier: str,
        password: str,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> AuthSession:
        """校验账号口令并签发会话。

        未知账号、停用账号与口令错误统一返回 InvalidCredentialsError；
        锁定期内即使口令正确也返回 UserLockedError。
        """
        client = {"ip_address": ip_address, "user_agent": user_agent}
        user = self.credentials.get_by_login(identifier)
        if user is None or not user.is_active:
            self.recorder.record(
                AuditEventType.LOGIN_FAILED,
                user_id=user.user_id if user is not None else None,
                details={"successful": False, "reason": "unknown_identity" if user is None else "inactive"},
                **client,
            )
            raise InvalidCredentialsError()

        now = self.clock()
        if user.is_locked(now):
            self.recorder.record(
                AuditEventType.LOGIN_FAILED,
                user_id=user.user_id,
                details={"successful": False, "reason": "locked"},
                **client,
            )
            raise UserLockedError(locked_until=user.locked_until)

        if not self.credentials.verify_password(user, password):
            attempts = self.credentials.increment_failed_login_attempts(user.user_id)
            self.recorder.record(
                AuditEventType.LOGIN_FAILED,
                user_id=user.user_id,
                details={"successful": False, "reason": "invalid_password", "failed_attempts": attempts},
                **client,
            )
            if attempts >= self.credentials.lockout_threshold:
                revoked = self.sessions.invalidate_all_for_user(user.user_id)
                logger.warning("account locked: user_id=%s failed_attempts=%s", user.user_id, attempts)
                self.recorder.record(
                    AuditEventType.ACCOUNT_LOCKED,
                    user_id=user.user_id,
                    details={"failed_attempts": attempts, "revoked_sessions": revoked},
                    **client,
                )
            raise InvalidCredentialsError()

        token = generate_secure_token()
        session = self.sessions.create(
            AuthSession(
                user_id=user.user_id,
                token=token,
                ip_address=ip_address,
                user_agent=user_agent,
                expires_at=now + timedelta(minutes=self.config.session_ttl_minutes),
                created_at=now,
                last_active_at=now,
                is_valid=True,
            )
        )
        self.credentials.record_login(user.user_id)
        logger.info("login succeeded: user_id=%s session=%s", user.user_id, self._fingerprint(token))
        self.recorder.record(
            AuditEventType.LOGIN,
            user_id=user.user_id,
            details={"successful": True, "session_id": str(session.session_id)},
            **client,
        )
        return session

    def register(
        self,
        username: str,
        email: str,
        password: str,
        first_name: str = "",
        last_name: str = "",
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> User:
        """注册新用户：先查邮箱再查用户名，创建为启用但未验证的账号。"""
        if self.credentials.get_by_email(email) is not None:
            raise EmailAlreadyExistsError()
        if self.credentials.get_by_username(username) is not None:
            raise UsernameAlreadyExistsError()

        now = self.clock()
        user = User(
            username=username,
            email=email,
            first_name=first_name or "",
            last_name=last_name or "",
            is_active=True,
            is_email_verified=False,
            email_verification_token=generate_secure_token(),
            email_verification_sent_at=now,
        )
        try:
            user = self.credentials.create(user, password)
        except ConstraintViolationError:
            # 并发注册在检查与写入之间抢先落库，重新检查以给出具体冲突类型。
            if self.credentials.get_by_email(email) is not None:
                raise EmailAlreadyExistsError() from None
            if self.credentials.get_by_username(username) is not None:
                raise UsernameAlreadyExistsError() from None
            raise

        logger.info("user registered: user_id=%s", user.user_id)
        self.recorder.record(
            AuditEventType.REGISTER,
            user_id=user.user_id,
            ip_address=ip_address,
            user_agent=user_agent,
            details={"username": user.username},
        )
        return user

    def logout(
        self,
        token: str,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        """使会话失效；令牌不存在或已失效时静默成功。"""
        session = self.sessions.get_by_token(token)
        if session is None:
            return
        was_valid = session.is_valid
        self.sessions.invalidate(token)
        if was_valid:
            self.recorder.record(
                AuditEventType.LOGOUT,
                user_id=session.user_id,
                ip_address=ip_address,
                user_agent=user_agent,
                details={"session_id": str(session.session_id)},
            )

    def validate_session(self, token: str) -> AuthenticatedSession:
        """校验会话令牌，每个已认证请求都会调用。

        令牌不存在、已失效或已过期抛出 InvalidTokenError；
        所属用户不存在或已停用抛出 UserNotFoundError。
        """
        session = self.sessions.get_by_token(token)
        if session is None or not session.is_usable(self.clock()):
            raise InvalidTokenError()

        user = self.credentials.get_by_id(session.user_id)
        if user is None or not user.is_active:
            raise UserNotFoundError()

        try:
            self.sessions.update_last_active_at(session.session_id)
        except InfrastructureError:
            logger.warning("touch session failed: session_id=%s", session.session_id, exc_info=True)
        return AuthenticatedSession(session=session, user=user)

    def verify_email(
        self,
        token: str,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> UUID:
        """凭验证令牌标记邮箱已验证，返回用户 ID。"""
        user_id = self.credentials.mark_email_verified(token)
        if user_id is None:
            raise InvalidTokenError()
        self.recorder.record(
            AuditEventType.EMAIL_VERIFIED,
            user_id=user_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        return user_id

    def forgot_password(
        self,
        email: str,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> str | None:
        """生成重置令牌并返回，供外部通道投递。

        邮箱不存在时返回 None 而不报错，避免暴露账号是否存在。
        """
        user = self.credentials.get_by_email(email)
        if user is None or not user.is_active:
            return None

        token = generate_secure_token()
        expires_at = self.clock() + timedelta(hours=self.config.password_reset_ttl_hours)
        if not self.credentials.set_password_reset_token(user.user_id, token, expires_at):
            return None
        self.recorder.record(
            AuditEventType.PASSWORD_RESET_REQUESTED,
            user_id=user.user_id,
            ip_address=ip_address,
            user_agent=user_agent,
            details={"token_fingerprint": self._fingerprint(token), "expires_at": expires_at.isoformat()},
        )
        return token

    def reset_password(
        self,
        token: str,
        new_password: str,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> UUID:
        """凭重置令牌设置新口令，同时解除锁定并吊销全部会话。"""
        user_id = self.credentials.reset_password_with_token(token, new_password)
        if user_id is None:
            raise InvalidTokenError()
        revoked = self.sessions.invalidate_all_for_user(user_id)
        logger.info("password reset: user_id=%s revoked_sessions=%s", user_id, revoked)
        self.recorder.record(
            AuditEventType.PASSWORD_RESET,
            user_id=user_id,
            ip_address=ip_address,
            user_agent=user_agent,
            details={"token_fingerprint": self._fingerprint(token), "revoked_sessions": revoked},
        )
        return user_id

    def change_password(
        self,
        user_id: UUID,
        current_password: str,
        new_password: str,
        *,
        current_session_id: UUID | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        """校验当前口令后修改口令，并吊销除当前会话外的其它会话。"""
        user = self.credentials.get_by_id(user_id)
        if user is None or not user.is_active:
            raise UserNotFoundError()
        if not self.credentials.verify_password(user, current_password):
            raise InvalidCredentialsError("当前密码错误。")

        self.credentials.update_password(user_id, new_password)
        revoked = self.sessions.invalidate_all_for_user(user_id, except_session_id=current_session_id)
        self.recorder.record(
            AuditEventType.PASSWORD_CHANGED,
            user_id=user_id,
            ip_address=ip_address,
            user_agent=user_agent,
            details={"revoked_sessions": revoked},
        )

    def list_sessions(self, user_id: UUID) -> list[AuthSession]:
        return self.sessions.get_all_by_user_id(user_id)

    def revoke_session(
        self,
        user_id: UUID,
        session_id: UUID,
        *,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        """吊销用户自己的某个会话；不属于该用户的会话按令牌无效处理。"""
        session = self.sessions.get_by_id(session_id)
        if session is None or session.user_id != user_id:
            raise InvalidTokenError()
        self.sessions.invalidate(session.token)
        self.recorder.record(
            AuditEventType.SESSION_REVOKED,
            user_id=user_id,
            ip_address=ip_address,
            user_agent=user_agent,
            details={"session_id": str(session_id)},
        )

    def audit_trail(self, user_id: UUID, *, limit: int | None = None, offset: int | None = None) -> list[AuditLogEntry]:
        return self.audit_store.get_by_user_id(user_id, limit=limit, offset=offset)

    def unlock_user(self, user_id: UUID) -> None:
        """管理员解锁账号。"""
        if not self.credentials.unlock(user_id):
            raise UserNotFoundError()
        self.recorder.record(AuditEventType.ACCOUNT_UNLOCKED, user_id=user_id)
