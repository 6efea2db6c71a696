"""用户凭据存储。

负责用户记录的读写、口令哈希与登录失败锁定计数。查不到记录时返回 None，
由调用方区分“无此身份”与基础设施故障。
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta
from uuid import UUID, uuid4

from sqlalchemy import case, delete, func, literal, or_, select, update

from gatehouse_api.core.security import PasswordHasher, utc_now
from gatehouse_api.db.session import Database
from gatehouse_api.models.base import UTCDateTime
from gatehouse_api.models.user import User

DEFAULT_LOCKOUT_THRESHOLD = 5
DEFAULT_LOCKOUT_MINUTES = 30


def normalize_email(value: str) -> str:
    """标准化邮箱字段（去空格 + 小写）。"""
    return value.strip().lower()


def normalize_username(value: str) -> str:
    """用户名仅去除首尾空白，保留大小写。"""
    return value.strip()


class CredentialStore:
    """users 表的读写契约。"""

    def __init__(
        self,
        db: Database,
        hasher: PasswordHasher,
        *,
        clock: Callable[[], datetime] = utc_now,
        lockout_threshold: int = DEFAULT_LOCKOUT_THRESHOLD,
        lockout_minutes: int = DEFAULT_LOCKOUT_MINUTES,
    ) -> None:
        self.db = db
        self.hasher = hasher
        self.clock = clock
        self.lockout_threshold = lockout_threshold
        self.lockout_duration = timedelta(minutes=lockout_minutes)

    def create(self, user: User, password: str) -> User:
        """哈希口令并写入新用户。

        用户名或邮箱冲突时抛出 ConstraintViolationError。
        """
        # 先在事务外完成高成本哈希，缩短事务持有时间。
        user.password_hash = self.hasher.hash(password)
        if user.user_id is None:
            user.user_id = uuid4()
        user.username = normalize_username(user.username)
        user.email = normalize_email(user.email)
        if user.is_active is None:
            user.is_active = True
        if user.is_email_verified is None:
            user.is_email_verified = False
        user.failed_login_attempts = 0
        user.first_name = user.first_name or ""
        user.last_name = user.last_name or ""
        now = self.clock()
        user.created_at = now
        user.updated_at = now

        with self.db.transaction("create user") as db:
            db.add(user)
        return user

    def get_by_id(self, user_id: UUID) -> User | None:
        with self.db.transaction("get user by id") as db:
            return db.execute(select(User).where(User.user_id == user_id)).scalar_one_or_none()

    def get_by_email(self, email: str) -> User | None:
        with self.db.transaction("get user by email") as db:
            return db.execute(select(User).where(User.email == normalize_email(email))).scalar_one_or_none()

    def get_by_username(self, username: str) -> User | None:
        with self.db.transaction("get user by username") as db:
            return db.execute(
                select(User).where(User.username == normalize_username(username))
            ).scalar_one_or_none()

    def get_by_login(self, identifier: str) -> User | None:
        """按“邮箱或用户名”解析登录身份。

        单条查询同时匹配两列；若邮箱命中一人、用户名命中另一人，邮箱优先。
        """
        email = normalize_email(identifier)
        username = normalize_username(identifier)
        with self.db.transaction("get user by login") as db:
            candidates = (
                db.execute(select(User).where(or_(User.email == email, User.username == username)).limit(2))
                .scalars()
                .all()
            )
        for candidate in candidates:
            if candidate.email == email:
                return candidate
        return candidates[0] if candidates else None

    def update(self, user: User) -> User | None:
        """更新资料与状态字段并刷新 updated_at。

        口令、锁定计数与重置令牌只经由各自的专用操作修改，不随资料更新回写。
        """
        user.updated_at = self.clock()
        stmt = (
            update(User)
            .where(User.user_id == user.user_id)
            .values(
                username=normalize_username(user.username),
                email=normalize_email(user.email),
                first_name=user.first_name,
                last_name=user.last_name,
                is_email_verified=user.is_email_verified,
                email_verification_token=user.email_verification_token,
                email_verification_sent_at=user.email_verification_sent_at,
                is_active=user.is_active,
                updated_at=user.updated_at,
            )
            .execution_options(synchronize_session=False)
        )
        with self.db.transaction("update user") as db:
            result = db.execute(stmt)
        if result.rowcount == 0:
            return None
        return user

    def update_password(self, user_id: UUID, new_password: str) -> bool:
        """重新哈希并覆盖口令，同一次写入清空待处理的重置令牌。"""
        password_hash = self.hasher.hash(new_password)
        stmt = (
            update(User)
            .where(User.user_id == user_id)
            .values(
                password_hash=password_hash,
                password_reset_token=None,
                password_reset_expires_at=None,
                updated_at=self.clock(),
            )
            .execution_options(synchronize_session=False)
        )
        with self.db.transaction("update password") as db:
            result = db.execute(stmt)
        return result.rowcount > 0

    def set_password_reset_token(self, user_id: UUID, token: str, expires_at: datetime) -> bool:
        """仅写入重置令牌相关列，避免整行覆盖并发修改。"""
        stmt = (
            update(User)
            .where(User.user_id == user_id)
            .values(
                password_reset_token=token,
                password_reset_expires_at=expires_at,
                updated_at=self.clock(),
            )
            .execution_options(synchronize_session=False)
        )
        with self.db.transaction("set password reset token") as db:
            result = db.execute(stmt)
        return result.rowcount > 0

    def reset_password_with_token(self, token: str, new_password: str) -> UUID | None:
        """凭未过期的重置令牌原子地重置口令。

        同一条语句清空重置令牌、失败计数与锁定时间；令牌不匹配或已过期返回 None。
        """
        password_hash = self.hasher.hash(new_password)
        now = self.clock()
        stmt = (
            update(User)
            .where(User.password_reset_token == token)
            .where(User.password_reset_expires_at > now)
            .values(
                password_hash=password_hash,
                password_reset_token=None,
                password_reset_expires_at=None,
                failed_login_attempts=0,
                locked_until=None,
                updated_at=now,
            )
            .returning(User.user_id)
            .execution_options(synchronize_session=False)
        )
        with self.db.transaction("reset password with token") as db:
            return db.execute(stmt).scalars().first()

    def mark_email_verified(self, token: str) -> UUID | None:
        """按验证令牌将未验证用户原子地标记为已验证并清空令牌。"""
        stmt = (
            update(User)
            .where(User.email_verification_token == token)
            .where(User.is_email_verified.is_(False))
            .values(
                is_email_verified=True,
                email_verification_token=None,
                updated_at=self.clock(),
            )
            .returning(User.user_id)
            .execution_options(synchronize_session=False)
        )
        with self.db.transaction("mark email verified") as db:
            return db.execute(stmt).scalars().first()

    def verify_password(self, user: User, candidate: str) -> bool:
        """常量时间校验候选口令，不记录也不回显候选值。"""
        return self.hasher.verify(candidate, user.password_hash)

    def record_login(self, user_id: UUID) -> None:
        """登录成功后清零失败计数、解除锁定并记录登录时间。"""
        now = self.clock()
        stmt = (
            update(User)
            .where(User.user_id == user_id)
            .values(last_login_at=now, failed_login_attempts=0, locked_until=None, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        with self.db.transaction("record login") as db:
            db.execute(stmt)

    def increment_failed_login_attempts(self, user_id: UUID) -> int:
        """原子递增失败次数并返回新值。

        达到阈值时在同一条 UPDATE 中写入锁定截止时间；SET 子句中的列引用均为更新前的值，
        并发失败请求由数据库行锁串行化，不会丢失计数。用户不存在时返回 0。
        """
        now = self.clock()
        lock_until = literal(now + self.lockout_duration, type_=UTCDateTime())
        stmt = (
            update(User)
            .where(User.user_id == user_id)
            .values(
                failed_login_attempts=User.failed_login_attempts + 1,
                locked_until=case(
                    (User.failed_login_attempts + 1 >= self.lockout_threshold, lock_until),
                    else_=User.locked_until,
                ),
                updated_at=now,
            )
            .returning(User.failed_login_attempts)
            .execution_options(synchronize_session=False)
        )
        with self.db.transaction("increment failed login attempts") as db:
            attempts = db.execute(stmt).scalar_one_or_none()
        return attempts or 0

    def unlock(self, user_id: UUID) -> bool:
        """管理员显式解锁。"""
        stmt = (
            update(User)
            .where(User.user_id == user_id)
            .values(failed_login_attempts=0, locked_until=None, updated_at=self.clock())
            .execution_options(synchronize_session=False)
        )
        with self.db.transaction("unlock user") as db:
            result = db.execute(stmt)
        return result.rowcount > 0

    def list(self, *, offset: int = 0, limit: int = 50) -> list[User]:
        """按创建时间倒序分页列出用户。"""
        stmt = (
            select(User)
            .order_by(User.created_at.desc(), User.user_id.desc())
            .offset(max(0, offset))
            .limit(max(0, limit))
        )
        with self.db.transaction("list users") as db:
            return list(db.execute(stmt).scalars().all())

    def count(self) -> int:
        with self.db.transaction("count users") as db:
            return db.execute(select(func.count()).select_from(User)).scalar_one()

    def delete(self, user_id: UUID) -> bool:
        """硬删除用户。"""
        with self.db.transaction("delete user") as db:
            result = db.execute(delete(User).where(User.user_id == user_id))
        return result.rowcount > 0
