"""会话存储。"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import delete, select, update

from gatehouse_api.core.security import utc_now
from gatehouse_api.db.session import Database
from gatehouse_api.models.session import AuthSession


class SessionStore:
    """sessions 表的读写契约。

    读取不过滤有效性与过期时间，是否可用由调用方按 ``AuthSession.is_usable`` 判断。
    """

    def __init__(self, db: Database, *, clock: Callable[[], datetime] = utc_now) -> None:
        self.db = db
        self.clock = clock

    def create(self, session: AuthSession) -> AuthSession:
        """写入新会话，令牌冲突时抛出 ConstraintViolationError。"""
        now = self.clock()
        if session.session_id is None:
            session.session_id = uuid4()
        if session.is_valid is None:
            session.is_valid = True
        session.created_at = session.created_at or now
        session.last_active_at = session.last_active_at or now
        with self.db.transaction("create session") as db:
            db.add(session)
        return session

    def get_by_id(self, session_id: UUID) -> AuthSession | None:
        with self.db.transaction("get session by id") as db:
            return db.execute(
                select(AuthSession).where(AuthSession.session_id == session_id)
            ).scalar_one_or_none()

    def get_by_token(self, token: str) -> AuthSession | None:
        with self.db.transaction("get session by token") as db:
            return db.execute(select(AuthSession).where(AuthSession.token == token)).scalar_one_or_none()

    def get_all_by_user_id(self, user_id: UUID) -> list[AuthSession]:
        """列出用户全部会话（含已失效），最近创建的在前。"""
        stmt = (
            select(AuthSession)
            .where(AuthSession.user_id == user_id)
            .order_by(AuthSession.created_at.desc(), AuthSession.session_id.desc())
        )
        with self.db.transaction("list sessions by user") as db:
            return list(db.execute(stmt).scalars().all())

    def invalidate(self, token: str) -> bool:
        """将令牌对应的会话标记为失效，重复调用安全；令牌不存在返回 False。"""
        stmt = (
            update(AuthSession)
            .where(AuthSession.token == token)
            .values(is_valid=False, last_active_at=self.clock())
            .execution_options(synchronize_session=False)
        )
        with self.db.transaction("invalidate session") as db:
            result = db.execute(stmt)
        return result.rowcount > 0

    def invalidate_all_for_user(self, user_id: UUID, *, except_session_id: UUID | None = None) -> int:
        """使用户全部有效会话失效，可保留一个当前会话，返回受影响条数。"""
        stmt = (
            update(AuthSession)
            .where(AuthSession.user_id == user_id)
            .where(AuthSession.is_valid.is_(True))
        )
        if except_session_id is not None:
            stmt = stmt.where(AuthSession.session_id != except_session_id)
        stmt = stmt.values(is_valid=False, last_active_at=self.clock()).execution_options(
            synchronize_session=False
        )
        with self.db.transaction("invalidate user sessions") as db:
            result = db.execute(stmt)
        return result.rowcount

    def update_last_active_at(self, session_id: UUID) -> bool:
        stmt = (
            update(AuthSession)
            .where(AuthSession.session_id == session_id)
            .values(last_active_at=self.clock())
            .execution_options(synchronize_session=False)
        )
        with self.db.transaction("touch session") as db:
            result = db.execute(stmt)
        return result.rowcount > 0

    def delete_expired_sessions(self) -> int:
        """删除过期时间早于当前时刻的会话，返回删除条数。"""
        stmt = delete(AuthSession).where(AuthSession.expires_at < self.clock())
        with self.db.transaction("delete expired sessions") as db:
            result = db.execute(stmt)
        return result.rowcount

    def delete_by_id(self, session_id: UUID) -> bool:
        with self.db.transaction("delete session") as db:
            result = db.execute(delete(AuthSession).where(AuthSession.session_id == session_id))
        return result.rowcount > 0
