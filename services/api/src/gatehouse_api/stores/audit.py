"""审计日志存储（只追加）。"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Select, delete, func, select

from gatehouse_api.core.security import utc_now
from gatehouse_api.db.session import Database
from gatehouse_api.models.audit import AuditLogEntry

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 500


def clamp_page(limit: int | None, offset: int | None) -> tuple[int, int]:
    """规范分页参数：limit 落在 [1, 500]，缺省 50；offset 不小于 0。"""
    if limit is None or limit <= 0:
        limit = DEFAULT_PAGE_SIZE
    return min(limit, MAX_PAGE_SIZE), max(0, offset or 0)


class AuditStore:
    """audit_log 表的读写契约，所有列表按时间倒序返回。"""

    def __init__(self, db: Database, *, clock: Callable[[], datetime] = utc_now) -> None:
        self.db = db
        self.clock = clock

    def create(self, entry: AuditLogEntry) -> AuditLogEntry:
        """追加一条记录，缺省时自动分配 ID 与创建时间。"""
        if entry.log_id is None:
            entry.log_id = uuid4()
        if entry.created_at is None:
            entry.created_at = self.clock()
        if entry.details is None:
            entry.details = {}
        entry.event_type = str(entry.event_type)
        with self.db.transaction("create audit entry") as db:
            db.add(entry)
        return entry

    def get_by_id(self, log_id: UUID) -> AuditLogEntry | None:
        with self.db.transaction("get audit entry") as db:
            return db.execute(select(AuditLogEntry).where(AuditLogEntry.log_id == log_id)).scalar_one_or_none()

    def get_by_user_id(self, user_id: UUID, *, limit: int | None = None, offset: int | None = None) -> list[AuditLogEntry]:
        stmt = select(AuditLogEntry).where(AuditLogEntry.user_id == user_id)
        return self._page(stmt, "list audit entries by user", limit, offset)

    def get_by_event_type(
        self, event_type: str, *, limit: int | None = None, offset: int | None = None
    ) -> list[AuditLogEntry]:
        stmt = select(AuditLogEntry).where(AuditLogEntry.event_type == str(event_type))
        return self._page(stmt, "list audit entries by event type", limit, offset)

    def list(self, *, limit: int | None = None, offset: int | None = None) -> list[AuditLogEntry]:
        return self._page(select(AuditLogEntry), "list audit entries", limit, offset)

    def count(self) -> int:
        with self.db.transaction("count audit entries") as db:
            return db.execute(select(func.count()).select_from(AuditLogEntry)).scalar_one()

    def delete_older_than(self, threshold: datetime) -> int:
        """保留策略清理：删除早于阈值的记录，返回删除条数。"""
        with self.db.transaction("purge audit entries") as db:
            result = db.execute(delete(AuditLogEntry).where(AuditLogEntry.created_at < threshold))
        return result.rowcount

    def _page(
        self, stmt: Select, operation: str, limit: int | None, offset: int | None
    ) -> list[AuditLogEntry]:
        limit, offset = clamp_page(limit, offset)
        stmt = (
            stmt.order_by(AuditLogEntry.created_at.desc(), AuditLogEntry.log_id.desc())
            .offset(offset)
            .limit(limit)
        )
        with self.db.transaction(operation) as db:
            return list(db.execute(stmt).scalars().all())
