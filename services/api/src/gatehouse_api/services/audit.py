"""审计服务。"""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from gatehouse_api.models.audit import AuditEventType, AuditLogEntry
from gatehouse_api.stores.audit import AuditStore

logger = logging.getLogger(__name__)


class AuditRecorder:
    """尽力而为的审计写入通道。

    写入失败只记录日志，不影响触发它的主操作。
    """

    def __init__(self, store: AuditStore) -> None:
        self.store = store

    def record(
        self,
        event_type: AuditEventType | str,
        *,
        user_id: UUID | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> AuditLogEntry | None:
        """写入一条审计记录，失败时返回 None。"""
        entry = AuditLogEntry(
            user_id=user_id,
            event_type=str(event_type),
            ip_address=ip_address,
            user_agent=user_agent,
            details=dict(details or {}),
        )
        try:
            return self.store.create(entry)
        except Exception:
            logger.exception("audit write failed: event_type=%s user_id=%s", event_type, user_id)
            return None
