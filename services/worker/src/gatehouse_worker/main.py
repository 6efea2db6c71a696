"""过期会话清理进程。

主流程:
1) 等待一个清理间隔（期间收到终止信号立即退出）
2) 批量删除已过期会话，记录删除条数
3) 配置了保留天数时，同时清理过期审计日志
4) 单次清理失败只记录日志，下一个间隔重试
"""

import logging
import signal
import threading
from collections.abc import Callable
from datetime import datetime, timedelta

from gatehouse_api.core.logging_config import setup_logging
from gatehouse_api.core.security import utc_now
from gatehouse_api.db.session import Database
from gatehouse_api.stores.audit import AuditStore
from gatehouse_api.stores.sessions import SessionStore
from gatehouse_worker.config import get_settings

logger = logging.getLogger("gatehouse_worker")


def run_cleanup_once(
    sessions: SessionStore,
    audit: AuditStore | None = None,
    retention: timedelta | None = None,
    *,
    clock: Callable[[], datetime] = utc_now,
) -> int:
    """执行一次清理，返回删除的会话条数。"""
    deleted = sessions.delete_expired_sessions()
    logger.info("expired sessions deleted: count=%s", deleted)

    if audit is not None and retention is not None:
        threshold = clock() - retention
        purged = audit.delete_older_than(threshold)
        logger.info("audit entries purged: count=%s older_than=%s", purged, threshold.isoformat())
    return deleted


def run_cleanup_loop(
    sessions: SessionStore,
    stop_event: threading.Event,
    interval_seconds: float,
    *,
    audit: AuditStore | None = None,
    retention: timedelta | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> int:
    """按固定间隔清理，直到 stop_event 被设置，返回已执行的清理次数。"""
    ticks = 0
    # wait 返回 True 表示收到停止信号。
    while not stop_event.wait(interval_seconds):
        ticks += 1
        try:
            run_cleanup_once(sessions, audit, retention, clock=clock)
        except Exception:
            logger.exception("cleanup tick failed, will retry in %ss", interval_seconds)
    logger.info("cleanup loop stopped after %s ticks", ticks)
    return ticks


def _install_signal_handlers(stop_event: threading.Event) -> None:
    def _handle(signum, _frame) -> None:
        logger.info("received %s, stopping", signal.Signals(signum).name)
        stop_event.set()

    signal.signal(signal.SIGINT, _handle)
    signal.signal(signal.SIGTERM, _handle)


def main() -> None:
    """清理进程入口。"""
    settings = get_settings()
    setup_logging(settings.log_level)
    database = Database.from_settings(settings)
    sessions = SessionStore(database)
    audit = AuditStore(database) if settings.audit_retention_days else None
    retention = timedelta(days=settings.audit_retention_days) if settings.audit_retention_days else None

    stop_event = threading.Event()
    _install_signal_handlers(stop_event)

    worker = threading.Thread(
        target=run_cleanup_loop,
        args=(sessions, stop_event, settings.cleanup_interval_seconds),
        kwargs={"audit": audit, "retention": retention},
        name="session-cleanup",
        daemon=True,
    )
    logger.info("cleanup worker started: interval=%ss", settings.cleanup_interval_seconds)
    worker.start()
    try:
        stop_event.wait()
        worker.join(timeout=settings.shutdown_grace_seconds)
        if worker.is_alive():
            logger.warning("cleanup tick still running after %ss grace, exiting", settings.shutdown_grace_seconds)
    finally:
        database.dispose()


if __name__ == "__main__":
    main()
