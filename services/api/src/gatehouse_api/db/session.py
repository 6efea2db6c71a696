"""数据库连接池与事务边界。

所有存储对象通过构造参数显式接收同一个 Database 实例，不使用模块级全局引擎，
测试中可直接替换为基于 SQLite 的实例。
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import TYPE_CHECKING

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from gatehouse_api.core.errors import ConstraintViolationError, InfrastructureError

if TYPE_CHECKING:
    from gatehouse_api.core.config import Settings

logger = logging.getLogger(__name__)

# 与原有部署保持一致：最多 10 个连接，连接最长存活 1 小时，建连超时 10 秒。
POOL_SIZE = 10
POOL_RECYCLE_SECONDS = 3600
CONNECT_TIMEOUT_SECONDS = 10


class Database:
    """事务化查询执行器。"""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        # 会话在事务结束后即关闭，提交后不使对象过期，调用方仍可读取已加载字段。
        self._session_factory = sessionmaker(
            bind=engine,
            autoflush=False,
            autocommit=False,
            expire_on_commit=False,
            class_=Session,
        )

    @classmethod
    def from_url(cls, url: str, **engine_kwargs) -> Database:
        """按连接地址创建实例。"""
        return cls(create_engine(url, future=True, **engine_kwargs))

    @classmethod
    def from_settings(cls, settings: Settings) -> Database:
        """按应用配置创建带连接池的实例。"""
        url = settings.sqlalchemy_url
        engine_kwargs: dict[str, object] = {"pool_pre_ping": True}
        if not url.startswith("sqlite"):
            engine_kwargs.update(
                pool_size=POOL_SIZE,
                max_overflow=0,
                pool_recycle=POOL_RECYCLE_SECONDS,
                connect_args={"connect_timeout": CONNECT_TIMEOUT_SECONDS},
            )
        return cls.from_url(url, **engine_kwargs)

    @contextmanager
    def transaction(self, operation: str) -> Iterator[Session]:
        """在单个事务内执行，成功提交，任何异常回滚。

        完整性约束冲突转换为 ConstraintViolationError，其余数据库异常转换为
        InfrastructureError，均保留操作名与原始异常。
        """
        db = self._session_factory()
        try:
            yield db
            db.commit()
        except IntegrityError as exc:
            db.rollback()
            raise ConstraintViolationError(operation, exc) from exc
        except SQLAlchemyError as exc:
            db.rollback()
            raise InfrastructureError(operation, exc) from exc
        except BaseException:
            db.rollback()
            raise
        finally:
            db.close()

    def ping(self) -> None:
        """执行轻量探活语句。"""
        try:
            with self.engine.connect() as conn:
                conn.execute(text("select 1"))
        except SQLAlchemyError as exc:
            raise InfrastructureError("ping database", exc) from exc

    def dispose(self) -> None:
        """关闭连接池。"""
        self.engine.dispose()
        logger.info("database pool disposed")
