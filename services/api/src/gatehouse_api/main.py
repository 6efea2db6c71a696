"""FastAPI 应用入口点。"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from starlette.concurrency import run_in_threadpool

from gatehouse_api.api.router import api_router
from gatehouse_api.core.config import Settings, get_settings
from gatehouse_api.core.errors import InfrastructureError
from gatehouse_api.core.logging_config import setup_logging
from gatehouse_api.core.security import PasswordHasher
from gatehouse_api.db.session import Database
from gatehouse_api.exceptions import register_exception_handlers
from gatehouse_api.middlewares import register_middlewares
from gatehouse_api.services.bootstrap import ensure_admin_user
from gatehouse_api.stores.credentials import CredentialStore

logger = logging.getLogger(__name__)


def _check_database(database: Database) -> None:
    try:
        database.ping()
    except InfrastructureError:
        logger.warning("database not reachable at startup, readiness probe will report 503")


def _bootstrap_admin(database: Database, settings: Settings) -> None:
    if not settings.admin_email or not settings.admin_password:
        logger.info("admin bootstrap skipped: no admin credentials configured")
        return
    credentials = CredentialStore(database, PasswordHasher(settings.password_hash_iterations))
    ensure_admin_user(
        credentials,
        username=settings.admin_username,
        email=settings.admin_email,
        password=settings.admin_password,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """启动时建立连接池并初始化管理员，退出时释放自行创建的连接池。"""
    settings: Settings = app.state.settings
    owns_database = app.state.database is None
    if owns_database:
        app.state.database = Database.from_settings(settings)
    database: Database = app.state.database

    await run_in_threadpool(_check_database, database)
    # 管理员初始化包含口令哈希，放到线程池执行。
    await run_in_threadpool(_bootstrap_admin, database, settings)
    logger.info("%s started: env=%s", settings.app_name, settings.app_env)
    try:
        yield
    finally:
        if owns_database:
            database.dispose()
            app.state.database = None
        logger.info("%s stopped", settings.app_name)


def create_app(database: Database | None = None, settings: Settings | None = None) -> FastAPI:
    """创建并配置 FastAPI 应用实例。

    传入 database 时由调用方负责其生命周期，测试中用于注入 SQLite 实例。
    """
    settings = settings or get_settings()
    app = FastAPI(
        title=settings.app_name,
        version="1.0.0",
        debug=settings.app_debug,
        lifespan=lifespan,
        description=(
            "账号认证与会话管理接口。\n\n"
            "所有业务接口统一返回：`{request_id, data, meta}`。\n"
            "登录后通过 `Authorization: Bearer <session token>` 访问需认证的接口。"
        ),
        openapi_tags=[
            {"name": "health", "description": "服务存活与就绪探针。"},
            {"name": "auth", "description": "注册、登录、会话与密码管理。"},
        ],
    )
    app.state.settings = settings
    app.state.database = database

    register_middlewares(app)
    register_exception_handlers(app)
    app.include_router(api_router, prefix=settings.api_prefix)
    return app


app = create_app()


def run() -> None:
    """命令行入口：收到终止信号后给在途请求留出宽限期。"""
    settings = get_settings()
    setup_logging(settings.log_level)
    uvicorn.run(
        app,
        host=settings.http_host,
        port=settings.http_port,
        timeout_graceful_shutdown=settings.shutdown_grace_seconds,
        log_config=None,
    )


if __name__ == "__main__":
    run()
