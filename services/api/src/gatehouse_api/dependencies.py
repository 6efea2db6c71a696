"""请求上下文依赖。

职责:
1. 从应用状态取出共享的 Database 实例并组装认证服务。
2. 解析 Bearer 会话令牌并完成会话校验。
3. 提取客户端 IP 与 User-Agent，供审计记录使用。
"""

from dataclasses import dataclass

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from gatehouse_api.core.config import Settings, get_settings
from gatehouse_api.core.security import PasswordHasher
from gatehouse_api.db.session import Database
from gatehouse_api.services.auth import AuthConfig, AuthenticatedSession, AuthService
from gatehouse_api.stores.audit import AuditStore
from gatehouse_api.stores.credentials import CredentialStore
from gatehouse_api.stores.sessions import SessionStore

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class ClientInfo:
    """请求来源信息。"""

    ip_address: str | None
    user_agent: str | None


def get_database(request: Request) -> Database:
    """返回应用生命周期内创建的 Database 实例。"""
    database = getattr(request.app.state, "database", None)
    if database is None:
        raise RuntimeError("database is not initialised")
    return database


def get_app_settings(request: Request) -> Settings:
    """返回创建应用时使用的配置。"""
    settings = getattr(request.app.state, "settings", None)
    return settings if settings is not None else get_settings()


def build_auth_service(database: Database, settings: Settings) -> AuthService:
    """按配置组装三个存储与认证服务。"""
    credentials = CredentialStore(
        database,
        PasswordHasher(settings.password_hash_iterations),
        lockout_threshold=settings.lockout_threshold,
        lockout_minutes=settings.lockout_minutes,
    )
    return AuthService(
        credentials,
        SessionStore(database),
        AuditStore(database),
        AuthConfig.from_settings(settings),
    )


def get_auth_service(
    database: Database = Depends(get_database),
    settings: Settings = Depends(get_app_settings),
) -> AuthService:
    return build_auth_service(database, settings)


def get_client_info(request: Request) -> ClientInfo:
    """从代理头或连接信息中提取客户端 IP。"""
    # 优先读取反向代理透传头，兼容网关/负载均衡场景。
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        ip_address = forwarded.split(",")[0].strip() or None
    elif request.client:
        ip_address = request.client.host
    else:
        ip_address = None
    return ClientInfo(ip_address=ip_address, user_agent=request.headers.get("user-agent"))


def get_bearer_token(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> str:
    """提取 Bearer 会话令牌，缺失时返回 401。"""
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="缺少访问令牌。",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return credentials.credentials


def get_current_session(
    token: str = Depends(get_bearer_token),
    service: AuthService = Depends(get_auth_service),
) -> AuthenticatedSession:
    """校验会话；令牌无效由 InvalidTokenError 处理器映射为 401。"""
    return service.validate_session(token)
