"""应用运行配置。"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL


def build_database_url(
    *,
    host: str,
    port: int,
    user: str,
    password: str,
    name: str,
    sslmode: str,
) -> str:
    """按分项数据库参数拼接连接地址。"""
    url = URL.create(
        "postgresql+psycopg",
        username=user,
        password=password,
        host=host,
        port=port,
        database=name,
        query={"sslmode": sslmode},
    )
    return url.render_as_string(hide_password=False)


class Settings(BaseSettings):
    """认证服务共享配置。"""

    model_config = SettingsConfigDict(env_file=".env", env_prefix="GATEHOUSE_", extra="ignore")

    app_name: str = Field(default="Gatehouse Auth", description="应用名称。")
    app_env: str = Field(default="dev", description="运行环境标识。")
    app_debug: bool = Field(default=False, description="是否开启调试模式（会在找回密码接口回显令牌）。")
    api_prefix: str = Field(default="/api", description="统一接口前缀。")
    log_level: str = Field(default="INFO", description="日志级别。")

    db_host: str = Field(default="localhost", description="数据库主机。")
    db_port: int = Field(default=5432, description="数据库端口。")
    db_user: str = Field(default="postgres", description="数据库用户。")
    db_password: str = Field(default="password", description="数据库口令。")
    db_name: str = Field(default="web_application_db", description="数据库名称。")
    db_sslmode: str = Field(default="disable", description="数据库 SSL 模式。")
    database_url: str | None = Field(default=None, description="完整连接地址，配置后覆盖分项参数。")

    secret_key: str = Field(default="change-me-in-prod", description="共享密钥，用于令牌指纹。")
    session_ttl_minutes: int = Field(default=60, description="会话令牌有效期（分钟）。")
    password_reset_ttl_hours: int = Field(default=24, description="重置密码令牌有效期（小时）。")
    password_hash_iterations: int = Field(default=390000, description="PBKDF2 密码哈希迭代次数。")
    lockout_threshold: int = Field(default=5, description="触发锁定的连续失败次数。")
    lockout_minutes: int = Field(default=30, description="账号锁定时长（分钟）。")

    admin_username: str = Field(default="admin", description="启动时初始化的管理员用户名。")
    admin_email: str = Field(default="admin@example.com", description="启动时初始化的管理员邮箱。")
    admin_password: str = Field(default="admin_password", description="启动时初始化的管理员口令。")

    http_host: str = Field(default="0.0.0.0", description="监听地址。")
    http_port: int = Field(default=8080, description="监听端口。")
    shutdown_grace_seconds: int = Field(default=5, description="收到终止信号后等待在途请求的秒数。")

    @field_validator(
        "session_ttl_minutes",
        "password_reset_ttl_hours",
        "password_hash_iterations",
        "lockout_threshold",
        "lockout_minutes",
    )
    @classmethod
    def ensure_positive(cls, value: int) -> int:
        """有效期、迭代次数与锁定参数必须为正数。"""
        if value <= 0:
            raise ValueError("value must be positive")
        return value

    @property
    def sqlalchemy_url(self) -> str:
        """返回最终生效的数据库连接地址。"""
        if self.database_url:
            return self.database_url
        return build_database_url(
            host=self.db_host,
            port=self.db_port,
            user=self.db_user,
            password=self.db_password,
            name=self.db_name,
            sslmode=self.db_sslmode,
        )


@lru_cache
def get_settings() -> Settings:
    """返回缓存后的配置单例。"""
    return Settings()
