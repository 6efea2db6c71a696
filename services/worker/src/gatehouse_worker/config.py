"""清理进程配置。"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from gatehouse_api.core.config import build_database_url


class Settings(BaseSettings):
    """清理进程运行参数，与 API 共用 GATEHOUSE_ 前缀的数据库配置。"""

    model_config = SettingsConfigDict(env_file=".env", env_prefix="GATEHOUSE_", extra="ignore")

    log_level: str = Field(default="INFO", description="日志级别。")

    db_host: str = Field(default="localhost", description="数据库主机。")
    db_port: int = Field(default=5432, description="数据库端口。")
    db_user: str = Field(default="postgres", description="数据库用户。")
    db_password: str = Field(default="password", description="数据库口令。")
    db_name: str = Field(default="web_application_db", description="数据库名称。")
    db_sslmode: str = Field(default="disable", description="数据库 SSL 模式。")
    database_url: str | None = Field(default=None, description="完整连接地址，配置后覆盖分项参数。")

    cleanup_interval_seconds: float = Field(default=3600.0, gt=0, description="过期会话清理间隔（秒）。")
    audit_retention_days: int | None = Field(
        default=None, gt=0, description="审计日志保留天数，未配置时不清理审计日志。"
    )
    shutdown_grace_seconds: int = Field(default=5, description="收到终止信号后等待当前清理完成的秒数。")

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
    """返回缓存后的清理进程配置。"""
    return Settings()
