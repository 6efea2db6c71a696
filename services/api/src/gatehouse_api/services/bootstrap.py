"""启动时的管理员账号初始化。"""

from __future__ import annotations

import logging

from gatehouse_api.core.errors import InfrastructureError
from gatehouse_api.models.user import User
from gatehouse_api.stores.credentials import CredentialStore

logger = logging.getLogger(__name__)


def ensure_admin_user(
    credentials: CredentialStore,
    username: str,
    email: str,
    password: str,
) -> User | None:
    """若管理员邮箱尚无账号则创建，已存在时原样返回。

    初始化失败只记录日志，不阻止服务启动。
    """
    try:
        existing = credentials.get_by_email(email)
        if existing is not None:
            logger.info("admin user already present: user_id=%s", existing.user_id)
            return existing

        admin = credentials.create(
            User(
                username=username,
                email=email,
                first_name="Admin",
                last_name="User",
                is_active=True,
                is_email_verified=True,
            ),
            password,
        )
    except InfrastructureError:
        logger.exception("admin bootstrap failed: email=%s", email)
        return None

    logger.info("admin user created: user_id=%s", admin.user_id)
    return admin
