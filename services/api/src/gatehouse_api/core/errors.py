"""认证领域错误分类。

领域错误只由认证服务主动抛出，存储层只会抛出基础设施错误。
"""

from datetime import datetime


class AuthError(Exception):
    """认证领域错误基类。"""

    code = "AUTH_ERROR"
    http_status = 400
    default_message = "认证请求处理失败。"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidCredentialsError(AuthError):
    """账号或口令错误，与“账号不存在”不可区分。"""

    code = "INVALID_CREDENTIALS"
    http_status = 401
    default_message = "用户名或密码错误。"


class UserLockedError(AuthError):
    """连续失败次数过多，账号被临时锁定。"""

    code = "USER_LOCKED"
    http_status = 423
    default_message = "账号因多次登录失败已被临时锁定。"

    def __init__(self, locked_until: datetime | None = None, message: str | None = None) -> None:
        super().__init__(message)
        self.locked_until = locked_until


class EmailAlreadyExistsError(AuthError):
    code = "EMAIL_ALREADY_EXISTS"
    http_status = 409
    default_message = "邮箱已被注册。"


class UsernameAlreadyExistsError(AuthError):
    code = "USERNAME_ALREADY_EXISTS"
    http_status = 409
    default_message = "用户名已被占用。"


class UserNotFoundError(AuthError):
    """引用的用户不存在或已停用。"""

    code = "USER_NOT_FOUND"
    http_status = 404
    default_message = "用户不存在。"


class InvalidTokenError(AuthError):
    """会话、邮箱验证或重置令牌无效、错误或已过期。"""

    code = "INVALID_TOKEN"
    http_status = 401
    default_message = "令牌无效或已过期。"


class InfrastructureError(Exception):
    """存储等基础设施故障，始终携带操作名与原始异常。"""

    code = "INFRASTRUCTURE_ERROR"
    http_status = 503

    def __init__(self, operation: str, cause: BaseException | None = None) -> None:
        self.operation = operation
        self.cause = cause
        detail = f"{operation} failed"
        if cause is not None:
            detail = f"{detail}: {cause.__class__.__name__}"
        super().__init__(detail)


class ConstraintViolationError(InfrastructureError):
    """唯一约束等完整性约束冲突。"""

    code = "CONSTRAINT_VIOLATION"
    http_status = 409
