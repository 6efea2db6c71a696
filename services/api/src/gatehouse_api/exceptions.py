"""应用异常处理注册。"""

import logging
from datetime import datetime

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from gatehouse_api.core.errors import AuthError, ConstraintViolationError, InfrastructureError, UserLockedError
from gatehouse_api.utils.response import DEFAULT_ERROR_MESSAGE, error_payload

logger = logging.getLogger(__name__)

# 各版本 Starlette 对 422 常量命名不同，直接使用数值。
HTTP_422 = 422

_DEFAULT_HTTP_ERRORS: dict[int, tuple[str, str]] = {
    status.HTTP_400_BAD_REQUEST: ("BAD_REQUEST", "请求参数不合法。"),
    status.HTTP_401_UNAUTHORIZED: ("UNAUTHORIZED", "未登录或登录状态已失效。"),
    status.HTTP_403_FORBIDDEN: ("FORBIDDEN", "无权限访问该资源。"),
    status.HTTP_404_NOT_FOUND: ("NOT_FOUND", "请求资源不存在。"),
    status.HTTP_405_METHOD_NOT_ALLOWED: ("METHOD_NOT_ALLOWED", "请求方法不被允许。"),
    status.HTTP_409_CONFLICT: ("CONFLICT", "请求与当前数据状态冲突。"),
    HTTP_422: ("VALIDATION_ERROR", "请求参数校验失败。"),
}


def _parse_http_detail(detail: object, status_code: int) -> tuple[str, str, dict[str, object]]:
    code, message = _DEFAULT_HTTP_ERRORS.get(status_code, ("HTTP_ERROR", "请求处理失败。"))
    details: dict[str, object] = {"status_code": status_code, "reason": code.lower()}

    if isinstance(detail, dict):
        code = str(detail.get("code") or code)
        message = str(detail.get("message") or message)
        raw_details = detail.get("details")
        if isinstance(raw_details, dict):
            details.update(raw_details)
        return code, message, details

    if isinstance(detail, str) and detail.strip():
        # Starlette 默认的英文短语（如 "Not Found"）替换为统一中文提示。
        if detail.strip().lower() not in {"not found", "method not allowed", "unauthorized"}:
            message = detail
    return code, message, details


async def http_exception_handler(request: Request, exc: HTTPException):
    """将协议异常统一包装为标准错误结构。"""
    code, message, details = _parse_http_detail(exc.detail, exc.status_code)
    return JSONResponse(
        status_code=exc.status_code,
        content=error_payload(request, code=code, message=message, details=details),
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """统一处理请求参数校验错误，不回显提交的字段值。"""
    normalized_errors = [
        {
            "field": ".".join(str(item) for item in err.get("loc", []) if item != "body"),
            "message": err.get("msg"),
            "type": err.get("type"),
        }
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=HTTP_422,
        content=error_payload(
            request,
            code="VALIDATION_ERROR",
            message="请求参数校验失败。",
            details={"status_code": HTTP_422, "reason": "validation_error", "errors": normalized_errors},
        ),
    )


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


async def auth_error_handler(request: Request, exc: AuthError):
    """领域错误按错误类型映射状态码与错误码。"""
    details: dict[str, object] = {"status_code": exc.http_status, "reason": exc.code.lower()}
    headers = None
    if isinstance(exc, UserLockedError):
        details["locked_until"] = _isoformat(exc.locked_until)
    if exc.http_status == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(
        status_code=exc.http_status,
        content=error_payload(request, code=exc.code, message=exc.message, details=details),
        headers=headers,
    )


async def infrastructure_error_handler(request: Request, exc: InfrastructureError):
    """基础设施错误只记录日志，对外返回通用提示。"""
    if isinstance(exc, ConstraintViolationError):
        logger.warning("constraint violation: operation=%s request_id=%s", exc.operation, request.state.request_id)
        message = "请求与当前数据状态冲突。"
    else:
        logger.error(
            "infrastructure failure: operation=%s request_id=%s",
            exc.operation,
            request.state.request_id,
            exc_info=exc,
        )
        message = "服务暂时不可用，请稍后重试。"
    return JSONResponse(
        status_code=exc.http_status,
        content=error_payload(
            request,
            code=exc.code,
            message=message,
            details={"status_code": exc.http_status, "reason": exc.code.lower()},
        ),
    )


async def unexpected_exception_handler(request: Request, exc: Exception):
    """处理未捕获异常，避免内部细节泄露。"""
    logger.error("unhandled exception: request_id=%s", getattr(request.state, "request_id", ""), exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_payload(
            request,
            code="INTERNAL_ERROR",
            message=DEFAULT_ERROR_MESSAGE,
            details={
                "status_code": status.HTTP_500_INTERNAL_SERVER_ERROR,
                "reason": "unexpected_exception",
                "suggestion": "请稍后重试，若持续失败请联系管理员并提供 request_id。",
            },
        ),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """集中注册异常处理器。"""
    app.exception_handler(HTTPException)(http_exception_handler)
    app.exception_handler(RequestValidationError)(validation_exception_handler)
    app.exception_handler(AuthError)(auth_error_handler)
    app.exception_handler(InfrastructureError)(infrastructure_error_handler)
    app.exception_handler(Exception)(unexpected_exception_handler)
