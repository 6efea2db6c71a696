"""应用中间件注册。"""

import logging
import uuid
from time import perf_counter

from fastapi import FastAPI, Request

logger = logging.getLogger(__name__)

_MAX_INBOUND_REQUEST_ID_LENGTH = 64


def _inbound_request_id(request: Request) -> str | None:
    """复用上游网关透传的请求 ID，过长或含空白时忽略。"""
    value = (request.headers.get("x-request-id") or "").strip()
    if not value or len(value) > _MAX_INBOUND_REQUEST_ID_LENGTH or any(ch.isspace() for ch in value):
        return None
    return value


async def request_id_middleware(request: Request, call_next):
    """注入请求追踪 ID，并通过响应头返回。"""
    request.state.request_id = _inbound_request_id(request) or str(uuid.uuid4())
    request.state.request_started_at = perf_counter()
    response = await call_next(request)
    response.headers["X-Request-Id"] = request.state.request_id
    elapsed_ms = round((perf_counter() - request.state.request_started_at) * 1000, 2)
    response.headers["X-Process-Time-Ms"] = str(elapsed_ms)
    logger.debug(
        "%s %s -> %s (%sms) request_id=%s",
        request.method,
        request.url.path,
        response.status_code,
        elapsed_ms,
        request.state.request_id,
    )
    return response


def register_middlewares(app: FastAPI) -> None:
    """集中注册中间件。"""
    app.middleware("http")(request_id_middleware)
