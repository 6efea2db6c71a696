"""健康检查接口。"""

from fastapi import APIRouter, Depends, Request, status

from gatehouse_api.db.session import Database
from gatehouse_api.dependencies import get_database
from gatehouse_api.schemas.common import ErrorResponse, SuccessResponse
from gatehouse_api.schemas.responses import HealthStatusData
from gatehouse_api.utils.response import success

router = APIRouter(prefix="/health", tags=["health"])


@router.get(
    "/live",
    summary="存活探针",
    description="用于容器编排系统检测服务进程是否存活。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[HealthStatusData],
    responses={500: {"model": ErrorResponse}},
)
def live(request: Request):
    """仅表示进程存活，不校验外部依赖。"""
    return success(request, {"status": "ok"})


@router.get(
    "/ready",
    summary="就绪探针",
    description="通过数据库连通性检测服务是否具备对外提供能力。",
    status_code=status.HTTP_200_OK,
    response_model=SuccessResponse[HealthStatusData],
    responses={503: {"model": ErrorResponse}},
)
def ready(request: Request, database: Database = Depends(get_database)):
    """数据库不可达时 ping 抛出 InfrastructureError，由处理器映射为 503。"""
    database.ping()
    return success(request, {"status": "ready"})
