"""通用响应数据结构。"""

from pydantic import Field

from gatehouse_api.schemas.common import BaseSchema


class HealthStatusData(BaseSchema):
    """健康检查结果。"""

    status: str = Field(description="探针状态。")
