"""数据库基础模型导出。

导入全部模型，保证 ``Base.metadata`` 包含完整表结构。
"""

import gatehouse_api.models  # noqa: F401
from gatehouse_api.models.base import Base

__all__ = ["Base"]
