# app/api/health.py
# 健康检查
#
# GET /health           存活探针，不访问任何依赖
# GET /health/detailed  数据库、Redis、工作流状态字典

from fastapi import APIRouter, Depends
from redis.exceptions import RedisError
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.database import get_db
from app.core.redis import redis_client
from app.models.order import OrderItemStatus
from app.services.order_status import WORKFLOW_STATUSES

router = APIRouter(tags=["Health"])


@router.get("/health")
async def health_check():
    return {"status": "ok"}


@router.get("/health/detailed")
async def detailed_health_check(db: AsyncSession = Depends(get_db)):
    """
    详细健康检查

    任一项异常时 status 为 degraded（仍返回 200，由监控按字段告警）。
    Redis 未连接只影响幂等去重，不影响业务接口。
    """
    services: dict[str, str] = {}
    degraded = False

    try:
        status_count = await db.scalar(select(func.count(OrderItemStatus.id)))
        services["database"] = "connected"
        if (status_count or 0) < len(WORKFLOW_STATUSES):
            services["workflow_statuses"] = f"incomplete ({status_count}/{len(WORKFLOW_STATUSES)})"
            degraded = True
        else:
            services["workflow_statuses"] = "ok"
    except SQLAlchemyError as e:
        services["database"] = f"error: {e}"
        degraded = True

    if not redis_client.is_connected:
        services["redis"] = "disconnected"
        degraded = True
    else:
        try:
            await redis_client.client.ping()
            services["redis"] = "connected"
        except RedisError as e:
            services["redis"] = f"error: {e}"
            degraded = True

    return {"status": "degraded" if degraded else "ok", "services": services}
