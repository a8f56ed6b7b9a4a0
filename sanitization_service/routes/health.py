"""
健康检查与统计API路由
"""
import time

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from .. import __version__
from ..services.policy_store import PolicyStore, get_policy_store
from ..utils.datetime_helper import to_iso_string, utc_now
from ..utils.logger import get_logger
from .common import envelope

logger = get_logger(__name__)
router = APIRouter(prefix="/api", tags=["health"])

_started_at = time.monotonic()


@router.get("/health")
async def health_check(store: PolicyStore = Depends(get_policy_store)):
    """
    服务健康检查

    数据库不可用时返回 503
    """
    db_health = store.database.check_health()
    healthy = db_health.get("status") == "healthy"

    body = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": to_iso_string(utc_now()),
        "version": __version__,
        "uptime": round(time.monotonic() - _started_at, 3),
        "checks": {"database": db_health},
    }
    if healthy:
        body["rulesCount"] = store.count_rules()
        return body

    logger.warning(f"健康检查失败: {db_health.get('error')}")
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content=body)


@router.get("/metrics", status_code=status.HTTP_200_OK)
async def get_metrics(store: PolicyStore = Depends(get_policy_store)):
    """规则统计"""
    return envelope(store.get_metrics())
