from fastapi import APIRouter
from fastapi.responses import JSONResponse
import logging

from checkout_engine.core.config import settings
from checkout_engine.core.redis import redis_manager
from checkout_engine.core.database import database_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["健康检查"])


@router.get("")
async def health_check():
    """进程存活检查，不访问外部依赖"""
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
        "ledger_max_retries": settings.ledger_max_retries
    }


@router.get("/ready")
async def readiness_check():
    """
    就绪检查

    结算只依赖数据库：数据库不可用返回503；
    Redis不可用只标记缓存降级，仍视为就绪
    """
    db_status = await database_service.health_check()
    cache_ok = await redis_manager.ping() if redis_manager.available else False

    ready = db_status["status"] == "healthy"
    body = {
        "ready": ready,
        "database": db_status,
        "cache": "ok" if cache_ok else "degraded"
    }

    if not cache_ok:
        logger.warning("Redis不可用，优惠券展示缓存已降级")
    if not ready:
        logger.error(f"数据库不可用: {db_status['message']}")
        return JSONResponse(status_code=503, content=body)
    return body
