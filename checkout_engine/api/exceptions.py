"""
异常处理器
把业务异常映射为统一的JSON错误响应
"""

import logging

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from checkout_engine.core.exceptions import BusinessException, ConsistencyError

logger = logging.getLogger(__name__)


async def business_exception_handler(request: Request, exc: BusinessException):
    """业务异常：资格、次数上限、冲突等原样返回给调用方"""
    if isinstance(exc, ConsistencyError):
        # 一致性错误只记录日志，不向用户暴露细节
        logger.error(f"一致性校验失败 {request.url.path}: {exc.message} {exc.details}")
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.error_code, "message": "订单处理失败，请稍后重试", "details": {}}
        )

    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_dict()))


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """请求参数校验失败"""
    return JSONResponse(
        status_code=422,
        content={
            "error": "validation_error",
            "message": "请求参数错误",
            "details": jsonable_encoder(exc.errors())
        }
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": "http_error", "message": exc.detail, "details": {}}
    )


async def database_exception_handler(request: Request, exc: SQLAlchemyError):
    """数据库异常"""
    logger.error(f"数据库操作失败 {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "database_error", "message": "数据库操作失败", "details": {}}
    )


async def general_exception_handler(request: Request, exc: Exception):
    """未处理的异常"""
    logger.error(f"未处理的异常 {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"error": "internal_error", "message": "服务器内部错误", "details": {}}
    )
