"""
统一错误处理模块
提供标准化的错误响应格式和错误处理中间件

主要功能：
- 统一的错误响应格式（带 retryable 标记，客户端据此决定是否退避重试）
- 自动异常捕获和日志记录
- HTTP状态码映射
"""

import json
import logging
import traceback
from typing import Any, Dict, Optional

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .database import db_manager
from .exceptions import BaseApplicationError, DatabaseError

logger = logging.getLogger(__name__)


class ErrorResponse:
    """标准错误响应格式"""

    def __init__(self, error_code: str, message: str,
                 details: Optional[Dict[str, Any]] = None,
                 http_status: int = 400,
                 retryable: bool = False):
        self.error_code = error_code
        self.message = message
        self.details = details or {}
        self.http_status = http_status
        self.retryable = retryable

    def to_dict(self) -> Dict[str, Any]:
        """转换为字典格式"""
        return {
            "success": False,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "retryable": self.retryable,
        }

    def to_json_response(self) -> JSONResponse:
        """转换为FastAPI JSONResponse"""
        return JSONResponse(
            status_code=self.http_status,
            content=self.to_dict()
        )


class ErrorHandler:
    """全局错误处理器"""

    # 错误代码到HTTP状态码的映射
    ERROR_CODE_STATUS_MAP = {
        "INVALID_REQUEST": 400,
        "AUTHENTICATION_REQUIRED": 401,
        "PERMISSION_DENIED": 403,
        "BUSINESS_RULE_VIOLATION": 422,
        "INTERNAL_ERROR": 500,

        # 餐厅相关错误
        "RESTAURANT_NOT_FOUND": 404,
        "RESTAURANT_UNAVAILABLE": 409,
        "CAPACITY_EXCEEDED": 409,

        # 订单相关错误
        "ORDER_NOT_FOUND": 404,
        "INVALID_TRANSITION": 409,
        "INVALID_STATE": 409,
        "WRONG_STATE": 409,
        "INVALID_CODE": 400,
        "CODE_EXPIRED": 410,

        # 基础设施错误
        "DATABASE_ERROR": 500,
        "DATABASE_BUSY": 503,
        "DEPENDENCY_UNAVAILABLE": 503,
    }

    @classmethod
    def handle_application_error(cls, error: BaseApplicationError) -> ErrorResponse:
        """处理应用业务异常"""
        http_status = cls.ERROR_CODE_STATUS_MAP.get(error.error_code, 400)
        if isinstance(error, DatabaseError) and error.error_code == "DATABASE_ERROR":
            logger.error("database error: %s", error.message)

        return ErrorResponse(
            error_code=error.error_code,
            message=error.message,
            details=error.details,
            http_status=http_status,
            retryable=error.retryable,
        )

    @classmethod
    def handle_http_exception(cls, error: HTTPException) -> ErrorResponse:
        """处理FastAPI HTTP异常"""
        error_code = "AUTHENTICATION_REQUIRED" if error.status_code == 401 else "HTTP_ERROR"
        return ErrorResponse(
            error_code=error_code,
            message=str(error.detail),
            details={"status_code": error.status_code},
            http_status=error.status_code
        )

    @classmethod
    def handle_validation_error(cls, error: RequestValidationError) -> ErrorResponse:
        """处理请求体验证错误"""
        return ErrorResponse(
            error_code="INVALID_REQUEST",
            message="请求参数验证失败",
            details={
                "validation_errors": [
                    {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg")}
                    for err in error.errors()
                ]
            },
            http_status=400
        )

    @classmethod
    def handle_unknown_error(cls, error: Exception) -> ErrorResponse:
        """处理未知异常"""
        # 记录详细的错误信息用于调试
        error_details = {
            "type": type(error).__name__,
            "message": str(error),
            "traceback": traceback.format_exc()
        }

        # 记录到系统日志
        cls._log_system_error(error_details)

        return ErrorResponse(
            error_code="INTERNAL_ERROR",
            message="系统内部错误",
            details={"error_type": type(error).__name__},
            http_status=500
        )

    @classmethod
    def _log_system_error(cls, error_details: Dict[str, Any]):
        """记录系统错误到数据库"""
        logger.error("unhandled error %s: %s", error_details["type"], error_details["message"])
        try:
            with db_manager.locked() as con:
                con.execute(
                    "INSERT INTO logs(user_id, actor_id, action, detail_json) VALUES (?,?,?,?)",
                    [None, None, "system_error", json.dumps(error_details, ensure_ascii=False)]
                )
        except Exception:
            # 如果连数据库日志都写不了，就只能写到进程日志
            logger.exception("failed to write system_error log")


async def application_error_handler(request: Request, exc: BaseApplicationError) -> JSONResponse:
    """应用异常处理中间件"""
    error_response = ErrorHandler.handle_application_error(exc)
    return error_response.to_json_response()


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """HTTP异常处理中间件"""
    error_response = ErrorHandler.handle_http_exception(exc)
    return error_response.to_json_response()


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """验证异常处理中间件"""
    error_response = ErrorHandler.handle_validation_error(exc)
    return error_response.to_json_response()


async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """通用异常处理中间件"""
    error_response = ErrorHandler.handle_unknown_error(exc)
    return error_response.to_json_response()


def create_success_response(data: Any = None, message: str = "操作成功") -> Dict[str, Any]:
    """创建标准成功响应"""
    response = {
        "success": True,
        "message": message
    }

    if data is not None:
        response["data"] = data

    return response
