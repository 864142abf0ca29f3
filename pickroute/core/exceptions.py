"""
自定义异常类
提供更精确的错误处理和异常信息

每个异常都带有稳定的 error_code 和结构化的 details
（错误类型 + 当前状态 + 尝试的操作），调用方据此渲染准确的提示。
只有 DependencyUnavailableError（含数据库锁超时 DatabaseBusyError）允许调用方退避重试。
"""

from typing import Any, Dict, Optional


class BaseApplicationError(Exception):
    """应用基础异常类"""

    default_code: str = "APPLICATION_ERROR"
    retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str = None,
        details: Dict[str, Any] = None
    ):
        self.message = message
        self.error_code = error_code or self.default_code
        self.details = details or {}
        super().__init__(self.message)


class DatabaseError(BaseApplicationError):
    """数据库相关异常"""
    default_code = "DATABASE_ERROR"


class AuthenticationError(BaseApplicationError):
    """认证相关异常"""
    default_code = "AUTHENTICATION_REQUIRED"


class PermissionDeniedError(BaseApplicationError):
    """权限拒绝错误"""
    default_code = "PERMISSION_DENIED"


class InvalidRequestError(BaseApplicationError):
    """请求参数缺失或格式错误（坐标、购物车等）"""
    default_code = "INVALID_REQUEST"


class DependencyUnavailableError(BaseApplicationError):
    """餐厅目录或菜单服务不可用，可退避重试"""
    default_code = "DEPENDENCY_UNAVAILABLE"
    retryable = True


class DatabaseBusyError(DatabaseError, DependencyUnavailableError):
    """等待数据库锁超时，属于暂时不可用，可退避重试"""
    default_code = "DATABASE_BUSY"


class BusinessLogicError(BaseApplicationError):
    """业务逻辑异常"""
    default_code = "BUSINESS_RULE_VIOLATION"


class RestaurantNotFoundError(BusinessLogicError):
    """餐厅不存在"""
    default_code = "RESTAURANT_NOT_FOUND"

    def __init__(self, restaurant_id: str):
        super().__init__(
            f"餐厅 {restaurant_id} 不存在",
            details={"restaurant_id": restaurant_id},
        )


class OrderNotFoundError(BusinessLogicError):
    """订单不存在"""
    default_code = "ORDER_NOT_FOUND"

    def __init__(self, order_id: int):
        super().__init__(f"订单 {order_id} 不存在", details={"order_id": order_id})


class RestaurantUnavailableError(BusinessLogicError):
    """餐厅未营业或暂停接单"""
    default_code = "RESTAURANT_UNAVAILABLE"

    def __init__(self, restaurant_id: str, reason: str):
        super().__init__(
            f"餐厅 {restaurant_id} 当前无法接单（{reason}）",
            details={"restaurant_id": restaurant_id, "reason": reason, "action": "create_order"},
        )


class CapacityExceededError(BusinessLogicError):
    """餐厅并发订单已满"""
    default_code = "CAPACITY_EXCEEDED"

    def __init__(self, restaurant_id: str):
        super().__init__(
            f"餐厅 {restaurant_id} 订单容量已满",
            details={"restaurant_id": restaurant_id, "action": "create_order"},
        )


class InvalidTransitionError(BusinessLogicError):
    """订单状态转换不合法"""
    default_code = "INVALID_TRANSITION"

    def __init__(self, current_status: str, requested_status: str, reason: Optional[str] = None):
        message = f"订单无法从 {current_status} 转换到 {requested_status}"
        if reason:
            message = f"{message}：{reason}"
        details = {"current_status": current_status, "requested_status": requested_status}
        if reason:
            details["reason"] = reason
        super().__init__(message, details=details)


class InvalidStateError(BusinessLogicError):
    """当前订单状态不允许该操作"""
    default_code = "INVALID_STATE"

    def __init__(self, current_status: str, action: str):
        super().__init__(
            f"订单状态为 {current_status}，无法执行 {action}",
            details={"current_status": current_status, "action": action},
        )


class WrongStateError(InvalidStateError):
    """取餐核验时订单不在待取餐状态"""
    default_code = "WRONG_STATE"

    def __init__(self, current_status: str):
        super().__init__(current_status, "verify_pickup_code")


class InvalidCodeError(BusinessLogicError):
    """取餐码错误"""
    default_code = "INVALID_CODE"

    def __init__(self, order_id: int):
        super().__init__(
            "取餐码错误",
            details={"order_id": order_id, "action": "verify_pickup_code"},
        )


class CodeExpiredError(BusinessLogicError):
    """取餐码已过期"""
    default_code = "CODE_EXPIRED"

    def __init__(self, order_id: int, expired_at: str):
        super().__init__(
            "取餐码已过期",
            details={"order_id": order_id, "expired_at": expired_at, "action": "verify_pickup_code"},
        )
