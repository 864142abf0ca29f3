"""
订单相关的请求/响应模式
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from ..models.order import CartItem, Order, OrderItem, OrderStatus


class ValidateCartRequest(BaseModel):
    """购物车校验请求"""
    restaurant_id: str = Field(..., min_length=1, description="餐厅ID")
    items: List[CartItem] = Field(..., description="购物车条目")


class LockSlotRequest(BaseModel):
    """取餐时段锁定请求"""
    restaurant_id: str = Field(..., min_length=1, description="餐厅ID")
    arrival_eta_minutes: float = Field(..., ge=0, allow_inf_nan=False, description="预计到达时间（分钟）")
    user_late_by_minutes: float = Field(0, ge=0, allow_inf_nan=False, description="预计迟到时间（分钟）")


class CreateOrderRequest(LockSlotRequest):
    """订单创建请求"""
    items: List[CartItem] = Field(..., description="购物车条目")


class UpdateStatusRequest(BaseModel):
    """订单状态更新请求"""
    status: OrderStatus = Field(..., description="目标状态")
    delay_reason: Optional[str] = Field(None, max_length=200, description="延误原因")


class VerifyCodeRequest(BaseModel):
    """取餐码核验请求"""
    pickup_code: str = Field(..., description="四位取餐码")


class RateOrderRequest(BaseModel):
    """订单评价请求"""
    rating: int = Field(..., description="评分 1-5")
    comment: Optional[str] = Field(None, max_length=500, description="评价内容")


class OrderResponse(BaseModel):
    """订单响应"""
    order_id: int = Field(..., description="订单ID")
    order_number: str = Field(..., description="订单号")
    user_id: str
    restaurant_id: str
    status: OrderStatus = Field(..., description="订单状态")
    items: List[OrderItem] = Field(default_factory=list, description="订单明细")
    total_amount_cents: int = Field(..., description="订单金额（分）")
    pickup_code: Optional[str] = Field(None, description="取餐码，仅下单用户和管理员可见")
    pickup_code_expires_at: datetime
    estimated_arrival_time: datetime
    estimated_ready_time: datetime
    hold_window_end: datetime
    actual_ready_time: Optional[datetime] = None
    actual_pickup_time: Optional[datetime] = None
    delay_reason: Optional[str] = None
    user_late_by_minutes: int = 0
    rating: Optional[int] = None
    rating_comment: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_order(cls, order: Order, show_code: bool = True) -> "OrderResponse":
        data = order.model_dump(exclude={"id", "paid_amount_cents", "pickup_code"})
        return cls(order_id=order.id, pickup_code=order.pickup_code if show_code else None, **data)
