"""
订单相关数据模型

订单状态机集中定义在 ORDER_TRANSITIONS 中：键为 (当前状态, 目标状态)，
值为允许执行该转换的角色集合。ready -> picked_up 不在表中，只能通过取餐码核验完成。
"""

from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, List, Optional, Tuple

from pydantic import BaseModel, Field

from .base import BaseEntity, TimestampMixin, ValueObject
from ..core.exceptions import InvalidTransitionError, PermissionDeniedError


class OrderStatus(str, Enum):
    """订单状态枚举"""
    PENDING = "pending"         # 待确认
    CONFIRMED = "confirmed"     # 已确认
    PREPARING = "preparing"     # 制作中
    READY = "ready"             # 待取餐
    PICKED_UP = "picked_up"     # 已取餐
    CANCELLED = "cancelled"     # 已取消
    NO_SHOW = "no_show"         # 未到店


class ActorRole(str, Enum):
    """操作者角色"""
    USER = "user"
    RESTAURANT = "restaurant"
    ADMIN = "admin"


class SlotBlockReason(str, Enum):
    """时段无法锁定的原因"""
    INACTIVE = "inactive"
    NOT_ACCEPTING = "not_accepting"
    AT_CAPACITY = "at_capacity"


TERMINAL_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.PICKED_UP, OrderStatus.CANCELLED, OrderStatus.NO_SHOW}
)
OPEN_STATUSES: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PREPARING, OrderStatus.READY}
)
# 出餐前允许附加延误说明
DELAY_ANNOTATABLE: FrozenSet[OrderStatus] = frozenset(
    {OrderStatus.PENDING, OrderStatus.CONFIRMED, OrderStatus.PREPARING}
)
# 进入这些状态时归还餐厅容量
CAPACITY_RELEASING: FrozenSet[OrderStatus] = TERMINAL_STATUSES

_KITCHEN = frozenset({ActorRole.RESTAURANT, ActorRole.ADMIN})
_ANYONE = frozenset({ActorRole.USER, ActorRole.RESTAURANT, ActorRole.ADMIN})

ORDER_TRANSITIONS: Dict[Tuple[OrderStatus, OrderStatus], FrozenSet[ActorRole]] = {
    (OrderStatus.PENDING, OrderStatus.CONFIRMED): _KITCHEN,
    (OrderStatus.CONFIRMED, OrderStatus.PREPARING): _KITCHEN,
    (OrderStatus.PREPARING, OrderStatus.READY): _KITCHEN,
    **{(status, status): _KITCHEN for status in DELAY_ANNOTATABLE},
    **{(status, OrderStatus.CANCELLED): _ANYONE for status in OPEN_STATUSES},
    **{(status, OrderStatus.NO_SHOW): _KITCHEN for status in OPEN_STATUSES},
}


def check_transition(current: OrderStatus, requested: OrderStatus,
                     role: ActorRole, delay_reason: Optional[str] = None) -> None:
    """
    校验状态转换是否合法

    Raises:
        InvalidTransitionError: 转换不在状态表中，或原地转换缺少延误原因
        PermissionDeniedError: 转换合法但当前角色无权执行
    """
    allowed_roles = ORDER_TRANSITIONS.get((current, requested))
    if allowed_roles is None:
        raise InvalidTransitionError(current.value, requested.value)
    if current == requested and not (delay_reason and delay_reason.strip()):
        raise InvalidTransitionError(current.value, requested.value, "原地转换必须附带延误原因")
    if role not in allowed_roles:
        raise PermissionDeniedError(
            f"{role.value} 无权将订单从 {current.value} 转换到 {requested.value}",
            details={
                "current_status": current.value,
                "requested_status": requested.value,
                "role": role.value,
            },
        )


class Actor(ValueObject):
    """
    操作者身份

    subject_id 对用户是用户ID，对餐厅是餐厅ID，管理员可为任意标识。
    """
    role: ActorRole
    subject_id: str

    @property
    def is_admin(self) -> bool:
        return self.role == ActorRole.ADMIN


class CartItem(BaseModel):
    """购物车条目"""
    menu_item_id: str = Field(..., min_length=1, description="菜品ID")
    quantity: int = Field(..., ge=1, description="数量")


class OrderItem(BaseEntity):
    """订单明细，随订单一起创建，之后不可修改"""
    menu_item_id: str = Field(..., description="菜品ID")
    item_name: str = Field(..., description="菜品名称")
    unit_price_cents: int = Field(..., ge=0, description="单价（分）")
    quantity: int = Field(..., ge=1, description="数量")
    subtotal_cents: int = Field(..., ge=0, description="小计（分）")

    @classmethod
    def priced(cls, menu_item_id: str, item_name: str, unit_price_cents: int, quantity: int) -> "OrderItem":
        return cls(
            menu_item_id=menu_item_id,
            item_name=item_name,
            unit_price_cents=unit_price_cents,
            quantity=quantity,
            subtotal_cents=unit_price_cents * quantity,
        )


class PricedCart(BaseModel):
    """按菜单核价后的购物车"""
    restaurant_id: str
    items: List[OrderItem]
    total_amount_cents: int = Field(..., ge=0, description="总金额（分）")
    estimated_prep_time_minutes: int = Field(..., ge=0, description="预计出餐时间（分钟）")


class SlotLock(ValueObject):
    """
    取餐时段预估

    仅用于提示，不占用容量；下单时会重新计算，真正的准入控制在 CapacityLedger。
    """
    restaurant_id: str
    estimated_ready_time: datetime = Field(..., description="预计出餐时间")
    estimated_arrival_time: datetime = Field(..., description="预计到店时间")
    hold_window_end: datetime = Field(..., description="保留取餐截止时间")
    can_proceed: bool = Field(..., description="是否可以下单")
    blocked_reason: Optional[SlotBlockReason] = Field(None, description="无法下单的原因")


class Order(BaseEntity, TimestampMixin):
    """订单完整模型"""
    id: int = Field(..., description="订单ID")
    order_number: str = Field(..., description="订单号")
    user_id: str = Field(..., description="用户ID")
    restaurant_id: str = Field(..., description="餐厅ID")
    items: List[OrderItem] = Field(default_factory=list, description="订单明细")
    total_amount_cents: int = Field(..., ge=0, description="订单总金额（分）")
    paid_amount_cents: int = Field(0, ge=0, description="已支付金额（分）")
    status: OrderStatus = Field(..., description="订单状态")
    pickup_code: str = Field(..., pattern=r"^\d{4}$", description="取餐码")
    pickup_code_expires_at: datetime = Field(..., description="取餐码过期时间")
    estimated_arrival_time: datetime
    estimated_ready_time: datetime
    hold_window_end: datetime
    actual_ready_time: Optional[datetime] = None
    actual_pickup_time: Optional[datetime] = None
    delay_reason: Optional[str] = None
    user_late_by_minutes: int = 0
    rating: Optional[int] = Field(None, ge=1, le=5)
    rating_comment: Optional[str] = None
