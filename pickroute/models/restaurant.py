"""
餐厅相关数据模型
餐厅记录由餐厅管理方维护，本服务只读取快照；current_orders 仅通过 CapacityLedger 修改
"""

from pydantic import Field

from .base import ValueObject
from .geo import Coordinate


class RestaurantSnapshot(ValueObject):
    """路线匹配和时段计算使用的餐厅只读快照"""
    id: str = Field(..., description="餐厅ID")
    name: str = Field("", description="餐厅名称")
    location: Coordinate = Field(..., description="餐厅位置")
    avg_prep_time_minutes: int = Field(0, ge=0, description="平均出餐时间（分钟）")
    accepts_orders: bool = Field(False, description="是否接单")
    is_active: bool = Field(True, description="是否营业")
    current_orders: int = Field(0, ge=0, description="当前进行中订单数")
    max_concurrent_orders: int = Field(10, ge=1, description="最大并发订单数")
    same_side_of_road: bool = Field(False, description="是否在道路同侧")
    parking_available: bool = Field(False, description="是否可停车")

    @property
    def at_capacity(self) -> bool:
        return self.current_orders >= self.max_concurrent_orders


class MenuItem(ValueObject):
    """菜单条目"""
    id: str = Field(..., description="菜品ID")
    restaurant_id: str = Field(..., description="所属餐厅ID")
    name: str = Field(..., description="菜品名称")
    price_cents: int = Field(..., ge=0, description="单价（分）")
    prep_time_minutes: int = Field(0, ge=0, description="制作时间（分钟）")
    is_available: bool = Field(True, description="是否可售")
