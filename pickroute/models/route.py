"""
路线匹配相关数据模型
"""

from datetime import datetime
from enum import Enum
from typing import FrozenSet, Optional

from pydantic import Field

from .base import ValueObject
from .geo import Coordinate


class TransportMode(str, Enum):
    """出行方式枚举"""
    CAR = "car"
    BIKE = "bike"
    WALK = "walk"


class RouteFilter(str, Enum):
    """路线匹配过滤条件"""
    READY_UNDER_10 = "ready_under_10"   # 出餐时间不超过阈值
    SAME_SIDE = "same_side"             # 道路同侧
    PARKING = "parking"                 # 可停车


class RouteRequest(ValueObject):
    """一次路线匹配的请求，匹配期间不可变"""
    from_: Coordinate = Field(..., alias="from", description="起点")
    to: Coordinate = Field(..., description="终点")
    via: Optional[Coordinate] = Field(None, description="途经点，存在时作为有效终点")
    max_detour_km: float = Field(5.0, ge=0, description="最大绕行距离（公里）")
    max_wait_minutes: float = Field(10.0, ge=0, description="最长等待时间（分钟）")
    transport_mode: TransportMode = Field(TransportMode.CAR, description="出行方式")
    filters: FrozenSet[RouteFilter] = Field(default_factory=frozenset, description="过滤条件")
    arrival_eta_minutes: Optional[float] = Field(None, ge=0, description="路线服务给出的到达时间（分钟）")

    @property
    def effective_end(self) -> Coordinate:
        return self.via if self.via is not None else self.to


class MatchResult(ValueObject):
    """单个餐厅的匹配结果，按 detour_km 升序排列"""
    restaurant_id: str
    name: str = ""
    detour_km: float = Field(..., ge=0, description="绕行距离（公里）")
    distance_km: float = Field(..., ge=0, description="距起点直线距离（公里）")
    ready_by_time: datetime = Field(..., description="预计出餐时间")
    pickup_confidence: int = Field(..., ge=0, le=100, description="取餐匹配度，仅用于排序展示")
    orderable: bool = Field(True, description="是否可下单")


class NearbyResult(ValueObject):
    """附近餐厅结果"""
    restaurant_id: str
    name: str = ""
    distance_km: float = Field(..., ge=0)
    bearing_degrees: float = Field(..., ge=0, lt=360, description="相对中心点的方位角")
    ready_by_time: datetime
    orderable: bool = True
