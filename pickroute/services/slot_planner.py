"""
取餐时段服务
根据餐厅出餐时间和用户到达时间计算预计出餐/到店时间和保留窗口

时段锁定只是预估：不写库、不占容量，下单时会重新计算。
"""

from datetime import datetime, timedelta
from typing import Callable, Optional

from ..config.settings import settings
from ..models.order import SlotBlockReason, SlotLock
from ..models.restaurant import RestaurantSnapshot


class SlotPlanner:
    """取餐时段计算器"""

    def __init__(self, hold_window_minutes: Optional[int] = None,
                 clock: Callable[[], datetime] = datetime.now):
        self.hold_window_minutes = (settings.hold_window_minutes
                                    if hold_window_minutes is None else hold_window_minutes)
        self.clock = clock

    def lock_slot(self, restaurant: RestaurantSnapshot, arrival_eta_minutes: float,
                  user_late_by_minutes: float = 0) -> SlotLock:
        """
        计算取餐时段

        Args:
            restaurant: 餐厅快照
            arrival_eta_minutes: 用户预计到达时间（分钟）
            user_late_by_minutes: 用户预计迟到时间（分钟）

        Returns:
            SlotLock: can_proceed 为 False 时 blocked_reason 给出原因
        """
        now = self.clock()
        ready_time = now + timedelta(minutes=restaurant.avg_prep_time_minutes)
        arrival_time = now + timedelta(minutes=arrival_eta_minutes + user_late_by_minutes)
        reason = self.blocked_reason(restaurant)

        return SlotLock(
            restaurant_id=restaurant.id,
            estimated_ready_time=ready_time,
            estimated_arrival_time=arrival_time,
            hold_window_end=ready_time + timedelta(minutes=self.hold_window_minutes),
            can_proceed=reason is None,
            blocked_reason=reason,
        )

    @staticmethod
    def blocked_reason(restaurant: RestaurantSnapshot) -> Optional[SlotBlockReason]:
        """餐厅无法接新订单的原因，可接单时返回 None"""
        if not restaurant.is_active:
            return SlotBlockReason.INACTIVE
        if not restaurant.accepts_orders:
            return SlotBlockReason.NOT_ACCEPTING
        if restaurant.at_capacity:
            return SlotBlockReason.AT_CAPACITY
        return None


# 全局服务实例
slot_planner = SlotPlanner()
