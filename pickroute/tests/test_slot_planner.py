"""
取餐时段测试
"""

from datetime import timedelta

from .conftest import BASE_TIME, SEED_RESTAURANTS
from ..models.order import SlotBlockReason
from ..services.slot_planner import SlotPlanner

RESTAURANTS = {r.id: r for r in SEED_RESTAURANTS}


class TestLockSlot:
    """时段计算测试"""

    def test_times_from_prep_and_eta(self, clock):
        """测试出餐时间、到店时间和保留窗口"""
        planner = SlotPlanner(hold_window_minutes=15, clock=clock)
        slot = planner.lock_slot(RESTAURANTS["r-noodle"], arrival_eta_minutes=20, user_late_by_minutes=5)

        assert slot.can_proceed is True
        assert slot.blocked_reason is None
        assert slot.estimated_ready_time == BASE_TIME + timedelta(minutes=8)
        assert slot.estimated_arrival_time == BASE_TIME + timedelta(minutes=25)
        assert slot.hold_window_end == BASE_TIME + timedelta(minutes=23)

    def test_not_accepting_blocked(self, clock):
        """测试暂停接单的餐厅不能下单"""
        slot = SlotPlanner(clock=clock).lock_slot(RESTAURANTS["r-closed"], 10)
        assert slot.can_proceed is False
        assert slot.blocked_reason == SlotBlockReason.NOT_ACCEPTING

    def test_inactive_takes_precedence(self, clock):
        """测试歇业优先于其他原因"""
        inactive = RESTAURANTS["r-closed"].model_copy(update={"is_active": False})
        assert SlotPlanner(clock=clock).lock_slot(inactive, 10).blocked_reason == SlotBlockReason.INACTIVE

    def test_at_capacity_blocked(self, clock):
        """测试订单已满时不能下单"""
        full = RESTAURANTS["r-full"].model_copy(update={"current_orders": 1})
        slot = SlotPlanner(clock=clock).lock_slot(full, 10)
        assert slot.can_proceed is False
        assert slot.blocked_reason == SlotBlockReason.AT_CAPACITY
