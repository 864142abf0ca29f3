"""
容量账本测试
"""

import threading

import pytest

from ..core.exceptions import RestaurantNotFoundError


class TestCapacityLedger:
    """容量占用与归还测试"""

    def test_reserve_until_full(self, seeded_db, ledger):
        """测试占满后返回 False 且计数不变"""
        assert ledger.try_reserve("r-full") is True
        assert ledger.try_reserve("r-full") is False
        assert ledger.current("r-full") == 1

    def test_release_floors_at_zero(self, seeded_db, ledger):
        """测试重复归还不会低于 0"""
        ledger.try_reserve("r-noodle")
        assert ledger.release("r-noodle") == 0
        assert ledger.release("r-noodle") == 0
        assert ledger.current("r-noodle") == 0

    def test_unknown_restaurant(self, seeded_db, ledger):
        """测试未知餐厅报错"""
        with pytest.raises(RestaurantNotFoundError):
            ledger.try_reserve("r-missing")
        with pytest.raises(RestaurantNotFoundError):
            ledger.release("r-missing")

    def test_concurrent_reserve_never_exceeds_capacity(self, seeded_db, ledger):
        """测试并发占用时成功次数恰好等于剩余容量"""
        results = []
        results_lock = threading.Lock()
        start = threading.Barrier(12)

        def worker():
            start.wait()
            ok = ledger.try_reserve("r-noodle")
            with results_lock:
                results.append(ok)

        threads = [threading.Thread(target=worker) for _ in range(12)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert results.count(True) == 5
        assert results.count(False) == 7
        assert ledger.current("r-noodle") == 5

    def test_upsert_keeps_ledger_count(self, seeded_db, ledger, directory):
        """测试同步餐厅资料不会覆盖账本计数"""
        ledger.try_reserve("r-noodle")
        snapshot = directory.get_snapshot("r-noodle")
        directory.upsert_snapshot(snapshot.model_copy(update={"current_orders": 0, "name": "新名字"}))

        refreshed = directory.get_snapshot("r-noodle")
        assert refreshed.name == "新名字"
        assert refreshed.current_orders == 1
