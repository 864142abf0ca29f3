"""
数据库管理器测试
"""

import threading
from contextlib import contextmanager

import pytest

from ..core.exceptions import DatabaseBusyError, DatabaseError, DependencyUnavailableError


@contextmanager
def _lock_held_elsewhere(db):
    """在另一个线程中持有数据库锁"""
    acquired, done = threading.Event(), threading.Event()

    def holder():
        with db.locked():
            acquired.set()
            done.wait(5)

    thread = threading.Thread(target=holder)
    thread.start()
    acquired.wait(5)
    try:
        yield
    finally:
        done.set()
        thread.join()


class TestDatabaseManager:
    """数据库锁与事务测试"""

    def test_lock_timeout_is_retryable(self, test_db):
        """测试等待锁超时抛出可重试的 DatabaseBusyError"""
        test_db.lock_timeout = 0.05
        with _lock_held_elsewhere(test_db):
            with pytest.raises(DatabaseBusyError) as exc_info:
                with test_db.transaction():
                    pass

        error = exc_info.value
        assert error.error_code == "DATABASE_BUSY"
        assert error.retryable is True
        assert isinstance(error, DatabaseError)
        assert isinstance(error, DependencyUnavailableError)

    def test_transaction_rolls_back_on_error(self, seeded_db):
        """测试事务内出错时回滚"""
        with pytest.raises(DatabaseError):
            with seeded_db.transaction() as conn:
                conn.execute("UPDATE restaurants SET current_orders = 3 WHERE id = 'r-noodle'")
                conn.execute("SELECT * FROM missing_table")

        row = seeded_db.execute_one("SELECT current_orders FROM restaurants WHERE id = 'r-noodle'")
        assert row[0] == 0

    def test_busy_database_returns_503(self, seeded_db, client, user_headers):
        """测试数据库繁忙时接口返回 503 且可重试"""
        seeded_db.lock_timeout = 0.05
        with _lock_held_elsewhere(seeded_db):
            response = client.get("/api/v1/orders", headers=user_headers)

        assert response.status_code == 503
        body = response.json()
        assert body["error_code"] == "DATABASE_BUSY"
        assert body["retryable"] is True
