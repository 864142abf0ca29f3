"""
餐厅容量账本
维护每个餐厅的 current_orders 计数，是唯一允许修改该字段的地方

占用和归还都是单条条件更新语句，不做先读后写：
- 占用：current_orders < max_concurrent_orders 时加一
- 归还：减一且不低于 0，重复归还视为无操作
"""

import logging
from typing import Optional

import duckdb

from ..core.database import DatabaseManager, db_manager
from ..core.exceptions import RestaurantNotFoundError

logger = logging.getLogger(__name__)

_RESERVE_SQL = """
UPDATE restaurants
SET current_orders = current_orders + 1, updated_at = now()
WHERE id = ? AND current_orders < max_concurrent_orders
RETURNING current_orders
"""

_RELEASE_SQL = """
UPDATE restaurants
SET current_orders = GREATEST(current_orders - 1, 0), updated_at = now()
WHERE id = ?
RETURNING current_orders
"""


class CapacityLedger:
    """容量账本，conn 参数用于加入调用方已开启的事务"""

    def __init__(self, db: Optional[DatabaseManager] = None):
        self.db = db or db_manager

    def try_reserve(self, restaurant_id: str, conn: Optional[duckdb.DuckDBPyConnection] = None) -> bool:
        """
        尝试为餐厅占用一个并发订单名额

        Returns:
            bool: 占用成功返回 True；已满返回 False 且不做任何修改
        """
        row = self._execute(_RESERVE_SQL, restaurant_id, conn)
        if row is None:
            self._ensure_exists(restaurant_id, conn)
            logger.info("capacity full for restaurant %s", restaurant_id)
            return False
        return True

    def release(self, restaurant_id: str, conn: Optional[duckdb.DuckDBPyConnection] = None) -> int:
        """归还一个名额，返回归还后的计数"""
        row = self._execute(_RELEASE_SQL, restaurant_id, conn)
        if row is None:
            raise RestaurantNotFoundError(restaurant_id)
        return row[0]

    def current(self, restaurant_id: str) -> int:
        """查询当前并发订单数"""
        row = self.db.execute_one("SELECT current_orders FROM restaurants WHERE id = ?", [restaurant_id])
        if row is None:
            raise RestaurantNotFoundError(restaurant_id)
        return row[0]

    def _execute(self, sql: str, restaurant_id: str, conn: Optional[duckdb.DuckDBPyConnection]):
        if conn is not None:
            return conn.execute(sql, [restaurant_id]).fetchone()
        with self.db.transaction() as tx:
            return tx.execute(sql, [restaurant_id]).fetchone()

    def _ensure_exists(self, restaurant_id: str, conn: Optional[duckdb.DuckDBPyConnection]):
        query = "SELECT 1 FROM restaurants WHERE id = ?"
        if conn is not None:
            row = conn.execute(query, [restaurant_id]).fetchone()
        else:
            row = self.db.execute_one(query, [restaurant_id])
        if row is None:
            raise RestaurantNotFoundError(restaurant_id)


# 全局服务实例
capacity_ledger = CapacityLedger()
