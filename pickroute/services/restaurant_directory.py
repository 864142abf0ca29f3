"""
餐厅目录
从 restaurants 表读取餐厅快照，供路线匹配、时段计算和下单使用

目录数据由餐厅管理方同步写入（upsert_snapshot）；current_orders 只由 CapacityLedger 修改。
读取失败或等待超时统一转为 DependencyUnavailableError，调用方可退避重试。
"""

import logging
from typing import List, Optional

from ..core.database import DatabaseManager, db_manager
from ..core.exceptions import DatabaseError, DependencyUnavailableError, RestaurantNotFoundError
from ..models.geo import Coordinate
from ..models.restaurant import RestaurantSnapshot

logger = logging.getLogger(__name__)

_SNAPSHOT_COLUMNS = """
id, name, lat, lng, avg_prep_time_minutes, accepts_orders, is_active,
current_orders, max_concurrent_orders, same_side_of_road, parking_available
"""


class RestaurantDirectory:
    """餐厅目录服务"""

    def __init__(self, db: Optional[DatabaseManager] = None):
        self.db = db or db_manager

    def get_snapshot(self, restaurant_id: str) -> RestaurantSnapshot:
        """获取单个餐厅快照，不存在时抛出 RestaurantNotFoundError"""
        row = self._fetch_one(f"SELECT {_SNAPSHOT_COLUMNS} FROM restaurants WHERE id = ?", [restaurant_id])
        if row is None:
            raise RestaurantNotFoundError(restaurant_id)
        return self._to_snapshot(row)

    def list_snapshots(self, active_only: bool = False) -> List[RestaurantSnapshot]:
        """列出餐厅快照；目录为空时返回空列表"""
        query = f"SELECT {_SNAPSHOT_COLUMNS} FROM restaurants"
        if active_only:
            query += " WHERE is_active"
        query += " ORDER BY id"
        return [self._to_snapshot(row) for row in self._fetch_all(query)]

    def upsert_snapshot(self, snapshot: RestaurantSnapshot) -> None:
        """同步餐厅资料；已存在时保留账本维护的 current_orders"""
        try:
            with self.db.transaction() as conn:
                conn.execute(
                    """
                    INSERT INTO restaurants (
                        id, name, lat, lng, avg_prep_time_minutes, accepts_orders, is_active,
                        current_orders, max_concurrent_orders, same_side_of_road, parking_available
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT (id) DO UPDATE SET
                        name = excluded.name,
                        lat = excluded.lat,
                        lng = excluded.lng,
                        avg_prep_time_minutes = excluded.avg_prep_time_minutes,
                        accepts_orders = excluded.accepts_orders,
                        is_active = excluded.is_active,
                        max_concurrent_orders = excluded.max_concurrent_orders,
                        same_side_of_road = excluded.same_side_of_road,
                        parking_available = excluded.parking_available,
                        updated_at = now()
                    """,
                    [
                        snapshot.id, snapshot.name, snapshot.location.lat, snapshot.location.lng,
                        snapshot.avg_prep_time_minutes, snapshot.accepts_orders, snapshot.is_active,
                        snapshot.current_orders, snapshot.max_concurrent_orders,
                        snapshot.same_side_of_road, snapshot.parking_available,
                    ],
                )
        except DatabaseError as e:
            raise DependencyUnavailableError("餐厅目录写入失败", details={"cause": e.message}) from e

    def _fetch_one(self, query: str, params: list):
        try:
            return self.db.execute_one(query, params)
        except DatabaseError as e:
            logger.warning("restaurant directory lookup failed: %s", e.message)
            raise DependencyUnavailableError("餐厅目录暂不可用", details={"cause": e.message}) from e

    def _fetch_all(self, query: str, params: list = None):
        try:
            return self.db.execute_query(query, params)
        except DatabaseError as e:
            logger.warning("restaurant directory listing failed: %s", e.message)
            raise DependencyUnavailableError("餐厅目录暂不可用", details={"cause": e.message}) from e

    @staticmethod
    def _to_snapshot(row: tuple) -> RestaurantSnapshot:
        return RestaurantSnapshot(
            id=row[0],
            name=row[1],
            location=Coordinate(lat=row[2], lng=row[3]),
            avg_prep_time_minutes=row[4],
            accepts_orders=row[5],
            is_active=row[6],
            current_orders=row[7],
            max_concurrent_orders=row[8],
            same_side_of_road=row[9],
            parking_available=row[10],
        )


# 全局服务实例
restaurant_directory = RestaurantDirectory()
