"""
菜单目录
下单时按菜单核对菜品是否存在、是否可售，并以菜单价格为准计算金额
"""

import logging
from typing import Dict, Iterable, List, Optional

from ..core.database import DatabaseManager, db_manager
from ..core.exceptions import DatabaseError, DependencyUnavailableError, InvalidRequestError
from ..models.order import CartItem, OrderItem, PricedCart
from ..models.restaurant import MenuItem

logger = logging.getLogger(__name__)


class MenuCatalog:
    """菜单目录服务"""

    def __init__(self, db: Optional[DatabaseManager] = None):
        self.db = db or db_manager

    def get_items(self, restaurant_id: str, item_ids: Iterable[str]) -> Dict[str, MenuItem]:
        """按ID批量获取某餐厅的菜品，返回 {菜品ID: MenuItem}"""
        ids = list(dict.fromkeys(item_ids))
        if not ids:
            return {}
        placeholders = ", ".join("?" for _ in ids)
        query = f"""
            SELECT id, restaurant_id, name, price_cents, prep_time_minutes, is_available
            FROM menu_items
            WHERE restaurant_id = ? AND id IN ({placeholders})
        """
        try:
            rows = self.db.execute_query(query, [restaurant_id, *ids])
        except DatabaseError as e:
            logger.warning("menu catalog lookup failed: %s", e.message)
            raise DependencyUnavailableError("菜单服务暂不可用", details={"cause": e.message}) from e

        return {
            row[0]: MenuItem(
                id=row[0],
                restaurant_id=row[1],
                name=row[2],
                price_cents=row[3],
                prep_time_minutes=row[4],
                is_available=row[5],
            )
            for row in rows
        }

    def price_cart(self, restaurant_id: str, items: List[CartItem]) -> PricedCart:
        """
        按菜单核价

        Raises:
            InvalidRequestError: 购物车为空、菜品不存在或已售罄
            DependencyUnavailableError: 菜单读取失败
        """
        if not items:
            raise InvalidRequestError("购物车为空", details={"action": "validate_cart"})

        menu = self.get_items(restaurant_id, (item.menu_item_id for item in items))

        missing = [item.menu_item_id for item in items if item.menu_item_id not in menu]
        if missing:
            raise InvalidRequestError(
                "菜品不存在",
                details={"action": "validate_cart", "restaurant_id": restaurant_id, "missing_items": missing},
            )
        unavailable = [item.menu_item_id for item in items if not menu[item.menu_item_id].is_available]
        if unavailable:
            raise InvalidRequestError(
                "菜品已售罄",
                details={"action": "validate_cart", "restaurant_id": restaurant_id,
                         "unavailable_items": unavailable},
            )

        lines = [
            OrderItem.priced(
                menu_item_id=item.menu_item_id,
                item_name=menu[item.menu_item_id].name,
                unit_price_cents=menu[item.menu_item_id].price_cents,
                quantity=item.quantity,
            )
            for item in items
        ]
        return PricedCart(
            restaurant_id=restaurant_id,
            items=lines,
            total_amount_cents=sum(line.subtotal_cents for line in lines),
            estimated_prep_time_minutes=max(menu[item.menu_item_id].prep_time_minutes for item in items),
        )

    def upsert_items(self, items: Iterable[MenuItem]) -> None:
        """同步菜单资料"""
        try:
            with self.db.transaction() as conn:
                for item in items:
                    conn.execute(
                        """
                        INSERT INTO menu_items (id, restaurant_id, name, price_cents, prep_time_minutes, is_available)
                        VALUES (?, ?, ?, ?, ?, ?)
                        ON CONFLICT (id) DO UPDATE SET
                            restaurant_id = excluded.restaurant_id,
                            name = excluded.name,
                            price_cents = excluded.price_cents,
                            prep_time_minutes = excluded.prep_time_minutes,
                            is_available = excluded.is_available
                        """,
                        [item.id, item.restaurant_id, item.name, item.price_cents,
                         item.prep_time_minutes, item.is_available],
                    )
        except DatabaseError as e:
            raise DependencyUnavailableError("菜单写入失败", details={"cause": e.message}) from e


# 全局服务实例
menu_catalog = MenuCatalog()
