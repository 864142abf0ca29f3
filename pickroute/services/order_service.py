"""
订单服务模块
提供取餐订单的核心业务逻辑，包括核价、锁定时段、下单、状态流转、取餐核验和评价

主要功能：
- 购物车核价（以菜单价格为准）
- 下单时重新计算取餐时段并通过容量账本占用名额
- 订单状态机流转（集中校验，见 models.order.ORDER_TRANSITIONS）
- 出餐前的延误说明
- 四位取餐码核验，成功后归还容量
- 取餐完成后的评价

业务规则：
- 容量占用与订单写入在同一事务内完成，并发下单不会超卖
- 取消、未到店、取餐完成都会归还容量，计数不低于 0
- 取餐码有效期默认 2 小时，过期在核验时惰性判断
- 订单不删除，终态订单保留用于查询和评价
"""

import json
import logging
import math
import secrets
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

import duckdb
from pydantic import ValidationError

from .capacity_ledger import CapacityLedger
from .menu_catalog import MenuCatalog
from .restaurant_directory import RestaurantDirectory
from .slot_planner import SlotPlanner
from ..config.settings import settings
from ..core.database import DatabaseManager, db_manager
from ..core.exceptions import (
    CapacityExceededError,
    CodeExpiredError,
    InvalidCodeError,
    InvalidRequestError,
    InvalidStateError,
    InvalidTransitionError,
    OrderNotFoundError,
    PermissionDeniedError,
    RestaurantUnavailableError,
    WrongStateError,
)
from ..models.order import (
    CAPACITY_RELEASING,
    DELAY_ANNOTATABLE,
    OPEN_STATUSES,
    Actor,
    ActorRole,
    CartItem,
    Order,
    OrderItem,
    OrderStatus,
    PricedCart,
    SlotBlockReason,
    SlotLock,
    check_transition,
)

logger = logging.getLogger(__name__)

_ORDER_COLUMNS = """
id, order_number, user_id, restaurant_id, total_amount_cents, paid_amount_cents, status,
pickup_code, pickup_code_expires_at, estimated_arrival_time, estimated_ready_time,
hold_window_end, actual_ready_time, actual_pickup_time, delay_reason, user_late_by_minutes,
rating, rating_comment, created_at, updated_at
"""

CartInput = Union[CartItem, Dict[str, Any]]


class OrderService:
    """订单服务类，封装所有订单相关的业务逻辑"""

    def __init__(self,
                 db: Optional[DatabaseManager] = None,
                 clock: Callable[[], datetime] = datetime.now,
                 directory: Optional[RestaurantDirectory] = None,
                 catalog: Optional[MenuCatalog] = None,
                 ledger: Optional[CapacityLedger] = None,
                 slot_planner: Optional[SlotPlanner] = None,
                 pickup_code_ttl_minutes: Optional[int] = None):
        self.db = db or db_manager
        self.clock = clock
        self.directory = directory or RestaurantDirectory(self.db)
        self.catalog = catalog or MenuCatalog(self.db)
        self.ledger = ledger or CapacityLedger(self.db)
        self.slot_planner = slot_planner or SlotPlanner(clock=clock)
        self.pickup_code_ttl_minutes = (settings.pickup_code_ttl_minutes
                                        if pickup_code_ttl_minutes is None else pickup_code_ttl_minutes)

    def validate_cart(self, restaurant_id: str, items: Iterable[CartInput]) -> PricedCart:
        """
        校验购物车

        Args:
            restaurant_id: 餐厅ID
            items: 购物车条目

        Returns:
            PricedCart: 核价后的明细、总金额和预计出餐时间

        Raises:
            RestaurantNotFoundError: 餐厅不存在
            RestaurantUnavailableError: 餐厅未营业或暂停接单
            CapacityExceededError: 餐厅订单已满
            InvalidRequestError: 购物车为空或菜品无效
        """
        cart_items = self._coerce_cart(items)
        snapshot = self.directory.get_snapshot(restaurant_id)
        reason = self.slot_planner.blocked_reason(snapshot)
        if reason is not None:
            self._raise_blocked(restaurant_id, reason)
        return self.catalog.price_cart(restaurant_id, cart_items)

    def lock_slot(self, restaurant_id: str, arrival_eta_minutes: float,
                  user_late_by_minutes: float = 0) -> SlotLock:
        """按餐厅ID计算取餐时段，不占用容量"""
        self._validate_minutes(arrival_eta_minutes, user_late_by_minutes)
        snapshot = self.directory.get_snapshot(restaurant_id)
        return self.slot_planner.lock_slot(snapshot, arrival_eta_minutes, user_late_by_minutes)

    def create_order(self, user_id: str, restaurant_id: str, items: Iterable[CartInput],
                     arrival_eta_minutes: float, user_late_by_minutes: float = 0) -> Order:
        """
        创建新订单

        Args:
            user_id: 用户ID
            restaurant_id: 餐厅ID
            items: 购物车条目
            arrival_eta_minutes: 预计到达时间（分钟）
            user_late_by_minutes: 预计迟到时间（分钟）

        Returns:
            Order: 新建的 pending 订单

        Raises:
            InvalidRequestError: 参数或购物车无效
            RestaurantNotFoundError: 餐厅不存在
            RestaurantUnavailableError: 餐厅未营业或暂停接单
            CapacityExceededError: 容量账本占用失败
            DependencyUnavailableError: 餐厅目录或菜单读取失败
        """
        if not user_id:
            raise InvalidRequestError("缺少用户ID", details={"action": "create_order"})
        self._validate_minutes(arrival_eta_minutes, user_late_by_minutes)
        cart_items = self._coerce_cart(items)

        # 重新校验餐厅和购物车
        snapshot = self.directory.get_snapshot(restaurant_id)
        cart = self.catalog.price_cart(restaurant_id, cart_items)

        # 重新计算时段
        slot = self.slot_planner.lock_slot(snapshot, arrival_eta_minutes, user_late_by_minutes)
        if not slot.can_proceed:
            self._raise_blocked(restaurant_id, slot.blocked_reason)

        # 执行事务
        now = self.clock()
        with self.db.transaction() as conn:
            if not self.ledger.try_reserve(restaurant_id, conn):
                raise CapacityExceededError(restaurant_id)

            order_id = conn.execute("SELECT nextval('orders_id_seq')").fetchone()[0]
            order_number = f"PR{now:%y%m%d}{order_id:06d}"
            pickup_code = f"{secrets.randbelow(10000):04d}"

            conn.execute(
                f"""
                INSERT INTO orders ({_ORDER_COLUMNS})
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    order_id, order_number, user_id, restaurant_id, cart.total_amount_cents, 0,
                    OrderStatus.PENDING.value, pickup_code,
                    now + timedelta(minutes=self.pickup_code_ttl_minutes),
                    slot.estimated_arrival_time, slot.estimated_ready_time, slot.hold_window_end,
                    None, None, None, int(round(user_late_by_minutes)), None, None, now, now,
                ],
            )
            self._insert_items(conn, order_id, cart.items)

            # 记录日志
            self._log_action(conn, user_id, user_id, "order_create", {
                "order_id": order_id,
                "order_number": order_number,
                "restaurant_id": restaurant_id,
                "total_amount_cents": cart.total_amount_cents,
                "estimated_ready_time": slot.estimated_ready_time.isoformat(),
                "estimated_arrival_time": slot.estimated_arrival_time.isoformat(),
            })
            order = self._load_order(order_id, conn)

        logger.info("order %s created for restaurant %s", order_number, restaurant_id)
        return order

    def update_order_status(self, order_id: int, new_status: Union[OrderStatus, str],
                            actor: Actor, delay_reason: Optional[str] = None) -> Order:
        """
        更新订单状态

        原地转换（状态不变）用于出餐前附加延误说明；
        进入 cancelled / no_show 时在同一事务内归还容量。

        Raises:
            OrderNotFoundError: 订单不存在
            InvalidTransitionError: 转换不在状态表中，或未到未到店判定时间
            PermissionDeniedError: 角色或归属不符
        """
        requested = self._coerce_status(new_status)
        now = self.clock()

        with self.db.transaction() as conn:
            order = self._load_order(order_id, conn)
            self._check_access(order, actor)
            check_transition(order.status, requested, actor.role, delay_reason)

            if requested == OrderStatus.NO_SHOW:
                hold_end = self._effective_hold_window_end(order)
                if now < hold_end:
                    raise InvalidTransitionError(
                        order.status.value, requested.value,
                        f"保留取餐窗口 {hold_end.isoformat()} 之前不能判定未到店",
                    )

            updates: Dict[str, Any] = {"status": requested.value, "updated_at": now}
            if requested == OrderStatus.READY:
                updates["actual_ready_time"] = now
            if delay_reason and requested in DELAY_ANNOTATABLE:
                updates["delay_reason"] = delay_reason.strip()

            self._apply_update(conn, order, updates)
            if requested in CAPACITY_RELEASING:
                self.ledger.release(order.restaurant_id, conn)

            action = "order_delay" if requested == order.status else "order_status_change"
            self._log_action(conn, order.user_id, actor.subject_id, action, {
                "order_id": order.id,
                "from_status": order.status.value,
                "to_status": requested.value,
                "actor_role": actor.role.value,
                "delay_reason": updates.get("delay_reason"),
            })
            updated = self._load_order(order_id, conn)

        logger.info("order %s: %s -> %s by %s", order.order_number, order.status.value,
                    requested.value, actor.role.value)
        return updated

    def verify_pickup_code(self, order_id: int, code: str, actor: Actor) -> Order:
        """
        核验取餐码并完成取餐

        依次检查：取餐码是否过期、取餐码是否正确、订单是否待取餐。
        成功后订单变为 picked_up 并归还容量，取餐码随之失效。

        Raises:
            CodeExpiredError: 当前时间晚于取餐码过期时间（与取餐码是否正确无关）
            InvalidCodeError: 取餐码不匹配
            WrongStateError: 订单不在 ready 状态（包括重复核验）
            PermissionDeniedError: 用户自行核验，或餐厅核验其他餐厅的订单
        """
        now = self.clock()
        submitted = str(code or "").strip()

        with self.db.transaction() as conn:
            order = self._load_order(order_id, conn)
            if actor.role == ActorRole.USER:
                raise PermissionDeniedError("取餐码需由餐厅核验",
                                            details={"order_id": order_id, "action": "verify_pickup_code"})
            self._check_access(order, actor)

            if now > order.pickup_code_expires_at:
                raise CodeExpiredError(order.id, order.pickup_code_expires_at.isoformat())
            if not secrets.compare_digest(submitted.encode(), order.pickup_code.encode()):
                raise InvalidCodeError(order.id)
            if order.status != OrderStatus.READY:
                raise WrongStateError(order.status.value)

            self._apply_update(conn, order, {
                "status": OrderStatus.PICKED_UP.value,
                "actual_pickup_time": now,
                "updated_at": now,
            })
            self.ledger.release(order.restaurant_id, conn)
            self._log_action(conn, order.user_id, actor.subject_id, "order_pickup", {
                "order_id": order.id,
                "actor_role": actor.role.value,
            })
            updated = self._load_order(order_id, conn)

        logger.info("order %s picked up", order.order_number)
        return updated

    def rate_order(self, order_id: int, rating: int, comment: Optional[str] = None,
                   actor: Optional[Actor] = None) -> Order:
        """
        评价订单，仅限已取餐订单；重复评价覆盖之前的评分

        Raises:
            InvalidRequestError: 评分不在 1..5
            InvalidStateError: 订单未完成取餐
        """
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise InvalidRequestError("评分必须是 1 到 5 的整数",
                                      details={"action": "rate_order", "rating": rating})
        now = self.clock()

        with self.db.transaction() as conn:
            order = self._load_order(order_id, conn)
            if actor is not None and not actor.is_admin:
                if actor.role != ActorRole.USER or actor.subject_id != order.user_id:
                    raise PermissionDeniedError("只能评价自己的订单",
                                                details={"order_id": order_id, "action": "rate_order"})
            if order.status != OrderStatus.PICKED_UP:
                raise InvalidStateError(order.status.value, "rate_order")

            self._apply_update(conn, order, {
                "rating": rating,
                "rating_comment": comment,
                "updated_at": now,
            })
            self._log_action(conn, order.user_id, order.user_id, "order_rate", {
                "order_id": order.id,
                "rating": rating,
            })
            return self._load_order(order_id, conn)

    def get_order(self, order_id: int, actor: Optional[Actor] = None) -> Order:
        """获取订单详情，传入 actor 时校验访问权限"""
        order = self._load_order(order_id)
        if actor is not None:
            self._check_access(order, actor)
        return order

    def list_user_orders(self, user_id: str, status: Optional[OrderStatus] = None,
                         limit: int = 50, offset: int = 0) -> List[Order]:
        """获取用户订单列表，按创建时间倒序"""
        conditions = ["user_id = ?"]
        params: List[Any] = [user_id]
        if status is not None:
            conditions.append("status = ?")
            params.append(self._coerce_status(status).value)
        params.extend([limit, offset])

        rows = self.db.execute_query(
            f"SELECT id FROM orders WHERE {' AND '.join(conditions)} "
            f"ORDER BY created_at DESC, id DESC LIMIT ? OFFSET ?",
            params,
        )
        return [self._load_order(row[0]) for row in rows]

    def list_restaurant_orders(self, restaurant_id: str, include_closed: bool = False) -> List[Order]:
        """获取餐厅订单列表，默认只返回未完结订单，按创建时间正序"""
        query = "SELECT id FROM orders WHERE restaurant_id = ?"
        params: List[Any] = [restaurant_id]
        if not include_closed:
            statuses = sorted(status.value for status in OPEN_STATUSES)
            query += f" AND status IN ({', '.join('?' for _ in statuses)})"
            params.extend(statuses)
        query += " ORDER BY created_at ASC, id ASC"
        rows = self.db.execute_query(query, params)
        return [self._load_order(row[0]) for row in rows]

    def _effective_hold_window_end(self, order: Order) -> datetime:
        """实际出餐晚于预计时，保留窗口从实际出餐时间起算"""
        hold_end = order.hold_window_end
        if order.actual_ready_time is not None:
            hold_end = max(hold_end, order.actual_ready_time
                           + timedelta(minutes=self.slot_planner.hold_window_minutes))
        return hold_end

    @staticmethod
    def _raise_blocked(restaurant_id: str, reason: Optional[SlotBlockReason]):
        if reason == SlotBlockReason.AT_CAPACITY:
            raise CapacityExceededError(restaurant_id)
        raise RestaurantUnavailableError(restaurant_id, reason.value if reason else "unknown")

    @staticmethod
    def _validate_minutes(arrival_eta_minutes: float, user_late_by_minutes: float):
        limit = settings.max_eta_minutes
        for name, value in (("arrival_eta_minutes", arrival_eta_minutes),
                            ("user_late_by_minutes", user_late_by_minutes)):
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InvalidRequestError(f"{name} 必须为数字", details={"field": name, "value": value})
            if not math.isfinite(value) or not 0 <= value <= limit:
                raise InvalidRequestError(f"{name} 必须在 0 到 {limit} 分钟之间",
                                          details={"field": name, "value": str(value), "max": limit})

    @staticmethod
    def _coerce_cart(items: Iterable[CartInput]) -> List[CartItem]:
        if items is None:
            raise InvalidRequestError("购物车为空", details={"action": "validate_cart"})
        try:
            return [item if isinstance(item, CartItem) else CartItem.model_validate(item) for item in items]
        except ValidationError as e:
            raise InvalidRequestError("购物车条目无效", details={
                "action": "validate_cart",
                "errors": [{"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                           for err in e.errors()],
            }) from e

    @staticmethod
    def _coerce_status(status: Union[OrderStatus, str]) -> OrderStatus:
        try:
            return OrderStatus(status)
        except ValueError as e:
            raise InvalidRequestError(f"未知的订单状态 {status}", details={"status": str(status)}) from e

    @staticmethod
    def _check_access(order: Order, actor: Actor):
        """管理员可访问所有订单；用户只能访问自己的订单；餐厅只能访问本店订单"""
        if actor.is_admin:
            return
        if actor.role == ActorRole.USER and actor.subject_id == order.user_id:
            return
        if actor.role == ActorRole.RESTAURANT and actor.subject_id == order.restaurant_id:
            return
        raise PermissionDeniedError("无权访问该订单", details={"order_id": order.id, "role": actor.role.value})

    def _apply_update(self, conn: duckdb.DuckDBPyConnection, order: Order, updates: Dict[str, Any]):
        """条件更新：只有状态仍为读取时的状态才写入"""
        assignments = ", ".join(f"{column} = ?" for column in updates)
        row = conn.execute(
            f"UPDATE orders SET {assignments} WHERE id = ? AND status = ? RETURNING id",
            [*updates.values(), order.id, order.status.value],
        ).fetchone()
        if row is None:
            raise InvalidTransitionError(order.status.value, str(updates.get("status", order.status.value)),
                                         "订单状态已被并发修改")

    def _insert_items(self, conn: duckdb.DuckDBPyConnection, order_id: int, items: List[OrderItem]):
        for position, item in enumerate(items):
            conn.execute(
                """
                INSERT INTO order_items (order_id, position, menu_item_id, item_name,
                                         unit_price_cents, quantity, subtotal_cents)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                [order_id, position, item.menu_item_id, item.item_name,
                 item.unit_price_cents, item.quantity, item.subtotal_cents],
            )

    def _load_order(self, order_id: int, conn: Optional[duckdb.DuckDBPyConnection] = None) -> Order:
        """读取订单及明细；conn 为空时走加锁的只读查询"""
        order_query = f"SELECT {_ORDER_COLUMNS} FROM orders WHERE id = ?"
        items_query = """
            SELECT menu_item_id, item_name, unit_price_cents, quantity, subtotal_cents
            FROM order_items WHERE order_id = ? ORDER BY position
        """
        if conn is not None:
            row = conn.execute(order_query, [order_id]).fetchone()
            item_rows = conn.execute(items_query, [order_id]).fetchall() if row else []
        else:
            row = self.db.execute_one(order_query, [order_id])
            item_rows = self.db.execute_query(items_query, [order_id]) if row else []

        if not row:
            raise OrderNotFoundError(order_id)

        return Order(
            id=row[0],
            order_number=row[1],
            user_id=row[2],
            restaurant_id=row[3],
            total_amount_cents=row[4],
            paid_amount_cents=row[5],
            status=row[6],
            pickup_code=row[7],
            pickup_code_expires_at=row[8],
            estimated_arrival_time=row[9],
            estimated_ready_time=row[10],
            hold_window_end=row[11],
            actual_ready_time=row[12],
            actual_pickup_time=row[13],
            delay_reason=row[14],
            user_late_by_minutes=row[15],
            rating=row[16],
            rating_comment=row[17],
            created_at=row[18],
            updated_at=row[19],
            items=[
                OrderItem(
                    menu_item_id=item[0],
                    item_name=item[1],
                    unit_price_cents=item[2],
                    quantity=item[3],
                    subtotal_cents=item[4],
                )
                for item in item_rows
            ],
        )

    def _log_action(self, conn: duckdb.DuckDBPyConnection, user_id: Optional[str],
                    actor_id: Optional[str], action: str, detail: Dict[str, Any]):
        """记录操作日志"""
        conn.execute(
            "INSERT INTO logs(user_id, actor_id, action, detail_json, created_at) VALUES (?,?,?,?,?)",
            [user_id, actor_id, action, json.dumps(detail, ensure_ascii=False, default=str), self.clock()],
        )


# 全局服务实例
order_service = OrderService()
