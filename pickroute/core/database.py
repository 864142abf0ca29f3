"""
数据库连接和管理模块
提供 DuckDB 单连接管理、表结构定义和事务控制

数据库表说明：
- restaurants: 餐厅目录快照及当前并发订单数
- menu_items: 菜单条目（价格、是否可售）
- orders: 用户取餐订单
- order_items: 订单明细
- logs: 操作审计日志

所有语句都在同一把可重入锁内执行，锁获取带超时，避免请求无限期阻塞。
"""

import logging
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Generator, Optional

import duckdb

from .exceptions import DatabaseBusyError, DatabaseError
from ..config.settings import settings

logger = logging.getLogger(__name__)

# 完整的表结构定义
SCHEMA_SQL = r"""
CREATE TABLE IF NOT EXISTS restaurants (
  id TEXT PRIMARY KEY,
  name TEXT NOT NULL,
  lat DOUBLE NOT NULL,
  lng DOUBLE NOT NULL,
  avg_prep_time_minutes INTEGER DEFAULT 0 CHECK(avg_prep_time_minutes >= 0),
  accepts_orders BOOLEAN DEFAULT FALSE,
  is_active BOOLEAN DEFAULT TRUE,
  current_orders INTEGER DEFAULT 0 CHECK(current_orders >= 0),
  max_concurrent_orders INTEGER DEFAULT 10 CHECK(max_concurrent_orders >= 1),
  same_side_of_road BOOLEAN DEFAULT FALSE,
  parking_available BOOLEAN DEFAULT FALSE,
  updated_at TIMESTAMP DEFAULT now()
);

CREATE TABLE IF NOT EXISTS menu_items (
  id TEXT PRIMARY KEY,
  restaurant_id TEXT NOT NULL,
  name TEXT NOT NULL,
  price_cents INTEGER NOT NULL CHECK(price_cents >= 0),
  prep_time_minutes INTEGER DEFAULT 0 CHECK(prep_time_minutes >= 0),
  is_available BOOLEAN DEFAULT TRUE
);

CREATE SEQUENCE IF NOT EXISTS orders_id_seq;
CREATE TABLE IF NOT EXISTS orders (
  id INTEGER PRIMARY KEY,
  order_number TEXT UNIQUE NOT NULL,
  user_id TEXT NOT NULL,
  restaurant_id TEXT NOT NULL,
  total_amount_cents INTEGER NOT NULL CHECK(total_amount_cents >= 0),
  paid_amount_cents INTEGER DEFAULT 0 CHECK(paid_amount_cents >= 0),
  status TEXT CHECK(status IN ('pending','confirmed','preparing','ready','picked_up','cancelled','no_show')) NOT NULL,
  pickup_code TEXT NOT NULL,
  pickup_code_expires_at TIMESTAMP NOT NULL,
  estimated_arrival_time TIMESTAMP NOT NULL,
  estimated_ready_time TIMESTAMP NOT NULL,
  hold_window_end TIMESTAMP NOT NULL,
  actual_ready_time TIMESTAMP,
  actual_pickup_time TIMESTAMP,
  delay_reason TEXT,
  user_late_by_minutes INTEGER DEFAULT 0,
  rating INTEGER CHECK(rating BETWEEN 1 AND 5),
  rating_comment TEXT,
  created_at TIMESTAMP NOT NULL,
  updated_at TIMESTAMP NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_orders_user ON orders(user_id);
CREATE INDEX IF NOT EXISTS idx_orders_restaurant ON orders(restaurant_id);

CREATE SEQUENCE IF NOT EXISTS order_items_id_seq;
CREATE TABLE IF NOT EXISTS order_items (
  id INTEGER DEFAULT nextval('order_items_id_seq') PRIMARY KEY,
  order_id INTEGER NOT NULL,
  position INTEGER NOT NULL,
  menu_item_id TEXT NOT NULL,
  item_name TEXT NOT NULL,
  unit_price_cents INTEGER NOT NULL CHECK(unit_price_cents >= 0),
  quantity INTEGER NOT NULL CHECK(quantity >= 1),
  subtotal_cents INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_order_items_order ON order_items(order_id);

CREATE SEQUENCE IF NOT EXISTS logs_id_seq;
CREATE TABLE IF NOT EXISTS logs (
  log_id INTEGER DEFAULT nextval('logs_id_seq') PRIMARY KEY,
  user_id TEXT,
  actor_id TEXT,
  action TEXT,
  detail_json TEXT,
  created_at TIMESTAMP DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_logs_action ON logs(action);
"""


class DatabaseManager:
    """数据库管理器，封装所有数据库操作"""

    def __init__(self, db_path: Optional[str] = None, lock_timeout: Optional[float] = None):
        self._connection: Optional[duckdb.DuckDBPyConnection] = None
        self._lock = threading.RLock()
        self.db_path = db_path or self._get_db_path_from_settings()
        self.lock_timeout = lock_timeout if lock_timeout is not None else settings.db_lock_timeout_seconds

    def _get_db_path_from_settings(self) -> str:
        """从设置中获取数据库路径"""
        db_url = settings.database_url
        if db_url.startswith("duckdb://"):
            return db_url.replace("duckdb://", "", 1)
        return db_url

    @property
    def connection(self) -> duckdb.DuckDBPyConnection:
        """获取数据库连接，首次访问时建库建表"""
        if self._connection is None:
            if self.db_path != ":memory:":
                Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
            try:
                self._connection = duckdb.connect(self.db_path)
                self._connection.execute(SCHEMA_SQL)
            except duckdb.Error as e:
                self._connection = None
                raise DatabaseError(f"数据库初始化失败: {e}")
        return self._connection

    @contextmanager
    def locked(self) -> Generator[duckdb.DuckDBPyConnection, None, None]:
        """持有数据库锁并返回连接；超时抛出 DatabaseBusyError"""
        if not self._lock.acquire(timeout=self.lock_timeout):
            raise DatabaseBusyError("数据库繁忙，请稍后重试")
        try:
            yield self.connection
        finally:
            self._lock.release()

    @contextmanager
    def transaction(self) -> Generator[duckdb.DuckDBPyConnection, None, None]:
        """
        数据库事务上下文管理器

        业务异常原样抛出并回滚；DuckDB 自身的错误统一包装为 DatabaseError。
        """
        with self.locked() as conn:
            conn.execute("BEGIN")
            try:
                yield conn
                conn.execute("COMMIT")
            except duckdb.Error as e:
                self._rollback(conn)
                raise DatabaseError(f"数据库操作失败: {e}") from e
            except BaseException:
                self._rollback(conn)
                raise

    def _rollback(self, conn: duckdb.DuckDBPyConnection):
        try:
            conn.execute("ROLLBACK")
        except duckdb.Error as e:
            # 提交失败时 DuckDB 已自动回滚
            logger.debug("rollback skipped: %s", e)

    def init_database(self):
        """初始化数据库"""
        with self.locked() as conn:
            conn.execute(SCHEMA_SQL)

    def execute_query(self, query: str, params: list = None) -> list:
        """执行查询并返回结果"""
        with self.locked() as conn:
            try:
                if params:
                    return conn.execute(query, params).fetchall()
                return conn.execute(query).fetchall()
            except duckdb.Error as e:
                raise DatabaseError(f"Query execution failed: {e}") from e

    def execute_one(self, query: str, params: list = None) -> Optional[tuple]:
        """执行查询并返回单条结果"""
        with self.locked() as conn:
            try:
                if params:
                    return conn.execute(query, params).fetchone()
                return conn.execute(query).fetchone()
            except duckdb.Error as e:
                raise DatabaseError(f"Query execution failed: {e}") from e

    def close(self):
        """关闭连接"""
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None


# 全局数据库管理器实例
db_manager = DatabaseManager()
